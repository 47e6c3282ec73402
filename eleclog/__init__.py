"""Electricity balance logging: Flask routes, token auth, in-memory storage and an hourly collector."""

__version__ = "0.1.0"