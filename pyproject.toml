[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "eleclog"
version = "0.1.0"
description = "Flask routes, storage and a collector for logging dormitory electricity balances"
requires-python = ">=3.10"
keywords = ["electricity", "balance", "usage", "http", "flask", "collector"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Framework :: Flask",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
]
dependencies = [
    "flask",
    "requests",
]

[project.optional-dependencies]
test = [
    "pytest",
    "responses",
]

[tool.hatch.build.targets.wheel]
packages = ["eleclog"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
