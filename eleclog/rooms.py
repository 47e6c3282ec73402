"""HTTP handlers for creating, reading, listing, updating and deleting rooms."""

from __future__ import annotations

import re

from flask import Blueprint, current_app, jsonify, request

from eleclog.auth import require_auth
from eleclog.models import NotFoundError, Room, StoreError

STORE_KEY = "ELECLOG_STORE"
CONFIG_KEY = "ELECLOG_CONFIG"
MAX_PAGE_SIZE = 50

_INTEGER = re.compile(r"[+-]?[0-9]+")
_ALPHANUM = re.compile(r"[A-Za-z0-9]+")
_ROOM_FIELDS = ("name", "area_id", "building_code", "floor_code", "room_code")
_CODE_FIELDS = ("area_id", "building_code", "floor_code", "room_code")

blueprint = Blueprint("rooms", __name__)


class _BadRequest(ValueError):
    """A request parameter or body failed validation."""


def _error(message: str, status: int):
    return jsonify({"error": message}), status


def _store():
    return current_app.config[STORE_KEY]


def _parse_int(text, name, *, minimum=1, maximum=None, bits=64):
    """Parse a required integer parameter; zero and absence both count as missing."""
    if not text:
        raise _BadRequest(f"{name} is required")
    if not _INTEGER.fullmatch(text):
        raise _BadRequest(f"{name} must be an integer, got {text!r}")
    value = int(text)
    bound = 2 ** (bits - 1)
    if not -bound <= value < bound:
        raise _BadRequest(f"{name} is out of range")
    if value == 0:
        raise _BadRequest(f"{name} is required")
    if value < minimum:
        raise _BadRequest(f"{name} must be at least {minimum}")
    if maximum is not None and value > maximum:
        raise _BadRequest(f"{name} must be at most {maximum}")
    return value


def _parse_id(text, name="id"):
    return _parse_int(text, name)


def _json_object():
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise _BadRequest("request body must be a JSON object")
    return body


def _room_json(room: Room, *, with_id: bool = True) -> dict:
    data = {"id": room.id} if with_id else {}
    data.update(
        name=room.name,
        area_id=room.area_id,
        building_code=room.building_code,
        floor_code=room.floor_code,
        room_code=room.room_code,
        created_at=room.created_at.isoformat(),
    )
    return data


def _store_failure(exc: StoreError):
    return _error(str(exc), 404 if isinstance(exc, NotFoundError) else 500)


@blueprint.post("/rooms")
@require_auth
def create_room():
    try:
        body = _json_object()
        fields = {}
        for name in _ROOM_FIELDS:
            value = body.get(name)
            if value is not None and not isinstance(value, str):
                raise _BadRequest(f"{name} must be a string")
            if not value:
                raise _BadRequest(f"{name} is required")
            fields[name] = value
    except _BadRequest as exc:
        return _error(str(exc), 400)

    try:
        room = _store().create_room(**fields)
    except StoreError as exc:
        return _error(str(exc), 500)
    return jsonify(_room_json(room, with_id=False))


@blueprint.get("/rooms/<room_id>")
def get_room(room_id):
    try:
        ident = _parse_id(room_id)
    except _BadRequest as exc:
        return _error(str(exc), 400)
    try:
        room = _store().get_room(ident)
    except StoreError as exc:
        return _store_failure(exc)
    return jsonify(_room_json(room))


@blueprint.get("/rooms")
def list_rooms():
    try:
        page_id = _parse_int(request.args.get("page_id"), "page_id", bits=32)
        page_size = _parse_int(
            request.args.get("page_size"), "page_size", maximum=MAX_PAGE_SIZE, bits=32
        )
    except _BadRequest as exc:
        return _error(str(exc), 400)

    store = _store()
    try:
        rooms = store.list_rooms(page_size, (page_id - 1) * page_size)
        total = store.count_rooms()
    except StoreError as exc:
        return _error(str(exc), 500)
    return jsonify({"total": total, "rooms": [_room_json(room) for room in rooms]})


@blueprint.put("/rooms/<room_id>")
def update_room(room_id):
    try:
        ident = _parse_id(room_id)
        body = _json_object()
        changes = {}
        for name in _ROOM_FIELDS:
            value = body.get(name)
            if value is None:
                continue
            if not isinstance(value, str):
                raise _BadRequest(f"{name} must be a string")
            if name in _CODE_FIELDS and value and not _ALPHANUM.fullmatch(value):
                raise _BadRequest(f"{name} must contain only letters and digits")
            changes[name] = value
    except _BadRequest as exc:
        return _error(str(exc), 400)

    try:
        room = _store().update_room(ident, **changes)
    except StoreError as exc:
        return _store_failure(exc)
    return jsonify(_room_json(room))


@blueprint.delete("/rooms/<room_id>")
@require_auth
def delete_room(room_id):
    try:
        ident = _parse_id(room_id)
    except _BadRequest as exc:
        return _error(str(exc), 400)
    try:
        _store().delete_room(ident)
    except StoreError as exc:
        return _error(str(exc), 500)
    return "", 204