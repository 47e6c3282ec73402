"""HTTP handlers for room balances, hourly usage and history import."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

from flask import Blueprint, current_app, jsonify, request

from eleclog.auth import require_auth
from eleclog.models import NotFoundError, StoreError
from eleclog.rooms import CONFIG_KEY, STORE_KEY, _BadRequest, _error, _parse_id
from eleclog.usage import ImportFormatError, buffer_start, compute_usage, import_records

_RFC3339 = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})[Tt](\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?"
    r"(?:([Zz])|([+-])(\d{2}):(\d{2}))"
)
_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

blueprint = Blueprint("balances", __name__)


def _store():
    return current_app.config[STORE_KEY]


def _parse_time(text, name) -> datetime:
    """Parse a required RFC 3339 timestamp."""
    if not text:
        raise _BadRequest(f"{name} is required")
    match = _RFC3339.fullmatch(text)
    if match is None:
        raise _BadRequest(f"{name} is not an RFC 3339 time: {text!r}")
    year, month, day, hour, minute, second = map(int, match.group(1, 2, 3, 4, 5, 6))
    micro = int((match.group(7) or "0")[:6].ljust(6, "0"))
    try:
        if match.group(8):
            zone = timezone.utc
        else:
            offset = timedelta(hours=int(match.group(10)), minutes=int(match.group(11)))
            zone = timezone(-offset if match.group(9) == "-" else offset)
        moment = datetime(year, month, day, hour, minute, second, micro, tzinfo=zone)
    except ValueError as exc:
        raise _BadRequest(f"{name} is not a valid time: {exc}") from exc
    if moment == _ZERO_TIME:
        raise _BadRequest(f"{name} is required")
    return moment


@blueprint.get("/electricity-balances/latest/<room_id>")
def get_latest_balance(room_id):
    try:
        ident = _parse_id(room_id, "room_id")
    except _BadRequest as exc:
        return _error(str(exc), 400)
    try:
        record = _store().get_latest_balance(ident)
    except StoreError as exc:
        return _error(str(exc), 404 if isinstance(exc, NotFoundError) else 500)
    return jsonify(
        {
            "id": record.id,
            "room_id": record.room_id,
            "balance": record.balance,
            "recorded_at": record.recorded_at.isoformat(),
        }
    )


@blueprint.get("/electricity-balances/hour-range/<room_id>")
def get_hour_range(room_id):
    try:
        ident = _parse_id(room_id, "room_id")
        start_time = _parse_time(request.args.get("start_time"), "start_time")
        end_time = _parse_time(request.args.get("end_time"), "end_time")
        window_start = buffer_start(start_time)
    except _BadRequest as exc:
        return _error(str(exc), 400)
    except OverflowError:
        return _error("start_time is out of range", 400)

    try:
        records = list(_store().get_records_by_hour_range(ident, window_start, end_time))
    except StoreError as exc:
        return _error(str(exc), 500)

    price = current_app.config[CONFIG_KEY].price_per_kwh
    intervals = compute_usage(records, start_time, price)
    return jsonify([interval.to_json() for interval in intervals])


@blueprint.post("/electricity-balances/import/<room_id>")
@require_auth
def import_balances(room_id):
    try:
        ident = _parse_id(room_id, "room_id")
    except _BadRequest as exc:
        return _error(str(exc), 400)

    upload = request.files.get("file")
    if upload is None:
        return _error("请上传 JSON 文件（字段名：file）: no file in the request", 400)
    raw = upload.read()

    try:
        result = import_records(_store(), ident, raw)
    except ImportFormatError as exc:
        return _error(str(exc), 400)
    except StoreError as exc:
        return _error(str(exc), 500)
    return jsonify(result.to_json())