"""Authenticated pass-through routes to the campus electricity service."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from eleclog.auth import require_auth
from eleclog.rooms import _error
from eleclog.upstream import UpstreamError

UPSTREAM_KEY = "ELECLOG_UPSTREAM"
UPSTREAM_FAILED = "上游请求失败"

blueprint = Blueprint("proxy", __name__)


def _client():
    return current_app.config[UPSTREAM_KEY]


def _args(*names):
    return [request.args.get(name, "") for name in names]


def _relay(call, *args):
    try:
        result = call(*args)
    except UpstreamError:
        return _error(UPSTREAM_FAILED, 502)
    return jsonify(result)


@blueprint.get("/proxy/areas")
@require_auth
def areas():
    return _relay(_client().query_area)


@blueprint.get("/proxy/buildings")
@require_auth
def buildings():
    (area_id,) = _args("areaId")
    if not area_id:
        return _error("缺少参数 areaId", 400)
    return _relay(_client().query_building, area_id)


@blueprint.get("/proxy/floors")
@require_auth
def floors():
    params = _args("areaId", "buildingCode")
    if not all(params):
        return _error("缺少参数 areaId 或 buildingCode", 400)
    return _relay(_client().query_floor, *params)


@blueprint.get("/proxy/rooms")
@require_auth
def rooms():
    params = _args("areaId", "buildingCode", "floorCode")
    if not all(params):
        return _error("缺少参数 areaId、buildingCode 或 floorCode", 400)
    return _relay(_client().query_room, *params)


@blueprint.get("/proxy/room-surplus")
@require_auth
def room_surplus():
    params = _args("areaId", "buildingCode", "floorCode", "roomCode")
    if not all(params):
        return _error("缺少参数", 400)
    return _relay(_client().query_room_surplus, *params)