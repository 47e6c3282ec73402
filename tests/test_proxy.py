import secrets
from datetime import timedelta

import pytest
import responses
from flask import Flask
from responses import matchers

from eleclog.auth import TOKEN_MAKER_KEY, TokenMaker
from eleclog.proxy import UPSTREAM_FAILED, UPSTREAM_KEY, blueprint
from eleclog.upstream import BASE_URL, UpstreamClient

SHIRO_JID = "placeholder"


@pytest.fixture
def maker():
    return TokenMaker(secrets.token_hex(16))


@pytest.fixture
def client(maker):
    app = Flask(__name__)
    app.config[TOKEN_MAKER_KEY] = maker
    app.config[UPSTREAM_KEY] = UpstreamClient(SHIRO_JID)
    app.register_blueprint(blueprint)
    return app.test_client()


@pytest.fixture
def headers(maker):
    token, _ = maker.create_token("alice", timedelta(minutes=1))
    return {"Authorization": f"Bearer {token}"}


def _matchers(params):
    return [
        matchers.query_param_matcher({"platform": "YUNMA_APP", **params}),
        matchers.header_matcher({"Cookie": f"shiroJID={SHIRO_JID}"}),
    ]


def test_areas_relays_upstream_json(client, headers):
    payload = {"success": True, "rows": [{"id": "a1", "areaName": "North"}]}
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.GET,
            BASE_URL + "queryArea",
            json=payload,
            match=_matchers({"type": "1"}),
        )
        resp = client.get("/proxy/areas", headers=headers)
    assert resp.status_code == 200
    assert resp.get_json() == payload


def test_areas_upstream_failure_is_bad_gateway(client, headers):
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, BASE_URL + "queryArea", status=500)
        resp = client.get("/proxy/areas", headers=headers)
    assert resp.status_code == 502
    assert resp.get_json() == {"error": UPSTREAM_FAILED}


def test_areas_unauthorized_never_calls_upstream(client, maker):
    token, payload = maker.create_token("alice", timedelta(minutes=1))
    assert payload.username == "alice"
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        missing = client.get("/proxy/areas")
        wrong_type = client.get(
            "/proxy/areas", headers={"Authorization": f"Basic {token}"}
        )
        assert len(rsps.calls) == 0
    assert missing.status_code == 401
    assert wrong_type.status_code == 401


def test_buildings_requires_area(client, headers):
    resp = client.get("/proxy/buildings", headers=headers)
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "缺少参数 areaId"}


def test_buildings_relays(client, headers):
    payload = {"rows": [{"buildingCode": "b7"}]}
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.GET,
            BASE_URL + "queryBuilding",
            json=payload,
            match=_matchers({"areaId": "a1"}),
        )
        resp = client.get("/proxy/buildings?areaId=a1", headers=headers)
    assert resp.status_code == 200
    assert resp.get_json() == payload


def test_floors_requires_building(client, headers):
    resp = client.get("/proxy/floors?areaId=a1", headers=headers)
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "缺少参数 areaId 或 buildingCode"}


def test_floors_relays(client, headers):
    payload = {"rows": [{"floorCode": "f3"}]}
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.GET,
            BASE_URL + "queryFloor",
            json=payload,
            match=_matchers({"areaId": "a1", "buildingCode": "b7"}),
        )
        resp = client.get("/proxy/floors?areaId=a1&buildingCode=b7", headers=headers)
    assert resp.status_code == 200
    assert resp.get_json() == payload


def test_rooms_requires_floor(client, headers):
    resp = client.get("/proxy/rooms?areaId=a1&buildingCode=b7", headers=headers)
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "缺少参数 areaId、buildingCode 或 floorCode"}


def test_rooms_relays(client, headers):
    payload = {"rows": [{"roomCode": "r12"}]}
    params = {"areaId": "a1", "buildingCode": "b7", "floorCode": "f3"}
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.GET, BASE_URL + "queryRoom", json=payload, match=_matchers(params)
        )
        resp = client.get("/proxy/rooms", query_string=params, headers=headers)
    assert resp.status_code == 200
    assert resp.get_json() == payload


def test_room_surplus_requires_all_codes(client, headers):
    resp = client.get(
        "/proxy/room-surplus?areaId=a1&buildingCode=b7&floorCode=f3", headers=headers
    )
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "缺少参数"}


def test_room_surplus_posts_upstream(client, headers):
    payload = {"success": True, "data": {"amount": 12.5, "displayRoomName": "North 7-312"}}
    params = {"areaId": "a1", "buildingCode": "b7", "floorCode": "f3", "roomCode": "r12"}
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.POST,
            BASE_URL + "queryRoomSurplus",
            json=payload,
            match=_matchers(params),
        )
        resp = client.get("/proxy/room-surplus", query_string=params, headers=headers)
    assert resp.status_code == 200
    assert resp.get_json() == payload


def test_room_surplus_connection_error_is_bad_gateway(client, headers):
    params = {"areaId": "a1", "buildingCode": "b7", "floorCode": "f3", "roomCode": "r12"}
    with responses.RequestsMock(assert_all_requests_are_fired=False):
        resp = client.get("/proxy/room-surplus", query_string=params, headers=headers)
    assert resp.status_code == 502
    assert resp.get_json() == {"error": UPSTREAM_FAILED}