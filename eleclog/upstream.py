"""Client for the campus electricity service."""

from __future__ import annotations

import requests

BASE_URL = "https://application.xiaofubao.com/app/electric/"
PLATFORM = "YUNMA_APP"
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/148.0.0.0 Safari/537.36"
)


class UpstreamError(Exception):
    """The upstream service could not be reached or answered with an error."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class UpstreamClient:
    """Queries campus areas, buildings, floors, rooms and room balances."""

    def __init__(self, shiro_jid: str, base_url: str = BASE_URL, session=None, timeout=None):
        self.shiro_jid = shiro_jid
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.timeout = timeout
        self._session = session if session is not None else requests.Session()

    def _call(self, method: str, endpoint: str, params: dict, headers: dict | None = None):
        all_headers = {"Cookie": f"shiroJID={self.shiro_jid}", "User-Agent": USER_AGENT}
        all_headers.update(headers or {})
        try:
            response = self._session.request(
                method,
                self.base_url + endpoint,
                params={"platform": PLATFORM, **params},
                headers=all_headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise UpstreamError(f"请求失败: {exc}") from exc
        if not 200 <= response.status_code < 300:
            raise UpstreamError(
                f"接口返回错误代码: {response.status_code}", status=response.status_code
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError(f"invalid JSON from upstream: {exc}") from exc

    def query_area(self):
        return self._call("GET", "queryArea", {"type": "1"})

    def query_building(self, area_id):
        return self._call("GET", "queryBuilding", {"areaId": area_id})

    def query_floor(self, area_id, building_code):
        return self._call(
            "GET", "queryFloor", {"areaId": area_id, "buildingCode": building_code}
        )

    def query_room(self, area_id, building_code, floor_code):
        return self._call(
            "GET",
            "queryRoom",
            {"areaId": area_id, "buildingCode": building_code, "floorCode": floor_code},
        )

    @staticmethod
    def _room_params(area_id, building_code, floor_code, room_code) -> dict:
        return {
            "areaId": area_id,
            "buildingCode": building_code,
            "floorCode": floor_code,
            "roomCode": room_code,
        }

    def query_room_surplus(self, area_id, building_code, floor_code, room_code):
        return self._call(
            "POST",
            "queryRoomSurplus",
            self._room_params(area_id, building_code, floor_code, room_code),
        )

    def fetch_surplus(self, area_id, building_code, floor_code, room_code) -> float:
        """Remaining balance of a room in yuan."""
        result = self._call(
            "POST",
            "queryRoomSurplus",
            self._room_params(area_id, building_code, floor_code, room_code),
            {"Content-Type": "application/json"},
        )
        if result is not None and not isinstance(result, dict):
            raise UpstreamError("unexpected response shape from upstream")
        result = result or {}
        if result.get("success") is not True:
            raise UpstreamError(f"接口返回失败: {result}")
        data = result.get("data") or {}
        amount = data.get("amount", 0) if isinstance(data, dict) else 0
        if isinstance(amount, bool) or not isinstance(amount, (int, float)):
            raise UpstreamError("unexpected amount in upstream response")
        return float(amount)