from datetime import datetime, timedelta, timezone

import pytest

from eleclog.collector import Collector, format_cents, next_run_time, to_cents
from eleclog.models import Config, MemoryStore, StoreError
from eleclog.upstream import UpstreamError

CONFIG = Config(token_symmetric_key="secret", price_per_kwh=0.5, shiro_jid="token")


class FakeClient:
    def __init__(self, amounts):
        self.amounts = amounts
        self.calls = []

    def fetch_surplus(self, area_id, building_code, floor_code, room_code):
        self.calls.append(room_code)
        amount = self.amounts[room_code]
        if amount is None:
            raise UpstreamError("down")
        return amount


class BrokenStore(MemoryStore):
    def list_rooms_all(self):
        raise StoreError("database unavailable")


def test_next_run_time_same_hour():
    now = datetime(2024, 5, 1, 10, 0, 30, tzinfo=timezone.utc)
    assert next_run_time(now) == datetime(2024, 5, 1, 10, 5, tzinfo=timezone.utc)


@pytest.mark.parametrize("minute,second", [(5, 0), (5, 1), (30, 0), (59, 59), (0, 0)])
def test_next_run_time_invariants(minute, second):
    now = datetime(2024, 5, 1, 10, minute, second, tzinfo=timezone.utc)
    result = next_run_time(now)
    assert result > now
    assert result - now <= timedelta(hours=1)
    assert (result.minute, result.second, result.microsecond) == (5, 0, 0)


def test_to_cents_rounds_half_away_from_zero():
    assert to_cents(12.34) == 1234
    assert to_cents(-0.5) == -to_cents(0.5)


@pytest.mark.parametrize("cents", [0, 5, 99, 100, 1234, 987654, -5, -1234])
def test_format_cents_round_trip(cents):
    assert to_cents(float(format_cents(cents))) == cents


def test_format_cents_two_decimals():
    assert format_cents(1234) == "12.34"


def test_run_now_records_each_reachable_room():
    store = MemoryStore()
    good = store.create_room("A", "1", "2", "3", "r1")
    store.create_room("B", "1", "2", "3", "r2")
    client = FakeClient({"r1": 42.37, "r2": None})
    collector = Collector(CONFIG, store, client)

    stored = collector.run_now()

    assert client.calls == ["r1", "r2"]
    assert [r.room_id for r in stored] == [good.id]
    assert store.get_latest_balance(good.id).balance == to_cents(42.37)


def test_run_now_survives_store_failure():
    collector = Collector(CONFIG, BrokenStore(), FakeClient({}))
    assert collector.run_now() == []


def test_start_twice_raises_and_stop_ends_thread():
    collector = Collector(CONFIG, MemoryStore(), FakeClient({}))
    collector.start()
    try:
        assert collector.running is True
        with pytest.raises(RuntimeError):
            collector.start()
    finally:
        collector.stop()
    assert collector.running is False