"""Hourly collection of room balances from the upstream service."""

from __future__ import annotations

import logging
import math
import threading
from datetime import datetime, timedelta

from eleclog.models import Config, Store, StoreError
from eleclog.upstream import UpstreamClient, UpstreamError

RUN_MINUTE = 5

_log = logging.getLogger("eleclog.collector")


def next_run_time(now: datetime) -> datetime:
    """The first moment strictly after ``now`` at minute 5 of an hour."""
    candidate = now.replace(minute=RUN_MINUTE, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(hours=1)
    return candidate


def to_cents(amount: float) -> int:
    """Yuan to whole cents, rounding halves away from zero."""
    value = amount * 100
    whole = math.trunc(value)
    if abs(value - whole) >= 0.5:
        whole += 1 if value > 0 else -1
    return int(whole)


def format_cents(cents: int) -> str:
    """Render cents as a yuan amount with two decimals."""
    sign = "-" if cents < 0 else ""
    yuan, rest = divmod(abs(cents), 100)
    return f"{sign}{yuan}.{rest:02d}"


class Collector:
    """Records every room's balance once an hour."""

    def __init__(self, config: Config, store: Store, client=None) -> None:
        self.config = config
        self.store = store
        self.client = client if client is not None else UpstreamClient(config.shiro_jid)
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Begin running collections in the background."""
        if self.running:
            raise RuntimeError("collector is already running")
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="eleclog-collector", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop scheduling and wait for a collection in progress to finish."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def _loop(self) -> None:
        while True:
            now = datetime.now().astimezone()
            delay = (next_run_time(now) - now).total_seconds()
            if self._stop.wait(delay):
                return
            try:
                self.run_now()
            except Exception:
                _log.exception("collection run failed")

    def run_now(self):
        """Fetch and store every room's balance once; return the stored records."""
        try:
            rooms = self.store.list_rooms_all()
        except StoreError as exc:
            _log.error("failed to list rooms: %s", exc)
            return []

        stored = []
        for room in rooms:
            try:
                balance = self.client.fetch_surplus(
                    room.area_id, room.building_code, room.floor_code, room.room_code
                )
            except UpstreamError as exc:
                _log.error("failed to fetch balance for room %s: %s", room.name, exc)
                continue
            cents = to_cents(balance)
            try:
                record = self.store.create_electricity_record(room.id, cents)
            except StoreError as exc:
                _log.error("failed to record balance for room %s: %s", room.name, exc)
                continue
            _log.info("recorded balance for room %s: %s", room.name, format_cents(cents))
            stored.append(record)
        return stored