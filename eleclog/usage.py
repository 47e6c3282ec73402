"""Hourly usage figures and import of historical balance readings."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from eleclog.models import Store, StoreError

IMPORT_TIME_LAYOUT = "%Y-%m-%d %H:%M:%S"
IMPORT_TIMEZONE = timezone(timedelta(hours=8), "GMT+8")
BUFFER = timedelta(hours=1, minutes=10)


@dataclass(frozen=True)
class UsageInterval:
    """Consumption between two consecutive readings."""

    start_time: datetime
    end_time: datetime
    usage: float  # kWh used in the interval
    balance: float  # balance in yuan at the end of the interval

    def to_json(self) -> dict:
        return {
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "usage": self.usage,
            "balance": self.balance,
        }


@dataclass(frozen=True)
class ImportResult:
    imported: int = 0
    skipped: int = 0
    errors: int = 0

    def to_json(self) -> dict:
        return {"imported": self.imported, "skipped": self.skipped, "errors": self.errors}


class ImportFormatError(ValueError):
    """The uploaded document is not a list of readings."""


def buffer_start(start_time: datetime) -> datetime:
    """Start of the lookup window: one reading earlier than the requested range."""
    return start_time - BUFFER


def compute_usage(records, start_time, price_per_kwh) -> list[UsageInterval]:
    """Turn ordered readings into per-interval consumption.

    Readings earlier than ``start_time`` only serve as the baseline for the
    first interval. A rise in balance (a top-up) counts as zero usage.
    """
    intervals = []
    for prev, curr in zip(records, records[1:]):
        if curr.recorded_at < start_time:
            continue
        usage = (prev.balance - curr.balance) / 100.0 / price_per_kwh
        intervals.append(
            UsageInterval(
                start_time=prev.recorded_at,
                end_time=curr.recorded_at,
                usage=max(usage, 0.0),
                balance=curr.balance / 100.0,
            )
        )
    return intervals


def _round_half_away(value: float) -> int:
    whole = math.trunc(value)
    if abs(value - whole) >= 0.5:
        whole += 1 if value > 0 else -1
    return int(whole)


def _field(item: dict, name: str, kinds, default):
    value = item.get(name)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, kinds):
        raise ImportFormatError(f"JSON 解析失败: field {name!r} has the wrong type")
    return value


def parse_import(raw) -> list[tuple[datetime, int]]:
    """Parse an export document into ``(recorded_at in UTC, balance in cents)`` pairs.

    Timestamps are read as GMT+8. Entries whose timestamp cannot be parsed are dropped.
    """
    try:
        items = json.loads(raw)
    except (ValueError, TypeError) as exc:
        raise ImportFormatError(f"JSON 解析失败: {exc}") from exc
    if items is None:
        return []
    if not isinstance(items, list):
        raise ImportFormatError("JSON 解析失败: expected a list of records")

    parsed = []
    for item in items:
        if item is None:
            continue
        if not isinstance(item, dict):
            raise ImportFormatError("JSON 解析失败: every record must be an object")
        stamp = _field(item, "timestamp", str, "")
        surplus = _field(item, "surplus", (int, float), 0)
        _field(item, "room_name", str, "")
        try:
            local = datetime.strptime(stamp, IMPORT_TIME_LAYOUT)
        except ValueError:
            continue
        recorded_at = local.replace(tzinfo=IMPORT_TIMEZONE).astimezone(timezone.utc)
        parsed.append((recorded_at, _round_half_away(surplus * 100)))
    return parsed


def _unix(moment: datetime) -> int:
    return math.floor(moment.timestamp())


def import_records(store: Store, room_id: int, raw) -> ImportResult:
    """Store the readings in ``raw`` for a room, skipping timestamps already present."""
    parsed = parse_import(raw)
    if not parsed:
        return ImportResult()

    times = [recorded_at for recorded_at, _ in parsed]
    existing = {
        _unix(moment)
        for moment in store.get_recorded_ats_by_range(room_id, min(times), max(times))
    }

    imported = skipped = errors = 0
    for recorded_at, balance in parsed:
        second = _unix(recorded_at)
        if second in existing:
            skipped += 1
            continue
        try:
            store.create_electricity_record(room_id, balance, recorded_at)
        except StoreError:
            errors += 1
        else:
            imported += 1
            existing.add(second)
    return ImportResult(imported=imported, skipped=skipped, errors=errors)