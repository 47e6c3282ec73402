"""Domain records, configuration and the storage interface with an in-memory store."""

from __future__ import annotations

import itertools
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone


@dataclass(frozen=True)
class Config:
    """Settings shared by the HTTP server and the collector."""

    token_symmetric_key: str
    price_per_kwh: float
    access_token_duration: timedelta = timedelta(minutes=15)
    shiro_jid: str = ""
    http_server_address: str = "0.0.0.0:8080"


@dataclass(frozen=True)
class Room:
    id: int
    name: str
    area_id: str
    building_code: str
    floor_code: str
    room_code: str
    created_at: datetime


@dataclass(frozen=True)
class ElectricityRecord:
    """A balance reading; ``balance`` is held in cents."""

    id: int
    room_id: int
    balance: int
    recorded_at: datetime


@dataclass(frozen=True)
class UserRoomNotification:
    username: str
    room_id: int
    threshold: int
    is_enabled: bool = True
    last_notified_at: datetime | None = None


class StoreError(Exception):
    """A storage operation failed."""


class NotFoundError(StoreError, LookupError):
    """The requested row does not exist."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _check_page(limit: int, offset: int) -> None:
    if limit < 0 or offset < 0:
        raise StoreError("limit and offset must not be negative")


class Store(ABC):
    """Persistence operations used by the API and the collector."""

    @abstractmethod
    def create_room(self, name, area_id, building_code, floor_code, room_code) -> Room: ...

    @abstractmethod
    def get_room(self, room_id) -> Room: ...

    @abstractmethod
    def list_rooms(self, limit, offset) -> list[Room]: ...

    @abstractmethod
    def list_rooms_all(self) -> list[Room]: ...

    @abstractmethod
    def count_rooms(self) -> int: ...

    @abstractmethod
    def update_room(self, room_id, **kwargs) -> Room: ...

    @abstractmethod
    def delete_room(self, room_id) -> None: ...

    @abstractmethod
    def create_electricity_record(self, room_id, balance, recorded_at=None) -> ElectricityRecord: ...

    @abstractmethod
    def get_latest_balance(self, room_id) -> ElectricityRecord: ...

    @abstractmethod
    def get_records_by_hour_range(self, room_id, start_time, end_time) -> list[ElectricityRecord]: ...

    @abstractmethod
    def get_recorded_ats_by_range(self, room_id, start_time, end_time) -> list[datetime]: ...

    @abstractmethod
    def create_user_room_notification(self, username, room_id, threshold) -> UserRoomNotification: ...

    @abstractmethod
    def get_user_room_notification(self, username, room_id) -> UserRoomNotification: ...

    @abstractmethod
    def list_user_room_notifications_by_user(self, username, limit, offset) -> list[UserRoomNotification]: ...

    @abstractmethod
    def update_user_room_notification(
        self, username, room_id, threshold=None, is_enabled=None
    ) -> UserRoomNotification: ...

    @abstractmethod
    def delete_user_room_notification(self, username, room_id) -> None: ...


_ROOM_FIELDS = ("name", "area_id", "building_code", "floor_code", "room_code")


class MemoryStore(Store):
    """A thread-safe store that keeps everything in process memory."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rooms: dict[int, Room] = {}
        self._records: dict[int, ElectricityRecord] = {}
        self._notifications: dict[tuple[str, int], UserRoomNotification] = {}
        self._room_ids = itertools.count(1)
        self._record_ids = itertools.count(1)

    # rooms

    def create_room(self, name, area_id, building_code, floor_code, room_code):
        with self._lock:
            room = Room(
                id=next(self._room_ids),
                name=name,
                area_id=area_id,
                building_code=building_code,
                floor_code=floor_code,
                room_code=room_code,
                created_at=_now(),
            )
            self._rooms[room.id] = room
            return room

    def get_room(self, room_id):
        with self._lock:
            try:
                return self._rooms[room_id]
            except KeyError:
                raise NotFoundError(f"room {room_id} not found") from None

    def list_rooms(self, limit, offset):
        _check_page(limit, offset)
        with self._lock:
            ordered = sorted(self._rooms.values(), key=lambda room: room.id)
        return ordered[offset:offset + limit]

    def list_rooms_all(self):
        with self._lock:
            return sorted(self._rooms.values(), key=lambda room: room.id)

    def count_rooms(self):
        with self._lock:
            return len(self._rooms)

    def update_room(self, room_id, **kwargs):
        unknown = set(kwargs) - set(_ROOM_FIELDS)
        if unknown:
            raise TypeError(f"unknown room fields: {', '.join(sorted(unknown))}")
        changes = {key: value for key, value in kwargs.items() if value is not None}
        with self._lock:
            try:
                room = self._rooms[room_id]
            except KeyError:
                raise NotFoundError(f"room {room_id} not found") from None
            updated = replace(room, **changes)
            self._rooms[room_id] = updated
            return updated

    def delete_room(self, room_id):
        with self._lock:
            self._rooms.pop(room_id, None)

    # electricity records

    def create_electricity_record(self, room_id, balance, recorded_at=None):
        with self._lock:
            if room_id not in self._rooms:
                raise StoreError(f"room {room_id} does not exist")
            record = ElectricityRecord(
                id=next(self._record_ids),
                room_id=room_id,
                balance=balance,
                recorded_at=recorded_at if recorded_at is not None else _now(),
            )
            self._records[record.id] = record
            return record

    def _room_records(self, room_id):
        return sorted(
            (r for r in self._records.values() if r.room_id == room_id),
            key=lambda r: (r.recorded_at, r.id),
        )

    def get_latest_balance(self, room_id):
        with self._lock:
            records = self._room_records(room_id)
        if not records:
            raise NotFoundError(f"no records for room {room_id}")
        return records[-1]

    def get_records_by_hour_range(self, room_id, start_time, end_time):
        with self._lock:
            records = self._room_records(room_id)
        return [r for r in records if start_time <= r.recorded_at <= end_time]

    def get_recorded_ats_by_range(self, room_id, start_time, end_time):
        return [
            r.recorded_at
            for r in self.get_records_by_hour_range(room_id, start_time, end_time)
        ]

    # notifications

    def create_user_room_notification(self, username, room_id, threshold):
        key = (username, room_id)
        with self._lock:
            if room_id not in self._rooms:
                raise StoreError(f"room {room_id} does not exist")
            if key in self._notifications:
                raise StoreError(
                    f"notification for {username!r} and room {room_id} already exists"
                )
            notification = UserRoomNotification(
                username=username, room_id=room_id, threshold=threshold
            )
            self._notifications[key] = notification
            return notification

    def get_user_room_notification(self, username, room_id):
        with self._lock:
            try:
                return self._notifications[(username, room_id)]
            except KeyError:
                raise NotFoundError(
                    f"notification for {username!r} and room {room_id} not found"
                ) from None

    def list_user_room_notifications_by_user(self, username, limit, offset):
        _check_page(limit, offset)
        with self._lock:
            mine = sorted(
                (n for n in self._notifications.values() if n.username == username),
                key=lambda n: n.room_id,
            )
        return mine[offset:offset + limit]

    def update_user_room_notification(self, username, room_id, threshold=None, is_enabled=None):
        key = (username, room_id)
        with self._lock:
            try:
                current = self._notifications[key]
            except KeyError:
                raise NotFoundError(
                    f"notification for {username!r} and room {room_id} not found"
                ) from None
            updated = replace(
                current,
                threshold=current.threshold if threshold is None else threshold,
                is_enabled=current.is_enabled if is_enabled is None else is_enabled,
            )
            self._notifications[key] = updated
            return updated

    def delete_user_room_notification(self, username, room_id):
        with self._lock:
            self._notifications.pop((username, room_id), None)