"""Room stores.

A store maps room ids to room snapshots. ``get`` always hands out a detached
copy, so a caller only changes shared state by writing it back with ``set``.
``set`` is a compare-and-swap on ``Room.version``: it raises
``StaleStateError`` when somebody else wrote the room since it was read.
"""
from __future__ import annotations

import json
import time
from threading import RLock
from typing import Optional

from sqlalchemy import update

from liehard import db
from liehard.errors import StaleStateError
from liehard.models import Room, RoomSnapshot


class RoomStore:
    def get(self, room_id: str) -> Optional[Room]:
        raise NotImplementedError

    def set(self, room_id: str, room: Room) -> None:
        raise NotImplementedError

    def delete(self, room_id: str) -> None:
        raise NotImplementedError

    def list_all(self) -> list[Room]:
        raise NotImplementedError

    def exists(self, room_id: str) -> bool:
        return self.get(room_id) is not None


class InMemoryRoomStore(RoomStore):
    """Process-local store. Keeps JSON snapshots rather than live objects."""

    def __init__(self):
        self._lock = RLock()
        self._rooms: dict[str, str] = {}
        self._versions: dict[str, int] = {}

    def get(self, room_id):
        with self._lock:
            raw = self._rooms.get(room_id)
        if raw is None:
            return None
        return Room.from_dict(json.loads(raw))

    def set(self, room_id, room):
        with self._lock:
            current = self._versions.get(room_id, 0)
            if current != room.version:
                raise StaleStateError()
            room.version = current + 1
            self._rooms[room_id] = json.dumps(room.to_dict())
            self._versions[room_id] = room.version

    def delete(self, room_id):
        with self._lock:
            self._rooms.pop(room_id, None)
            self._versions.pop(room_id, None)

    def list_all(self):
        with self._lock:
            raws = list(self._rooms.values())
        return [Room.from_dict(json.loads(raw)) for raw in raws]

    def exists(self, room_id):
        with self._lock:
            return room_id in self._rooms


class SqlRoomStore(RoomStore):
    """Store backed by the ``room_snapshot`` table.

    Timer workers call into the store outside of a request, so every
    operation opens its own app context.
    """

    def __init__(self, app):
        self.app = app

    def get(self, room_id):
        with self.app.app_context():
            row = db.session.get(RoomSnapshot, room_id)
            if row is None:
                return None
            room = Room.from_dict(json.loads(row.payload))
            room.version = row.version
            return room

    def set(self, room_id, room):
        with self.app.app_context():
            expected = room.version
            room.version = expected + 1
            payload = json.dumps(room.to_dict())
            try:
                if expected == 0:
                    if db.session.get(RoomSnapshot, room_id) is not None:
                        raise StaleStateError()
                    db.session.add(RoomSnapshot(
                        room_id=room_id,
                        version=room.version,
                        status=room.status.value,
                        payload=payload,
                        updated_at=time.time(),
                    ))
                    db.session.commit()
                    return
                result = db.session.execute(
                    update(RoomSnapshot)
                    .where(RoomSnapshot.room_id == room_id, RoomSnapshot.version == expected)
                    .values(version=room.version, status=room.status.value,
                            payload=payload, updated_at=time.time())
                )
                if result.rowcount != 1:
                    raise StaleStateError()
                db.session.commit()
            except Exception:
                db.session.rollback()
                room.version = expected
                raise

    def delete(self, room_id):
        with self.app.app_context():
            RoomSnapshot.query.filter_by(room_id=room_id).delete()
            db.session.commit()

    def list_all(self):
        with self.app.app_context():
            rows = RoomSnapshot.query.order_by(RoomSnapshot.updated_at).all()
            rooms = []
            for row in rows:
                room = Room.from_dict(json.loads(row.payload))
                room.version = row.version
                rooms.append(room)
            return rooms

    def exists(self, room_id):
        with self.app.app_context():
            return db.session.get(RoomSnapshot, room_id) is not None


def create_room_store(app) -> RoomStore:
    kind = (app.config.get('ROOM_STORE') or 'memory').lower()
    if kind == 'sql':
        return SqlRoomStore(app)
    if kind != 'memory':
        app.logger.warning(f"[store] unknown ROOM_STORE={kind!r}, falling back to memory")
    return InMemoryRoomStore()
