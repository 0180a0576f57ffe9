from contextlib import contextmanager
from threading import Lock, RLock


class RoomLocks:
    """Per-room mutual exclusion for read-modify-write sequences.

    Locks are created on first use and dropped once nobody holds or waits on
    them, so deleted rooms do not leak entries.
    """

    def __init__(self):
        self._guard = Lock()
        self._locks = {}  # room_id -> [RLock, users]

    @contextmanager
    def hold(self, room_id: str):
        with self._guard:
            entry = self._locks.get(room_id)
            if entry is None:
                entry = self._locks[room_id] = [RLock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0 and self._locks.get(room_id) is entry:
                    del self._locks[room_id]

    def __len__(self):
        with self._guard:
            return len(self._locks)
