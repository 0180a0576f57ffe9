from __future__ import annotations

import time
from dataclasses import dataclass, field
from threading import Lock
from typing import Callable, Optional

from liehard.models import GameStatus


TICK_EVENTS = {
    GameStatus.QUESTIONING: 'timer-update',
    GameStatus.VOTING: 'voting-timer-update',
    GameStatus.REVEAL: 'result-timer-update',
}


@dataclass
class TimerHandle:
    room_id: str
    phase: GameStatus
    round: int
    duration: int
    current_player_id: Optional[str] = None
    deadline: float = 0.0
    cancelled: bool = False
    remaining: int = field(init=False)

    def __post_init__(self):
        self.remaining = self.duration

    @property
    def key(self):
        return (self.room_id, self.phase, self.round)


class RoundTimerCoordinator:
    """Per-room phase countdowns.

    - One live handle per room; arming a phase cancels whatever ran before
    - Ticks once per second through ``on_tick``
    - On expiry calls ``on_expire(room_id, phase, round)``; the callee must
      re-check the room, the handle only says which phase it was armed for
    - With ``autostart`` off (tests) handles are only recorded; ``fire`` runs
      an expiry by hand
    """

    def __init__(self, spawn: Callable, sleep: Callable, on_tick: Callable, on_expire: Callable,
                 logger, heartbeat_sec: int = 0, autostart: bool = True):
        self._spawn = spawn
        self._sleep = sleep
        self._on_tick = on_tick
        self._on_expire = on_expire
        self.logger = logger
        self.heartbeat_sec = heartbeat_sec
        self.autostart = autostart
        self._lock = Lock()
        self._handles: dict[str, TimerHandle] = {}

    def schedule(self, room_id: str, phase: GameStatus, round_no: int, duration: int,
                 current_player_id: Optional[str] = None) -> Optional[TimerHandle]:
        if phase not in TICK_EVENTS:
            self.cancel(room_id)
            return None
        handle = TimerHandle(room_id, phase, int(round_no or 0), max(0, int(duration)), current_player_id)
        with self._lock:
            existing = self._handles.get(room_id)
            if existing is not None and not existing.cancelled and existing.key == handle.key:
                self.logger.info(f"[timer-skip] room={room_id} phase={phase.value} round={handle.round} already scheduled")
                return existing
            if existing is not None:
                existing.cancelled = True
            handle.deadline = time.time() + handle.duration
            self._handles[room_id] = handle

        self.logger.info(
            f"[timer-set] room={room_id} phase={phase.value} round={handle.round} "
            f"duration={handle.duration}s deadline={handle.deadline:.0f}"
        )
        if self.autostart:
            self._spawn(self._worker, handle)
        return handle

    def cancel(self, room_id: str) -> bool:
        with self._lock:
            handle = self._handles.pop(room_id, None)
        if handle is None:
            return False
        handle.cancelled = True
        self.logger.info(f"[timer-cancel] room={room_id} phase={handle.phase.value} round={handle.round}")
        return True

    def active(self, room_id: str) -> Optional[TimerHandle]:
        with self._lock:
            return self._handles.get(room_id)

    def fire(self, room_id: str) -> bool:
        """Expire the room's pending handle right now."""
        with self._lock:
            handle = self._handles.get(room_id)
        if handle is None or handle.cancelled:
            return False
        self._expire(handle)
        return True

    def _release(self, handle: TimerHandle) -> bool:
        with self._lock:
            if self._handles.get(handle.room_id) is not handle:
                return False
            del self._handles[handle.room_id]
            return True

    def _expire(self, handle: TimerHandle) -> None:
        if not self._release(handle):
            self.logger.info(f"[timer-abort] room={handle.room_id} phase={handle.phase.value} handle replaced")
            return
        self.logger.info(f"[timer-fire] room={handle.room_id} phase={handle.phase.value} round={handle.round}")
        self._on_expire(handle.room_id, handle.phase, handle.round)

    def _worker(self, handle: TimerHandle) -> None:
        slept = 0
        while handle.remaining > 0:
            self._sleep(1)
            if handle.cancelled:
                return
            handle.remaining -= 1
            slept += 1
            try:
                self._on_tick(handle)
            except Exception:
                self.logger.exception(f"[timer-tick] room={handle.room_id} tick failed")
            if self.heartbeat_sec and slept % self.heartbeat_sec == 0:
                self.logger.info(
                    f"[timer-heartbeat] room={handle.room_id} phase={handle.phase.value} "
                    f"round={handle.round} remaining={handle.remaining}s"
                )
        if handle.cancelled:
            return
        try:
            self._expire(handle)
        except Exception:
            self.logger.exception(f"[timer-fire] room={handle.room_id} expiry failed")
