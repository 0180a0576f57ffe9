from __future__ import annotations

import time
import uuid
from typing import Any, Callable, Optional

from liehard.errors import (
    RoomExistsError,
    RoomNotFoundError,
    StaleStateError,
    ValidationError,
)
from liehard.models import (
    GameSettings,
    GameStatus,
    Room,
    generate_room_code,
    normalize_room_id,
    room_public_state,
)
from . import lifecycle, state_machine
from .locks import RoomLocks
from .scheduler import TICK_EVENTS, RoundTimerCoordinator

MAX_NAME_LENGTH = 24
MAX_CHAT_LENGTH = 500


def clean_player_name(name: Any) -> str:
    n = str(name or '').strip()
    if not n:
        raise ValidationError('Name is required')
    if len(n) > MAX_NAME_LENGTH:
        raise ValidationError(f'Name must be at most {MAX_NAME_LENGTH} characters')
    if '<' in n or '>' in n or any(ord(ch) < 32 for ch in n):
        raise ValidationError('Name contains invalid characters')
    return n


class _Effects:
    """Side effects collected during a mutation, applied once the write succeeded."""

    def __init__(self, room_id: str):
        self.room_id = room_id
        self.events: list[tuple] = []
        self.write = True
        self.deleted = False
        self.timer: Optional[str] = None  # 'arm' | 'cancel'
        self.closed = False

    def broadcast(self, event: str, payload: Any) -> None:
        self.events.append((None, event, payload))

    def send(self, player_id: str, event: str, payload: Any) -> None:
        self.events.append((player_id, event, payload))

    def arm_timer(self) -> None:
        self.timer = 'arm'

    def cancel_timer(self) -> None:
        self.timer = 'cancel'

    def skip_write(self) -> None:
        self.write = False

    def delete_room(self) -> None:
        self.deleted = True
        self.closed = True
        self.timer = 'cancel'


class GameService:
    """Coordinates rooms: every mutation is a locked read-modify-write against
    the room store, followed by broadcasts and timer changes."""

    def __init__(self, store, broadcaster, logger, config=None,
                 spawn: Optional[Callable] = None, sleep: Callable = time.sleep,
                 timers_enabled: bool = True):
        self.store = store
        self.broadcaster = broadcaster
        self.logger = logger
        self.config = dict(config or {})
        self.locks = RoomLocks()
        self.min_players = int(self.config.get('MIN_PLAYERS', state_machine.MIN_PLAYERS))
        self.chat_history_limit = int(self.config.get('CHAT_HISTORY_LIMIT', 200))
        self.timers = RoundTimerCoordinator(
            spawn=spawn,
            sleep=sleep,
            on_tick=self._on_timer_tick,
            on_expire=self.expire_phase,
            logger=logger,
            heartbeat_sec=int(self.config.get('TIMER_HEARTBEAT_SEC', 0)),
            autostart=timers_enabled and spawn is not None,
        )

    # ---- plumbing ----

    def _mutate(self, room_id: str, apply: Callable[[Room, _Effects], Any]):
        room_id = normalize_room_id(room_id)
        with self.locks.hold(room_id):
            retried = False
            while True:
                room = self.store.get(room_id)
                if room is None:
                    raise RoomNotFoundError()
                fx = _Effects(room_id)
                result = apply(room, fx)
                try:
                    if fx.deleted:
                        self.store.delete(room_id)
                    elif fx.write:
                        self.store.set(room_id, room)
                except StaleStateError:
                    if retried:
                        raise
                    retried = True
                    self.logger.warning(f"[stale-retry] room={room_id} version={room.version}")
                    continue
                self._apply_effects(room, fx)
                return result

    def _apply_effects(self, room: Room, fx: _Effects) -> None:
        for target, event, payload in fx.events:
            if target is None:
                self.broadcaster.broadcast(fx.room_id, event, payload)
            else:
                self.broadcaster.send(target, event, payload)
        if fx.timer == 'cancel':
            self.timers.cancel(fx.room_id)
        elif fx.timer == 'arm':
            self._arm_phase_timer(room)
        if fx.closed:
            self.broadcaster.close_room(fx.room_id)

    def _arm_phase_timer(self, room: Room) -> None:
        settings = room.game_settings
        durations = {
            GameStatus.QUESTIONING: settings.round_time,
            GameStatus.VOTING: settings.question_time,
            GameStatus.REVEAL: settings.result_time,
        }
        if room.status not in durations:
            self.timers.cancel(room.id)
            return
        self.timers.schedule(
            room.id, room.status, room.current_round, durations[room.status], room.current_player_id
        )

    def _on_timer_tick(self, handle) -> None:
        self.broadcaster.broadcast(handle.room_id, TICK_EVENTS[handle.phase], {
            'roomId': handle.room_id,
            'secondsLeft': handle.remaining,
            'currentPlayerId': handle.current_player_id,
        })

    @staticmethod
    def _state(room: Room, viewer_id: Optional[str] = None) -> dict:
        return room_public_state(room, viewer_id)

    # ---- lifecycle ----

    def create_room(self, host_id: str, host_name: Any, room_id: Optional[str] = None) -> Room:
        name = clean_player_name(host_name)
        if room_id is None:
            length = int(self.config.get('ROOM_CODE_LENGTH', 6))
            room_id = generate_room_code(length, exists=self.store.exists)
        room_id = normalize_room_id(room_id)
        if not room_id:
            raise ValidationError('Room id is required')

        with self.locks.hold(room_id):
            if self.store.exists(room_id):
                raise RoomExistsError()
            room = lifecycle.new_room(room_id, host_id, name, GameSettings.from_config(self.config))
            self.store.set(room_id, room)
            self.logger.info(f"[room-create] room={room_id} host={host_id}")
            self.broadcaster.send(host_id, 'room-joined', self._state(room, host_id))
        return room

    def join_room(self, room_id: str, player_id: str, player_name: Any) -> Room:
        name = clean_player_name(player_name)

        def apply(room, fx):
            player = lifecycle.add_player(room, player_id, name)
            fx.send(player_id, 'room-joined', self._state(room, player_id))
            state = self._state(room)
            fx.broadcast('player-joined', {
                'roomId': room.id,
                'player': {'id': player.id, 'name': player.name},
                'players': state['players'],
            })
            self._maybe_auto_start(room, fx)
            return room

        room = self._mutate(room_id, apply)
        self.logger.info(f"[room-join] room={room.id} player={player_id} players={len(room.players)}")
        return room

    def _maybe_auto_start(self, room: Room, fx: _Effects) -> None:
        if state_machine.auto_start(room, self.min_players):
            self.logger.info(f"[game-start] room={room.id} auto start, room is full")
            fx.broadcast('story-submission-started', {'room': self._state(room)})

    def get_room_state(self, room_id: str, viewer_id: Optional[str] = None) -> dict:
        room = self.store.get(normalize_room_id(room_id))
        if room is None:
            raise RoomNotFoundError()
        return self._state(room, viewer_id)

    def list_rooms(self) -> list[Room]:
        return self.store.list_all()

    def list_open_rooms(self) -> list[dict]:
        return [
            self._state(room) for room in self.store.list_all()
            if room.status == GameStatus.WAITING and not room.is_full
        ]

    def update_settings(self, room_id: str, actor_id: str, settings: Any) -> Room:
        def apply(room, fx):
            state_machine.require_host(room, actor_id, 'update game settings')
            lifecycle.update_game_settings(room, settings)
            fx.broadcast('settings-updated', {'room': self._state(room)})
            self._maybe_auto_start(room, fx)
            return room

        return self._mutate(room_id, apply)

    def leave_room(self, room_id: str, player_id: str) -> Optional[Room]:
        """Remove a player. Returns None if the room was deleted."""

        def apply(room, fx):
            departure = lifecycle.remove_player(room, player_id)
            if departure is None:
                raise ValidationError('Player not found in room')
            if departure.room_empty:
                fx.delete_room()
                fx.broadcast('room-closed', {'roomId': room.id, 'message': 'Room has been closed.'})
                return None

            transition = state_machine.handle_departure(room, departure, self.min_players)
            state = self._state(room)
            fx.broadcast('player-left', {
                'roomId': room.id,
                'playerId': departure.player.id,
                'playerName': departure.player.name,
                'hostId': room.host_id,
                'players': state['players'],
                'room': state,
            })
            if transition == 'game-over':
                fx.broadcast('game-over', {'room': state})
                fx.cancel_timer()
            elif transition == 'next-round':
                fx.broadcast('next-round', {'room': state})
                fx.arm_timer()
            elif transition == 'game-started':
                fx.broadcast('game-started', {'room': state})
                fx.arm_timer()
            elif transition == 'reveal':
                fx.broadcast('reveal-results', {'room': state, 'result': room.round_history[-1]})
                fx.arm_timer()
            return room

        room = self._mutate(room_id, apply)
        if room is None:
            self.logger.info(f"[room-delete] room={normalize_room_id(room_id)} last player left")
        else:
            self.logger.info(f"[room-leave] room={room.id} player={player_id} host={room.host_id}")
        return room

    def disconnect(self, player_id: str) -> list[str]:
        """Remove a dropped connection from every room it was in."""
        left = []
        for room in self.store.list_all():
            if room.get_player(player_id) is None:
                continue
            try:
                self.leave_room(room.id, player_id)
            except (RoomNotFoundError, ValidationError):
                # Already gone by the time we got the lock
                continue
            left.append(room.id)
        return left

    # ---- game flow ----

    def start_game(self, room_id: str, actor_id: str) -> Room:
        def apply(room, fx):
            state_machine.start_game(room, actor_id, self.min_players)
            fx.broadcast('story-submission-started', {'room': self._state(room)})
            return room

        room = self._mutate(room_id, apply)
        self.logger.info(f"[game-start] room={room.id} players={len(room.players)}")
        return room

    def submit_stories(self, room_id: str, player_id: str, stories: Any, is_truth: Any) -> Room:
        def apply(room, fx):
            started = state_machine.submit_stories(room, player_id, stories, is_truth, self.min_players)
            state = self._state(room)
            fx.broadcast('stories-submitted', {'playerId': player_id, 'room': state})
            if started:
                self.logger.info(f"[phase] room={room.id} STORY_SUBMISSION -> QUESTIONING hot_seat={room.current_player_id}")
                fx.broadcast('game-started', {'room': state})
                fx.arm_timer()
            return room

        return self._mutate(room_id, apply)

    def submit_vote(self, room_id: str, voter_id: str, guessed_index: Any) -> Room:
        def apply(room, fx):
            everyone = state_machine.submit_vote(room, voter_id, guessed_index)
            fx.broadcast('vote-submitted', {'playerId': voter_id, 'room': self._state(room)})
            if everyone:
                self._reveal(room, fx)
            return room

        return self._mutate(room_id, apply)

    def _reveal(self, room: Room, fx: _Effects) -> None:
        summary = state_machine.begin_reveal(room)
        if summary is None:
            return
        self.logger.info(
            f"[score] room={room.id} round={room.current_round} hot_seat={summary.get('playerId')} "
            f"correct={len(summary.get('correctVoters', []))} fooled={summary.get('fooledCount')}"
        )
        fx.broadcast('reveal-results', {'room': self._state(room), 'result': summary})
        fx.arm_timer()

    def _advance(self, room: Room, fx: _Effects) -> None:
        if state_machine.advance_round(room):
            self.logger.info(f"[phase] room={room.id} REVEAL -> QUESTIONING round={room.current_round}")
            fx.broadcast('next-round', {'room': self._state(room)})
            fx.arm_timer()
        else:
            self.logger.info(f"[phase] room={room.id} REVEAL -> GAME_OVER")
            fx.broadcast('game-over', {'room': self._state(room)})
            fx.cancel_timer()

    def expire_phase(self, room_id: str, phase: GameStatus, round_no: int) -> None:
        """Timer callback: force the phase forward if the room is still in it."""

        def apply(room, fx):
            if room.status != phase or room.current_round != round_no:
                self.logger.info(
                    f"[timer-abort] room={room.id} expected={phase.value}/{round_no} "
                    f"actual={room.status.value}/{room.current_round}"
                )
                fx.skip_write()
                return
            if phase == GameStatus.QUESTIONING:
                state_machine.begin_voting(room)
                self.logger.info(f"[phase] room={room.id} QUESTIONING -> VOTING")
                fx.broadcast('voting-started', {'room': self._state(room)})
                fx.arm_timer()
            elif phase == GameStatus.VOTING:
                self._reveal(room, fx)
            elif phase == GameStatus.REVEAL:
                self._advance(room, fx)
            else:
                fx.skip_write()

        try:
            self._mutate(room_id, apply)
        except RoomNotFoundError:
            self.logger.info(f"[timer-abort] room={room_id} no longer exists")

    def reset_game(self, room_id: str, actor_id: str) -> Room:
        def apply(room, fx):
            state_machine.reset_room(room, actor_id)
            fx.broadcast('game-reset', {'room': self._state(room)})
            fx.cancel_timer()
            return room

        room = self._mutate(room_id, apply)
        self.logger.info(f"[game-reset] room={room.id}")
        return room

    # ---- chat and voice ----

    def post_chat(self, room_id: str, player_id: str, text: Any) -> dict:
        def apply(room, fx):
            player = state_machine.require_member(room, player_id)
            if not room.game_settings.allow_text_chat:
                raise ValidationError('Text chat is disabled in this room')
            message = text.strip() if isinstance(text, str) else ''
            if not message:
                raise ValidationError('Message cannot be empty')
            if len(message) > MAX_CHAT_LENGTH:
                raise ValidationError(f'Message must be at most {MAX_CHAT_LENGTH} characters')
            entry = {
                'id': uuid.uuid4().hex[:8],
                'player': {'id': player.id, 'name': player.name},
                'message': message,
                'timestamp': int(time.time() * 1000),
            }
            room.chat_history.append(entry)
            if len(room.chat_history) > self.chat_history_limit:
                room.chat_history = room.chat_history[-self.chat_history_limit:]
            fx.broadcast('chat-message', entry)
            return entry

        return self._mutate(room_id, apply)

    def relay_voice_signal(self, room_id: str, sender_id: str, target_id: Any, payload: Any) -> None:
        room = self.store.get(normalize_room_id(room_id))
        if room is None:
            raise RoomNotFoundError()
        state_machine.require_member(room, sender_id)
        if not room.game_settings.allow_voice_chat:
            raise ValidationError('Voice chat is disabled in this room')
        if target_id == sender_id or room.get_player(target_id) is None:
            raise ValidationError('Target player is not in this room')
        self.broadcaster.send(target_id, 'voice-signal', {
            'roomId': room.id,
            'fromId': sender_id,
            'payload': payload,
        })

    # ---- maintenance ----

    def purge(self) -> int:
        count = 0
        for room in self.store.list_all():
            with self.locks.hold(room.id):
                self.store.delete(room.id)
            self.timers.cancel(room.id)
            self.broadcaster.broadcast(room.id, 'room-closed', {'roomId': room.id, 'message': 'Room has been closed.'})
            self.broadcaster.close_room(room.id)
            count += 1
        return count
