"""Room lifecycle: creating rooms, admitting and removing players, settings."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from liehard.errors import RoomFullError, ValidationError
from liehard.models import (
    GameSettings,
    GameStatus,
    Player,
    Room,
    ROUND_STATUSES,
    SETTINGS_FIELDS,
)

# wire name -> (min, max)
SETTING_BOUNDS = {
    'roundTime': (60, 1200),
    'questionTime': (10, 600),
    'storySubmissionTime': (30, 1200),
    'resultTime': (3, 120),
    'maxPlayers': (2, 8),
}
BOOLEAN_SETTINGS = ('allowVoiceChat', 'allowTextChat', 'autoStart')


@dataclass
class Departure:
    player: Player
    index: int
    was_host: bool
    was_hot_seat: bool
    remaining: int

    @property
    def room_empty(self) -> bool:
        return self.remaining == 0


def new_room(room_id: str, host_id: str, host_name: str,
             settings: Optional[GameSettings] = None) -> Room:
    host = Player(id=host_id, name=host_name)
    return Room(
        id=room_id,
        host_id=host_id,
        players=[host],
        game_settings=settings or GameSettings(),
    )


def add_player(room: Room, player_id: str, player_name: str) -> Player:
    """Admit a player at the end of the join order.

    Besides the full-room check this also refuses joins while a round is
    running (QUESTIONING, VOTING, REVEAL): a late joiner has no stories and
    would be scored as a voter against a truth they never saw. Joins are
    fine while WAITING, during story submission and after GAME_OVER.
    """
    if room.get_player(player_id) is not None:
        raise ValidationError('You are already in this room')
    if room.is_full:
        raise RoomFullError()
    if room.status in ROUND_STATUSES:
        raise ValidationError('Cannot join while a round is in progress; wait for the game to end')

    player = Player(id=player_id, name=player_name)
    room.players.append(player)
    return player


def should_auto_start(room: Room) -> bool:
    return (
        room.game_settings.auto_start
        and room.status == GameStatus.WAITING
        and room.is_full
    )


def remove_player(room: Room, player_id: str) -> Optional[Departure]:
    """Drop a player from the room.

    Returns None when the player was not a member. Host succession goes to
    the earliest joined remaining player. The hot seat is left pointing at
    the departed player; the state machine decides how the round moves on.
    """
    index = room.index_of(player_id)
    if index < 0:
        return None

    player = room.players.pop(index)
    room.votes.pop(player_id, None)
    departure = Departure(
        player=player,
        index=index,
        was_host=room.host_id == player_id,
        was_hot_seat=room.current_player_id == player_id,
        remaining=len(room.players),
    )
    if departure.was_host and room.players:
        room.host_id = room.players[0].id
    return departure


def validate_settings(room: Room, partial: Any) -> dict[str, Any]:
    if not isinstance(partial, dict) or not partial:
        raise ValidationError('Settings must be a non-empty object')

    clean = {}
    for key, value in partial.items():
        if key not in SETTINGS_FIELDS:
            raise ValidationError(f'Unknown setting: {key}')
        if key in BOOLEAN_SETTINGS:
            if not isinstance(value, bool):
                raise ValidationError(f'{key} must be true or false')
        else:
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError(f'{key} must be a whole number')
            low, high = SETTING_BOUNDS[key]
            if value < low or value > high:
                raise ValidationError(f'{key} must be between {low} and {high}')
        clean[key] = value

    max_players = clean.get('maxPlayers')
    if max_players is not None and max_players < len(room.players):
        raise ValidationError(
            f'maxPlayers cannot be lower than the current player count ({len(room.players)})'
        )
    return clean


def update_game_settings(room: Room, partial: Any) -> GameSettings:
    clean = validate_settings(room, partial)
    for key, value in clean.items():
        setattr(room.game_settings, SETTINGS_FIELDS[key], value)
    return room.game_settings
