"""Round based state machine.

WAITING -> STORY_SUBMISSION -> QUESTIONING -> VOTING -> REVEAL -> QUESTIONING
... -> GAME_OVER -> (reset) -> WAITING

The functions here only mutate the given room. Loading and storing rooms,
broadcasting and timers belong to the game service.
"""
from __future__ import annotations

from typing import Any, Optional

from liehard.errors import UnauthorizedError, ValidationError
from liehard.models import GameStatus, Room, STORIES_PER_PLAYER, IN_GAME_STATUSES
from .lifecycle import Departure, should_auto_start
from .scoring import calculate_scores

MIN_PLAYERS = 2
MAX_STORY_LENGTH = 500


def require_host(room: Room, actor_id: str, action: str = 'do that') -> None:
    if room.host_id != actor_id:
        raise UnauthorizedError(f'Only the host can {action}')


def require_member(room: Room, player_id: str):
    player = room.get_player(player_id)
    if player is None:
        raise ValidationError('Player not found in room')
    return player


def _validate_index(value: Any, label: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value < STORIES_PER_PLAYER:
        raise ValidationError(f'{label} must be 0, 1 or 2')
    return value


def start_game(room: Room, actor_id: str, min_players: int = MIN_PLAYERS) -> None:
    require_host(room, actor_id, 'start the game')
    if room.status != GameStatus.WAITING:
        raise ValidationError('The game has already started')
    if len(room.players) < min_players:
        raise ValidationError(f'Need at least {min_players} players to start')
    room.status = GameStatus.STORY_SUBMISSION


def auto_start(room: Room, min_players: int = MIN_PLAYERS) -> bool:
    """WAITING -> STORY_SUBMISSION without a host action, once a room with
    autoStart on is full. Returns True if the game started."""
    if not should_auto_start(room) or len(room.players) < min_players:
        return False
    room.status = GameStatus.STORY_SUBMISSION
    return True


def all_submitted(room: Room) -> bool:
    return all(p.has_submitted for p in room.players)


def all_voted(room: Room) -> bool:
    return all(p.id in room.votes for p in room.voters)


def begin_questioning_if_ready(room: Room, min_players: int = MIN_PLAYERS) -> bool:
    """STORY_SUBMISSION -> QUESTIONING once every player has submitted."""
    if room.status != GameStatus.STORY_SUBMISSION:
        return False
    if len(room.players) < min_players or not all_submitted(room):
        return False
    room.status = GameStatus.QUESTIONING
    room.current_round = 1
    room.current_player_id = room.players[0].id
    room.votes.clear()
    return True


def submit_stories(room: Room, player_id: str, stories: Any, is_truth: Any,
                   min_players: int = MIN_PLAYERS) -> bool:
    """Record a player's three stories. Returns True if questioning began."""
    if room.status != GameStatus.STORY_SUBMISSION:
        raise ValidationError('Stories can only be submitted during story submission')
    player = require_member(room, player_id)

    if not isinstance(stories, (list, tuple)) or len(stories) != STORIES_PER_PLAYER:
        raise ValidationError(f'Exactly {STORIES_PER_PLAYER} stories are required')
    cleaned = []
    for story in stories:
        if not isinstance(story, str) or not story.strip():
            raise ValidationError('Stories must be non-empty text')
        if len(story) > MAX_STORY_LENGTH:
            raise ValidationError(f'Stories must be at most {MAX_STORY_LENGTH} characters')
        cleaned.append(story.strip())
    truth = _validate_index(is_truth, 'isTruth')

    player.stories = cleaned
    player.is_truth = truth
    player.has_submitted = True
    return begin_questioning_if_ready(room, min_players)


def begin_voting(room: Room) -> bool:
    if room.status != GameStatus.QUESTIONING:
        return False
    room.status = GameStatus.VOTING
    room.votes.clear()
    return True


def submit_vote(room: Room, voter_id: str, guessed_index: Any) -> bool:
    """Record a guess. Returns True once every voter has voted."""
    if room.status != GameStatus.VOTING:
        raise ValidationError('Voting is not open')
    require_member(room, voter_id)
    if voter_id == room.current_player_id:
        raise ValidationError('You cannot vote on your own stories')
    room.votes[voter_id] = _validate_index(guessed_index, 'guessedIndex')
    return all_voted(room)


def begin_reveal(room: Room) -> Optional[dict]:
    """VOTING -> REVEAL. Scores the round; returns the round summary."""
    if room.status != GameStatus.VOTING:
        return None
    room.status = GameStatus.REVEAL
    return calculate_scores(room)


def _finish(room: Room) -> None:
    room.status = GameStatus.GAME_OVER
    room.current_player_id = None
    room.votes.clear()


def advance_round(room: Room) -> bool:
    """REVEAL -> QUESTIONING for the next player, or GAME_OVER after the last.

    Returns True if another round starts.
    """
    if room.status != GameStatus.REVEAL:
        return False
    room.votes.clear()
    current_index = room.index_of(room.current_player_id)
    next_index = (current_index + 1) % len(room.players)
    if next_index == 0:
        _finish(room)
        return False
    room.current_player_id = room.players[next_index].id
    room.current_round += 1
    room.status = GameStatus.QUESTIONING
    return True


def handle_departure(room: Room, departure: Departure, min_players: int = MIN_PLAYERS) -> Optional[str]:
    """Repair the game after a player left a non-empty room.

    Returns the name of the transition that happened, if any: 'game-over',
    'next-round', 'game-started' or 'reveal'.
    """
    if room.status not in IN_GAME_STATUSES:
        return None

    if len(room.players) < min_players:
        _finish(room)
        return 'game-over'

    if room.status == GameStatus.STORY_SUBMISSION:
        return 'game-started' if begin_questioning_if_ready(room, min_players) else None

    if departure.was_hot_seat:
        # Treated as an empty reveal: nobody scores, the next player takes the seat.
        room.votes.clear()
        if departure.index >= len(room.players):
            _finish(room)
            return 'game-over'
        room.current_player_id = room.players[departure.index].id
        room.current_round += 1
        room.status = GameStatus.QUESTIONING
        return 'next-round'

    if room.status == GameStatus.VOTING and all_voted(room):
        begin_reveal(room)
        return 'reveal'
    return None


def reset_room(room: Room, actor_id: str) -> None:
    require_host(room, actor_id, 'reset the game')
    room.status = GameStatus.WAITING
    room.current_round = 0
    room.current_player_id = None
    room.votes.clear()
    for player in room.players:
        player.clear_submission()
