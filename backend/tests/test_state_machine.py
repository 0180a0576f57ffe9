import pytest

from liehard.errors import RoomFullError, UnauthorizedError, ValidationError
from liehard.models import GameSettings, GameStatus
from liehard.services.games import lifecycle, state_machine as sm

STORIES = ['I met a famous chef', 'I once swam with sharks', 'I own three cats']


def _room(names=('a', 'b', 'c'), max_players=5):
    room = lifecycle.new_room('R1', names[0], names[0].upper(), GameSettings(max_players=max_players))
    for pid in names[1:]:
        lifecycle.add_player(room, pid, pid.upper())
    return room


def _in_questioning(room, truths=None):
    sm.start_game(room, room.host_id)
    truths = truths or {}
    for p in list(room.players):
        sm.submit_stories(room, p.id, STORIES, truths.get(p.id, 0))
    assert room.status == GameStatus.QUESTIONING
    return room


# ---- lifecycle ----

def test_new_room_defaults():
    room = lifecycle.new_room('R1', 'a', 'Alice')
    assert room.status == GameStatus.WAITING
    assert room.host_id == 'a'
    assert [p.name for p in room.players] == ['Alice']
    assert room.current_round == 0
    assert room.current_player_id is None


def test_add_player_rejects_when_full():
    room = _room(('a', 'b'), max_players=2)
    with pytest.raises(RoomFullError):
        lifecycle.add_player(room, 'c', 'C')
    assert len(room.players) == 2


def test_add_player_rejects_duplicate_and_mid_round_join():
    room = _room()
    with pytest.raises(ValidationError):
        lifecycle.add_player(room, 'b', 'B again')
    _in_questioning(room)
    with pytest.raises(ValidationError):
        lifecycle.add_player(room, 'd', 'D')


def test_join_allowed_outside_running_rounds():
    room = _room()
    sm.start_game(room, 'a')
    lifecycle.add_player(room, 'd', 'D')
    assert room.get_player('d').has_submitted is False

    room.status = GameStatus.REVEAL
    with pytest.raises(ValidationError, match='round is in progress'):
        lifecycle.add_player(room, 'e', 'E')

    room.status = GameStatus.GAME_OVER
    lifecycle.add_player(room, 'e', 'E')
    assert [p.id for p in room.players] == ['a', 'b', 'c', 'd', 'e']


def test_remove_host_reassigns_to_earliest_joined():
    room = _room(('a', 'b', 'c', 'd'))
    departure = lifecycle.remove_player(room, 'a')
    assert departure.was_host
    assert room.host_id == 'b'
    lifecycle.remove_player(room, 'c')
    assert room.host_id == 'b'


def test_remove_last_player_reports_empty_room():
    room = _room(('a',))
    departure = lifecycle.remove_player(room, 'a')
    assert departure.room_empty
    assert room.players == []


def test_remove_unknown_player():
    room = _room()
    assert lifecycle.remove_player(room, 'zed') is None


def test_settings_merge_and_validation():
    room = _room()
    lifecycle.update_game_settings(room, {'roundTime': 120, 'allowTextChat': False})
    assert room.game_settings.round_time == 120
    assert room.game_settings.allow_text_chat is False
    # untouched keys keep their values
    assert room.game_settings.question_time == 30

    for bad in ({'roundTime': 59}, {'roundTime': 1201}, {'maxPlayers': 1}, {'maxPlayers': 9},
                {'maxPlayers': 2}, {'autoStart': 'yes'}, {'colour': 'red'}, {'roundTime': '90'}, {}):
        with pytest.raises(ValidationError):
            lifecycle.update_game_settings(room, bad)
    # rejected values never clamp
    assert room.game_settings.round_time == 120
    assert room.game_settings.max_players == 5


# ---- game flow ----

def test_start_requires_host_and_two_players():
    room = _room(('a',))
    with pytest.raises(ValidationError):
        sm.start_game(room, 'a')
    lifecycle.add_player(room, 'b', 'B')
    with pytest.raises(UnauthorizedError):
        sm.start_game(room, 'b')
    sm.start_game(room, 'a')
    assert room.status == GameStatus.STORY_SUBMISSION


def test_auto_start_only_when_full_and_enabled():
    room = _room(('a', 'b'), max_players=3)
    assert sm.auto_start(room) is False
    room.game_settings.auto_start = True
    assert sm.auto_start(room) is False
    lifecycle.add_player(room, 'c', 'C')
    assert sm.auto_start(room, min_players=4) is False
    assert room.status == GameStatus.WAITING
    assert sm.auto_start(room) is True
    assert room.status == GameStatus.STORY_SUBMISSION
    # already running
    assert sm.auto_start(room) is False


def test_questioning_only_after_everyone_submits_in_any_order():
    room = _room()
    sm.start_game(room, 'a')
    assert sm.submit_stories(room, 'c', STORIES, 2) is False
    assert sm.submit_stories(room, 'b', STORIES, 0) is False
    assert room.status == GameStatus.STORY_SUBMISSION
    assert sm.submit_stories(room, 'a', STORIES, 1) is True
    assert room.status == GameStatus.QUESTIONING
    assert room.current_round == 1
    assert room.current_player_id == 'a'


@pytest.mark.parametrize('stories, truth', [
    (STORIES[:2], 0),
    (STORIES + ['extra'], 0),
    (['a', '', 'c'], 0),
    ('not a list', 0),
    (STORIES, 3),
    (STORIES, -1),
    (STORIES, None),
    (STORIES, True),
])
def test_submit_stories_validation(stories, truth):
    room = _room()
    sm.start_game(room, 'a')
    with pytest.raises(ValidationError):
        sm.submit_stories(room, 'b', stories, truth)
    assert not room.get_player('b').has_submitted


def test_submit_stories_outside_submission_phase():
    room = _room()
    with pytest.raises(ValidationError):
        sm.submit_stories(room, 'a', STORIES, 0)


def test_self_vote_is_never_recorded():
    room = _in_questioning(_room())
    sm.begin_voting(room)
    with pytest.raises(ValidationError):
        sm.submit_vote(room, 'a', 1)
    assert 'a' not in room.votes


def test_vote_rejects_bad_index_and_closed_phase():
    room = _in_questioning(_room())
    with pytest.raises(ValidationError):
        sm.submit_vote(room, 'b', 1)
    sm.begin_voting(room)
    with pytest.raises(ValidationError):
        sm.submit_vote(room, 'b', 5)
    assert room.votes == {}


def test_all_voted_ignores_hot_seat():
    room = _in_questioning(_room())
    sm.begin_voting(room)
    assert sm.submit_vote(room, 'b', 1) is False
    assert sm.submit_vote(room, 'c', 0) is True


def test_reveal_scores_once():
    room = _in_questioning(_room(), truths={'a': 1})
    sm.begin_voting(room)
    sm.submit_vote(room, 'b', 1)
    sm.submit_vote(room, 'c', 0)
    assert sm.begin_reveal(room) is not None
    assert room.status == GameStatus.REVEAL
    # a second reveal attempt is a no-op
    assert sm.begin_reveal(room) is None
    assert [p.score for p in room.players] == [1, 1, 0]


def test_round_advance_and_wrap_to_game_over():
    room = _in_questioning(_room())
    for expected_next in ('b', 'c'):
        sm.begin_voting(room)
        sm.begin_reveal(room)
        assert sm.advance_round(room) is True
        assert room.current_player_id == expected_next
        assert room.status == GameStatus.QUESTIONING
        assert room.votes == {}
    assert room.current_round == 3
    sm.begin_voting(room)
    sm.begin_reveal(room)
    assert sm.advance_round(room) is False
    assert room.status == GameStatus.GAME_OVER
    assert room.current_player_id is None


def test_reset_preserves_scores():
    room = _in_questioning(_room())
    sm.begin_voting(room)
    sm.submit_vote(room, 'b', 0)
    sm.begin_reveal(room)
    before = {p.id: p.score for p in room.players}
    with pytest.raises(UnauthorizedError):
        sm.reset_room(room, 'b')
    sm.reset_room(room, 'a')
    assert {p.id: p.score for p in room.players} == before
    assert room.status == GameStatus.WAITING
    assert room.current_round == 0
    assert room.current_player_id is None
    assert room.votes == {}
    for p in room.players:
        assert p.stories == []
        assert p.is_truth is None
        assert p.has_submitted is False


# ---- departures ----

def test_hot_seat_departure_moves_to_next_player():
    room = _in_questioning(_room(('a', 'b', 'c', 'd')))
    sm.begin_voting(room)
    sm.begin_reveal(room)
    sm.advance_round(room)  # hot seat b, round 2
    departure = lifecycle.remove_player(room, 'b')
    assert sm.handle_departure(room, departure) == 'next-round'
    assert room.current_player_id == 'c'
    assert room.current_round == 3
    assert room.status == GameStatus.QUESTIONING


def test_last_hot_seat_departure_ends_game():
    room = _in_questioning(_room(('a', 'b', 'c')))
    room.current_player_id = 'c'
    departure = lifecycle.remove_player(room, 'c')
    assert sm.handle_departure(room, departure) == 'game-over'
    assert room.status == GameStatus.GAME_OVER
    assert room.current_player_id is None


def test_departure_below_minimum_ends_game():
    room = _in_questioning(_room(('a', 'b')))
    departure = lifecycle.remove_player(room, 'a')
    assert sm.handle_departure(room, departure) == 'game-over'
    assert room.current_player_id is None
    assert room.host_id == 'b'


def test_departure_can_complete_submission():
    room = _room()
    sm.start_game(room, 'a')
    sm.submit_stories(room, 'a', STORIES, 0)
    sm.submit_stories(room, 'b', STORIES, 0)
    departure = lifecycle.remove_player(room, 'c')
    assert sm.handle_departure(room, departure) == 'game-started'
    assert room.status == GameStatus.QUESTIONING


def test_departure_can_complete_voting():
    room = _in_questioning(_room(('a', 'b', 'c')))
    sm.begin_voting(room)
    sm.submit_vote(room, 'b', 0)
    departure = lifecycle.remove_player(room, 'c')
    assert sm.handle_departure(room, departure) == 'reveal'
    assert room.status == GameStatus.REVEAL
    assert len(room.round_history) == 1


def test_departure_while_waiting_changes_nothing():
    room = _room()
    departure = lifecycle.remove_player(room, 'b')
    assert sm.handle_departure(room, departure) is None
    assert room.status == GameStatus.WAITING
