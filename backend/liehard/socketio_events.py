from functools import wraps
from typing import Any, Dict

from flask import current_app, request
from flask_socketio import ConnectionRefusedError, emit, join_room, leave_room

from liehard import get_game_service, socketio
from liehard.errors import GameError, ValidationError
from liehard.services.games.service import clean_player_name


_sid_to_name: Dict[str, str] = {}


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _player_name() -> str:
    name = _sid_to_name.get(_get_sid())
    if not name:
        raise ValidationError('Name is required')
    return name


def _room_id(data: Any) -> str:
    # Older clients send the bare room id instead of an object
    if isinstance(data, str):
        room_id = data
    else:
        room_id = (data or {}).get('roomId')
    room_id = str(room_id or '').strip().upper()
    if not room_id:
        raise ValidationError('roomId is required')
    return room_id


def _field(data: Any, key: str, default=None):
    return data.get(key, default) if isinstance(data, dict) else default


def action(event: str):
    """Run a player action, turning game errors into a room-error for the sender only."""

    def decorator(handler):
        @wraps(handler)
        def wrapper(data=None):
            try:
                result = handler(data)
            except GameError as exc:
                current_app.logger.info(
                    f"[action-error] event={event} sid={_get_sid()} code={exc.code} message={exc.message}"
                )
                emit('room-error', exc.to_dict())
                return {'ok': False, 'error': exc.code, 'message': exc.message}
            except Exception:
                current_app.logger.exception(f"[action-error] event={event} sid={_get_sid()} unexpected failure")
                emit('room-error', {'message': 'Server error occurred', 'code': 'server_error'})
                return {'ok': False, 'error': 'server_error', 'message': 'Server error occurred'}
            return result if result is not None else {'ok': True}
        return wrapper
    return decorator


def handle_connect(auth=None):
    name = (auth or {}).get('name') if isinstance(auth, dict) else None
    try:
        name = clean_player_name(name or request.args.get('name'))
    except ValidationError as exc:
        raise ConnectionRefusedError(exc.message)
    _sid_to_name[_get_sid()] = name
    current_app.logger.info(f"[connect] sid={_get_sid()} name={name}")
    emit('connected', {'playerId': _get_sid(), 'name': name})


def handle_disconnect(reason=None):
    sid = _get_sid()
    _sid_to_name.pop(sid, None)
    try:
        left = get_game_service().disconnect(sid)
    except Exception:
        current_app.logger.exception(f"[disconnect] sid={sid} cleanup failed")
        return
    current_app.logger.info(f"[disconnect] sid={sid} reason={reason} rooms={left}")


@action('create-room')
def handle_create_room(data=None):
    room = get_game_service().create_room(_get_sid(), _player_name())
    join_room(room.id)
    return {'ok': True, 'roomId': room.id}


@action('join-room')
def handle_join_room(data=None):
    room_id = _room_id(data)
    room = get_game_service().join_room(room_id, _get_sid(), _player_name())
    join_room(room.id)
    return {'ok': True, 'roomId': room.id}


@action('get-room-state')
def handle_get_room_state(data=None):
    state = get_game_service().get_room_state(_room_id(data), viewer_id=_get_sid())
    emit('room-joined', state)
    return {'ok': True, 'room': state}


@action('update-settings')
def handle_update_settings(data=None):
    get_game_service().update_settings(_room_id(data), _get_sid(), _field(data, 'settings'))


@action('start-game')
def handle_start_game(data=None):
    get_game_service().start_game(_room_id(data), _get_sid())


@action('submit-stories')
def handle_submit_stories(data=None):
    get_game_service().submit_stories(
        _room_id(data), _get_sid(), _field(data, 'stories'), _field(data, 'isTruth')
    )


@action('submit-vote')
def handle_submit_vote(data=None):
    get_game_service().submit_vote(_room_id(data), _get_sid(), _field(data, 'guessedIndex'))


@action('reset-game')
def handle_reset_game(data=None):
    get_game_service().reset_game(_room_id(data), _get_sid())


@action('chat-message')
def handle_chat_message(data=None):
    text = _field(data, 'text', _field(data, 'message'))
    entry = get_game_service().post_chat(_room_id(data), _get_sid(), text)
    return {'ok': True, 'id': entry['id']}


@action('voice-signal')
def handle_voice_signal(data=None):
    get_game_service().relay_voice_signal(
        _room_id(data), _get_sid(), _field(data, 'targetPlayerId'), _field(data, 'payload')
    )


@action('leave-room')
def handle_leave_room(data=None):
    room_id = _room_id(data)
    get_game_service().leave_room(room_id, _get_sid())
    leave_room(room_id)


def handle_ping(data=None):
    emit('pong', data or {})


def register_socketio_handlers(namespace: str = '/ws') -> None:
    """Register Socket.IO event handlers on the game namespace."""
    socketio.on_event('connect', handle_connect, namespace=namespace)
    socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
    socketio.on_event('ping', handle_ping, namespace=namespace)
    socketio.on_event('create-room', handle_create_room, namespace=namespace)
    socketio.on_event('join-room', handle_join_room, namespace=namespace)
    socketio.on_event('get-room-state', handle_get_room_state, namespace=namespace)
    socketio.on_event('update-settings', handle_update_settings, namespace=namespace)
    socketio.on_event('start-game', handle_start_game, namespace=namespace)
    socketio.on_event('submit-stories', handle_submit_stories, namespace=namespace)
    socketio.on_event('submit-vote', handle_submit_vote, namespace=namespace)
    socketio.on_event('reset-game', handle_reset_game, namespace=namespace)
    socketio.on_event('chat-message', handle_chat_message, namespace=namespace)
    socketio.on_event('voice-signal', handle_voice_signal, namespace=namespace)
    socketio.on_event('leave-room', handle_leave_room, namespace=namespace)
