from flask import Blueprint, jsonify

from liehard import get_game_service
from liehard.errors import RoomNotFoundError

rooms = Blueprint('rooms', __name__)


@rooms.route('', methods=['GET'])
def list_open_rooms():
    """
    Lists rooms that can still be joined: waiting for a game and not full.
    """
    return jsonify({'rooms': get_game_service().list_open_rooms()})


@rooms.route('/<string:room_id>', methods=['GET'])
def get_room(room_id):
    """
    Returns the public state of a room.
    """
    try:
        state = get_game_service().get_room_state(room_id)
    except RoomNotFoundError as exc:
        return jsonify({'error': exc.message, 'code': exc.code}), 404
    return jsonify({'room': state})
