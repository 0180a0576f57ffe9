"""Outbound side of the session gateway.

The game service only talks to a ``Broadcaster``; each transport provides
its own implementation.
"""
from __future__ import annotations

from typing import Any


class Broadcaster:
    def broadcast(self, room_id: str, event: str, payload: Any) -> None:
        """Send an event to every connected member of a room."""
        raise NotImplementedError

    def send(self, player_id: str, event: str, payload: Any) -> None:
        """Send an event to a single player connection."""
        raise NotImplementedError

    def close_room(self, room_id: str) -> None:
        """Detach every connection from a deleted room."""
        raise NotImplementedError


class SocketIOBroadcaster(Broadcaster):
    """Socket.IO transport: room ids are Socket.IO rooms, player ids are sids."""

    def __init__(self, socketio, namespace='/ws'):
        self.socketio = socketio
        self.namespace = namespace

    def broadcast(self, room_id, event, payload):
        self.socketio.emit(event, payload, to=room_id, namespace=self.namespace)

    def send(self, player_id, event, payload):
        self.socketio.emit(event, payload, to=player_id, namespace=self.namespace)

    def close_room(self, room_id):
        self.socketio.close_room(room_id, namespace=self.namespace)
