from __future__ import annotations

import random
import string
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from liehard import db


class GameStatus(str, Enum):
    WAITING = 'WAITING'
    STORY_SUBMISSION = 'STORY_SUBMISSION'
    QUESTIONING = 'QUESTIONING'
    VOTING = 'VOTING'
    REVEAL = 'REVEAL'
    GAME_OVER = 'GAME_OVER'


# Statuses in which a game is running and players hold round state
IN_GAME_STATUSES = (
    GameStatus.STORY_SUBMISSION,
    GameStatus.QUESTIONING,
    GameStatus.VOTING,
    GameStatus.REVEAL,
)
ROUND_STATUSES = (GameStatus.QUESTIONING, GameStatus.VOTING, GameStatus.REVEAL)

STORIES_PER_PLAYER = 3

# wire name -> attribute name
SETTINGS_FIELDS = {
    'roundTime': 'round_time',
    'questionTime': 'question_time',
    'storySubmissionTime': 'story_submission_time',
    'resultTime': 'result_time',
    'maxPlayers': 'max_players',
    'allowVoiceChat': 'allow_voice_chat',
    'allowTextChat': 'allow_text_chat',
    'autoStart': 'auto_start',
}


@dataclass
class GameSettings:
    round_time: int = 60
    question_time: int = 30
    story_submission_time: int = 60
    result_time: int = 10
    max_players: int = 5
    allow_voice_chat: bool = True
    allow_text_chat: bool = True
    auto_start: bool = False

    @classmethod
    def from_config(cls, config) -> GameSettings:
        return cls(
            round_time=int(config.get('DEFAULT_ROUND_TIME', 60)),
            question_time=int(config.get('DEFAULT_QUESTION_TIME', 30)),
            story_submission_time=int(config.get('DEFAULT_STORY_SUBMISSION_TIME', 60)),
            result_time=int(config.get('DEFAULT_RESULT_TIME', 10)),
            max_players=int(config.get('DEFAULT_MAX_PLAYERS', 5)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {wire: getattr(self, attr) for wire, attr in SETTINGS_FIELDS.items()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GameSettings:
        return cls(**{attr: data[wire] for wire, attr in SETTINGS_FIELDS.items() if wire in data})


@dataclass
class Player:
    id: str
    name: str
    score: int = 0
    stories: list[str] = field(default_factory=list)
    is_truth: Optional[int] = None
    has_submitted: bool = False

    def clear_submission(self) -> None:
        self.stories = []
        self.is_truth = None
        self.has_submitted = False

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'score': self.score,
            'stories': list(self.stories),
            'isTruth': self.is_truth,
            'hasSubmitted': self.has_submitted,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Player:
        return cls(
            id=data['id'],
            name=data['name'],
            score=int(data.get('score', 0)),
            stories=list(data.get('stories') or []),
            is_truth=data.get('isTruth'),
            has_submitted=bool(data.get('hasSubmitted', False)),
        )


@dataclass
class Room:
    id: str
    host_id: str
    players: list[Player] = field(default_factory=list)
    status: GameStatus = GameStatus.WAITING
    current_round: int = 0
    current_player_id: Optional[str] = None
    game_settings: GameSettings = field(default_factory=GameSettings)
    votes: dict[str, int] = field(default_factory=dict)
    chat_history: list[dict] = field(default_factory=list)
    round_history: list[dict] = field(default_factory=list)
    version: int = 0
    created_at: float = field(default_factory=time.time)

    def get_player(self, player_id: Optional[str]) -> Optional[Player]:
        for p in self.players:
            if p.id == player_id:
                return p
        return None

    def index_of(self, player_id: Optional[str]) -> int:
        for idx, p in enumerate(self.players):
            if p.id == player_id:
                return idx
        return -1

    @property
    def hot_seat(self) -> Optional[Player]:
        return self.get_player(self.current_player_id)

    @property
    def voters(self) -> list[Player]:
        """Everyone except the player in the hot seat."""
        return [p for p in self.players if p.id != self.current_player_id]

    @property
    def is_full(self) -> bool:
        return len(self.players) >= self.game_settings.max_players

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'hostId': self.host_id,
            'players': [p.to_dict() for p in self.players],
            'status': self.status.value,
            'currentRound': self.current_round,
            'currentPlayerId': self.current_player_id,
            'gameSettings': self.game_settings.to_dict(),
            'votes': dict(self.votes),
            'chatHistory': list(self.chat_history),
            'roundHistory': list(self.round_history),
            'version': self.version,
            'createdAt': self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Room:
        return cls(
            id=data['id'],
            host_id=data['hostId'],
            players=[Player.from_dict(p) for p in data.get('players') or []],
            status=GameStatus(data.get('status', GameStatus.WAITING.value)),
            current_round=int(data.get('currentRound', 0)),
            current_player_id=data.get('currentPlayerId'),
            game_settings=GameSettings.from_dict(data.get('gameSettings') or {}),
            votes={k: int(v) for k, v in (data.get('votes') or {}).items()},
            chat_history=list(data.get('chatHistory') or []),
            round_history=list(data.get('roundHistory') or []),
            version=int(data.get('version', 0)),
            created_at=float(data.get('createdAt') or time.time()),
        )


def room_public_state(room: Room, viewer_id: Optional[str] = None) -> dict[str, Any]:
    """Snapshot that is safe to send to clients.

    A player's true story index stays private to its owner until the reveal,
    and individual guesses stay hidden while voting is still open.
    """
    revealing = room.status in (GameStatus.REVEAL, GameStatus.GAME_OVER)
    players = []
    for p in room.players:
        d = p.to_dict()
        if not (p.id == viewer_id or room.status == GameStatus.GAME_OVER
                or (revealing and p.id == room.current_player_id)):
            d['isTruth'] = None
        d['isHost'] = p.id == room.host_id
        d['hasVoted'] = p.id in room.votes
        players.append(d)

    payload = {
        'id': room.id,
        'hostId': room.host_id,
        'status': room.status.value,
        'currentRound': room.current_round,
        'currentPlayerId': room.current_player_id,
        'gameSettings': room.game_settings.to_dict(),
        'players': players,
        'voters': sorted(room.votes.keys()),
        'chatHistory': list(room.chat_history),
    }
    if revealing:
        payload['votes'] = dict(room.votes)
        payload['lastRound'] = room.round_history[-1] if room.round_history else None
    if room.status == GameStatus.GAME_OVER:
        payload['roundHistory'] = list(room.round_history)
    return payload


def generate_room_code(length=6, exists=None):
    """Generate a short, case-insensitive room code."""
    while True:
        code = ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))
        if exists is None or not exists(code):
            return code


def normalize_room_id(room_id) -> str:
    return str(room_id or '').strip().upper()


class RoomSnapshot(db.Model):
    __tablename__ = 'room_snapshot'
    room_id = db.Column(db.String(32), primary_key=True)
    version = db.Column(db.Integer, nullable=False, default=1)
    status = db.Column(db.String(32), nullable=False, index=True)
    payload = db.Column(db.Text, nullable=False)  # JSON encoded Room.to_dict()
    updated_at = db.Column(db.Float, nullable=False, default=time.time)
