import os

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///liehard.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Comma separated list, '*' allows any origin
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', 'http://localhost:3000,http://127.0.0.1:3000')
    SOCKETIO_NAMESPACE = os.environ.get('SOCKETIO_NAMESPACE', '/ws')
    # Room store backend: 'memory' or 'sql'
    ROOM_STORE = os.environ.get('ROOM_STORE', 'memory')
    ROOM_CODE_LENGTH = int(os.environ.get('ROOM_CODE_LENGTH', '6'))
    # Defaults for new rooms (seconds)
    DEFAULT_ROUND_TIME = int(os.environ.get('DEFAULT_ROUND_TIME', '60'))
    DEFAULT_QUESTION_TIME = int(os.environ.get('DEFAULT_QUESTION_TIME', '30'))
    DEFAULT_STORY_SUBMISSION_TIME = int(os.environ.get('DEFAULT_STORY_SUBMISSION_TIME', '60'))
    DEFAULT_RESULT_TIME = int(os.environ.get('DEFAULT_RESULT_TIME', '10'))
    DEFAULT_MAX_PLAYERS = int(os.environ.get('DEFAULT_MAX_PLAYERS', '5'))
    MIN_PLAYERS = int(os.environ.get('MIN_PLAYERS', '2'))
    CHAT_HISTORY_LIMIT = int(os.environ.get('CHAT_HISTORY_LIMIT', '200'))
    # Optional: heartbeat interval for timer worker logs (sec). 0 disables.
    TIMER_HEARTBEAT_SEC = int(os.environ.get('TIMER_HEARTBEAT_SEC', '0'))
