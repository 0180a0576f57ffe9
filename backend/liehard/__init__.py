from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from liehard.config import Config

db = SQLAlchemy()
migrate = Migrate()
socketio = SocketIO(async_mode=None)


def _allowed_origins(raw):
    if not raw or raw.strip() == '*':
        return '*'
    return [o.strip() for o in raw.split(',') if o.strip()]


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    allowed_origins = _allowed_origins(flask_app.config.get('CORS_ORIGINS'))

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # Ensure models are registered before the room store touches the table
    from liehard import models  # noqa: F401
    from liehard.gateway import SocketIOBroadcaster
    from liehard.services.games import GameService
    from liehard.store import create_room_store

    namespace = flask_app.config.get('SOCKETIO_NAMESPACE', '/ws')
    testing = flask_app.config.get('TESTING', False)
    game = GameService(
        store=create_room_store(flask_app),
        broadcaster=SocketIOBroadcaster(socketio, namespace=namespace),
        logger=flask_app.logger,
        config=flask_app.config,
        spawn=socketio.start_background_task,
        sleep=socketio.sleep,
        # Tests drive timers by hand unless explicitly enabled
        timers_enabled=not testing or flask_app.config.get('ENABLE_SCHEDULER_IN_TESTS', False),
    )
    flask_app.extensions['liehard'] = game

    from liehard.main import main
    flask_app.register_blueprint(main)

    from liehard.api.rooms import rooms
    flask_app.register_blueprint(rooms, url_prefix='/api/rooms')

    from liehard.socketio_events import register_socketio_handlers
    register_socketio_handlers(namespace=namespace)

    @click.command('rooms-list')
    def rooms_list_command():
        """Prints every live room."""
        rooms_found = game.list_rooms()
        for room in rooms_found:
            names = ', '.join(p.name for p in room.players)
            click.echo(f"{room.id}  {room.status.value:<16} round={room.current_round}  players=[{names}]")
        click.echo(f"{len(rooms_found)} room(s)")

    @click.command('rooms-purge')
    def rooms_purge_command():
        """Deletes every room from the configured store."""
        count = game.purge()
        click.echo(f"Purged {count} room(s)")

    flask_app.cli.add_command(rooms_list_command)
    flask_app.cli.add_command(rooms_purge_command)

    return flask_app


def get_game_service(flask_app=None):
    from flask import current_app
    return (flask_app or current_app).extensions['liehard']
