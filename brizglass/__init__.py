from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
socketio = SocketIO(async_mode=None)

# Header API clients use; browsers get the cookie set by /join
SESSION_HEADER = 'X-Player-Session'
SESSION_COOKIE = 'playerSession'


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from brizglass.main import main
    flask_app.register_blueprint(main)

    from brizglass.api.games import games
    flask_app.register_blueprint(games, url_prefix='/api/games')

    from brizglass.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    # Player sessions are bearer tokens, never the Flask session cookie,
    # so several players can share one browser or test client.
    from brizglass.models import Player

    @login_manager.request_loader
    def load_player_from_request(req):
        token = req.headers.get(SESSION_HEADER) or req.cookies.get(SESSION_COOKIE)
        if not token:
            return None
        return Player.query.filter_by(session_token=token).first()

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'Not authenticated', 'kind': 'authorization'}), 401

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database with a demo lobby."""
        from brizglass.services.games import lobby
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            game, admin_token = lobby.create_game()
            for nickname in ['alice', 'bob', 'cara']:
                lobby.join_game(game.game_code, nickname)

            click.echo("Database has been reset and seeded!")
            click.echo(f'Demo game {game.game_code} admin token: {admin_token}')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
