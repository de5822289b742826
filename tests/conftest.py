import os
import sys
from types import SimpleNamespace

import pytest

# Ensure the project root (containing the `brizglass` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from brizglass import create_app, db, socketio, SESSION_HEADER


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    BCRYPT_LOG_ROUNDS = 4
    CORS_ORIGINS = ['http://localhost:3000']
    MIN_PLAYERS = 2
    MAX_PLAYERS = 6
    SHUFFLE_PLAYER_ORDER = True
    AGGREGATE_AUTHOR_RESULTS = True
    RESULTS_AUTHOR_DURATION_SEC = 20
    RESULTS_TRUTH_DURATION_SEC = 20
    FINAL_COUNTDOWN_SEC = 5
    SERVER_AUTO_ADVANCE = False


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    # Tables are created in a short-lived context so that every test
    # request gets its own app context (and its own Flask-Login user).
    with application.app_context():
        import brizglass.models  # noqa: F401
        db.create_all()
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


def auth(player):
    return {SESSION_HEADER: player['session_token']}


def statements_for(name, true_index=2):
    return [
        {'text': f'{name} fact number {i}', 'is_true': i == true_index}
        for i in (1, 2, 3)
    ]


@pytest.fixture()
def make_game(client):
    """Create a game, join ``nicknames`` with statements, optionally start it."""
    def _make(nicknames=('Alice', 'Bob', 'Cara'), true_index=2, aggregate=None, start=True):
        body = {} if aggregate is None else {'aggregate_author_results': aggregate}
        created = client.post('/api/games/create', json=body).get_json()
        code = created['game_code']
        players = {}
        for name in nicknames:
            res = client.post('/api/games/join', json={'game_code': code, 'nickname': name})
            assert res.status_code == 201
            player = res.get_json()
            res = client.post(
                f'/api/games/{code}/statements',
                json={'statements': statements_for(name, true_index)},
                headers=auth(player),
            )
            assert res.status_code == 201
            players[name] = player
        if start:
            res = client.post(f'/api/games/{code}/start', json={'admin_token': created['admin_token']})
            assert res.status_code == 200
        return SimpleNamespace(
            code=code,
            admin_token=created['admin_token'],
            players=players,
            by_id={p['id']: p for p in players.values()},
        )
    return _make


@pytest.fixture()
def inspect_game(flask_app):
    """Read committed game state straight from the database."""
    from brizglass.models import Game, Player, Statement

    def _inspect(code):
        with flask_app.app_context():
            game = Game.query.filter_by(game_code=code).first()
            return SimpleNamespace(
                id=game.id,
                status=game.status,
                current_round=game.current_round,
                truth_round=game.truth_round,
                current_player_id=game.current_player_id,
                order=game.player_order,
                version=game.version,
                scores={p.id: p.score for p in Player.query.filter_by(game_id=game.id)},
                guessed={p.id: p.has_been_guessed for p in Player.query.filter_by(game_id=game.id)},
                statements={
                    p.id: [(s.id, s.is_true) for s in Statement.query.filter_by(player_id=p.id).order_by(Statement.order)]
                    for p in Player.query.filter_by(game_id=game.id)
                },
            )
    return _inspect


@pytest.fixture()
def vote(client):
    """Cast a vote over HTTP and return the response."""
    def _vote(code, player, vote_type, target):
        key = 'voted_player_id' if vote_type == 'author' else 'voted_statement_id'
        return client.post(
            f'/api/games/{code}/vote',
            json={'vote_type': vote_type, key: target},
            headers=auth(player),
        )
    return _vote
