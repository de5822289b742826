from flask import current_app
from flask_socketio import join_room, leave_room, emit
from brizglass import socketio
from brizglass.models import Game
from brizglass.services.games.broadcast import room_for


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def _game_code_from(data):
    game_code = data.get('game_code') if isinstance(data, dict) else None
    return game_code if isinstance(game_code, str) and game_code.strip() else None


def handle_join_game(data):
    game_code = _game_code_from(data)
    if not game_code:
        emit('error', {'message': 'game_code is required'})
        return
    room = room_for(game_code)
    join_room(room)
    game = Game.query.filter_by(game_code=game_code.strip().upper()).first()
    current_app.logger.info(f"[ws-join] room={room} known_game={game is not None}")
    # Clients fetch status right away; the version lets them skip a stale fetch
    emit('joined', {'room': room, 'version': game.version if game else None})


def handle_leave_game(data):
    game_code = _game_code_from(data)
    if not game_code:
        emit('error', {'message': 'game_code is required'})
        return
    room = room_for(game_code)
    leave_room(room)
    emit('left', {'room': room})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    namespaces = ['/ws', '/'] if testing else ['/ws']
    for namespace in namespaces:
        socketio.on_event('connect', handle_connect, namespace=namespace)
        socketio.on_event('join_game', handle_join_game, namespace=namespace)
        socketio.on_event('leave_game', handle_leave_game, namespace=namespace)
        socketio.on_event('ping', handle_ping, namespace=namespace)
