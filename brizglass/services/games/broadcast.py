from brizglass import socketio


def room_for(game_code: str) -> str:
    return f"game:{game_code.strip().upper()}"


def notify(game_code: str, event_type: str = 'game-update', **extra) -> None:
    """Tell every client in the game's room to re-fetch status.

    Only call after the change has been committed.
    """
    payload = {'game_code': game_code, 'type': event_type}
    payload.update(extra)
    socketio.emit('state_update', payload, to=room_for(game_code), namespace='/ws')
