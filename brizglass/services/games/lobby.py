"""Lobby operations: creating a game, joining it, submitting statements."""

from typing import Optional, Sequence, Tuple

from flask import current_app
from sqlalchemy.exc import IntegrityError

from brizglass import db, bcrypt
from brizglass.models import Game, Player, Statement, LOBBY, generate_token
from . import broadcast
from .errors import GameNotFound, StateConflict, ValidationError

NICKNAME_MIN_LENGTH = 2
NICKNAME_MAX_LENGTH = 20
STATEMENTS_PER_PLAYER = 3
STATEMENT_MIN_LENGTH = 3


def find_game(game_code: Optional[str]) -> Game:
    if not isinstance(game_code, str):
        raise ValidationError('Game code must be a string')
    game = Game.query.filter_by(game_code=game_code.strip().upper()).first()
    if game is None:
        raise GameNotFound()
    return game


def create_game(aggregate_author_results: Optional[bool] = None) -> Tuple[Game, str]:
    """Create a lobby and return it with its admin token.

    Only a bcrypt hash of the token is stored, so this is the one chance
    to hand it to the host.
    """
    if aggregate_author_results is None:
        aggregate_author_results = current_app.config.get('AGGREGATE_AUTHOR_RESULTS', True)
    admin_token = generate_token()
    game = Game(
        status=LOBBY,
        aggregate_author_results=bool(aggregate_author_results),
        admin_token_hash=bcrypt.generate_password_hash(admin_token).decode('utf-8'),
    )
    db.session.add(game)
    db.session.commit()
    current_app.logger.info(
        f"[create] game={game.id} code={game.game_code} aggregate={game.aggregate_author_results}"
    )
    return game, admin_token


def join_game(game_code: str, nickname: Optional[str], avatar_url: Optional[str] = None) -> Player:
    if not isinstance(game_code, str) or not isinstance(nickname, str):
        raise ValidationError('Game code and nickname are required')
    nickname = nickname.strip()
    if not game_code or not nickname:
        raise ValidationError('Game code and nickname are required')
    if not NICKNAME_MIN_LENGTH <= len(nickname) <= NICKNAME_MAX_LENGTH:
        raise ValidationError(
            f'Nickname must be between {NICKNAME_MIN_LENGTH} and {NICKNAME_MAX_LENGTH} characters'
        )
    if avatar_url is not None and not isinstance(avatar_url, str):
        raise ValidationError('avatar_url must be a string')

    game = find_game(game_code)
    if game.status != LOBBY:
        raise StateConflict('Game has already started')
    if Player.query.filter_by(game_id=game.id, nickname=nickname).first():
        raise StateConflict('Nickname already taken in this game')
    max_players = int(current_app.config.get('MAX_PLAYERS', 12))
    if Player.query.filter_by(game_id=game.id).count() >= max_players:
        raise StateConflict(f'This game is full ({max_players} players)')

    player = Player(
        nickname=nickname,
        game_id=game.id,
        session_token=generate_token(),
        avatar_url=avatar_url or None,
    )
    db.session.add(player)
    try:
        db.session.commit()
    except IntegrityError:
        # Lost a race against a same-nickname join
        db.session.rollback()
        raise StateConflict('Nickname already taken in this game')

    current_app.logger.info(f"[join] game={game.id} player={player.id} nickname={nickname!r}")
    broadcast.notify(game.game_code, 'player-joined', player_nickname=nickname)
    return player


def _clean_statements(raw) -> list:
    if not isinstance(raw, (list, tuple)) or len(raw) != STATEMENTS_PER_PLAYER:
        raise ValidationError(f'Exactly {STATEMENTS_PER_PLAYER} statements are required')
    cleaned = []
    for item in raw:
        if not isinstance(item, dict):
            raise ValidationError('Each statement needs a text and an is_true flag')
        text = item.get('text')
        if not isinstance(text, str) or len(text.strip()) < STATEMENT_MIN_LENGTH:
            raise ValidationError(f'All statements must have at least {STATEMENT_MIN_LENGTH} characters')
        cleaned.append((text.strip(), item.get('is_true') is True))
    if sum(1 for _, is_true in cleaned if is_true) != 1:
        raise ValidationError('Exactly 1 statement must be true')
    return cleaned


def submit_statements(player: Player, raw_statements: Sequence[dict]) -> list:
    """Store a player's three statements and mark them ready.

    Nothing is written unless the whole submission is valid.
    """
    cleaned = _clean_statements(raw_statements)
    if player.has_submitted_statements:
        raise StateConflict('Statements already submitted')
    game = db.session.get(Game, player.game_id)
    if game.status != LOBBY:
        raise StateConflict('Game has already started')

    statements = [
        Statement(text=text, is_true=is_true, order=index, player_id=player.id, game_id=game.id)
        for index, (text, is_true) in enumerate(cleaned, start=1)
    ]
    db.session.add_all(statements)
    player.has_submitted_statements = True
    db.session.add(player)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise StateConflict('Statements already submitted')

    current_app.logger.info(f"[statements] game={game.id} player={player.id} ready")
    broadcast.notify(game.game_code, 'player-ready', player_id=player.id)
    return statements
