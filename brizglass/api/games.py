from flask import Blueprint, jsonify, request, current_app
from flask_login import current_user, login_required
from brizglass import db, SESSION_COOKIE
from brizglass.services.games import controller, lobby
from brizglass.services.games.errors import GameError, StateConflict, ValidationError
from brizglass.services.games.projector import project_status
from brizglass.services.games.scheduler import reveal_durations


games = Blueprint('games', __name__)


@games.errorhandler(GameError)
def handle_game_error(exc):
    db.session.rollback()
    return jsonify({'error': exc.message, 'kind': exc.kind}), exc.status_code


def _json_body():
    """The request's JSON object, or an empty dict for anything else."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _session_player_for(game):
    """The logged-in player, who must belong to ``game``."""
    if current_user.game_id != game.id:
        raise StateConflict('Player is not in this game')
    return current_user._get_current_object()


@games.route('/create', methods=['POST'])
def create_game():
    data = _json_body()
    aggregate = data.get('aggregate_author_results')
    game, admin_token = lobby.create_game(
        aggregate_author_results=None if aggregate is None else bool(aggregate)
    )
    return jsonify({
        'message': 'New game created!',
        'id': game.id,
        'game_code': game.game_code,
        'admin_token': admin_token,
    }), 201


@games.route('/join', methods=['POST'])
def join_game():
    data = _json_body()
    player = lobby.join_game(data.get('game_code'), data.get('nickname'), data.get('avatar_url'))
    payload = player.to_dict()
    payload['session_token'] = player.session_token
    payload['game_code'] = player.game.game_code
    response = jsonify(payload)
    response.set_cookie(
        SESSION_COOKIE,
        player.session_token,
        httponly=True,
        secure=not current_app.debug and not current_app.testing,
        samesite='Strict',
        max_age=60 * 60 * 24,
    )
    return response, 201


@games.route('/<string:game_code>/statements', methods=['POST'])
@login_required
def submit_statements(game_code):
    game = lobby.find_game(game_code)
    player = _session_player_for(game)
    data = _json_body()
    lobby.submit_statements(player, data.get('statements'))
    return jsonify({'success': True, 'message': 'Statements submitted successfully'}), 201


@games.route('/<string:game_code>/start', methods=['POST'])
def start_game(game_code):
    data = _json_body()
    game = lobby.find_game(game_code)
    if not controller.start_game(game, data.get('admin_token')):
        current_app.logger.info(f"[start-skip] game={game.id} started concurrently")
    game = lobby.find_game(game_code)
    return jsonify({
        'success': True,
        'status': game.status,
        'current_round': game.current_round,
        'total_rounds': len(game.player_order),
    })


@games.route('/<string:game_code>/vote', methods=['POST'])
@login_required
def cast_vote(game_code):
    data = _json_body()
    game = lobby.find_game(game_code)
    voter = _session_player_for(game)
    kind = data.get('vote_type')
    target = data.get('voted_player_id') if kind == 'author' else data.get('voted_statement_id')
    outcome = controller.cast_vote(game, voter, kind, target)
    return jsonify({
        'success': True,
        'message': 'Vote submitted',
        'auto_advanced': outcome.auto_advanced,
        'new_status': outcome.status,
    })


@games.route('/<string:game_code>/auto-advance', methods=['POST'])
def auto_advance(game_code):
    data = _json_body()
    game = lobby.find_game(game_code)
    expected_round = data.get('round')
    if expected_round is not None:
        try:
            expected_round = int(expected_round)
        except (TypeError, ValueError):
            raise ValidationError('round must be a number')
    advanced = controller.auto_advance(game, expected_status=data.get('from_status'), expected_round=expected_round)
    game = lobby.find_game(game_code)
    return jsonify({'success': True, 'advanced': advanced, 'status': game.status})


@games.route('/<string:game_code>/next-phase', methods=['POST'])
def next_phase(game_code):
    data = _json_body()
    game = lobby.find_game(game_code)
    advanced = controller.force_advance(game, data.get('admin_token'))
    game = lobby.find_game(game_code)
    return jsonify({
        'success': True,
        'advanced': advanced,
        'status': game.status,
        'current_round': game.current_round,
        'truth_round': game.truth_round,
    })


@games.route('/<string:game_code>/status', methods=['GET'])
def get_status(game_code):
    game = lobby.find_game(game_code)
    viewer = current_user._get_current_object() if current_user.is_authenticated else None
    return jsonify(project_status(game, viewer=viewer, durations=reveal_durations(current_app.config)))
