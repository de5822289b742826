"""Read-only status snapshots for clients.

Builds everything a client needs to render the current phase from what
the controller last committed. What is hidden matters as much as what is
shown:

- during ``voting-author`` nobody but the on-stage player learns who is on
  stage, and there is no per-voter roster (it would give the author away
  by elimination);
- ``is_true`` flags only appear once a truth round is revealed;
- the per-voter roster is shown during ``voting-truth``, where the author
  is already public.
"""

from typing import Dict, List, Optional

from brizglass.models import (
    Game, Player, Statement,
    LOBBY, VOTING_AUTHOR, RESULTS_AUTHOR, VOTING_TRUTH, RESULTS_TRUTH, FINISHED,
    AUTHOR, TRUTH,
)
from . import votes as vote_store
from .sequencer import player_for_round, quorum

REVEAL_STATUSES = (RESULTS_TRUTH, FINISHED)
AUTHOR_PHASE_STATUSES = (VOTING_AUTHOR, RESULTS_AUTHOR)


def _active_round(game: Game):
    """(vote kind, round index) the current phase is about."""
    if game.status in AUTHOR_PHASE_STATUSES:
        return AUTHOR, int(game.current_round or 0)
    return TRUTH, int(game.truth_round or 0)


def _order_is_public(game: Game) -> bool:
    if game.aggregate_author_results:
        return game.status in (RESULTS_AUTHOR, VOTING_TRUTH, RESULTS_TRUTH, FINISHED)
    return game.status == FINISHED


def _author_results(game: Game, order, players_by_id) -> List[Dict]:
    if game.status == RESULTS_AUTHOR and not game.aggregate_author_results:
        rounds = [int(game.current_round)]
    else:
        rounds = range(1, int(game.current_round or 0) + 1)
    results = []
    for round_index in rounds:
        author = players_by_id.get(player_for_round(order, round_index))
        votes = [
            {
                'voter_id': v.voter_id,
                'voter': players_by_id[v.voter_id].nickname,
                'voted_player_id': v.voted_player_id,
                'voted_player': players_by_id[v.voted_player_id].nickname,
                'is_correct': v.is_correct,
            }
            for v in vote_store.list_for_round(game.id, round_index, AUTHOR)
        ]
        results.append({
            'round': round_index,
            'player_id': author.id,
            'nickname': author.nickname,
            'avatar_url': author.avatar_url,
            'votes': votes,
            'correct_count': sum(1 for v in votes if v['is_correct']),
        })
    return results


def _current_round(game: Game, order, players_by_id) -> Optional[Dict]:
    if game.status == LOBBY or not game.current_player_id:
        return None
    kind, round_index = _active_round(game)
    on_stage = players_by_id.get(game.current_player_id)
    statements = Statement.query.filter_by(player_id=game.current_player_id).order_by(Statement.order).all()
    reveal = game.status in REVEAL_STATUSES
    block = {
        'kind': kind,
        'round': round_index,
        'statements': [s.to_dict(reveal=reveal) for s in statements],
        'votes_received': vote_store.count_for_round(game.id, round_index, kind),
        'votes_needed': quorum(order),
    }
    if game.status != VOTING_AUTHOR:
        block.update({
            'player_id': on_stage.id,
            'player_nickname': on_stage.nickname,
            'player_avatar_url': on_stage.avatar_url,
        })
    if game.status == VOTING_TRUTH:
        voted = {v.voter_id for v in vote_store.list_for_round(game.id, round_index, TRUTH)}
        block['voter_status'] = [
            {
                'player_id': pid,
                'nickname': players_by_id[pid].nickname,
                'has_voted': pid in voted,
            }
            for pid in order if pid != on_stage.id
        ]
    if game.status == RESULTS_TRUTH:
        block['vote_results'] = [
            {
                'voter_id': v.voter_id,
                'voter': players_by_id[v.voter_id].nickname,
                'voted_statement_id': v.voted_statement_id,
                'is_correct': v.is_correct,
            }
            for v in vote_store.list_for_round(game.id, round_index, TRUTH)
        ]
    return block


def _viewer_block(game: Game, viewer: Player, order) -> Dict:
    kind, round_index = _active_round(game)
    # Vote flags only describe the round being played or revealed right now
    voted = (
        game.status not in (LOBBY, FINISHED)
        and round_index > 0
        and vote_store.has_voted(game.id, round_index, viewer.id, kind)
    )
    return {
        'id': viewer.id,
        'nickname': viewer.nickname,
        'score': viewer.score,
        'avatar_url': viewer.avatar_url,
        'has_submitted_statements': viewer.has_submitted_statements,
        'has_voted_author': voted and kind == AUTHOR,
        'has_voted_truth': voted and kind == TRUTH,
        'is_current_round_player': game.status != LOBBY and viewer.id == game.current_player_id,
        'is_participant': viewer.id in order,
    }


def project_status(game: Game, viewer: Optional[Player] = None, durations: Optional[Dict] = None) -> Dict:
    order = game.player_order
    players_by_id = {p.id: p for p in game.players}
    hide_on_stage = game.status in (LOBBY, VOTING_AUTHOR)

    players = []
    for p in sorted(game.players, key=lambda p: (-p.score, p.id)):
        pd = p.to_dict()
        pd['is_current_round_player'] = (not hide_on_stage) and p.id == game.current_player_id
        players.append(pd)

    payload = {
        'game': {
            'id': game.id,
            'game_code': game.game_code,
            'status': game.status,
            'current_round': game.current_round,
            'truth_round': game.truth_round,
            'total_rounds': len(order),
            'aggregate_author_results': game.aggregate_author_results,
            'version': game.version,
            'player_order': order if _order_is_public(game) else None,
        },
        'players': players,
        'current_player': None,
        'current_round': _current_round(game, order, players_by_id),
        'author_results': None,
        'durations': durations or {},
    }
    if viewer is not None and viewer.game_id == game.id:
        payload['current_player'] = _viewer_block(game, viewer, order)
    if game.status in (RESULTS_AUTHOR, FINISHED):
        payload['author_results'] = _author_results(game, order, players_by_id)
    return payload
