"""Game phase state machine.

    lobby -> voting-author -> results-author -> voting-truth
          -> results-truth -> (voting-truth | finished)

With ``aggregate_author_results`` every author round is played before a
single results-author screen, then truth rounds are revealed one player
at a time. Without it each player goes through author vote, author
results, truth vote and truth reveal before the next player is on stage.

The game row is the only serialization point. Every mutation starts
with a compare-and-set on (status, current_round, truth_round): a vote
claims the row for its round, a transition moves it to the next phase.
Whoever loses a compare-and-set rolls back and returns without scoring.
"""

import random
from dataclasses import dataclass
from typing import Optional, Sequence

from flask import current_app
from sqlalchemy import update

from brizglass import db, bcrypt
from brizglass.models import (
    Game, Player, Seat, Statement, Vote,
    LOBBY, VOTING_AUTHOR, RESULTS_AUTHOR, VOTING_TRUTH, RESULTS_TRUTH, FINISHED,
    AUTHOR, TRUTH, VOTE_KINDS,
)
from . import broadcast, scoring, scheduler
from . import votes as vote_store
from .errors import (
    AuthorizationError, DuplicateVote, InvalidTransition, SelfVote, StateConflict, ValidationError,
)
from .sequencer import is_last_round, player_for_round, quorum

VOTING_STATUSES = (VOTING_AUTHOR, VOTING_TRUTH)
RESULTS_STATUSES = (RESULTS_AUTHOR, RESULTS_TRUTH)
VOTING_STATUS_FOR_KIND = {AUTHOR: VOTING_AUTHOR, TRUTH: VOTING_TRUTH}


@dataclass(frozen=True)
class Phase:
    status: str
    current_round: int = 0
    truth_round: int = 0

    @classmethod
    def of(cls, game: Game) -> 'Phase':
        return cls(game.status, int(game.current_round or 0), int(game.truth_round or 0))

    def round_for(self, kind: str) -> int:
        return self.current_round if kind == AUTHOR else self.truth_round


@dataclass
class VoteOutcome:
    vote: Vote
    auto_advanced: bool
    status: str


def progress_key(phase: Phase, aggregate: bool) -> tuple:
    """Sort key that strictly grows with every legal transition."""
    if phase.status == LOBBY:
        return (0, 0, 0)
    if aggregate:
        return {
            VOTING_AUTHOR: (1, phase.current_round, 0),
            RESULTS_AUTHOR: (2, 0, 0),
            VOTING_TRUTH: (3, phase.truth_round, 0),
            RESULTS_TRUTH: (3, phase.truth_round, 1),
            FINISHED: (4, 0, 0),
        }[phase.status]
    if phase.status == FINISHED:
        return (2, 0, 0)
    stage = (VOTING_AUTHOR, RESULTS_AUTHOR, VOTING_TRUTH, RESULTS_TRUTH).index(phase.status)
    return (1, phase.current_round, stage)


def _compare_and_set(game_id: int, expected: Phase, **values) -> bool:
    """Update the game row only if it is still in ``expected``.

    With no values this just bumps the version, which locks the row for
    the rest of the transaction.
    """
    result = db.session.execute(
        update(Game)
        .where(
            Game.id == game_id,
            Game.status == expected.status,
            Game.current_round == expected.current_round,
            Game.truth_round == expected.truth_round,
        )
        .values(version=Game.version + 1, **values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _advance(game: Game, source: Phase, target: Phase, current_player_id: Optional[int]) -> bool:
    aggregate = bool(game.aggregate_author_results)
    if progress_key(target, aggregate) <= progress_key(source, aggregate):
        raise InvalidTransition(f'game {game.id}: {source} -> {target} is not forward')
    won = _compare_and_set(
        game.id,
        source,
        status=target.status,
        current_round=target.current_round,
        truth_round=target.truth_round,
        current_player_id=current_player_id,
    )
    if won:
        current_app.logger.info(
            f"[transition] game={game.id} {source.status}({source.current_round}/{source.truth_round})"
            f" -> {target.status}({target.current_round}/{target.truth_round}) on_stage={current_player_id}"
        )
    else:
        current_app.logger.info(f"[race-lost] game={game.id} expected={source.status} already moved")
    return won


def _authorize(game: Game, admin_token: Optional[str]) -> None:
    if not isinstance(admin_token, str) or not admin_token:
        raise AuthorizationError()
    if not bcrypt.check_password_hash(game.admin_token_hash, admin_token):
        raise AuthorizationError()


def _after_commit(game: Game, target: Phase) -> None:
    broadcast.notify(game.game_code, 'phase-changed', new_phase=target.status)
    if target.status in RESULTS_STATUSES:
        scheduler.schedule_auto_advance(current_app._get_current_object(), game.id)


def start_game(game: Game, admin_token: Optional[str]) -> bool:
    """Freeze the player order and open author round 1.

    Returns False when a concurrent start already did it.
    """
    _authorize(game, admin_token)
    if game.status != LOBBY:
        raise StateConflict('Game has already started')

    ready = (
        Player.query.filter_by(game_id=game.id, has_submitted_statements=True)
        .order_by(Player.id)
        .all()
    )
    min_players = int(current_app.config.get('MIN_PLAYERS', 2))
    if len(ready) < min_players:
        raise StateConflict(
            f'At least {min_players} players with submitted statements are required to start'
        )

    order = [p.id for p in ready]
    if current_app.config.get('SHUFFLE_PLAYER_ORDER', True):
        random.shuffle(order)

    source = Phase.of(game)
    target = Phase(VOTING_AUTHOR, 1, 0)
    if not _advance(game, source, target, player_for_round(order, 1)):
        db.session.rollback()
        return False
    db.session.add_all(
        Seat(game_id=game.id, position=position, player_id=player_id)
        for position, player_id in enumerate(order, start=1)
    )
    db.session.commit()

    current_app.logger.info(f"[start] game={game.id} order={order}")
    broadcast.notify(game.game_code, 'game-started')
    return True


def close_round(game: Game, phase: Phase) -> Optional[Phase]:
    """Close the voting round ``phase`` describes and score it.

    Must run inside the caller's transaction; the caller commits. Returns
    the new phase, or None when another request already closed the round.
    """
    order = game.player_order
    aggregate = bool(game.aggregate_author_results)

    if phase.status == VOTING_AUTHOR:
        if aggregate and not is_last_round(order, phase.current_round):
            next_round = phase.current_round + 1
            target = Phase(VOTING_AUTHOR, next_round, phase.truth_round)
            if not _advance(game, phase, target, player_for_round(order, next_round)):
                return None
            return target
        target = Phase(RESULTS_AUTHOR, phase.current_round, phase.truth_round)
        on_stage = player_for_round(order, phase.current_round)
        if not _advance(game, phase, target, on_stage):
            return None
        rounds = range(1, phase.current_round + 1) if aggregate else [phase.current_round]
        scoring.score_author_rounds(game.id, rounds)
        return target

    if phase.status == VOTING_TRUTH:
        target = Phase(RESULTS_TRUTH, phase.current_round, phase.truth_round)
        on_stage = player_for_round(order, phase.truth_round)
        if not _advance(game, phase, target, on_stage):
            return None
        scoring.score_truth_round(game.id, phase.truth_round, on_stage)
        return target

    raise StateConflict('No voting round is open')


def _next_after_results(game: Game, phase: Phase, order: Sequence[int]):
    aggregate = bool(game.aggregate_author_results)
    if phase.status == RESULTS_AUTHOR:
        truth_round = 1 if aggregate else phase.current_round
        return Phase(VOTING_TRUTH, phase.current_round, truth_round), player_for_round(order, truth_round)

    revealed = player_for_round(order, phase.truth_round)
    pointer = phase.truth_round if aggregate else phase.current_round
    if is_last_round(order, pointer):
        return Phase(FINISHED, phase.current_round, phase.truth_round), revealed
    if aggregate:
        next_round = phase.truth_round + 1
        return Phase(VOTING_TRUTH, phase.current_round, next_round), player_for_round(order, next_round)
    next_round = phase.current_round + 1
    return Phase(VOTING_AUTHOR, next_round, phase.truth_round), player_for_round(order, next_round)


def _leave_results(game: Game, phase: Phase) -> bool:
    order = game.player_order
    target, next_player_id = _next_after_results(game, phase, order)
    if not _advance(game, phase, target, next_player_id):
        db.session.rollback()
        return False
    if phase.status == RESULTS_TRUTH:
        db.session.execute(
            update(Player)
            .where(Player.id == player_for_round(order, phase.truth_round))
            .values(has_been_guessed=True)
            .execution_options(synchronize_session=False)
        )
    db.session.commit()
    _after_commit(game, target)
    return True


def cast_vote(game: Game, voter: Player, kind: str, target_id) -> VoteOutcome:
    """Record ``voter``'s vote and close the round if it completes the quorum."""
    if kind not in VOTE_KINDS:
        raise ValidationError('Invalid vote type')
    if target_id is None:
        raise ValidationError(
            'Player ID required for author vote' if kind == AUTHOR else 'Statement ID required for truth vote'
        )
    try:
        target_id = int(target_id)
    except (TypeError, ValueError):
        raise ValidationError('Vote target must be an id')

    phase = Phase.of(game)
    if phase.status != VOTING_STATUS_FOR_KIND[kind]:
        raise StateConflict(f'Not in {kind} voting phase')
    if voter.game_id != game.id:
        raise StateConflict('Player is not in this game')
    order = game.player_order
    if voter.id not in order:
        raise StateConflict('Only players who submitted statements can vote')

    round_index = phase.round_for(kind)
    on_stage = player_for_round(order, round_index)
    if voter.id == on_stage:
        raise SelfVote()

    if kind == AUTHOR:
        if target_id not in order:
            raise ValidationError('Unknown player')
        if target_id == voter.id:
            raise ValidationError('You cannot vote for yourself')
        vote = vote_store.build(
            AUTHOR, game_id=game.id, round=round_index, voter_id=voter.id,
            voted_player_id=target_id, is_correct=target_id == on_stage,
        )
    else:
        statement = db.session.get(Statement, target_id)
        if statement is None or statement.player_id != on_stage:
            raise ValidationError('That statement is not on stage')
        vote = vote_store.build(
            TRUTH, game_id=game.id, round=round_index, voter_id=voter.id,
            voted_statement_id=statement.id, is_correct=bool(statement.is_true),
        )

    if vote_store.has_voted(game.id, round_index, voter.id, kind):
        raise DuplicateVote()

    # Claim the round: serializes voters and rejects votes for a closed round
    if not _compare_and_set(game.id, phase):
        db.session.rollback()
        raise StateConflict('This round is already closed')
    vote_store.record(vote)

    new_phase = None
    received = vote_store.count_for_round(game.id, round_index, kind)
    if received >= quorum(order):
        new_phase = close_round(game, phase)
    db.session.commit()

    current_app.logger.info(
        f"[vote] game={game.id} kind={kind} round={round_index} voter={voter.id} "
        f"received={received}/{quorum(order)}"
    )
    broadcast.notify(game.game_code, 'vote-submitted')
    if new_phase is not None:
        _after_commit(game, new_phase)
    return VoteOutcome(
        vote=vote,
        auto_advanced=new_phase is not None,
        status=(new_phase or phase).status,
    )


def auto_advance(game: Game, expected_status: Optional[str] = None, expected_round: Optional[int] = None) -> bool:
    """Leave a results phase once its reveal window is over.

    Clients name the phase their timer was started for; if the game has
    already moved on the call does nothing and returns False.
    """
    phase = Phase.of(game)
    if expected_status is not None:
        if expected_status not in RESULTS_STATUSES:
            raise ValidationError('Can only auto-advance from results phases')
        shown_round = phase.current_round if phase.status == RESULTS_AUTHOR else phase.truth_round
        if phase.status != expected_status or (expected_round is not None and shown_round != expected_round):
            current_app.logger.info(
                f"[auto-advance-skip] game={game.id} expected={expected_status}/{expected_round} "
                f"actual={phase.status}"
            )
            return False
    elif phase.status not in RESULTS_STATUSES:
        raise StateConflict('Can only auto-advance from results phases')
    return _leave_results(game, phase)


def force_advance(game: Game, admin_token: Optional[str]) -> bool:
    """Admin override: close the open round early, or skip a reveal window."""
    _authorize(game, admin_token)
    phase = Phase.of(game)
    if phase.status in RESULTS_STATUSES:
        return _leave_results(game, phase)
    if phase.status not in VOTING_STATUSES:
        raise StateConflict('Invalid game status for phase transition')

    new_phase = close_round(game, phase)
    if new_phase is None:
        db.session.rollback()
        return False
    db.session.commit()
    current_app.logger.info(f"[force-advance] game={game.id} {phase.status} -> {new_phase.status}")
    _after_commit(game, new_phase)
    return True
