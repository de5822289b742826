"""Append-only vote store.

All reads go through the caller's session, so a vote recorded earlier in
the same transaction is already counted when the quorum check runs.
"""

from typing import List

from sqlalchemy.exc import IntegrityError

from brizglass import db
from brizglass.models import Vote, AUTHOR, TRUTH, AuthorVote, TruthVote
from .errors import DuplicateVote


def record(vote: Vote) -> Vote:
    """Persist ``vote`` in the current transaction.

    Raises DuplicateVote when the voter already has a vote of the same
    kind for that round. The whole transaction is rolled back in that case.
    """
    db.session.add(vote)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateVote()
    return vote


def _for_round(game_id: int, round_index: int, kind: str):
    return Vote.query.filter_by(game_id=game_id, round=round_index, kind=kind)


def count_for_round(game_id: int, round_index: int, kind: str) -> int:
    return _for_round(game_id, round_index, kind).count()


def list_for_round(game_id: int, round_index: int, kind: str) -> List[Vote]:
    """Votes of one round in the order they were cast."""
    return _for_round(game_id, round_index, kind).order_by(Vote.created_at, Vote.id).all()


def has_voted(game_id: int, round_index: int, voter_id: int, kind: str) -> bool:
    return _for_round(game_id, round_index, kind).filter_by(voter_id=voter_id).first() is not None


def build(kind: str, **fields) -> Vote:
    """Instantiate the vote variant matching ``kind``."""
    if kind == AUTHOR:
        return AuthorVote(**fields)
    if kind == TRUTH:
        return TruthVote(**fields)
    raise ValueError(f'unknown vote kind {kind!r}')
