from typing import Iterable

from flask import current_app
from sqlalchemy import update

from brizglass import db
from brizglass.models import Player, AUTHOR, TRUTH
from . import votes as vote_store


def award(player_id: int, points: int) -> None:
    """Add ``points`` to a player's score with an in-database increment.

    Scores only ever grow, so zero or negative awards are ignored.
    """
    if points <= 0:
        return
    db.session.execute(
        update(Player)
        .where(Player.id == player_id)
        .values(score=Player.score + points)
        .execution_options(synchronize_session=False)
    )


def score_author_rounds(game_id: int, rounds: Iterable[int]) -> None:
    """Apply author-phase scoring for each of ``rounds``.

    +1 to each voter who named the on-stage player as the author.
    """
    for round_index in rounds:
        votes = vote_store.list_for_round(game_id, round_index, AUTHOR)
        correct_guessers = [v.voter_id for v in votes if v.is_correct]
        for voter_id in correct_guessers:
            award(voter_id, 1)
        current_app.logger.info(
            f"[score-author] game={game_id} round={round_index} votes={len(votes)} correct={correct_guessers}"
        )


def score_truth_round(game_id: int, round_index: int, on_stage_player_id: int) -> None:
    """Apply truth-phase scoring for one round.

    +1 to each voter who picked the true statement; +1 to the on-stage
    player for every voter they fooled into picking a lie.
    """
    votes = vote_store.list_for_round(game_id, round_index, TRUTH)
    correct_guessers = [v.voter_id for v in votes if v.is_correct]
    fooled = [v.voter_id for v in votes if not v.is_correct]
    for voter_id in correct_guessers:
        award(voter_id, 1)
    award(on_stage_player_id, len(fooled))
    current_app.logger.info(
        f"[score-truth] game={game_id} round={round_index} correct={correct_guessers} "
        f"author={on_stage_player_id} fooling_points={len(fooled)}"
    )
