"""Who is on stage for a given round.

Both the author and the truth phase walk the same frozen player order, so
these helpers take that order and a 1-based round index and nothing else.
"""

from typing import Sequence


def player_for_round(player_order: Sequence[int], round_index: int) -> int:
    if not 1 <= round_index <= len(player_order):
        raise IndexError(f'round {round_index} outside 1..{len(player_order)}')
    return player_order[round_index - 1]


def is_last_round(player_order: Sequence[int], round_index: int) -> bool:
    return round_index >= len(player_order)


def quorum(player_order: Sequence[int]) -> int:
    """Votes needed to close a round: everyone but the on-stage player."""
    return max(len(player_order) - 1, 0)
