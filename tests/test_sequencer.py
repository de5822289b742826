import pytest

from brizglass.services.games.sequencer import is_last_round, player_for_round, quorum


ORDER = [17, 4, 9]


def test_player_for_round_is_one_indexed():
    assert player_for_round(ORDER, 1) == 17
    assert player_for_round(ORDER, 2) == 4
    assert player_for_round(ORDER, 3) == 9


@pytest.mark.parametrize('round_index', [0, 4, -1])
def test_player_for_round_rejects_rounds_outside_the_order(round_index):
    with pytest.raises(IndexError):
        player_for_round(ORDER, round_index)


def test_is_last_round():
    assert not is_last_round(ORDER, 1)
    assert not is_last_round(ORDER, 2)
    assert is_last_round(ORDER, 3)


def test_quorum_excludes_on_stage_player():
    assert quorum(ORDER) == 2
    assert quorum([1, 2]) == 1
    assert quorum([]) == 0
