import pytest

from rulevo import Predicate, PredicateRegistry, fact
from rulevo.demos import BOARD, MOVE, NEXT_BOARD, PLAYER, next_board_diagram, tic_tac_toe_registry

C = Predicate("c", 1)
PAIR = Predicate("pair", 2)
OUT = Predicate("out", 1)


@pytest.fixture
def registry():
    return tic_tac_toe_registry()


@pytest.fixture
def scenario():
    return next_board_diagram()


@pytest.fixture
def blank_move():
    return frozenset({fact(PLAYER, "x"), fact(MOVE, 3, 3), fact(BOARD, 3, 3, "blank")})


@pytest.fixture
def occupied_move():
    return frozenset({fact(PLAYER, "x"), fact(MOVE, 3, 3), fact(BOARD, 3, 3, "o")})


@pytest.fixture
def small_registry():
    return PredicateRegistry([C, PAIR, OUT])


__all__ = ["C", "PAIR", "OUT", "PLAYER", "MOVE", "BOARD", "NEXT_BOARD"]
