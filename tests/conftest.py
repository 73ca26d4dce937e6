import random

import pytest

from liquid_sort import Bottle, Difficulty, Game

R, G, B = 0, 1, 2
_ = None


def make_game(*columns):
    """A game with hand-placed bottles; each column is listed bottom to top."""
    game = Game(rng=random.Random(0))
    game.bottles = [Bottle(layers=list(c)) for c in columns]
    game.initial_snapshot = game.snapshot()
    game.fit_per_row = len(columns)
    return game


@pytest.fixture
def game():
    g = Game(Difficulty(10, 4, 2, 4), rng=random.Random(1234))
    g.generate()
    return g
