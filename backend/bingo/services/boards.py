import random
from typing import Optional

from bingo.models import (
    Board,
    Cell,
    DEFAULT_VARIANT,
    VARIANT_30,
    VARIANT_75,
    VARIANT_90,
    VARIANT_COVERALL,
    VARIANT_PATTERN,
    VARIANTS,
)

BINGO_COLUMNS = [
    ('B', 1, 15),
    ('I', 16, 30),
    ('N', 31, 45),
    ('G', 46, 60),
    ('O', 61, 75),
]
DECADE_COLUMNS = [(1, 10)] + [(start, start + 9) for start in range(11, 90, 10)]
SHAPE_PATTERNS = ('x-pattern', 'frame', 'postage-stamp', 'small-diamond')


def normalize_variant(variant: Optional[str]) -> str:
    return variant if variant in VARIANTS else DEFAULT_VARIANT


def generate(variant: Optional[str], rng: Optional[random.Random] = None) -> Board:
    """Build a fresh board for ``variant``; unknown variants get the default board."""
    rng = rng or random.Random()
    variant = normalize_variant(variant)
    if variant == VARIANT_90:
        return _board_90(rng)
    if variant == VARIANT_30:
        return _board_30(rng)
    if variant == VARIANT_COVERALL:
        return _board_coverall(rng)
    if variant == VARIANT_PATTERN:
        board = _board_75(rng)
        board.variant = VARIANT_PATTERN
        board.pattern = rng.choice(SHAPE_PATTERNS)
        return board
    return _board_75(rng)


def _board_75(rng):
    rows = [[None] * 5 for _ in range(5)]
    for col, (letter, low, high) in enumerate(BINGO_COLUMNS):
        numbers = sorted(rng.sample(range(low, high + 1), 5))
        for row in range(5):
            if row == 2 and col == 2:
                rows[row][col] = Cell(row=row, col=col, free=True, marked=True, letter=letter)
            else:
                rows[row][col] = Cell(row=row, col=col, value=numbers[row], letter=letter)
    return Board(variant=VARIANT_75, layout='5x5', rows=rows)


def _board_90(rng, per_column=3, row_count=3):
    rows = [[None] * len(DECADE_COLUMNS) for _ in range(row_count)]
    for col, (low, high) in enumerate(DECADE_COLUMNS):
        numbers = sorted(rng.sample(range(low, high + 1), per_column))
        positions = rng.sample(range(row_count), row_count)
        for i, row in enumerate(positions):
            value = numbers[i] if i < len(numbers) else None
            rows[row][col] = Cell(row=row, col=col, value=value, column=col + 1)
    return Board(variant=VARIANT_90, layout='9x3', rows=rows)


def _board_30(rng):
    numbers = sorted(rng.sample(range(1, 31), 9))
    rows = [
        [Cell(row=r, col=c, value=numbers[r * 3 + c]) for c in range(3)]
        for r in range(3)
    ]
    return Board(variant=VARIANT_30, layout='3x3', rows=rows)


def _board_coverall(rng):
    numbers = rng.sample(range(1, 91), 45)
    rows = [
        [Cell(row=r, col=c, value=numbers[r * 9 + c]) for c in range(9)]
        for r in range(5)
    ]
    return Board(variant=VARIANT_COVERALL, layout='9x5', rows=rows)
