"""Win verification and payouts.

Both are pure: they read participants and settings and never mutate them.
"""
from decimal import Decimal, ROUND_FLOOR
from itertools import combinations
from typing import Collection, Iterable, List, Optional

from bingo.models import (
    Board,
    Participant,
    Settings,
    VARIANT_30,
    VARIANT_75,
    VARIANT_90,
    VARIANT_COVERALL,
    VARIANT_PATTERN,
)

STRICT = 'strict'
LENIENT = 'lenient'

PATTERN_NAMES = {
    'row': 'Row',
    'column': 'Column',
    'diagonal': 'Diagonal',
    'four-corners': 'Four Corners',
    'full-house': 'Full House',
    'one-line': 'One Line',
    'two-lines': 'Two Lines',
    'full-board': 'Full Board',
    'x-pattern': 'X Pattern',
    'frame': 'Frame',
    'postage-stamp': 'Postage Stamp',
    'small-diamond': 'Small Diamond',
}

VARIANT_PATTERNS = {
    VARIANT_75: ['row', 'column', 'diagonal', 'four-corners', 'full-house'],
    VARIANT_90: ['one-line', 'two-lines', 'full-house'],
    VARIANT_30: ['full-house'],
    VARIANT_COVERALL: ['full-board'],
}

# Minimum marked-number counts used in lenient mode. Full-house style
# patterns use the board's playable cell count instead.
LENIENT_THRESHOLDS = {
    'row': 5,
    'column': 5,
    'diagonal': 5,
    'one-line': 5,
    'two-lines': 10,
    'four-corners': 4,
    'x-pattern': 5,
    'frame': 5,
    'postage-stamp': 5,
    'small-diamond': 5,
}


def pattern_name(pattern: str) -> str:
    return PATTERN_NAMES.get(pattern, pattern)


def allowed_patterns(board: Board) -> List[str]:
    if board.variant == VARIANT_PATTERN:
        return [board.pattern] if board.pattern else []
    return list(VARIANT_PATTERNS.get(board.variant, ['full-house']))


def _candidate_shapes(board: Board, pattern: str):
    """Yield every set of positions that satisfies ``pattern`` on ``board``."""
    height = len(board.rows)
    width = len(board.rows[0]) if height else 0
    all_rows = [{(r, c) for c in range(width)} for r in range(height)]
    last_r, last_c = height - 1, width - 1

    if pattern in ('row', 'one-line'):
        yield from all_rows
    elif pattern == 'two-lines':
        for first, second in combinations(all_rows, 2):
            yield first | second
    elif pattern == 'column':
        for c in range(width):
            yield {(r, c) for r in range(height)}
    elif pattern == 'diagonal':
        if height == width:
            yield {(i, i) for i in range(height)}
            yield {(i, last_c - i) for i in range(height)}
    elif pattern == 'x-pattern':
        if height == width:
            yield {(i, i) for i in range(height)} | {(i, last_c - i) for i in range(height)}
    elif pattern == 'four-corners':
        yield {(0, 0), (0, last_c), (last_r, 0), (last_r, last_c)}
    elif pattern == 'frame':
        yield {(r, c) for r in range(height) for c in range(width)
               if r in (0, last_r) or c in (0, last_c)}
    elif pattern == 'postage-stamp':
        for r0 in (0, last_r - 1):
            for c0 in (0, last_c - 1):
                yield {(r0, c0), (r0, c0 + 1), (r0 + 1, c0), (r0 + 1, c0 + 1)}
    elif pattern == 'small-diamond':
        mr, mc = height // 2, width // 2
        yield {(mr, mc), (mr - 1, mc), (mr + 1, mc), (mr, mc - 1), (mr, mc + 1)}
    elif pattern in ('full-house', 'full-board'):
        yield {(r, c) for r in range(height) for c in range(width)}


def _covered(participant: Participant, called: Optional[Collection[int]]):
    covered = set()
    for cell in participant.board.cells():
        if cell.free:
            covered.add((cell.row, cell.col))
        elif cell.playable and cell.value in participant.marked_numbers:
            if called is None or cell.value in called:
                covered.add((cell.row, cell.col))
    return covered


def _verify_strict(participant, pattern, called):
    board = participant.board
    blanks = {(c.row, c.col) for c in board.cells() if c.blank}
    covered = _covered(participant, called)
    for shape in _candidate_shapes(board, pattern):
        required = shape - blanks
        if required and required <= covered:
            return True
    return False


def _verify_lenient(participant, pattern):
    marked = len(participant.marked_numbers)
    if pattern in ('full-house', 'full-board'):
        return marked >= len(participant.board.playable_numbers())
    threshold = LENIENT_THRESHOLDS.get(pattern)
    return threshold is not None and marked >= threshold


def verify(participant: Participant, pattern: str,
           called: Optional[Collection[int]] = None, mode: str = STRICT) -> bool:
    """Decide whether ``participant`` may claim ``pattern``.

    Strict mode checks that every cell of some placement of the pattern is
    covered (free, or marked and called when ``called`` is given). Lenient
    mode only compares the number of marks against a per-pattern threshold.
    Patterns the participant's board does not offer are always refused.
    """
    if pattern not in allowed_patterns(participant.board):
        return False
    if mode == LENIENT:
        return _verify_lenient(participant, pattern)
    return _verify_strict(participant, pattern, called)


def first_ready_pattern(participant: Participant, called=None, mode=STRICT) -> Optional[str]:
    for pattern in allowed_patterns(participant.board):
        if verify(participant, pattern, called, mode):
            return pattern
    return None


def _pool_stakes(participants: Iterable[Participant], settings: Settings) -> Decimal:
    total = Decimal(0)
    for p in participants:
        if p.connected or settings.pool_includes_disconnected:
            total += Decimal(str(p.stake))
    return total


def _after_fees(total: Decimal, settings: Settings) -> Decimal:
    win = Decimal(str(settings.win_percentage)) / 100
    keep = (100 - Decimal(str(settings.service_fee))) / 100
    return total * win * keep


def calculate_pot(participants: Iterable[Participant], settings: Settings) -> int:
    pot = _after_fees(_pool_stakes(participants, settings), settings)
    return int(pot.to_integral_value(rounding=ROUND_FLOOR))


def calculate_prize(participants: Collection[Participant], settings: Settings) -> int:
    """Prize for a single verified claim.

    The pool is split across every known participant, connected or not.
    """
    participants = list(participants)
    share = _after_fees(_pool_stakes(participants, settings), settings) / max(len(participants), 1)
    return int(share.to_integral_value(rounding=ROUND_FLOOR))
