import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set

from bingo.errors import InvalidArgument

FREE = 'FREE'

VARIANT_75 = '75ball'
VARIANT_90 = '90ball'
VARIANT_30 = '30ball'
VARIANT_PATTERN = 'pattern'
VARIANT_COVERALL = 'coverall'
VARIANTS = (VARIANT_75, VARIANT_90, VARIANT_30, VARIANT_PATTERN, VARIANT_COVERALL)
DEFAULT_VARIANT = VARIANT_75

# Variants that widen or narrow the session's number space when a board is issued
NUMBER_SPACE_OVERRIDES = {
    VARIANT_90: 90,
    VARIANT_30: 30,
    VARIANT_COVERALL: 90,
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(ts: datetime) -> str:
    return ts.isoformat().replace('+00:00', 'Z')


@dataclass
class Cell:
    row: int
    col: int
    value: Optional[int] = None
    free: bool = False
    marked: bool = False
    letter: Optional[str] = None
    column: Optional[int] = None

    @property
    def blank(self) -> bool:
        return self.value is None and not self.free

    @property
    def playable(self) -> bool:
        return self.value is not None

    def to_dict(self):
        data = {
            'number': FREE if self.free else self.value,
            'row': self.row,
            'col': self.col,
            'marked': self.marked,
            'free': self.free,
            'blank': self.blank,
        }
        if self.letter:
            data['letter'] = self.letter
        if self.column is not None:
            data['column'] = self.column
        return data


@dataclass
class Board:
    variant: str
    layout: str
    rows: List[List[Cell]]
    pattern: Optional[str] = None

    def cells(self):
        for row in self.rows:
            for cell in row:
                yield cell

    def playable_numbers(self) -> List[int]:
        return [c.value for c in self.cells() if c.playable]

    def cell_for(self, number: int) -> Optional[Cell]:
        for cell in self.cells():
            if cell.value == number:
                return cell
        return None

    def mark(self, number: int) -> None:
        cell = self.cell_for(number)
        if cell is not None:
            cell.marked = True

    def clear_marks(self) -> None:
        for cell in self.cells():
            cell.marked = cell.free

    def to_dict(self):
        data = {
            'type': self.variant,
            'layout': self.layout,
            'numbers': [[c.to_dict() for c in row] for row in self.rows],
        }
        if self.pattern:
            data['pattern'] = self.pattern
        return data


@dataclass
class Participant:
    id: str
    name: str
    stake: float
    board_type: str
    board: Board
    conn_id: Optional[str] = None
    connected: bool = True
    marked_numbers: Set[int] = field(default_factory=set)
    joined_at: datetime = field(default_factory=utcnow)
    last_activity: datetime = field(default_factory=utcnow)

    def clear_marks(self) -> None:
        self.marked_numbers.clear()
        self.board.clear_marks()

    def summary(self):
        return {
            'id': self.id,
            'name': self.name,
            'stake': self.stake,
            'boardType': self.board_type,
            'connected': self.connected,
            'markedCount': len(self.marked_numbers),
        }


@dataclass
class Winner:
    participant_id: str
    participant_name: str
    pattern: str
    prize: int
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self):
        return {
            'playerId': self.participant_id,
            'playerName': self.participant_name,
            'pattern': self.pattern,
            'prize': self.prize,
            'timestamp': isoformat(self.timestamp),
        }


# Wire key -> attribute name
_SETTINGS_FIELDS = {
    'serviceFee': 'service_fee',
    'winPercentage': 'win_percentage',
    'callInterval': 'call_interval',
    'gameType': 'game_type',
    'maxNumbers': 'max_numbers',
    'poolIncludesDisconnected': 'pool_includes_disconnected',
}


def _finite(key, value) -> float:
    if isinstance(value, bool):
        raise InvalidArgument(f'{key} must be a number')
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        raise InvalidArgument(f'{key} must be a number')
    if not math.isfinite(number):
        raise InvalidArgument(f'{key} must be a finite number')
    return number


def _percentage(key, value):
    number = _finite(key, value)
    if not 0 <= number <= 100:
        raise InvalidArgument(f'{key} must be between 0 and 100')
    return number


@dataclass
class Settings:
    service_fee: float = 3
    win_percentage: float = 80
    call_interval: float = 7
    game_type: str = DEFAULT_VARIANT
    max_numbers: int = 75
    pool_includes_disconnected: bool = False

    @classmethod
    def from_config(cls, config) -> 'Settings':
        return cls(
            service_fee=config.get('SERVICE_FEE', 3),
            win_percentage=config.get('WIN_PERCENTAGE', 80),
            call_interval=config.get('CALL_INTERVAL_SEC', 7),
            game_type=config.get('GAME_TYPE', DEFAULT_VARIANT),
            max_numbers=config.get('MAX_NUMBERS', 75),
            pool_includes_disconnected=bool(config.get('POOL_INCLUDES_DISCONNECTED', False)),
        )

    def patched(self, patch: Dict, called_numbers: List[int] = ()) -> 'Settings':
        """Return a copy with the known fields of ``patch`` applied.

        The patch is validated as a whole: one bad field rejects all of it.
        Unknown keys are ignored.
        """
        if not isinstance(patch, dict):
            raise InvalidArgument('Settings must be an object')
        changes = {}
        for key, attr in _SETTINGS_FIELDS.items():
            if key not in patch:
                continue
            value = patch[key]
            if attr in ('service_fee', 'win_percentage'):
                value = _percentage(key, value)
            elif attr == 'call_interval':
                value = _finite(key, value)
                if value <= 0:
                    raise InvalidArgument('callInterval must be positive')
            elif attr == 'game_type':
                if value not in VARIANTS:
                    raise InvalidArgument(f'Unknown game type: {value}')
            elif attr == 'max_numbers':
                number = _finite(key, value)
                if not number.is_integer():
                    raise InvalidArgument('maxNumbers must be an integer')
                value = int(number)
                floor = max(called_numbers) if called_numbers else 1
                if value < floor:
                    raise InvalidArgument(f'maxNumbers must be at least {floor}')
            elif attr == 'pool_includes_disconnected':
                value = bool(value)
            changes[attr] = value
        return replace(self, **changes)

    def to_dict(self):
        return {key: getattr(self, attr) for key, attr in _SETTINGS_FIELDS.items()}
