"""The session engine: every command that touches the shared bingo session.

All commands run under one re-entrant lock, so a command, the events it
emits and the auto-call timer's ticks never interleave with each other.
Commands raise :class:`bingo.errors.BingoError` subclasses; ``on_message``
turns those into ``error`` events for the originating connection.
"""
import json
import logging
import math
import random
import threading
import uuid
from functools import wraps
from typing import Callable, Dict, Optional

from werkzeug.security import check_password_hash

from bingo.errors import (
    BingoError,
    ClaimRejected,
    InvalidArgument,
    MalformedMessage,
    ResourceExhausted,
    Unauthorized,
)
from bingo.models import FREE, NUMBER_SPACE_OVERRIDES, Participant, Settings, Winner, isoformat, utcnow
from bingo.services import boards, scoring
from bingo.services.broadcaster import Broadcaster, Sender
from bingo.services.scheduler import TimerHandle
from bingo.services.state import ConnectionRegistry, SessionState

NAME_MAX_LEN = 32


def serialized(method):
    @wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)
    return wrapper


def _parse_number(value) -> Optional[int]:
    if isinstance(value, bool) or value is None or value == FREE:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if not number.is_integer():
        return None
    return int(number)


def _parse_stake(value, default):
    try:
        stake = float(value)
    except (TypeError, ValueError, OverflowError):
        return default
    if not math.isfinite(stake) or stake <= 0:
        return default
    return int(stake) if stake.is_integer() else stake


class SessionEngine:
    def __init__(
        self,
        sender: Sender,
        settings: Optional[Settings] = None,
        spawn: Optional[Callable] = None,
        logger: Optional[logging.Logger] = None,
        verification_mode: str = scoring.STRICT,
        winners_display_limit: int = 10,
        default_stake: float = 25,
        admin_password_hash: Optional[str] = None,
        rng: Optional[random.Random] = None,
    ):
        self.logger = logger or logging.getLogger(__name__)
        self.state = SessionState(settings=settings or Settings())
        self.registry = ConnectionRegistry()
        self.broadcaster = Broadcaster(self.state, sender, self.logger)
        self.verification_mode = verification_mode
        self.winners_display_limit = winners_display_limit
        self.default_stake = default_stake
        self.admin_password_hash = admin_password_hash
        self.rng = rng or random.Random()
        self._spawn = spawn
        self._lock = threading.RLock()
        self._handlers: Dict[str, Callable] = {
            'setAdmin': lambda conn, data: self.register_admin(conn, data.get('password')),
            'joinGame': lambda conn, data: self.join(
                conn,
                name=data.get('name'),
                stake=data.get('stake'),
                variant=data.get('boardType'),
                participant_id=data.get('id'),
            ),
            'markNumber': lambda conn, data: self.mark(conn, data.get('number')),
            'claimBingo': lambda conn, data: self.claim(conn, data.get('pattern')),
            'adminStartGame': lambda conn, data: self.admin_start(conn),
            'adminPauseGame': lambda conn, data: self.admin_pause(conn),
            'adminResetGame': lambda conn, data: self.admin_reset(conn),
            'adminCallNumber': lambda conn, data: self.admin_call_number(conn),
            'adminCallSpecific': lambda conn, data: self.admin_call_specific(conn, data.get('number')),
            'adminToggleAutoCall': lambda conn, data: self.admin_toggle_auto_call(conn, bool(data.get('enabled'))),
            'adminUpdateSettings': lambda conn, data: self.admin_update_settings(conn, data),
        }

    @classmethod
    def from_config(cls, config, sender: Sender, spawn=None, logger=None) -> 'SessionEngine':
        return cls(
            sender,
            settings=Settings.from_config(config),
            spawn=spawn,
            logger=logger,
            verification_mode=config.get('VERIFICATION_MODE', scoring.STRICT),
            winners_display_limit=config.get('WINNERS_DISPLAY_LIMIT', 10),
            default_stake=config.get('DEFAULT_STAKE', 25),
            admin_password_hash=config.get('ADMIN_PASSWORD_HASH'),
        )

    # ---- Transport entry points ----

    @serialized
    def on_open(self, conn: str) -> None:
        self.registry.open(conn)

    @serialized
    def on_close(self, conn: str) -> None:
        self.disconnect(conn)

    @serialized
    def on_message(self, conn: str, text) -> None:
        try:
            msg_type, data = self._decode(text)
            handler = self._handlers.get(msg_type)
            if handler is None:
                raise MalformedMessage('Unknown message type')
            self.registry.open(conn)
            handler(conn, data)
        except BingoError as exc:
            self._send_error(conn, exc)
        except Exception:
            self.logger.exception(f"[command-fail] conn={conn}")
            self._send_error(conn, BingoError('Internal error'))

    def _decode(self, text):
        try:
            envelope = json.loads(text) if isinstance(text, (str, bytes)) else text
        except ValueError:
            self.logger.debug(f"[malformed] {text!r}")
            raise MalformedMessage('Invalid message format')
        if not isinstance(envelope, dict) or not isinstance(envelope.get('type'), str):
            raise MalformedMessage('Invalid message format')
        data = envelope.get('data')
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise MalformedMessage('Message data must be an object')
        return envelope['type'], data

    def _send_error(self, conn: str, error: BingoError) -> None:
        payload = error.to_dict()
        payload['timestamp'] = isoformat(utcnow())
        self.broadcaster.send_to(conn, 'error', payload)

    # ---- Snapshots ----

    @serialized
    def snapshot(self) -> Dict:
        state = self.state
        players = [p.summary() for p in state.participants.values()]
        space = state.settings.max_numbers
        return {
            'players': players,
            'calledNumbers': list(state.called_numbers),
            'gameActive': state.active,
            'winners': [w.to_dict() for w in state.winners[-self.winners_display_limit:]],
            'settings': state.settings.to_dict(),
            'currentPot': scoring.calculate_pot(state.participants.values(), state.settings),
            'autoCall': state.auto_call,
            'stats': {
                'totalPlayers': len(players),
                'connectedPlayers': sum(1 for p in players if p['connected']),
                'numbersCalled': len(state.called_numbers),
                'numbersRemaining': max(space - len(state.called_numbers), 0),
            },
        }

    @serialized
    def summary(self) -> Dict:
        return {
            'active': self.state.active,
            'players': len(self.state.participants),
            'connectedPlayers': len(self.state.connected_participants()),
            'admins': len(self.state.admin_conns),
            'numbersCalled': len(self.state.called_numbers),
            'autoCall': self.state.auto_call,
        }

    def _push_admins(self) -> None:
        self.broadcaster.send_admins('gameState', self.snapshot())

    def _broadcast_state(self) -> None:
        self.broadcaster.send('gameState', self.snapshot())

    def _require_admin(self, conn: str) -> None:
        if conn not in self.state.admin_conns:
            raise Unauthorized()

    # ---- Participant commands ----

    @serialized
    def register_admin(self, conn: str, password: Optional[str] = None) -> None:
        if self.admin_password_hash and not check_password_hash(self.admin_password_hash, password or ''):
            self.logger.info(f"[admin-denied] conn={conn}")
            raise Unauthorized('Invalid admin password')
        self.state.admin_conns.add(conn)
        self.registry.bind_admin(conn)
        self.broadcaster.send_to(conn, 'gameState', self.snapshot())
        self.logger.info(f"[admin] conn={conn} admins={len(self.state.admin_conns)}")

    @serialized
    def join(self, conn: str, name=None, stake=None, variant=None, participant_id=None) -> Participant:
        state = self.state
        variant = boards.normalize_variant(variant or state.settings.game_type)
        board = boards.generate(variant, self.rng)
        self._apply_number_space(variant)

        pid = str(participant_id) if participant_id else uuid.uuid4().hex[:12]
        previous = self.registry.participant_id(conn)
        if previous and previous != pid and previous in state.participants:
            # Same connection joining under a new identity abandons the old one
            old = state.participants[previous]
            old.connected = False
            old.conn_id = None
        if pid in state.participants:
            self.registry.unbind_participant(pid, keep=conn)

        participant = Participant(
            id=pid,
            name=(str(name).strip() if name else '')[:NAME_MAX_LEN] or 'Player',
            stake=_parse_stake(stake, self.default_stake),
            board_type=variant,
            board=board,
            conn_id=conn,
        )
        state.participants[pid] = participant
        self.registry.bind_participant(conn, pid)

        self.broadcaster.send_to(conn, 'board', board.to_dict())
        self.broadcaster.send_to(conn, 'gameState', self.snapshot())
        self.broadcaster.send('playerJoined', {
            'id': participant.id,
            'name': participant.name,
            'stake': participant.stake,
            'boardType': participant.board_type,
        }, exclude=[conn])
        self._push_admins()
        self.logger.info(f"[join] player={pid} name={participant.name} board={variant} stake={participant.stake}")
        return participant

    def _apply_number_space(self, variant: str) -> None:
        space = NUMBER_SPACE_OVERRIDES.get(variant)
        if space is None or space == self.state.settings.max_numbers:
            return
        called = self.state.called_numbers
        if called and max(called) > space:
            self.logger.warning(f"[space-keep] board={variant} space={space} already past {max(called)}")
            return
        self.state.settings.max_numbers = space
        self.logger.info(f"[space] board={variant} max_numbers={space}")

    def _participant_for(self, conn: str) -> Optional[Participant]:
        pid = self.registry.participant_id(conn)
        return self.state.participants.get(pid) if pid else None

    @serialized
    def mark(self, conn: str, number) -> bool:
        participant = self._participant_for(conn)
        value = _parse_number(number)
        if participant is None or value is None:
            return False
        if not 1 <= value <= self.state.settings.max_numbers:
            return False
        participant.marked_numbers.add(value)
        participant.board.mark(value)
        participant.last_activity = utcnow()

        ready = scoring.first_ready_pattern(participant, self.state.called_numbers, self.verification_mode)
        if ready:
            self.broadcaster.send_to(conn, 'winReady', {
                'pattern': ready,
                'patternName': scoring.pattern_name(ready),
            })
        return True

    @serialized
    def claim(self, conn: str, pattern) -> Optional[Winner]:
        participant = self._participant_for(conn)
        if participant is None:
            return None
        pattern = str(pattern or '')
        state = self.state
        if not scoring.verify(participant, pattern, state.called_numbers, self.verification_mode):
            self.logger.info(f"[claim-reject] player={participant.id} pattern={pattern}")
            raise ClaimRejected()

        winner = Winner(
            participant_id=participant.id,
            participant_name=participant.name,
            pattern=pattern,
            prize=scoring.calculate_prize(state.participants.values(), state.settings),
        )
        state.winners.append(winner)
        participant.clear_marks()
        participant.last_activity = utcnow()
        self.broadcaster.send('winnerAnnounced', winner.to_dict())
        self.logger.info(f"[claim-ok] player={participant.id} pattern={pattern} prize={winner.prize}")
        return winner

    @serialized
    def disconnect(self, conn: str) -> None:
        info = self.registry.reap(conn)
        if conn in self.state.admin_conns:
            self.state.admin_conns.discard(conn)
            self.logger.info(f"[disconnect] admin conn={conn}")
        participant = self.state.participants.get(info.participant_id) if info and info.participant_id else None
        if participant is not None and participant.conn_id == conn:
            participant.connected = False
            participant.last_activity = utcnow()
            self.broadcaster.send('playerLeft', {'id': participant.id, 'name': participant.name}, exclude=[conn])
            self.logger.info(f"[disconnect] player={participant.id} name={participant.name}")
        self._push_admins()

    # ---- Admin commands ----

    @serialized
    def admin_start(self, conn: str) -> None:
        self._require_admin(conn)
        self.state.active = True
        self.state.called_numbers = []
        self._broadcast_state()
        self.logger.info('[start] game started by admin')

    @serialized
    def admin_pause(self, conn: str) -> None:
        self._require_admin(conn)
        self.state.active = False
        self._cancel_timer()
        self._broadcast_state()
        self.logger.info('[pause] game paused by admin')

    @serialized
    def admin_reset(self, conn: str) -> None:
        self._require_admin(conn)
        self._cancel_timer()
        self.state.reset()
        self._broadcast_state()
        self.logger.info('[reset] game reset by admin')

    @serialized
    def admin_call_number(self, conn: str) -> int:
        self._require_admin(conn)
        return self._call_random()

    def _call_random(self) -> int:
        state = self.state
        if not state.active:
            raise InvalidArgument('Game is not active')
        space = state.settings.max_numbers
        called = set(state.called_numbers)
        for _ in range(space * 2):
            number = self.rng.randint(1, space)
            if number not in called:
                return self._record_call(number)
        raise ResourceExhausted('Unable to find unused number')

    @serialized
    def admin_call_specific(self, conn: str, number) -> int:
        self._require_admin(conn)
        value = _parse_number(number)
        if value is None or not 1 <= value <= self.state.settings.max_numbers:
            raise InvalidArgument('Invalid number')
        if value in self.state.called_numbers:
            raise InvalidArgument('Number already called')
        return self._record_call(value)

    def _record_call(self, number: int) -> int:
        self.state.called_numbers.append(number)
        self.broadcaster.send('numberCalled', {
            'number': number,
            'timestamp': isoformat(utcnow()),
            'totalCalled': len(self.state.called_numbers),
        })
        self.logger.info(f"[call] number={number} total={len(self.state.called_numbers)}")
        return number

    @serialized
    def admin_toggle_auto_call(self, conn: str, enabled: bool) -> None:
        self._require_admin(conn)
        if enabled and not self.state.auto_call:
            self._start_timer()
        elif not enabled and self.state.auto_call:
            self._cancel_timer()
        self._push_admins()

    @serialized
    def admin_update_settings(self, conn: str, patch: Dict) -> None:
        self._require_admin(conn)
        self.state.settings = self.state.settings.patched(patch, self.state.called_numbers)
        if self.state.auto_call:
            self._start_timer()
        self._push_admins()
        self.logger.info(f"[settings] {self.state.settings.to_dict()}")

    # ---- Auto-call timer ----

    def _start_timer(self) -> None:
        self._cancel_timer()
        handle = TimerHandle(spawn=self._spawn)
        self.state.timer = handle
        handle.start(self.state.settings.call_interval, self._auto_tick)
        self.logger.info(f"[timer-set] interval={handle.interval}s")

    def _cancel_timer(self) -> None:
        handle = self.state.timer
        if handle is None:
            return
        handle.cancel()
        self.state.timer = None
        self.logger.info('[timer-cancel]')

    @serialized
    def _auto_tick(self, handle: TimerHandle) -> None:
        # A tick that was already waiting on the lock when its timer got
        # cancelled or replaced must not call a number.
        if handle is not self.state.timer or handle.cancelled:
            return
        if not self.state.active:
            return
        try:
            self._call_random()
        except ResourceExhausted as exc:
            self.logger.warning(f"[timer-exhausted] {exc.message}")
            self._cancel_timer()
            self._report_to_admins(exc)
        except BingoError as exc:
            self._report_to_admins(exc)

    def _report_to_admins(self, error: BingoError) -> None:
        for conn in list(self.state.admin_conns):
            self._send_error(conn, error)
