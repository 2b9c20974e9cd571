from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from bingo.models import Participant, Settings, Winner
from bingo.services.scheduler import TimerHandle

ROLE_PENDING = 'pending'
ROLE_PLAYER = 'player'
ROLE_ADMIN = 'admin'


@dataclass
class ConnectionInfo:
    conn_id: str
    role: str = ROLE_PENDING
    participant_id: Optional[str] = None


class ConnectionRegistry:
    """Live connections keyed by their opaque connection id."""

    def __init__(self):
        self._connections: Dict[str, ConnectionInfo] = {}

    def __contains__(self, conn_id):
        return conn_id in self._connections

    def __len__(self):
        return len(self._connections)

    def open(self, conn_id: str) -> ConnectionInfo:
        info = self._connections.get(conn_id)
        if info is None:
            info = self._connections[conn_id] = ConnectionInfo(conn_id)
        return info

    def get(self, conn_id: str) -> Optional[ConnectionInfo]:
        return self._connections.get(conn_id)

    def bind_participant(self, conn_id: str, participant_id: str) -> None:
        info = self.open(conn_id)
        info.role = ROLE_PLAYER
        info.participant_id = participant_id

    def bind_admin(self, conn_id: str) -> None:
        self.open(conn_id).role = ROLE_ADMIN

    def participant_id(self, conn_id: str) -> Optional[str]:
        info = self._connections.get(conn_id)
        return info.participant_id if info is not None else None

    def unbind_participant(self, participant_id: str, keep: Optional[str] = None) -> List[str]:
        """Detach every connection bound to ``participant_id`` except ``keep``."""
        detached = []
        for info in self._connections.values():
            if info.participant_id == participant_id and info.conn_id != keep:
                info.role = ROLE_PENDING
                info.participant_id = None
                detached.append(info.conn_id)
        return detached

    def reap(self, conn_id: str) -> Optional[ConnectionInfo]:
        return self._connections.pop(conn_id, None)


@dataclass
class SessionState:
    settings: Settings = field(default_factory=Settings)
    participants: Dict[str, Participant] = field(default_factory=dict)
    called_numbers: List[int] = field(default_factory=list)
    winners: List[Winner] = field(default_factory=list)
    active: bool = False
    admin_conns: Set[str] = field(default_factory=set)
    timer: Optional[TimerHandle] = None

    @property
    def auto_call(self) -> bool:
        return self.timer is not None and self.timer.running

    def connected_participants(self) -> List[Participant]:
        return [p for p in self.participants.values() if p.connected]

    def reset(self) -> None:
        """Clear the round but keep every participant and board."""
        self.called_numbers = []
        self.winners = []
        self.active = False
        for participant in self.participants.values():
            participant.clear_marks()
