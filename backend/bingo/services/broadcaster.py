import json
import logging
from typing import Callable, Dict, Iterable, Optional

from bingo.services.state import SessionState

Sender = Callable[[str, str], None]


def encode(event_type: str, data) -> str:
    return json.dumps({'type': event_type, 'data': data})


class Broadcaster:
    """Fan events out to participant and admin connections.

    ``sender(conn_id, text)`` must not block; a failure on one connection is
    logged and delivery continues with the rest.
    """

    def __init__(self, state: SessionState, sender: Sender, logger: Optional[logging.Logger] = None):
        self.state = state
        self.sender = sender
        self.logger = logger or logging.getLogger(__name__)

    def _deliver(self, conn_id: str, text: str) -> bool:
        try:
            self.sender(conn_id, text)
            return True
        except Exception as exc:
            self.logger.warning(f"[send-fail] conn={conn_id} error={exc!r}")
            return False

    def send_to(self, conn_id: Optional[str], event_type: str, data: Dict) -> bool:
        if not conn_id:
            return False
        return self._deliver(conn_id, encode(event_type, data))

    def send(self, event_type: str, data: Dict, exclude: Iterable[str] = ()) -> int:
        """Send to every connected participant and every admin not in ``exclude``."""
        text = encode(event_type, data)
        skip = set(exclude)
        delivered = 0
        for participant in list(self.state.participants.values()):
            conn_id = participant.conn_id
            if not participant.connected or not conn_id or conn_id in skip:
                continue
            skip.add(conn_id)
            delivered += self._deliver(conn_id, text)
        for conn_id in list(self.state.admin_conns):
            if conn_id in skip:
                continue
            skip.add(conn_id)
            delivered += self._deliver(conn_id, text)
        return delivered

    def send_admins(self, event_type: str, data: Dict) -> int:
        text = encode(event_type, data)
        return sum(self._deliver(conn_id, text) for conn_id in list(self.state.admin_conns))
