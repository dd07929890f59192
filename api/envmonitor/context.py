
import logging
from datetime import datetime
from typing import Dict, FrozenSet, List, Optional

from .alert_log import AlertLog
from .breach_state import BreachTracker
from .models import ConnectionStatus, Sample, TimeRange

logger = logging.getLogger(__name__)

# target status -> statuses it may be entered from
_ALLOWED: Dict[ConnectionStatus, FrozenSet[ConnectionStatus]] = {
    ConnectionStatus.RECONNECTING: frozenset(ConnectionStatus),
    ConnectionStatus.CONNECTED: frozenset({ConnectionStatus.RECONNECTING}),
    ConnectionStatus.ERROR: frozenset({ConnectionStatus.RECONNECTING, ConnectionStatus.CONNECTED}),
}


class ConnectionState:
    def __init__(self) -> None:
        self.status = ConnectionStatus.RECONNECTING

    def _move(self, target: ConnectionStatus) -> None:
        if self.status not in _ALLOWED[target]:
            raise ValueError(f"illegal connection transition {self.status.value} -> {target.value}")
        if self.status is not target:
            logger.debug("connection %s -> %s", self.status.value, target.value)
        self.status = target

    def begin_attempt(self) -> None:
        self._move(ConnectionStatus.RECONNECTING)

    def mark_connected(self) -> None:
        self._move(ConnectionStatus.CONNECTED)

    def mark_error(self) -> None:
        self._move(ConnectionStatus.ERROR)


class MonitorContext:
    """
    All mutable detection state for one monitored station and session.

    Built empty, reset when the session ends. Only the poller's commit path
    writes to it.
    """

    def __init__(self, time_range: TimeRange = TimeRange.DAY) -> None:
        self.tracker = BreachTracker()
        self.alert_log = AlertLog()
        self.connection = ConnectionState()
        self.time_range = time_range
        self.current: Optional[Sample] = None
        self.history: List[Sample] = []
        self.last_sync: Optional[datetime] = None

    def reset(self) -> None:
        self.tracker.reset()
        self.alert_log.clear()
        self.connection = ConnectionState()
        self.current = None
        self.history = []
        self.last_sync = None
