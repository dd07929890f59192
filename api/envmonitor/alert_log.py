
from collections import deque
from typing import Deque, Tuple

from .models import Incident, IncidentStatus

ALERT_LOG_CAPACITY = 20


class AlertLog:
    """Newest-first incident log; the oldest entries fall off once full."""

    def __init__(self, capacity: int = ALERT_LOG_CAPACITY) -> None:
        self._entries: Deque[Incident] = deque(maxlen=capacity)

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, incident: Incident) -> None:
        # appendleft on a bounded deque drops from the right (oldest) end
        self._entries.appendleft(incident)

    def acknowledge(self, incident_id: str) -> bool:
        for incident in tuple(self._entries):
            if incident.id == incident_id:
                if incident.status is IncidentStatus.ACTIVE:
                    incident.status = IncidentStatus.ACKNOWLEDGED
                    return True
                return False
        return False

    def list(self) -> Tuple[Incident, ...]:
        # copies, so callers cannot flip status behind the log's back
        return tuple(i.model_copy() for i in tuple(self._entries))

    def has_unacknowledged(self) -> bool:
        return any(i.status is IncidentStatus.ACTIVE for i in tuple(self._entries))

    def clear(self) -> None:
        self._entries.clear()
