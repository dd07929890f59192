"""
Fire-and-forget notification of new incidents.

Each channel is a Notifier gated by one preference flag. NotifierHub runs
them independently: a disabled channel is skipped and a failing one is
logged and swallowed, so dispatch never fails the detection cycle.
"""

import logging
from abc import ABC, abstractmethod
from typing import Iterable, List

from .errors import NotificationPermissionError
from .models import Incident
from .preferences import NOTIFICATIONS, SOUND, PreferenceStore
from .ws_manager import WSManager

logger = logging.getLogger(__name__)


class Notifier(ABC):
    name: str = "notifier"
    preference: str = ""

    @abstractmethod
    async def notify(self, incident: Incident) -> None:
        ...


class AudioCueNotifier(Notifier):
    """Asks connected dashboards to play a short alarm tone."""

    name = "audio"
    preference = SOUND

    def __init__(self, ws_manager: WSManager, frequency_hz: int = 880,
                 duration_ms: int = 300, gain: float = 0.1) -> None:
        self._ws = ws_manager
        self.cue = {"frequency_hz": frequency_hz, "duration_ms": duration_ms, "gain": gain}

    async def notify(self, incident: Incident) -> None:
        await self._ws.broadcast_json({"type": "cue", "data": {**self.cue, "incident_id": incident.id}})


class SystemNotifier(Notifier):
    """Shows a title/body system notification on dashboards that granted permission."""

    name = "system"
    preference = NOTIFICATIONS

    def __init__(self, ws_manager: WSManager) -> None:
        self._ws = ws_manager

    async def notify(self, incident: Incident) -> None:
        targets = self._ws.permitted()
        if not targets:
            raise NotificationPermissionError("no dashboard granted notification permission")
        payload = {"type": "notification", "data": {"title": incident.title, "body": incident.description}}
        await self._ws.broadcast_json(payload, targets=targets)


class NotifierHub:
    def __init__(self, notifiers: Iterable[Notifier], preferences: PreferenceStore) -> None:
        self.notifiers: List[Notifier] = list(notifiers)
        self._prefs = preferences

    async def dispatch(self, incident: Incident) -> List[str]:
        """Notify on every enabled channel; returns the names that succeeded."""
        delivered = []
        for notifier in self.notifiers:
            if not self._prefs.is_enabled(notifier.preference):
                continue
            try:
                await notifier.notify(incident)
            except Exception as ex:
                logger.warning("%s notification for %s dropped: %s", notifier.name, incident.id, ex)
                continue
            delivered.append(notifier.name)
        return delivered
