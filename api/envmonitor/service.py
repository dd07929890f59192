
from typing import List, Optional

from .context import MonitorContext
from .models import (
    AlertsOut,
    Preferences,
    PreferencesUpdate,
    Sample,
    StatusOut,
    Thresholds,
    TimeRange,
)
from .notifiers import NotifierHub
from .poller import CycleListener, TelemetryPoller
from .preferences import PreferenceStore
from .thingspeak import ThingSpeakClient
from .thresholds import ThresholdStore


class MonitorService:
    """
    Everything the surrounding application may see or do.

    Breach state and the alert log are only reachable through this class;
    the only writes it allows are acknowledgements, thresholds, preferences
    and session/poll control.
    """

    def __init__(
        self,
        feed: ThingSpeakClient,
        thresholds: ThresholdStore,
        preferences: PreferenceStore,
        notifiers: NotifierHub,
        poll_interval: float = 20.0,
        time_range: TimeRange = TimeRange.DAY,
        on_cycle: Optional[CycleListener] = None,
    ) -> None:
        self._feed = feed
        self._thresholds = thresholds
        self._preferences = preferences
        self._context = MonitorContext(time_range)
        self.poller = TelemetryPoller(
            feed, self._context, thresholds, notifiers, interval=poll_interval, on_cycle=on_cycle
        )

    # --- session / polling
    async def start_session(self) -> StatusOut:
        await self.poller.start_session()
        return self.status()

    async def end_session(self) -> None:
        await self.poller.end_session()

    async def refresh(self) -> StatusOut:
        await self.poller.cycle()
        return self.status()

    async def set_auto_refresh(self, enabled: bool) -> StatusOut:
        await self.poller.set_auto_refresh(enabled)
        return self.status()

    async def select_range(self, time_range: TimeRange) -> StatusOut:
        await self.poller.select_range(time_range)
        return self.status()

    async def close(self) -> None:
        await self.poller.end_session()
        await self._feed.aclose()

    # --- read views
    def status(self) -> StatusOut:
        ctx = self._context
        return StatusOut(
            connection=ctx.connection.status,
            last_sync=ctx.last_sync,
            session_active=self.poller.session_active,
            auto_refresh=self.poller.auto_refresh,
            time_range=ctx.time_range,
        )

    def current_sample(self) -> Optional[Sample]:
        return self._context.current

    def history(self) -> List[Sample]:
        return list(self._context.history)

    def alerts(self) -> AlertsOut:
        log = self._context.alert_log
        return AlertsOut(has_unacknowledged=log.has_unacknowledged(), alerts=list(log.list()))

    def acknowledge(self, incident_id: str) -> bool:
        return self._context.alert_log.acknowledge(incident_id)

    # --- settings surface
    def thresholds(self) -> Thresholds:
        return self._thresholds.current

    def update_thresholds(self, thresholds: Thresholds) -> Thresholds:
        return self._thresholds.update(thresholds)

    def preferences(self) -> Preferences:
        return self._preferences.current

    def update_preferences(self, change: PreferencesUpdate) -> Preferences:
        return self._preferences.update(change)
