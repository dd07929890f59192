"""
Poll cycle orchestration.

One cycle: fetch the latest sample and the history window concurrently,
then, only if both succeeded, evaluate the sample, feed the breach
tracker, log and notify new incidents. Cycles are serialised by a lock so
two evaluations never race on the tracker. Results are committed in one
synchronous step after both fetches returned, so a cycle cancelled or
invalidated mid-fetch leaves the context untouched.

Cycles run on a fixed interval while a session is active (no backoff; a
failed cycle is simply retried on the next tick) or on demand.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional

from .alerts import build_incident, evaluate
from .context import MonitorContext
from .errors import FeedFetchError
from .models import Incident, Sample, TimeRange
from .notifiers import NotifierHub
from .thingspeak import ThingSpeakClient
from .thresholds import ThresholdStore

logger = logging.getLogger(__name__)


@dataclass
class CycleResult:
    sample: Optional[Sample]
    history: List[Sample]
    incidents: List[Incident] = field(default_factory=list)


CycleListener = Callable[[CycleResult], Awaitable[None]]


class TelemetryPoller:
    def __init__(
        self,
        feed: ThingSpeakClient,
        context: MonitorContext,
        thresholds: ThresholdStore,
        notifiers: NotifierHub,
        interval: float = 20.0,
        on_cycle: Optional[CycleListener] = None,
    ) -> None:
        self._feed = feed
        self.context = context
        self._thresholds = thresholds
        self._notifiers = notifiers
        self.interval = interval
        self._on_cycle = on_cycle

        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        # bumped whenever a session ends, so in-flight fetches know they are stale
        self._generation = 0
        self.session_active = False
        self.auto_refresh = True

    # --- one cycle
    async def cycle(self) -> Optional[CycleResult]:
        async with self._lock:
            if not self.session_active:
                return None
            generation = self._generation
            self.context.connection.begin_attempt()

            results = await asyncio.gather(
                self._feed.fetch_latest(),
                self._feed.fetch_history(self.context.time_range),
                return_exceptions=True,
            )
            if generation != self._generation:
                logger.info("session ended while fetching; discarding cycle")
                return None
            for res in results:
                if isinstance(res, FeedFetchError):
                    logger.warning("telemetry fetch failed: %s", res)
                    self.context.connection.mark_error()
                    return None
                if isinstance(res, BaseException):
                    raise res
            latest, history = results

            result = self._commit(latest, history)
            # committed: notifications and fan-out finish even if the timer is cancelled now
            await asyncio.shield(self._publish(result))
            return result

    def _commit(self, latest: Optional[Sample], history: List[Sample]) -> CycleResult:
        # no awaits in here: the context changes all at once or not at all
        ctx = self.context
        result = CycleResult(sample=latest, history=history)
        ctx.history = history
        if latest is not None:
            ctx.current = latest
            flags = evaluate(latest, self._thresholds.current)
            for edge in ctx.tracker.update(flags):
                incident = build_incident(edge.key, latest)
                ctx.alert_log.append(incident)
                result.incidents.append(incident)
        ctx.last_sync = datetime.now(timezone.utc)
        ctx.connection.mark_connected()
        return result

    async def _publish(self, result: CycleResult) -> None:
        for incident in result.incidents:
            await self._notifiers.dispatch(incident)
        if self._on_cycle is not None:
            try:
                await self._on_cycle(result)
            except Exception:
                logger.exception("cycle listener failed")

    # --- interval timer
    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.cycle()
            except Exception:
                logger.exception("poll cycle crashed")

    def _start_timer(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def _stop_timer(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    # --- session lifecycle
    async def start_session(self) -> Optional[CycleResult]:
        if self.session_active:
            return await self.cycle()
        self.session_active = True
        # blocking pymongo read, kept off the event loop
        await asyncio.to_thread(self._thresholds.load)
        logger.info("monitoring session started")
        result = await self.cycle()
        if self.auto_refresh:
            self._start_timer()
        return result

    async def end_session(self) -> None:
        if not self.session_active:
            return
        self.session_active = False
        self._generation += 1
        await self._stop_timer()
        self.context.reset()
        logger.info("monitoring session ended")

    async def set_auto_refresh(self, enabled: bool) -> None:
        self.auto_refresh = enabled
        if not enabled:
            await self._stop_timer()
        elif self.session_active:
            self._start_timer()

    async def select_range(self, time_range: TimeRange) -> Optional[CycleResult]:
        self.context.time_range = time_range
        return await self.cycle()
