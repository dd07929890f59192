"""Shared fixtures and fakes for the monitor tests."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import List, Optional
from unittest.mock import MagicMock

import pytest

from envmonitor.context import MonitorContext
from envmonitor.errors import FeedFetchError
from envmonitor.models import FeedEntry, Sample, Thresholds, TimeRange
from envmonitor.notifiers import NotifierHub
from envmonitor.poller import TelemetryPoller
from envmonitor.preferences import PreferenceStore
from envmonitor.thresholds import ThresholdStore

BASE_TS = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def make_sample(temperature: Optional[float], humidity: Optional[float] = 50.0, n: int = 0) -> Sample:
    return Sample(timestamp=BASE_TS + timedelta(minutes=n), temperature=temperature, humidity=humidity)


def make_raw_sample(field1, field2="50", n: int = 0) -> Sample:
    """Sample built the way the feed delivers it (text fields)."""
    return Sample.from_feed(FeedEntry(created_at=BASE_TS + timedelta(minutes=n), field1=field1, field2=field2))


class FakeFeed:
    """Stand-in for ThingSpeakClient: serves queued samples, can fail or block on demand."""

    def __init__(self, samples: Optional[List[Optional[Sample]]] = None) -> None:
        self.queue = list(samples or [])
        self.history: List[Sample] = []
        self.fail_latest = False
        self.fail_history = False
        self.gate: Optional[asyncio.Event] = None
        self.ranges: List[TimeRange] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    async def fetch_latest(self) -> Optional[Sample]:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if self.fail_latest:
                raise FeedFetchError("failed to fetch current reading: boom")
            return self.queue.pop(0) if self.queue else None
        finally:
            self.in_flight -= 1

    async def fetch_history(self, time_range: TimeRange) -> List[Sample]:
        self.ranges.append(time_range)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_history:
            raise FeedFetchError("failed to fetch historical data: boom")
        return list(self.history)

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def thresholds() -> Thresholds:
    return Thresholds(temp_high=30, temp_low=15, hum_high=75, hum_low=30)


def make_store(thresholds: Thresholds) -> ThresholdStore:
    remote = MagicMock()
    remote.get_thresholds.return_value = None
    return ThresholdStore(remote, None, thresholds)


@pytest.fixture
def make_poller(thresholds):
    def _make(feed, hub: Optional[NotifierHub] = None, store: Optional[ThresholdStore] = None,
              on_cycle=None) -> TelemetryPoller:
        poller = TelemetryPoller(
            feed,
            MonitorContext(),
            store or make_store(thresholds),
            hub or NotifierHub([], PreferenceStore(None)),
            interval=3600,
            on_cycle=on_cycle,
        )
        # tests drive cycles by hand
        poller.auto_refresh = False
        return poller

    return _make
