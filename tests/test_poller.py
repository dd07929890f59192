"""Poll cycle orchestration, including the end-to-end breach scenarios."""

import asyncio
import threading
from unittest.mock import AsyncMock, MagicMock

import pytest

from envmonitor.models import BreachKey, ConnectionStatus, IncidentStatus, Thresholds, TimeRange
from envmonitor.notifiers import Notifier, NotifierHub
from envmonitor.preferences import PreferenceStore

from conftest import FakeFeed, make_raw_sample, make_sample, make_store


class RecordingNotifier(Notifier):
    name = "recording"
    preference = "sound_enabled"

    def __init__(self, fail=False):
        self.seen = []
        self.fail = fail

    async def notify(self, incident):
        self.seen.append(incident)
        if self.fail:
            raise RuntimeError("audio context unavailable")


class BlockingNotifier(Notifier):
    name = "blocking"
    preference = "sound_enabled"

    def __init__(self):
        self.entered = asyncio.Event()
        self.release = asyncio.Event()
        self.done = False

    async def notify(self, incident):
        self.entered.set()
        await self.release.wait()
        self.done = True


# =============================================================================
# END-TO-END SCENARIOS
# =============================================================================

class TestScenarios:
    @pytest.mark.asyncio
    async def test_single_rising_edge_then_silent_clear(self, make_poller):
        feed = FakeFeed([make_sample(t, 50.0, n) for n, t in enumerate((28, 31, 31, 29))])
        poller = make_poller(feed)

        results = [await poller.start_session()]
        for _ in range(3):
            results.append(await poller.cycle())

        assert [[i.breach_key for i in r.incidents] for r in results] == [
            [], [BreachKey.TEMP_HIGH], [], [],
        ]
        assert poller.context.tracker.active == frozenset()
        assert len(poller.context.alert_log) == 1

    @pytest.mark.asyncio
    async def test_dropout_clears_breach_and_realerts(self, make_poller):
        # intended fail-safe: a non-numeric reading releases the breach, so the
        # next hot sample raises a second incident for the same condition
        feed = FakeFeed([make_sample(32.0), make_raw_sample("nan"), make_raw_sample("32")])
        poller = make_poller(feed)

        first = await poller.start_session()
        assert [i.breach_key for i in first.incidents] == [BreachKey.TEMP_HIGH]

        dropped = await poller.cycle()
        assert dropped.incidents == []
        assert BreachKey.TEMP_HIGH not in poller.context.tracker.active

        again = await poller.cycle()
        assert [i.breach_key for i in again.incidents] == [BreachKey.TEMP_HIGH]
        assert len(poller.context.alert_log) == 2

    @pytest.mark.asyncio
    async def test_inverted_thresholds_raise_both(self, make_poller):
        inverted = Thresholds(temp_high=10, temp_low=20, hum_high=75, hum_low=30)
        poller = make_poller(FakeFeed([make_sample(15.0)]), store=make_store(inverted))

        result = await poller.start_session()

        assert {i.breach_key for i in result.incidents} == {BreachKey.TEMP_HIGH, BreachKey.TEMP_LOW}
        assert len(poller.context.alert_log) == 2

    @pytest.mark.asyncio
    async def test_alert_log_keeps_twenty_most_recent(self, make_poller):
        # alternate hot / nominal so every other cycle is a fresh entering edge
        samples = []
        for n in range(25):
            samples += [make_sample(31.0 + n, 50.0, 2 * n), make_sample(20.0, 50.0, 2 * n + 1)]
        poller = make_poller(FakeFeed(samples))

        await poller.start_session()
        for _ in range(len(samples) - 1):
            await poller.cycle()

        log = poller.context.alert_log.list()
        assert len(log) == 20
        assert log[0].description == "High breach: 55°C"
        assert log[-1].description == "High breach: 36°C"


# =============================================================================
# FAILURES
# =============================================================================

class TestFetchFailure:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("which", ["fail_latest", "fail_history"])
    async def test_failure_freezes_state(self, make_poller, which):
        feed = FakeFeed([make_sample(31.0), make_sample(10.0)])
        feed.history = [make_sample(25.0)]
        poller = make_poller(feed)
        await poller.start_session()
        ctx = poller.context
        before = (ctx.current, list(ctx.history), ctx.tracker.active, ctx.last_sync)

        setattr(feed, which, True)
        assert await poller.cycle() is None

        assert ctx.connection.status is ConnectionStatus.ERROR
        assert (ctx.current, ctx.history, ctx.tracker.active, ctx.last_sync) == before
        assert len(ctx.alert_log) == 1

    @pytest.mark.asyncio
    async def test_recovery_after_error(self, make_poller):
        feed = FakeFeed([make_sample(31.0), make_sample(31.5)])
        poller = make_poller(feed)
        await poller.start_session()

        feed.fail_latest = True
        await poller.cycle()
        feed.fail_latest = False
        result = await poller.cycle()

        assert poller.context.connection.status is ConnectionStatus.CONNECTED
        # breach state survived the outage, so no duplicate alert
        assert result.incidents == []

    @pytest.mark.asyncio
    async def test_notifier_failure_does_not_abort_cycle(self, make_poller):
        broken = RecordingNotifier(fail=True)
        poller = make_poller(FakeFeed([make_sample(31.0)]), hub=NotifierHub([broken], PreferenceStore(None)))

        result = await poller.start_session()

        assert len(broken.seen) == 1
        assert len(result.incidents) == 1
        assert len(poller.context.alert_log) == 1
        assert poller.context.connection.status is ConnectionStatus.CONNECTED

    @pytest.mark.asyncio
    async def test_listener_failure_is_contained(self, make_poller):
        listener = AsyncMock(side_effect=RuntimeError("redis down"))
        poller = make_poller(FakeFeed([make_sample(31.0)]), on_cycle=listener)

        result = await poller.start_session()

        listener.assert_awaited_once_with(result)
        assert poller.context.last_sync is not None


# =============================================================================
# CYCLE MECHANICS
# =============================================================================

class TestCycle:
    @pytest.mark.asyncio
    async def test_no_cycle_without_session(self, make_poller):
        feed = FakeFeed([make_sample(31.0)])
        poller = make_poller(feed)
        assert await poller.cycle() is None
        assert feed.queue  # nothing fetched

    @pytest.mark.asyncio
    async def test_success_updates_display_state(self, make_poller):
        feed = FakeFeed([make_sample(22.0)])
        feed.history = [make_sample(21.0, n=1), make_sample(22.0, n=2)]
        poller = make_poller(feed)

        await poller.start_session()

        ctx = poller.context
        assert ctx.current.temperature == 22.0
        assert len(ctx.history) == 2
        assert ctx.last_sync is not None
        assert ctx.connection.status is ConnectionStatus.CONNECTED

    @pytest.mark.asyncio
    async def test_empty_latest_feed_still_connects(self, make_poller):
        poller = make_poller(FakeFeed([]))
        result = await poller.start_session()
        assert result.sample is None
        assert poller.context.connection.status is ConnectionStatus.CONNECTED

    @pytest.mark.asyncio
    async def test_cycles_do_not_overlap(self, make_poller):
        feed = FakeFeed([make_sample(31.0), make_sample(31.0), make_sample(31.0)])
        poller = make_poller(feed)
        poller.session_active = True

        results = await asyncio.gather(poller.cycle(), poller.cycle(), poller.cycle())

        assert feed.max_in_flight == 1
        assert sum(len(r.incidents) for r in results) == 1

    @pytest.mark.asyncio
    async def test_threshold_change_affects_later_cycles_only(self, make_poller, thresholds):
        store = make_store(thresholds)
        poller = make_poller(FakeFeed([make_sample(28.0), make_sample(28.0)]), store=store)
        first = await poller.start_session()

        store._remote.save_thresholds = MagicMock()
        store.update(thresholds.model_copy(update={"temp_high": 25.0}))
        second = await poller.cycle()

        assert first.incidents == []
        assert [i.breach_key for i in second.incidents] == [BreachKey.TEMP_HIGH]
        assert poller.context.alert_log.list()[0].status is IncidentStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_select_range_refetches_window(self, make_poller):
        feed = FakeFeed([make_sample(22.0), make_sample(22.0)])
        poller = make_poller(feed)
        await poller.start_session()

        await poller.select_range(TimeRange.MONTH)

        assert feed.ranges == [TimeRange.DAY, TimeRange.MONTH]
        assert poller.context.time_range is TimeRange.MONTH


# =============================================================================
# SESSION / CANCELLATION
# =============================================================================

class TestSession:
    @pytest.mark.asyncio
    async def test_start_loads_thresholds(self, make_poller, thresholds):
        store = make_store(thresholds)
        poller = make_poller(FakeFeed([make_sample(22.0)]), store=store)
        await poller.start_session()
        store._remote.get_thresholds.assert_called_once()

    @pytest.mark.asyncio
    async def test_threshold_load_runs_off_the_event_loop(self, make_poller, thresholds):
        store = make_store(thresholds)
        seen = []
        store._remote.get_thresholds.side_effect = lambda: seen.append(threading.get_ident())
        poller = make_poller(FakeFeed([make_sample(22.0)]), store=store)

        await poller.start_session()

        assert len(seen) == 1
        assert seen[0] != threading.get_ident()

    @pytest.mark.asyncio
    async def test_end_session_resets_context(self, make_poller):
        poller = make_poller(FakeFeed([make_sample(31.0), make_sample(31.0)]))
        await poller.start_session()

        await poller.end_session()

        ctx = poller.context
        assert ctx.tracker.active == frozenset()
        assert len(ctx.alert_log) == 0
        assert ctx.current is None
        assert not poller.session_active
        assert await poller.cycle() is None

    @pytest.mark.asyncio
    async def test_session_end_mid_fetch_discards_results(self, make_poller):
        feed = FakeFeed([make_sample(31.0)])
        feed.gate = asyncio.Event()
        poller = make_poller(feed)
        poller.session_active = True

        pending = asyncio.ensure_future(poller.cycle())
        await asyncio.sleep(0.01)
        await poller.end_session()
        feed.gate.set()

        assert await pending is None
        assert poller.context.current is None
        assert len(poller.context.alert_log) == 0
        assert poller.context.tracker.active == frozenset()

    @pytest.mark.asyncio
    async def test_cancelled_cycle_applies_nothing(self, make_poller):
        feed = FakeFeed([make_sample(31.0)])
        feed.gate = asyncio.Event()
        poller = make_poller(feed)
        poller.session_active = True

        pending = asyncio.ensure_future(poller.cycle())
        await asyncio.sleep(0.01)
        pending.cancel()
        with pytest.raises(asyncio.CancelledError):
            await pending

        assert poller.context.current is None
        assert poller.context.last_sync is None
        assert poller.context.tracker.active == frozenset()

    @pytest.mark.asyncio
    async def test_timer_polls_on_interval(self, make_poller):
        feed = FakeFeed([make_sample(22.0)] * 50)
        poller = make_poller(feed)
        poller.interval = 0.01
        poller.auto_refresh = True

        await poller.start_session()
        await asyncio.sleep(0.1)
        await poller.set_auto_refresh(False)
        fetched = len(feed.ranges)
        await asyncio.sleep(0.05)

        assert fetched > 2
        assert len(feed.ranges) == fetched
        await poller.end_session()

    @pytest.mark.asyncio
    async def test_disabling_auto_refresh_lets_committed_cycle_finish(self, make_poller):
        notifier = BlockingNotifier()
        listener = AsyncMock()
        poller = make_poller(
            FakeFeed([make_sample(22.0), make_sample(31.0)]),
            hub=NotifierHub([notifier], PreferenceStore(None)),
            on_cycle=listener,
        )
        poller.interval = 0.01
        poller.auto_refresh = True

        await poller.start_session()
        await asyncio.wait_for(notifier.entered.wait(), timeout=1)
        # the timer cycle is now mid-dispatch with its incident already committed
        await poller.set_auto_refresh(False)
        notifier.release.set()
        await asyncio.sleep(0.05)

        assert notifier.done
        assert listener.await_count == 2
        assert len(listener.await_args.args[0].incidents) == 1
        await poller.end_session()
