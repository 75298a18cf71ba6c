"""Tests for the periodic aggregate reporter."""

import pytest

from conftest import ManualScheduler, RecordingSink
from vitalwatch.domain.models import PerformanceWarning
from vitalwatch.domain.performance import FRAME_METRIC, PerformanceReporter, PerformanceThresholds
from vitalwatch.domain.ports import CallbackHandle, EvictableCache, TimingSource


class FakeTimingSource(TimingSource):
    def __init__(self):
        self.callbacks = []

    def add_timings_callback(self, callback) -> CallbackHandle:
        self.callbacks.append(callback)
        return CallbackHandle(lambda: self.callbacks.remove(callback))

    def emit(self, durations):
        for callback in list(self.callbacks):
            callback(durations)


class FakeCache(EvictableCache):
    name = "fake_cache"

    def __init__(self, oversized: int):
        self.oversized = oversized

    def evict(self) -> int:
        removed, self.oversized = self.oversized, 0
        return removed


@pytest.fixture
def reporter(sink, scheduler) -> PerformanceReporter:
    return PerformanceReporter(
        sink=sink,
        scheduler=scheduler,
        thresholds=PerformanceThresholds(operation_threshold_ms=100, tick_interval_seconds=30),
    )


class TestLifecycle:
    """start()/stop() toggle the tick and the frame-timing callback."""

    def test_start_and_stop(self, reporter, scheduler):
        source = FakeTimingSource()

        reporter.start(source)
        reporter.start(source)

        assert reporter.is_running
        assert scheduler.pending == 1
        assert len(source.callbacks) == 1

        reporter.stop()

        assert not reporter.is_running
        assert scheduler.pending == 0
        assert source.callbacks == []

    def test_stop_without_start_is_harmless(self, reporter):
        reporter.stop()
        assert not reporter.is_running


class TestRules:
    """System-health rule evaluation."""

    @pytest.mark.asyncio
    async def test_slow_operation_raises_one_warning_per_tick(self, reporter, sink, scheduler):
        reporter.start()
        for value in (150, 160, 170, 140, 155, 145, 165, 150, 160, 145):
            reporter.record("db.query", value)

        await scheduler.advance(30)

        assert len(sink.warnings) == 1
        warning = sink.warnings[0]
        assert warning.rule == "operation_average"
        assert warning.metric == "db.query"
        assert warning.value == pytest.approx(154.0)

        await scheduler.advance(30)
        assert len(sink.warnings) == 2
        reporter.stop()

    @pytest.mark.asyncio
    async def test_fast_operations_raise_nothing(self, reporter, sink):
        for _ in range(10):
            reporter.record("db.query", 20)

        assert await reporter.tick() == []
        assert sink.calls == []

    @pytest.mark.asyncio
    async def test_jank_rule(self, reporter, sink):
        source = FakeTimingSource()
        reporter.start(source)
        source.emit([10.0] * 90 + [40.0] * 10)

        warnings = await reporter.tick()

        assert reporter.jank_percentage() == pytest.approx(10.0)
        assert [w.rule for w in warnings] == ["jank_percentage"]
        assert warnings[0].metric == FRAME_METRIC
        reporter.stop()

    def test_samples_are_bounded_per_metric(self, sink, scheduler):
        reporter = PerformanceReporter(sink, scheduler, PerformanceThresholds(max_samples=100))
        for i in range(150):
            reporter.record("render", 200 if i < 50 else 10)

        aggregate = reporter.aggregates()["render"]

        assert aggregate.count == 100
        assert aggregate.average_ms == pytest.approx(10.0)

    @pytest.mark.asyncio
    async def test_sink_failures_are_contained(self, scheduler):
        reporter = PerformanceReporter(RecordingSink(raise_error=True), scheduler)
        reporter.record("slow", 500)

        warnings = await reporter.tick()

        assert len(warnings) == 1

    def test_track_records_elapsed_time(self, reporter):
        with reporter.track("block"):
            pass
        assert reporter.aggregates()["block"].count == 1

    def test_warning_must_describe_breach(self):
        with pytest.raises(ValueError):
            PerformanceWarning(rule="operation_average", metric="x", message="m", value=50, threshold=100)


class TestOptimize:
    """optimize() is idempotent."""

    def test_optimize_evicts_caches_once(self, reporter):
        cache = FakeCache(oversized=25)
        reporter.register_cache(cache)

        first = reporter.optimize()
        second = reporter.optimize()

        assert first.evicted == {"fake_cache": 25}
        assert first.total_evicted == 25
        assert second.total_evicted == 0

    @pytest.mark.asyncio
    async def test_optimize_drops_idle_metrics(self, reporter, scheduler):
        reporter.record("old.metric", 10)
        await scheduler.advance(400)
        reporter.record("new.metric", 10)

        report = reporter.optimize()

        assert report.dropped_metrics == ("old.metric",)
        assert set(reporter.aggregates()) == {"new.metric"}
        assert reporter.optimize().dropped_metrics == ()

    @pytest.mark.asyncio
    async def test_auto_optimize_after_breach(self, sink):
        scheduler = ManualScheduler()
        reporter = PerformanceReporter(sink, scheduler, PerformanceThresholds(auto_optimize=True))
        cache = FakeCache(oversized=5)
        reporter.register_cache(cache)
        reporter.record("slow", 500)

        await reporter.tick()

        assert cache.oversized == 0
