"""Periodic Aggregate Reporter - System-Health Metrics and Warnings.

Samples frame and operation timings, keeps a rolling window of the last
samples per metric name, and on every scheduled tick evaluates fixed
system-health rules. Breaches are raised as ``PerformanceWarning`` objects
through the same notification sink clinical alerts use.

Rules (at most one warning per rule per metric per tick):
    - jank_percentage: share of frames over the frame budget above the limit
    - operation_average: average of an operation metric above the limit

Thread Safety:
    Samples may be recorded from worker threads; all sample buffers are
    guarded by one ``threading.Lock``.
"""

import logging
import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from threading import Lock
from typing import Iterator, Optional

from pydantic import BaseModel, Field

from vitalwatch.domain.models import PerformanceWarning
from vitalwatch.domain.ports import (
    CallbackHandle,
    EvictableCache,
    NotificationPort,
    SchedulerPort,
    TimingSource,
)

logger = logging.getLogger(__name__)

FRAME_METRIC = "frame"


class PerformanceThresholds(BaseModel):
    """Reporter settings and rule thresholds.

    Parameters:
        tick_interval_seconds: Interval between rule evaluations
        frame_budget_ms: Frame duration above which a frame counts as jank
        jank_threshold_percent: Jank share that raises a warning
        operation_threshold_ms: Average operation duration that raises a warning
        max_samples: Samples kept per metric name
        idle_metric_seconds: Metrics idle this long are dropped by optimize()
        auto_optimize: Run optimize() after a tick that raised warnings
    """

    tick_interval_seconds: float = Field(default=30.0, gt=0)
    frame_budget_ms: float = Field(default=16.67, gt=0)
    jank_threshold_percent: float = Field(default=5.0, ge=0, le=100)
    operation_threshold_ms: float = Field(default=100.0, gt=0)
    max_samples: int = Field(default=100, ge=1)
    idle_metric_seconds: float = Field(default=300.0, gt=0)
    auto_optimize: bool = False


@dataclass(frozen=True)
class MetricSample:
    name: str
    value_ms: float
    timestamp: float


@dataclass(frozen=True)
class MetricAggregate:
    name: str
    count: int
    total_ms: float
    average_ms: float
    max_ms: float


@dataclass(frozen=True)
class OptimizationReport:
    """Outcome of one optimize() call."""

    evicted: dict[str, int] = field(default_factory=dict)
    dropped_metrics: tuple[str, ...] = ()

    @property
    def total_evicted(self) -> int:
        return sum(self.evicted.values())


def _aggregate(name: str, samples: Iterator[MetricSample]) -> Optional[MetricAggregate]:
    values = [s.value_ms for s in samples]
    if not values:
        return None
    total = sum(values)
    return MetricAggregate(
        name=name,
        count=len(values),
        total_ms=total,
        average_ms=total / len(values),
        max_ms=max(values),
    )


class PerformanceReporter:
    """Rolling operation/frame timing aggregates with periodic rule checks.

    Parameters:
        sink: Notification sink for system warnings
        scheduler: Scheduler driving the periodic tick (also the sample clock)
        thresholds: Rule thresholds and buffer sizes
    """

    def __init__(
        self,
        sink: NotificationPort,
        scheduler: SchedulerPort,
        thresholds: Optional[PerformanceThresholds] = None
    ):
        self.sink = sink
        self.scheduler = scheduler
        self.thresholds = thresholds or PerformanceThresholds()
        self._lock = Lock()
        self._samples: dict[str, deque[MetricSample]] = {}
        self._frames: deque[MetricSample] = deque(maxlen=self.thresholds.max_samples)
        self._caches: list[EvictableCache] = []
        self._tick_handle: Optional[CallbackHandle] = None
        self._timing_handle: Optional[CallbackHandle] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._tick_handle is not None

    def start(self, timing_source: Optional[TimingSource] = None) -> None:
        """Schedule the periodic tick and register the frame-timing callback."""
        if self._tick_handle is not None:
            return
        self._tick_handle = self.scheduler.call_every(self.thresholds.tick_interval_seconds, self.tick)
        if timing_source is not None:
            self._timing_handle = timing_source.add_timings_callback(self._on_frame_timings)
        logger.info(f"Performance reporter started (tick every {self.thresholds.tick_interval_seconds}s)")

    def stop(self) -> None:
        """Cancel the tick and remove the frame-timing callback."""
        if self._tick_handle is None:
            return
        self._tick_handle.cancel()
        self._tick_handle = None
        if self._timing_handle is not None:
            self._timing_handle.cancel()
            self._timing_handle = None
        logger.info("Performance reporter stopped")

    def register_cache(self, cache: EvictableCache) -> None:
        with self._lock:
            if cache not in self._caches:
                self._caches.append(cache)

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------

    def record(self, name: str, value_ms: float) -> None:
        """Record one operation timing in milliseconds."""
        sample = MetricSample(name=name, value_ms=float(value_ms), timestamp=self.scheduler.now())
        with self._lock:
            buffer = self._samples.get(name)
            if buffer is None:
                buffer = deque(maxlen=self.thresholds.max_samples)
                self._samples[name] = buffer
            buffer.append(sample)

    def record_frame(self, duration_ms: float) -> None:
        sample = MetricSample(name=FRAME_METRIC, value_ms=float(duration_ms), timestamp=self.scheduler.now())
        with self._lock:
            self._frames.append(sample)

    @contextmanager
    def track(self, name: str) -> Iterator[None]:
        """Time the enclosed block and record it under ``name``."""
        started = time.perf_counter()
        try:
            yield
        finally:
            self.record(name, (time.perf_counter() - started) * 1000.0)

    def _on_frame_timings(self, durations_ms: list[float]) -> None:
        for duration in durations_ms:
            self.record_frame(duration)

    # ------------------------------------------------------------------
    # Aggregates and rules
    # ------------------------------------------------------------------

    def aggregates(self) -> dict[str, MetricAggregate]:
        """Current per-operation aggregates over the retained samples."""
        with self._lock:
            snapshot = {name: list(buffer) for name, buffer in self._samples.items()}
        result = {}
        for name, samples in snapshot.items():
            aggregate = _aggregate(name, iter(samples))
            if aggregate is not None:
                result[name] = aggregate
        return result

    def frame_aggregate(self) -> Optional[MetricAggregate]:
        with self._lock:
            frames = list(self._frames)
        return _aggregate(FRAME_METRIC, iter(frames))

    def jank_percentage(self) -> float:
        with self._lock:
            frames = [s.value_ms for s in self._frames]
        if not frames:
            return 0.0
        janky = sum(1 for value in frames if value > self.thresholds.frame_budget_ms)
        return janky / len(frames) * 100.0

    def evaluate(self) -> list[PerformanceWarning]:
        """Evaluate the system-health rules against the current aggregates."""
        warnings = []

        jank = self.jank_percentage()
        if jank > self.thresholds.jank_threshold_percent:
            warnings.append(PerformanceWarning(
                rule="jank_percentage",
                metric=FRAME_METRIC,
                message=(
                    f"Jank at {jank:.1f}% of frames over the "
                    f"{self.thresholds.frame_budget_ms}ms budget"
                ),
                value=jank,
                threshold=self.thresholds.jank_threshold_percent,
            ))

        for name, aggregate in sorted(self.aggregates().items()):
            if aggregate.average_ms > self.thresholds.operation_threshold_ms:
                warnings.append(PerformanceWarning(
                    rule="operation_average",
                    metric=name,
                    message=(
                        f"Operation '{name}' averages {aggregate.average_ms:.1f}ms over "
                        f"{aggregate.count} samples (limit {self.thresholds.operation_threshold_ms}ms)"
                    ),
                    value=aggregate.average_ms,
                    threshold=self.thresholds.operation_threshold_ms,
                ))

        return warnings

    async def tick(self) -> list[PerformanceWarning]:
        """Evaluate the rules once and send every breach to the sink."""
        warnings = self.evaluate()
        for warning in warnings:
            logger.warning(f"Performance warning [{warning.rule}] {warning.message}")
            try:
                result = await self.sink.send_system_warning(warning)
            except Exception as e:
                logger.error(f"Failed to deliver performance warning {warning.id}: {str(e)}", exc_info=True)
                continue
            if result.is_failure():
                logger.error(f"Failed to deliver performance warning {warning.id}: {result.error}")

        if warnings and self.thresholds.auto_optimize:
            self.optimize()
        return warnings

    # ------------------------------------------------------------------
    # Corrective action
    # ------------------------------------------------------------------

    def optimize(self) -> OptimizationReport:
        """Trim registered caches and drop idle metric buffers.

        Safe to call repeatedly: a second call with no new data removes nothing.
        """
        with self._lock:
            caches = list(self._caches)
            horizon = self.scheduler.now() - self.thresholds.idle_metric_seconds
            idle = [
                name for name, buffer in self._samples.items()
                if not buffer or buffer[-1].timestamp < horizon
            ]
            for name in idle:
                del self._samples[name]

        evicted = {}
        for cache in caches:
            removed = cache.evict()
            if removed:
                evicted[cache.name] = removed

        report = OptimizationReport(evicted=evicted, dropped_metrics=tuple(sorted(idle)))
        if report.total_evicted or report.dropped_metrics:
            logger.info(
                f"Optimization evicted {report.total_evicted} cache entries and dropped "
                f"{len(report.dropped_metrics)} idle metrics"
            )
        return report
