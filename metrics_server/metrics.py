"""Thread-safe metric primitives and the registry that holds them.

Provides counters, gauges, histograms, meters and timers. Histograms and
timers keep a sliding window of recent samples for percentiles; running
count/min/max/mean/std_dev cover every update. Intended to be rendered by
`metrics_server.serializer` and not meant to replace Prometheus.

Google-style docstrings for automatic documentation.
"""

from __future__ import annotations

import enum
import math
import threading
import time
from collections import OrderedDict, deque
from contextlib import contextmanager
from typing import Any, Callable, Iterator, List, Optional, Sequence, Tuple


class MetricKind(enum.Enum):
    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"
    METER = "meter"
    TIMER = "timer"


class Snapshot:
    """Immutable, sorted view of a reservoir at one instant."""

    def __init__(self, values: Sequence[float]) -> None:
        self._values: Tuple[float, ...] = tuple(sorted(values))

    def value(self, quantile: float) -> float:
        """Return the value at `quantile` (0..1), linearly interpolated.

        Args:
            quantile (float): Requested quantile.

        Returns:
            float: Interpolated sample value, or 0.0 for an empty snapshot.
        """
        if not 0.0 <= quantile <= 1.0:
            raise ValueError(f"{quantile} is not in [0..1]")
        xs = self._values
        if not xs:
            return 0.0
        pos = quantile * (len(xs) + 1)
        if pos < 1:
            return float(xs[0])
        if pos >= len(xs):
            return float(xs[-1])
        lower = xs[int(pos) - 1]
        upper = xs[int(pos)]
        return lower + (pos - math.floor(pos)) * (upper - lower)

    @property
    def median(self) -> float:
        return self.value(0.5)

    @property
    def p75(self) -> float:
        return self.value(0.75)

    @property
    def p95(self) -> float:
        return self.value(0.95)

    @property
    def p98(self) -> float:
        return self.value(0.98)

    @property
    def p99(self) -> float:
        return self.value(0.99)

    @property
    def p999(self) -> float:
        return self.value(0.999)

    @property
    def values(self) -> Tuple[float, ...]:
        return self._values

    @property
    def size(self) -> int:
        return len(self._values)


class Counter:
    kind = MetricKind.COUNTER

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._count = 0

    def inc(self, by: int = 1) -> None:
        with self._lock:
            self._count += by

    def dec(self, by: int = 1) -> None:
        with self._lock:
            self._count -= by

    @property
    def count(self) -> int:
        return self._count


class Gauge:
    """Reports whatever `fn` returns; `fn` is user code and may raise."""

    kind = MetricKind.GAUGE

    def __init__(self, fn: Callable[[], Any]) -> None:
        self._fn = fn

    def value(self) -> Any:
        return self._fn()


class Histogram:
    """Distribution of values with a bounded window of recent samples.

    Args:
        reservoir_size (int): Max samples retained for percentiles. Defaults to 1028.
    """

    kind = MetricKind.HISTOGRAM

    def __init__(self, reservoir_size: int = 1028) -> None:
        self._lock = threading.Lock()
        self._samples: deque = deque(maxlen=max(1, int(reservoir_size)))
        self._count = 0
        self._min: Optional[float] = None
        self._max: Optional[float] = None
        self._sum = 0.0
        # Welford running variance
        self._mean = 0.0
        self._m2 = 0.0

    def update(self, value: float) -> None:
        with self._lock:
            self._samples.append(value)
            self._count += 1
            self._sum += value
            self._min = value if self._min is None else min(self._min, value)
            self._max = value if self._max is None else max(self._max, value)
            delta = value - self._mean
            self._mean += delta / self._count
            self._m2 += delta * (value - self._mean)

    @property
    def count(self) -> int:
        return self._count

    @property
    def min(self) -> float:
        return self._min if self._min is not None else 0.0

    @property
    def max(self) -> float:
        return self._max if self._max is not None else 0.0

    @property
    def mean(self) -> float:
        with self._lock:
            return self._sum / self._count if self._count else 0.0

    @property
    def std_dev(self) -> float:
        with self._lock:
            if self._count < 2:
                return 0.0
            return math.sqrt(self._m2 / (self._count - 1))

    def snapshot(self) -> Snapshot:
        with self._lock:
            return Snapshot(list(self._samples))


class _EWMA:
    """Exponentially weighted moving average over 5-second ticks."""

    TICK_S = 5.0

    def __init__(self, minutes: float) -> None:
        self._alpha = 1.0 - math.exp(-self.TICK_S / 60.0 / minutes)
        self._uncounted = 0
        self._rate = 0.0
        self._initialized = False

    def update(self, n: int) -> None:
        self._uncounted += n

    def tick(self) -> None:
        instant = self._uncounted / self.TICK_S
        self._uncounted = 0
        if self._initialized:
            self._rate += self._alpha * (instant - self._rate)
        else:
            self._rate = instant
            self._initialized = True

    @property
    def rate(self) -> float:
        """Events per second."""
        return self._rate


class Meter:
    """Marks events and reports mean and 1/5/15-minute rates (per second).

    Args:
        clock (Callable[[], float]): Monotonic seconds. Defaults to `time.monotonic`.
    """

    kind = MetricKind.METER

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._count = 0
        self._start = clock()
        self._last_tick = self._start
        self._m1 = _EWMA(1)
        self._m5 = _EWMA(5)
        self._m15 = _EWMA(15)

    def _tick_if_necessary(self) -> None:
        now = self._clock()
        ticks = int((now - self._last_tick) // _EWMA.TICK_S)
        if ticks <= 0:
            return
        self._last_tick += ticks * _EWMA.TICK_S
        for _ in range(ticks):
            for avg in (self._m1, self._m5, self._m15):
                avg.tick()

    def mark(self, n: int = 1) -> None:
        with self._lock:
            self._tick_if_necessary()
            self._count += n
            for avg in (self._m1, self._m5, self._m15):
                avg.update(n)

    @property
    def count(self) -> int:
        return self._count

    @property
    def mean_rate(self) -> float:
        with self._lock:
            elapsed = self._clock() - self._start
            if self._count == 0 or elapsed <= 0:
                return 0.0
            return self._count / elapsed

    @property
    def m1_rate(self) -> float:
        with self._lock:
            self._tick_if_necessary()
            return self._m1.rate

    @property
    def m5_rate(self) -> float:
        with self._lock:
            self._tick_if_necessary()
            return self._m5.rate

    @property
    def m15_rate(self) -> float:
        with self._lock:
            self._tick_if_necessary()
            return self._m15.rate


class Timer:
    """Histogram of durations in nanoseconds plus a meter of calls."""

    kind = MetricKind.TIMER

    def __init__(self, reservoir_size: int = 1028, clock: Callable[[], float] = time.monotonic) -> None:
        self._histogram = Histogram(reservoir_size)
        self._meter = Meter(clock)

    def update(self, duration_ns: int) -> None:
        if duration_ns < 0:
            return
        self._histogram.update(duration_ns)
        self._meter.mark()

    @contextmanager
    def time(self) -> Iterator[None]:
        start = time.perf_counter_ns()
        try:
            yield
        finally:
            self.update(time.perf_counter_ns() - start)

    @property
    def count(self) -> int:
        return self._histogram.count

    @property
    def min(self) -> float:
        return self._histogram.min

    @property
    def max(self) -> float:
        return self._histogram.max

    @property
    def mean(self) -> float:
        return self._histogram.mean

    @property
    def std_dev(self) -> float:
        return self._histogram.std_dev

    def snapshot(self) -> Snapshot:
        return self._histogram.snapshot()

    @property
    def mean_rate(self) -> float:
        return self._meter.mean_rate

    @property
    def m1_rate(self) -> float:
        return self._meter.m1_rate

    @property
    def m5_rate(self) -> float:
        return self._meter.m5_rate

    @property
    def m15_rate(self) -> float:
        return self._meter.m15_rate


class MetricsRegistry:
    """Named metrics in insertion order.

    Main methods:
      - register: add an existing metric under a name.
      - counter/gauge/histogram/meter/timer: get or create by name.
      - items: stable copy of (name, metric) pairs for rendering.
    """

    def __init__(self, reservoir_size: int = 1028) -> None:
        self._lock = threading.Lock()
        self._metrics: "OrderedDict[str, Any]" = OrderedDict()
        self.reservoir_size = reservoir_size

    def register(self, name: str, metric: Any) -> Any:
        with self._lock:
            if name in self._metrics:
                raise ValueError(f"A metric named {name} already exists")
            self._metrics[name] = metric
            return metric

    def _get_or_add(self, name: str, kind: MetricKind, factory: Callable[[], Any]) -> Any:
        with self._lock:
            existing = self._metrics.get(name)
            if existing is not None:
                if getattr(existing, "kind", None) is not kind:
                    raise ValueError(f"{name} is already registered as a different kind of metric")
                return existing
            metric = factory()
            self._metrics[name] = metric
            return metric

    def counter(self, name: str) -> Counter:
        return self._get_or_add(name, MetricKind.COUNTER, Counter)

    def gauge(self, name: str, fn: Callable[[], Any]) -> Gauge:
        return self._get_or_add(name, MetricKind.GAUGE, lambda: Gauge(fn))

    def histogram(self, name: str) -> Histogram:
        return self._get_or_add(name, MetricKind.HISTOGRAM, lambda: Histogram(self.reservoir_size))

    def meter(self, name: str) -> Meter:
        return self._get_or_add(name, MetricKind.METER, Meter)

    def timer(self, name: str) -> Timer:
        return self._get_or_add(name, MetricKind.TIMER, lambda: Timer(self.reservoir_size))

    def remove(self, name: str) -> bool:
        with self._lock:
            return self._metrics.pop(name, None) is not None

    def names(self) -> List[str]:
        with self._lock:
            return list(self._metrics.keys())

    def items(self) -> List[Tuple[str, Any]]:
        with self._lock:
            return list(self._metrics.items())

    def __iter__(self) -> Iterator[Tuple[str, Any]]:
        return iter(self.items())

    def __len__(self) -> int:
        return len(self._metrics)
