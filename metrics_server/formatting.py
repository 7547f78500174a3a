"""Per-kind rendering of metrics into JSON-ready dicts.

Provides:
- `RenderContext`: per-request rendering options.
- `format_snapshot()`: percentile fields (and optional raw samples).
- `dispatch()`: routes a metric to its formatter by `MetricKind`.

Only timers carry time semantics; histogram values are rendered as-is.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from .durations import DurationConverter
from .gauges import evaluate_gauge
from .logging_utils import get_logger
from .metrics import MetricKind, Snapshot

log = get_logger("metrics-server")


class UnknownMetricVariant(TypeError):
    """Raised when a metric's kind tag is not one of the known kinds."""


@dataclass(frozen=True)
class RenderContext:
    show_full_samples: bool = False
    pretty: bool = False
    converter: DurationConverter = field(default_factory=DurationConverter)


def format_snapshot(
    snapshot: Snapshot,
    context: RenderContext,
    convert: Optional[Callable[[float], float]] = None,
) -> Dict[str, Any]:
    """Render percentile fields of `snapshot`.

    Args:
        snapshot (Snapshot): Point-in-time samples.
        context (RenderContext): Controls whether raw `values` are included.
        convert (Callable, optional): Applied to every emitted number (timers only).

    Returns:
        Dict[str, Any]: `median`..`p999` and, if requested, `values`.
    """
    cv = convert or (lambda v: v)
    out: Dict[str, Any] = {
        "median": cv(snapshot.median),
        "p75": cv(snapshot.p75),
        "p95": cv(snapshot.p95),
        "p98": cv(snapshot.p98),
        "p99": cv(snapshot.p99),
        "p999": cv(snapshot.p999),
    }
    if context.show_full_samples:
        out["values"] = [cv(v) for v in snapshot.values]
    return out


def _metered_fields(metered: Any) -> Dict[str, Any]:
    return {
        "count": metered.count,
        "mean": metered.mean_rate,
        "m1": metered.m1_rate,
        "m5": metered.m5_rate,
        "m15": metered.m15_rate,
    }


def format_counter(counter: Any, context: RenderContext, name: Optional[str] = None) -> Dict[str, Any]:
    return {"type": "counter", "count": counter.count}


def format_gauge(gauge: Any, context: RenderContext, name: Optional[str] = None) -> Dict[str, Any]:
    reading = evaluate_gauge(gauge)
    if not reading.ok:
        log.warning("gauge_evaluation_failed", exc_info=reading.error, extra={"metric": name, "error": str(reading.error)})
    return {"type": "gauge", "value": reading.value}


def format_histogram(histogram: Any, context: RenderContext, name: Optional[str] = None) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "type": "histogram",
        "count": histogram.count,
        "min": histogram.min,
        "max": histogram.max,
        "mean": histogram.mean,
        "std_dev": histogram.std_dev,
    }
    out.update(format_snapshot(histogram.snapshot(), context))
    return out


def format_meter(meter: Any, context: RenderContext, name: Optional[str] = None) -> Dict[str, Any]:
    out: Dict[str, Any] = {"type": "meter"}
    out.update(_metered_fields(meter))
    return out


def format_timer(timer: Any, context: RenderContext, name: Optional[str] = None) -> Dict[str, Any]:
    cv = context.converter.convert
    duration: Dict[str, Any] = {
        "min": cv(timer.min),
        "max": cv(timer.max),
        "mean": cv(timer.mean),
        "std_dev": cv(timer.std_dev),
    }
    duration.update(format_snapshot(timer.snapshot(), context, convert=cv))
    return {"type": "timer", "duration": duration, "rate": _metered_fields(timer)}


_FORMATTERS: Dict[MetricKind, Callable[[Any, RenderContext, Optional[str]], Dict[str, Any]]] = {
    MetricKind.COUNTER: format_counter,
    MetricKind.GAUGE: format_gauge,
    MetricKind.HISTOGRAM: format_histogram,
    MetricKind.METER: format_meter,
    MetricKind.TIMER: format_timer,
}

_missing = set(MetricKind) - set(_FORMATTERS)
if _missing:  # pragma: no cover
    raise RuntimeError(f"No formatter for metric kinds: {sorted(k.value for k in _missing)}")


def dispatch(metric: Any, context: RenderContext, name: Optional[str] = None) -> Dict[str, Any]:
    """Render `metric` according to its kind tag.

    `name` is only used to label log records.

    Raises:
        UnknownMetricVariant: The metric has no recognised `kind`.
    """
    kind = getattr(metric, "kind", None)
    formatter = _FORMATTERS.get(kind) if isinstance(kind, MetricKind) else None
    if formatter is None:
        raise UnknownMetricVariant(f"Unsupported metric {type(metric).__name__} (kind={kind!r})")
    return formatter(metric, context, name)
