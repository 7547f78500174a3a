from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class GaugeReading:
    """Result of one gauge evaluation.

    `value` holds the placeholder string when `error` is set.
    """

    value: Any
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def evaluate_gauge(gauge: Any) -> GaugeReading:
    """Call the gauge's value function once, capturing any failure.

    Gauges run user code, so the failure comes back as a value and the
    caller decides how to report it.
    """
    try:
        return GaugeReading(gauge.value())
    except Exception as e:
        return GaugeReading(f"error reading gauge: {e}", error=e)
