from __future__ import annotations

import enum
from typing import Iterable, List


class DurationUnit(enum.Enum):
    """Output unit for timer durations, valued in nanoseconds per unit."""

    NANOSECONDS = 1
    MICROSECONDS = 1_000
    MILLISECONDS = 1_000_000
    SECONDS = 1_000_000_000
    MINUTES = 60 * 1_000_000_000
    HOURS = 3_600 * 1_000_000_000
    DAYS = 86_400 * 1_000_000_000

    @classmethod
    def parse(cls, name: str) -> "DurationUnit":
        try:
            return cls[str(name).strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown duration unit: {name!r}") from None

    @property
    def nanos(self) -> int:
        return self.value


class DurationConverter:
    """Converts nanosecond values into the configured unit."""

    def __init__(self, unit: DurationUnit = DurationUnit.MILLISECONDS) -> None:
        self.unit = unit
        self._divisor = float(unit.nanos)

    def convert(self, ns: float) -> float:
        return ns / self._divisor

    def convert_all(self, values: Iterable[float]) -> List[float]:
        return [v / self._divisor for v in values]
