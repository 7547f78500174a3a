"""Renders a metrics registry as one JSON object.

Provides:
- `JsonObjectWriter`: streams a top-level object one field at a time.
- `RegistrySerializer`: filters entries by name prefix, renders each one
  fully before writing it, and skips entries whose rendering fails.

Google-style docstrings for automatic documentation.
"""

from __future__ import annotations

import json
from typing import Any, Iterator, List, Optional

from .formatting import RenderContext, UnknownMetricVariant, dispatch
from .logging_utils import get_logger
from .metrics import MetricsRegistry
from .process_metrics import PROCESS_SECTION, ProcessMetrics

log = get_logger("metrics-server")


class JsonObjectWriter:
    """Emits a JSON object as text chunks: `{`, one chunk per field, `}`.

    Args:
        pretty (bool): Indent with 2 spaces instead of compact separators.
    """

    def __init__(self, pretty: bool = False) -> None:
        self.pretty = pretty
        self._fields = 0

    def encode(self, value: Any) -> str:
        """Encode a field value; raises on values JSON cannot represent."""
        if self.pretty:
            text = json.dumps(value, indent=2, ensure_ascii=False, allow_nan=False)
            return text.replace("\n", "\n  ")
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False, allow_nan=False)

    def start(self) -> str:
        return "{"

    def field(self, name: str, encoded: str) -> str:
        sep = "," if self._fields else ""
        self._fields += 1
        key = json.dumps(name, ensure_ascii=False)
        if self.pretty:
            return f"{sep}\n  {key}: {encoded}"
        return f"{sep}{key}:{encoded}"

    def end(self) -> str:
        if self.pretty and self._fields:
            return "\n}"
        return "}"


def name_matches(name: str, prefix: Optional[str]) -> bool:
    if prefix is None:
        return True
    if prefix == PROCESS_SECTION:
        return False
    return name.startswith(prefix)


class RegistrySerializer:
    """Serializes a registry (and optionally process metrics) to JSON.

    Args:
        registry (MetricsRegistry): Metrics to render; read-only here.
        process_metrics (ProcessMetrics, optional): Source of the `"jvm"` section;
            None disables it.
    """

    def __init__(self, registry: MetricsRegistry, process_metrics: Optional[ProcessMetrics] = None) -> None:
        self.registry = registry
        self.process_metrics = process_metrics

    def iter_render(self, prefix: Optional[str], context: RenderContext) -> Iterator[str]:
        """Yield the document as text chunks.

        Each entry is rendered and encoded before any of it is yielded, so a
        failing metric leaves no trace in the output.

        Args:
            prefix (str, optional): Name prefix filter; `"jvm"` selects process metrics only.
            context (RenderContext): Options for this render.

        Yields:
            str: Consecutive pieces of one JSON object.

        Raises:
            UnknownMetricVariant: A registered metric has an unknown kind.
        """
        writer = JsonObjectWriter(pretty=context.pretty)
        yield writer.start()
        process_written = False
        if self.process_metrics is not None and prefix in (None, PROCESS_SECTION):
            section = self.process_metrics.snapshot().as_dict()
            yield writer.field(PROCESS_SECTION, writer.encode(section))
            process_written = True
        for name, metric in self.registry.items():
            if not name_matches(name, prefix):
                continue
            if process_written and name == PROCESS_SECTION:
                # key already taken by the process section
                log.warning("metric_name_reserved", extra={"metric": name})
                continue
            try:
                encoded = writer.encode(dispatch(metric, context, name))
            except UnknownMetricVariant:
                raise
            except Exception:
                log.warning("metric_render_failed", exc_info=True, extra={"metric": name})
                continue
            yield writer.field(name, encoded)
        yield writer.end()

    def render(self, prefix: Optional[str] = None, context: Optional[RenderContext] = None) -> str:
        parts: List[str] = list(self.iter_render(prefix, context or RenderContext()))
        return "".join(parts)
