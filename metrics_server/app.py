"""Application initialization and middleware.

Provides:
- `create_app()`: builds the FastAPI app serving the metrics document.
- Request context middleware: IDs, structured access logs, and request metrics.

Google-style docstrings to ease automatic documentation.
"""

import time
from typing import Any, Dict, Optional

from fastapi import FastAPI, Query, Request
from fastapi.responses import StreamingResponse

from .config_loader import MetricsSettings, build_effective_config
from .durations import DurationConverter
from .formatting import RenderContext
from .logging_utils import get_logger, new_request_id, set_request_id
from .metrics import MetricsRegistry
from .process_metrics import ProcessMetrics
from .serializer import RegistrySerializer

CONTENT_TYPE = "application/json"


def _parse_bool(value: Optional[str]) -> bool:
    """Only the case-insensitive string "true" is true."""
    return value is not None and value.strip().lower() == "true"


def create_app(
    registry: Optional[MetricsRegistry] = None,
    settings: Optional[MetricsSettings] = None,
    process_metrics: Optional[ProcessMetrics] = None,
) -> FastAPI:
    """Create and initialize the application.

    Args:
        registry (MetricsRegistry, optional): Metrics to expose. A new empty
            registry is created when omitted.
        settings (MetricsSettings, optional): Defaults to `build_effective_config()`.
        process_metrics (ProcessMetrics, optional): Provider for the process
            section; created when omitted and `show_process_metrics` is on.

    Returns:
        FastAPI: The configured application.
    """
    cfg = settings or build_effective_config()
    if registry is None:
        registry = MetricsRegistry(reservoir_size=cfg.reservoir_size)
    if not cfg.show_process_metrics:
        process_metrics = None
    elif process_metrics is None:
        process_metrics = ProcessMetrics()

    serializer = RegistrySerializer(registry, process_metrics)
    converter = DurationConverter(cfg.duration_unit)

    app = FastAPI(title="metrics-server", version="0.1.0")
    log = get_logger("metrics-server")

    requests_total = registry.counter("http.requests")
    errors_total = registry.counter("http.errors")
    request_timer = registry.timer("http.request")

    # Request ID + structured access logs
    @app.middleware("http")
    async def request_context(request: Request, call_next):  # type: ignore[no-redef]
        rid = request.headers.get("x-request-id") or new_request_id()
        request.state.request_id = rid
        set_request_id(rid)
        start = time.perf_counter_ns()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            # Propagate X-Request-Id on response
            response.headers["X-Request-Id"] = rid
            return response
        finally:
            dur_ns = time.perf_counter_ns() - start
            requests_total.inc()
            if status >= 500:
                errors_total.inc()
            request_timer.update(dur_ns)
            log.info(
                "request",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "dur_ms": round(dur_ns / 1e6, 2),
                    "request_id": rid,
                    "status": status,
                },
            )
            set_request_id(None)

    @app.get("/healthz")
    def healthz() -> Dict[str, Any]:
        return {"status": "ok"}

    @app.get("/metrics")
    def metrics_endpoint(
        class_prefix: Optional[str] = Query(None, alias="class"),
        pretty: Optional[str] = Query(None),
        full_samples: Optional[str] = Query(None, alias="full-samples"),
    ) -> StreamingResponse:
        context = RenderContext(
            show_full_samples=_parse_bool(full_samples),
            pretty=_parse_bool(pretty),
            converter=converter,
        )
        prefix = class_prefix or None
        return StreamingResponse(serializer.iter_render(prefix, context), media_type=CONTENT_TYPE)

    # Attach collaborators for downstream use
    app.state.config = cfg
    app.state.registry = registry
    app.state.serializer = serializer
    return app
