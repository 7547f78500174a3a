#!/usr/bin/env python3
"""Lightweight HTTP smoke test for the metrics endpoint.

Starts a uvicorn server from the in-process FastAPI app, registers a few
metrics, and checks that `/metrics` returns a well-formed document.
"""
import json
import os
import threading
import time
import sys
import httpx
from pathlib import Path

# Ensure repository root is on sys.path when running from tools/
ROOT = str(Path(__file__).resolve().parents[1])
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)


def main() -> int:
    port = int(os.getenv("PORT", "8091"))

    from metrics_server.app import create_app
    from metrics_server.metrics import MetricsRegistry
    import uvicorn

    registry = MetricsRegistry()
    registry.counter("smoke.requests").inc(3)
    registry.gauge("smoke.answer", lambda: 42)
    timer = registry.timer("smoke.latency")
    for ms in (1, 2, 5, 10):
        timer.update(ms * 1_000_000)

    app = create_app(registry=registry)
    config = uvicorn.Config(app, host="127.0.0.1", port=port, log_level="info")
    server = uvicorn.Server(config)

    th = threading.Thread(target=server.run, daemon=True)
    th.start()

    base = f"http://127.0.0.1:{port}"
    ok = False
    for _ in range(60):
        try:
            r = httpx.get(base + "/healthz", timeout=0.5)
            if r.status_code == 200:
                ok = True
                break
        except httpx.HTTPError:
            pass
        time.sleep(0.25)
    if not ok:
        print("Server did not become ready", file=sys.stderr)
        server.should_exit = True
        th.join(timeout=2.0)
        return 1

    def _check(path: str, expect_keys=()):
        r = httpx.get(base + path, timeout=2.0)
        if r.status_code != 200:
            raise RuntimeError(f"{path} -> {r.status_code}")
        body = json.loads(r.text)
        missing = [k for k in expect_keys if k not in body]
        if missing:
            raise RuntimeError(f"{path} missing keys: {missing}")
        print(path, "->", r.status_code, sorted(body)[:5])

    try:
        _check("/healthz")
        _check("/metrics", expect_keys=("smoke.requests", "smoke.answer", "smoke.latency"))
        _check("/metrics?class=smoke.&pretty=true&full-samples=true", expect_keys=("smoke.latency",))
        _check("/metrics?class=jvm")
    finally:
        server.should_exit = True
        th.join(timeout=2.0)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
