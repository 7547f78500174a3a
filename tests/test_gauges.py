from metrics_server.gauges import evaluate_gauge
from metrics_server.metrics import Gauge


def test_gauge_value_returned():
    r = evaluate_gauge(Gauge(lambda: 12.5))
    assert r.ok and r.value == 12.5 and r.error is None


def test_gauge_failure_becomes_placeholder():
    def boom():
        raise RuntimeError("boom")

    r = evaluate_gauge(Gauge(boom))
    assert not r.ok
    assert r.value == "error reading gauge: boom"
    assert isinstance(r.error, RuntimeError)


def test_gauge_called_exactly_once():
    calls = []

    def fn():
        calls.append(1)
        return len(calls)

    assert evaluate_gauge(Gauge(fn)).value == 1
    assert len(calls) == 1
