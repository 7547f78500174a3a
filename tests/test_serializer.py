import json
import logging

import pytest

from metrics_server.formatting import RenderContext, UnknownMetricVariant
from metrics_server.metrics import Gauge, MetricKind, MetricsRegistry, Timer


class BrokenHistogram:
    kind = MetricKind.HISTOGRAM
    count = 1
    min = max = mean = std_dev = 0.0

    def snapshot(self):
        raise RuntimeError("reservoir exploded")


class FakeProcessSnapshot:
    def as_dict(self):
        return {"vm": {"name": "CPython", "version": "3.x"}, "thread_count": 1}


class FakeProcessMetrics:
    def snapshot(self):
        return FakeProcessSnapshot()


def _registry():
    reg = MetricsRegistry()
    reg.counter("app.requests").inc(42)
    reg.gauge("app.queue", lambda: 7)
    reg.register("db.query", Timer(clock=lambda: 0.0)).update(2_000_000)
    return reg


def test_single_counter_exact_output():
    from metrics_server.serializer import RegistrySerializer

    reg = MetricsRegistry()
    reg.counter("app.requests").inc(42)
    assert RegistrySerializer(reg).render() == '{"app.requests":{"type":"counter","count":42}}'


def test_failing_gauge_exact_output():
    from metrics_server.serializer import RegistrySerializer

    def boom():
        raise RuntimeError("boom")

    reg = MetricsRegistry()
    reg.register("g", Gauge(boom))
    doc = json.loads(RegistrySerializer(reg).render())
    assert doc == {"g": {"type": "gauge", "value": "error reading gauge: boom"}}


def test_empty_registry():
    from metrics_server.serializer import RegistrySerializer

    assert RegistrySerializer(MetricsRegistry()).render() == "{}"
    assert RegistrySerializer(MetricsRegistry()).render(context=RenderContext(pretty=True)) == "{}"


def test_order_is_preserved():
    from metrics_server.serializer import RegistrySerializer

    doc = json.loads(RegistrySerializer(_registry()).render())
    assert list(doc) == ["app.requests", "app.queue", "db.query"]


def test_prefix_filter():
    from metrics_server.serializer import RegistrySerializer

    s = RegistrySerializer(_registry())
    assert list(json.loads(s.render("app."))) == ["app.requests", "app.queue"]
    assert list(json.loads(s.render("App."))) == []
    assert list(json.loads(s.render("db"))) == ["db.query"]


def test_faulting_entry_is_skipped(caplog):
    from metrics_server.serializer import RegistrySerializer

    reg = MetricsRegistry()
    reg.register("bad", BrokenHistogram())
    reg.counter("good").inc()
    caplog.set_level(logging.WARNING)
    text = RegistrySerializer(reg).render()
    assert json.loads(text) == {"good": {"type": "counter", "count": 1}}
    assert '"bad"' not in text
    recs = [r for r in caplog.records if r.getMessage() == "metric_render_failed"]
    assert recs and getattr(recs[0], "metric") == "bad"


def test_unencodable_value_is_skipped():
    from metrics_server.serializer import RegistrySerializer

    reg = MetricsRegistry()
    reg.gauge("obj", lambda: object())
    reg.gauge("nan", lambda: float("nan"))
    reg.counter("ok")
    assert list(json.loads(RegistrySerializer(reg).render())) == ["ok"]


def test_unknown_variant_propagates():
    from metrics_server.serializer import RegistrySerializer

    class Mystery:
        kind = None

    reg = MetricsRegistry()
    reg.register("m", Mystery())
    with pytest.raises(UnknownMetricVariant):
        RegistrySerializer(reg).render()


def test_process_section_first_and_filtered():
    from metrics_server.serializer import RegistrySerializer

    s = RegistrySerializer(_registry(), FakeProcessMetrics())
    doc = json.loads(s.render())
    assert list(doc)[0] == "jvm"
    assert doc["jvm"]["vm"]["name"] == "CPython"
    assert list(json.loads(s.render("jvm"))) == ["jvm"]
    assert "jvm" not in json.loads(s.render("app"))


def test_jvm_filter_without_process_metrics_is_empty():
    from metrics_server.serializer import RegistrySerializer

    reg = _registry()
    reg.counter("jvm.lookalike")
    assert RegistrySerializer(reg).render("jvm") == "{}"


def test_full_samples_toggle():
    from metrics_server.serializer import RegistrySerializer

    reg = MetricsRegistry()
    h = reg.histogram("h")
    for v in (1, 2, 3, 4):
        h.update(v)
    off = json.loads(RegistrySerializer(reg).render())
    on = json.loads(RegistrySerializer(reg).render(context=RenderContext(show_full_samples=True)))
    assert "values" not in off["h"]
    assert len(on["h"]["values"]) == h.snapshot().size


def test_pretty_output_is_equivalent():
    from metrics_server.serializer import RegistrySerializer

    s = RegistrySerializer(_registry())
    compact = s.render()
    pretty = s.render(context=RenderContext(pretty=True))
    assert "\n  \"app.requests\": " in pretty
    assert json.loads(pretty) == json.loads(compact)


def test_iter_render_streams_one_chunk_per_entry():
    from metrics_server.serializer import RegistrySerializer

    chunks = list(RegistrySerializer(_registry()).iter_render(None, RenderContext()))
    assert chunks[0] == "{" and chunks[-1] == "}"
    assert len(chunks) == 2 + 3


def test_metric_named_like_process_section_is_not_duplicated(caplog):
    from metrics_server.serializer import RegistrySerializer

    reg = _registry()
    reg.counter("jvm").inc()
    caplog.set_level(logging.WARNING)
    text = RegistrySerializer(reg, FakeProcessMetrics()).render()
    assert text.count('"jvm"') == 1
    doc = json.loads(text)
    assert doc["jvm"]["vm"]["name"] == "CPython"
    recs = [r for r in caplog.records if r.getMessage() == "metric_name_reserved"]
    assert recs and getattr(recs[0], "metric") == "jvm"


def test_metric_named_like_process_section_without_provider():
    from metrics_server.serializer import RegistrySerializer

    reg = MetricsRegistry()
    reg.counter("jvm").inc(2)
    assert json.loads(RegistrySerializer(reg).render()) == {"jvm": {"type": "counter", "count": 2}}


def test_failing_gauge_warning_names_the_metric(caplog):
    from metrics_server.serializer import RegistrySerializer

    def boom():
        raise RuntimeError("boom")

    reg = MetricsRegistry()
    reg.register("pool.size", Gauge(boom))
    caplog.set_level(logging.WARNING)
    RegistrySerializer(reg).render()
    recs = [r for r in caplog.records if r.getMessage() == "gauge_evaluation_failed"]
    assert len(recs) == 1
    assert getattr(recs[0], "metric") == "pool.size"
    assert getattr(recs[0], "error") == "boom"
