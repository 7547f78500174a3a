import gc
import platform

from metrics_server.process_metrics import PROCESS_SECTION, ProcessMetrics


def test_process_snapshot_shape():
    pm = ProcessMetrics(clock=lambda: 1_700_000_000.5)
    d = pm.snapshot().as_dict()
    assert PROCESS_SECTION == "jvm"
    assert d["vm"] == {"name": platform.python_implementation(), "version": platform.python_version()}
    assert set(d["memory"]) == {"rss", "vms", "heap_usage", "non_heap_usage", "memory_pool_usages"}
    assert set(d["memory"]["memory_pool_usages"]) == {"physical", "swap"}
    assert d["current_time"] == 1_700_000_000_500
    assert d["thread_count"] >= 1
    assert 0 <= d["daemon_thread_count"] <= d["thread_count"]
    assert d["fd_usage"] >= 0.0
    assert set(d["thread-states"]) == {"runnable", "daemon"}
    assert "gen0" in d["garbage-collectors"]
    assert set(d["garbage-collectors"]["gen0"]) == {"runs", "time", "collected", "uncollectable"}


def test_process_snapshot_is_fresh_each_call():
    ticks = iter([10.0, 20.0])
    pm = ProcessMetrics(clock=lambda: next(ticks))
    assert pm.snapshot().current_time == 10_000
    assert pm.snapshot().current_time == 20_000


def test_gc_time_accumulates_after_collection():
    pm = ProcessMetrics()
    before = pm.snapshot().as_dict()["garbage-collectors"]["gen2"]
    gc.collect()
    after = pm.snapshot().as_dict()["garbage-collectors"]["gen2"]
    assert after["runs"] > before["runs"]
    assert after["time"] >= before["time"] >= 0.0
