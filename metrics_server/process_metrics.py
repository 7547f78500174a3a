"""Process-level statistics for the `"jvm"` section of the metrics document.

Values come from psutil, `gc`, `threading` and `platform`. Anything the
platform cannot report falls back to zero, the same way the housekeeper
treats missing memory/disk readings.
"""

from __future__ import annotations

import gc
import os
import platform
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict

import psutil

PROCESS_SECTION = "jvm"


@dataclass(frozen=True)
class ProcessSnapshot:
    vm_name: str
    vm_version: str
    rss: int
    vms: int
    heap_usage: float
    non_heap_usage: float
    daemon_thread_count: int
    thread_count: int
    current_time: int
    uptime: float
    fd_usage: float
    memory_pool_usages: Dict[str, float] = field(default_factory=dict)
    thread_states: Dict[str, float] = field(default_factory=dict)
    garbage_collectors: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "vm": {"name": self.vm_name, "version": self.vm_version},
            "memory": {
                "rss": self.rss,
                "vms": self.vms,
                "heap_usage": self.heap_usage,
                "non_heap_usage": self.non_heap_usage,
                "memory_pool_usages": dict(self.memory_pool_usages),
            },
            "daemon_thread_count": self.daemon_thread_count,
            "thread_count": self.thread_count,
            "current_time": self.current_time,
            "uptime": self.uptime,
            "fd_usage": self.fd_usage,
            "thread-states": dict(self.thread_states),
            "garbage-collectors": {k: dict(v) for k, v in self.garbage_collectors.items()},
        }


def _fd_usage(proc: psutil.Process) -> float:
    try:
        import resource

        soft, _ = resource.getrlimit(resource.RLIMIT_NOFILE)
        if soft <= 0:
            return 0.0
        return proc.num_fds() / float(soft)
    except (ImportError, AttributeError, OSError, psutil.Error):
        return 0.0


_gc_lock = threading.Lock()
_gc_started: Dict[int, float] = {}
_gc_time_ms: Dict[int, float] = {}
_gc_hooked = False


def _on_gc(phase: str, info: Dict[str, Any]) -> None:
    gen = info.get("generation", 0)
    if phase == "start":
        _gc_started[gen] = time.perf_counter()
    elif phase == "stop":
        began = _gc_started.pop(gen, None)
        if began is not None:
            _gc_time_ms[gen] = _gc_time_ms.get(gen, 0.0) + (time.perf_counter() - began) * 1000.0


def install_gc_timer() -> None:
    """Start accumulating collection time; safe to call more than once."""
    global _gc_hooked
    with _gc_lock:
        if not _gc_hooked:
            gc.callbacks.append(_on_gc)
            _gc_hooked = True


def _gc_stats() -> Dict[str, Dict[str, Any]]:
    out: Dict[str, Dict[str, Any]] = {}
    for i, st in enumerate(gc.get_stats()):
        out[f"gen{i}"] = {
            "runs": int(st.get("collections", 0)),
            "time": round(_gc_time_ms.get(i, 0.0), 3),
            "collected": int(st.get("collected", 0)),
            "uncollectable": int(st.get("uncollectable", 0)),
        }
    return out


class ProcessMetrics:
    """Reads process statistics on demand.

    Args:
        clock (Callable[[], float]): Wall clock in seconds; `current_time` is reported in ms.
        pid (int, optional): Process to inspect. Defaults to the current process.
    """

    def __init__(self, clock: Callable[[], float] = time.time, pid: int = 0) -> None:
        self._clock = clock
        self._proc = psutil.Process(pid or os.getpid())
        install_gc_timer()

    def snapshot(self) -> ProcessSnapshot:
        proc = self._proc
        try:
            mem = proc.memory_info()
            rss, vms = int(mem.rss), int(mem.vms)
        except psutil.Error:
            rss, vms = 0, 0
        try:
            total = float(psutil.virtual_memory().total)
        except (psutil.Error, OSError):
            total = 0.0
        heap_usage = rss / total if total > 0 else 0.0
        non_heap_usage = max(0.0, (vms - rss) / vms) if vms > 0 else 0.0
        try:
            swap = psutil.swap_memory().percent / 100.0
        except (psutil.Error, OSError, RuntimeError):
            swap = 0.0
        try:
            started = proc.create_time()
        except psutil.Error:
            started = self._clock()

        threads = threading.enumerate()
        daemons = sum(1 for t in threads if t.daemon)
        alive = len(threads) or 1
        states = {
            "runnable": (alive - daemons) / alive,
            "daemon": daemons / alive,
        }
        now = self._clock()
        return ProcessSnapshot(
            vm_name=platform.python_implementation(),
            vm_version=platform.python_version(),
            rss=rss,
            vms=vms,
            heap_usage=heap_usage,
            non_heap_usage=non_heap_usage,
            daemon_thread_count=daemons,
            thread_count=len(threads),
            current_time=int(now * 1000),
            uptime=max(0.0, now - started),
            fd_usage=_fd_usage(proc),
            memory_pool_usages={"physical": heap_usage, "swap": swap},
            thread_states=states,
            garbage_collectors=_gc_stats(),
        )
