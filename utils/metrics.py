from __future__ import annotations

import json
import threading
import time

from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator


class Metrics:
    """
    Per-run counters, gauges and durations for one scraper.

    Worker threads bump counters (fetch retries, challenges) while the
    coordinator bumps others, so every update takes the lock.
    """

    def __init__(self, namespace: str = "") -> None:
        self.ns = namespace
        self._lock = threading.Lock()
        self.counters: Dict[str, float] = {}
        self.gauges: Dict[str, float] = {}
        self.durations: Dict[str, list] = {}

    def inc(self, name: str, value: float = 1.0) -> None:
        with self._lock:
            self.counters[name] = self.counters.get(name, 0.0) + value

    def set_gauge(self, name: str, value: float) -> None:
        with self._lock:
            self.gauges[name] = float(value)

    def observe(self, name: str, seconds: float) -> None:
        with self._lock:
            self.durations.setdefault(name, []).append(float(seconds))

    @contextmanager
    def time(self, name: str) -> Iterator[None]:
        start = time.monotonic()
        try:
            yield
        finally:
            self.observe(name, time.monotonic() - start)

    def count(self, name: str) -> float:
        with self._lock:
            return self.counters.get(name, 0.0)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            timers = {
                k: {"count": len(v), "total": round(sum(v), 3), "max": round(max(v), 3)}
                for k, v in self.durations.items()
                if v
            }
            return {
                "namespace": self.ns,
                "counters": dict(self.counters),
                "gauges": dict(self.gauges),
                "timers": timers,
            }

    def write(self, path: str | Path) -> None:
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(json.dumps(self.snapshot(), indent=2), encoding="utf-8")
