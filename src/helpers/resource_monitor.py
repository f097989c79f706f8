from __future__ import annotations

import os
import sys
import time
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

try:  # pragma: no cover - psutil is optional at runtime.
    import psutil  # type: ignore
except Exception:  # pragma: no cover - we gracefully degrade without psutil.
    psutil = None  # type: ignore

try:  # pragma: no cover - resource is POSIX-only.
    import resource  # type: ignore
except Exception:  # pragma: no cover - Windows fallback.
    resource = None  # type: ignore

T = TypeVar("T")

_BYTES_PER_MB = 1024 * 1024


def _rusage_rss_mb(max_rss: int) -> float:
    # ru_maxrss is reported in bytes on macOS and in kilobytes elsewhere.
    if sys.platform == "darwin":
        return max_rss / _BYTES_PER_MB
    return max_rss / 1024


@dataclass(frozen=True)
class ResourceSample:
    """Process counters read at one instant."""

    taken_at: float
    rss_mb: float | None
    cpu_seconds: float | None
    threads: int | None


@dataclass(frozen=True)
class ResourceUsage:
    """What a measured call cost the process."""

    seconds: float
    cpu_percent: float | None
    rss_mb: float | None
    rss_growth_mb: float | None
    threads: int | None

    def describe(self, cpu_count: int) -> str:
        parts = [f"took={self.seconds:.2f}s"]
        if self.cpu_percent is not None:
            parts.append(f"cpu={self.cpu_percent:.1f}%/{cpu_count}c")
        if self.rss_mb is not None:
            growth = f"({self.rss_growth_mb:+.1f})" if self.rss_growth_mb is not None else ""
            parts.append(f"rss={self.rss_mb:.1f}MB{growth}")
        if self.threads is not None:
            parts.append(f"threads={self.threads}")
        return " ".join(parts)


class ResourceMonitor:
    """Reads process counters through psutil, or getrusage when psutil is missing."""

    def __init__(self) -> None:
        count = psutil.cpu_count(logical=True) if psutil else os.cpu_count()
        self.cpu_count = count if count and count > 0 else 1
        self._process: Any | None = None
        if psutil:
            try:
                self._process = psutil.Process(os.getpid())
            except psutil.Error:  # pragma: no cover - process lookup rarely fails.
                self._process = None

    def sample(self) -> ResourceSample:
        now = time.perf_counter()
        if self._process is not None:
            try:
                with self._process.oneshot():
                    times = self._process.cpu_times()
                    return ResourceSample(
                        taken_at=now,
                        rss_mb=self._process.memory_info().rss / _BYTES_PER_MB,
                        cpu_seconds=times.user + times.system,
                        threads=self._process.num_threads(),
                    )
            except psutil.Error:
                self._process = None
        if resource is None:
            return ResourceSample(taken_at=now, rss_mb=None, cpu_seconds=None, threads=None)
        usage = resource.getrusage(resource.RUSAGE_SELF)
        return ResourceSample(
            taken_at=now,
            rss_mb=_rusage_rss_mb(usage.ru_maxrss),
            cpu_seconds=usage.ru_utime + usage.ru_stime,
            threads=None,
        )

    def usage_between(self, before: ResourceSample, after: ResourceSample) -> ResourceUsage:
        seconds = max(0.0, after.taken_at - before.taken_at)
        cpu_percent: float | None = None
        if seconds > 0 and before.cpu_seconds is not None and after.cpu_seconds is not None:
            busy = max(0.0, after.cpu_seconds - before.cpu_seconds)
            cpu_percent = busy / seconds * 100.0 / self.cpu_count
        growth: float | None = None
        if before.rss_mb is not None and after.rss_mb is not None:
            growth = after.rss_mb - before.rss_mb
        return ResourceUsage(
            seconds=seconds,
            cpu_percent=cpu_percent,
            rss_mb=after.rss_mb,
            rss_growth_mb=growth,
            threads=after.threads,
        )


class Profiler:
    """Runs a callable and, when enabled, logs its result next to the resources it used."""

    def __init__(self, enabled: bool, emit: Callable[[str], None]) -> None:
        self.enabled = enabled
        self.emit = emit
        self.monitor = ResourceMonitor() if enabled else None

    def measure(self, label: str, fn: Callable[[], T]) -> T:
        if self.monitor is None:
            return fn()
        before = self.monitor.sample()
        result = fn()
        usage = self.monitor.usage_between(before, self.monitor.sample())
        self.emit(f"[profile] {label}: {result} {usage.describe(self.monitor.cpu_count)}")
        return result
