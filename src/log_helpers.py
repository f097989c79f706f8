import builtins
import os
import threading
import time
from typing import Any

_LOG_LEVEL_ENV = "SCHIZOID_LOG_LEVEL"
_NAMED_LEVELS = {"off": 0, "quiet": 0, "silent": 0, "info": 1, "warning": 1, "debug": 3, "trace": 3}

_clock_origin = time.perf_counter()
# Backfill workers and the flusher log concurrently; keep lines whole.
_print_lock = threading.Lock()


def _level_from_env() -> int:
    raw = os.getenv(_LOG_LEVEL_ENV, "1").strip().lower()
    if raw.lstrip("-").isdigit():
        return max(0, int(raw))
    return _NAMED_LEVELS.get(raw, 1)


_log_level = _level_from_env()


def timestamp_prefix() -> str:
    """Seconds since import, e.g. ``+[   1.23]``."""
    return f"+[{time.perf_counter() - _clock_origin:7.2f}]"


def verbose_enabled(level: int) -> bool:
    return _log_level >= level


def log(*objects: Any, sep: str = " ", end: str = "\n", file=None, flush: bool = False, prefix: bool = True) -> None:
    line = sep.join(str(obj) for obj in objects)
    if prefix:
        line = f"{timestamp_prefix()} {line}"
    with _print_lock:
        builtins.print(line, end=end, file=file, flush=flush)


def log_verbose(level: int, *objects: Any, **kwargs: Any) -> None:
    """Emit a log line only when the configured verbosity is high enough."""
    if verbose_enabled(level):
        log(*objects, **kwargs)


def format_fields(**fields: Any) -> str:
    return " ".join(f"{key}={value}" for key, value in fields.items())


def log_event(tag: str, message: str, /, *, level: int = 1, **fields: Any) -> None:
    """Log ``[tag] message key=value ...`` at the requested verbosity."""
    if not verbose_enabled(level):
        return
    suffix = format_fields(**fields)
    log(f"[{tag}] {message} {suffix}" if suffix else f"[{tag}] {message}")
