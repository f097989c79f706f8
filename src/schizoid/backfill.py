from __future__ import annotations

import concurrent.futures
import threading
from typing import Dict, List, Set, Tuple

from helpers.resource_monitor import Profiler
from log_helpers import log, log_verbose

from .adapters.base import MessageTransport
from .registry import BrainRegistry
from .settings import SchizoidSettings

__all__ = ["BackfillScheduler"]

ChannelKey = Tuple[str, str]


class BackfillScheduler(threading.Thread):
    """
    Periodically walks every watched channel's history backwards.

    Each tick hands one ``observe_some_messages`` call per (guild, channel) to a
    worker pool. A channel whose previous page is still in flight is skipped for
    that tick. Guild eviction cancels the guild's queued work.
    """

    def __init__(
        self,
        registry: BrainRegistry,
        transport: MessageTransport,
        settings: SchizoidSettings | None = None,
        *,
        profile: bool = False,
    ) -> None:
        super().__init__(daemon=True, name="schizoid-backfill")
        self.registry = registry
        self.transport = transport
        self.settings = settings or registry.settings
        self.interval = self.settings.backfill_interval_seconds
        self.page_size = self.settings.backfill_page_size
        self._watched: Dict[str, Set[str]] = {}
        self._inflight: Dict[ChannelKey, concurrent.futures.Future[int]] = {}
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._pool = concurrent.futures.ThreadPoolExecutor(
            max_workers=self.settings.backfill_workers,
            thread_name_prefix="schizoid-backfill-worker",
        )
        self._profiler = Profiler(profile, log)
        registry.on_evict(self.cancel_guild)

    # ------------------------------------------------------------------ #
    # Watch list
    # ------------------------------------------------------------------ #
    def watch(self, guild_id: str, channel_id: str) -> bool:
        guild_id, channel_id = str(guild_id), str(channel_id)
        with self._lock:
            channels = self._watched.setdefault(guild_id, set())
            if channel_id in channels:
                return False
            channels.add(channel_id)
        log_verbose(2, f"[backfill] Watching guild={guild_id} channel={channel_id}")
        return True

    def unwatch(self, guild_id: str, channel_id: str) -> None:
        with self._lock:
            channels = self._watched.get(str(guild_id))
            if channels is not None:
                channels.discard(str(channel_id))
                if not channels:
                    self._watched.pop(str(guild_id), None)

    def cancel_guild(self, guild_id: str, timeout: float | None = 30.0) -> int:
        """
        Drop every watch for ``guild_id``, cancel its queued pages and wait for
        pages already running, so an evicted brain is saved after its last page.
        """
        guild_id = str(guild_id)
        cancelled = 0
        running: List[concurrent.futures.Future[int]] = []
        with self._lock:
            self._watched.pop(guild_id, None)
            for key, future in list(self._inflight.items()):
                if key[0] != guild_id:
                    continue
                if future.cancel():
                    self._inflight.pop(key, None)
                    cancelled += 1
                else:
                    running.append(future)
        if cancelled:
            log(f"[backfill] Cancelled {cancelled} queued page(s) for guild {guild_id}.")
        if running:
            _, pending = concurrent.futures.wait(running, timeout=timeout)
            if pending:
                log(f"[backfill] {len(pending)} page(s) for guild {guild_id} still running after {timeout}s.")
        return cancelled

    def watched(self) -> List[ChannelKey]:
        with self._lock:
            return sorted((guild_id, channel_id) for guild_id, channels in self._watched.items() for channel_id in channels)

    def _is_watched(self, key: ChannelKey) -> bool:
        with self._lock:
            return key[1] in self._watched.get(key[0], ())

    # ------------------------------------------------------------------ #
    # Ticks
    # ------------------------------------------------------------------ #
    def _backfill_channel(self, key: ChannelKey) -> int:
        guild_id, channel_id = key
        try:
            if not self._is_watched(key):
                return 0
            brain = self.registry.peek(guild_id)
            if brain is None:
                return 0
            return self._profiler.measure(
                f"backfill guild={guild_id} channel={channel_id}",
                lambda: brain.observe_some_messages(self.transport, channel_id, self.page_size),
            )
        finally:
            with self._lock:
                self._inflight.pop(key, None)

    def tick(self) -> List[concurrent.futures.Future[int]]:
        submitted: List[concurrent.futures.Future[int]] = []
        for key in self.watched():
            with self._lock:
                # The pool is shut down once stop() has been called.
                if self._stop_event.is_set():
                    break
                if key in self._inflight:
                    continue
                future = self._pool.submit(self._backfill_channel, key)
                self._inflight[key] = future
            submitted.append(future)
        log_verbose(3, f"[backfill:v3] Tick submitted {len(submitted)} channel(s).")
        return submitted

    def run_once(self) -> int:
        """Run a tick and wait for it; returns the number of messages fetched."""
        futures = self.tick()
        fetched = 0
        for future in concurrent.futures.as_completed(futures):
            if future.cancelled():
                continue
            fetched += future.result()
        return fetched

    def run(self) -> None:
        log(f"[backfill] Started via {self.transport.describe()} every {self.interval:.1f}s (page={self.page_size}).")
        while not self._stop_event.wait(self.interval):
            self.tick()

    def stop(self, timeout: float = 5.0) -> None:
        with self._lock:
            self._stop_event.set()
        self._pool.shutdown(wait=True, cancel_futures=True)
        if self.is_alive():
            self.join(timeout=timeout)
