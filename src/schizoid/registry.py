from __future__ import annotations

import threading
from typing import Callable, Dict, List

from log_helpers import log, log_event

from .brain import Brain
from .settings import SchizoidSettings
from .storage import BrainStore

__all__ = ["BrainRegistry"]


class BrainRegistry:
    """Owns the guild -> Brain map: loads on first use, flushes on demand."""

    def __init__(self, store: BrainStore, settings: SchizoidSettings | None = None) -> None:
        self.store = store
        self.settings = settings or SchizoidSettings()
        self._brains: Dict[str, Brain] = {}
        self._lock = threading.Lock()
        self._closed = False
        self._evict_listeners: List[Callable[[str], None]] = []

    def _new_brain(self, guild_id: str) -> Brain:
        return Brain.fresh(guild_id, self.settings)

    def get(self, guild_id: str) -> Brain:
        guild_id = str(guild_id)
        with self._lock:
            if self._closed:
                raise RuntimeError("brain registry is closed")
            brain = self._brains.get(guild_id)
            if brain is None:
                brain = self.store.load(guild_id, self._new_brain)
                self._brains[guild_id] = brain
            return brain

    def peek(self, guild_id: str) -> Brain | None:
        with self._lock:
            return self._brains.get(str(guild_id))

    def guild_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._brains)

    def on_evict(self, listener: Callable[[str], None]) -> None:
        """Register a callback run before a guild is dropped (e.g. cancel its backfill)."""
        self._evict_listeners.append(listener)

    def flush_guild(self, guild_id: str) -> bool:
        brain = self.peek(guild_id)
        if brain is None:
            return False
        self.store.save(brain)
        return True

    def flush(self) -> int:
        with self._lock:
            brains = list(self._brains.values())
        for brain in brains:
            self.store.save(brain)
        if brains:
            log_event("registry", "Flushed brains.", count=len(brains))
        return len(brains)

    def evict(self, guild_id: str, *, save: bool = True) -> bool:
        guild_id = str(guild_id)
        for listener in self._evict_listeners:
            listener(guild_id)
        with self._lock:
            brain = self._brains.pop(guild_id, None)
        if brain is None:
            return False
        if save:
            self.store.save(brain)
        log(f"[registry] Evicted guild {guild_id}.")
        return True

    def close(self) -> None:
        if self._closed:
            return
        self.flush()
        with self._lock:
            self._closed = True
            self._brains.clear()
