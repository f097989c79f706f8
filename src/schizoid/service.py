from __future__ import annotations

import random
import threading

from log_helpers import log, log_event, log_verbose

from .backfill import BackfillScheduler
from .messages import Message
from .registry import BrainRegistry
from .settings import SchizoidSettings
from .text_markers import strip_end_marker

__all__ = ["MessageService", "PeriodicFlusher"]


class MessageService:
    """Routes gateway events (create/update/delete) to the guild brains."""

    def __init__(
        self,
        registry: BrainRegistry,
        settings: SchizoidSettings | None = None,
        scheduler: BackfillScheduler | None = None,
        *,
        rng: random.Random | None = None,
    ) -> None:
        self.registry = registry
        self.settings = settings or registry.settings
        self.scheduler = scheduler
        self.rng = rng

    def handle_create(self, guild_id: str, message: Message) -> str | None:
        """Observe a new message; return reply text when it asks for a generation."""
        if message.is_bot:
            return None
        brain = self.registry.get(guild_id)
        brain.observe(message)
        if self.scheduler is not None:
            self.scheduler.watch(guild_id, message.channel_id)
        if not self.settings.trigger or message.content.strip() != self.settings.trigger:
            return None
        return self.generate(guild_id, message.content)

    def generate(self, guild_id: str, seed: str, length: int | None = None) -> str | None:
        brain = self.registry.get(guild_id)
        limit = self.settings.generate_length if length is None else length
        raw = brain.generate(seed, limit, self.rng)
        text, finished = strip_end_marker(raw, brain.model.tokenizer.special_tokens[0])
        text = text.strip()
        log_verbose(2, f"[service] Generated {len(text)} char(s) for guild {guild_id} (finished={int(finished)}).")
        return text or None

    def handle_delete(self, guild_id: str, message: Message) -> bool:
        forgotten = self.registry.get(guild_id).forget(message)
        if forgotten:
            log_event("service", "Forgot deleted message.", guild=guild_id, message=message.message_id)
        return forgotten

    def handle_update(self, guild_id: str, before: Message, after: Message) -> bool:
        """Swap an edited message's contribution. Only applies to messages already trained."""
        return self.registry.get(guild_id).revise(before, after)


class PeriodicFlusher(threading.Thread):
    """Saves every loaded brain on a fixed interval until stopped."""

    def __init__(self, registry: BrainRegistry, interval: float) -> None:
        super().__init__(daemon=True, name="schizoid-flusher")
        self.registry = registry
        self.interval = interval
        self._stop_event = threading.Event()

    def run(self) -> None:
        if self.interval <= 0:
            return
        while not self._stop_event.wait(self.interval):
            try:
                self.registry.flush()
            except Exception as exc:
                log(f"[flush] Periodic save failed: {exc}")

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self.is_alive():
            self.join(timeout=timeout)
