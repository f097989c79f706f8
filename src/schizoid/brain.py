from __future__ import annotations

import random
import threading
from typing import Any, Dict, List, Mapping

from log_helpers import log_event, log_verbose

from .adapters.base import MessageTransport
from .errors import BrainStateError
from .messages import Message
from .model import NgramModel
from .settings import SchizoidSettings
from .spans import TrainedSpan
from .tokenizer import build_tokenizer

__all__ = ["Brain", "DEFAULT_PAGE_SIZE"]

DEFAULT_PAGE_SIZE = 25


class Brain:
    """
    One guild's language model plus the per-channel spans already trained.

    Lock order is always span lock then model lock. ``observe`` holds both across
    the membership check, the training and the span update so a message
    delivered concurrently by the gateway and by backfill is counted once.
    """

    def __init__(
        self,
        guild_id: str,
        model: NgramModel | None = None,
        trained_spans: Mapping[str, TrainedSpan] | None = None,
    ) -> None:
        self.guild_id = str(guild_id)
        self.model = model or NgramModel()
        self.trained_spans: Dict[str, TrainedSpan] = dict(trained_spans or {})
        self._span_lock = threading.Lock()
        self._model_lock = threading.Lock()

    @classmethod
    def fresh(cls, guild_id: str, settings: SchizoidSettings | None = None) -> "Brain":
        settings = settings or SchizoidSettings()
        tokenizer = build_tokenizer(settings.tokenizer, settings.special_tokens)
        model = NgramModel(tokenizer, n=settings.ngram_order, smoothing=settings.smoothing)
        return cls(guild_id, model)

    # ------------------------------------------------------------------ #
    # Observation
    # ------------------------------------------------------------------ #
    @staticmethod
    def should_observe(message: Message) -> bool:
        if message.is_bot:
            return False
        return bool(message.content)

    def observe(self, message: Message) -> bool:
        """Train on ``message`` unless its channel span already covers it. Returns True when trained."""
        trained = False
        with self._span_lock:
            span = self.trained_spans.get(message.channel_id)
            if span is not None and span.during_span(message.created_at):
                return False
            if self.should_observe(message):
                with self._model_lock:
                    self.model.train(message.content)
                trained = True
            if span is None:
                self.trained_spans[message.channel_id] = TrainedSpan.from_message(message)
            else:
                span.extend_span(message)
        log_verbose(
            3,
            f"[brain:v3] guild={self.guild_id} channel={message.channel_id} "
            f"message={message.message_id} trained={int(trained)}",
        )
        return trained

    def forget(self, message: Message) -> bool:
        """Retract a previously trained message. Spans are left untouched."""
        if not self.should_observe(message):
            return False
        with self._span_lock:
            span = self.trained_spans.get(message.channel_id)
            # Messages outside the span were never counted.
            if span is None or not span.during_span(message.created_at):
                return False
            with self._model_lock:
                self.model.forget(message.content)
        log_verbose(2, f"[brain] guild={self.guild_id} forgot message {message.message_id}")
        return True

    def revise(self, before: Message, after: Message) -> bool:
        """Replace the trained content of an edited message; False when ``before`` was never trained."""
        if not self.should_observe(before):
            return False
        with self._span_lock:
            span = self.trained_spans.get(before.channel_id)
            if span is None or not span.during_span(before.created_at):
                return False
            with self._model_lock:
                self.model.forget(before.content)
                if self.should_observe(after):
                    self.model.train(after.content)
        return True

    def generate(self, seed: str, length: int, rng: random.Random | None = None) -> str:
        with self._model_lock:
            return self.model.generate(seed, length, rng)

    # ------------------------------------------------------------------ #
    # Spans + backfill
    # ------------------------------------------------------------------ #
    def trained_span(self, channel_id: str) -> TrainedSpan | None:
        with self._span_lock:
            span = self.trained_spans.get(channel_id)
            return span.copy() if span is not None else None

    def earliest_message_id(self, channel_id: str) -> str | None:
        with self._span_lock:
            span = self.trained_spans.get(channel_id)
            return span.start_id if span is not None else None

    def channel_ids(self) -> List[str]:
        with self._span_lock:
            return sorted(self.trained_spans)

    def observe_some_messages(
        self,
        transport: MessageTransport,
        channel_id: str,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> int:
        """
        Fetch one page of history older than the channel's span and observe it.

        Returns the number of messages fetched; 0 means nothing to anchor to,
        history exhausted, or a failed fetch (retried on the next tick).
        """
        anchor = self.earliest_message_id(channel_id)
        if anchor is None:
            return 0
        try:
            messages = transport.fetch(channel_id, anchor, page_size)
        except Exception as exc:
            log_event("backfill", "Fetch failed; retrying next tick.", guild=self.guild_id, channel=channel_id, error=exc)
            return 0
        trained = sum(1 for message in messages if self.observe(message))
        span = self.trained_span(channel_id)
        if messages and span is not None:
            log_event(
                "brain",
                "Trained:",
                guild=self.guild_id,
                channel=channel_id,
                fetched=len(messages),
                trained=trained,
                start=span.start.isoformat(),
                end=span.end.isoformat(),
            )
        return len(messages)

    # ------------------------------------------------------------------ #
    # Introspection + persistence
    # ------------------------------------------------------------------ #
    def stats(self) -> Dict[str, int]:
        with self._span_lock:
            channels = len(self.trained_spans)
            with self._model_lock:
                return {
                    "channels": channels,
                    "keys": self.model.key_count(),
                    "symbols": self.model.total_symbols(),
                    "vocab_size": self.model.tokenizer.vocab_size(),
                }

    def to_state(self) -> Dict[str, Any]:
        with self._span_lock:
            with self._model_lock:
                return {
                    "GuildID": self.guild_id,
                    "Model": self.model.to_state(),
                    "TrainedSpans": {
                        channel_id: span.to_state() for channel_id, span in self.trained_spans.items()
                    },
                }

    @classmethod
    def from_state(cls, state: Mapping[str, Any]) -> "Brain":
        if not isinstance(state, Mapping):
            raise BrainStateError("brain state must be an object")
        try:
            guild_id = str(state["GuildID"])
            model_state = state["Model"]
        except KeyError as exc:
            raise BrainStateError(f"brain state is missing {exc}") from exc
        if not isinstance(model_state, Mapping):
            raise BrainStateError("brain model state must be an object")
        raw_spans = state.get("TrainedSpans") or {}
        if not isinstance(raw_spans, Mapping):
            raise BrainStateError("trained spans must be an object")
        spans = {str(channel_id): TrainedSpan.from_state(span) for channel_id, span in raw_spans.items()}
        return cls(guild_id, NgramModel.from_state(model_state), spans)
