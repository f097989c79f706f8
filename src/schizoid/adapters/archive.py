from __future__ import annotations

import json
from collections import defaultdict
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Sequence

from log_helpers import log, log_verbose

from ..errors import TransportError
from ..messages import Message

__all__ = ["ArchiveTransport", "iter_archive"]


def iter_archive(path: Path) -> Iterator[Message]:
    """Yield messages from an NDJSON archive, skipping lines that do not parse."""
    with path.open("r", encoding="utf-8") as handle:
        for line_no, raw_line in enumerate(handle, start=1):
            line = raw_line.strip()
            if not line:
                continue
            try:
                payload = json.loads(line)
            except json.JSONDecodeError as exc:
                log(f"[archive] JSON warning ({path} line {line_no}): {exc}")
                continue
            if not isinstance(payload, dict):
                log(f"[archive] Skipping non-object record ({path} line {line_no}).")
                continue
            try:
                yield Message.from_payload(payload)
            except ValueError as exc:
                log(f"[archive] Skipping malformed message ({path} line {line_no}): {exc}")


class ArchiveTransport:
    """Offline message history backed by NDJSON exports (one message per line)."""

    def __init__(self, messages: Iterable[Message] = (), *, label: str = "memory") -> None:
        self.label = label
        self._by_channel: Dict[str, List[Message]] = defaultdict(list)
        self._positions: Dict[str, Dict[str, int]] = {}
        for message in messages:
            self._by_channel[message.channel_id].append(message)
        for channel_id, history in self._by_channel.items():
            history.sort(key=lambda item: (item.created_at, item.message_id))
            self._positions[channel_id] = {item.message_id: idx for idx, item in enumerate(history)}

    @classmethod
    def from_paths(cls, paths: Sequence[Path]) -> "ArchiveTransport":
        messages: list[Message] = []
        for path in paths:
            before = len(messages)
            messages.extend(iter_archive(path))
            log_verbose(2, f"[archive] Loaded {len(messages) - before} message(s) from {path}")
        label = ",".join(str(path) for path in paths) or "empty"
        return cls(messages, label=label)

    def channel_ids(self) -> List[str]:
        return sorted(self._by_channel)

    def messages(self, channel_id: str | None = None) -> List[Message]:
        """Messages in chronological order, optionally for a single channel."""
        if channel_id is not None:
            return list(self._by_channel.get(channel_id, ()))
        merged = [message for history in self._by_channel.values() for message in history]
        merged.sort(key=lambda item: (item.created_at, item.message_id))
        return merged

    def latest(self, channel_id: str) -> Message | None:
        history = self._by_channel.get(channel_id)
        return history[-1] if history else None

    def fetch(self, channel_id: str, anchor_message_id: str, page_size: int) -> List[Message]:
        positions = self._positions.get(channel_id)
        if positions is None:
            raise TransportError(channel_id, "unknown channel")
        anchor_index = positions.get(anchor_message_id)
        if anchor_index is None:
            raise TransportError(channel_id, f"unknown anchor message {anchor_message_id}")
        history = self._by_channel[channel_id]
        anchor_time = history[anchor_index].created_at
        older = [message for message in history[:anchor_index] if message.created_at < anchor_time]
        page = older[-max(1, page_size) :]
        page.reverse()
        return page

    def describe(self) -> str:
        return f"archive[{self.label}] channels={len(self._by_channel)}"
