from __future__ import annotations

from typing import List, Protocol

from ..messages import Message

__all__ = ["MessageTransport", "NullTransport"]


class MessageTransport(Protocol):
    """Source of historical messages used by the backfill loop."""

    def fetch(self, channel_id: str, anchor_message_id: str, page_size: int) -> List[Message]:
        """
        Return up to ``page_size`` messages strictly older than the anchor, newest first.

        Implementations raise TransportError (or any exception) when the page
        cannot be fetched; callers treat that as "try again next tick".
        """

    def describe(self) -> str:
        """Return a human-readable description of the transport for logging."""


class NullTransport:
    """Transport with no history; backfill against it is a no-op."""

    def fetch(self, channel_id: str, anchor_message_id: str, page_size: int) -> List[Message]:
        return []

    def describe(self) -> str:
        return "null-transport"
