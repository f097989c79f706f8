from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Mapping

__all__ = ["Message", "parse_timestamp"]


def parse_timestamp(raw: Any) -> datetime:
    """Accept datetimes, ISO-8601 strings (``Z`` suffix allowed) or epoch seconds."""
    if isinstance(raw, datetime):
        value = raw
    elif isinstance(raw, (int, float)):
        value = datetime.fromtimestamp(float(raw), tz=timezone.utc)
    elif isinstance(raw, str) and raw.strip():
        value = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
    else:
        raise ValueError(f"Unsupported timestamp value: {raw!r}")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class Message:
    """Inbound chat message as delivered by the gateway or a backfill fetch."""

    content: str
    author_id: str
    channel_id: str
    created_at: datetime
    message_id: str
    is_bot: bool = False

    def __post_init__(self) -> None:
        # Spans restored from storage carry aware UTC bounds; keep comparisons valid.
        if self.created_at.tzinfo is None:
            object.__setattr__(self, "created_at", self.created_at.replace(tzinfo=timezone.utc))

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Message":
        """
        Build a message from a flat record or a Discord-style payload
        (``id``/``timestamp``/``author: {id, bot}``).
        """
        author = payload.get("author")
        if isinstance(author, Mapping):
            author_id = author.get("id", "")
            is_bot = bool(author.get("bot", False))
        else:
            author_id = payload.get("author_id", author or "")
            is_bot = bool(payload.get("is_bot", False))
        message_id = payload.get("message_id", payload.get("id"))
        if message_id is None:
            raise ValueError("message payload is missing an id")
        created = payload.get("created_at", payload.get("timestamp"))
        return cls(
            content=str(payload.get("content") or ""),
            author_id=str(author_id),
            channel_id=str(payload.get("channel_id", "")),
            created_at=parse_timestamp(created),
            message_id=str(message_id),
            is_bot=is_bot,
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "message_id": self.message_id,
            "channel_id": self.channel_id,
            "author_id": self.author_id,
            "is_bot": self.is_bot,
            "created_at": self.created_at.isoformat(),
            "content": self.content,
        }
