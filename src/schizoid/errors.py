from __future__ import annotations

__all__ = ["SchizoidError", "TransportError", "BrainStateError"]


class SchizoidError(Exception):
    """Base class for failures raised by schizoid collaborators."""


class TransportError(SchizoidError):
    """A message transport could not fetch the requested page."""

    def __init__(self, channel_id: str, message: str) -> None:
        super().__init__(f"channel {channel_id}: {message}")
        self.channel_id = channel_id


class BrainStateError(SchizoidError):
    """A persisted brain payload could not be decoded."""
