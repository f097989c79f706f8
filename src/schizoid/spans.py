from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, Mapping

from .errors import BrainStateError
from .messages import Message, parse_timestamp

__all__ = ["TrainedSpan"]


@dataclass
class TrainedSpan:
    """
    Interval of message timestamps already folded into the model for one channel.

    Bounds only ever widen: ``start`` never increases and ``end`` never decreases.
    """

    start: datetime
    end: datetime
    start_id: str
    end_id: str

    @classmethod
    def from_message(cls, message: Message) -> "TrainedSpan":
        return cls(
            start=message.created_at,
            end=message.created_at,
            start_id=message.message_id,
            end_id=message.message_id,
        )

    def during_span(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end

    def extend_span(self, message: Message) -> None:
        moment = message.created_at
        if moment > self.end:
            self.end = moment
            self.end_id = message.message_id
        if moment < self.start:
            self.start = moment
            self.start_id = message.message_id

    def union(self, other: "TrainedSpan") -> None:
        if other.start < self.start:
            self.start = other.start
            self.start_id = other.start_id
        if other.end > self.end:
            self.end = other.end
            self.end_id = other.end_id

    def copy(self) -> "TrainedSpan":
        return replace(self)

    def to_state(self) -> Dict[str, Any]:
        return {
            "Start": self.start.isoformat(),
            "End": self.end.isoformat(),
            "StartID": self.start_id,
            "EndID": self.end_id,
        }

    @classmethod
    def from_state(cls, state: Mapping[str, Any]) -> "TrainedSpan":
        try:
            span = cls(
                start=parse_timestamp(state["Start"]),
                end=parse_timestamp(state["End"]),
                start_id=str(state["StartID"]),
                end_id=str(state["EndID"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise BrainStateError(f"invalid trained span: {exc}") from exc
        if span.start > span.end:
            raise BrainStateError(f"trained span starts after it ends ({span.start} > {span.end})")
        return span
