from __future__ import annotations

import json
import sqlite3
from typing import Callable, List

from log_helpers import log, log_event

from .brain import Brain
from .db import DatabaseEnvironment
from .errors import BrainStateError

__all__ = ["BrainStore", "encode_brain", "decode_brain"]

SCHEMA_VERSION = "1"


def encode_brain(brain: Brain) -> str:
    return json.dumps(brain.to_state(), separators=(",", ":"))


def decode_brain(payload: str) -> Brain:
    try:
        state = json.loads(payload)
    except (TypeError, json.JSONDecodeError) as exc:
        raise BrainStateError(f"brain payload is not valid JSON: {exc}") from exc
    return Brain.from_state(state)


class BrainStore:
    """Persists whole-brain snapshots keyed by guild id inside SQLite."""

    def __init__(self, db: DatabaseEnvironment) -> None:
        self.db = db
        if self.db.get_metadata("schema_version") is None:
            self.db.set_metadata("schema_version", SCHEMA_VERSION)

    def save(self, brain: Brain) -> None:
        payload = encode_brain(brain)
        spans = len(brain.channel_ids())
        self.db.execute(
            """
            INSERT INTO tbl_brains(guild_id, payload, trained_spans)
            VALUES (?, ?, ?)
            ON CONFLICT(guild_id) DO UPDATE SET
                payload = excluded.payload,
                trained_spans = excluded.trained_spans,
                updated_at = CURRENT_TIMESTAMP
            """,
            (brain.guild_id, payload, spans),
        )
        log_event("store", "Serialized guild brain.", guild=brain.guild_id, bytes=len(payload), spans=spans)

    def load(self, guild_id: str, factory: Callable[[str], Brain]) -> Brain:
        """Return the stored brain, or ``factory(guild_id)`` when it is missing or unreadable."""
        guild_id = str(guild_id)
        try:
            payload = self.db.scalar("SELECT payload FROM tbl_brains WHERE guild_id = ?", (guild_id,))
        except sqlite3.Error as exc:
            log(f"[store] Failed to read brain for guild {guild_id}: {exc}; creating a new brain.")
            return factory(guild_id)
        if payload is None:
            log_event("store", "Brain does not exist, creating new brain.", guild=guild_id)
            return factory(guild_id)
        try:
            brain = decode_brain(payload)
        except BrainStateError as exc:
            log(f"[store] Failed to decode brain for guild {guild_id}: {exc}; creating a new brain.")
            return factory(guild_id)
        if brain.guild_id != guild_id:
            log(f"[store] Stored brain for {guild_id} claims guild {brain.guild_id}; keeping the requested id.")
            brain.guild_id = guild_id
        log_event("store", "Loaded brain for guild.", guild=guild_id, trained_spans=len(brain.channel_ids()))
        return brain

    def delete(self, guild_id: str) -> None:
        self.db.execute("DELETE FROM tbl_brains WHERE guild_id = ?", (str(guild_id),))

    def guild_ids(self) -> List[str]:
        rows = self.db.query("SELECT guild_id FROM tbl_brains ORDER BY guild_id")
        return [row["guild_id"] for row in rows]
