"""Conversation state persistence."""

from __future__ import annotations

import asyncio
import sqlite3
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from reco_agent.errors import ConversationNotFound, StoreError
from reco_agent.state import ConversationState


class ConversationStore(Protocol):
    async def load(self, conversation_id: str) -> ConversationState:
        """Return the saved state or raise :class:`ConversationNotFound`."""

    async def save(self, conversation_id: str, state: ConversationState) -> None:
        """Persist ``state``; raise :class:`StoreError` on failure."""


class InMemoryConversationStore:
    """Keeps serialized states in a dict so loads never alias saved objects."""

    def __init__(self) -> None:
        self._payloads: dict[str, str] = {}

    async def load(self, conversation_id: str) -> ConversationState:
        payload = self._payloads.get(conversation_id)
        if payload is None:
            raise ConversationNotFound(conversation_id)
        return ConversationState.model_validate_json(payload)

    async def save(self, conversation_id: str, state: ConversationState) -> None:
        self._payloads[conversation_id] = state.model_dump_json()


class SqliteConversationStore:
    """Local key-value persistence of conversation states."""

    def __init__(self, sqlite_path: str = "reco_agent.db") -> None:
        self.db_file = Path(sqlite_path)
        _ensure_table(self.db_file)

    async def load(self, conversation_id: str) -> ConversationState:
        row = await asyncio.to_thread(self._read, conversation_id)
        if row is None:
            raise ConversationNotFound(conversation_id)
        try:
            return ConversationState.model_validate_json(row)
        except ValidationError as exc:
            raise StoreError(f"Corrupted state for {conversation_id}") from exc

    async def save(self, conversation_id: str, state: ConversationState) -> None:
        await asyncio.to_thread(self._write, conversation_id, state.model_dump_json())

    def _read(self, conversation_id: str) -> str | None:
        try:
            with sqlite3.connect(self.db_file) as conn:
                cur = conn.execute(
                    "SELECT payload FROM conversations WHERE conversation_id = ?",
                    (conversation_id,),
                )
                row = cur.fetchone()
        except sqlite3.Error as exc:
            raise StoreError(f"Could not load {conversation_id}: {exc}") from exc
        return row[0] if row else None

    def _write(self, conversation_id: str, payload: str) -> None:
        try:
            with sqlite3.connect(self.db_file) as conn:
                conn.execute(
                    "INSERT INTO conversations(conversation_id, payload) VALUES(?, ?) "
                    "ON CONFLICT(conversation_id) DO UPDATE SET payload=excluded.payload",
                    (conversation_id, payload),
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise StoreError(f"Could not save {conversation_id}: {exc}") from exc


def _ensure_table(db_path: Path) -> None:
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            "CREATE TABLE IF NOT EXISTS conversations "
            "(conversation_id TEXT PRIMARY KEY, payload TEXT NOT NULL)"
        )
        conn.commit()
