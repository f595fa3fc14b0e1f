"""Persistence sinks for published insights and generated brands.

Writes are off the critical path: the orchestrator schedules them without
awaiting, and ``save_quietly`` logs and swallows any sink failure.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel

from convograph.core.config import Settings
from convograph.core.logging import get_logger

logger = get_logger(__name__)

INSIGHTS_TABLE = "insights"
BRAND_TABLE = "brand_identities"


class PersistenceSink(ABC):
    """Fire-and-forget record sink."""

    @abstractmethod
    async def save(self, table: str, row: BaseModel) -> None:
        """Persist one row. May raise; callers use save_quietly."""


class NullSink(PersistenceSink):
    """Discards everything."""

    async def save(self, table: str, row: BaseModel) -> None:
        return None


class MemorySink(PersistenceSink):
    """Keeps rows in process memory, grouped by table."""

    def __init__(self):
        self.rows: dict[str, list[dict[str, Any]]] = {}

    async def save(self, table: str, row: BaseModel) -> None:
        self.rows.setdefault(table, []).append(row.model_dump(mode="json"))


class SupabaseSink(PersistenceSink):
    """Inserts rows into Supabase tables."""

    async def save(self, table: str, row: BaseModel) -> None:
        from convograph.db.supabase_client import get_supabase

        payload = row.model_dump(mode="json")
        payload["created_at"] = datetime.now(timezone.utc).isoformat()

        def _insert() -> None:
            get_supabase().table(table).insert(payload).execute()

        await asyncio.to_thread(_insert)
        logger.info(f"Saved row to {table} for session {payload.get('session_id')}")


async def save_quietly(sink: PersistenceSink, table: str, row: BaseModel) -> None:
    """Save a row; failures are logged and never propagate."""
    try:
        await sink.save(table, row)
    except Exception as e:
        logger.warning(f"Persistence to {table} failed (ignored): {e}")


def build_sink(settings: Settings) -> PersistenceSink:
    backend = settings.PERSISTENCE_BACKEND.lower()
    if backend == "supabase":
        return SupabaseSink()
    if backend == "memory":
        return MemorySink()
    return NullSink()
