"""Session store adapters.

Both stores persist the client-side payload produced by
session_to_payload, not the full session: slots and stock always come
from the next catalog fetch. Writes are last-write-wins upserts.
"""

import copy
import json
import logging
from typing import Any, Optional

import asyncpg

from ...api.exceptions import SessionStoreError
from ..domain.ports import ISessionStore
from ..domain.session import EquipmentSession
from .export_mapper import payload_to_session, session_to_payload

logger = logging.getLogger(__name__)


class InMemorySessionStore(ISessionStore):
    """Dictionary-backed store for tests and single-process use."""

    def __init__(self):
        self._payloads: dict[str, dict[str, Any]] = {}

    async def load(self, work_id: str) -> Optional[EquipmentSession]:
        payload = self._payloads.get(work_id)
        if payload is None:
            return None
        return payload_to_session(copy.deepcopy(payload))

    async def save(self, session: EquipmentSession) -> None:
        self._payloads[session.work_id] = session_to_payload(session)

    async def delete(self, work_id: str) -> None:
        self._payloads.pop(work_id, None)

    def __contains__(self, work_id: str) -> bool:
        return work_id in self._payloads


CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS equipment_sessions (
    work_id TEXT PRIMARY KEY,
    payload JSONB NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
)
"""


class PostgresSessionStore(ISessionStore):
    """PostgreSQL implementation of ISessionStore (one JSONB row per work order)."""

    def __init__(self, pool: asyncpg.Pool):
        """Initialize with database connection pool.

        Args:
            pool: asyncpg connection pool
        """
        self.pool = pool

    async def ensure_schema(self) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(CREATE_TABLE_SQL)

    async def load(self, work_id: str) -> Optional[EquipmentSession]:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    "SELECT payload FROM equipment_sessions WHERE work_id = $1",
                    work_id,
                )
        except asyncpg.PostgresError as e:
            raise SessionStoreError(f"Failed to load session: {e}", work_id=work_id, cause=e)

        if row is None:
            return None

        payload = row["payload"]
        if isinstance(payload, str):
            payload = json.loads(payload)
        return payload_to_session(payload)

    async def save(self, session: EquipmentSession) -> None:
        payload = json.dumps(session_to_payload(session))
        try:
            async with self.pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO equipment_sessions (work_id, payload, updated_at)
                    VALUES ($1, $2::jsonb, NOW())
                    ON CONFLICT (work_id) DO UPDATE
                    SET payload = EXCLUDED.payload,
                        updated_at = NOW()
                    """,
                    session.work_id,
                    payload,
                )
        except asyncpg.PostgresError as e:
            raise SessionStoreError(
                f"Failed to save session: {e}", work_id=session.work_id, cause=e
            )
        logger.debug(f"[{session.work_id}] session saved")

    async def delete(self, work_id: str) -> None:
        try:
            async with self.pool.acquire() as conn:
                await conn.execute(
                    "DELETE FROM equipment_sessions WHERE work_id = $1",
                    work_id,
                )
        except asyncpg.PostgresError as e:
            raise SessionStoreError(f"Failed to delete session: {e}", work_id=work_id, cause=e)
