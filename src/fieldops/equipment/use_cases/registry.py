"""Live session registry and in-flight guard.

The registry holds the working EquipmentSession (and its model dependency
table) for each open work order. The session store only keeps the
client-side payload between loads; the registry is what edits operate on.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional

from ..domain.dependencies import ModelDependencyTable
from ..domain.exceptions import OperationInProgress, SessionNotLoaded
from ..domain.session import EquipmentSession

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    session: EquipmentSession
    table: ModelDependencyTable = field(default_factory=ModelDependencyTable)


class SessionRegistry:
    """Work order id -> live session."""

    def __init__(self):
        self._entries: dict[str, _Entry] = {}

    def get(self, work_id: str) -> EquipmentSession:
        """Return the live session.

        Raises:
            SessionNotLoaded: If the work order has not been loaded
        """
        entry = self._entries.get(work_id)
        if entry is None:
            raise SessionNotLoaded(work_id)
        return entry.session

    def find(self, work_id: str) -> Optional[EquipmentSession]:
        entry = self._entries.get(work_id)
        return entry.session if entry else None

    def put(
        self,
        session: EquipmentSession,
        table: Optional[ModelDependencyTable] = None,
    ) -> None:
        existing = self._entries.get(session.work_id)
        if table is None:
            table = existing.table if existing else ModelDependencyTable()
        self._entries[session.work_id] = _Entry(session=session, table=table)

    def table(self, work_id: str) -> ModelDependencyTable:
        entry = self._entries.get(work_id)
        if entry is None:
            raise SessionNotLoaded(work_id)
        return entry.table

    def discard(self, work_id: str) -> None:
        self._entries.pop(work_id, None)

    def __contains__(self, work_id: str) -> bool:
        return work_id in self._entries


class InFlightGuard:
    """Rejects a second run of the same operation for the same work order.

    Retriggers are refused with OperationInProgress, not queued.
    """

    def __init__(self):
        self._running: set[tuple[str, str]] = set()

    def is_running(self, work_id: str, operation: str) -> bool:
        return (work_id, operation) in self._running

    @asynccontextmanager
    async def hold(self, work_id: str, operation: str) -> AsyncIterator[None]:
        key = (work_id, operation)
        if key in self._running:
            logger.warning(f"[{work_id}] {operation} already running; ignoring retrigger")
            raise OperationInProgress(work_id, operation)
        self._running.add(key)
        try:
            yield
        finally:
            self._running.discard(key)
