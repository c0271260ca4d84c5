"""Complete Work use case.

Exports installed and removed records for work completion and closes
the session.
"""

import logging
from dataclasses import dataclass
from typing import Any

from ...api.exceptions import SignalDispatchError
from ..adapters.export_mapper import ExportBundle, export_session
from ..domain.binding import finalize
from ..domain.entities import SignalStatus
from ..domain.ports import ISessionStore
from ..domain.session import EquipmentSession
from .registry import SessionRegistry

logger = logging.getLogger(__name__)


@dataclass
class CompletionResult:
    """Result of CompleteWorkUseCase."""

    session: EquipmentSession
    bundle: ExportBundle

    def to_dict(self) -> dict[str, Any]:
        return {
            "work_id": self.session.work_id,
            "installed": self.bundle.installed,
            "removed": self.bundle.removed,
        }


class CompleteWorkUseCase:
    """Export the session and finalize it.

    This use case:
    1. Refuses to complete unless the signal succeeded (when required)
    2. Flattens bindings and removals into export records
    3. Finalizes the session: removals consumed, bindings now customer-installed
    4. Drops the live session and stored payload; the next load starts from the backend
    """

    def __init__(
        self,
        registry: SessionRegistry,
        store: ISessionStore,
        reg_uid: str = "SYSTEM",
    ):
        self.registry = registry
        self.store = store
        self.reg_uid = reg_uid

    async def export(self, work_id: str) -> ExportBundle:
        """Export records without finalizing."""
        return export_session(self.registry.get(work_id), self.reg_uid)

    async def execute(self, work_id: str, require_signal: bool = True) -> CompletionResult:
        """Execute the use case.

        Raises:
            SessionNotLoaded: If the work order has not been loaded
            SignalDispatchError: If the signal has not succeeded and is required
        """
        session = self.registry.get(work_id)
        if require_signal and session.signal_status != SignalStatus.SUCCESS:
            raise SignalDispatchError(
                f"Cannot complete {work_id}: signal status is {session.signal_status.value}"
            )

        bundle = export_session(session, self.reg_uid)
        session = finalize(session)
        self.registry.discard(work_id)
        await self.store.delete(work_id)

        logger.info(
            f"[{work_id}] work completed: {len(bundle.installed)} installed, "
            f"{len(bundle.removed)} removed"
        )
        return CompletionResult(session=session, bundle=bundle)
