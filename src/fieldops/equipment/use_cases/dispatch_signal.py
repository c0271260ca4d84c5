"""Dispatch Signal use case.

Derives the set-top/modem identifiers from the bound units and sends the
activation signal. The outcome is recorded on the session so completion
can refuse to proceed after a failure.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from ...api.exceptions import FieldOpsError, SignalDispatchError
from ..domain.entities import SignalStatus
from ..domain.ports import ISessionStore, ISignalDispatcher, SignalResult
from ..domain.session import EquipmentSession
from ..domain.signal import SignalUnits, derive_signal_units, message_id
from .registry import InFlightGuard, SessionRegistry

logger = logging.getLogger(__name__)


@dataclass
class SignalOutcome:
    """Result of DispatchSignalUseCase."""

    session: EquipmentSession
    units: SignalUnits
    message_id: str
    result: SignalResult

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.result.success,
            "result_code": self.result.result_code,
            "message": self.result.message,
            "message_id": self.message_id,
            "stb_eqt_no": self.units.stb_eqt_no,
            "modem_eqt_no": self.units.modem_eqt_no,
        }


class DispatchSignalUseCase:
    """Send the activation signal for a work order.

    This use case:
    1. Derives signal units from the bound set (fails if there are none)
    2. Dispatches with SMR60 for VoIP product groups, SMR03 otherwise
    3. Records SUCCESS or FAIL on the current live session; FAIL when the
       bound units changed while the request was in flight
    4. Raises SignalDispatchError on any failure
    """

    def __init__(
        self,
        dispatcher: ISignalDispatcher,
        registry: SessionRegistry,
        store: ISessionStore,
        reg_uid: str = "SYSTEM",
        guard: Optional[InFlightGuard] = None,
    ):
        self.dispatcher = dispatcher
        self.registry = registry
        self.store = store
        self.reg_uid = reg_uid
        self.guard = guard or InFlightGuard()

    async def _record(
        self,
        work_id: str,
        status: SignalStatus,
        fallback: EquipmentSession,
    ) -> EquipmentSession:
        """Record the outcome on the current live session, keeping edits made meanwhile."""
        session = self.registry.find(work_id) or fallback
        session = session.evolve(signal_status=status)
        self.registry.put(session)
        await self.store.save(session)
        return session

    async def execute(self, work_id: str) -> SignalOutcome:
        session = self.registry.get(work_id)

        async with self.guard.hold(work_id, "signal"):
            units = derive_signal_units(session)
            if units.is_empty:
                await self._record(work_id, SignalStatus.FAIL, session)
                raise SignalDispatchError("No bound unit qualifies for the activation signal")

            msg_id = message_id(session.filter)
            logger.info(
                f"[{work_id}] dispatching {msg_id}: "
                f"STB={units.stb_eqt_no or '-'} MODEM={units.modem_eqt_no or '-'}"
            )
            try:
                result = await self.dispatcher.dispatch(session, units, msg_id, self.reg_uid)
            except FieldOpsError:
                await self._record(work_id, SignalStatus.FAIL, session)
                raise

            if not result.success:
                await self._record(work_id, SignalStatus.FAIL, session)
                logger.warning(f"[{work_id}] signal failed: {result.result_code} {result.message}")
                raise SignalDispatchError(
                    result.message or "Signal dispatch failed",
                    result_code=result.result_code,
                )

            current = self.registry.find(work_id) or session
            if derive_signal_units(current) != units:
                await self._record(work_id, SignalStatus.FAIL, session)
                logger.warning(f"[{work_id}] bound units changed during dispatch; signal must be resent")
                raise SignalDispatchError(
                    "Bound equipment changed while the signal was in flight; dispatch again",
                    result_code=result.result_code,
                )

            session = await self._record(work_id, SignalStatus.SUCCESS, session)
            return SignalOutcome(session=session, units=units, message_id=msg_id, result=result)
