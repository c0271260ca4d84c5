"""Edit Equipment use case.

Applies a single technician edit (install, reuse, remove, loss flag,
slot selection, model change, rental fields) to the live session and
persists the result. Rule violations leave the session untouched.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from ..domain import binding as binding_rules
from ..domain import dependencies, removal
from ..domain.dependencies import CascadeResult
from ..domain.entities import LossFlag
from ..domain.exceptions import EquipmentRuleError, SlotNotFound
from ..domain.ports import ISessionStore
from ..domain.session import EquipmentSession
from ..domain.validation import QuantityCapPolicy
from .registry import SessionRegistry

logger = logging.getLogger(__name__)


@dataclass
class EditResult:
    """Outcome of one edit."""

    session: EquipmentSession
    error: Optional[EquipmentRuleError] = None
    selected: list[str] = field(default_factory=list)
    deselected: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "error": self.error.to_dict() if self.error else None,
            "selected": self.selected,
            "deselected": self.deselected,
        }


class EditEquipmentUseCase:
    """Technician edits on a loaded session.

    Every method:
    1. Takes the live session from the registry (SessionNotLoaded otherwise)
    2. Applies the domain rule
    3. On success, publishes and stores the new session
    4. On a rule violation, returns the error and keeps the old session
    """

    def __init__(
        self,
        registry: SessionRegistry,
        store: ISessionStore,
        policy: Optional[QuantityCapPolicy] = None,
    ):
        """Initialize the use case.

        Args:
            registry: Live sessions
            store: Persistence for session payloads
            policy: Quantity caps used by install and reuse
        """
        self.registry = registry
        self.store = store
        self.policy = policy or QuantityCapPolicy()

    async def _commit(self, session: EquipmentSession) -> None:
        self.registry.put(session)
        await self.store.save(session)

    async def _finish(
        self,
        current: EquipmentSession,
        new_session: Optional[EquipmentSession] = None,
        error: Optional[EquipmentRuleError] = None,
        cascade: Optional[CascadeResult] = None,
    ) -> EditResult:
        if error is not None:
            logger.info(f"[{current.work_id}] edit rejected: {error.code}")
            return EditResult(session=current, error=error)

        await self._commit(new_session)
        return EditResult(
            session=new_session,
            selected=list(cascade.to_select) if cascade else [],
            deselected=list(cascade.to_deselect) if cascade else [],
        )

    # ============================================
    # Bindings
    # ============================================

    async def install(self, work_id: str, slot_id: str, unit_id: str) -> EditResult:
        session = self.registry.get(work_id)
        outcome = binding_rules.install(session, slot_id, unit_id, self.policy)
        return await self._finish(session, outcome.session, outcome.error)

    async def reuse(self, work_id: str, unit_id: str, slot_id: str) -> EditResult:
        session = self.registry.get(work_id)
        outcome = binding_rules.reuse(session, unit_id, slot_id, self.policy)
        return await self._finish(session, outcome.session, outcome.error)

    async def remove(self, work_id: str, unit_id: str) -> EditResult:
        session = self.registry.get(work_id)
        outcome = binding_rules.remove(session, unit_id)
        return await self._finish(session, outcome.session, outcome.error)

    # ============================================
    # Removal flags
    # ============================================

    async def set_flag(
        self,
        work_id: str,
        unit_id: str,
        flag: LossFlag,
        value: Optional[bool] = None,
    ) -> EditResult:
        """Set a loss flag, or toggle it when value is None."""
        session = self.registry.get(work_id)
        try:
            if value is None:
                updated = removal.toggle_flag(session, unit_id, flag)
            else:
                updated = removal.set_flag(session, unit_id, flag, value)
        except EquipmentRuleError as e:
            return await self._finish(session, error=e)
        return await self._finish(session, updated)

    # ============================================
    # Composition
    # ============================================

    async def select(self, work_id: str, slot_id: str, selected: bool) -> EditResult:
        session = self.registry.get(work_id)
        table = self.registry.table(work_id)
        try:
            updated, cascade = dependencies.toggle_slot_selection(
                session, slot_id, selected, table
            )
        except KeyError:
            return await self._finish(session, error=SlotNotFound(slot_id))
        return await self._finish(session, updated, cascade=cascade)

    async def change_model(self, work_id: str, slot_id: str, model_code: str) -> EditResult:
        session = self.registry.get(work_id)
        table = self.registry.table(work_id)
        try:
            updated, cascade = dependencies.change_slot_model(
                session, slot_id, model_code, table
            )
        except KeyError:
            return await self._finish(session, error=SlotNotFound(slot_id))
        except EquipmentRuleError as e:
            return await self._finish(session, error=e)
        return await self._finish(session, updated, cascade=cascade)

    async def update_rental(
        self,
        work_id: str,
        slot_id: str,
        rental_type: Optional[str] = None,
        usage_status: Optional[str] = None,
        sale_amount: Optional[str] = None,
        installment_period: Optional[str] = None,
    ) -> EditResult:
        session = self.registry.get(work_id)
        try:
            updated = dependencies.update_rental(
                session,
                slot_id,
                rental_type=rental_type,
                usage_status=usage_status,
                sale_amount=sale_amount,
                installment_period=installment_period,
            )
        except KeyError:
            return await self._finish(session, error=SlotNotFound(slot_id))
        return await self._finish(session, updated)
