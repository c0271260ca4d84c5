"""Binding engine: install, remove and reuse of physical units.

Each operation takes an EquipmentSession and returns a BindingOutcome. On
success the outcome carries the new session; on a rule violation it
carries the unchanged input session and the rule error. Nothing is
partially applied.

Unit lifecycle:

    stock-available <-> installed -> removal-pending <-> installed (reuse)
                                                     -> finalized (save)

Customer-installed units reported by the backend start out installed.
"""

import logging
from dataclasses import dataclass, replace
from typing import Optional

from .entities import (
    Binding,
    ChangeReason,
    LossFlags,
    PhysicalUnit,
    RemovalRecord,
    UnitOrigin,
    UnitOwnership,
)
from .exceptions import (
    EquipmentRuleError,
    ModelMismatch,
    SlotNotFound,
    SlotOccupied,
    UnitAlreadyBound,
    UnitNotBound,
    UnitNotFound,
    UnitNotInRemoval,
)
from .session import EquipmentSession
from .validation import QuantityCapPolicy, check_install_quantity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BindingOutcome:
    """Result of a binding operation."""

    session: EquipmentSession
    error: Optional[EquipmentRuleError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_error(self) -> EquipmentSession:
        """Return the session, or raise the rule error."""
        if self.error is not None:
            raise self.error
        return self.session


def _reject(session: EquipmentSession, error: EquipmentRuleError) -> BindingOutcome:
    logger.info(f"[{session.work_id}] rejected: {error}")
    return BindingOutcome(session=session, error=error)


def _bind(
    session: EquipmentSession,
    slot_id: str,
    unit_id: str,
    policy: QuantityCapPolicy,
    require_removal: bool,
) -> BindingOutcome:
    slot = session.slot(slot_id)
    if slot is None:
        return _reject(session, SlotNotFound(slot_id))

    existing = session.binding_for_unit(unit_id)
    if existing is not None:
        return _reject(session, UnitAlreadyBound(unit_id, existing.slot_id))

    from_removal = unit_id in session.removals
    if require_removal and not from_removal:
        return _reject(session, UnitNotInRemoval(unit_id))

    if from_removal:
        unit = session.removals[unit_id].unit
    else:
        unit = session.find_stock(unit_id)
        if unit is None:
            return _reject(session, UnitNotFound(unit_id))

    if not slot.accepts(unit):
        return _reject(session, ModelMismatch(
            slot_id=slot_id,
            unit_id=unit_id,
            expected_category=slot.item_category_code,
            actual_category=unit.item_category_code,
            expected_model=slot.required_model_code,
            actual_model=unit.model_code,
        ))

    occupant = session.binding_for_slot(slot_id)
    if occupant is not None and occupant.origin != UnitOrigin.STOCK:
        return _reject(session, SlotOccupied(slot_id, occupant.unit_id))

    quantity_error = check_install_quantity(session, slot, policy)
    if quantity_error is not None:
        return _reject(session, quantity_error)

    stock = dict(session.stock)
    removals = dict(session.removals)
    reported = dict(session.reported_removals)
    bindings = dict(session.bindings)

    if occupant is not None:
        # Stock occupant goes back on the truck
        stock[occupant.unit_id] = occupant.unit
        logger.debug(f"[{session.work_id}] {occupant.unit_id} returned to stock from {slot_id}")

    if from_removal:
        del removals[unit_id]
        reported.pop(unit_id, None)
        binding = Binding(
            slot_id=slot_id,
            unit=unit,
            change_reason=ChangeReason.REUSE,
            origin=UnitOrigin.REMOVAL,
        )
    else:
        del stock[unit_id]
        binding = Binding(
            slot_id=slot_id,
            unit=unit,
            change_reason=ChangeReason.NEW,
            origin=UnitOrigin.STOCK,
        )

    bindings[slot_id] = binding
    logger.info(
        f"[{session.work_id}] bound {unit_id} to {slot_id} "
        f"({binding.change_reason.name.lower()})"
    )
    return BindingOutcome(session=session.touch(
        unit_id,
        stock=stock,
        removals=removals,
        reported_removals=reported,
        bindings=bindings,
    ))


def install(
    session: EquipmentSession,
    slot_id: str,
    unit_id: str,
    policy: Optional[QuantityCapPolicy] = None,
) -> BindingOutcome:
    """Bind a stock or removal-pool unit to a slot.

    Rejections, in the order they are checked: SlotNotFound,
    UnitAlreadyBound, UnitNotFound, ModelMismatch, SlotOccupied,
    QuantityExceeded.

    Args:
        session: Current session
        slot_id: Target contract slot
        unit_id: Unit from stock or the removal pool
        policy: Quantity caps (defaults apply when omitted)

    Returns:
        BindingOutcome with the new session or the rejection
    """
    return _bind(session, slot_id, unit_id, policy or QuantityCapPolicy(), require_removal=False)


def reuse(
    session: EquipmentSession,
    unit_id: str,
    target_slot_id: str,
    policy: Optional[QuantityCapPolicy] = None,
) -> BindingOutcome:
    """Re-bind a removal-pool unit; its removal record and flags are dropped."""
    return _bind(session, target_slot_id, unit_id, policy or QuantityCapPolicy(), require_removal=True)


def remove(session: EquipmentSession, unit_id: str) -> BindingOutcome:
    """Tear down the binding of a unit.

    Stock-originated units go back to stock without a removal record since
    they were never deployed. Anything else becomes a RemovalRecord: the
    server-reported flags for that unit if the backend listed it as pending
    removal, otherwise all flags false.
    """
    binding = session.binding_for_unit(unit_id)
    if binding is None:
        return _reject(session, UnitNotBound(unit_id))

    bindings = dict(session.bindings)
    del bindings[binding.slot_id]

    if binding.origin == UnitOrigin.STOCK:
        stock = dict(session.stock)
        stock[unit_id] = binding.unit
        logger.info(f"[{session.work_id}] undo registration of {unit_id}")
        return BindingOutcome(session=session.touch(unit_id, bindings=bindings, stock=stock))

    reported = session.reported_removals.get(unit_id)
    record = RemovalRecord(
        unit=binding.unit,
        flags=reported if reported is not None else LossFlags(),
        server_reported=reported is not None,
    )
    removals = dict(session.removals)
    removals[unit_id] = record
    logger.info(f"[{session.work_id}] {unit_id} moved to removal pool")
    return BindingOutcome(session=session.touch(unit_id, bindings=bindings, removals=removals))


def bind_customer_unit(
    session: EquipmentSession,
    slot_id: str,
    unit: PhysicalUnit,
) -> EquipmentSession:
    """Seed a binding for a unit the backend reports as already installed.

    Used by reconciliation only; caller guarantees the slot is free and the
    unit matches it.
    """
    bindings = dict(session.bindings)
    bindings[slot_id] = Binding(
        slot_id=slot_id,
        unit=unit,
        change_reason=ChangeReason.NEW,
        origin=UnitOrigin.CUSTOMER,
    )
    return session.evolve(bindings=bindings)


def finalize(session: EquipmentSession) -> EquipmentSession:
    """Close the session after a successful save.

    Removal records are consumed and every bound unit is now installed at
    the customer.
    """
    bindings = {
        slot_id: Binding(
            slot_id=slot_id,
            unit=_as_customer_unit(b.unit),
            change_reason=b.change_reason,
            origin=UnitOrigin.CUSTOMER,
        )
        for slot_id, b in session.bindings.items()
    }
    logger.info(
        f"[{session.work_id}] finalized: {len(bindings)} installed, "
        f"{len(session.removals)} removed"
    )
    return session.evolve(
        bindings=bindings,
        removals={},
        reported_removals={},
        finalized=True,
    )


def _as_customer_unit(unit: PhysicalUnit) -> PhysicalUnit:
    if unit.ownership == UnitOwnership.CUSTOMER_INSTALLED:
        return unit
    return replace(unit, ownership=UnitOwnership.CUSTOMER_INSTALLED)
