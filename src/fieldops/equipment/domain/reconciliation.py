"""Reconciliation of fetched catalog data with local session state.

On every (re)load the server pools are merged with whatever the
technician already did on this work order. Units the technician touched
(installed, reused, removed or flagged) keep their local state; everything
else takes the server's view.
"""

import logging
from typing import Optional

from .binding import bind_customer_unit
from .entities import (
    Binding,
    CatalogSnapshot,
    ContractSlot,
    LossFlags,
    PhysicalUnit,
    RemovalRecord,
    UnitOrigin,
)
from .session import EquipmentSession, new_session

logger = logging.getLogger(__name__)

CUSTOMER_EQUIPMENT_KIND = "CUST"


def _server_units(snapshot: CatalogSnapshot) -> dict[str, PhysicalUnit]:
    units: dict[str, PhysicalUnit] = {}
    for unit in snapshot.stock:
        units[unit.unit_id] = unit
    for unit in snapshot.customer_units:
        units[unit.unit_id] = unit
    for record in snapshot.pending_removals:
        units.setdefault(record.unit_id, record.unit)
    return units


def _free_slot_for(
    session: EquipmentSession,
    unit: PhysicalUnit,
) -> Optional[ContractSlot]:
    """Slot a backend-installed unit belongs on.

    The slot the backend reports for the unit wins when it is free and
    accepts the unit; otherwise the first free accepting slot.
    """
    preferred = session.slot(unit.service_composition_id) if unit.service_composition_id else None
    if (
        preferred is not None
        and preferred.slot_id not in session.bindings
        and preferred.accepts(unit)
    ):
        return preferred
    for slot in session.slots:
        if slot.slot_id not in session.bindings and slot.accepts(unit):
            return slot
    return None


def _add_removal(
    session: EquipmentSession,
    record: RemovalRecord,
) -> EquipmentSession:
    removals = dict(session.removals)
    removals[record.unit_id] = record
    stock = dict(session.stock)
    stock.pop(record.unit_id, None)
    return session.evolve(removals=removals, stock=stock)


def _place_customer_units(
    session: EquipmentSession,
    snapshot: CatalogSnapshot,
    skip: set[str],
) -> EquipmentSession:
    """Bind backend-installed units, or send them to the removal pool.

    A unit whose service composition is not a contract slot and that is
    tagged as customer equipment must be returned: the contract no longer
    asks for it.
    """
    slot_ids = {slot.slot_id for slot in snapshot.slots}

    for unit in snapshot.customer_units:
        if unit.unit_id in skip or unit.unit_id in session.removals:
            continue

        if snapshot.work_order.is_removal_work:
            session = _add_removal(session, RemovalRecord(unit=unit))
            continue

        slot = _free_slot_for(session, unit)
        if slot is not None:
            session = bind_customer_unit(session, slot.slot_id, unit)
            continue

        if (
            unit.equipment_kind == CUSTOMER_EQUIPMENT_KIND
            and unit.service_composition_id not in slot_ids
        ):
            logger.info(
                f"[{session.work_id}] {unit.unit_id} has no contract slot; flagged for removal"
            )
        else:
            logger.warning(
                f"[{session.work_id}] {unit.unit_id} (category {unit.item_category_code}, "
                f"model {unit.model_code}) matches no free slot; moved to removal pool"
            )
        session = _add_removal(session, RemovalRecord(unit=unit))

    return session


def _first_load(snapshot: CatalogSnapshot) -> EquipmentSession:
    session = new_session(
        work_order=snapshot.work_order,
        slots=snapshot.slots,
        stock=snapshot.stock,
        filter=snapshot.filter,
    )

    reported = {}
    for record in snapshot.pending_removals:
        session = _add_removal(session, RemovalRecord(
            unit=record.unit,
            flags=record.flags,
            server_reported=True,
        ))
        reported[record.unit_id] = record.flags
    session = session.evolve(reported_removals=reported)

    return _place_customer_units(session, snapshot, skip=set())


def _merge(snapshot: CatalogSnapshot, local: EquipmentSession) -> EquipmentSession:
    """Rebuild from the snapshot, replaying only what the technician did.

    Bindings and removal records of touched units are carried over. Units
    the technician never touched (server-seeded customer bindings, pending
    removals and their flags) are taken from the snapshot again, so units
    the server dropped disappear and changed server flags show up.
    """
    server_units = _server_units(snapshot)
    pending_ids = {record.unit_id for record in snapshot.pending_removals}
    customer_ids = {unit.unit_id for unit in snapshot.customer_units}
    touched = local.touched
    kept_bindings = [b for b in local.bindings.values() if b.unit_id in touched]
    kept_removals = {
        unit_id: record for unit_id, record in local.removals.items() if unit_id in touched
    }
    held = {b.unit_id for b in kept_bindings} | set(kept_removals)

    session = new_session(
        work_order=snapshot.work_order,
        slots=snapshot.slots,
        stock=[u for u in snapshot.stock if u.unit_id not in held],
        filter=snapshot.filter,
    )

    # Selection state survives for slots that still exist
    compositions = dict(session.compositions)
    for slot_id, composition in local.compositions.items():
        if slot_id in compositions:
            compositions[slot_id] = composition

    bindings: dict[str, Binding] = {}
    removals: dict[str, RemovalRecord] = {}
    stock = dict(session.stock)
    reported: dict[str, LossFlags] = {
        unit_id: flags for unit_id, flags in local.reported_removals.items() if unit_id in held
    }

    for binding in kept_bindings:
        unit = server_units.get(binding.unit_id, binding.unit)
        slot = session.slot(binding.slot_id)
        origin = binding.origin
        if origin != UnitOrigin.REMOVAL:
            origin = UnitOrigin.CUSTOMER if unit.unit_id in customer_ids else UnitOrigin.STOCK

        if slot is not None and slot.accepts(unit) and slot.slot_id not in bindings:
            bindings[slot.slot_id] = Binding(
                slot_id=slot.slot_id,
                unit=unit,
                change_reason=binding.change_reason,
                origin=origin,
            )
        elif origin == UnitOrigin.STOCK:
            logger.warning(f"[{local.work_id}] slot {binding.slot_id} gone; {unit.unit_id} back to stock")
            stock[unit.unit_id] = unit
        else:
            logger.warning(f"[{local.work_id}] slot {binding.slot_id} gone; {unit.unit_id} to removal")
            removals[unit.unit_id] = RemovalRecord(unit=unit, server_reported=unit.unit_id in pending_ids)

    for unit_id, record in kept_removals.items():
        removals[unit_id] = RemovalRecord(
            unit=server_units.get(unit_id, record.unit),
            flags=record.flags,
            server_reported=record.server_reported or unit_id in pending_ids,
        )

    for record in snapshot.pending_removals:
        if record.unit_id in held:
            continue
        reported[record.unit_id] = record.flags
        removals[record.unit_id] = RemovalRecord(
            unit=record.unit,
            flags=record.flags,
            server_reported=True,
        )
        stock.pop(record.unit_id, None)

    dropped = [
        unit_id for unit_id in local.all_unit_ids()
        if unit_id not in touched and unit_id not in server_units
    ]
    if dropped:
        logger.info(f"[{local.work_id}] no longer reported by the server: {', '.join(dropped)}")

    session = session.evolve(
        stock=stock,
        bindings=bindings,
        removals=removals,
        reported_removals=reported,
        compositions=compositions,
        touched=touched,
        signal_status=local.signal_status,
        finalized=local.finalized,
    )
    return _place_customer_units(session, snapshot, skip=held)


def reconcile(
    snapshot: CatalogSnapshot,
    local: Optional[EquipmentSession] = None,
) -> EquipmentSession:
    """Build the session for a freshly fetched catalog.

    Args:
        snapshot: Normalized server pools for the work order
        local: Session state already held for this work order, if any

    Returns:
        The reconciled session. Reconciling a snapshot with the session it
        produced returns an equivalent session.
    """
    if local is None or local.work_id != snapshot.work_order.work_id:
        if local is not None:
            logger.warning(
                f"Ignoring local session for {local.work_id} while loading "
                f"{snapshot.work_order.work_id}"
            )
        session = _first_load(snapshot)
        mode = "first load"
    else:
        session = _merge(snapshot, local)
        mode = "merged with local state"

    logger.info(
        f"[{session.work_id}] reconciled ({mode}): {len(session.bindings)} bound, "
        f"{len(session.stock)} in stock, {len(session.removals)} in removal"
    )
    return session

