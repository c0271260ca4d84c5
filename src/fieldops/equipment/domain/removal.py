"""Removal status tracker.

Keeps the five loss/damage flags of units in the removal pool. Flags are
display and export data only; the binding engine never reads them.
"""

import logging

from .entities import LossFlag, RemovalRecord
from .exceptions import CustomerOwnedEquipment, UnitNotInRemoval
from .session import EquipmentSession

logger = logging.getLogger(__name__)

BADGE_LOST = "lost"
BADGE_RETURNED = "returned"


def _record(session: EquipmentSession, unit_id: str) -> RemovalRecord:
    record = session.removals.get(unit_id)
    if record is None:
        raise UnitNotInRemoval(unit_id)
    return record


def set_flag(
    session: EquipmentSession,
    unit_id: str,
    flag: LossFlag,
    value: bool,
) -> EquipmentSession:
    """Set one loss flag on a removal record.

    Raises:
        UnitNotInRemoval: If the unit has no removal record
        CustomerOwnedEquipment: When setting a flag on a customer-owned unit
    """
    record = _record(session, unit_id)
    if value and record.unit.is_customer_owned:
        raise CustomerOwnedEquipment(unit_id)

    if record.flags.get(flag) == value:
        return session

    removals = dict(session.removals)
    removals[unit_id] = RemovalRecord(
        unit=record.unit,
        flags=record.flags.with_flag(flag, value),
        server_reported=record.server_reported,
    )
    logger.debug(f"[{session.work_id}] {unit_id} {flag.value}={'1' if value else '0'}")
    return session.touch(unit_id, removals=removals)


def toggle_flag(session: EquipmentSession, unit_id: str, flag: LossFlag) -> EquipmentSession:
    """Flip exactly one loss flag; nothing else on the record changes."""
    record = _record(session, unit_id)
    return set_flag(session, unit_id, flag, not record.flags.get(flag))


def has_any_loss(session: EquipmentSession, unit_id: str) -> bool:
    """True when any loss flag is set on the unit's removal record."""
    return _record(session, unit_id).flags.any()


def removal_badge(record: RemovalRecord) -> str:
    return BADGE_LOST if record.flags.any() else BADGE_RETURNED
