"""Export adapter: session state to work-completion records and back.

Installed records carry EQT_CHG_GB ("1" new, "3" reuse); removed records
carry the five loss flags as "0"/"1". The same records, read back with
import_local_session, seed the local session on the next load.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional

from ..domain.entities import (
    Binding,
    ChangeReason,
    FilterMetadata,
    LossFlags,
    PhysicalUnit,
    RemovalRecord,
    SignalStatus,
    SlotComposition,
    UnitOrigin,
    WorkOrderContext,
    pad_category,
    pad_model,
)
from ..domain.session import EquipmentSession

logger = logging.getLogger(__name__)

PAYLOAD_VERSION = 2


@dataclass
class ExportBundle:
    """Flattened records for the work-completion collaborator."""

    installed: list[dict[str, str]] = field(default_factory=list)
    removed: list[dict[str, str]] = field(default_factory=list)


def _installed_record(
    session: EquipmentSession,
    binding: Binding,
    reg_uid: str,
) -> dict[str, str]:
    unit = binding.unit
    slot = session.slot(binding.slot_id)
    work_order = session.work_order
    return {
        "EQT_NO": unit.unit_id,
        "EQT_SERNO": unit.serial_number,
        "ITEM_MID_CD": unit.item_category_code,
        "EQT_CL_CD": unit.model_code,
        "MAC_ADDRESS": unit.mac_address or "",
        "WRK_ID": work_order.work_id,
        "CUST_ID": work_order.customer_id,
        "CTRT_ID": work_order.contract_id,
        "WRK_CD": work_order.work_code,
        "SVC_CMPS_ID": binding.slot_id,
        "BASIC_PROD_CMPS_ID": (slot.composition_id if slot else None) or unit.basic_composition_id or "",
        "EQT_PROD_CMPS_ID": unit.product_composition_id or "",
        "PROD_CD": (slot.product_code if slot else None) or unit.product_code or "",
        "SVC_CD": (slot.service_code if slot else None) or unit.service_code or "",
        "EQT_SALE_AMT": unit.sale_amount or "0",
        "LENT": unit.rental_type or "10",
        "ITLLMT_PRD": unit.installment_period or "00",
        "EQT_USE_STAT_CD": unit.usage_status or "1",
        "OLD_LENT_YN": unit.old_lent_flag or "N",
        "MST_SO_ID": unit.master_so_id or work_order.master_so_id,
        "SO_ID": unit.so_id or work_order.so_id,
        "REG_UID": reg_uid,
        "EQT_CHG_GB": binding.change_reason.value,
        "IF_DTL_ID": "",
    }


def _removed_record(
    session: EquipmentSession,
    record: RemovalRecord,
    reg_uid: str,
) -> dict[str, str]:
    unit = record.unit
    work_order = session.work_order
    result = {
        "EQT_NO": unit.unit_id,
        "EQT_SERNO": unit.serial_number,
        "ITEM_MID_CD": unit.item_category_code,
        "EQT_CL_CD": unit.model_code,
        "MAC_ADDRESS": unit.mac_address or "",
        "WRK_ID": work_order.work_id,
        "CUST_ID": work_order.customer_id,
        "CTRT_ID": work_order.contract_id,
        "WRK_CD": work_order.work_code,
        "SVC_CMPS_ID": unit.service_composition_id or "",
        "BASIC_PROD_CMPS_ID": unit.basic_composition_id or "",
        "MST_SO_ID": unit.master_so_id or work_order.master_so_id,
        "SO_ID": unit.so_id or work_order.so_id,
        "REG_UID": reg_uid,
    }
    result.update(record.flags.to_codes())
    return result


def export_session(session: EquipmentSession, reg_uid: str = "") -> ExportBundle:
    """Flatten bindings and removal records, in slot order then unit order."""
    installed = []
    for slot in session.slots:
        binding = session.binding_for_slot(slot.slot_id)
        if binding is not None:
            installed.append(_installed_record(session, binding, reg_uid))
    # Bindings on slots the session no longer lists (imported sessions)
    known = {slot.slot_id for slot in session.slots}
    for slot_id, binding in session.bindings.items():
        if slot_id not in known:
            installed.append(_installed_record(session, binding, reg_uid))

    removed = [
        _removed_record(session, record, reg_uid)
        for _, record in sorted(session.removals.items())
    ]
    return ExportBundle(installed=installed, removed=removed)


def _unit_from_record(raw: dict[str, Any]) -> PhysicalUnit:
    def value(key: str, default: Optional[str] = None) -> Optional[str]:
        text = raw.get(key)
        if text is None or str(text) == "":
            return default
        return str(text)

    return PhysicalUnit(
        unit_id=str(raw["EQT_NO"]),
        serial_number=value("EQT_SERNO", ""),
        item_category_code=pad_category(value("ITEM_MID_CD", "")),
        model_code=pad_model(value("EQT_CL_CD", "")),
        mac_address=value("MAC_ADDRESS"),
        rental_type=value("LENT", "10"),
        sale_amount=value("EQT_SALE_AMT", "0"),
        usage_status=value("EQT_USE_STAT_CD", "1"),
        installment_period=value("ITLLMT_PRD", "00"),
        service_composition_id=value("SVC_CMPS_ID"),
        basic_composition_id=value("BASIC_PROD_CMPS_ID"),
        product_composition_id=value("EQT_PROD_CMPS_ID"),
        product_code=value("PROD_CD"),
        service_code=value("SVC_CD"),
        master_so_id=value("MST_SO_ID"),
        so_id=value("SO_ID"),
        old_lent_flag=value("OLD_LENT_YN", "N"),
    )


def import_local_session(
    work_order: WorkOrderContext,
    installed: list[dict[str, Any]],
    removed: list[dict[str, Any]],
    touched: Optional[Iterable[str]] = None,
) -> EquipmentSession:
    """Rebuild a local session from exported records.

    The result has no slots or stock; it is meant to be passed to
    reconcile() together with a fresh catalog, which supplies both.

    Args:
        work_order: Work order the records belong to
        installed: Installed records from export_session
        removed: Removed records from export_session
        touched: Unit ids the technician edited. Defaults to every
            imported unit, so a records file is replayed as a whole.
    """
    bindings = {}
    for raw in installed:
        reason = ChangeReason(str(raw.get("EQT_CHG_GB") or ChangeReason.NEW.value))
        slot_id = str(raw["SVC_CMPS_ID"])
        bindings[slot_id] = Binding(
            slot_id=slot_id,
            unit=_unit_from_record(raw),
            change_reason=reason,
            origin=UnitOrigin.REMOVAL if reason == ChangeReason.REUSE else UnitOrigin.STOCK,
        )

    removals = {}
    for raw in removed:
        unit = _unit_from_record(raw)
        removals[unit.unit_id] = RemovalRecord(unit=unit, flags=LossFlags.from_codes(raw))

    if touched is None:
        touched = [b.unit_id for b in bindings.values()] + list(removals)

    logger.debug(
        f"[{work_order.work_id}] imported {len(bindings)} installed, {len(removals)} removed"
    )
    return EquipmentSession(
        work_order=work_order,
        bindings=bindings,
        removals=removals,
        touched=frozenset(touched),
    )


# ============================================
# Session payload (persistence)
# ============================================

def _work_order_to_dict(work_order: WorkOrderContext) -> dict[str, str]:
    return {
        "work_id": work_order.work_id,
        "customer_id": work_order.customer_id,
        "contract_id": work_order.contract_id,
        "receipt_id": work_order.receipt_id,
        "work_code": work_order.work_code,
        "task_class": work_order.task_class,
        "so_id": work_order.so_id,
        "master_so_id": work_order.master_so_id,
    }


def session_to_payload(session: EquipmentSession) -> dict[str, Any]:
    """JSON-safe payload holding only client-side state.

    Slots and stock are not stored; they come from the next catalog fetch.
    """
    bundle = export_session(session)
    return {
        "version": PAYLOAD_VERSION,
        "work_order": _work_order_to_dict(session.work_order),
        "installed": bundle.installed,
        "removed": bundle.removed,
        "reported_removals": {
            unit_id: flags.to_codes() for unit_id, flags in session.reported_removals.items()
        },
        "touched": sorted(session.touched),
        "compositions": [
            {
                "slot_id": c.slot_id,
                "selected": c.selected,
                "model_code": c.model_code,
                "rental_type": c.rental_type,
                "usage_status": c.usage_status,
                "sale_amount": c.sale_amount,
                "installment_period": c.installment_period,
            }
            for c in session.compositions.values()
        ],
        "product_group": session.filter.product_group,
        "signal_status": session.signal_status.value,
        "finalized": session.finalized,
        "last_updated": session.last_updated.isoformat() if session.last_updated else None,
    }


def payload_to_session(payload: dict[str, Any]) -> EquipmentSession:
    """Inverse of session_to_payload."""
    work_order = WorkOrderContext(**payload["work_order"])
    session = import_local_session(
        work_order,
        payload.get("installed", []),
        payload.get("removed", []),
        touched=payload.get("touched"),
    )

    compositions = {
        raw["slot_id"]: SlotComposition(**raw) for raw in payload.get("compositions", [])
    }
    reported = {
        unit_id: LossFlags.from_codes(codes)
        for unit_id, codes in (payload.get("reported_removals") or {}).items()
    }
    removals = {
        unit_id: RemovalRecord(unit=r.unit, flags=r.flags, server_reported=unit_id in reported)
        for unit_id, r in session.removals.items()
    }
    last_updated = payload.get("last_updated")

    return EquipmentSession(
        work_order=work_order,
        bindings=session.bindings,
        removals=removals,
        reported_removals=reported,
        compositions=compositions,
        touched=session.touched,
        filter=FilterMetadata(product_group=payload.get("product_group", "")),
        signal_status=SignalStatus(payload.get("signal_status", SignalStatus.IDLE.value)),
        finalized=bool(payload.get("finalized", False)),
        last_updated=datetime.fromisoformat(last_updated) if last_updated else None,
    )
