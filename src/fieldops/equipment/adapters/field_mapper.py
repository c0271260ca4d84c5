"""Field mapper for provisioning catalog responses.

Backend rows arrive with inconsistent keys (EQT_CL_CD vs EQT_CL, MAC_ADDRESS
vs MAC_ADDR, unpadded codes). This mapper is the only place that reads raw
rows; everything past it works on ContractSlot / PhysicalUnit.
"""

import logging
from typing import Any, Optional

from ..domain.entities import (
    CatalogSnapshot,
    ContractSlot,
    FilterMetadata,
    LossFlags,
    PhysicalUnit,
    RemovalRecord,
    UnitOwnership,
    WorkOrderContext,
    pad_category,
    pad_model,
)

logger = logging.getLogger(__name__)


def _text(raw: dict[str, Any], *keys: str, default: Optional[str] = None) -> Optional[str]:
    """First non-empty value among keys, as a stripped string."""
    for key in keys:
        value = raw.get(key)
        if value is None:
            continue
        value = str(value).strip()
        if value:
            return value
    return default


def _rows(response: dict[str, Any], key: str) -> list[dict[str, Any]]:
    value = response.get(key) or []
    if isinstance(value, dict):
        return [value]
    return [row for row in value if isinstance(row, dict)]


class CatalogFieldMapper:
    """Maps getCustProdInfo responses to domain entities.

    Response keys:
        output1: promotion / product-group metadata
        output2: contract slots
        output3: technician stock
        output4: customer-installed units
        output5: pending-removal units
    """

    def map_slot(self, raw: dict[str, Any]) -> Optional[ContractSlot]:
        """Contract row to ContractSlot; None when the row has no id."""
        slot_id = _text(raw, "SVC_CMPS_ID", "PROD_CMPS_ID")
        if not slot_id:
            logger.warning(f"Skipping contract row without SVC_CMPS_ID: {raw.get('ITEM_MID_CD')}")
            return None

        model = pad_model(_text(raw, "EQT_CL_CD", "EQT_CL"))
        return ContractSlot(
            slot_id=slot_id,
            item_category_code=pad_category(_text(raw, "ITEM_MID_CD", "EQT")),
            required_model_code=model or None,
            composition_id=_text(raw, "BASIC_PROD_CMPS_ID"),
            model_name=_text(raw, "EQT_CL_NM"),
            product_code=_text(raw, "PROD_CD"),
            service_code=_text(raw, "SVC_CD"),
            equipment_sequence=_text(raw, "EQUIP_SEQ"),
            selected_by_default=_text(raw, "SEL", default="1") != "0",
        )

    def map_unit(self, raw: dict[str, Any], ownership: UnitOwnership) -> Optional[PhysicalUnit]:
        """Equipment row to PhysicalUnit; None when the row has no EQT_NO."""
        unit_id = _text(raw, "EQT_NO")
        if not unit_id:
            logger.warning(f"Skipping equipment row without EQT_NO (serial {raw.get('EQT_SERNO')})")
            return None

        return PhysicalUnit(
            unit_id=unit_id,
            serial_number=_text(raw, "EQT_SERNO", default=""),
            item_category_code=pad_category(_text(raw, "ITEM_MID_CD")),
            model_code=pad_model(_text(raw, "EQT_CL_CD", "EQT_CL")),
            ownership=ownership,
            model_name=_text(raw, "EQT_CL_NM"),
            mac_address=_text(raw, "MAC_ADDRESS", "MAC_ADDR"),
            rental_type=_text(raw, "LENT", default="10"),
            sale_amount=_text(raw, "EQT_SALE_AMT", default="0"),
            usage_status=_text(raw, "EQT_USE_STAT_CD", default="1"),
            installment_period=_text(raw, "ITLLMT_PRD", default="00"),
            service_composition_id=_text(raw, "SVC_CMPS_ID"),
            basic_composition_id=_text(raw, "BASIC_PROD_CMPS_ID"),
            product_composition_id=_text(raw, "EQT_PROD_CMPS_ID"),
            product_code=_text(raw, "PROD_CD"),
            service_code=_text(raw, "SVC_CD"),
            master_so_id=_text(raw, "MST_SO_ID"),
            so_id=_text(raw, "SO_ID"),
            lent_flag=_text(raw, "LENT_YN"),
            old_lent_flag=_text(raw, "OLD_LENT_YN", default="N"),
            customer_owned_voip=_text(raw, "VOIP_CUSTOWN_EQT"),
            equipment_kind=_text(raw, "EQT_KND"),
            install_location=_text(raw, "INSTL_LCTN"),
            barcode=_text(raw, "BAR_CD"),
            change_reason_code=_text(raw, "CHG_RESN_CD"),
        )

    def map_pending_removal(self, raw: dict[str, Any]) -> Optional[RemovalRecord]:
        unit = self.map_unit(raw, UnitOwnership.CUSTOMER_INSTALLED)
        if unit is None:
            return None
        return RemovalRecord(unit=unit, flags=LossFlags.from_codes(raw), server_reported=True)

    def map_filter(
        self,
        promotion_rows: list[dict[str, Any]],
        slot_rows: list[dict[str, Any]],
    ) -> FilterMetadata:
        """Scalar metadata from output1, with product data from the first slot row."""
        promo = promotion_rows[0] if promotion_rows else {}
        first_slot = slot_rows[0] if slot_rows else {}
        return FilterMetadata(
            product_group=_text(promo, "PROD_GRP", default="") or _text(first_slot, "PROD_GRP", default=""),
            change_reason_code=_text(promo, "PROD_CHG_GB", default=""),
            kpi_product_group=_text(promo, "KPI_PROD_GRP_CD", default=""),
            changed_kpi_product_group=_text(promo, "CHG_KPI_PROD_GRP_CD", default=""),
            product_code=_text(promo, "PROD_CD", default="") or _text(first_slot, "PROD_CD", default=""),
            composition_quantity_from=_text(first_slot, "CMPS_QTY_FROM", default=""),
            voip_product_code=_text(promo, "VOIP_PROD_CD", default=""),
        )

    def map_snapshot(
        self,
        work_order: WorkOrderContext,
        response: dict[str, Any],
    ) -> CatalogSnapshot:
        """Normalize a full catalog response.

        Duplicate unit ids within a pool keep the first row.
        """
        slot_rows = _rows(response, "output2")
        slots = []
        seen_slots = set()
        for row in slot_rows:
            slot = self.map_slot(row)
            if slot is not None and slot.slot_id not in seen_slots:
                seen_slots.add(slot.slot_id)
                slots.append(slot)

        stock = self._units(_rows(response, "output3"), UnitOwnership.TECHNICIAN_STOCK)
        customer_units = self._units(_rows(response, "output4"), UnitOwnership.CUSTOMER_INSTALLED)

        pending = []
        seen_pending = set()
        for row in _rows(response, "output5"):
            record = self.map_pending_removal(row)
            if record is not None and record.unit_id not in seen_pending:
                seen_pending.add(record.unit_id)
                pending.append(record)

        snapshot = CatalogSnapshot(
            work_order=work_order,
            slots=slots,
            stock=stock,
            customer_units=customer_units,
            pending_removals=pending,
            filter=self.map_filter(_rows(response, "output1"), slot_rows),
        )
        logger.debug(
            f"[{work_order.work_id}] catalog: {len(slots)} slots, {len(stock)} stock, "
            f"{len(customer_units)} customer, {len(pending)} pending removal"
        )
        return snapshot

    def _units(self, rows: list[dict[str, Any]], ownership: UnitOwnership) -> list[PhysicalUnit]:
        units = []
        seen = set()
        for row in rows:
            unit = self.map_unit(row, ownership)
            if unit is not None and unit.unit_id not in seen:
                seen.add(unit.unit_id)
                units.append(unit)
        return units
