"""Provisioning backend adapter.

Implements the catalog, composition and signal ports on top of
ProvisioningClient. Request bodies and result checks follow the backend's
legacy conventions (right padded fixed-width fields, string result codes).
"""

import logging
from typing import Any, Optional

from ...api.client import ProvisioningClient
from ...api.exceptions import ProvisioningError
from ..domain.dependencies import ModelDependencyTable
from ..domain.entities import CatalogSnapshot, ContractSlot, WorkOrderContext
from ..domain.ports import ICatalogAPI, ICompositionAPI, ISignalDispatcher, SignalResult
from ..domain.session import EquipmentSession
from ..domain.signal import SignalUnits
from .field_mapper import CatalogFieldMapper

logger = logging.getLogger(__name__)

CATALOG_ENDPOINT = "/customer/work/getCustProdInfo"
MODEL_LIST_ENDPOINT = "/customer/receipt/contract/getEquipmentNmListOfProd"
COMPOSITION_ENDPOINT = "/customer/work/eqtCmpsInfoChg"
SIGNAL_ENDPOINT = "/customer/work/checkStbServerConnection"

SUCCESS_CODES = ("SUCCESS", "0")
DEFAULT_PRODUCT_TYPE = "2"


def rpad(value: Any, width: int, fill: str = " ") -> str:
    """Right pad (or cut) to a fixed width."""
    text = "" if value is None else str(value).strip()
    if len(text) >= width:
        return text[:width]
    return text + fill * (width - len(text))


def _sequence_key(slot: ContractSlot, index: int) -> tuple[int, int]:
    raw = slot.equipment_sequence or slot.slot_id
    try:
        return int(raw), index
    except (TypeError, ValueError):
        return index + 1, index


def build_composition_parameters(
    session: EquipmentSession,
    promotion_months: str = "",
) -> dict[str, str]:
    """Concatenated fixed-width composition fields for eqtCmpsInfoChg.

    Selected slots are ordered by equipment sequence (or slot id). The sale
    amount field holds the last selected slot's amount only.
    """
    selected = [
        (slot, index) for index, slot in enumerate(session.slots)
        if session.composition(slot.slot_id).selected
    ]
    selected.sort(key=lambda pair: _sequence_key(pair[0], pair[1]))

    fields = {
        "PROD_GRPS": "",
        "PROD_CMPS_CLS": "",
        "PROD_CDS": "",
        "SVC_CDS": "",
        "ITEM_MID_CDS": "",
        "EQT_CLS": "",
        "LENTS": "",
        "EQT_USE_STATS": "",
        "EQT_SALE_AMTS": "",
        "ITLLMT_PRDS": "",
    }
    for slot, _ in selected:
        composition = session.composition(slot.slot_id)
        fields["PROD_GRPS"] += session.filter.product_group
        fields["PROD_CMPS_CLS"] += DEFAULT_PRODUCT_TYPE + (slot.equipment_sequence or slot.slot_id)
        fields["PROD_CDS"] += slot.product_code or ""
        fields["SVC_CDS"] += slot.service_code or ""
        fields["ITEM_MID_CDS"] += rpad(slot.item_category_code, 10)
        fields["EQT_CLS"] += rpad(composition.model_code or "", 10)
        fields["LENTS"] += composition.rental_type
        fields["EQT_USE_STATS"] += rpad(composition.usage_status, 1)
        fields["EQT_SALE_AMTS"] = rpad(composition.sale_amount or "0", 10)
        fields["ITLLMT_PRDS"] += rpad(composition.installment_period or "00", 2)

    work_order = session.work_order
    return {
        "RCPT_ID": work_order.receipt_id,
        "WRK_ID": work_order.work_id,
        "CTRT_ID": work_order.contract_id,
        **fields,
        "SERVICE_CNT": str(len(selected)),
        "PROM_CNT": promotion_months,
    }


def is_success(response: Any) -> bool:
    """Composition update result check."""
    if not isinstance(response, dict):
        return False
    return (
        str(response.get("MSGCODE", "")) in SUCCESS_CODES
        or str(response.get("code", "")) == "SUCCESS"
    )


class ProvisioningAPIAdapter(ICatalogAPI, ICompositionAPI, ISignalDispatcher):
    """Adapter that talks to the provisioning backend through ProvisioningClient."""

    def __init__(
        self,
        client: ProvisioningClient,
        mapper: Optional[CatalogFieldMapper] = None,
        promotion_months: str = "",
    ):
        """Initialize with an entered ProvisioningClient.

        Args:
            client: ProvisioningClient (already inside its context manager)
            mapper: Field mapper for catalog rows
            promotion_months: Contract term sent with composition updates
        """
        self.client = client
        self.mapper = mapper or CatalogFieldMapper()
        self.promotion_months = promotion_months

    async def fetch_catalog(self, work_order: WorkOrderContext) -> CatalogSnapshot:
        body = {
            "WRK_ID": work_order.work_id,
            "CUST_ID": work_order.customer_id,
            "CTRT_ID": work_order.contract_id,
            "WRK_CD": work_order.work_code,
            "CRR_TSK_CL": work_order.task_class,
            "SO_ID": work_order.so_id,
            "RCPT_ID": work_order.receipt_id,
            "EQT_SEL": "0",
            "EQT_CL": "ALL",
        }
        response = await self.client.post(CATALOG_ENDPOINT, body)
        if not isinstance(response, dict):
            raise ProvisioningError(
                f"Unexpected catalog response for {work_order.work_id}",
                operation="fetch_catalog",
            )
        return self.mapper.map_snapshot(work_order, response)

    async def fetch_model_dependencies(
        self,
        work_order: WorkOrderContext,
        product_code: str,
        slots: list[ContractSlot],
    ) -> ModelDependencyTable:
        body = {
            "EQT_SEL": "0",
            "PROD_CD": product_code,
            "BUGA_EQT_SEL": "Y",
            "CTRT_ID": work_order.contract_id,
        }
        response = await self.client.post(MODEL_LIST_ENDPOINT, body)
        if isinstance(response, dict):
            rows = response.get("output") or response.get("output1") or []
        else:
            rows = response or []
        return ModelDependencyTable.from_rows(rows, slots)

    async def update_composition(self, session: EquipmentSession) -> None:
        parameters = build_composition_parameters(session, self.promotion_months)
        logger.info(
            f"[{session.work_id}] submitting composition with "
            f"{parameters['SERVICE_CNT']} slot(s)"
        )
        response = await self.client.post(COMPOSITION_ENDPOINT, {"parameters": parameters}, retry=False)
        if not is_success(response):
            message = ""
            code = None
            if isinstance(response, dict):
                message = response.get("MESSAGE") or response.get("message") or ""
                code = str(response.get("MSGCODE") or response.get("code") or "") or None
            raise ProvisioningError(
                f"Composition update rejected: {message or 'unknown error'}",
                operation="composition_update",
                result_code=code,
                details={"work_id": session.work_id},
            )

    async def dispatch(
        self,
        session: EquipmentSession,
        units: SignalUnits,
        message_id: str,
        reg_uid: str,
    ) -> SignalResult:
        body = {
            "REG_UID": reg_uid,
            "CTRT_ID": session.work_order.contract_id,
            "WRK_ID": session.work_id,
            "MSG_ID": message_id,
            "STB_EQT_NO": units.stb_eqt_no,
            "MODEM_EQT_NO": units.modem_eqt_no,
        }
        response = await self.client.post(SIGNAL_ENDPOINT, body, retry=False)
        if isinstance(response, list):
            response = response[0] if response else {}
        if not isinstance(response, dict):
            response = {}

        result_code = str(response.get("O_IFSVC_RESULT") or "")
        return SignalResult(
            success=result_code.startswith("TRUE"),
            result_code=result_code,
            message=str(response.get("MESSAGE") or ""),
        )
