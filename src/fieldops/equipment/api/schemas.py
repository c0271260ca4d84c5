"""Pydantic schemas for equipment API request/response validation."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from ..domain.entities import LossFlag
from ..domain.removal import removal_badge
from ..domain.session import EquipmentSession


class LossFlagDTO(str, Enum):
    """Loss flags addressable from the API."""

    EQUIPMENT = "equipment"
    ACCESSORY = "accessory"
    REMOTE = "remote"
    CABLE = "cable"
    CRADLE = "cradle"

    def to_domain(self) -> LossFlag:
        return LossFlag[self.name]


# ============================================
# Requests
# ============================================

class LoadRequest(BaseModel):
    """Work order identifiers for a catalog load."""

    customer_id: str = ""
    contract_id: str = ""
    receipt_id: str = ""
    work_code: str = ""
    task_class: str = ""
    so_id: str = ""
    master_so_id: str = ""


class InstallRequest(BaseModel):
    slot_id: str
    unit_id: str


class ReuseRequest(BaseModel):
    unit_id: str
    slot_id: str


class RemoveRequest(BaseModel):
    unit_id: str


class FlagRequest(BaseModel):
    """Set a loss flag, or toggle it when value is omitted."""

    unit_id: str
    flag: LossFlagDTO
    value: Optional[bool] = None


class SelectRequest(BaseModel):
    slot_id: str
    selected: bool


class ModelChangeRequest(BaseModel):
    slot_id: str
    model_code: str = Field(..., min_length=1, max_length=6)


class RentalRequest(BaseModel):
    slot_id: str
    rental_type: Optional[str] = None
    usage_status: Optional[str] = None
    sale_amount: Optional[str] = None
    installment_period: Optional[str] = None


class CompleteRequest(BaseModel):
    require_signal: bool = True


# ============================================
# Responses
# ============================================

class UnitDTO(BaseModel):
    unit_id: str
    serial_number: str
    item_category_code: str
    model_code: str
    model_name: Optional[str] = None
    mac_address: Optional[str] = None
    ownership: str

    class Config:
        from_attributes = True


class SlotDTO(BaseModel):
    slot_id: str
    item_category_code: str
    required_model_code: Optional[str] = None
    model_name: Optional[str] = None
    selected: bool
    model_code: Optional[str] = None
    rental_type: str
    usage_status: str
    sale_amount: str
    installment_period: str
    bound_unit_id: Optional[str] = None
    change_reason: Optional[str] = None
    origin: Optional[str] = None


class RemovalDTO(BaseModel):
    unit: UnitDTO
    flags: dict[str, bool]
    badge: str
    server_reported: bool = False


class SessionResponse(BaseModel):
    """Full view of an equipment session."""

    work_id: str
    signal_status: str
    finalized: bool
    last_updated: Optional[datetime] = None
    slots: list[SlotDTO] = Field(default_factory=list)
    stock: list[UnitDTO] = Field(default_factory=list)
    removals: list[RemovalDTO] = Field(default_factory=list)

    @classmethod
    def from_session(cls, session: EquipmentSession) -> "SessionResponse":
        slots = []
        for slot in session.slots:
            composition = session.composition(slot.slot_id)
            binding = session.binding_for_slot(slot.slot_id)
            slots.append(SlotDTO(
                slot_id=slot.slot_id,
                item_category_code=slot.item_category_code,
                required_model_code=slot.required_model_code,
                model_name=slot.model_name,
                selected=composition.selected,
                model_code=composition.model_code,
                rental_type=composition.rental_type,
                usage_status=composition.usage_status,
                sale_amount=composition.sale_amount,
                installment_period=composition.installment_period,
                bound_unit_id=binding.unit_id if binding else None,
                change_reason=binding.change_reason.value if binding else None,
                origin=binding.origin.value if binding else None,
            ))

        removals = [
            RemovalDTO(
                unit=_unit_dto(record.unit),
                flags={dto.value: record.flags.get(dto.to_domain()) for dto in LossFlagDTO},
                badge=removal_badge(record),
                server_reported=record.server_reported,
            )
            for _, record in sorted(session.removals.items())
        ]

        return cls(
            work_id=session.work_id,
            signal_status=session.signal_status.value,
            finalized=session.finalized,
            last_updated=session.last_updated,
            slots=slots,
            stock=[_unit_dto(u) for _, u in sorted(session.stock.items())],
            removals=removals,
        )


def _unit_dto(unit) -> UnitDTO:
    return UnitDTO(
        unit_id=unit.unit_id,
        serial_number=unit.serial_number,
        item_category_code=unit.item_category_code,
        model_code=unit.model_code,
        model_name=unit.model_name,
        mac_address=unit.mac_address,
        ownership=unit.ownership.value,
    )


class EditResponse(BaseModel):
    ok: bool
    error: Optional[dict[str, Any]] = None
    selected: list[str] = Field(default_factory=list)
    deselected: list[str] = Field(default_factory=list)
    session: SessionResponse


class SaveResponse(BaseModel):
    saved: bool
    errors: list[dict[str, Any]] = Field(default_factory=list)
    session: SessionResponse


class SignalResponse(BaseModel):
    success: bool
    result_code: str = ""
    message: str = ""
    message_id: str
    stb_eqt_no: str = ""
    modem_eqt_no: str = ""


class ExportResponse(BaseModel):
    work_id: str
    installed: list[dict[str, str]] = Field(default_factory=list)
    removed: list[dict[str, str]] = Field(default_factory=list)
