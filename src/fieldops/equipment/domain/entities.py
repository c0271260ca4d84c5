"""Domain entities for equipment composition.

These are pure domain objects with no infrastructure dependencies. Codes
are kept as the zero-padded strings the provisioning backend uses so they
can be compared without conversion.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


# Item category codes (ITEM_MID_CD)
ANTENNA_DECODER = "01"
SECONDARY_DECODER = "02"
MODEM = "03"
SET_TOP_BOX = "04"
CATV_DECODER = "05"
VOICE_ADAPTER = "08"
HANDY = "09"
ACCESS_POINT = "10"

# Composition screens use a second reading of the same codes
PRIMARY_DECODER_CATEGORY = SET_TOP_BOX
SMART_CARD_CATEGORY = CATV_DECODER
CABLE_CARD_CATEGORY = MODEM

# Rental type (LENT) values
RENTAL_DEFAULT = "10"
RENTAL_INSTALLMENT = "31"
RENTAL_CUSTOMER_OWNED = "40"
RENTAL_TYPES_WITH_USAGE_STATUS = frozenset({"30", "31", "60"})

# Models and categories that are always customer-owned
XCAS_MODEL = "090491"
CUSTOMER_OWNED_CATEGORIES = frozenset({"21", "22"})
CUSTOMER_OWNED_VOIP_MODEL = "090852"

# Product group codes (PROD_GRP)
PRODUCT_GROUP_VOIP = "V"
PRODUCT_GROUP_INTERNET = "I"

REMOVAL_WORK_CODES = frozenset({"02", "07", "08", "09"})
REMOVAL_TASK_CLASS = "02"


def pad_category(code: Optional[str]) -> str:
    """Normalize an item category code to two digits ("4" -> "04")."""
    if code is None:
        return ""
    code = str(code).strip()
    return code.zfill(2) if code else ""


def pad_model(code: Optional[str]) -> str:
    """Normalize a model code to six digits ("90491" -> "090491")."""
    if code is None:
        return ""
    code = str(code).strip()
    return code.zfill(6) if code else ""


class UnitOwnership(str, Enum):
    """Where the backend says a unit currently lives."""

    TECHNICIAN_STOCK = "technician_stock"
    CUSTOMER_INSTALLED = "customer_installed"


class UnitOrigin(str, Enum):
    """Pool a bound unit was taken from."""

    STOCK = "stock"
    CUSTOMER = "customer"  # Reported as installed by the backend
    REMOVAL = "removal"  # Reused from the removal pool


class ChangeReason(str, Enum):
    """EQT_CHG_GB discriminator on exported installed records."""

    NEW = "1"
    REUSE = "3"


class UnitLocation(str, Enum):
    """Pool membership of a unit within a session."""

    STOCK = "stock"
    REMOVAL = "removal"
    BOUND = "bound"
    UNKNOWN = "unknown"


class LossFlag(str, Enum):
    """Loss/damage categories for a removed unit, keyed by backend field."""

    EQUIPMENT = "EQT_LOSS_YN"
    ACCESSORY = "PART_LOSS_BRK_YN"  # Adapter
    REMOTE = "EQT_BRK_YN"
    CABLE = "EQT_CABL_LOSS_YN"
    CRADLE = "EQT_CRDL_LOSS_YN"


class SignalStatus(str, Enum):
    """Outcome of the last signal dispatch for a work order."""

    IDLE = "idle"
    SUCCESS = "success"
    FAIL = "fail"


@dataclass(frozen=True)
class ContractSlot:
    """A required equipment position on a contract.

    Created from contract rows at load and never modified afterwards.
    """

    slot_id: str
    item_category_code: str
    required_model_code: Optional[str] = None
    composition_id: Optional[str] = None

    model_name: Optional[str] = None
    product_code: Optional[str] = None
    service_code: Optional[str] = None
    equipment_sequence: Optional[str] = None
    selected_by_default: bool = True

    def accepts(self, unit: "PhysicalUnit") -> bool:
        """Category must match; model must match when the slot is constrained."""
        if unit.item_category_code != self.item_category_code:
            return False
        if self.required_model_code and unit.model_code != self.required_model_code:
            return False
        return True


@dataclass(frozen=True)
class PhysicalUnit:
    """A real, serialized piece of equipment supplied by the backend."""

    unit_id: str
    serial_number: str
    item_category_code: str
    model_code: str
    ownership: UnitOwnership = UnitOwnership.TECHNICIAN_STOCK
    model_name: Optional[str] = None
    mac_address: Optional[str] = None

    # Pricing / rental
    rental_type: str = RENTAL_DEFAULT
    sale_amount: str = "0"
    usage_status: str = "1"
    installment_period: str = "00"

    # Backend bookkeeping carried through to export
    service_composition_id: Optional[str] = None
    basic_composition_id: Optional[str] = None
    product_composition_id: Optional[str] = None
    product_code: Optional[str] = None
    service_code: Optional[str] = None
    master_so_id: Optional[str] = None
    so_id: Optional[str] = None
    lent_flag: Optional[str] = None  # LENT_YN
    old_lent_flag: str = "N"
    customer_owned_voip: Optional[str] = None
    equipment_kind: Optional[str] = None
    install_location: Optional[str] = None
    barcode: Optional[str] = None
    change_reason_code: Optional[str] = None  # CHG_RESN_CD

    @property
    def is_customer_owned(self) -> bool:
        """Customer-owned equipment cannot go through loss processing."""
        return (
            self.lent_flag == RENTAL_CUSTOMER_OWNED
            or self.customer_owned_voip == "Y"
            or self.model_code == CUSTOMER_OWNED_VOIP_MODEL
        )


@dataclass(frozen=True)
class Binding:
    """Live assignment of one unit to one contract slot."""

    slot_id: str
    unit: PhysicalUnit
    change_reason: ChangeReason = ChangeReason.NEW
    origin: UnitOrigin = UnitOrigin.STOCK

    @property
    def unit_id(self) -> str:
        return self.unit.unit_id


@dataclass(frozen=True)
class LossFlags:
    """Five independent loss/damage flags. All default to False."""

    equipment_lost: bool = False
    accessory_lost: bool = False
    remote_lost: bool = False
    cable_lost: bool = False
    cradle_lost: bool = False

    def get(self, flag: LossFlag) -> bool:
        return getattr(self, _FLAG_ATTRIBUTES[flag])

    def with_flag(self, flag: LossFlag, value: bool) -> "LossFlags":
        values = {attr: getattr(self, attr) for attr in _FLAG_ATTRIBUTES.values()}
        values[_FLAG_ATTRIBUTES[flag]] = value
        return LossFlags(**values)

    def any(self) -> bool:
        return any(getattr(self, attr) for attr in _FLAG_ATTRIBUTES.values())

    def to_codes(self) -> dict[str, str]:
        """Backend representation: {"EQT_LOSS_YN": "0"|"1", ...}."""
        return {flag.value: "1" if self.get(flag) else "0" for flag in LossFlag}

    @classmethod
    def from_codes(cls, raw: dict) -> "LossFlags":
        """Read flags from a backend row; anything but "1"/"Y" is False."""
        return cls(**{
            attr: str(raw.get(flag.value, "0")).upper() in ("1", "Y")
            for flag, attr in _FLAG_ATTRIBUTES.items()
        })


_FLAG_ATTRIBUTES = {
    LossFlag.EQUIPMENT: "equipment_lost",
    LossFlag.ACCESSORY: "accessory_lost",
    LossFlag.REMOTE: "remote_lost",
    LossFlag.CABLE: "cable_lost",
    LossFlag.CRADLE: "cradle_lost",
}


@dataclass(frozen=True)
class RemovalRecord:
    """A unit marked for removal/return together with its loss flags."""

    unit: PhysicalUnit
    flags: LossFlags = field(default_factory=LossFlags)
    server_reported: bool = False

    @property
    def unit_id(self) -> str:
        return self.unit.unit_id


@dataclass(frozen=True)
class ModelDependency:
    """Companion (sub) and conflicting (del) models for one model code."""

    model_code: str
    sub_models: tuple[str, ...] = ()
    del_models: tuple[str, ...] = ()
    equipment_code: Optional[str] = None
    model_name: Optional[str] = None

    def __post_init__(self):
        if len(self.sub_models) > 3 or len(self.del_models) > 3:
            raise ValueError(
                f"Model {self.model_code} lists more than 3 sub/del models"
            )


@dataclass(frozen=True)
class SlotComposition:
    """Editable composition state of a slot on the model-change screen."""

    slot_id: str
    selected: bool = True
    model_code: Optional[str] = None
    rental_type: str = RENTAL_DEFAULT
    usage_status: str = "1"
    sale_amount: str = "0"
    installment_period: str = "00"


@dataclass(frozen=True)
class FilterMetadata:
    """Scalar metadata returned alongside the equipment pools."""

    product_group: str = ""
    change_reason_code: str = ""  # PROD_CHG_GB
    kpi_product_group: str = ""
    changed_kpi_product_group: str = ""
    product_code: str = ""
    composition_quantity_from: str = ""  # CMPS_QTY_FROM
    voip_product_code: str = ""

    @property
    def is_voip_only(self) -> bool:
        return self.product_group == PRODUCT_GROUP_VOIP


@dataclass(frozen=True)
class WorkOrderContext:
    """Identifiers for the work order an equipment session belongs to."""

    work_id: str
    customer_id: str = ""
    contract_id: str = ""
    receipt_id: str = ""
    work_code: str = ""
    task_class: str = ""  # CRR_TSK_CL
    so_id: str = ""
    master_so_id: str = ""

    @property
    def is_removal_work(self) -> bool:
        return (
            self.task_class == REMOVAL_TASK_CLASS
            or self.work_code in REMOVAL_WORK_CODES
        )


@dataclass
class CatalogSnapshot:
    """Normalized result of one catalog fetch."""

    work_order: WorkOrderContext
    slots: list[ContractSlot] = field(default_factory=list)
    stock: list[PhysicalUnit] = field(default_factory=list)
    customer_units: list[PhysicalUnit] = field(default_factory=list)
    pending_removals: list[RemovalRecord] = field(default_factory=list)
    filter: FilterMetadata = field(default_factory=FilterMetadata)
