"""Signal dispatch unit derivation.

The activation signal names one primary unit plus the set-top and modem
identifiers. Which bound unit is "the" primary unit follows a fixed
category priority.
"""

from dataclasses import dataclass
from typing import Optional

from .entities import (
    ANTENNA_DECODER,
    CABLE_CARD_CATEGORY,
    CATV_DECODER,
    MODEM,
    PRODUCT_GROUP_INTERNET,
    PRODUCT_GROUP_VOIP,
    SECONDARY_DECODER,
    SET_TOP_BOX,
    VOICE_ADAPTER,
    FilterMetadata,
    PhysicalUnit,
)
from .session import EquipmentSession

MESSAGE_ID_VOIP = "SMR60"
MESSAGE_ID_DEFAULT = "SMR03"

STB_MODEL_PREFIX = "0904"
MODEM_MODEL_PREFIX = "0902"
_CARD_MARKERS = ("CARD", "SMART", "CABLE")


@dataclass(frozen=True)
class SignalUnits:
    """Unit identifiers sent with the activation signal."""

    primary_id: Optional[str] = None
    primary_category: Optional[str] = None
    decoder_id: Optional[str] = None
    modem_id: Optional[str] = None
    smart_card_id: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (self.primary_id or self.decoder_id or self.modem_id)

    @property
    def stb_eqt_no(self) -> str:
        """STB_EQT_NO: the set-top, falling back to the primary unit."""
        return self.decoder_id or self.primary_id or ""

    @property
    def modem_eqt_no(self) -> str:
        return self.modem_id or ""


def priority_order(filter: FilterMetadata) -> tuple[str, ...]:
    """Category priority for picking the primary unit.

    VOIP contracts only ever signal the voice adapter. The secondary
    decoder counts only for internet-only products.
    """
    if filter.voip_product_code:
        return (VOICE_ADAPTER,)
    order = [CATV_DECODER, ANTENNA_DECODER, MODEM]
    if filter.product_group == PRODUCT_GROUP_INTERNET:
        order.append(SECONDARY_DECODER)
    order.extend([VOICE_ADAPTER, SET_TOP_BOX])
    return tuple(order)


def message_id(filter: FilterMetadata) -> str:
    return MESSAGE_ID_VOIP if filter.product_group == PRODUCT_GROUP_VOIP else MESSAGE_ID_DEFAULT


def _is_set_top(unit: PhysicalUnit) -> bool:
    return unit.model_code.startswith(STB_MODEL_PREFIX) or unit.item_category_code == CATV_DECODER


def _is_modem(unit: PhysicalUnit) -> bool:
    return unit.model_code.startswith(MODEM_MODEL_PREFIX) or unit.item_category_code == SET_TOP_BOX


def _is_card(unit: PhysicalUnit) -> bool:
    if unit.item_category_code == CABLE_CARD_CATEGORY:
        return True
    name = (unit.model_name or "").upper()
    return any(marker in name for marker in _CARD_MARKERS)


def derive_signal_units(session: EquipmentSession) -> SignalUnits:
    """Pick the units named in the activation signal from the bound set.

    Units are scanned in slot order so the result is stable for a given
    contract.
    """
    bound: list[PhysicalUnit] = []
    for slot in session.slots:
        binding = session.binding_for_slot(slot.slot_id)
        if binding is not None:
            bound.append(binding.unit)

    primary: Optional[PhysicalUnit] = None
    for category in priority_order(session.filter):
        primary = next((u for u in bound if u.item_category_code == category), None)
        if primary is not None:
            break

    decoder = next((u for u in bound if _is_set_top(u)), None)
    modem = next((u for u in bound if _is_modem(u)), None)
    card = next((u for u in bound if _is_card(u)), None)

    return SignalUnits(
        primary_id=primary.unit_id if primary else None,
        primary_category=primary.item_category_code if primary else None,
        decoder_id=decoder.unit_id if decoder else None,
        modem_id=modem.unit_id if modem else None,
        smart_card_id=card.unit_id if card else None,
    )
