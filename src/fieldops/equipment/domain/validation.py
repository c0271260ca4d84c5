"""Save-time and install-time validation rules.

Quantity caps are configuration handed to the engine rather than constants
baked into it: the allowlist of carrier products and the bulk ceiling are
maintained in a code table on the backend and change independently of
releases.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Optional

from .entities import (
    ACCESS_POINT,
    HANDY,
    PRIMARY_DECODER_CATEGORY,
    PRODUCT_GROUP_VOIP,
    ContractSlot,
    FilterMetadata,
)
from .exceptions import (
    EquipmentRuleError,
    MandatoryCategoryMissing,
    ModelChangeBlockedByBoundUnits,
    NothingSelected,
    QuantityExceeded,
)
from .session import EquipmentSession

logger = logging.getLogger(__name__)

PAIRED_COMPOSITION_FLAG = "2"


@dataclass(frozen=True)
class QuantityCapPolicy:
    """Per-category unit caps for one contract.

    Attributes:
        capped_categories: Categories limited per contract (AP by default)
        ceiling_categories: Bulk categories that only have the hard ceiling
        default_cap: Cap for capped categories on ordinary products
        paired_cap: Cap when the contract's composition-quantity flag is "2"
        allowlist_products: Carrier products with no per-contract cap
        hard_ceiling: Absolute maximum for bulk categories
        mandatory_category: Category that must have a selected slot
        mandatory_exempt_groups: Product groups exempt from the mandatory rule
    """

    capped_categories: tuple[str, ...] = (ACCESS_POINT,)
    ceiling_categories: tuple[str, ...] = (HANDY, ACCESS_POINT)
    default_cap: int = 1
    paired_cap: int = 2
    allowlist_products: frozenset[str] = field(default_factory=frozenset)
    hard_ceiling: int = 180
    mandatory_category: str = PRIMARY_DECODER_CATEGORY
    mandatory_exempt_groups: tuple[str, ...] = (PRODUCT_GROUP_VOIP,)

    @classmethod
    def from_settings(cls, settings) -> "QuantityCapPolicy":
        """Build a policy from EngineSettings."""
        return cls(
            capped_categories=tuple(settings.cap_categories),
            ceiling_categories=tuple(settings.cap_ceiling_categories),
            allowlist_products=frozenset(settings.cap_allowlist_products),
            hard_ceiling=settings.cap_hard_ceiling,
        )

    def limit_for(self, category: str, filter: FilterMetadata) -> Optional[int]:
        """Maximum units allowed for a category, or None when uncapped."""
        if category in self.capped_categories:
            if filter.composition_quantity_from == PAIRED_COMPOSITION_FLAG:
                return self.paired_cap
            if filter.product_code not in self.allowlist_products:
                return self.default_cap
        if category in self.ceiling_categories:
            return self.hard_ceiling
        return None

    def requires_mandatory(self, filter: FilterMetadata) -> bool:
        return filter.product_group not in self.mandatory_exempt_groups


def check_install_quantity(
    session: EquipmentSession,
    slot: ContractSlot,
    policy: QuantityCapPolicy,
) -> Optional[QuantityExceeded]:
    """Would binding one more unit to ``slot`` breach its category cap?

    A unit replacing the current occupant of the same slot does not count
    twice.
    """
    limit = policy.limit_for(slot.item_category_code, session.filter)
    if limit is None:
        return None

    bound = [
        b for b in session.bindings_in_category(slot.item_category_code)
        if b.slot_id != slot.slot_id
    ]
    requested = len(bound) + 1
    if requested > limit:
        return QuantityExceeded(slot.item_category_code, requested, limit)
    return None


def validate_for_save(
    session: EquipmentSession,
    policy: QuantityCapPolicy,
) -> list[EquipmentRuleError]:
    """Collect every rule that blocks saving the composition.

    Returns:
        List of rule errors, empty when the session can be saved
    """
    errors: list[EquipmentRuleError] = []
    selected = session.selected_slots()

    if not selected:
        return [NothingSelected()]

    counts = Counter(slot.item_category_code for slot in selected)
    for category, bound_count in Counter(
        session.slot(b.slot_id).item_category_code
        for b in session.bindings.values()
        if session.slot(b.slot_id) is not None
    ).items():
        counts[category] = max(counts[category], bound_count)

    for category in sorted(counts):
        limit = policy.limit_for(category, session.filter)
        if limit is not None and counts[category] > limit:
            errors.append(QuantityExceeded(category, counts[category], limit))

    if policy.requires_mandatory(session.filter) and counts[policy.mandatory_category] == 0:
        errors.append(MandatoryCategoryMissing(policy.mandatory_category))

    if errors:
        logger.info(
            f"Save validation for {session.work_id} failed: "
            f"{', '.join(e.code for e in errors)}"
        )
    return errors


def check_model_change_allowed(session: EquipmentSession) -> None:
    """Raise if any unit is bound; models cannot change under bound units.

    Raises:
        ModelChangeBlockedByBoundUnits
    """
    bound = [b.unit_id for b in session.bindings.values()]
    if bound:
        raise ModelChangeBlockedByBoundUnits(bound)
