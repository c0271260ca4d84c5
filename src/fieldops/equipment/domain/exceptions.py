"""Equipment rule violations.

Every rule error is recoverable: the technician fixes the input (picks a
matching unit, removes an occupant, deselects a slot) and tries again.
Binding operations return these as values; save and model-change raise
them.
"""

from typing import Optional

from ...api.exceptions import FieldOpsError


class EquipmentRuleError(FieldOpsError):
    """Base class for user-facing equipment rule violations."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("recoverable", True)
        super().__init__(message, **kwargs)


class ModelMismatch(EquipmentRuleError):
    """Unit category or model does not match the slot."""

    def __init__(
        self,
        slot_id: str,
        unit_id: str,
        expected_category: str,
        actual_category: str,
        expected_model: Optional[str] = None,
        actual_model: Optional[str] = None,
    ):
        details = {
            "slot_id": slot_id,
            "unit_id": unit_id,
            "expected_category": expected_category,
            "actual_category": actual_category,
        }
        if expected_model:
            details["expected_model"] = expected_model
            details["actual_model"] = actual_model
        super().__init__(
            f"Unit {unit_id} does not match slot {slot_id}",
            code="MODEL_MISMATCH",
            details=details,
        )


class SlotOccupied(EquipmentRuleError):
    """Slot holds a customer or reused unit that must be removed first."""

    def __init__(self, slot_id: str, occupant_id: str):
        super().__init__(
            f"Slot {slot_id} is occupied by {occupant_id}; remove it first",
            code="SLOT_OCCUPIED",
            details={"slot_id": slot_id, "occupant_id": occupant_id},
        )


class QuantityExceeded(EquipmentRuleError):
    """Category cap breached."""

    def __init__(self, category: str, requested: int, limit: int):
        super().__init__(
            f"Category {category} allows at most {limit} unit(s), requested {requested}",
            code="QUANTITY_EXCEEDED",
            details={"category": category, "requested": requested, "limit": limit},
        )
        self.category = category
        self.requested = requested
        self.limit = limit


class MandatoryCategoryMissing(EquipmentRuleError):
    """Save attempted without any slot in a mandatory category."""

    def __init__(self, category: str):
        super().__init__(
            f"At least one slot of category {category} must be selected",
            code="MANDATORY_CATEGORY_MISSING",
            details={"category": category},
        )


class ModelChangeBlockedByBoundUnits(EquipmentRuleError):
    """Model catalog cannot change while units are bound."""

    def __init__(self, bound_unit_ids: list[str]):
        super().__init__(
            "Remove installed equipment before changing models",
            code="MODEL_CHANGE_BLOCKED",
            details={"bound_units": bound_unit_ids},
        )


class SlotNotFound(EquipmentRuleError):
    def __init__(self, slot_id: str):
        super().__init__(
            f"Slot {slot_id} is not part of this contract",
            code="SLOT_NOT_FOUND",
            details={"slot_id": slot_id},
        )


class UnitNotFound(EquipmentRuleError):
    def __init__(self, unit_id: str):
        super().__init__(
            f"Unit {unit_id} is not available in stock or removal",
            code="UNIT_NOT_FOUND",
            details={"unit_id": unit_id},
        )


class UnitAlreadyBound(EquipmentRuleError):
    def __init__(self, unit_id: str, slot_id: str):
        super().__init__(
            f"Unit {unit_id} is already installed on slot {slot_id}",
            code="UNIT_ALREADY_BOUND",
            details={"unit_id": unit_id, "slot_id": slot_id},
        )


class UnitNotBound(EquipmentRuleError):
    def __init__(self, unit_id: str):
        super().__init__(
            f"Unit {unit_id} is not installed",
            code="UNIT_NOT_BOUND",
            details={"unit_id": unit_id},
        )


class UnitNotInRemoval(EquipmentRuleError):
    def __init__(self, unit_id: str):
        super().__init__(
            f"Unit {unit_id} is not in the removal pool",
            code="UNIT_NOT_IN_REMOVAL",
            details={"unit_id": unit_id},
        )


class NothingSelected(EquipmentRuleError):
    def __init__(self):
        super().__init__("No equipment selected", code="NOTHING_SELECTED")


class CustomerOwnedEquipment(EquipmentRuleError):
    """Loss processing is not allowed for customer-owned units."""

    def __init__(self, unit_id: str):
        super().__init__(
            f"Unit {unit_id} is customer-owned; loss flags cannot be set",
            code="CUSTOMER_OWNED_EQUIPMENT",
            details={"unit_id": unit_id},
        )


class OperationInProgress(EquipmentRuleError):
    """A save/load/signal for this work order is already running."""

    def __init__(self, work_id: str, operation: str):
        super().__init__(
            f"{operation} already in progress for work order {work_id}",
            code="OPERATION_IN_PROGRESS",
            details={"work_id": work_id, "operation": operation},
        )


class SessionNotLoaded(EquipmentRuleError):
    def __init__(self, work_id: str):
        super().__init__(
            f"No equipment session loaded for work order {work_id}",
            code="SESSION_NOT_LOADED",
            details={"work_id": work_id},
        )


__all__ = [
    "EquipmentRuleError",
    "ModelMismatch",
    "SlotOccupied",
    "QuantityExceeded",
    "MandatoryCategoryMissing",
    "ModelChangeBlockedByBoundUnits",
    "SlotNotFound",
    "UnitNotFound",
    "UnitAlreadyBound",
    "UnitNotBound",
    "UnitNotInRemoval",
    "NothingSelected",
    "CustomerOwnedEquipment",
    "OperationInProgress",
    "SessionNotLoaded",
]
