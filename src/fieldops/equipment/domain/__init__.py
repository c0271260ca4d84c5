"""Domain layer for equipment composition.

Contains:
- Entities: slots, units, bindings, removal records, model dependencies
- Session: the immutable per-work-order state
- Engine functions: binding, cascade, removal flags, reconciliation,
  validation, signal derivation
- Ports: interfaces for the provisioning backend and session storage
"""

from .binding import BindingOutcome, finalize, install, remove, reuse
from .dependencies import (
    CascadeResult,
    ModelDependencyTable,
    SlotSelection,
    apply_cascade,
    change_slot_model,
    resolve_deselection,
    resolve_model_change,
    resolve_selection,
    toggle_slot_selection,
    update_rental,
)
from .entities import (
    Binding,
    CatalogSnapshot,
    ChangeReason,
    ContractSlot,
    FilterMetadata,
    LossFlag,
    LossFlags,
    ModelDependency,
    PhysicalUnit,
    RemovalRecord,
    SignalStatus,
    SlotComposition,
    UnitLocation,
    UnitOrigin,
    UnitOwnership,
    WorkOrderContext,
)
from .exceptions import (
    CustomerOwnedEquipment,
    EquipmentRuleError,
    MandatoryCategoryMissing,
    ModelChangeBlockedByBoundUnits,
    ModelMismatch,
    NothingSelected,
    OperationInProgress,
    QuantityExceeded,
    SessionNotLoaded,
    SlotNotFound,
    SlotOccupied,
    UnitAlreadyBound,
    UnitNotBound,
    UnitNotFound,
    UnitNotInRemoval,
)
from .ports import ICatalogAPI, ICompositionAPI, ISessionStore, ISignalDispatcher, SignalResult
from .reconciliation import reconcile
from .removal import has_any_loss, removal_badge, set_flag, toggle_flag
from .session import EquipmentSession, new_session
from .signal import SignalUnits, derive_signal_units, message_id
from .validation import QuantityCapPolicy, check_model_change_allowed, validate_for_save

__all__ = [
    # Entities
    "Binding",
    "CatalogSnapshot",
    "ChangeReason",
    "ContractSlot",
    "FilterMetadata",
    "LossFlag",
    "LossFlags",
    "ModelDependency",
    "PhysicalUnit",
    "RemovalRecord",
    "SignalStatus",
    "SlotComposition",
    "UnitLocation",
    "UnitOrigin",
    "UnitOwnership",
    "WorkOrderContext",
    # Session
    "EquipmentSession",
    "new_session",
    # Binding engine
    "BindingOutcome",
    "install",
    "remove",
    "reuse",
    "finalize",
    # Dependencies
    "CascadeResult",
    "ModelDependencyTable",
    "SlotSelection",
    "apply_cascade",
    "change_slot_model",
    "resolve_deselection",
    "resolve_model_change",
    "resolve_selection",
    "toggle_slot_selection",
    "update_rental",
    # Removal
    "has_any_loss",
    "removal_badge",
    "set_flag",
    "toggle_flag",
    # Reconciliation / validation / signal
    "reconcile",
    "QuantityCapPolicy",
    "check_model_change_allowed",
    "validate_for_save",
    "SignalUnits",
    "derive_signal_units",
    "message_id",
    # Ports
    "ICatalogAPI",
    "ICompositionAPI",
    "ISessionStore",
    "ISignalDispatcher",
    "SignalResult",
    # Errors
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
