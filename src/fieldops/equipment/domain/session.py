"""Equipment session: the per-work-order state the engine operates on.

An EquipmentSession is an immutable value. Binding, removal and cascade
operations take a session and return a new one, so callers can keep the
previous value for undo or comparison and nothing is mutated behind their
back.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Iterable, Optional

from .entities import (
    Binding,
    ContractSlot,
    FilterMetadata,
    LossFlags,
    PhysicalUnit,
    RemovalRecord,
    SignalStatus,
    SlotComposition,
    UnitLocation,
    UnitOrigin,
    WorkOrderContext,
)


@dataclass(frozen=True)
class EquipmentSession:
    """Equipment state for one work order.

    Attributes:
        work_order: Work order identifiers
        slots: Contract slots, in backend order
        stock: Technician stock available for installation, by unit id
        bindings: Active bindings, by slot id
        removals: Removal pool, by unit id
        reported_removals: Flags of server-reported removal records, by unit id
        compositions: Editable slot composition state, by slot id
        touched: Units the technician installed, reused, removed or flagged
        filter: Product/filter metadata from the catalog fetch
        signal_status: Result of the last signal dispatch
        last_updated: When the session last changed
        finalized: True once the session has been saved for completion
    """

    work_order: WorkOrderContext
    slots: tuple[ContractSlot, ...] = ()
    stock: dict[str, PhysicalUnit] = field(default_factory=dict)
    bindings: dict[str, Binding] = field(default_factory=dict)
    removals: dict[str, RemovalRecord] = field(default_factory=dict)
    reported_removals: dict[str, LossFlags] = field(default_factory=dict)
    compositions: dict[str, SlotComposition] = field(default_factory=dict)
    touched: frozenset[str] = frozenset()
    filter: FilterMetadata = field(default_factory=FilterMetadata)
    signal_status: SignalStatus = SignalStatus.IDLE
    last_updated: Optional[datetime] = None
    finalized: bool = False

    @property
    def work_id(self) -> str:
        return self.work_order.work_id

    # ----------------------------------------
    # Lookups
    # ----------------------------------------

    def slot(self, slot_id: str) -> Optional[ContractSlot]:
        for slot in self.slots:
            if slot.slot_id == slot_id:
                return slot
        return None

    def binding_for_slot(self, slot_id: str) -> Optional[Binding]:
        return self.bindings.get(slot_id)

    def binding_for_unit(self, unit_id: str) -> Optional[Binding]:
        for binding in self.bindings.values():
            if binding.unit_id == unit_id:
                return binding
        return None

    def is_touched(self, unit_id: str) -> bool:
        return unit_id in self.touched

    def find_stock(self, unit_id: str) -> Optional[PhysicalUnit]:
        return self.stock.get(unit_id)

    def locate(self, unit_id: str) -> UnitLocation:
        """Which pool a unit is in."""
        if self.binding_for_unit(unit_id) is not None:
            return UnitLocation.BOUND
        if unit_id in self.removals:
            return UnitLocation.REMOVAL
        if unit_id in self.stock:
            return UnitLocation.STOCK
        return UnitLocation.UNKNOWN

    def composition(self, slot_id: str) -> SlotComposition:
        existing = self.compositions.get(slot_id)
        if existing is not None:
            return existing
        slot = self.slot(slot_id)
        return SlotComposition(
            slot_id=slot_id,
            selected=slot.selected_by_default if slot else False,
            model_code=slot.required_model_code if slot else None,
        )

    def selected_slots(self) -> list[ContractSlot]:
        return [s for s in self.slots if self.composition(s.slot_id).selected]

    def bound_units(self) -> list[PhysicalUnit]:
        return [b.unit for b in self.bindings.values()]

    def bindings_in_category(self, category: str) -> list[Binding]:
        result = []
        for binding in self.bindings.values():
            slot = self.slot(binding.slot_id)
            if slot is not None and slot.item_category_code == category:
                result.append(binding)
        return result

    def customer_installed(self) -> list[Binding]:
        return [b for b in self.bindings.values() if b.origin == UnitOrigin.CUSTOMER]

    def all_unit_ids(self) -> list[str]:
        ids = list(self.stock)
        ids.extend(self.removals)
        ids.extend(b.unit_id for b in self.bindings.values())
        return ids

    # ----------------------------------------
    # Copy helpers
    # ----------------------------------------

    def evolve(self, **changes) -> "EquipmentSession":
        """Return a copy with the given fields replaced and a fresh timestamp."""
        changes.setdefault("last_updated", datetime.utcnow())
        return replace(self, **changes)

    def touch(self, *unit_ids: str, **changes) -> "EquipmentSession":
        """Like evolve(), also recording the units as technician-edited."""
        return self.evolve(touched=self.touched | frozenset(unit_ids), **changes)


def new_session(
    work_order: WorkOrderContext,
    slots: Iterable[ContractSlot] = (),
    stock: Iterable[PhysicalUnit] = (),
    filter: Optional[FilterMetadata] = None,
) -> EquipmentSession:
    """Build an empty session with contract slots and stock only."""
    slots = tuple(slots)
    return EquipmentSession(
        work_order=work_order,
        slots=slots,
        stock={u.unit_id: u for u in stock},
        compositions={
            s.slot_id: SlotComposition(
                slot_id=s.slot_id,
                selected=s.selected_by_default,
                model_code=s.required_model_code,
            )
            for s in slots
        },
        filter=filter or FilterMetadata(),
        last_updated=datetime.utcnow(),
    )
