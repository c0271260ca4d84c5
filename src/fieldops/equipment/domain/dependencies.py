"""Model dependency table and cascade resolution.

A model can require companion models (sub equipment) and conflict with
others (del equipment). When a slot's model or checkbox changes, the
resolver computes which other slots must be selected or deselected. The
functions here are pure; applying the result to a session happens in
apply_cascade / change_slot_model.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Iterable, Optional, Sequence

from .entities import (
    CUSTOMER_OWNED_CATEGORIES,
    RENTAL_CUSTOMER_OWNED,
    RENTAL_INSTALLMENT,
    RENTAL_TYPES_WITH_USAGE_STATUS,
    XCAS_MODEL,
    ContractSlot,
    ModelDependency,
    SlotComposition,
    pad_category,
    pad_model,
)
from .session import EquipmentSession
from .validation import check_model_change_allowed

logger = logging.getLogger(__name__)

_SUB_KEYS = ("SUB_EQT_1", "SUB_EQT_2", "SUB_EQT_3")
_DEL_KEYS = ("DEL_EQT_1", "DEL_EQT_2", "DEL_EQT_3")


@dataclass(frozen=True)
class SlotSelection:
    """Cascade view of a slot: what it is, which model, and whether it is on."""

    slot_id: str
    category_code: str
    model_code: Optional[str]
    selected: bool

    def matches(self, code: str) -> bool:
        """Dependency codes name either a model or a whole category."""
        return code == self.model_code or code == self.category_code


@dataclass(frozen=True)
class CascadeResult:
    """Slots to switch on and off as a consequence of one change."""

    to_select: tuple[str, ...] = ()
    to_deselect: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.to_select and not self.to_deselect


@dataclass
class ModelDependencyTable:
    """Lookup from model code to its ModelDependency.

    Loaded once per session and read-only afterwards.
    """

    entries: dict[str, ModelDependency] = field(default_factory=dict)
    models_by_equipment: dict[str, list[ModelDependency]] = field(default_factory=dict)

    def get(self, model_code: Optional[str]) -> Optional[ModelDependency]:
        if not model_code:
            return None
        return self.entries.get(model_code)

    def models_for(self, equipment_code: str) -> list[ModelDependency]:
        """Selectable models for an equipment (category) code."""
        return list(self.models_by_equipment.get(equipment_code, []))

    def __len__(self) -> int:
        return len(self.entries)

    @classmethod
    def from_dependencies(cls, deps: Iterable[ModelDependency]) -> "ModelDependencyTable":
        table = cls()
        for dep in deps:
            table._add(dep)
        return table

    @classmethod
    def from_rows(
        cls,
        rows: Iterable[dict],
        contract_slots: Sequence[ContractSlot] = (),
    ) -> "ModelDependencyTable":
        """Build from backend model rows.

        Rows carry EQT_CD, EQT_CL_CD, EQT_CL_NM, SUB_EQT_1..3 and
        DEL_EQT_1..3. Duplicate model codes keep the first row. Models that
        only appear on the contract are added without dependencies so the
        dropdown still offers them.
        """
        table = cls()
        for row in rows:
            model_code = pad_model(row.get("EQT_CL_CD"))
            if not model_code or model_code in table.entries:
                continue
            table._add(ModelDependency(
                model_code=model_code,
                sub_models=_codes(row, _SUB_KEYS),
                del_models=_codes(row, _DEL_KEYS),
                equipment_code=pad_category(row.get("EQT_CD")),
                model_name=row.get("EQT_CL_NM"),
            ))

        for slot in contract_slots:
            if slot.required_model_code and slot.required_model_code not in table.entries:
                table._add(ModelDependency(
                    model_code=slot.required_model_code,
                    equipment_code=slot.item_category_code,
                    model_name=slot.model_name,
                ))

        logger.debug(f"Model dependency table built with {len(table)} models")
        return table

    def _add(self, dep: ModelDependency) -> None:
        self.entries[dep.model_code] = dep
        if dep.equipment_code:
            self.models_by_equipment.setdefault(dep.equipment_code, []).append(dep)


def _codes(row: dict, keys: tuple[str, ...]) -> tuple[str, ...]:
    codes = []
    for key in keys:
        value = row.get(key)
        if value is None:
            continue
        value = str(value).strip()
        if value and value not in codes:
            codes.append(value)
    return tuple(codes)


# ============================================
# Resolution
# ============================================

def _find(slots: Sequence[SlotSelection], slot_id: str) -> Optional[SlotSelection]:
    for slot in slots:
        if slot.slot_id == slot_id:
            return slot
    return None


def resolve_model_change(
    slot_id: str,
    new_model_code: str,
    slots: Sequence[SlotSelection],
    table: ModelDependencyTable,
) -> CascadeResult:
    """Cascade for a model dropdown change on ``slot_id``.

    Sub models select other unselected slots that match them; del models
    deselect other selected slots that match them. The changed slot is
    never touched. Running it again on the already cascaded slots yields
    an empty result.
    """
    dep = table.get(new_model_code)
    if dep is None:
        return CascadeResult()

    to_select = []
    to_deselect = []
    for slot in slots:
        if slot.slot_id == slot_id:
            continue
        if not slot.selected and any(slot.matches(code) for code in dep.sub_models):
            to_select.append(slot.slot_id)
        elif slot.selected and any(slot.matches(code) for code in dep.del_models):
            to_deselect.append(slot.slot_id)

    return CascadeResult(to_select=tuple(to_select), to_deselect=tuple(to_deselect))


def resolve_selection(
    slot_id: str,
    slots: Sequence[SlotSelection],
    table: ModelDependencyTable,
) -> CascadeResult:
    """Checkbox on: select the sub equipment of the slot's model."""
    slot = _find(slots, slot_id)
    if slot is None or not slot.model_code:
        return CascadeResult()
    dep = table.get(slot.model_code)
    if dep is None:
        return CascadeResult()
    to_select = tuple(
        other.slot_id for other in slots
        if other.slot_id != slot_id
        and not other.selected
        and any(other.matches(code) for code in dep.sub_models)
    )
    return CascadeResult(to_select=to_select)


def resolve_deselection(
    slot_id: str,
    slots: Sequence[SlotSelection],
    table: ModelDependencyTable,
) -> CascadeResult:
    """Checkbox off: deselect sub equipment nothing else still needs.

    A sub slot stays selected when another selected slot (other than the
    one being switched off) lists it as sub equipment too.
    """
    slot = _find(slots, slot_id)
    if slot is None:
        return CascadeResult()
    dep = table.get(slot.model_code)
    if dep is None:
        return CascadeResult()

    remaining = [s for s in slots if s.selected and s.slot_id != slot_id]
    to_deselect = []
    for other in remaining:
        if not any(other.matches(code) for code in dep.sub_models):
            continue
        justified = False
        for keeper in remaining:
            if keeper.slot_id == other.slot_id:
                continue
            keeper_dep = table.get(keeper.model_code)
            if keeper_dep and any(other.matches(code) for code in keeper_dep.sub_models):
                justified = True
                break
        if not justified:
            to_deselect.append(other.slot_id)

    return CascadeResult(to_deselect=tuple(to_deselect))


def apply_cascade(
    slots: Sequence[SlotSelection],
    result: CascadeResult,
) -> list[SlotSelection]:
    """Return slots with the cascade result applied."""
    select = set(result.to_select)
    deselect = set(result.to_deselect)
    updated = []
    for slot in slots:
        if slot.slot_id in select:
            slot = replace(slot, selected=True)
        elif slot.slot_id in deselect:
            slot = replace(slot, selected=False)
        updated.append(slot)
    return updated


# ============================================
# Rental field rules
# ============================================

def apply_rental_override(composition: SlotComposition, category_code: str) -> SlotComposition:
    """XCAS and categories 21/22 are always customer-owned.

    Applied after the cascade, on the slot whose model changed.
    """
    if composition.model_code == XCAS_MODEL or category_code in CUSTOMER_OWNED_CATEGORIES:
        return normalize_rental_fields(replace(composition, rental_type=RENTAL_CUSTOMER_OWNED))
    return composition


def normalize_rental_fields(composition: SlotComposition) -> SlotComposition:
    """Reset fields that only apply to some rental types.

    Installment period only applies to installment rental ("31"); usage
    status only to rental types 30, 31 and 60.
    """
    changes = {}
    if composition.rental_type != RENTAL_INSTALLMENT and composition.installment_period != "00":
        changes["installment_period"] = "00"
    if (
        composition.rental_type not in RENTAL_TYPES_WITH_USAGE_STATUS
        and composition.usage_status != "1"
    ):
        changes["usage_status"] = "1"
    return replace(composition, **changes) if changes else composition


# ============================================
# Session-level operations
# ============================================

def selections_for(session: EquipmentSession) -> list[SlotSelection]:
    """Cascade view of every slot in the session."""
    result = []
    for slot in session.slots:
        composition = session.composition(slot.slot_id)
        result.append(SlotSelection(
            slot_id=slot.slot_id,
            category_code=slot.item_category_code,
            model_code=composition.model_code,
            selected=composition.selected,
        ))
    return result


def _apply_to_session(
    session: EquipmentSession,
    result: CascadeResult,
    overrides: Optional[dict[str, SlotComposition]] = None,
) -> EquipmentSession:
    compositions = {s.slot_id: session.composition(s.slot_id) for s in session.slots}
    compositions.update(overrides or {})
    for slot_id in result.to_select:
        compositions[slot_id] = replace(compositions[slot_id], selected=True)
    for slot_id in result.to_deselect:
        compositions[slot_id] = replace(compositions[slot_id], selected=False)
    return session.evolve(compositions=compositions)


def change_slot_model(
    session: EquipmentSession,
    slot_id: str,
    model_code: str,
    table: ModelDependencyTable,
) -> tuple[EquipmentSession, CascadeResult]:
    """Change a slot's model and cascade.

    Raises:
        ModelChangeBlockedByBoundUnits: If any unit is bound
        KeyError: If the slot is not on the contract
    """
    check_model_change_allowed(session)
    slot = session.slot(slot_id)
    if slot is None:
        raise KeyError(slot_id)

    model_code = pad_model(model_code)
    selections = [
        replace(s, model_code=model_code) if s.slot_id == slot_id else s
        for s in selections_for(session)
    ]
    result = resolve_model_change(slot_id, model_code, selections, table)

    changed = replace(session.composition(slot_id), model_code=model_code, selected=True)
    changed = apply_rental_override(changed, slot.item_category_code)

    logger.info(
        f"[{session.work_id}] model of {slot_id} -> {model_code}: "
        f"+{list(result.to_select)} -{list(result.to_deselect)}"
    )
    return _apply_to_session(session, result, {slot_id: changed}), result


def toggle_slot_selection(
    session: EquipmentSession,
    slot_id: str,
    selected: bool,
    table: ModelDependencyTable,
) -> tuple[EquipmentSession, CascadeResult]:
    """Switch a slot's checkbox and cascade.

    Raises:
        KeyError: If the slot is not on the contract
    """
    if session.slot(slot_id) is None:
        raise KeyError(slot_id)

    selections = selections_for(session)
    if selected:
        result = resolve_selection(slot_id, selections, table)
    else:
        result = resolve_deselection(slot_id, selections, table)

    changed = replace(session.composition(slot_id), selected=selected)
    return _apply_to_session(session, result, {slot_id: changed}), result


def update_rental(
    session: EquipmentSession,
    slot_id: str,
    rental_type: Optional[str] = None,
    usage_status: Optional[str] = None,
    sale_amount: Optional[str] = None,
    installment_period: Optional[str] = None,
) -> EquipmentSession:
    """Edit a slot's rental/pricing fields.

    Raises:
        KeyError: If the slot is not on the contract
    """
    slot = session.slot(slot_id)
    if slot is None:
        raise KeyError(slot_id)

    composition = session.composition(slot_id)
    changes = {
        key: value
        for key, value in (
            ("rental_type", rental_type),
            ("usage_status", usage_status),
            ("sale_amount", sale_amount),
            ("installment_period", installment_period),
        )
        if value is not None
    }
    composition = normalize_rental_fields(replace(composition, **changes))
    composition = apply_rental_override(composition, slot.item_category_code)

    compositions = dict(session.compositions)
    compositions[slot_id] = composition
    return session.evolve(compositions=compositions)
