"""Tests for catalog/session reconciliation."""

from dataclasses import replace

from src.fieldops.equipment.domain import (
    LossFlag,
    LossFlags,
    SignalStatus,
    SlotComposition,
    UnitOrigin,
    install,
    reconcile,
    remove,
    set_flag,
)
from tests.equipment.factories import make_customer_unit


def _state(session):
    return (
        session.stock,
        session.bindings,
        session.removals,
        session.reported_removals,
        session.compositions,
    )


class TestFirstLoad:
    """Reconcile without local state."""

    def test_customer_unit_bound_to_reported_slot(self, snapshot):
        session = reconcile(snapshot)

        binding = session.binding_for_slot("S-MDM")
        assert binding.unit_id == "C-MDM"
        assert binding.origin == UnitOrigin.CUSTOMER

    def test_pending_removal_is_server_reported(self, snapshot):
        session = reconcile(snapshot)

        record = session.removals["R-OLD"]
        assert record.server_reported
        assert record.flags == LossFlags(remote_lost=True)
        assert session.reported_removals["R-OLD"] == record.flags

    def test_stock_untouched(self, snapshot, stock):
        session = reconcile(snapshot)
        assert set(session.stock) == {u.unit_id for u in stock}

    def test_removal_work_sends_customer_units_to_removal(self, snapshot):
        snapshot.work_order = replace(snapshot.work_order, work_code="02")

        session = reconcile(snapshot)

        assert session.bindings == {}
        assert "C-MDM" in session.removals
        assert not session.removals["C-MDM"].server_reported

    def test_customer_equipment_without_slot_flagged_for_removal(self, snapshot):
        snapshot.customer_units.append(make_customer_unit(
            "C-OLD", "07", "070001",
            equipment_kind="CUST",
            service_composition_id="GONE",
        ))

        session = reconcile(snapshot)

        assert "C-OLD" in session.removals
        assert session.binding_for_unit("C-OLD") is None

    def test_unmatched_customer_unit_goes_to_removal(self, snapshot):
        # Second modem: the only modem slot is already taken by C-MDM
        snapshot.customer_units.append(make_customer_unit("C-MDM2", "03", "090201"))

        session = reconcile(snapshot)

        assert session.binding_for_slot("S-MDM").unit_id == "C-MDM"
        assert "C-MDM2" in session.removals

    def test_reported_slot_taken_falls_back_to_first_free(self, snapshot):
        snapshot.customer_units = [
            make_customer_unit("C-AP1", "10", "100002", service_composition_id="S-AP2"),
            make_customer_unit("C-AP2", "10", "100002", service_composition_id="S-AP2"),
        ]

        session = reconcile(snapshot)

        assert session.binding_for_slot("S-AP2").unit_id == "C-AP1"
        assert session.binding_for_slot("S-AP1").unit_id == "C-AP2"


class TestMerge:
    """Reconcile with local state for the same work order."""

    def test_idempotent(self, snapshot):
        first = reconcile(snapshot)
        second = reconcile(snapshot, first)

        assert _state(second) == _state(first)

    def test_locally_bound_unit_not_back_in_stock(self, snapshot):
        local = install(reconcile(snapshot), "S-STB", "U-STB1").raise_for_error()

        session = reconcile(snapshot, local)

        assert "U-STB1" not in session.stock
        binding = session.binding_for_slot("S-STB")
        assert binding.unit_id == "U-STB1"
        assert binding.origin == UnitOrigin.STOCK

    def test_local_removal_and_flags_preserved(self, snapshot):
        local = remove(reconcile(snapshot), "C-MDM").raise_for_error()
        local = set_flag(local, "C-MDM", LossFlag.CABLE, True)

        session = reconcile(snapshot, local)

        assert session.binding_for_slot("S-MDM") is None
        assert session.removals["C-MDM"].flags == LossFlags(cable_lost=True)

    def test_reused_unit_keeps_origin(self, snapshot):
        local = reconcile(snapshot)
        local = install(local, "S-STB", "U-STB1").raise_for_error()
        local = remove(local, "C-MDM").raise_for_error()
        local = install(local, "S-MDM", "C-MDM").raise_for_error()

        session = reconcile(snapshot, local)

        binding = session.binding_for_slot("S-MDM")
        assert binding.origin == UnitOrigin.REMOVAL
        assert "C-MDM" not in session.removals

    def test_slot_gone_returns_stock_unit(self, snapshot):
        local = install(reconcile(snapshot), "S-STB", "U-STB1").raise_for_error()
        snapshot.slots = [s for s in snapshot.slots if s.slot_id != "S-STB"]

        session = reconcile(snapshot, local)

        assert "U-STB1" in session.stock
        assert session.binding_for_unit("U-STB1") is None

    def test_slot_gone_sends_customer_unit_to_removal(self, snapshot):
        local = reconcile(snapshot)
        snapshot.slots = [s for s in snapshot.slots if s.slot_id != "S-MDM"]

        session = reconcile(snapshot, local)

        assert "C-MDM" in session.removals

    def test_local_selection_and_signal_status_survive(self, snapshot):
        local = reconcile(snapshot)
        compositions = dict(local.compositions)
        compositions["S-AP2"] = SlotComposition(slot_id="S-AP2", selected=False)
        local = local.evolve(compositions=compositions, signal_status=SignalStatus.SUCCESS)

        session = reconcile(snapshot, local)

        assert not session.composition("S-AP2").selected
        assert session.signal_status == SignalStatus.SUCCESS

    def test_server_unit_data_wins(self, snapshot):
        local = install(reconcile(snapshot), "S-STB", "U-STB1").raise_for_error()
        snapshot.stock = [
            replace(u, sale_amount="5000") if u.unit_id == "U-STB1" else u
            for u in snapshot.stock
        ]

        session = reconcile(snapshot, local)

        assert session.binding_for_slot("S-STB").unit.sale_amount == "5000"

    def test_foreign_session_ignored(self, snapshot):
        other = reconcile(snapshot)
        other = install(other, "S-STB", "U-STB1").raise_for_error()
        other = other.evolve(work_order=replace(other.work_order, work_id="OTHER"))

        session = reconcile(snapshot, other)

        assert session.work_id == "WRK001"
        assert session.binding_for_slot("S-STB") is None
        assert "U-STB1" in session.stock

    def test_pending_removal_dropped_by_server_disappears(self, snapshot):
        first = reconcile(snapshot)

        session = reconcile(replace(snapshot, pending_removals=[]), first)

        assert "R-OLD" not in session.removals
        assert "R-OLD" not in session.reported_removals

    def test_server_flag_change_shows_up(self, snapshot):
        first = reconcile(snapshot)
        record = replace(snapshot.pending_removals[0], flags=LossFlags(cable_lost=True))

        session = reconcile(replace(snapshot, pending_removals=[record]), first)

        assert session.removals["R-OLD"].flags == LossFlags(cable_lost=True)
        assert session.reported_removals["R-OLD"] == LossFlags(cable_lost=True)

    def test_customer_unit_dropped_by_server_unbound(self, snapshot):
        first = reconcile(snapshot)

        session = reconcile(replace(snapshot, customer_units=[]), first)

        assert session.binding_for_slot("S-MDM") is None
        assert session.binding_for_unit("C-MDM") is None
        assert "C-MDM" not in session.removals

    def test_technician_flags_win_over_server_flags(self, snapshot):
        local = set_flag(reconcile(snapshot), "R-OLD", LossFlag.CRADLE, True)
        record = replace(snapshot.pending_removals[0], flags=LossFlags(cable_lost=True))

        session = reconcile(replace(snapshot, pending_removals=[record]), local)

        assert session.removals["R-OLD"].flags == LossFlags(remote_lost=True, cradle_lost=True)
        assert session.removals["R-OLD"].server_reported

    def test_touched_units_survive_merge(self, snapshot):
        local = install(reconcile(snapshot), "S-STB", "U-STB1").raise_for_error()
        local = remove(local, "C-MDM").raise_for_error()

        session = reconcile(snapshot, local)

        assert session.touched == {"U-STB1", "C-MDM"}
        assert reconcile(snapshot, session).touched == session.touched
