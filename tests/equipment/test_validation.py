"""Tests for save-time validation and quantity cap policy."""

from dataclasses import replace

import pytest

from src.fieldops.config import EngineSettings
from src.fieldops.equipment.domain import (
    FilterMetadata,
    MandatoryCategoryMissing,
    ModelChangeBlockedByBoundUnits,
    NothingSelected,
    QuantityCapPolicy,
    QuantityExceeded,
    SlotComposition,
    check_model_change_allowed,
    install,
    validate_for_save,
)


def _select(session, **selected):
    compositions = dict(session.compositions)
    for slot_id, value in selected.items():
        slot_id = slot_id.replace("_", "-")
        compositions[slot_id] = replace(session.composition(slot_id), selected=value)
    return session.evolve(compositions=compositions)


class TestQuantityCapPolicy:
    """Tests for QuantityCapPolicy.limit_for."""

    def test_access_point_default_cap(self):
        policy = QuantityCapPolicy()
        assert policy.limit_for("10", FilterMetadata(product_code="P1")) == 1

    def test_paired_flag(self):
        policy = QuantityCapPolicy()
        filter = FilterMetadata(product_code="P1", composition_quantity_from="2")
        assert policy.limit_for("10", filter) == 2

    def test_allowlist_falls_back_to_ceiling(self):
        policy = QuantityCapPolicy(allowlist_products=frozenset({"P1"}))
        assert policy.limit_for("10", FilterMetadata(product_code="P1")) == 180

    def test_handy_only_has_ceiling(self):
        assert QuantityCapPolicy().limit_for("09", FilterMetadata()) == 180

    def test_other_categories_uncapped(self):
        assert QuantityCapPolicy().limit_for("04", FilterMetadata()) is None

    def test_from_settings(self):
        settings = EngineSettings(
            cap_categories=("10", "07"),
            cap_allowlist_products=("CARRIER1",),
            cap_hard_ceiling=50,
        )
        policy = QuantityCapPolicy.from_settings(settings)

        assert policy.limit_for("07", FilterMetadata(product_code="X")) == 1
        assert policy.limit_for("10", FilterMetadata(product_code="CARRIER1")) == 50


class TestValidateForSave:
    """Tests for validate_for_save."""

    def test_valid_session(self, session):
        session = _select(session, S_AP2=False)
        assert validate_for_save(session, QuantityCapPolicy()) == []

    def test_too_many_access_points_selected(self, session):
        errors = validate_for_save(session, QuantityCapPolicy())

        assert len(errors) == 1
        assert isinstance(errors[0], QuantityExceeded)
        assert errors[0].requested == 2

    def test_mandatory_decoder_missing(self, session):
        session = _select(session, S_STB=False, S_AP2=False)

        errors = validate_for_save(session, QuantityCapPolicy())

        assert [type(e) for e in errors] == [MandatoryCategoryMissing]
        assert errors[0].details["category"] == "04"

    def test_voip_contract_exempt_from_decoder(self, session):
        session = _select(session, S_STB=False, S_AP2=False)
        session = session.evolve(filter=FilterMetadata(product_group="V"))

        assert validate_for_save(session, QuantityCapPolicy()) == []

    def test_nothing_selected(self, session):
        session = _select(session, S_STB=False, S_MDM=False, S_AP1=False, S_AP2=False)

        errors = validate_for_save(session, QuantityCapPolicy())

        assert [type(e) for e in errors] == [NothingSelected]

    def test_compositions_default_from_slots(self, session):
        session = session.evolve(compositions={
            "S-AP2": SlotComposition(slot_id="S-AP2", selected=False),
        })
        assert validate_for_save(session, QuantityCapPolicy()) == []


class TestModelChangeGuard:
    def test_allowed_without_bindings(self, session):
        check_model_change_allowed(session)

    def test_blocked_with_bound_units(self, session):
        session = install(session, "S-STB", "U-STB1").raise_for_error()

        with pytest.raises(ModelChangeBlockedByBoundUnits) as exc_info:
            check_model_change_allowed(session)

        assert exc_info.value.details["bound_units"] == ["U-STB1"]
