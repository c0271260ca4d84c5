"""Shared fixtures for equipment engine tests.

Contract used by most tests:
    S-STB  category 04, model 090401 (set-top box)
    S-MDM  category 03, model 090201 (modem / cable card)
    S-AP1  category 10, any model (access point)
    S-AP2  category 10, any model (access point)
"""

import pytest

from src.fieldops.equipment.domain import (
    CatalogSnapshot,
    FilterMetadata,
    LossFlags,
    RemovalRecord,
    WorkOrderContext,
    new_session,
)
from tests.equipment.factories import make_customer_unit, make_slot, make_unit


@pytest.fixture
def work_order():
    return WorkOrderContext(
        work_id="WRK001",
        customer_id="C001",
        contract_id="CT001",
        receipt_id="R001",
        work_code="01",
        so_id="SO1",
        master_so_id="MSO1",
    )


@pytest.fixture
def slots():
    return [
        make_slot("S-STB", "04", "090401", equipment_sequence="1"),
        make_slot("S-MDM", "03", "090201", equipment_sequence="2"),
        make_slot("S-AP1", "10", equipment_sequence="3"),
        make_slot("S-AP2", "10", equipment_sequence="4"),
    ]


@pytest.fixture
def stock():
    return [
        make_unit("U-STB1", "04", "090401"),
        make_unit("U-STB2", "04", "090401"),
        make_unit("U-STB9", "04", "090499"),
        make_unit("U-MDM1", "03", "090201"),
        make_unit("U-AP1", "10", "100001"),
        make_unit("U-AP2", "10", "100001"),
    ]


@pytest.fixture
def session(work_order, slots, stock):
    return new_session(work_order, slots, stock, FilterMetadata(product_group="C", product_code="P100"))


@pytest.fixture
def snapshot(work_order, slots, stock):
    """Catalog with one customer-installed modem and one pending removal."""
    return CatalogSnapshot(
        work_order=work_order,
        slots=list(slots),
        stock=list(stock),
        customer_units=[
            make_customer_unit("C-MDM", "03", "090201", service_composition_id="S-MDM"),
        ],
        pending_removals=[
            RemovalRecord(
                unit=make_customer_unit("R-OLD", "04", "090400"),
                flags=LossFlags(remote_lost=True),
                server_reported=True,
            ),
        ],
        filter=FilterMetadata(product_group="C", product_code="P100"),
    )
