"""Tests for the provisioning backend adapter."""

from dataclasses import replace
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.fieldops.api.exceptions import ProvisioningError
from src.fieldops.equipment.adapters import ProvisioningAPIAdapter, build_composition_parameters
from src.fieldops.equipment.adapters.provisioning_api import (
    CATALOG_ENDPOINT,
    COMPOSITION_ENDPOINT,
    MODEL_LIST_ENDPOINT,
    SIGNAL_ENDPOINT,
    is_success,
    rpad,
)
from src.fieldops.equipment.domain import SignalUnits, update_rental


@pytest.fixture
def mock_client():
    client = MagicMock()
    client.post = AsyncMock(return_value={})
    return client


@pytest.fixture
def adapter(mock_client):
    return ProvisioningAPIAdapter(mock_client, promotion_months="24")


class TestRpad:
    def test_pads(self):
        assert rpad("04", 5) == "04   "

    def test_cuts(self):
        assert rpad("1234567", 3) == "123"

    def test_none(self):
        assert rpad(None, 2, "0") == "00"


class TestBuildCompositionParameters:
    """Tests for build_composition_parameters."""

    def test_selected_slots_concatenated(self, session):
        params = build_composition_parameters(session, "12")

        assert params["WRK_ID"] == "WRK001"
        assert params["RCPT_ID"] == "R001"
        assert params["SERVICE_CNT"] == "4"
        assert params["PROM_CNT"] == "12"
        assert params["PROD_GRPS"] == "CCCC"
        assert params["ITEM_MID_CDS"] == "04        03        10        10        "
        assert params["EQT_CLS"].startswith("090401    090201    ")
        assert len(params["EQT_CLS"]) == 40
        assert params["PROD_CMPS_CLS"] == "21222324"
        assert params["ITLLMT_PRDS"] == "00000000"

    def test_deselected_slots_skipped(self, session):
        compositions = dict(session.compositions)
        for slot_id in ("S-AP1", "S-AP2"):
            compositions[slot_id] = replace(compositions[slot_id], selected=False)
        session = session.evolve(compositions=compositions)

        params = build_composition_parameters(session)

        assert params["SERVICE_CNT"] == "2"
        assert params["ITEM_MID_CDS"] == "04        03        "

    def test_ordered_by_equipment_sequence(self, session):
        slots = tuple(reversed(session.slots))
        params = build_composition_parameters(session.evolve(slots=slots))

        assert params["ITEM_MID_CDS"].startswith("04        03")

    def test_sale_amount_from_last_selected_slot(self, session):
        session = update_rental(session, "S-AP2", sale_amount="15000")

        params = build_composition_parameters(session)

        assert params["EQT_SALE_AMTS"] == "15000     "


class TestIsSuccess:
    @pytest.mark.parametrize("response", [
        {"MSGCODE": "SUCCESS"},
        {"MSGCODE": "0"},
        {"code": "SUCCESS"},
    ])
    def test_success(self, response):
        assert is_success(response)

    @pytest.mark.parametrize("response", [{"MSGCODE": "E01"}, {}, [], None])
    def test_failure(self, response):
        assert not is_success(response)


class TestProvisioningAPIAdapter:
    """Tests for ProvisioningAPIAdapter against a mocked client."""

    @pytest.mark.asyncio
    async def test_fetch_catalog(self, adapter, mock_client, work_order):
        mock_client.post.return_value = {
            "output2": [{"SVC_CMPS_ID": "S1", "ITEM_MID_CD": "04"}],
            "output3": [{"EQT_NO": "U1", "ITEM_MID_CD": "04", "EQT_CL_CD": "090401"}],
        }

        snapshot = await adapter.fetch_catalog(work_order)

        endpoint, body = mock_client.post.call_args[0]
        assert endpoint == CATALOG_ENDPOINT
        assert body["WRK_ID"] == "WRK001"
        assert body["CUST_ID"] == "C001"
        assert [s.slot_id for s in snapshot.slots] == ["S1"]
        assert [u.unit_id for u in snapshot.stock] == ["U1"]
        assert "retry" not in mock_client.post.call_args.kwargs

    @pytest.mark.asyncio
    async def test_fetch_catalog_rejects_non_dict(self, adapter, mock_client, work_order):
        mock_client.post.return_value = ["unexpected"]

        with pytest.raises(ProvisioningError):
            await adapter.fetch_catalog(work_order)

    @pytest.mark.asyncio
    async def test_fetch_model_dependencies(self, adapter, mock_client, work_order, slots):
        mock_client.post.return_value = {"output": [
            {"EQT_CD": "04", "EQT_CL_CD": "090401", "SUB_EQT_1": "050001"},
        ]}

        table = await adapter.fetch_model_dependencies(work_order, "P100", slots)

        endpoint, body = mock_client.post.call_args[0]
        assert endpoint == MODEL_LIST_ENDPOINT
        assert body["PROD_CD"] == "P100"
        assert table.get("090401").sub_models == ("050001",)
        # Contract-only model is supplemented
        assert table.get("090201") is not None

    @pytest.mark.asyncio
    async def test_update_composition(self, adapter, mock_client, session):
        mock_client.post.return_value = {"MSGCODE": "SUCCESS"}

        await adapter.update_composition(session)

        endpoint, body = mock_client.post.call_args[0]
        assert endpoint == COMPOSITION_ENDPOINT
        assert body["parameters"]["SERVICE_CNT"] == "4"
        assert body["parameters"]["PROM_CNT"] == "24"
        assert mock_client.post.call_args.kwargs["retry"] is False

    @pytest.mark.asyncio
    async def test_update_composition_rejected(self, adapter, mock_client, session):
        mock_client.post.return_value = {"MSGCODE": "E42", "MESSAGE": "Contract locked"}

        with pytest.raises(ProvisioningError) as exc_info:
            await adapter.update_composition(session)

        assert exc_info.value.result_code == "E42"
        assert "Contract locked" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_dispatch_success_from_list_response(self, adapter, mock_client, session):
        mock_client.post.return_value = [{"O_IFSVC_RESULT": "TRUE|OK", "MESSAGE": "done"}]
        units = SignalUnits(primary_id="U-MDM1", decoder_id="U-STB1", modem_id="U-MDM1")

        result = await adapter.dispatch(session, units, "SMR03", "TECH1")

        endpoint, body = mock_client.post.call_args[0]
        assert endpoint == SIGNAL_ENDPOINT
        assert body["MSG_ID"] == "SMR03"
        assert body["STB_EQT_NO"] == "U-STB1"
        assert body["MODEM_EQT_NO"] == "U-MDM1"
        assert body["REG_UID"] == "TECH1"
        assert mock_client.post.call_args.kwargs["retry"] is False
        assert result.success
        assert result.result_code == "TRUE|OK"
        assert result.message == "done"

    @pytest.mark.asyncio
    async def test_dispatch_failure(self, adapter, mock_client, session):
        mock_client.post.return_value = {"O_IFSVC_RESULT": "FALSE", "MESSAGE": "no carrier"}

        result = await adapter.dispatch(session, SignalUnits(primary_id="X"), "SMR03", "T")

        assert not result.success
        assert result.message == "no carrier"

    @pytest.mark.asyncio
    async def test_dispatch_empty_response(self, adapter, mock_client, session):
        mock_client.post.return_value = []

        result = await adapter.dispatch(session, SignalUnits(primary_id="X"), "SMR03", "T")

        assert not result.success
        assert result.result_code == ""
