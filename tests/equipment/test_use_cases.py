"""Tests for the equipment use cases.

These tests use mock ports to exercise the use cases in isolation.
"""

import asyncio
from dataclasses import replace
from typing import Optional

import pytest

from src.fieldops.api.exceptions import (
    ConnectionError,
    ProvisioningError,
    SignalDispatchError,
)
from src.fieldops.equipment.adapters import InMemorySessionStore
from src.fieldops.equipment.domain import (
    ICatalogAPI,
    ICompositionAPI,
    ISignalDispatcher,
    LossFlag,
    ModelDependency,
    ModelDependencyTable,
    ModelMismatch,
    OperationInProgress,
    QuantityExceeded,
    SessionNotLoaded,
    SignalResult,
    SignalStatus,
    SlotNotFound,
)
from src.fieldops.equipment.use_cases import (
    CompleteWorkUseCase,
    DispatchSignalUseCase,
    EditEquipmentUseCase,
    InFlightGuard,
    LoadCatalogUseCase,
    SaveCompositionUseCase,
    SessionRegistry,
)


class MockCatalogAPI(ICatalogAPI):
    """Mock implementation of ICatalogAPI for testing."""

    def __init__(self, snapshot, table=None, raise_error: Optional[Exception] = None):
        self.snapshot = snapshot
        self.table = table or ModelDependencyTable()
        self.raise_error = raise_error
        self.fetch_count = 0
        self.gate: Optional[asyncio.Event] = None

    async def fetch_catalog(self, work_order):
        self.fetch_count += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.raise_error:
            raise self.raise_error
        return replace(self.snapshot, work_order=work_order)

    async def fetch_model_dependencies(self, work_order, product_code, slots):
        return self.table


class MockCompositionAPI(ICompositionAPI):
    """Mock implementation of ICompositionAPI for testing."""

    def __init__(self, raise_error: Optional[Exception] = None):
        self.raise_error = raise_error
        self.submitted = []

    async def update_composition(self, session):
        if self.raise_error:
            raise self.raise_error
        self.submitted.append(session)


class MockSignalDispatcher(ISignalDispatcher):
    """Mock implementation of ISignalDispatcher for testing."""

    def __init__(self, result: Optional[SignalResult] = None, raise_error: Optional[Exception] = None):
        self.result = result or SignalResult(success=True, result_code="TRUE")
        self.raise_error = raise_error
        self.calls = []

    async def dispatch(self, session, units, message_id, reg_uid):
        self.calls.append((units, message_id, reg_uid))
        if self.raise_error:
            raise self.raise_error
        return self.result


class BlockingSignalDispatcher(ISignalDispatcher):
    """Dispatcher that holds the request open until released."""

    def __init__(self):
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def dispatch(self, session, units, message_id, reg_uid):
        self.started.set()
        await self.release.wait()
        return SignalResult(success=True, result_code="TRUE")


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def catalog(snapshot):
    return MockCatalogAPI(snapshot, ModelDependencyTable.from_dependencies([
        ModelDependency(model_code="090401", sub_models=("10",), equipment_code="04"),
        ModelDependency(model_code="090402", del_models=("10",), equipment_code="04"),
    ]))


@pytest.fixture
def loader(catalog, store, registry):
    return LoadCatalogUseCase(catalog, store, registry)


@pytest.fixture
def editor(registry, store):
    return EditEquipmentUseCase(registry, store)


class TestLoadCatalogUseCase:
    """Tests for LoadCatalogUseCase."""

    @pytest.mark.asyncio
    async def test_first_load(self, loader, registry, store, work_order):
        result = await loader.execute(work_order)

        assert not result.resumed
        assert registry.get("WRK001") is result.session
        assert result.session.binding_for_slot("S-MDM").unit_id == "C-MDM"
        assert "WRK001" in store
        assert registry.table("WRK001") is result.table

    @pytest.mark.asyncio
    async def test_reload_keeps_local_edits(self, loader, editor, work_order):
        await loader.execute(work_order)
        await editor.install("WRK001", "S-STB", "U-STB1")

        result = await loader.execute(work_order)

        assert result.resumed
        assert result.session.binding_for_slot("S-STB").unit_id == "U-STB1"
        assert "U-STB1" not in result.session.stock

    @pytest.mark.asyncio
    async def test_resumes_from_store(self, catalog, store, work_order):
        first_registry = SessionRegistry()
        await LoadCatalogUseCase(catalog, store, first_registry).execute(work_order)
        await EditEquipmentUseCase(first_registry, store).remove("WRK001", "C-MDM")

        # New process: empty registry, same store
        result = await LoadCatalogUseCase(catalog, store, SessionRegistry()).execute(work_order)

        assert result.resumed
        assert "C-MDM" in result.session.removals
        assert result.session.binding_for_slot("S-MDM") is None

    @pytest.mark.asyncio
    async def test_fetch_failure_leaves_state(self, loader, catalog, editor, registry, work_order):
        await loader.execute(work_order)
        await editor.install("WRK001", "S-STB", "U-STB1")
        before = registry.get("WRK001")
        catalog.raise_error = ConnectionError("backend down")

        with pytest.raises(ConnectionError):
            await loader.execute(work_order)

        assert registry.get("WRK001") is before

    @pytest.mark.asyncio
    async def test_concurrent_load_rejected(self, catalog, store, registry, work_order):
        catalog.gate = asyncio.Event()
        loader = LoadCatalogUseCase(catalog, store, registry, InFlightGuard())

        first = asyncio.create_task(loader.execute(work_order))
        await asyncio.sleep(0)

        with pytest.raises(OperationInProgress):
            await loader.execute(work_order)

        catalog.gate.set()
        result = await first
        assert catalog.fetch_count == 1
        assert result.session.work_id == "WRK001"


class TestEditEquipmentUseCase:
    """Tests for EditEquipmentUseCase."""

    @pytest.mark.asyncio
    async def test_requires_load(self, editor):
        with pytest.raises(SessionNotLoaded):
            await editor.install("WRK001", "S-STB", "U-STB1")

    @pytest.mark.asyncio
    async def test_install_commits(self, loader, editor, registry, store, work_order):
        await loader.execute(work_order)

        result = await editor.install("WRK001", "S-STB", "U-STB1")

        assert result.ok
        assert registry.get("WRK001").binding_for_slot("S-STB").unit_id == "U-STB1"
        stored = await store.load("WRK001")
        assert stored.binding_for_slot("S-STB").unit_id == "U-STB1"

    @pytest.mark.asyncio
    async def test_rule_error_returned_not_raised(self, loader, editor, registry, work_order):
        await loader.execute(work_order)
        before = registry.get("WRK001")

        result = await editor.install("WRK001", "S-STB", "U-MDM1")

        assert isinstance(result.error, ModelMismatch)
        assert result.to_dict()["error"]["code"] == "MODEL_MISMATCH"
        assert registry.get("WRK001") is before

    @pytest.mark.asyncio
    async def test_policy_applied(self, loader, editor, work_order):
        await loader.execute(work_order)
        await editor.install("WRK001", "S-AP1", "U-AP1")

        result = await editor.install("WRK001", "S-AP2", "U-AP2")

        assert isinstance(result.error, QuantityExceeded)

    @pytest.mark.asyncio
    async def test_remove_and_toggle_flag(self, loader, editor, work_order):
        await loader.execute(work_order)
        await editor.remove("WRK001", "C-MDM")

        result = await editor.set_flag("WRK001", "C-MDM", LossFlag.CRADLE)

        assert result.session.removals["C-MDM"].flags.cradle_lost

        result = await editor.set_flag("WRK001", "C-MDM", LossFlag.CRADLE, True)
        assert result.session.removals["C-MDM"].flags.cradle_lost

    @pytest.mark.asyncio
    async def test_flag_on_unknown_removal(self, loader, editor, work_order):
        await loader.execute(work_order)

        result = await editor.set_flag("WRK001", "U-STB1", LossFlag.REMOTE)

        assert not result.ok
        assert result.error.code == "UNIT_NOT_IN_REMOVAL"

    @pytest.mark.asyncio
    async def test_reuse(self, loader, editor, work_order):
        await loader.execute(work_order)
        await editor.remove("WRK001", "C-MDM")

        result = await editor.reuse("WRK001", "C-MDM", "S-MDM")

        assert result.ok
        assert result.session.binding_for_slot("S-MDM").unit_id == "C-MDM"

    @pytest.mark.asyncio
    async def test_select_cascades(self, loader, editor, work_order):
        await loader.execute(work_order)
        await editor.select("WRK001", "S-AP1", False)
        await editor.select("WRK001", "S-AP2", False)
        await editor.select("WRK001", "S-STB", False)

        result = await editor.select("WRK001", "S-STB", True)

        assert sorted(result.selected) == ["S-AP1", "S-AP2"]

    @pytest.mark.asyncio
    async def test_select_unknown_slot(self, loader, editor, work_order):
        await loader.execute(work_order)

        result = await editor.select("WRK001", "NOPE", True)

        assert isinstance(result.error, SlotNotFound)

    @pytest.mark.asyncio
    async def test_change_model_blocked_when_bound(self, loader, editor, work_order):
        # C-MDM is bound after load
        await loader.execute(work_order)

        result = await editor.change_model("WRK001", "S-STB", "090402")

        assert result.error.code == "MODEL_CHANGE_BLOCKED"

    @pytest.mark.asyncio
    async def test_change_model_cascades(self, loader, editor, work_order):
        await loader.execute(work_order)
        await editor.remove("WRK001", "C-MDM")

        result = await editor.change_model("WRK001", "S-STB", "090402")

        assert result.ok
        assert sorted(result.deselected) == ["S-AP1", "S-AP2"]
        assert result.session.composition("S-STB").model_code == "090402"

    @pytest.mark.asyncio
    async def test_update_rental(self, loader, editor, work_order):
        await loader.execute(work_order)

        result = await editor.update_rental("WRK001", "S-STB", rental_type="31", installment_period="36")

        composition = result.session.composition("S-STB")
        assert composition.rental_type == "31"
        assert composition.installment_period == "36"


class TestSaveCompositionUseCase:
    """Tests for SaveCompositionUseCase."""

    @pytest.mark.asyncio
    async def test_validation_errors_block_submit(self, loader, registry, work_order):
        await loader.execute(work_order)
        api = MockCompositionAPI()

        result = await SaveCompositionUseCase(api, registry).execute("WRK001")

        assert not result.saved
        assert [e.code for e in result.errors] == ["QUANTITY_EXCEEDED"]
        assert api.submitted == []

    @pytest.mark.asyncio
    async def test_save_and_reload(self, loader, editor, catalog, registry, work_order):
        await loader.execute(work_order)
        await editor.select("WRK001", "S-AP2", False)
        api = MockCompositionAPI()

        result = await SaveCompositionUseCase(api, registry, loader=loader).execute("WRK001")

        assert result.saved
        assert len(api.submitted) == 1
        assert catalog.fetch_count == 2
        assert not result.session.composition("S-AP2").selected

    @pytest.mark.asyncio
    async def test_backend_refusal_propagates(self, loader, editor, registry, work_order):
        await loader.execute(work_order)
        await editor.select("WRK001", "S-AP2", False)
        api = MockCompositionAPI(raise_error=ProvisioningError("refused", operation="composition_update"))

        with pytest.raises(ProvisioningError):
            await SaveCompositionUseCase(api, registry).execute("WRK001")

    @pytest.mark.asyncio
    async def test_not_loaded(self, registry):
        with pytest.raises(SessionNotLoaded):
            await SaveCompositionUseCase(MockCompositionAPI(), registry).execute("WRK001")


class TestDispatchSignalUseCase:
    """Tests for DispatchSignalUseCase."""

    @pytest.mark.asyncio
    async def test_success_recorded(self, loader, editor, registry, store, work_order):
        await loader.execute(work_order)
        await editor.install("WRK001", "S-STB", "U-STB1")
        dispatcher = MockSignalDispatcher()

        outcome = await DispatchSignalUseCase(dispatcher, registry, store, reg_uid="TECH1").execute("WRK001")

        assert outcome.result.success
        assert outcome.message_id == "SMR03"
        assert outcome.units.primary_id == "C-MDM"
        assert outcome.to_dict()["stb_eqt_no"] == "U-STB1"
        assert registry.get("WRK001").signal_status == SignalStatus.SUCCESS
        assert (await store.load("WRK001")).signal_status == SignalStatus.SUCCESS
        assert dispatcher.calls[0][2] == "TECH1"

    @pytest.mark.asyncio
    async def test_backend_failure_recorded(self, loader, registry, store, work_order):
        await loader.execute(work_order)
        dispatcher = MockSignalDispatcher(SignalResult(success=False, result_code="FALSE", message="no sync"))

        with pytest.raises(SignalDispatchError) as exc_info:
            await DispatchSignalUseCase(dispatcher, registry, store).execute("WRK001")

        assert exc_info.value.result_code == "FALSE"
        assert registry.get("WRK001").signal_status == SignalStatus.FAIL

    @pytest.mark.asyncio
    async def test_transport_failure_recorded(self, loader, registry, store, work_order):
        await loader.execute(work_order)
        dispatcher = MockSignalDispatcher(raise_error=ConnectionError("down"))

        with pytest.raises(ConnectionError):
            await DispatchSignalUseCase(dispatcher, registry, store).execute("WRK001")

        assert registry.get("WRK001").signal_status == SignalStatus.FAIL

    @pytest.mark.asyncio
    async def test_nothing_bound(self, loader, editor, registry, store, work_order):
        await loader.execute(work_order)
        await editor.remove("WRK001", "C-MDM")
        dispatcher = MockSignalDispatcher()

        with pytest.raises(SignalDispatchError):
            await DispatchSignalUseCase(dispatcher, registry, store).execute("WRK001")

        assert dispatcher.calls == []
        assert registry.get("WRK001").signal_status == SignalStatus.FAIL

    @pytest.mark.asyncio
    async def test_unrelated_edit_during_dispatch_kept(self, loader, editor, registry, store, work_order):
        await loader.execute(work_order)
        dispatcher = BlockingSignalDispatcher()
        use_case = DispatchSignalUseCase(dispatcher, registry, store)

        task = asyncio.create_task(use_case.execute("WRK001"))
        await dispatcher.started.wait()
        await editor.install("WRK001", "S-AP1", "U-AP1")
        dispatcher.release.set()
        outcome = await task

        session = registry.get("WRK001")
        assert session.binding_for_slot("S-AP1").unit_id == "U-AP1"
        assert session.signal_status == SignalStatus.SUCCESS
        assert outcome.session.binding_for_slot("S-AP1").unit_id == "U-AP1"
        assert (await store.load("WRK001")).binding_for_slot("S-AP1").unit_id == "U-AP1"

    @pytest.mark.asyncio
    async def test_signal_units_changed_during_dispatch(self, loader, editor, registry, store, work_order):
        await loader.execute(work_order)
        dispatcher = BlockingSignalDispatcher()
        use_case = DispatchSignalUseCase(dispatcher, registry, store)

        task = asyncio.create_task(use_case.execute("WRK001"))
        await dispatcher.started.wait()
        await editor.install("WRK001", "S-STB", "U-STB1")
        dispatcher.release.set()

        with pytest.raises(SignalDispatchError) as exc_info:
            await task

        assert exc_info.value.result_code == "TRUE"
        session = registry.get("WRK001")
        assert session.signal_status == SignalStatus.FAIL
        assert session.binding_for_slot("S-STB").unit_id == "U-STB1"


class TestCompleteWorkUseCase:
    """Tests for CompleteWorkUseCase."""

    @pytest.mark.asyncio
    async def test_requires_signal(self, loader, registry, store, work_order):
        await loader.execute(work_order)

        with pytest.raises(SignalDispatchError):
            await CompleteWorkUseCase(registry, store).execute("WRK001")

        assert "WRK001" in registry

    @pytest.mark.asyncio
    async def test_complete_after_signal(self, loader, editor, registry, store, work_order):
        await loader.execute(work_order)
        await editor.install("WRK001", "S-STB", "U-STB1")
        await DispatchSignalUseCase(MockSignalDispatcher(), registry, store).execute("WRK001")

        result = await CompleteWorkUseCase(registry, store, reg_uid="TECH1").execute("WRK001")

        assert result.session.finalized
        assert result.session.removals == {}
        assert {r["EQT_NO"] for r in result.bundle.installed} == {"C-MDM", "U-STB1"}
        assert [r["EQT_NO"] for r in result.bundle.removed] == ["R-OLD"]
        assert "WRK001" not in registry
        assert "WRK001" not in store

    @pytest.mark.asyncio
    async def test_export_does_not_finalize(self, loader, registry, store, work_order):
        await loader.execute(work_order)

        bundle = await CompleteWorkUseCase(registry, store).export("WRK001")

        assert [r["EQT_NO"] for r in bundle.removed] == ["R-OLD"]
        assert not registry.get("WRK001").finalized

    @pytest.mark.asyncio
    async def test_signal_can_be_skipped(self, loader, registry, store, work_order):
        await loader.execute(work_order)

        result = await CompleteWorkUseCase(registry, store).execute("WRK001", require_signal=False)

        assert result.session.finalized
