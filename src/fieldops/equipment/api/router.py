"""FastAPI router for equipment session endpoints."""

import logging
from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException

from ...api.error_sanitizer import sanitize_error_message
from ...api.exceptions import (
    APIError,
    CircuitOpenError,
    FieldOpsError,
    NetworkError,
    ProvisioningError,
    SignalDispatchError,
)
from ..domain.entities import WorkOrderContext
from ..domain.exceptions import EquipmentRuleError, OperationInProgress, SessionNotLoaded
from ..use_cases import (
    CompleteWorkUseCase,
    DispatchSignalUseCase,
    EditEquipmentUseCase,
    EditResult,
    LoadCatalogUseCase,
    SaveCompositionUseCase,
    SessionRegistry,
)
from .dependencies import (
    get_complete_use_case,
    get_edit_use_case,
    get_load_use_case,
    get_registry,
    get_save_use_case,
    get_signal_use_case,
    verify_api_key,
)
from .schemas import (
    CompleteRequest,
    EditResponse,
    ExportResponse,
    FlagRequest,
    InstallRequest,
    LoadRequest,
    ModelChangeRequest,
    RemoveRequest,
    RentalRequest,
    ReuseRequest,
    SaveResponse,
    SelectRequest,
    SessionResponse,
    SignalResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/equipment", tags=["Equipment"])


@router.get("/health")
async def health_check():
    """Health check endpoint (no auth)."""
    return {"status": "healthy", "service": "equipment"}


def _raise_http(error: FieldOpsError) -> NoReturn:
    """Translate an engine error into an HTTPException."""
    if isinstance(error, SessionNotLoaded):
        raise HTTPException(status_code=404, detail=error.to_dict())
    if isinstance(error, (OperationInProgress, SignalDispatchError)):
        raise HTTPException(status_code=409, detail=error.to_dict())
    if isinstance(error, EquipmentRuleError):
        raise HTTPException(status_code=422, detail=error.to_dict())
    if isinstance(error, CircuitOpenError):
        raise HTTPException(status_code=503, detail=sanitize_error_message(str(error)))
    if isinstance(error, (NetworkError, APIError, ProvisioningError)):
        logger.error(f"Backend error: {error}")
        raise HTTPException(
            status_code=502,
            detail=sanitize_error_message(str(error), "Backend error"),
        )
    logger.error(f"Unhandled engine error: {error!r}")
    raise HTTPException(status_code=500, detail=sanitize_error_message(str(error)))


def _edit_response(result: EditResult) -> EditResponse:
    return EditResponse(
        ok=result.ok,
        error=result.error.to_dict() if result.error else None,
        selected=result.selected,
        deselected=result.deselected,
        session=SessionResponse.from_session(result.session),
    )


@router.post("/{work_id}/load", response_model=SessionResponse)
async def load_session(
    work_id: str,
    request: LoadRequest,
    use_case: LoadCatalogUseCase = Depends(get_load_use_case),
    _auth: bool = Depends(verify_api_key),
):
    """Fetch the catalog and reconcile it with local state.

    A failed fetch leaves the previous session untouched.
    """
    work_order = WorkOrderContext(work_id=work_id, **request.model_dump())
    try:
        result = await use_case.execute(work_order)
    except FieldOpsError as e:
        _raise_http(e)
    return SessionResponse.from_session(result.session)


@router.get("/{work_id}", response_model=SessionResponse)
async def get_session(
    work_id: str,
    registry: SessionRegistry = Depends(get_registry),
    _auth: bool = Depends(verify_api_key),
):
    try:
        session = registry.get(work_id)
    except FieldOpsError as e:
        _raise_http(e)
    return SessionResponse.from_session(session)


# ============================================
# Bindings and removals
# ============================================

@router.post("/{work_id}/install", response_model=EditResponse)
async def install_unit(
    work_id: str,
    request: InstallRequest,
    use_case: EditEquipmentUseCase = Depends(get_edit_use_case),
    _auth: bool = Depends(verify_api_key),
):
    try:
        result = await use_case.install(work_id, request.slot_id, request.unit_id)
    except FieldOpsError as e:
        _raise_http(e)
    return _edit_response(result)


@router.post("/{work_id}/reuse", response_model=EditResponse)
async def reuse_unit(
    work_id: str,
    request: ReuseRequest,
    use_case: EditEquipmentUseCase = Depends(get_edit_use_case),
    _auth: bool = Depends(verify_api_key),
):
    try:
        result = await use_case.reuse(work_id, request.unit_id, request.slot_id)
    except FieldOpsError as e:
        _raise_http(e)
    return _edit_response(result)


@router.post("/{work_id}/remove", response_model=EditResponse)
async def remove_unit(
    work_id: str,
    request: RemoveRequest,
    use_case: EditEquipmentUseCase = Depends(get_edit_use_case),
    _auth: bool = Depends(verify_api_key),
):
    try:
        result = await use_case.remove(work_id, request.unit_id)
    except FieldOpsError as e:
        _raise_http(e)
    return _edit_response(result)


@router.post("/{work_id}/flags", response_model=EditResponse)
async def set_loss_flag(
    work_id: str,
    request: FlagRequest,
    use_case: EditEquipmentUseCase = Depends(get_edit_use_case),
    _auth: bool = Depends(verify_api_key),
):
    """Set or toggle one loss flag on a removed unit."""
    try:
        result = await use_case.set_flag(
            work_id, request.unit_id, request.flag.to_domain(), request.value
        )
    except FieldOpsError as e:
        _raise_http(e)
    return _edit_response(result)


# ============================================
# Composition
# ============================================

@router.post("/{work_id}/select", response_model=EditResponse)
async def select_slot(
    work_id: str,
    request: SelectRequest,
    use_case: EditEquipmentUseCase = Depends(get_edit_use_case),
    _auth: bool = Depends(verify_api_key),
):
    """Check or uncheck a slot; dependent slots cascade."""
    try:
        result = await use_case.select(work_id, request.slot_id, request.selected)
    except FieldOpsError as e:
        _raise_http(e)
    return _edit_response(result)


@router.post("/{work_id}/model", response_model=EditResponse)
async def change_model(
    work_id: str,
    request: ModelChangeRequest,
    use_case: EditEquipmentUseCase = Depends(get_edit_use_case),
    _auth: bool = Depends(verify_api_key),
):
    try:
        result = await use_case.change_model(work_id, request.slot_id, request.model_code)
    except FieldOpsError as e:
        _raise_http(e)
    return _edit_response(result)


@router.post("/{work_id}/rental", response_model=EditResponse)
async def update_rental(
    work_id: str,
    request: RentalRequest,
    use_case: EditEquipmentUseCase = Depends(get_edit_use_case),
    _auth: bool = Depends(verify_api_key),
):
    try:
        result = await use_case.update_rental(
            work_id,
            request.slot_id,
            rental_type=request.rental_type,
            usage_status=request.usage_status,
            sale_amount=request.sale_amount,
            installment_period=request.installment_period,
        )
    except FieldOpsError as e:
        _raise_http(e)
    return _edit_response(result)


@router.post("/{work_id}/save", response_model=SaveResponse)
async def save_composition(
    work_id: str,
    use_case: SaveCompositionUseCase = Depends(get_save_use_case),
    _auth: bool = Depends(verify_api_key),
):
    """Validate and submit the composition, then reload."""
    try:
        result = await use_case.execute(work_id)
    except FieldOpsError as e:
        _raise_http(e)
    return SaveResponse(
        saved=result.saved,
        errors=[e.to_dict() for e in result.errors],
        session=SessionResponse.from_session(result.session),
    )


# ============================================
# Signal and completion
# ============================================

@router.post("/{work_id}/signal", response_model=SignalResponse)
async def dispatch_signal(
    work_id: str,
    use_case: DispatchSignalUseCase = Depends(get_signal_use_case),
    _auth: bool = Depends(verify_api_key),
):
    try:
        outcome = await use_case.execute(work_id)
    except FieldOpsError as e:
        _raise_http(e)
    return SignalResponse(**outcome.to_dict())


@router.get("/{work_id}/export", response_model=ExportResponse)
async def export_records(
    work_id: str,
    use_case: CompleteWorkUseCase = Depends(get_complete_use_case),
    _auth: bool = Depends(verify_api_key),
):
    """Installed and removed records, without finalizing."""
    try:
        bundle = await use_case.export(work_id)
    except FieldOpsError as e:
        _raise_http(e)
    return ExportResponse(work_id=work_id, installed=bundle.installed, removed=bundle.removed)


@router.post("/{work_id}/complete", response_model=ExportResponse)
async def complete_work(
    work_id: str,
    request: CompleteRequest,
    use_case: CompleteWorkUseCase = Depends(get_complete_use_case),
    _auth: bool = Depends(verify_api_key),
):
    try:
        result = await use_case.execute(work_id, require_signal=request.require_signal)
    except FieldOpsError as e:
        _raise_http(e)
    return ExportResponse(**result.to_dict())
