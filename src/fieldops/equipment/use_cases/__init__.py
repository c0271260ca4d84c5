"""Use cases for the equipment engine."""

from .complete_work import CompleteWorkUseCase, CompletionResult
from .dispatch_signal import DispatchSignalUseCase, SignalOutcome
from .edit_equipment import EditEquipmentUseCase, EditResult
from .load_catalog import LoadCatalogUseCase, LoadResult
from .registry import InFlightGuard, SessionRegistry
from .save_composition import SaveCompositionUseCase, SaveResult

__all__ = [
    "SessionRegistry",
    "InFlightGuard",
    "LoadCatalogUseCase",
    "LoadResult",
    "EditEquipmentUseCase",
    "EditResult",
    "SaveCompositionUseCase",
    "SaveResult",
    "DispatchSignalUseCase",
    "SignalOutcome",
    "CompleteWorkUseCase",
    "CompletionResult",
]
