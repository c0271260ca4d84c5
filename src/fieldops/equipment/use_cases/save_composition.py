"""Save Composition use case.

Validates the selected slots, submits the composition to the backend and
reloads the catalog so the session reflects what the backend accepted.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from ..domain.exceptions import EquipmentRuleError
from ..domain.ports import ICompositionAPI
from ..domain.session import EquipmentSession
from ..domain.validation import QuantityCapPolicy, validate_for_save
from .load_catalog import LoadCatalogUseCase
from .registry import InFlightGuard, SessionRegistry

logger = logging.getLogger(__name__)


@dataclass
class SaveResult:
    """Result of SaveCompositionUseCase."""

    saved: bool
    session: EquipmentSession
    errors: list[EquipmentRuleError] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "saved": self.saved,
            "errors": [e.to_dict() for e in self.errors],
        }


class SaveCompositionUseCase:
    """Persist the composition to the backend.

    This use case:
    1. Rejects a retrigger while a save for the same work order is running
    2. Runs save-time validation; any violation stops the save
    3. Submits the composition
    4. Reloads the catalog (when a loader is configured)
    """

    def __init__(
        self,
        composition_api: ICompositionAPI,
        registry: SessionRegistry,
        policy: Optional[QuantityCapPolicy] = None,
        loader: Optional[LoadCatalogUseCase] = None,
        guard: Optional[InFlightGuard] = None,
    ):
        self.composition_api = composition_api
        self.registry = registry
        self.policy = policy or QuantityCapPolicy()
        self.loader = loader
        self.guard = guard or InFlightGuard()

    async def execute(self, work_id: str) -> SaveResult:
        """Execute the use case.

        Raises:
            SessionNotLoaded: If the work order has not been loaded
            OperationInProgress: If a save is already running
            ProvisioningError: If the backend refuses the composition
        """
        session = self.registry.get(work_id)

        async with self.guard.hold(work_id, "save"):
            errors = validate_for_save(session, self.policy)
            if errors:
                return SaveResult(saved=False, session=session, errors=errors)

            logger.info(
                f"[{work_id}] saving composition: "
                f"{len(session.selected_slots())} selected slot(s)"
            )
            await self.composition_api.update_composition(session)

            if self.loader is not None:
                result = await self.loader.execute(session.work_order)
                session = result.session

            return SaveResult(saved=True, session=session)
