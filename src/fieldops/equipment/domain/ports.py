"""Port interfaces for the equipment engine.

Abstract interfaces describing what the engine needs from the outside
world: the provisioning backend and a place to keep session state between
loads. Adapters provide the concrete implementations.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from .dependencies import ModelDependencyTable
from .entities import CatalogSnapshot, ContractSlot, WorkOrderContext
from .session import EquipmentSession
from .signal import SignalUnits


@dataclass(frozen=True)
class SignalResult:
    """Backend answer to a signal dispatch."""

    success: bool
    result_code: str = ""
    message: str = ""


class ICatalogAPI(ABC):
    """Port for reading equipment pools and model catalogs."""

    @abstractmethod
    async def fetch_catalog(self, work_order: WorkOrderContext) -> CatalogSnapshot:
        """Fetch and normalize the four equipment pools for a work order.

        Args:
            work_order: Work order identifiers

        Returns:
            Normalized CatalogSnapshot
        """
        ...

    @abstractmethod
    async def fetch_model_dependencies(
        self,
        work_order: WorkOrderContext,
        product_code: str,
        slots: list[ContractSlot],
    ) -> ModelDependencyTable:
        """Fetch selectable models and their sub/del dependencies.

        Args:
            work_order: Work order identifiers
            product_code: Product the models are offered for
            slots: Contract slots, used to fill in models missing from the catalog

        Returns:
            ModelDependencyTable
        """
        ...


class ICompositionAPI(ABC):
    """Port for submitting a changed equipment composition."""

    @abstractmethod
    async def update_composition(self, session: EquipmentSession) -> None:
        """Submit selected slots and their models/rental fields.

        Raises:
            ProvisioningError: If the backend refuses the composition
        """
        ...


class ISignalDispatcher(ABC):
    """Port for the activation signal collaborator."""

    @abstractmethod
    async def dispatch(
        self,
        session: EquipmentSession,
        units: SignalUnits,
        message_id: str,
        reg_uid: str,
    ) -> SignalResult:
        """Send the activation signal for the bound units."""
        ...


class ISessionStore(ABC):
    """Port for persisting session state between loads.

    Last write wins. Saving the same session twice must be harmless.
    """

    @abstractmethod
    async def load(self, work_id: str) -> Optional[EquipmentSession]:
        """Return the stored session, or None if nothing was saved."""
        ...

    @abstractmethod
    async def save(self, session: EquipmentSession) -> None:
        ...

    @abstractmethod
    async def delete(self, work_id: str) -> None:
        ...
