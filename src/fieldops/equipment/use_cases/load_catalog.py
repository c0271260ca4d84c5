"""Load Catalog use case.

Fetches the equipment pools and model catalog for a work order, merges
them with any locally held session state, and publishes the result as the
live session.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ..domain.dependencies import ModelDependencyTable
from ..domain.entities import WorkOrderContext
from ..domain.ports import ICatalogAPI, ISessionStore
from ..domain.reconciliation import reconcile
from ..domain.session import EquipmentSession
from .registry import InFlightGuard, SessionRegistry

logger = logging.getLogger(__name__)


@dataclass
class LoadResult:
    """Result of LoadCatalogUseCase."""

    session: EquipmentSession
    table: ModelDependencyTable
    resumed: bool = False


class LoadCatalogUseCase:
    """Fetch, reconcile and register the equipment session for a work order.

    This use case:
    1. Fetches the four equipment pools (fails without touching any state)
    2. Fetches the model dependency table for the contract's product
    3. Picks up local state: the live session, else the stored payload
    4. Reconciles and stores the result
    """

    def __init__(
        self,
        catalog_api: ICatalogAPI,
        store: ISessionStore,
        registry: SessionRegistry,
        guard: Optional[InFlightGuard] = None,
    ):
        self.catalog = catalog_api
        self.store = store
        self.registry = registry
        self.guard = guard or InFlightGuard()

    async def execute(self, work_order: WorkOrderContext) -> LoadResult:
        """Execute the use case.

        Raises:
            OperationInProgress: If a load for this work order is running
            NetworkError / APIError: If the backend cannot be reached; the
                existing session is left as it was
        """
        async with self.guard.hold(work_order.work_id, "load"):
            logger.info(f"[{work_order.work_id}] loading equipment catalog")

            snapshot = await self.catalog.fetch_catalog(work_order)
            table = await self.catalog.fetch_model_dependencies(
                work_order,
                snapshot.filter.product_code,
                snapshot.slots,
            )

            local = self.registry.find(work_order.work_id)
            if local is None:
                local = await self.store.load(work_order.work_id)

            session = reconcile(snapshot, local)
            self.registry.put(session, table)
            await self.store.save(session)

            return LoadResult(session=session, table=table, resumed=local is not None)
