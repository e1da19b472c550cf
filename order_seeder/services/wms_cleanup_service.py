"""
WMS Cleanup Service

Finds and deletes the WMS rows mirrored for a set of Shopify orders. Each
order's entity graph is deleted in its own transaction; a failure on one order
is recorded and the rest continue.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Set

from order_seeder.core.exceptions import SeederBaseError
from order_seeder.services.wms_repository import WmsRepository, DeletionCounts

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


@dataclass
class CleanupPlan:
    """What a cleanup would delete."""
    shopify_order_ids: List[str] = field(default_factory=list)
    regions: Set[str] = field(default_factory=set)
    prep_count: int = 0
    shipment_count: int = 0
    collection_prep_ids: Set[str] = field(default_factory=set)


@dataclass
class OrderDeletion:
    shopify_order_id: str
    counts: DeletionCounts


@dataclass
class DeletionFailure:
    id: str
    error: str


@dataclass
class OrderDeletionResult:
    successful: List[OrderDeletion] = field(default_factory=list)
    failed: List[DeletionFailure] = field(default_factory=list)


@dataclass
class CollectionPrepDeletionResult:
    successful: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[DeletionFailure] = field(default_factory=list)


class WmsCleanupService:
    def __init__(self, repository: WmsRepository):
        self.repository = repository

    async def find_entities_for_cleanup(self, shopify_order_ids: Sequence[str]) -> CleanupPlan:
        orders = await self.repository.find_orders_by_shopify_ids(shopify_order_ids)
        if not orders:
            return CleanupPlan()

        order_ids = [o.id for o in orders]
        preps = await self.repository.find_preps_by_order_ids(order_ids)
        shipments = await self.repository.find_shipments_by_order_ids(order_ids)

        plan = CleanupPlan(
            shopify_order_ids=[o.shopify_order_id for o in orders],
            regions={o.region for o in orders},
            prep_count=len(preps),
            shipment_count=len(shipments),
            collection_prep_ids={p.collection_prep_id for p in preps if p.collection_prep_id},
        )
        logger.debug(
            f"Cleanup plan: orders={len(orders)} preps={plan.prep_count} "
            f"shipments={plan.shipment_count} collection_preps={len(plan.collection_prep_ids)}"
        )
        return plan

    async def delete_orders_with_entities(
        self,
        shopify_order_ids: Sequence[str],
        on_progress: Optional[ProgressCallback] = None,
    ) -> OrderDeletionResult:
        result = OrderDeletionResult()
        total = len(shopify_order_ids)

        for index, shopify_order_id in enumerate(shopify_order_ids, start=1):
            try:
                counts = await self.repository.delete_order_entities_transaction(shopify_order_id)
                result.successful.append(OrderDeletion(shopify_order_id, counts))
            except SeederBaseError as e:
                logger.error(f"Failed to delete WMS entities for order {shopify_order_id}: {e.message}")
                result.failed.append(DeletionFailure(id=shopify_order_id, error=e.message))
            if on_progress:
                on_progress(index, total)

        return result

    async def delete_collection_preps(self, collection_prep_ids: Set[str]) -> CollectionPrepDeletionResult:
        result = CollectionPrepDeletionResult()
        for collection_prep_id in sorted(collection_prep_ids):
            try:
                deleted = await self.repository.delete_collection_prep(collection_prep_id)
            except SeederBaseError as e:
                logger.error(f"Failed to delete collection prep {collection_prep_id}: {e.message}")
                result.failed.append(DeletionFailure(id=collection_prep_id, error=e.message))
                continue
            if deleted:
                result.successful.append(collection_prep_id)
            else:
                logger.info(f"Collection prep {collection_prep_id} skipped (still referenced)")
                result.skipped.append(collection_prep_id)
        return result
