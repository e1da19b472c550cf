"""
Cleanup Orchestrator

Removes seeded data from the WMS mirror.

Cleanup Flow:
1. Resolve the tag (batch id, collection prep name, or a raw tag)
2. Query Shopify for the orders carrying it
3. Find their WMS entities
4. Dry run: report the counts and stop
5. Delete each order's entity graph in its own transaction
6. Delete collection preps that are no longer referenced

Shopify orders themselves are left in place.
"""
import logging
from typing import Any, Mapping, Union

from order_seeder.core.utils import monotonic_ms
from order_seeder.schemas.seed import (
    CleanupFailure,
    CleanupRequest,
    CleanupResponse,
    CleanupSummary,
    EntityCounts,
    WmsCleanupCounts,
    parse_cleanup_request,
)
from order_seeder.services.shopify_gateway import (
    ShopifyGatewayBase,
    format_batch_tag,
    format_collection_prep_tag,
)
from order_seeder.services.wms_cleanup_service import WmsCleanupService

logger = logging.getLogger(__name__)


def determine_tag(request: CleanupRequest) -> str:
    """Batch id wins over collection prep name, which wins over a raw tag."""
    if request.batch_id:
        return format_batch_tag(request.batch_id)
    if request.collection_prep_name:
        return format_collection_prep_tag(request.collection_prep_name)
    return request.tag


class CleanupOrchestrator:
    """
    Deletes WMS data for seeded orders found by tag.

    Usage:
        orchestrator = CleanupOrchestrator(gateway, WmsCleanupService(repository))
        response = await orchestrator.execute({"batchId": batch_id, "dryRun": True})
    """

    def __init__(self, gateway: ShopifyGatewayBase, cleanup_service: WmsCleanupService):
        self.gateway = gateway
        self.cleanup_service = cleanup_service

    async def execute(self, request: Union[CleanupRequest, Mapping[str, Any]]) -> CleanupResponse:
        if not isinstance(request, CleanupRequest):
            request = parse_cleanup_request(dict(request))

        started = monotonic_ms()

        # Step 1: Tag
        tag = determine_tag(request)
        logger.info(f"Cleanup for tag {tag} (dry_run={request.dry_run})")

        # Step 2: Shopify orders
        page = await self.gateway.query_orders_by_tag(tag)
        shopify_order_ids = [order.order_id for order in page]
        if not shopify_order_ids:
            logger.warning(f"No orders found for tag {tag}")
            return CleanupResponse(
                tag=tag,
                dry_run=request.dry_run,
                summary=CleanupSummary(duration_ms=monotonic_ms() - started),
            )

        # Step 3: WMS entities
        plan = await self.cleanup_service.find_entities_for_cleanup(shopify_order_ids)

        # Step 4: Dry run reports what would go
        if request.dry_run:
            counts = WmsCleanupCounts(
                orders=EntityCounts(deleted=len(plan.shopify_order_ids)),
                preps=EntityCounts(deleted=plan.prep_count),
                shipments=EntityCounts(deleted=plan.shipment_count),
                collection_preps=EntityCounts(deleted=len(plan.collection_prep_ids)),
            )
            logger.info(
                f"DRY RUN: Would delete {counts.orders.deleted} orders, {counts.preps.deleted} preps, "
                f"{counts.shipments.deleted} shipments, {counts.collection_preps.deleted} collection preps"
            )
            return CleanupResponse(
                tag=tag,
                dry_run=True,
                shopify_order_ids=shopify_order_ids,
                wms_entities=counts,
                summary=CleanupSummary(
                    total_deleted=_total(counts),
                    duration_ms=monotonic_ms() - started,
                ),
            )

        # Step 5: Orders, one transaction each
        order_result = await self.cleanup_service.delete_orders_with_entities(
            plan.shopify_order_ids,
            on_progress=lambda current, total: logger.debug(f"Deleted {current}/{total} orders"),
        )

        # Step 6: Unreferenced collection preps
        prep_result = await self.cleanup_service.delete_collection_preps(plan.collection_prep_ids)

        counts = WmsCleanupCounts(
            orders=EntityCounts(
                deleted=sum(1 for d in order_result.successful if d.counts.deleted_order),
                failed=len(order_result.failed),
            ),
            preps=EntityCounts(deleted=sum(d.counts.deleted_preps for d in order_result.successful)),
            shipments=EntityCounts(
                deleted=sum(d.counts.deleted_shipments for d in order_result.successful)
            ),
            collection_preps=EntityCounts(
                deleted=len(prep_result.successful),
                failed=len(prep_result.failed),
            ),
        )
        failures = [
            CleanupFailure(shopify_order_id=f.id, error=f.error) for f in order_result.failed
        ]

        response = CleanupResponse(
            tag=tag,
            dry_run=False,
            shopify_order_ids=shopify_order_ids,
            wms_entities=counts,
            failures=failures,
            summary=CleanupSummary(
                total_deleted=_total(counts),
                total_failed=counts.orders.failed + counts.collection_preps.failed,
                duration_ms=monotonic_ms() - started,
            ),
        )
        logger.info(
            f"Cleanup for {tag} complete: {response.summary.total_deleted} deleted, "
            f"{response.summary.total_failed} failed"
        )
        return response


def _total(counts: WmsCleanupCounts) -> int:
    return (
        counts.orders.deleted
        + counts.preps.deleted
        + counts.shipments.deleted
        + counts.collection_preps.deleted
    )
