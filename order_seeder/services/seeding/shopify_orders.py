"""
Shopify Order Seeding Orchestrator

Drives one batch of orders through Shopify.

Batch Flow:
1. Collect the union of SKUs across every order
2. Resolve them with a single variant lookup; any missing SKU fails the batch
   before any order is created
3. For each order, strictly in sequence:
   a. Create the draft order with the shared variant map
   b. Complete it as paid
   c. Reconcile line items (completion payload, else tag query, else synthesized)
   d. Record per-order metrics and the result entry
4. Finalize and log batch metrics

Per-order failures either abort the batch (ErrorPolicy.FAIL_FAST) or are
recorded while the batch continues (ErrorPolicy.CONTINUE_ON_ERROR).
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from order_seeder.core.exceptions import (
    BatchSeedError,
    OrderFailure,
    SeederBaseError,
    SeedValidationError,
    VariantResolutionError,
)
from order_seeder.core.utils import monotonic_ms
from order_seeder.schemas.seed import (
    BatchSeedRequest,
    BatchSeedResponse,
    LineItemResult,
    OrderFailureResult,
    OrderInput,
    SeedResultEntry,
    parse_batch_request,
)
from order_seeder.services.performance_metrics import (
    BatchMetricsRecorder,
    BatchPerformanceMetrics,
    OperationTimer,
    OrderMetrics,
    log_batch_metrics,
)
from order_seeder.services.shopify_gateway import (
    CompletedOrder,
    LineItemRecord,
    ShopifyGatewayBase,
    VariantMap,
    is_synthetic_id,
    synthetic_line_item_id,
)

logger = logging.getLogger(__name__)

UNFULFILLED = "UNFULFILLED"

OrderProgressCallback = Callable[[int, int, str, bool], None]


class ErrorPolicy(str, Enum):
    """What a per-order failure does to the rest of the batch."""
    FAIL_FAST = "fail_fast"
    CONTINUE_ON_ERROR = "continue_on_error"


@dataclass
class SeedShopifyOrdersResult:
    """Seeded orders, recorded failures and the finalized batch metrics."""
    batch_id: str
    shopify_orders: List[SeedResultEntry] = field(default_factory=list)
    order_indexes: List[int] = field(default_factory=list)
    failures: List[OrderFailure] = field(default_factory=list)
    metrics: Optional[BatchPerformanceMetrics] = None

    def to_response(self) -> BatchSeedResponse:
        return BatchSeedResponse(
            shopify_orders=self.shopify_orders,
            failures=[
                OrderFailureResult(
                    order_index=f.order_index,
                    customer_email=f.customer_email,
                    shopify_order_id=f.shopify_order_id,
                    error=f.error,
                    error_code=f.error_code,
                )
                for f in self.failures
            ],
        )

    def seeded_with_index(self) -> List[Tuple[int, SeedResultEntry]]:
        return list(zip(self.order_indexes, self.shopify_orders))


class SeedShopifyOrdersOrchestrator:
    """
    Seeds a batch of orders into Shopify.

    Usage:
        async with create_shopify_gateway(settings, region="CA") as gateway:
            orchestrator = SeedShopifyOrdersOrchestrator(gateway, ErrorPolicy.FAIL_FAST)
            result = await orchestrator.execute(request)
            print(result.to_response().model_dump(by_alias=True))
    """

    def __init__(
        self,
        gateway: ShopifyGatewayBase,
        error_policy: ErrorPolicy = ErrorPolicy.FAIL_FAST,
        on_order_progress: Optional[OrderProgressCallback] = None,
    ):
        self.gateway = gateway
        self.error_policy = error_policy
        self.on_order_progress = on_order_progress

    async def execute(
        self, request: Union[BatchSeedRequest, Mapping[str, Any]]
    ) -> SeedShopifyOrdersResult:
        """
        Seed every order in the batch.

        Raises:
            SeedValidationError: malformed request or empty order list
            VariantResolutionError: batch SKUs missing from Shopify
            ShopifyServiceError: first per-order failure under FAIL_FAST
            BatchSeedError: every order failed under CONTINUE_ON_ERROR
        """
        if not isinstance(request, BatchSeedRequest):
            request = parse_batch_request(dict(request))
        if not request.orders:
            raise SeedValidationError("Batch must contain at least one order")

        batch_id = request.batch_id
        recorder = BatchMetricsRecorder(batch_id=batch_id)
        result = SeedShopifyOrdersResult(batch_id=batch_id)
        total = len(request.orders)

        logger.info(
            f"Seeding batch {batch_id}: {total} orders, policy={self.error_policy.value}"
        )

        # Step 1-2: One variant lookup for the whole batch
        variant_map = await self._resolve_variants(request, recorder)
        tag = self.gateway.format_batch_tag(batch_id)

        # Step 3: Orders strictly in sequence
        for index, order in enumerate(request.orders):
            email = str(order.customer.email)
            try:
                entry, order_metrics = await self._seed_order(
                    index, order, request, variant_map, tag
                )
            except Exception as e:
                failure = OrderFailure.from_exception(index, email, e)
                if isinstance(e, SeederBaseError):
                    logger.error(f"Batch {batch_id} order {index} ({email}) failed: {failure.error}")
                else:
                    logger.exception(
                        f"Batch {batch_id} order {index} ({email}) failed unexpectedly: {failure.error}"
                    )
                self._notify(index + 1, total, email, False)
                if self.error_policy == ErrorPolicy.FAIL_FAST:
                    log_batch_metrics(recorder.finalize())
                    raise
                result.failures.append(failure)
                continue

            recorder.record_order(order_metrics)
            result.shopify_orders.append(entry)
            result.order_indexes.append(index)
            self._notify(index + 1, total, email, True)

        # Step 4: Finalize once
        result.metrics = recorder.finalize()
        log_batch_metrics(result.metrics)

        if result.failures and not result.shopify_orders:
            raise BatchSeedError(
                f"All {total} orders failed in batch {batch_id}",
                failures=result.failures,
                details={"batch_id": batch_id},
            )

        if result.failures:
            logger.warning(
                f"Batch {batch_id}: {len(result.shopify_orders)}/{total} orders seeded, "
                f"{len(result.failures)} failed"
            )
        return result

    async def _resolve_variants(
        self, request: BatchSeedRequest, recorder: BatchMetricsRecorder
    ) -> VariantMap:
        skus = request.unique_skus()
        with OperationTimer("variantLookup") as op:
            variant_map = await self.gateway.find_variant_ids_by_skus(skus)
            op.record(api_calls=1, cost=variant_map.graphql_cost)
        recorder.record_variant_lookup(op.metrics)

        missing = variant_map.missing(skus)
        if missing:
            raise VariantResolutionError(
                missing,
                details={"batch_id": request.batch_id},
            )
        return variant_map

    async def _seed_order(
        self,
        index: int,
        order: OrderInput,
        request: BatchSeedRequest,
        variant_map: VariantMap,
        tag: str,
    ) -> Tuple[SeedResultEntry, OrderMetrics]:
        started = monotonic_ms()

        # Step 3a: Draft order
        with OperationTimer("draftOrderCreate") as create_op:
            draft = await self.gateway.create_draft_order(
                order,
                request.batch_id,
                region=request.region,
                collection_prep_name=request.collection_prep_name,
                variant_map=variant_map,
            )
            create_op.record(api_calls=1, cost=draft.graphql_cost)

        # Step 3b: Complete as paid
        with OperationTimer("draftOrderComplete") as complete_op:
            completed = await self.gateway.complete_draft_order(draft.draft_order_id)
            complete_op.record(api_calls=1, cost=completed.graphql_cost)

        # Step 3c: Reconcile line items
        with OperationTimer("orderQuery") as query_op:
            line_items = await self._reconcile_line_items(order, completed, tag, query_op)

        order_metrics = OrderMetrics(
            order_index=index,
            customer_email=str(order.customer.email),
            draft_order_create=create_op.metrics,
            draft_order_complete=complete_op.metrics,
            order_query=query_op.metrics,
            total_duration_ms=monotonic_ms() - started,
        )

        entry = SeedResultEntry(
            shopify_order_id=completed.order_id,
            shopify_order_number=completed.order_number,
            line_items=[
                LineItemResult(line_item_id=li.line_item_id, sku=li.sku, quantity=li.quantity)
                for li in line_items
            ],
            fulfillment_status=UNFULFILLED,
        )
        return entry, order_metrics

    async def _reconcile_line_items(
        self,
        order: OrderInput,
        completed: CompletedOrder,
        tag: str,
        query_op: OperationTimer,
    ) -> Tuple[LineItemRecord, ...]:
        """
        Authoritative line items for a completed order.

        Completion payload first (no extra call), then the tag query, then
        synthesized ids built from the input.
        """
        if completed.line_items:
            return completed.line_items

        page = await self.gateway.query_orders_by_tag(tag)
        query_op.record(api_calls=1, cost=page.graphql_cost)

        found = page.find(completed.order_id)
        if found is not None and found.line_items:
            return found.line_items

        if not is_synthetic_id(completed.order_id):
            logger.warning(
                f"Order {completed.order_id} not found by tag {tag}; synthesizing line items"
            )
        return tuple(
            LineItemRecord(
                line_item_id=synthetic_line_item_id(),
                sku=item.sku,
                quantity=item.quantity,
            )
            for item in order.line_items
        )

    def _notify(self, current: int, total: int, email: str, success: bool) -> None:
        if self.on_order_progress:
            self.on_order_progress(current, total, email, success)
