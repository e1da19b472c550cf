"""
WMS Entity Seeding Orchestrator

Mirrors already-created Shopify orders into the WMS tables.

Per-order Flow:
1. Order (and customer when new)
2. Variant orders, one per line item
3. Preps linked to the collection prep when one is given
4. Prep parts and prep part items
5. Shipment, only when a collection prep is given

Each step is idempotent, so a batch can be re-run after a partial failure.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Union

from order_seeder.core.exceptions import BatchSeedError, OrderFailure, SeederBaseError
from order_seeder.schemas.seed import (
    OrderFailureResult,
    PrepPartItemResult,
    SeedWmsEntitiesRequest,
    SeedWmsEntitiesResponse,
    ShipmentResult,
    ShopifyOrderInput,
    WmsOrderResult,
    parse_wms_entities_request,
)
from order_seeder.services.seeding.shopify_orders import ErrorPolicy
from order_seeder.services.wms_service import WmsLineItem, WmsService

logger = logging.getLogger(__name__)


@dataclass
class _OrderOutcome:
    order: WmsOrderResult
    shipment: Optional[ShipmentResult] = None
    prep_part_items: List[PrepPartItemResult] = field(default_factory=list)


class SeedWmsEntitiesOrchestrator:
    """
    Seeds WMS entities for a list of Shopify orders.

    Usage:
        orchestrator = SeedWmsEntitiesOrchestrator(WmsService(repository))
        response = await orchestrator.execute(request)
    """

    def __init__(
        self,
        wms_service: WmsService,
        error_policy: ErrorPolicy = ErrorPolicy.FAIL_FAST,
    ):
        self.wms_service = wms_service
        self.error_policy = error_policy

    async def execute(
        self, request: Union[SeedWmsEntitiesRequest, Mapping[str, Any]]
    ) -> SeedWmsEntitiesResponse:
        if not isinstance(request, SeedWmsEntitiesRequest):
            request = parse_wms_entities_request(dict(request))

        response = SeedWmsEntitiesResponse()
        failures: List[OrderFailure] = []
        total = len(request.shopify_orders)
        logger.info(f"Seeding WMS entities for {total} orders in region {request.region}")

        for index, shopify_order in enumerate(request.shopify_orders):
            try:
                outcome = await self._seed_order(shopify_order, request)
            except Exception as e:
                failure = OrderFailure.from_exception(
                    index,
                    shopify_order.customer_email,
                    e,
                    shopify_order_id=shopify_order.shopify_order_id,
                )
                if isinstance(e, SeederBaseError):
                    logger.error(
                        f"WMS seeding failed for order {shopify_order.shopify_order_id}: {failure.error}"
                    )
                else:
                    logger.exception(
                        f"WMS seeding failed unexpectedly for order "
                        f"{shopify_order.shopify_order_id}: {failure.error}"
                    )
                if self.error_policy == ErrorPolicy.FAIL_FAST:
                    raise
                failures.append(failure)
                continue

            response.orders.append(outcome.order)
            if outcome.shipment:
                response.shipments.append(outcome.shipment)
            response.prep_part_items.extend(outcome.prep_part_items)

        if failures and not response.orders:
            raise BatchSeedError(
                f"All {total} orders failed WMS seeding",
                failures=failures,
            )

        response.failures = [
            OrderFailureResult(
                order_index=f.order_index,
                customer_email=f.customer_email,
                shopify_order_id=f.shopify_order_id,
                error=f.error,
                error_code=f.error_code,
            )
            for f in failures
        ]
        logger.info(
            f"WMS seeding complete: {len(response.orders)} orders, "
            f"{len(response.shipments)} shipments, {len(failures)} failures"
        )
        return response

    async def _seed_order(
        self, shopify_order: ShopifyOrderInput, request: SeedWmsEntitiesRequest
    ) -> _OrderOutcome:
        region = request.region
        line_items = [
            WmsLineItem(line_item_id=li.line_item_id, sku=li.sku, quantity=li.quantity)
            for li in shopify_order.line_items
        ]

        # Step 1: Order and customer
        order_ref = await self.wms_service.create_order_with_customer(
            shopify_order_id=shopify_order.shopify_order_id,
            shopify_order_number=shopify_order.shopify_order_number,
            status=shopify_order.status,
            region=region,
            customer_name=shopify_order.customer_name,
            customer_email=shopify_order.customer_email,
            location_id=request.location_id,
        )

        # Step 2: Variant orders
        variant_orders = await self.wms_service.create_variant_orders_for_order(
            order_ref.order_db_id, line_items, region
        )

        # Step 3: Preps
        preps = await self.wms_service.create_preps_for_order(
            order_ref.order_db_id, variant_orders, request.collection_prep_id, region
        )

        # Step 4: Prep parts and items
        prep_parts = await self.wms_service.create_prep_parts_and_items(preps, line_items, region)

        outcome = _OrderOutcome(
            order=WmsOrderResult(
                order_id=order_ref.order_db_id,
                shopify_order_id=order_ref.shopify_order_id,
                customer_id=order_ref.customer_id,
            ),
            prep_part_items=[
                PrepPartItemResult(prep_part_item_id=p.prep_part_item_id, part_id=p.part_id)
                for p in prep_parts
            ],
        )

        # Step 5: Shipment
        if request.collection_prep_id:
            shipment_id = await self.wms_service.create_shipment_for_order(
                request.collection_prep_id, order_ref.order_db_id, region
            )
            outcome.shipment = ShipmentResult(shipment_id=shipment_id, order_id=order_ref.order_db_id)

        return outcome
