"""
Seeding Flow

End-to-end seeding run driven by a config file:

1. Name the collection prep (when the config asks for one)
2. Seed the orders into Shopify
3. Create the collection prep for the seeded orders
4. Mirror the seeded orders into the WMS
5. Create pick-and-pack package info, boxes and order boxes

Steps 3-5 are skipped with skip_wms.
"""
import logging
import secrets
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from order_seeder.schemas.seed import (
    BatchSeedRequest,
    CreateCollectionPrepResponse,
    SeedConfig,
    SeedWmsEntitiesRequest,
    SeedWmsEntitiesResponse,
)
from order_seeder.services.collection_prep_service import (
    CollectionPrepService,
    generate_collection_prep_name,
)
from order_seeder.services.seeding.collection_prep import CreateCollectionPrepOrchestrator
from order_seeder.services.seeding.shopify_orders import (
    ErrorPolicy,
    SeedShopifyOrdersOrchestrator,
    SeedShopifyOrdersResult,
)
from order_seeder.services.seeding.wms_entities import SeedWmsEntitiesOrchestrator
from order_seeder.services.shopify_gateway import ShopifyGatewayBase
from order_seeder.services.wms_repository import DEFAULT_SOURCE_NAME, WmsRepository
from order_seeder.services.wms_service import OrderBoxRef, WmsService

logger = logging.getLogger(__name__)


def generate_lpn() -> str:
    return f"LPN{secrets.token_hex(5).upper()}"


@dataclass
class SeedingFlowResult:
    batch_id: str
    region: str
    shopify: SeedShopifyOrdersResult
    collection_prep: Optional[CreateCollectionPrepResponse] = None
    wms: Optional[SeedWmsEntitiesResponse] = None
    pnp_package_info_ids: List[str] = field(default_factory=list)
    pnp_box_ids: List[str] = field(default_factory=list)
    pnp_order_boxes: List[OrderBoxRef] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "batchId": self.batch_id,
            "region": self.region,
            **self.shopify.to_response().model_dump(by_alias=True),
        }
        if self.collection_prep:
            result["collectionPrep"] = self.collection_prep.model_dump(by_alias=True)
        if self.wms:
            result["wms"] = self.wms.model_dump(by_alias=True)
        if self.pnp_package_info_ids or self.pnp_box_ids or self.pnp_order_boxes:
            result["pnp"] = {
                "packageInfoIds": self.pnp_package_info_ids,
                "boxIds": self.pnp_box_ids,
                "orderBoxes": [{"id": b.id, "lpn": b.lpn} for b in self.pnp_order_boxes],
            }
        if self.shopify.metrics:
            result["metrics"] = self.shopify.metrics.to_dict()
        return result


class SeedingFlow:
    """
    Runs every seeding use case for one config file.

    Usage:
        flow = SeedingFlow(gateway, repository, ErrorPolicy.CONTINUE_ON_ERROR)
        result = await flow.run(config, batch_id=str(uuid.uuid4()))
    """

    def __init__(
        self,
        gateway: ShopifyGatewayBase,
        repository: WmsRepository,
        error_policy: ErrorPolicy = ErrorPolicy.FAIL_FAST,
        source_name: str = DEFAULT_SOURCE_NAME,
    ):
        self.wms_service = WmsService(repository, source_name=source_name)
        self.shopify_orders = SeedShopifyOrdersOrchestrator(gateway, error_policy)
        self.collection_preps = CreateCollectionPrepOrchestrator(CollectionPrepService(repository))
        self.wms_entities = SeedWmsEntitiesOrchestrator(self.wms_service, error_policy)

    async def run(
        self,
        config: SeedConfig,
        batch_id: str,
        region: Optional[str] = None,
        skip_wms: bool = False,
    ) -> SeedingFlowResult:
        region = region or config.effective_region
        prep_config = config.collection_prep

        # Step 1: Collection prep name, tagged onto every Shopify order
        collection_prep_name = None
        if prep_config:
            collection_prep_name = generate_collection_prep_name(
                prep_config.test_tag, prep_config.carrier, prep_config.location_id
            )

        # Step 2: Shopify
        request = BatchSeedRequest(
            batch_id=batch_id,
            region=region,
            collection_prep_name=collection_prep_name,
            orders=[
                {"customer": order.customer, "line_items": order.line_items}
                for order in config.orders
            ],
        )
        shopify = await self.shopify_orders.execute(request)
        result = SeedingFlowResult(batch_id=batch_id, region=region, shopify=shopify)

        if skip_wms:
            logger.info(f"Batch {batch_id}: skipping WMS seeding")
            return result

        # Step 3: Collection prep
        if prep_config:
            result.collection_prep = await self.collection_preps.execute({
                "order_ids": [entry.shopify_order_id for entry in shopify.shopify_orders],
                "carrier": prep_config.carrier,
                "location_id": prep_config.location_id,
                "region": region,
                "prep_date": prep_config.prep_date,
                "collection_prep_name": collection_prep_name,
            })
        collection_prep_id = (
            result.collection_prep.collection_prep_id if result.collection_prep else None
        )

        # Step 4: WMS entities
        seeded = shopify.seeded_with_index()
        result.wms = await self.wms_entities.execute(SeedWmsEntitiesRequest(
            region=region,
            collection_prep_id=collection_prep_id,
            location_id=prep_config.location_id if prep_config else None,
            shopify_orders=[
                {
                    "shopify_order_id": entry.shopify_order_id,
                    "shopify_order_number": entry.shopify_order_number,
                    "customer_name": config.orders[index].customer.name,
                    "customer_email": str(config.orders[index].customer.email),
                    "line_items": [li.model_dump() for li in entry.line_items],
                }
                for index, entry in seeded
            ],
        ))

        # Step 5: Pick and pack
        if config.pnp_config:
            await self._seed_pick_and_pack(config, region, collection_prep_id, seeded, result)

        return result

    async def _seed_pick_and_pack(
        self,
        config: SeedConfig,
        region: str,
        collection_prep_id: Optional[str],
        seeded: List[Any],
        result: SeedingFlowResult,
    ) -> None:
        pnp = config.pnp_config
        for info in pnp.package_info:
            result.pnp_package_info_ids.append(await self.wms_service.create_pnp_package_info(
                identifier=info.identifier,
                length=info.dimensions.length,
                width=info.dimensions.width,
                height=info.dimensions.height,
                weight=info.weight,
            ))

        result.pnp_box_ids = await self.wms_service.create_pnp_boxes([
            {
                "identifier": box.identifier,
                "length": box.dimensions.length,
                "width": box.dimensions.width,
                "height": box.dimensions.height,
                "region": region,
            }
            for box in pnp.boxes
        ])

        if not collection_prep_id or not result.pnp_box_ids:
            return

        wms_order_ids = {o.shopify_order_id: o.order_id for o in result.wms.orders}
        order_boxes = []
        for index, entry in seeded:
            order_id = wms_order_ids.get(entry.shopify_order_id)
            if order_id and config.orders[index].has_pick_and_pack:
                order_boxes.append({
                    "collection_prep_id": collection_prep_id,
                    "order_id": order_id,
                    "lpn": generate_lpn(),
                    "pnp_box_id": result.pnp_box_ids[0],
                    "region": region,
                })
        result.pnp_order_boxes = await self.wms_service.create_pnp_order_boxes(order_boxes)
        logger.info(f"Created {len(result.pnp_order_boxes)} pick-and-pack order boxes")
