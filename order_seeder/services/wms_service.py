"""
WMS Mirror Service

Projects a completed Shopify order into the WMS mirror:
order + customer -> variant orders -> preps -> prep parts/items -> shipment,
plus the pick-and-pack box entities.

Every write is idempotent on its natural key: an existing row for the same
key is returned instead of writing a duplicate, so re-running a partially
mirrored order is safe. Dry-run is entirely the repository's concern.
"""
import logging
from dataclasses import dataclass
from typing import Optional, List, Dict, Any, Sequence, Protocol

from order_seeder.core.exceptions import WmsServiceError
from order_seeder.core.utils import new_id
from order_seeder.services.wms_repository import WmsRepository, DEFAULT_SOURCE_NAME

logger = logging.getLogger(__name__)


class LineItemLike(Protocol):
    line_item_id: str
    sku: str
    quantity: int


@dataclass(frozen=True)
class WmsLineItem:
    line_item_id: str
    sku: str
    quantity: int = 1


@dataclass(frozen=True)
class OrderRef:
    order_db_id: str
    shopify_order_id: str
    customer_id: str
    created: bool = True


@dataclass(frozen=True)
class VariantOrderRef:
    variant_id: str
    line_item_id: str


@dataclass(frozen=True)
class PrepRef:
    prep_id: str
    variant_id: str
    line_item_id: str


@dataclass(frozen=True)
class PrepPartRef:
    prep_part_id: str
    prep_part_item_id: str
    part_id: str


@dataclass(frozen=True)
class OrderBoxRef:
    id: str
    lpn: str


class WmsService:
    """
    Idempotent creation of the WMS order graph.

    Usage:
        service = WmsService(SqlAlchemyWmsRepository(session_factory))
        order = await service.create_order_with_customer(...)
        variant_orders = await service.create_variant_orders_for_order(order.order_db_id, items, "CA")
    """

    def __init__(self, repository: WmsRepository, source_name: str = DEFAULT_SOURCE_NAME):
        self.repository = repository
        self.source_name = source_name

    async def create_order_with_customer(
        self,
        shopify_order_id: str,
        shopify_order_number: str,
        status: str,
        region: str,
        customer_name: str,
        customer_email: str,
        location_id: Optional[str] = None,
    ) -> OrderRef:
        """
        Create the WMS order, and its customer when (email, region) is new.

        Idempotent on shopify_order_id: an existing order is returned untouched.
        A new customer and its order are written in one transaction.
        """
        existing = await self.repository.find_order_by_shopify_id(shopify_order_id)
        if existing:
            logger.info(f"WMS order for {shopify_order_id} already exists ({existing.id})")
            return OrderRef(
                order_db_id=existing.id,
                shopify_order_id=existing.shopify_order_id,
                customer_id=existing.customer_id or "",
                created=False,
            )

        order_fields = {
            "shopify_order_id": shopify_order_id,
            "shopify_order_number": shopify_order_number,
            "status": status,
            "region": region,
            "location_id": location_id,
            "source_name": self.source_name,
        }

        customer = await self.repository.find_customer_by_email(customer_email, region)
        if customer is None:
            order = await self.repository.create_order_with_customer_transaction(
                order_fields,
                {"id": new_id(), "name": customer_name, "email": customer_email, "region": region},
            )
            return OrderRef(
                order_db_id=order.id,
                shopify_order_id=order.shopify_order_id,
                customer_id=order.customer_id,
            )

        order = await self.repository.create_order(customer_id=customer.id, **order_fields)
        return OrderRef(
            order_db_id=order.id,
            shopify_order_id=order.shopify_order_id,
            customer_id=customer.id,
        )

    async def create_variant_orders_for_order(
        self,
        order_id: str,
        line_items: Sequence[LineItemLike],
        region: str,
    ) -> List[VariantOrderRef]:
        """
        Link each line item to its WMS variant.

        All SKUs are resolved in one lookup; if any is missing nothing is written.
        """
        skus = list(dict.fromkeys(item.sku for item in line_items))
        variants = await self.repository.find_variants_by_skus(skus, region)

        missing = sorted(sku for sku in skus if sku not in variants)
        if missing:
            raise WmsServiceError(
                f"Variant not found for SKU: {', '.join(missing)}",
                details={"missing_skus": missing, "order_id": order_id},
            )

        results = []
        for item in line_items:
            variant = variants[item.sku]
            existing = await self.repository.find_variant_order(order_id, item.line_item_id)
            if existing is None:
                await self.repository.create_variant_order(
                    order_id=order_id,
                    line_item_id=item.line_item_id,
                    variant_id=variant.id,
                    quantity=item.quantity,
                    region=region,
                )
                variant_id = variant.id
            else:
                variant_id = existing.variant_id
            results.append(VariantOrderRef(variant_id=variant_id, line_item_id=item.line_item_id))
        return results

    async def create_preps_for_order(
        self,
        order_id: str,
        variant_orders: Sequence[VariantOrderRef],
        collection_prep_id: Optional[str],
        region: str,
    ) -> List[PrepRef]:
        results = []
        for variant_order in variant_orders:
            prep = await self.repository.find_prep(order_id, variant_order.line_item_id)
            if prep is None:
                prep = await self.repository.create_prep(
                    order_id=order_id,
                    line_item_id=variant_order.line_item_id,
                    variant_id=variant_order.variant_id,
                    region=region,
                    collection_prep_id=collection_prep_id,
                )
            results.append(PrepRef(
                prep_id=prep.id,
                variant_id=prep.variant_id,
                line_item_id=prep.line_item_id,
            ))
        return results

    async def create_prep_parts_and_items(
        self,
        preps: Sequence[PrepRef],
        line_items: Sequence[LineItemLike],
        region: str,
    ) -> List[PrepPartRef]:
        """One prep part and one prep part item per prep, parts resolved in one lookup."""
        by_line_item: Dict[str, LineItemLike] = {item.line_item_id: item for item in line_items}
        skus = list(dict.fromkeys(item.sku for item in line_items))
        parts = await self.repository.find_parts_by_skus(skus, region)

        results = []
        for prep in preps:
            item = by_line_item.get(prep.line_item_id)
            if item is None:
                raise WmsServiceError(f"Line item not found: {prep.line_item_id}")
            part = parts.get(item.sku)
            if part is None:
                raise WmsServiceError(
                    f"Part not found for SKU: {item.sku}",
                    details={"sku": item.sku, "region": region},
                )

            prep_part = await self.repository.find_prep_part(prep.prep_id, part.id)
            if prep_part is None:
                prep_part = await self.repository.create_prep_part(
                    prep_id=prep.prep_id, part_id=part.id, quantity=item.quantity, region=region
                )
            prep_part_item = await self.repository.find_prep_part_item(prep_part.id)
            if prep_part_item is None:
                prep_part_item = await self.repository.create_prep_part_item(
                    prep_part_id=prep_part.id, region=region
                )

            results.append(PrepPartRef(
                prep_part_id=prep_part.id,
                prep_part_item_id=prep_part_item.id,
                part_id=part.id,
            ))
        return results

    async def create_shipment_for_order(self, collection_prep_id: str, order_id: str, region: str) -> str:
        shipment = await self.repository.find_shipment(collection_prep_id, order_id)
        if shipment is None:
            shipment = await self.repository.create_shipment(
                collection_prep_id=collection_prep_id,
                order_id=order_id,
                region=region,
            )
        return shipment.id

    async def create_pnp_package_info(self, **package_info: Any) -> str:
        created = await self.repository.create_pnp_package_info(**package_info)
        return created.id

    async def create_pnp_boxes(self, boxes: Sequence[Dict[str, Any]]) -> List[str]:
        box_ids = []
        for box in boxes:
            created = await self.repository.create_pnp_box(**box)
            box_ids.append(created.id)
        return box_ids

    async def create_pnp_order_boxes(self, order_boxes: Sequence[Dict[str, Any]]) -> List[OrderBoxRef]:
        results = []
        for order_box in order_boxes:
            created = await self.repository.create_pnp_order_box(**order_box)
            results.append(OrderBoxRef(id=created.id, lpn=created.lpn))
        return results
