"""
WMS Mirror Repository

Async persistence for the WMS mirror tables.

WmsRepository builds every entity the same way for both implementations and
hands the result to _persist():
- SqlAlchemyWmsRepository writes it (each call is its own transaction,
  composite calls share one)
- DryRunWmsRepository logs the intended write and returns the unsaved entity

Database failures surface as WmsRepositoryError.
"""
import abc
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Dict, Any, List, Iterable, Sequence

from sqlalchemy import select, delete, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from order_seeder.core.database import session_scope
from order_seeder.core.exceptions import WmsRepositoryError
from order_seeder.core.utils import new_id
from order_seeder.models.wms import (
    Customer,
    Order,
    Variant,
    Part,
    VariantOrder,
    CollectionPrep,
    Prep,
    PrepPart,
    PrepPartItem,
    Shipment,
    ShipmentStatus,
    PnpPackageInfo,
    PnpBox,
    PnpOrderBox,
    PnpOrderBoxStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_NAME = "wms_seed"


@dataclass
class OrderEntities:
    order: Order
    variant_order_ids: List[str] = field(default_factory=list)
    prep_ids: List[str] = field(default_factory=list)


@dataclass
class DeletionCounts:
    deleted_pnp_order_boxes: int = 0
    deleted_prep_part_items: int = 0
    deleted_prep_parts: int = 0
    deleted_preps: int = 0
    deleted_shipments: int = 0
    deleted_variant_orders: int = 0
    deleted_order: bool = False


class WmsRepository(abc.ABC):
    """Contract for the WMS mirror store."""

    # ==================== Reads ====================

    @abc.abstractmethod
    async def find_order_by_shopify_id(self, shopify_order_id: str) -> Optional[Order]:
        ...

    @abc.abstractmethod
    async def find_orders_by_shopify_ids(self, shopify_order_ids: Sequence[str]) -> List[Order]:
        ...

    @abc.abstractmethod
    async def find_customer_by_email(self, email: str, region: str) -> Optional[Customer]:
        ...

    @abc.abstractmethod
    async def find_variants_by_skus(self, skus: Sequence[str], region: str) -> Dict[str, Variant]:
        ...

    @abc.abstractmethod
    async def find_parts_by_skus(self, skus: Sequence[str], region: str) -> Dict[str, Part]:
        ...

    @abc.abstractmethod
    async def find_variant_order(self, order_id: str, line_item_id: str) -> Optional[VariantOrder]:
        ...

    @abc.abstractmethod
    async def find_prep(self, order_id: str, line_item_id: str) -> Optional[Prep]:
        ...

    @abc.abstractmethod
    async def find_prep_part(self, prep_id: str, part_id: str) -> Optional[PrepPart]:
        ...

    @abc.abstractmethod
    async def find_prep_part_item(self, prep_part_id: str) -> Optional[PrepPartItem]:
        ...

    @abc.abstractmethod
    async def find_shipment(self, collection_prep_id: str, order_id: str) -> Optional[Shipment]:
        ...

    @abc.abstractmethod
    async def find_preps_by_order_ids(
        self, order_ids: Sequence[str], region: Optional[str] = None
    ) -> List[Prep]:
        ...

    @abc.abstractmethod
    async def find_shipments_by_order_ids(self, order_ids: Sequence[str]) -> List[Shipment]:
        ...

    # ==================== Deletes ====================

    @abc.abstractmethod
    async def delete_order_entities_transaction(self, shopify_order_id: str) -> DeletionCounts:
        ...

    @abc.abstractmethod
    async def delete_collection_prep(self, collection_prep_id: str) -> bool:
        """Delete when nothing references it. Returns False when skipped."""

    # ==================== Writes ====================

    @abc.abstractmethod
    async def _persist(self, entities: Sequence[Any], context: str) -> None:
        """Store entities atomically."""

    async def create_customer(
        self, name: str, email: Optional[str], region: str, customer_id: Optional[str] = None
    ) -> Customer:
        customer = Customer(id=customer_id or new_id(), name=name, email=email, region=region)
        await self._persist([customer], f"Customer with email {email} in region {region}")
        return customer

    @staticmethod
    def build_order(
        shopify_order_id: str,
        shopify_order_number: str,
        status: str,
        region: str,
        customer_id: Optional[str] = None,
        location_id: Optional[str] = None,
        source_name: Optional[str] = None,
    ) -> Order:
        return Order(
            id=new_id(),
            shopify_order_id=shopify_order_id,
            shopify_order_number=shopify_order_number,
            status=status,
            region=region,
            customer_id=customer_id,
            location_id=location_id,
            source_name=source_name or DEFAULT_SOURCE_NAME,
        )

    async def create_order(self, **order_fields: Any) -> Order:
        order = self.build_order(**order_fields)
        await self._persist([order], f"Order with shopify_order_id {order.shopify_order_id}")
        return order

    async def create_variant_order(
        self, order_id: str, line_item_id: str, variant_id: str, quantity: int, region: str
    ) -> VariantOrder:
        variant_order = VariantOrder(
            id=new_id(),
            order_id=order_id,
            line_item_id=line_item_id,
            variant_id=variant_id,
            quantity=quantity,
            region=region,
        )
        await self._persist(
            [variant_order], f"VariantOrder for order {order_id} line item {line_item_id}"
        )
        return variant_order

    async def create_prep(
        self,
        order_id: str,
        line_item_id: str,
        variant_id: str,
        region: str,
        collection_prep_id: Optional[str] = None,
        prep: Optional[str] = None,
    ) -> Prep:
        entity = Prep(
            id=new_id(),
            prep=prep or new_id(),
            order_id=order_id,
            line_item_id=line_item_id,
            variant_id=variant_id,
            collection_prep_id=collection_prep_id,
            region=region,
        )
        await self._persist([entity], f"Prep for order {order_id} line item {line_item_id}")
        return entity

    async def create_prep_part(self, prep_id: str, part_id: str, quantity: int, region: str) -> PrepPart:
        prep_part = PrepPart(id=new_id(), prep_id=prep_id, part_id=part_id, quantity=quantity, region=region)
        await self._persist([prep_part], f"PrepPart for prep {prep_id} part {part_id}")
        return prep_part

    async def create_prep_part_item(self, prep_part_id: str, region: Optional[str] = None) -> PrepPartItem:
        item = PrepPartItem(id=new_id(), prep_part_id=prep_part_id, region=region or "CA")
        await self._persist([item], f"PrepPartItem for prep part {prep_part_id}")
        return item

    async def create_collection_prep(
        self,
        region: str,
        carrier: str,
        location_id: str,
        prep_date: datetime,
        boxes: int,
        collection_prep_id: Optional[str] = None,
    ) -> CollectionPrep:
        collection_prep = CollectionPrep(
            id=collection_prep_id or new_id(),
            region=region,
            carrier=carrier,
            location_id=location_id,
            prep_date=prep_date,
            boxes=boxes,
        )
        await self._persist([collection_prep], f"CollectionPrep {collection_prep.id}")
        return collection_prep

    async def create_shipment(
        self,
        collection_prep_id: str,
        order_id: str,
        region: str,
        status: str = ShipmentStatus.ACTIVE.value,
    ) -> Shipment:
        shipment = Shipment(
            id=new_id(),
            collection_prep_id=collection_prep_id,
            order_id=order_id,
            region=region,
            status=status,
        )
        await self._persist(
            [shipment], f"Shipment for collection prep {collection_prep_id} order {order_id}"
        )
        return shipment

    async def create_pnp_package_info(
        self,
        identifier: str,
        length: float,
        width: float,
        height: float,
        weight: float,
        length_unit: str = "IN",
        width_unit: str = "IN",
        height_unit: str = "IN",
        weight_unit: str = "LB",
    ) -> PnpPackageInfo:
        package_info = PnpPackageInfo(
            id=new_id(),
            identifier=identifier,
            length=length,
            width=width,
            height=height,
            weight=weight,
            length_unit=length_unit,
            width_unit=width_unit,
            height_unit=height_unit,
            weight_unit=weight_unit,
        )
        await self._persist([package_info], f"PnpPackageInfo {identifier}")
        return package_info

    async def create_pnp_box(
        self,
        identifier: str,
        length: float,
        width: float,
        height: float,
        region: str,
        length_unit: str = "IN",
        width_unit: str = "IN",
        height_unit: str = "IN",
    ) -> PnpBox:
        box = PnpBox(
            id=new_id(),
            identifier=identifier,
            length=length,
            width=width,
            height=height,
            region=region,
            length_unit=length_unit,
            width_unit=width_unit,
            height_unit=height_unit,
        )
        await self._persist([box], f"PnpBox {identifier}")
        return box

    async def create_pnp_order_box(
        self,
        collection_prep_id: str,
        order_id: str,
        lpn: str,
        pnp_box_id: str,
        region: str,
        status: str = PnpOrderBoxStatus.OPEN.value,
    ) -> PnpOrderBox:
        order_box = PnpOrderBox(
            id=new_id(),
            collection_prep_id=collection_prep_id,
            order_id=order_id,
            lpn=lpn,
            status=status,
            pnp_box_id=pnp_box_id,
            region=region,
        )
        await self._persist([order_box], f"PnpOrderBox with lpn {lpn}")
        return order_box

    # ==================== Composite Writes ====================

    async def create_order_with_customer_transaction(
        self,
        order_fields: Dict[str, Any],
        customer_fields: Dict[str, Any],
    ) -> Order:
        """Customer and order in one transaction."""
        customer = Customer(
            id=customer_fields.get("id") or new_id(),
            name=customer_fields["name"],
            email=customer_fields.get("email"),
            region=customer_fields["region"],
        )
        order = self.build_order(**{**order_fields, "customer_id": customer.id})
        await self._persist(
            [customer, order],
            f"Order with shopify_order_id {order.shopify_order_id} and customer {customer.email}",
        )
        return order

    async def create_order_entities_transaction(
        self,
        order_fields: Dict[str, Any],
        variant_orders: Iterable[Dict[str, Any]],
        preps: Iterable[Dict[str, Any]],
    ) -> OrderEntities:
        """Order plus its variant orders and preps in one transaction."""
        order = self.build_order(**order_fields)
        variant_order_rows = [
            VariantOrder(id=new_id(), order_id=order.id, **vo) for vo in variant_orders
        ]
        prep_rows = [
            Prep(id=new_id(), prep=p.get("prep") or new_id(), order_id=order.id,
                 **{k: v for k, v in p.items() if k != "prep"})
            for p in preps
        ]
        await self._persist(
            [order, *variant_order_rows, *prep_rows],
            f"Order entities for shopify_order_id {order.shopify_order_id}",
        )
        return OrderEntities(
            order=order,
            variant_order_ids=[vo.id for vo in variant_order_rows],
            prep_ids=[p.id for p in prep_rows],
        )


class SqlAlchemyWmsRepository(WmsRepository):
    """
    WMS repository over an async SQLAlchemy session factory.

    Usage:
        engine, session_factory = create_engine_and_sessionmaker(settings)
        repository = SqlAlchemyWmsRepository(session_factory)
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def _persist(self, entities: Sequence[Any], context: str) -> None:
        try:
            async with session_scope(self.session_factory) as session:
                session.add_all(list(entities))
        except SQLAlchemyError as e:
            error = WmsRepositoryError.from_db_error(e, context)
            logger.error(f"WMS write failed: {error.message}")
            raise error from e

    async def _scalars(self, statement, context: str) -> List[Any]:
        try:
            async with session_scope(self.session_factory) as session:
                result = await session.execute(statement)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise WmsRepositoryError.from_db_error(e, context) from e

    async def _first(self, statement, context: str) -> Optional[Any]:
        rows = await self._scalars(statement.limit(1), context)
        return rows[0] if rows else None

    async def find_order_by_shopify_id(self, shopify_order_id: str) -> Optional[Order]:
        return await self._first(
            select(Order).where(Order.shopify_order_id == shopify_order_id),
            f"Order with shopify_order_id {shopify_order_id}",
        )

    async def find_orders_by_shopify_ids(self, shopify_order_ids: Sequence[str]) -> List[Order]:
        if not shopify_order_ids:
            return []
        return await self._scalars(
            select(Order).where(Order.shopify_order_id.in_(list(shopify_order_ids))),
            "Orders by shopify_order_id",
        )

    async def find_customer_by_email(self, email: str, region: str) -> Optional[Customer]:
        return await self._first(
            select(Customer).where(Customer.email == email, Customer.region == region),
            f"Customer with email {email} in region {region}",
        )

    async def find_variants_by_skus(self, skus: Sequence[str], region: str) -> Dict[str, Variant]:
        if not skus:
            return {}
        rows = await self._scalars(
            select(Variant).where(Variant.sku.in_(set(skus)), Variant.region == region),
            f"Variants in region {region}",
        )
        return {row.sku: row for row in rows}

    async def find_parts_by_skus(self, skus: Sequence[str], region: str) -> Dict[str, Part]:
        if not skus:
            return {}
        rows = await self._scalars(
            select(Part).where(Part.sku.in_(set(skus)), Part.region == region),
            f"Parts in region {region}",
        )
        return {row.sku: row for row in rows}

    async def find_variant_order(self, order_id: str, line_item_id: str) -> Optional[VariantOrder]:
        return await self._first(
            select(VariantOrder).where(
                VariantOrder.order_id == order_id, VariantOrder.line_item_id == line_item_id
            ),
            f"VariantOrder for order {order_id} line item {line_item_id}",
        )

    async def find_prep(self, order_id: str, line_item_id: str) -> Optional[Prep]:
        return await self._first(
            select(Prep).where(Prep.order_id == order_id, Prep.line_item_id == line_item_id),
            f"Prep for order {order_id} line item {line_item_id}",
        )

    async def find_prep_part(self, prep_id: str, part_id: str) -> Optional[PrepPart]:
        return await self._first(
            select(PrepPart).where(PrepPart.prep_id == prep_id, PrepPart.part_id == part_id),
            f"PrepPart for prep {prep_id} part {part_id}",
        )

    async def find_prep_part_item(self, prep_part_id: str) -> Optional[PrepPartItem]:
        return await self._first(
            select(PrepPartItem).where(PrepPartItem.prep_part_id == prep_part_id),
            f"PrepPartItem for prep part {prep_part_id}",
        )

    async def find_shipment(self, collection_prep_id: str, order_id: str) -> Optional[Shipment]:
        return await self._first(
            select(Shipment).where(
                Shipment.collection_prep_id == collection_prep_id, Shipment.order_id == order_id
            ),
            f"Shipment for collection prep {collection_prep_id} order {order_id}",
        )

    async def find_preps_by_order_ids(
        self, order_ids: Sequence[str], region: Optional[str] = None
    ) -> List[Prep]:
        if not order_ids:
            return []
        statement = select(Prep).where(Prep.order_id.in_(list(order_ids)))
        if region:
            statement = statement.where(Prep.region == region)
        return await self._scalars(statement, "Preps by order id")

    async def find_shipments_by_order_ids(self, order_ids: Sequence[str]) -> List[Shipment]:
        if not order_ids:
            return []
        return await self._scalars(
            select(Shipment).where(Shipment.order_id.in_(list(order_ids))),
            "Shipments by order id",
        )

    async def delete_order_entities_transaction(self, shopify_order_id: str) -> DeletionCounts:
        """Delete one order and everything hanging off it, leaf tables first."""
        context = f"Order entities for shopify_order_id {shopify_order_id}"
        counts = DeletionCounts()
        try:
            async with session_scope(self.session_factory) as session:
                order = (await session.execute(
                    select(Order).where(Order.shopify_order_id == shopify_order_id)
                )).scalars().first()
                if order is None:
                    return counts

                prep_ids = select(Prep.id).where(Prep.order_id == order.id)
                prep_part_ids = select(PrepPart.id).where(PrepPart.prep_id.in_(prep_ids))

                result = await session.execute(
                    delete(PrepPartItem).where(PrepPartItem.prep_part_id.in_(prep_part_ids))
                )
                counts.deleted_prep_part_items = result.rowcount or 0
                result = await session.execute(delete(PrepPart).where(PrepPart.prep_id.in_(prep_ids)))
                counts.deleted_prep_parts = result.rowcount or 0
                result = await session.execute(delete(PnpOrderBox).where(PnpOrderBox.order_id == order.id))
                counts.deleted_pnp_order_boxes = result.rowcount or 0
                result = await session.execute(delete(Prep).where(Prep.order_id == order.id))
                counts.deleted_preps = result.rowcount or 0
                result = await session.execute(delete(Shipment).where(Shipment.order_id == order.id))
                counts.deleted_shipments = result.rowcount or 0
                result = await session.execute(delete(VariantOrder).where(VariantOrder.order_id == order.id))
                counts.deleted_variant_orders = result.rowcount or 0
                await session.execute(delete(Order).where(Order.id == order.id))
                counts.deleted_order = True
        except SQLAlchemyError as e:
            raise WmsRepositoryError.from_db_error(e, context) from e
        return counts

    async def delete_collection_prep(self, collection_prep_id: str) -> bool:
        context = f"CollectionPrep {collection_prep_id}"
        try:
            async with session_scope(self.session_factory) as session:
                for model in (Prep, Shipment, PnpOrderBox):
                    referenced = (await session.execute(
                        select(func.count()).select_from(model).where(
                            model.collection_prep_id == collection_prep_id
                        )
                    )).scalar_one()
                    if referenced:
                        return False
                result = await session.execute(
                    delete(CollectionPrep).where(CollectionPrep.id == collection_prep_id)
                )
                return bool(result.rowcount)
        except SQLAlchemyError as e:
            raise WmsRepositoryError.from_db_error(e, context) from e


class DryRunWmsRepository(WmsRepository):
    """
    Repository that never writes.

    Reads go to the delegate when one is given. Without a delegate, SKU lookups
    synthesize dry-run ids so offline dry runs still resolve, and every other
    read finds nothing.
    """

    def __init__(self, delegate: Optional[WmsRepository] = None):
        self.delegate = delegate
        self.persisted: List[Any] = []

    async def _persist(self, entities: Sequence[Any], context: str) -> None:
        for entity in entities:
            logger.info(
                f"DRY RUN: Would create {type(entity).__name__} {entity.id} ({context})"
            )
        self.persisted.extend(entities)

    async def find_order_by_shopify_id(self, shopify_order_id: str) -> Optional[Order]:
        if self.delegate:
            return await self.delegate.find_order_by_shopify_id(shopify_order_id)
        return None

    async def find_orders_by_shopify_ids(self, shopify_order_ids: Sequence[str]) -> List[Order]:
        if self.delegate:
            return await self.delegate.find_orders_by_shopify_ids(shopify_order_ids)
        return []

    async def find_customer_by_email(self, email: str, region: str) -> Optional[Customer]:
        if self.delegate:
            return await self.delegate.find_customer_by_email(email, region)
        return None

    async def find_variants_by_skus(self, skus: Sequence[str], region: str) -> Dict[str, Variant]:
        if self.delegate:
            return await self.delegate.find_variants_by_skus(skus, region)
        return {sku: Variant(id=f"dry-run-{new_id()}", sku=sku, region=region) for sku in skus}

    async def find_parts_by_skus(self, skus: Sequence[str], region: str) -> Dict[str, Part]:
        if self.delegate:
            return await self.delegate.find_parts_by_skus(skus, region)
        return {sku: Part(id=f"dry-run-{new_id()}", sku=sku, region=region) for sku in skus}

    async def find_variant_order(self, order_id: str, line_item_id: str) -> Optional[VariantOrder]:
        if self.delegate:
            return await self.delegate.find_variant_order(order_id, line_item_id)
        return None

    async def find_prep(self, order_id: str, line_item_id: str) -> Optional[Prep]:
        if self.delegate:
            return await self.delegate.find_prep(order_id, line_item_id)
        return None

    async def find_prep_part(self, prep_id: str, part_id: str) -> Optional[PrepPart]:
        if self.delegate:
            return await self.delegate.find_prep_part(prep_id, part_id)
        return None

    async def find_prep_part_item(self, prep_part_id: str) -> Optional[PrepPartItem]:
        if self.delegate:
            return await self.delegate.find_prep_part_item(prep_part_id)
        return None

    async def find_shipment(self, collection_prep_id: str, order_id: str) -> Optional[Shipment]:
        if self.delegate:
            return await self.delegate.find_shipment(collection_prep_id, order_id)
        return None

    async def find_preps_by_order_ids(
        self, order_ids: Sequence[str], region: Optional[str] = None
    ) -> List[Prep]:
        if self.delegate:
            return await self.delegate.find_preps_by_order_ids(order_ids, region)
        return []

    async def find_shipments_by_order_ids(self, order_ids: Sequence[str]) -> List[Shipment]:
        if self.delegate:
            return await self.delegate.find_shipments_by_order_ids(order_ids)
        return []

    async def delete_order_entities_transaction(self, shopify_order_id: str) -> DeletionCounts:
        logger.info(f"DRY RUN: Would delete WMS entities for order {shopify_order_id}")
        return DeletionCounts(deleted_order=True)

    async def delete_collection_prep(self, collection_prep_id: str) -> bool:
        logger.info(f"DRY RUN: Would delete collection prep {collection_prep_id}")
        return True
