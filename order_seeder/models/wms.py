"""
WMS mirror models

Local projection of seeded Shopify orders: the customer and order rows, the
per-line-item variant orders and preps, prep parts and their items, collection
preps with their shipments, and the pick-and-pack box entities.

Natural keys are enforced as unique constraints so repeated seeding can find
and reuse existing rows instead of duplicating them.
"""
import enum

from sqlalchemy import (
    Column, Integer, String, Float, ForeignKey, DateTime, UniqueConstraint, Index
)

from order_seeder.core.database import Base
from order_seeder.core.utils import utcnow, new_id


class ShipmentStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"


class PnpOrderBoxStatus(str, enum.Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class Customer(Base):
    __tablename__ = "customers"
    __table_args__ = (
        UniqueConstraint("email", "region", name="uq_customers_email_region"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    region = Column(String(2), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=new_id)
    shopify_order_id = Column(String, unique=True, index=True, nullable=False)
    shopify_order_number = Column(String, nullable=False)
    status = Column(String, nullable=False)
    region = Column(String(2), nullable=False)
    customer_id = Column(String(36), ForeignKey("customers.id"), nullable=True)
    location_id = Column(String, nullable=True)
    source_name = Column(String, default="wms_seed")
    created_at = Column(DateTime(timezone=True), default=utcnow)


class Variant(Base):
    __tablename__ = "variants"
    __table_args__ = (
        UniqueConstraint("sku", "region", name="uq_variants_sku_region"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    sku = Column(String, nullable=False, index=True)
    region = Column(String(2), nullable=False)


class Part(Base):
    __tablename__ = "parts"
    __table_args__ = (
        UniqueConstraint("sku", "region", name="uq_parts_sku_region"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    sku = Column(String, nullable=False, index=True)
    region = Column(String(2), nullable=False)


class VariantOrder(Base):
    __tablename__ = "variant_orders"
    __table_args__ = (
        UniqueConstraint("order_id", "line_item_id", name="uq_variant_orders_order_line_item"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False)
    line_item_id = Column(String, nullable=False)
    variant_id = Column(String(36), ForeignKey("variants.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    region = Column(String(2), nullable=False)


class CollectionPrep(Base):
    """Group of preps leaving together on one carrier pickup."""
    __tablename__ = "collection_preps"

    id = Column(String(36), primary_key=True, default=new_id)
    region = Column(String(2), nullable=False)
    carrier = Column(String, nullable=False)
    location_id = Column(String, nullable=False)
    prep_date = Column(DateTime(timezone=True), nullable=False)
    boxes = Column(Integer, nullable=False, default=0)


class Prep(Base):
    """One unit of pick/prepare work, per order line item."""
    __tablename__ = "preps"
    __table_args__ = (
        UniqueConstraint("order_id", "line_item_id", name="uq_preps_order_line_item"),
        Index("ix_preps_collection_prep_id", "collection_prep_id"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    prep = Column(String, nullable=False)  # external prep reference
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False)
    line_item_id = Column(String, nullable=False)
    variant_id = Column(String(36), ForeignKey("variants.id"), nullable=False)
    collection_prep_id = Column(String(36), ForeignKey("collection_preps.id"), nullable=True)
    region = Column(String(2), nullable=False)


class PrepPart(Base):
    __tablename__ = "prep_parts"
    __table_args__ = (
        UniqueConstraint("prep_id", "part_id", name="uq_prep_parts_prep_part"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    prep_id = Column(String(36), ForeignKey("preps.id"), nullable=False)
    part_id = Column(String(36), ForeignKey("parts.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    region = Column(String(2), nullable=False)


class PrepPartItem(Base):
    __tablename__ = "prep_part_items"

    id = Column(String(36), primary_key=True, default=new_id)
    prep_part_id = Column(String(36), ForeignKey("prep_parts.id"), nullable=False, index=True)
    region = Column(String(2), nullable=False, default="CA")


class Shipment(Base):
    __tablename__ = "shipments"
    __table_args__ = (
        UniqueConstraint("collection_prep_id", "order_id", name="uq_shipments_collection_prep_order"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    collection_prep_id = Column(String(36), ForeignKey("collection_preps.id"), nullable=False)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    region = Column(String(2), nullable=False)
    status = Column(String, nullable=False, default=ShipmentStatus.ACTIVE.value)


class PnpPackageInfo(Base):
    __tablename__ = "pnp_package_infos"

    id = Column(String(36), primary_key=True, default=new_id)
    identifier = Column(String, nullable=False)
    length = Column(Float, nullable=False)
    width = Column(Float, nullable=False)
    height = Column(Float, nullable=False)
    weight = Column(Float, nullable=False)
    length_unit = Column(String(2), default="IN")
    width_unit = Column(String(2), default="IN")
    height_unit = Column(String(2), default="IN")
    weight_unit = Column(String(2), default="LB")


class PnpBox(Base):
    __tablename__ = "pnp_boxes"

    id = Column(String(36), primary_key=True, default=new_id)
    identifier = Column(String, nullable=False)
    length = Column(Float, nullable=False)
    width = Column(Float, nullable=False)
    height = Column(Float, nullable=False)
    region = Column(String(2), nullable=False)
    length_unit = Column(String(2), default="IN")
    width_unit = Column(String(2), default="IN")
    height_unit = Column(String(2), default="IN")


class PnpOrderBox(Base):
    __tablename__ = "pnp_order_boxes"

    id = Column(String(36), primary_key=True, default=new_id)
    collection_prep_id = Column(String(36), ForeignKey("collection_preps.id"), nullable=False)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    lpn = Column(String, unique=True, nullable=False)  # license plate number
    status = Column(String, nullable=False, default=PnpOrderBoxStatus.OPEN.value)
    pnp_box_id = Column(String(36), ForeignKey("pnp_boxes.id"), nullable=False)
    region = Column(String(2), nullable=False)
