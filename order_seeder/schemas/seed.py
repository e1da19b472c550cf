"""
Seeding Schemas

Pydantic models for the seeding boundary: the batch request validated before any
remote or local call, the config file read by the CLI, and the camelCase
responses returned by each use case.
"""
import uuid
from datetime import datetime
from typing import Optional, List, Literal, Dict, Any

from pydantic import (
    BaseModel, ConfigDict, EmailStr, Field, ValidationError, field_validator, model_validator
)
from pydantic.alias_generators import to_camel

from order_seeder.core.exceptions import SeedValidationError

Region = Literal["CA", "US"]


class CamelModel(BaseModel):
    """Accepts both snake_case and camelCase keys; dumps camelCase with by_alias."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ==================== Batch Request ====================


class CustomerInput(CamelModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    address: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    postal_code: Optional[str] = None

    @property
    def has_full_address(self) -> bool:
        return all([self.address, self.city, self.province, self.postal_code])


class LineItemInput(CamelModel):
    sku: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0)


class OrderInput(CamelModel):
    customer: CustomerInput
    line_items: List[LineItemInput] = Field(..., min_length=1)


class BatchSeedRequest(CamelModel):
    """One batch of orders seeded under a single correlation id."""
    batch_id: str
    region: Optional[Region] = None
    collection_prep_name: Optional[str] = None
    orders: List[OrderInput] = Field(..., min_length=1)

    @field_validator("batch_id")
    @classmethod
    def validate_batch_id(cls, v):
        try:
            uuid.UUID(v)
        except (ValueError, AttributeError, TypeError):
            raise ValueError("batchId must be a UUID")
        return v

    def unique_skus(self) -> List[str]:
        """Union of SKUs across every order, first-seen order, no duplicates."""
        seen: Dict[str, None] = {}
        for order in self.orders:
            for item in order.line_items:
                seen.setdefault(item.sku, None)
        return list(seen)


def _to_seed_validation_error(prefix: str, e: ValidationError) -> SeedValidationError:
    errors = [
        {"loc": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]}
        for err in e.errors()
    ]
    summary = "; ".join(f"{err['loc']}: {err['msg']}" for err in errors)
    return SeedValidationError(f"{prefix}: {summary}", details={"errors": errors})


def parse_batch_request(data: Dict[str, Any]) -> BatchSeedRequest:
    """
    Validate raw input into a BatchSeedRequest.

    Raises:
        SeedValidationError: with the pydantic error list in details
    """
    try:
        return BatchSeedRequest.model_validate(data)
    except ValidationError as e:
        raise _to_seed_validation_error("Invalid seed request", e) from e


# ==================== Batch Response ====================


class LineItemResult(CamelModel):
    line_item_id: str
    sku: str
    quantity: int


class SeedResultEntry(CamelModel):
    shopify_order_id: str
    shopify_order_number: str
    line_items: List[LineItemResult]
    fulfillment_status: str = "UNFULFILLED"


class OrderFailureResult(CamelModel):
    order_index: int
    customer_email: Optional[str] = None
    shopify_order_id: Optional[str] = None
    error: str
    error_code: Optional[str] = None


class BatchSeedResponse(CamelModel):
    shopify_orders: List[SeedResultEntry] = []
    failures: List[OrderFailureResult] = []


# ==================== WMS Entities ====================


class ShopifyLineItemInput(CamelModel):
    line_item_id: str
    sku: str
    quantity: int = Field(1, gt=0)


class ShopifyOrderInput(CamelModel):
    shopify_order_id: str
    shopify_order_number: str
    status: str = "paid"
    customer_name: str = "Seed Customer"
    customer_email: str = "seed@example.com"
    line_items: List[ShopifyLineItemInput]


class SeedWmsEntitiesRequest(CamelModel):
    shopify_orders: List[ShopifyOrderInput]
    region: Region = "CA"
    collection_prep_id: Optional[str] = None
    location_id: Optional[str] = None


def parse_wms_entities_request(data: Dict[str, Any]) -> SeedWmsEntitiesRequest:
    try:
        return SeedWmsEntitiesRequest.model_validate(data)
    except ValidationError as e:
        raise _to_seed_validation_error("Invalid WMS seed request", e) from e


class WmsOrderResult(CamelModel):
    order_id: str
    shopify_order_id: str
    customer_id: str


class ShipmentResult(CamelModel):
    shipment_id: str
    order_id: str


class PrepPartItemResult(CamelModel):
    prep_part_item_id: str
    part_id: str


class SeedWmsEntitiesResponse(CamelModel):
    orders: List[WmsOrderResult] = []
    shipments: List[ShipmentResult] = []
    prep_part_items: List[PrepPartItemResult] = []
    failures: List[OrderFailureResult] = []


# ==================== Collection Prep ====================


class CreateCollectionPrepRequest(CamelModel):
    order_ids: List[str] = Field(..., min_length=1)
    carrier: str = Field(..., min_length=1)
    location_id: str = Field(..., min_length=1)
    region: Region
    prep_date: datetime
    test_tag: Optional[str] = None
    collection_prep_name: Optional[str] = None


def parse_collection_prep_request(data: Dict[str, Any]) -> CreateCollectionPrepRequest:
    try:
        return CreateCollectionPrepRequest.model_validate(data)
    except ValidationError as e:
        raise _to_seed_validation_error("Invalid collection prep request", e) from e


class CreateCollectionPrepResponse(CamelModel):
    collection_prep_id: str
    collection_prep_name: str
    region: str
    boxes: int


# ==================== Cleanup ====================


class CleanupRequest(CamelModel):
    batch_id: Optional[str] = None
    collection_prep_name: Optional[str] = None
    tag: Optional[str] = None
    dry_run: bool = False

    @model_validator(mode="after")
    def require_selector(self):
        if not (self.batch_id or self.collection_prep_name or self.tag):
            raise ValueError("Must provide one of: batchId, collectionPrepName, or tag")
        return self


def parse_cleanup_request(data: Dict[str, Any]) -> CleanupRequest:
    try:
        return CleanupRequest.model_validate(data)
    except ValidationError as e:
        raise _to_seed_validation_error("Invalid cleanup request", e) from e


class EntityCounts(CamelModel):
    deleted: int = 0
    failed: int = 0


class WmsCleanupCounts(CamelModel):
    orders: EntityCounts = EntityCounts()
    preps: EntityCounts = EntityCounts()
    shipments: EntityCounts = EntityCounts()
    collection_preps: EntityCounts = EntityCounts()


class CleanupSummary(CamelModel):
    total_deleted: int = 0
    total_failed: int = 0
    duration_ms: float = 0.0


class CleanupFailure(CamelModel):
    shopify_order_id: str
    error: str


class CleanupResponse(CamelModel):
    tag: str
    dry_run: bool = False
    shopify_order_ids: List[str] = []
    wms_entities: WmsCleanupCounts = WmsCleanupCounts()
    failures: List[CleanupFailure] = []
    summary: CleanupSummary = CleanupSummary()


# ==================== CLI Config File ====================


class CollectionPrepConfig(CamelModel):
    carrier: str = Field(..., min_length=1)
    location_id: str = Field(..., min_length=1)
    region: Region
    prep_date: datetime
    test_tag: Optional[str] = None


class ConfigLineItem(LineItemInput):
    pick_type: Literal["Regular", "Pick and Pack"] = "Regular"


class ConfigOrder(CamelModel):
    order_type: Optional[Literal["regular-only", "pnp-only", "mixed"]] = None
    customer: CustomerInput
    line_items: List[ConfigLineItem] = Field(..., min_length=1)

    @property
    def has_pick_and_pack(self) -> bool:
        return any(item.pick_type == "Pick and Pack" for item in self.line_items)


class Dimensions(CamelModel):
    length: float = Field(..., gt=0)
    width: float = Field(..., gt=0)
    height: float = Field(..., gt=0)


class PnpPackageInfoConfig(CamelModel):
    identifier: str
    dimensions: Dimensions
    weight: float = Field(..., gt=0)


class PnpBoxConfig(CamelModel):
    identifier: str
    dimensions: Dimensions


class PnpConfig(CamelModel):
    package_info: List[PnpPackageInfoConfig] = []
    boxes: List[PnpBoxConfig] = []


class SeedConfig(CamelModel):
    """Config file accepted by `wms-seed seed`."""
    region: Optional[Region] = None
    collection_prep: Optional[CollectionPrepConfig] = None
    orders: List[ConfigOrder] = Field(..., min_length=1)
    pnp_config: Optional[PnpConfig] = None

    @property
    def effective_region(self) -> str:
        if self.region:
            return self.region
        if self.collection_prep:
            return self.collection_prep.region
        return "CA"


def parse_seed_config(data: Dict[str, Any]) -> SeedConfig:
    try:
        return SeedConfig.model_validate(data)
    except ValidationError as e:
        raise _to_seed_validation_error("Invalid seed config", e) from e
