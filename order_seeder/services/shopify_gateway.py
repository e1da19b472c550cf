"""
Shopify Admin API Gateway

Remote order operations used by the seeder:
- Variant lookup by SKU (one OR-combined query per call)
- Draft order creation and completion
- Order fulfillment (idempotent)
- Order lookup by tag

Two implementations share one contract. ShopifyGateway talks to the Admin
GraphQL API over httpx; SimulatedShopifyGateway returns the same shapes with
synthesized identifiers and never touches the network. Callers pick one at
construction time and never branch on mode afterwards.
"""
import abc
import logging
import random
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Any, Iterable, Iterator, Mapping, Tuple

import httpx

from order_seeder.core.config import Settings, ShopifyCredentials
from order_seeder.core.exceptions import ShopifyServiceError, UserError
from order_seeder.schemas.seed import OrderInput
from order_seeder.services.performance_metrics import GraphQLCost

logger = logging.getLogger(__name__)

# Shopify rejects tags longer than 40 characters
MAX_TAG_LENGTH = 40
BATCH_TAG_PREFIX = "seed_batch_id:"
COLLECTION_PREP_TAG_PREFIX = "collection_prep:"
SEED_TAG = "wms_seed"

SYNTHETIC_MARKER = "dry-run-"
SYNTHETIC_LINE_ITEM_PREFIX = "gid://shopify/LineItem/synthetic-"

DEFAULT_FULFILLMENT_STATUS = "SUCCESS"

DEFAULT_MAX_RECORDED_CALLS = 1000


def format_batch_tag(batch_id: str) -> str:
    """
    Tag used both when creating and when querying a batch's orders.

    The batch id is truncated so the whole tag fits Shopify's 40 character limit.
    """
    return BATCH_TAG_PREFIX + batch_id[: MAX_TAG_LENGTH - len(BATCH_TAG_PREFIX)]


def format_collection_prep_tag(collection_prep_name: str) -> str:
    sanitized = collection_prep_name.replace(" ", "_")
    return COLLECTION_PREP_TAG_PREFIX + sanitized[: MAX_TAG_LENGTH - len(COLLECTION_PREP_TAG_PREFIX)]


def synthetic_line_item_id() -> str:
    return f"{SYNTHETIC_LINE_ITEM_PREFIX}{uuid.uuid4()}"


def is_synthetic_id(value: str) -> bool:
    return SYNTHETIC_MARKER in value or value.startswith(SYNTHETIC_LINE_ITEM_PREFIX)


# ==================== Result Types ====================


@dataclass(frozen=True)
class LineItemRecord:
    line_item_id: str
    sku: str
    quantity: int


@dataclass(frozen=True)
class DraftOrderResult:
    draft_order_id: str
    graphql_cost: Optional[GraphQLCost] = None


@dataclass(frozen=True)
class CompletedOrder:
    """
    A paid order. line_items is None when the completion response did not
    carry resolved line items.
    """
    order_id: str
    order_number: str
    line_items: Optional[Tuple[LineItemRecord, ...]] = None
    graphql_cost: Optional[GraphQLCost] = None


@dataclass(frozen=True)
class FulfillmentResult:
    fulfillment_id: str
    status: str
    created: bool = True
    api_call_count: int = 1
    graphql_cost: Optional[GraphQLCost] = None


@dataclass(frozen=True)
class OrderQueryResult:
    order_id: str
    order_number: str
    line_items: Tuple[LineItemRecord, ...] = ()


class OrderQueryPage:
    """Orders returned by a tag query, plus the query's cost."""

    def __init__(
        self,
        orders: Iterable[OrderQueryResult] = (),
        graphql_cost: Optional[GraphQLCost] = None,
    ):
        self.orders: Tuple[OrderQueryResult, ...] = tuple(orders)
        self.graphql_cost = graphql_cost

    def __iter__(self) -> Iterator[OrderQueryResult]:
        return iter(self.orders)

    def __len__(self) -> int:
        return len(self.orders)

    def find(self, order_id: str) -> Optional[OrderQueryResult]:
        return next((o for o in self.orders if o.order_id == order_id), None)

    def __repr__(self) -> str:
        return f"OrderQueryPage(orders={len(self.orders)})"


class VariantMap(Mapping[str, str]):
    """
    Read-only SKU -> variant id mapping for one batch.

    Built once and shared by every order in the batch.
    """

    def __init__(self, variants: Optional[Mapping[str, str]] = None, graphql_cost: Optional[GraphQLCost] = None):
        self._variants: Dict[str, str] = dict(variants or {})
        self.graphql_cost = graphql_cost

    def __getitem__(self, sku: str) -> str:
        return self._variants[sku]

    def __iter__(self) -> Iterator[str]:
        return iter(self._variants)

    def __len__(self) -> int:
        return len(self._variants)

    def missing(self, skus: Iterable[str]) -> List[str]:
        return sorted({sku for sku in skus if sku not in self._variants})

    def __repr__(self) -> str:
        return f"VariantMap({self._variants!r})"


# ==================== GraphQL Documents ====================

FIND_VARIANTS_QUERY = """
query getProductsBySkus($query: String!) {
  products(first: 250, query: $query) {
    edges {
      node {
        variants(first: 250) {
          edges { node { id sku } }
        }
      }
    }
  }
}
"""

DRAFT_ORDER_CREATE_MUTATION = """
mutation draftOrderCreate($input: DraftOrderInput!) {
  draftOrderCreate(input: $input) {
    draftOrder { id name }
    userErrors { message field }
  }
}
"""

DRAFT_ORDER_COMPLETE_MUTATION = """
mutation draftOrderComplete($id: ID!, $paymentPending: Boolean) {
  draftOrderComplete(id: $id, paymentPending: $paymentPending) {
    draftOrder {
      id
      order {
        id
        name
        lineItems(first: 250) {
          edges { node { id sku quantity } }
        }
      }
    }
    userErrors { message field }
  }
}
"""

ORDER_FOR_FULFILLMENT_QUERY = """
query getOrderForFulfillment($id: ID!) {
  order(id: $id) {
    id
    fulfillments(first: 10) { id status }
    lineItems(first: 250) {
      edges { node { id quantity fulfillableQuantity } }
    }
  }
}
"""

FULFILLMENT_CREATE_MUTATION = """
mutation fulfillmentCreate($fulfillment: FulfillmentInput!) {
  fulfillmentCreate(fulfillment: $fulfillment) {
    fulfillment { id status }
    userErrors { message field }
  }
}
"""

ORDERS_BY_TAG_QUERY = """
query getOrdersByTag($query: String!) {
  orders(first: 250, query: $query) {
    edges {
      node {
        id
        name
        lineItems(first: 250) {
          edges { node { id sku quantity } }
        }
      }
    }
  }
}
"""


# ==================== Contract ====================


class ShopifyGatewayBase(abc.ABC):
    """
    Remote order operations. Implementations never retry.

    Usage:
        async with create_shopify_gateway(settings, region="CA", dry_run=False) as gateway:
            variants = await gateway.find_variant_ids_by_skus(["SKU-1"])
    """

    format_batch_tag = staticmethod(format_batch_tag)
    format_collection_prep_tag = staticmethod(format_collection_prep_tag)

    @abc.abstractmethod
    async def find_variant_ids_by_skus(self, skus: List[str]) -> VariantMap:
        """Resolve deduplicated SKUs. Unresolved SKUs are simply absent from the map."""

    @abc.abstractmethod
    async def create_draft_order(
        self,
        order: OrderInput,
        batch_id: str,
        region: Optional[str] = None,
        collection_prep_name: Optional[str] = None,
        variant_map: Optional[Mapping[str, str]] = None,
    ) -> DraftOrderResult:
        """Create a tagged draft order. Looks variants up itself when no map is given."""

    @abc.abstractmethod
    async def complete_draft_order(self, draft_order_id: str) -> CompletedOrder:
        """Complete a draft as paid."""

    @abc.abstractmethod
    async def fulfill_order(self, order_id: str) -> FulfillmentResult:
        """Fulfill remaining quantities, or return the existing fulfillment."""

    @abc.abstractmethod
    async def query_orders_by_tag(self, tag: str) -> OrderQueryPage:
        """Orders carrying the given tag."""

    async def close(self) -> None:
        return None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def _variant_map_for(
        self, order: OrderInput, variant_map: Optional[Mapping[str, str]]
    ) -> Mapping[str, str]:
        if variant_map is not None:
            return variant_map
        skus = list(dict.fromkeys(item.sku for item in order.line_items))
        return await self.find_variant_ids_by_skus(skus)

    @staticmethod
    def _resolve_line_items(order: OrderInput, variant_map: Mapping[str, str]) -> List[Dict[str, Any]]:
        """Every SKU must resolve before anything is sent."""
        line_items = []
        for item in order.line_items:
            variant_id = variant_map.get(item.sku)
            if not variant_id:
                raise ShopifyServiceError(f"Variant not found for SKU: {item.sku}")
            line_items.append({"variantId": variant_id, "quantity": item.quantity})
        return line_items

    def build_draft_order_input(
        self,
        order: OrderInput,
        line_items: List[Dict[str, Any]],
        batch_id: str,
        region: Optional[str] = None,
        collection_prep_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        note = f"WMS Seed Order - Batch: {batch_id}"
        tags = [SEED_TAG, format_batch_tag(batch_id)]
        custom_attributes = [{"key": "seed_batch_id", "value": batch_id}]
        if collection_prep_name:
            note += f" - Collection Prep: {collection_prep_name}"
            tags.append(format_collection_prep_tag(collection_prep_name))
            custom_attributes.append({"key": "collection_prep_name", "value": collection_prep_name})

        draft_input: Dict[str, Any] = {
            "email": order.customer.email,
            "note": note,
            "tags": tags,
            "customAttributes": custom_attributes,
            "lineItems": line_items,
        }

        customer = order.customer
        if customer.has_full_address:
            first_name, _, last_name = customer.name.strip().partition(" ")
            draft_input["shippingAddress"] = {
                "firstName": first_name,
                "lastName": last_name,
                "address1": customer.address,
                "city": customer.city,
                "province": customer.province,
                "zip": customer.postal_code,
                "countryCode": "US" if region == "US" else "CA",
            }
        return draft_input


# ==================== Live ====================


def _user_errors(payload: Optional[Dict[str, Any]]) -> List[UserError]:
    return [UserError.from_payload(e) for e in (payload or {}).get("userErrors") or []]


def _raise_for_user_errors(prefix: str, payload: Optional[Dict[str, Any]]) -> None:
    errors = _user_errors(payload)
    if errors:
        raise ShopifyServiceError(
            f"{prefix}: {', '.join(e.message for e in errors)}",
            user_errors=errors,
        )


def _require_id(node: Any, context: str) -> str:
    """The node's id, or ShopifyServiceError when the payload lacks one."""
    node_id = node.get("id") if isinstance(node, dict) else None
    if not node_id:
        raise ShopifyServiceError(
            f"{context} returned malformed data",
            details={"node": node},
        )
    return node_id


def _line_items_from_edges(connection: Optional[Dict[str, Any]]) -> Tuple[LineItemRecord, ...]:
    line_items = []
    for edge in (connection or {}).get("edges") or []:
        node = (edge or {}).get("node")
        line_items.append(LineItemRecord(
            line_item_id=_require_id(node, "Line item query"),
            sku=node.get("sku") or "",
            quantity=int(node.get("quantity") or 0),
        ))
    return tuple(line_items)


class ShopifyGateway(ShopifyGatewayBase):
    """
    Shopify Admin GraphQL client.

    Every failure (transport, HTTP status, GraphQL errors, userErrors, missing
    payload) surfaces as ShopifyServiceError.
    """

    def __init__(
        self,
        credentials: ShopifyCredentials,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.credentials = credentials
        self.timeout = timeout
        self._http_client = http_client

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"Content-Type": "application/json"},
            )
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def _execute(
        self,
        query: str,
        variables: Dict[str, Any],
        error_prefix: str,
    ) -> Tuple[Dict[str, Any], Optional[GraphQLCost]]:
        """POST one GraphQL document. Returns (data, cost)."""
        client = await self._get_http_client()
        headers = {"X-Shopify-Access-Token": self.credentials.access_token}

        try:
            response = await client.post(
                self.credentials.graphql_url,
                headers=headers,
                json={"query": query, "variables": variables},
            )
        except httpx.RequestError as e:
            logger.error(f"Shopify request failed: {e}")
            raise ShopifyServiceError(f"{error_prefix}: Network error: {e}", code="NETWORK_ERROR")

        logger.debug(f"Shopify GraphQL POST -> {response.status_code}")

        if response.status_code >= 400:
            logger.error(f"Shopify API error: {response.status_code} - {response.text[:500]}")
            raise ShopifyServiceError(
                f"{error_prefix}: HTTP {response.status_code}",
                details={"status": response.status_code, "body": response.text[:500]},
            )

        try:
            body = response.json()
        except ValueError:
            raise ShopifyServiceError(
                f"{error_prefix}: invalid JSON response",
                details={"body": response.text[:500]},
            )
        if not isinstance(body, dict):
            raise ShopifyServiceError(
                f"{error_prefix}: malformed response body",
                details={"body": response.text[:500]},
            )

        cost = GraphQLCost.from_extensions(body.get("extensions"))

        errors = body.get("errors")
        if errors:
            messages = [e.get("message", str(e)) if isinstance(e, dict) else str(e) for e in errors]
            raise ShopifyServiceError(
                f"{error_prefix}: {', '.join(messages)}",
                details={"errors": errors},
            )

        data = body.get("data") or {}
        if not isinstance(data, dict):
            raise ShopifyServiceError(
                f"{error_prefix}: malformed response data",
                details={"data": data},
            )
        return data, cost

    async def find_variant_ids_by_skus(self, skus: List[str]) -> VariantMap:
        if not skus:
            return VariantMap()

        requested = set(skus)
        search = " OR ".join(f"sku:{sku}" for sku in skus)
        data, cost = await self._execute(
            FIND_VARIANTS_QUERY,
            {"query": search},
            "Failed to find variants by SKUs",
        )

        variants: Dict[str, str] = {}
        for product_edge in (data.get("products") or {}).get("edges") or []:
            variant_edges = (((product_edge or {}).get("node") or {}).get("variants") or {}).get("edges") or []
            for variant_edge in variant_edges:
                node = (variant_edge or {}).get("node") or {}
                sku = node.get("sku")
                if sku and sku in requested:
                    variants[sku] = _require_id(node, "Variant lookup")

        logger.info(f"Resolved {len(variants)}/{len(requested)} SKUs to variants")
        return VariantMap(variants, graphql_cost=cost)

    async def create_draft_order(
        self,
        order: OrderInput,
        batch_id: str,
        region: Optional[str] = None,
        collection_prep_name: Optional[str] = None,
        variant_map: Optional[Mapping[str, str]] = None,
    ) -> DraftOrderResult:
        resolved = await self._variant_map_for(order, variant_map)
        line_items = self._resolve_line_items(order, resolved)
        draft_input = self.build_draft_order_input(
            order, line_items, batch_id, region, collection_prep_name
        )

        data, cost = await self._execute(
            DRAFT_ORDER_CREATE_MUTATION,
            {"input": draft_input},
            "Failed to create draft order",
        )
        payload = data.get("draftOrderCreate")
        _raise_for_user_errors("Failed to create draft order", payload)

        draft_order = (payload or {}).get("draftOrder")
        if not draft_order:
            raise ShopifyServiceError("Draft order creation returned no data")

        draft_order_id = _require_id(draft_order, "Draft order creation")
        logger.info(f"Created draft order {draft_order_id} for {order.customer.email}")
        return DraftOrderResult(draft_order_id=draft_order_id, graphql_cost=cost)

    async def complete_draft_order(self, draft_order_id: str) -> CompletedOrder:
        data, cost = await self._execute(
            DRAFT_ORDER_COMPLETE_MUTATION,
            {"id": draft_order_id, "paymentPending": False},
            "Failed to complete draft order",
        )
        payload = data.get("draftOrderComplete")
        _raise_for_user_errors("Failed to complete draft order", payload)

        order = ((payload or {}).get("draftOrder") or {}).get("order")
        if not order:
            raise ShopifyServiceError("Draft order completion returned no order data")

        order_id = _require_id(order, "Draft order completion")
        line_items = _line_items_from_edges(order.get("lineItems"))
        return CompletedOrder(
            order_id=order_id,
            order_number=order.get("name") or "",
            line_items=line_items or None,
            graphql_cost=cost,
        )

    async def fulfill_order(self, order_id: str) -> FulfillmentResult:
        data, query_cost = await self._execute(
            ORDER_FOR_FULFILLMENT_QUERY,
            {"id": order_id},
            "Failed to fulfill order",
        )
        order = data.get("order")
        if not order:
            raise ShopifyServiceError(f"Order {order_id} not found")

        existing = order.get("fulfillments") or []
        if existing:
            fulfillment = existing[0]
            fulfillment_id = _require_id(fulfillment, "Fulfillment lookup")
            logger.info(f"Order {order_id} already fulfilled ({fulfillment_id})")
            return FulfillmentResult(
                fulfillment_id=fulfillment_id,
                status=fulfillment.get("status") or DEFAULT_FULFILLMENT_STATUS,
                created=False,
                api_call_count=1,
                graphql_cost=query_cost,
            )

        line_items = []
        for edge in (order.get("lineItems") or {}).get("edges") or []:
            node = (edge or {}).get("node") or {}
            remaining = int(node.get("fulfillableQuantity") or 0)
            if remaining > 0:
                line_items.append({"id": _require_id(node, "Fulfillment lookup"), "quantity": remaining})

        if not line_items:
            raise ShopifyServiceError(f"No fulfillable line items for order {order_id}")

        data, cost = await self._execute(
            FULFILLMENT_CREATE_MUTATION,
            {"fulfillment": {"orderId": order_id, "lineItems": line_items, "notifyCustomer": False}},
            "Failed to fulfill order",
        )
        payload = data.get("fulfillmentCreate")
        _raise_for_user_errors("Failed to fulfill order", payload)

        fulfillment = (payload or {}).get("fulfillment")
        if not fulfillment:
            raise ShopifyServiceError("Fulfillment creation returned no data")

        return FulfillmentResult(
            fulfillment_id=_require_id(fulfillment, "Fulfillment creation"),
            status=fulfillment.get("status") or DEFAULT_FULFILLMENT_STATUS,
            created=True,
            api_call_count=2,
            graphql_cost=cost or query_cost,
        )

    async def query_orders_by_tag(self, tag: str) -> OrderQueryPage:
        data, cost = await self._execute(
            ORDERS_BY_TAG_QUERY,
            {"query": f"tag:{tag}"},
            "Failed to query orders by tag",
        )
        orders = []
        for edge in (data.get("orders") or {}).get("edges") or []:
            node = (edge or {}).get("node") or {}
            orders.append(OrderQueryResult(
                order_id=_require_id(node, "Order tag query"),
                order_number=node.get("name") or "",
                line_items=_line_items_from_edges(node.get("lineItems")),
            ))
        return OrderQueryPage(orders, graphql_cost=cost)


# ==================== Simulated ====================


def _dry_run_gid(resource: str) -> str:
    return f"gid://shopify/{resource}/{SYNTHETIC_MARKER}{uuid.uuid4().hex}"


class SimulatedShopifyGateway(ShopifyGatewayBase):
    """
    Dry-run gateway. Same shapes as the live gateway, no network.

    Nothing it creates is queryable afterwards: query_orders_by_tag always
    returns an empty page. Only the most recent max_recorded_calls calls are
    kept in calls.
    """

    def __init__(self, max_recorded_calls: int = DEFAULT_MAX_RECORDED_CALLS):
        self.calls: Deque[Tuple[str, Dict[str, Any]]] = deque(maxlen=max_recorded_calls)

    def _record(self, operation: str, **params: Any) -> None:
        self.calls.append((operation, params))

    def calls_to(self, operation: str) -> List[Dict[str, Any]]:
        return [params for name, params in self.calls if name == operation]

    async def find_variant_ids_by_skus(self, skus: List[str]) -> VariantMap:
        self._record("find_variant_ids_by_skus", skus=list(skus))
        variants = {sku: _dry_run_gid("ProductVariant") for sku in dict.fromkeys(skus)}
        logger.info(f"DRY RUN: Would look up {len(variants)} SKUs")
        return VariantMap(variants)

    async def create_draft_order(
        self,
        order: OrderInput,
        batch_id: str,
        region: Optional[str] = None,
        collection_prep_name: Optional[str] = None,
        variant_map: Optional[Mapping[str, str]] = None,
    ) -> DraftOrderResult:
        resolved = await self._variant_map_for(order, variant_map)
        line_items = self._resolve_line_items(order, resolved)
        draft_input = self.build_draft_order_input(
            order, line_items, batch_id, region, collection_prep_name
        )
        self._record("create_draft_order", input=draft_input)

        draft_order_id = _dry_run_gid("DraftOrder")
        logger.info(
            f"DRY RUN: Would create draft order {draft_order_id} for {order.customer.email} "
            f"with tags {draft_input['tags']}"
        )
        return DraftOrderResult(draft_order_id=draft_order_id)

    async def complete_draft_order(self, draft_order_id: str) -> CompletedOrder:
        self._record("complete_draft_order", draft_order_id=draft_order_id)
        order = CompletedOrder(
            order_id=_dry_run_gid("Order"),
            order_number=f"#D{random.randint(10000, 99999)}",
        )
        logger.info(f"DRY RUN: Would complete draft order {draft_order_id} as {order.order_number}")
        return order

    async def fulfill_order(self, order_id: str) -> FulfillmentResult:
        self._record("fulfill_order", order_id=order_id)
        logger.info(f"DRY RUN: Would fulfill order {order_id}")
        return FulfillmentResult(
            fulfillment_id=_dry_run_gid("Fulfillment"),
            status=DEFAULT_FULFILLMENT_STATUS,
        )

    async def query_orders_by_tag(self, tag: str) -> OrderQueryPage:
        self._record("query_orders_by_tag", tag=tag)
        return OrderQueryPage()


def create_shopify_gateway(
    settings: Settings,
    region: Optional[str] = None,
    dry_run: bool = False,
) -> ShopifyGatewayBase:
    """Choose the gateway implementation once, at startup."""
    if dry_run:
        return SimulatedShopifyGateway()
    return ShopifyGateway(
        settings.shopify_credentials(region),
        timeout=settings.SHOPIFY_TIMEOUT_SECONDS,
    )
