"""
Tests for the Shopify order seeding orchestrator.
"""
import logging

import pytest

from order_seeder.core.exceptions import (
    UNEXPECTED_ERROR_CODE,
    BatchSeedError,
    SeedValidationError,
    ShopifyServiceError,
    VariantResolutionError,
)
from order_seeder.schemas.seed import BatchSeedRequest
from order_seeder.services.seeding.shopify_orders import (
    ErrorPolicy,
    SeedShopifyOrdersOrchestrator,
)
from order_seeder.services.shopify_gateway import (
    SimulatedShopifyGateway,
    format_batch_tag,
    is_synthetic_id,
)


def _three_order_batch(batch_id):
    return {
        "batchId": batch_id,
        "orders": [
            {
                "customer": {"name": f"Customer {i}", "email": f"customer{i}@example.com"},
                "lineItems": [{"sku": "SKU-A", "quantity": 1}],
            }
            for i in range(1, 4)
        ],
    }


class TestHappyPath:

    @pytest.mark.asyncio
    async def test_one_entry_per_order(self, scripted_gateway, batch_request_data):
        orchestrator = SeedShopifyOrdersOrchestrator(scripted_gateway)

        result = await orchestrator.execute(batch_request_data)

        assert len(result.shopify_orders) == len(batch_request_data["orders"])
        assert result.failures == []
        assert all(e.fulfillment_status == "UNFULFILLED" for e in result.shopify_orders)

    @pytest.mark.asyncio
    async def test_variant_lookup_runs_once_for_union_of_skus(self, scripted_gateway, batch_request_data):
        orchestrator = SeedShopifyOrdersOrchestrator(scripted_gateway)

        await orchestrator.execute(batch_request_data)

        lookups = scripted_gateway.calls_to("find_variant_ids_by_skus")
        assert len(lookups) == 1
        assert sorted(lookups[0]["skus"]) == ["SKU-A", "SKU-B", "SKU-C"]

    @pytest.mark.asyncio
    async def test_shared_variant_map_passed_to_every_draft(self, scripted_gateway, batch_request_data):
        orchestrator = SeedShopifyOrdersOrchestrator(scripted_gateway)

        await orchestrator.execute(batch_request_data)

        drafts = scripted_gateway.calls_to("create_draft_order")
        assert len(drafts) == 2
        assert drafts[0]["variant_map"] is drafts[1]["variant_map"]

    @pytest.mark.asyncio
    async def test_orders_processed_sequentially(self, scripted_gateway, batch_request_data):
        orchestrator = SeedShopifyOrdersOrchestrator(scripted_gateway)

        await orchestrator.execute(batch_request_data)

        assert scripted_gateway.operation_names == [
            "find_variant_ids_by_skus",
            "create_draft_order",
            "complete_draft_order",
            "create_draft_order",
            "complete_draft_order",
        ]

    @pytest.mark.asyncio
    async def test_never_fulfills(self, scripted_gateway, batch_request_data):
        orchestrator = SeedShopifyOrdersOrchestrator(scripted_gateway)

        await orchestrator.execute(batch_request_data)

        assert scripted_gateway.calls_to("fulfill_order") == []

    @pytest.mark.asyncio
    async def test_accepts_validated_request(self, scripted_gateway, batch_request_data):
        request = BatchSeedRequest.model_validate(batch_request_data)
        orchestrator = SeedShopifyOrdersOrchestrator(scripted_gateway)

        result = await orchestrator.execute(request)

        assert result.batch_id == request.batch_id
        assert result.order_indexes == [0, 1]

    @pytest.mark.asyncio
    async def test_response_uses_camel_case(self, scripted_gateway, batch_request_data):
        orchestrator = SeedShopifyOrdersOrchestrator(scripted_gateway)

        result = await orchestrator.execute(batch_request_data)
        body = result.to_response().model_dump(by_alias=True)

        entry = body["shopifyOrders"][0]
        assert set(entry) == {"shopifyOrderId", "shopifyOrderNumber", "lineItems", "fulfillmentStatus"}
        assert entry["lineItems"][0]["lineItemId"].startswith("gid://shopify/LineItem/")


class TestReconciliation:

    @pytest.mark.asyncio
    async def test_completion_line_items_skip_tag_query(self, scripted_gateway, batch_request_data):
        orchestrator = SeedShopifyOrdersOrchestrator(scripted_gateway)

        result = await orchestrator.execute(batch_request_data)

        assert scripted_gateway.calls_to("query_orders_by_tag") == []
        for order_metrics in result.metrics.order_metrics:
            assert order_metrics.order_query.api_call_count == 0

    @pytest.mark.asyncio
    async def test_tag_query_uses_creation_tag(self, gateway_factory, batch_request_data, batch_id):
        gateway = gateway_factory(completion_line_items=False)
        orchestrator = SeedShopifyOrdersOrchestrator(gateway)

        result = await orchestrator.execute(batch_request_data)

        queries = gateway.calls_to("query_orders_by_tag")
        assert len(queries) == 2
        assert all(q["tag"] == format_batch_tag(batch_id) for q in queries)
        assert not any(is_synthetic_id(li.line_item_id) for e in result.shopify_orders for li in e.line_items)
        assert result.metrics.order_metrics[0].order_query.api_call_count == 1

    @pytest.mark.asyncio
    async def test_missing_order_synthesizes_line_items_with_warning(
        self, gateway_factory, batch_request_data, caplog
    ):
        gateway = gateway_factory(completion_line_items=False, queryable=False)
        orchestrator = SeedShopifyOrdersOrchestrator(gateway)

        with caplog.at_level(logging.WARNING):
            result = await orchestrator.execute(batch_request_data)

        first = result.shopify_orders[0]
        assert [li.sku for li in first.line_items] == ["SKU-A", "SKU-B"]
        assert [li.quantity for li in first.line_items] == [2, 1]
        assert all(is_synthetic_id(li.line_item_id) for li in first.line_items)
        assert "synthesizing line items" in caplog.text

    @pytest.mark.asyncio
    async def test_simulation_always_synthesizes(self, batch_request_data, caplog):
        gateway = SimulatedShopifyGateway()
        orchestrator = SeedShopifyOrdersOrchestrator(gateway)

        with caplog.at_level(logging.WARNING):
            result = await orchestrator.execute(batch_request_data)

        assert len(gateway.calls_to("query_orders_by_tag")) == 2
        for entry in result.shopify_orders:
            assert is_synthetic_id(entry.shopify_order_id)
            assert all(is_synthetic_id(li.line_item_id) for li in entry.line_items)
        assert "synthesizing line items" not in caplog.text


class TestFailurePolicies:

    @pytest.mark.asyncio
    async def test_fail_fast_stops_at_first_failure(self, gateway_factory, batch_id):
        gateway = gateway_factory(fail_create_for={"customer2@example.com"})
        orchestrator = SeedShopifyOrdersOrchestrator(gateway, ErrorPolicy.FAIL_FAST)

        with pytest.raises(ShopifyServiceError):
            await orchestrator.execute(_three_order_batch(batch_id))

        attempted = [c["email"] for c in gateway.calls_to("create_draft_order")]
        assert attempted == ["customer1@example.com", "customer2@example.com"]

    @pytest.mark.asyncio
    async def test_fail_fast_is_default(self, scripted_gateway):
        assert SeedShopifyOrdersOrchestrator(scripted_gateway).error_policy == ErrorPolicy.FAIL_FAST

    @pytest.mark.asyncio
    async def test_continue_records_failure_and_proceeds(self, gateway_factory, batch_id):
        gateway = gateway_factory(fail_create_for={"customer2@example.com"})
        orchestrator = SeedShopifyOrdersOrchestrator(gateway, ErrorPolicy.CONTINUE_ON_ERROR)

        result = await orchestrator.execute(_three_order_batch(batch_id))

        assert len(gateway.calls_to("create_draft_order")) == 3
        assert len(result.shopify_orders) == 2
        assert result.order_indexes == [0, 2]
        assert len(result.failures) == 1
        failure = result.failures[0]
        assert failure.order_index == 1
        assert failure.customer_email == "customer2@example.com"
        assert failure.error_code == "SHOPIFY_REQUEST_FAILED"

        body = result.to_response().model_dump(by_alias=True)
        assert body["failures"][0]["orderIndex"] == 1

    @pytest.mark.asyncio
    async def test_continue_records_unexpected_error(self, gateway_factory, batch_id):
        gateway = gateway_factory(crash_create_for={"customer2@example.com"})
        orchestrator = SeedShopifyOrdersOrchestrator(gateway, ErrorPolicy.CONTINUE_ON_ERROR)

        result = await orchestrator.execute(_three_order_batch(batch_id))

        assert result.order_indexes == [0, 2]
        (failure,) = result.failures
        assert failure.order_index == 1
        assert failure.error_code == UNEXPECTED_ERROR_CODE
        assert failure.error == "RuntimeError: connection reset mid-request"
        assert result.metrics.total_orders == 2

    @pytest.mark.asyncio
    async def test_fail_fast_reraises_unexpected_error(self, gateway_factory, batch_id):
        gateway = gateway_factory(crash_create_for={"customer2@example.com"})
        orchestrator = SeedShopifyOrdersOrchestrator(gateway, ErrorPolicy.FAIL_FAST)

        with pytest.raises(RuntimeError):
            await orchestrator.execute(_three_order_batch(batch_id))

        assert len(gateway.calls_to("create_draft_order")) == 2

    @pytest.mark.asyncio
    async def test_continue_raises_when_every_order_fails(self, gateway_factory, batch_id):
        gateway = gateway_factory(
            fail_create_for={f"customer{i}@example.com" for i in range(1, 4)}
        )
        orchestrator = SeedShopifyOrdersOrchestrator(gateway, ErrorPolicy.CONTINUE_ON_ERROR)

        with pytest.raises(BatchSeedError) as exc_info:
            await orchestrator.execute(_three_order_batch(batch_id))

        assert "All 3 orders failed" in exc_info.value.message
        assert len(exc_info.value.failures) == 3


class TestBatchRejection:

    @pytest.mark.asyncio
    async def test_missing_sku_fails_before_any_draft(self, gateway_factory, batch_request_data):
        gateway = gateway_factory(known_skus={"SKU-A", "SKU-B"})
        orchestrator = SeedShopifyOrdersOrchestrator(gateway)

        with pytest.raises(VariantResolutionError) as exc_info:
            await orchestrator.execute(batch_request_data)

        assert exc_info.value.missing_skus == ["SKU-C"]
        assert "SKU-C" in exc_info.value.message
        assert gateway.calls_to("create_draft_order") == []

    @pytest.mark.asyncio
    async def test_every_missing_sku_is_named(self, gateway_factory, batch_request_data):
        gateway = gateway_factory(known_skus=set())
        orchestrator = SeedShopifyOrdersOrchestrator(gateway)

        with pytest.raises(VariantResolutionError) as exc_info:
            await orchestrator.execute(batch_request_data)

        assert exc_info.value.missing_skus == ["SKU-A", "SKU-B", "SKU-C"]

    @pytest.mark.asyncio
    async def test_empty_orders_rejected_without_calls(self, scripted_gateway, batch_id):
        orchestrator = SeedShopifyOrdersOrchestrator(scripted_gateway)

        with pytest.raises(SeedValidationError):
            await orchestrator.execute({"batchId": batch_id, "orders": []})

        assert scripted_gateway.calls == []

    @pytest.mark.asyncio
    async def test_unvalidated_empty_request_rejected_without_calls(self, scripted_gateway, batch_id):
        request = BatchSeedRequest.model_construct(batch_id=batch_id, orders=[])
        orchestrator = SeedShopifyOrdersOrchestrator(scripted_gateway)

        with pytest.raises(SeedValidationError, match="at least one order"):
            await orchestrator.execute(request)

        assert scripted_gateway.calls == []

    @pytest.mark.asyncio
    async def test_invalid_quantity_rejected_without_calls(self, scripted_gateway, batch_request_data):
        batch_request_data["orders"][0]["lineItems"][0]["quantity"] = 0
        orchestrator = SeedShopifyOrdersOrchestrator(scripted_gateway)

        with pytest.raises(SeedValidationError):
            await orchestrator.execute(batch_request_data)

        assert scripted_gateway.calls == []


class TestMetrics:

    @pytest.mark.asyncio
    async def test_batch_aggregates(self, scripted_gateway, batch_request_data):
        orchestrator = SeedShopifyOrdersOrchestrator(scripted_gateway)

        result = await orchestrator.execute(batch_request_data)
        metrics = result.metrics

        assert metrics.total_orders == 2
        # one lookup + create and complete for each order
        assert metrics.total_api_calls == 5
        assert metrics.total_requested_cost == 50
        assert metrics.total_actual_cost == 40
        assert metrics.minimum_available == 970
        assert metrics.maximum_available == 1000
        assert metrics.final_available == 970
        assert metrics.variant_lookup.operation == "variantLookup"
        assert metrics.variant_lookup.api_call_count == 1

    @pytest.mark.asyncio
    async def test_progress_callback(self, gateway_factory, batch_id):
        gateway = gateway_factory(fail_create_for={"customer2@example.com"})
        progress = []
        orchestrator = SeedShopifyOrdersOrchestrator(
            gateway,
            ErrorPolicy.CONTINUE_ON_ERROR,
            on_order_progress=lambda *args: progress.append(args),
        )

        await orchestrator.execute(_three_order_batch(batch_id))

        assert progress == [
            (1, 3, "customer1@example.com", True),
            (2, 3, "customer2@example.com", False),
            (3, 3, "customer3@example.com", True),
        ]
