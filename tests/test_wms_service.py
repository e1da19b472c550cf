"""
Tests for the WMS mirror service.
"""
import logging
from types import SimpleNamespace

import pytest

from order_seeder.core.exceptions import WmsServiceError
from order_seeder.models.wms import Order, Prep, PrepPart, VariantOrder
from order_seeder.services.wms_repository import DryRunWmsRepository
from order_seeder.services.wms_service import PrepRef, VariantOrderRef, WmsLineItem, WmsService

LINE_ITEMS = [
    WmsLineItem(line_item_id="li-1", sku="SKU-A", quantity=2),
    WmsLineItem(line_item_id="li-2", sku="SKU-B", quantity=1),
]

ORDER_ARGS = dict(
    shopify_order_id="gid://shopify/Order/1",
    shopify_order_number="#1001",
    status="paid",
    region="CA",
    customer_name="Ada Lovelace",
    customer_email="ada@example.com",
)


class TestCreateOrderWithCustomer:

    @pytest.mark.asyncio
    async def test_existing_order_returned_without_writes(self, mock_repository):
        mock_repository.find_order_by_shopify_id.return_value = Order(
            id="order-1", shopify_order_id="gid://shopify/Order/1", customer_id="cust-1"
        )
        service = WmsService(mock_repository)

        result = await service.create_order_with_customer(**ORDER_ARGS)

        assert result.order_db_id == "order-1"
        assert result.created is False
        mock_repository.create_order.assert_not_called()
        mock_repository.create_order_with_customer_transaction.assert_not_called()

    @pytest.mark.asyncio
    async def test_second_call_is_idempotent(self, mock_repository):
        created = Order(id="order-1", shopify_order_id="gid://shopify/Order/1", customer_id="cust-1")
        mock_repository.create_order_with_customer_transaction.return_value = created
        service = WmsService(mock_repository)

        first = await service.create_order_with_customer(**ORDER_ARGS)
        mock_repository.find_order_by_shopify_id.return_value = created
        second = await service.create_order_with_customer(**ORDER_ARGS)

        assert first.order_db_id == second.order_db_id == "order-1"
        assert mock_repository.create_order_with_customer_transaction.await_count == 1

    @pytest.mark.asyncio
    async def test_new_customer_uses_transaction(self, mock_repository):
        mock_repository.create_order_with_customer_transaction.return_value = Order(
            id="order-1", shopify_order_id="gid://shopify/Order/1", customer_id="cust-new"
        )
        service = WmsService(mock_repository, source_name="qa_seed")

        result = await service.create_order_with_customer(location_id="LOC-1", **ORDER_ARGS)

        order_fields, customer_fields = mock_repository.create_order_with_customer_transaction.await_args.args
        assert order_fields["source_name"] == "qa_seed"
        assert order_fields["location_id"] == "LOC-1"
        assert customer_fields["email"] == "ada@example.com"
        assert customer_fields["region"] == "CA"
        assert result.customer_id == "cust-new"
        mock_repository.create_order.assert_not_called()

    @pytest.mark.asyncio
    async def test_existing_customer_links_order(self, mock_repository):
        mock_repository.find_customer_by_email.return_value = SimpleNamespace(id="cust-1")
        mock_repository.create_order.return_value = Order(
            id="order-2", shopify_order_id="gid://shopify/Order/1", customer_id="cust-1"
        )
        service = WmsService(mock_repository)

        result = await service.create_order_with_customer(**ORDER_ARGS)

        assert result.customer_id == "cust-1"
        assert mock_repository.create_order.await_args.kwargs["customer_id"] == "cust-1"
        mock_repository.create_order_with_customer_transaction.assert_not_called()


class TestVariantOrders:

    @pytest.mark.asyncio
    async def test_single_batched_lookup(self, mock_repository):
        mock_repository.find_variants_by_skus.return_value = {
            "SKU-A": SimpleNamespace(id="var-a"),
            "SKU-B": SimpleNamespace(id="var-b"),
        }
        service = WmsService(mock_repository)

        refs = await service.create_variant_orders_for_order("order-1", LINE_ITEMS, "CA")

        mock_repository.find_variants_by_skus.assert_awaited_once_with(["SKU-A", "SKU-B"], "CA")
        assert refs == [
            VariantOrderRef(variant_id="var-a", line_item_id="li-1"),
            VariantOrderRef(variant_id="var-b", line_item_id="li-2"),
        ]
        assert mock_repository.create_variant_order.await_count == 2

    @pytest.mark.asyncio
    async def test_missing_variant_writes_nothing(self, mock_repository):
        mock_repository.find_variants_by_skus.return_value = {"SKU-A": SimpleNamespace(id="var-a")}
        service = WmsService(mock_repository)

        with pytest.raises(WmsServiceError, match="Variant not found for SKU: SKU-B"):
            await service.create_variant_orders_for_order("order-1", LINE_ITEMS, "CA")

        mock_repository.create_variant_order.assert_not_called()

    @pytest.mark.asyncio
    async def test_existing_variant_order_reused(self, mock_repository):
        mock_repository.find_variants_by_skus.return_value = {
            "SKU-A": SimpleNamespace(id="var-a"),
            "SKU-B": SimpleNamespace(id="var-b"),
        }
        mock_repository.find_variant_order.return_value = VariantOrder(
            id="vo-1", variant_id="var-old", line_item_id="li-1"
        )
        service = WmsService(mock_repository)

        refs = await service.create_variant_orders_for_order("order-1", LINE_ITEMS, "CA")

        mock_repository.create_variant_order.assert_not_called()
        assert refs[0].variant_id == "var-old"


class TestPreps:

    @pytest.mark.asyncio
    async def test_preps_created_and_reused(self, mock_repository):
        existing = Prep(id="prep-1", variant_id="var-a", line_item_id="li-1")
        created = Prep(id="prep-2", variant_id="var-b", line_item_id="li-2")
        mock_repository.find_prep.side_effect = [existing, None]
        mock_repository.create_prep.return_value = created
        service = WmsService(mock_repository)

        refs = await service.create_preps_for_order(
            "order-1",
            [VariantOrderRef("var-a", "li-1"), VariantOrderRef("var-b", "li-2")],
            "cp-1",
            "CA",
        )

        assert [r.prep_id for r in refs] == ["prep-1", "prep-2"]
        assert mock_repository.create_prep.await_count == 1
        assert mock_repository.create_prep.await_args.kwargs["collection_prep_id"] == "cp-1"

    @pytest.mark.asyncio
    async def test_prep_parts_batched_part_lookup(self, mock_repository):
        mock_repository.find_parts_by_skus.return_value = {
            "SKU-A": SimpleNamespace(id="part-a"),
            "SKU-B": SimpleNamespace(id="part-b"),
        }
        mock_repository.create_prep_part.side_effect = [
            PrepPart(id="pp-1"), PrepPart(id="pp-2"),
        ]
        mock_repository.create_prep_part_item.side_effect = [
            SimpleNamespace(id="ppi-1"), SimpleNamespace(id="ppi-2"),
        ]
        service = WmsService(mock_repository)

        refs = await service.create_prep_parts_and_items(
            [PrepRef("prep-1", "var-a", "li-1"), PrepRef("prep-2", "var-b", "li-2")],
            LINE_ITEMS,
            "CA",
        )

        mock_repository.find_parts_by_skus.assert_awaited_once_with(["SKU-A", "SKU-B"], "CA")
        assert [(r.prep_part_id, r.prep_part_item_id, r.part_id) for r in refs] == [
            ("pp-1", "ppi-1", "part-a"),
            ("pp-2", "ppi-2", "part-b"),
        ]
        assert mock_repository.create_prep_part.await_args_list[0].kwargs["quantity"] == 2

    @pytest.mark.asyncio
    async def test_missing_part(self, mock_repository):
        mock_repository.find_parts_by_skus.return_value = {}
        service = WmsService(mock_repository)

        with pytest.raises(WmsServiceError, match="Part not found for SKU: SKU-A"):
            await service.create_prep_parts_and_items([PrepRef("prep-1", "var-a", "li-1")], LINE_ITEMS, "CA")

    @pytest.mark.asyncio
    async def test_unknown_line_item(self, mock_repository):
        service = WmsService(mock_repository)

        with pytest.raises(WmsServiceError, match="Line item not found: li-9"):
            await service.create_prep_parts_and_items([PrepRef("prep-9", "var-a", "li-9")], LINE_ITEMS, "CA")


class TestShipmentsAndPickAndPack:

    @pytest.mark.asyncio
    async def test_existing_shipment_reused(self, mock_repository):
        mock_repository.find_shipment.return_value = SimpleNamespace(id="ship-1")
        service = WmsService(mock_repository)

        shipment_id = await service.create_shipment_for_order("cp-1", "order-1", "CA")

        assert shipment_id == "ship-1"
        mock_repository.create_shipment.assert_not_called()

    @pytest.mark.asyncio
    async def test_pnp_entities(self, mock_repository):
        mock_repository.create_pnp_box.side_effect = [SimpleNamespace(id="box-1"), SimpleNamespace(id="box-2")]
        mock_repository.create_pnp_order_box.return_value = SimpleNamespace(id="ob-1", lpn="LPN1")
        service = WmsService(mock_repository)

        box_ids = await service.create_pnp_boxes([
            {"identifier": "S", "length": 1, "width": 1, "height": 1, "region": "CA"},
            {"identifier": "M", "length": 2, "width": 2, "height": 2, "region": "CA"},
        ])
        order_boxes = await service.create_pnp_order_boxes([{
            "collection_prep_id": "cp-1", "order_id": "order-1", "lpn": "LPN1",
            "pnp_box_id": "box-1", "region": "CA",
        }])

        assert box_ids == ["box-1", "box-2"]
        assert order_boxes[0].lpn == "LPN1"


class TestDryRun:

    @pytest.mark.asyncio
    async def test_full_pipeline_without_storage(self, caplog):
        repository = DryRunWmsRepository()
        service = WmsService(repository)

        with caplog.at_level(logging.INFO):
            order = await service.create_order_with_customer(**ORDER_ARGS)
            variant_orders = await service.create_variant_orders_for_order(order.order_db_id, LINE_ITEMS, "CA")
            preps = await service.create_preps_for_order(order.order_db_id, variant_orders, "cp-1", "CA")
            parts = await service.create_prep_parts_and_items(preps, LINE_ITEMS, "CA")
            shipment_id = await service.create_shipment_for_order("cp-1", order.order_db_id, "CA")

        assert order.created is True
        assert len(variant_orders) == len(preps) == len(parts) == 2
        assert all(v.variant_id.startswith("dry-run-") for v in variant_orders)
        assert shipment_id
        assert "DRY RUN: Would create Customer" in caplog.text
        assert "DRY RUN: Would create Shipment" in caplog.text
        types = [type(e).__name__ for e in repository.persisted]
        assert types.count("VariantOrder") == 2
        assert types.count("PrepPartItem") == 2
