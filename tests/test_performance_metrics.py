"""
Tests for GraphQL cost parsing and batch metric aggregation.
"""
import pytest

from order_seeder.services.performance_metrics import (
    BatchMetricsRecorder,
    GraphQLCost,
    OperationMetrics,
    OperationTimer,
    OrderMetrics,
)


def _op(name, calls=1, requested=0, actual=0, available=None):
    cost = None
    if available is not None:
        cost = GraphQLCost.from_extensions({"cost": {
            "requestedQueryCost": requested,
            "actualQueryCost": actual,
            "throttleStatus": {"maximumAvailable": 1000, "currentlyAvailable": available, "restoreRate": 50},
        }})
    return OperationMetrics(operation=name, duration_ms=5, api_call_count=calls, graphql_cost=cost)


def _order(index, total_ms, **ops):
    return OrderMetrics(
        order_index=index,
        customer_email=f"c{index}@example.com",
        draft_order_create=ops.get("create", _op("draftOrderCreate")),
        draft_order_complete=ops.get("complete", _op("draftOrderComplete")),
        order_query=ops.get("query", _op("orderQuery", calls=0)),
        total_duration_ms=total_ms,
    )


class TestGraphQLCost:

    def test_missing_block(self):
        assert GraphQLCost.from_extensions(None) is None
        assert GraphQLCost.from_extensions({"other": 1}) is None

    def test_without_throttle(self):
        cost = GraphQLCost.from_extensions({"cost": {"requestedQueryCost": 4, "actualQueryCost": None}})

        assert cost.requested_query_cost == 4
        assert cost.actual_query_cost == 0
        assert cost.throttle_status is None


class TestOperationTimer:

    def test_records_calls_and_duration(self):
        with OperationTimer("variantLookup") as op:
            op.record(api_calls=1)

        assert op.metrics.api_call_count == 1
        assert op.metrics.duration_ms >= 0

    def test_duration_recorded_on_error(self):
        op = OperationTimer("draftOrderCreate")
        with pytest.raises(ValueError):
            with op:
                raise ValueError("boom")

        assert op.metrics.api_call_count == 0


class TestBatchMetricsRecorder:

    def test_aggregates(self):
        recorder = BatchMetricsRecorder(batch_id="b1")
        recorder.record_variant_lookup(_op("variantLookup", requested=10, actual=9, available=990))
        recorder.record_order(_order(
            0, 100,
            create=_op("draftOrderCreate", requested=10, actual=10, available=950),
            complete=_op("draftOrderComplete", requested=10, actual=8, available=940),
        ))
        recorder.record_order(_order(
            1, 300,
            query=_op("orderQuery", calls=1, requested=5, actual=2, available=960),
        ))

        metrics = recorder.finalize()

        assert metrics.total_orders == 2
        assert metrics.total_api_calls == 1 + 2 + 3
        assert metrics.total_requested_cost == 35
        assert metrics.total_actual_cost == 29
        assert metrics.average_order_duration_ms == 200
        assert metrics.minimum_available == 940
        assert metrics.maximum_available == 1000
        assert metrics.final_available == 960
        assert metrics.to_dict()["variantLookup"]["apiCallCount"] == 1

    def test_no_telemetry(self):
        metrics = BatchMetricsRecorder(batch_id="b1").finalize()

        assert metrics.total_orders == 0
        assert metrics.average_order_duration_ms == 0
        assert metrics.minimum_available == 0
        assert metrics.final_available == 0
        assert metrics.variant_lookup is None

    def test_finalize_once(self):
        recorder = BatchMetricsRecorder(batch_id="b1")
        first = recorder.finalize()

        assert recorder.finalize() is first
        with pytest.raises(RuntimeError):
            recorder.record_order(_order(0, 1))
