"""
Performance Metrics

Timing, API call and GraphQL cost telemetry for seeding batches.

Provides:
- GraphQLCost parsing from Shopify response extensions (absence tolerated)
- Per-operation and per-order metrics
- BatchMetricsRecorder that accumulates during the loop and freezes once
"""
import logging
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List, Tuple

from order_seeder.core.utils import monotonic_ms

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ThrottleStatus:
    maximum_available: float
    currently_available: float
    restore_rate: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "maximumAvailable": self.maximum_available,
            "currentlyAvailable": self.currently_available,
            "restoreRate": self.restore_rate,
        }


@dataclass(frozen=True)
class GraphQLCost:
    """Query cost reported under extensions.cost."""
    requested_query_cost: float
    actual_query_cost: float
    throttle_status: Optional[ThrottleStatus] = None

    @classmethod
    def from_extensions(cls, extensions: Optional[Dict[str, Any]]) -> Optional["GraphQLCost"]:
        """Parse the cost block; returns None when the response carried none."""
        cost = (extensions or {}).get("cost")
        if not isinstance(cost, dict):
            return None

        throttle = cost.get("throttleStatus")
        throttle_status = None
        if isinstance(throttle, dict):
            throttle_status = ThrottleStatus(
                maximum_available=float(throttle.get("maximumAvailable", 0)),
                currently_available=float(throttle.get("currentlyAvailable", 0)),
                restore_rate=float(throttle.get("restoreRate", 0)),
            )

        return cls(
            requested_query_cost=float(cost.get("requestedQueryCost", 0)),
            actual_query_cost=float(cost.get("actualQueryCost") or 0),
            throttle_status=throttle_status,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "requestedQueryCost": self.requested_query_cost,
            "actualQueryCost": self.actual_query_cost,
            "throttleStatus": self.throttle_status.to_dict() if self.throttle_status else None,
        }


@dataclass
class OperationMetrics:
    operation: str
    duration_ms: float = 0.0
    api_call_count: int = 0
    graphql_cost: Optional[GraphQLCost] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "durationMs": round(self.duration_ms, 2),
            "apiCallCount": self.api_call_count,
            "graphQLCost": self.graphql_cost.to_dict() if self.graphql_cost else None,
        }


class OperationTimer:
    """
    Time one awaited step.

    Usage:
        with OperationTimer("draftOrderCreate") as op:
            draft = await gateway.create_draft_order(...)
            op.record(api_calls=1, cost=draft.graphql_cost)
        metrics = op.metrics
    """

    def __init__(self, operation: str):
        self.metrics = OperationMetrics(operation=operation)
        self._started = 0.0

    def record(self, api_calls: int = 1, cost: Optional[GraphQLCost] = None) -> None:
        self.metrics.api_call_count += api_calls
        if cost is not None:
            self.metrics.graphql_cost = cost

    def __enter__(self) -> "OperationTimer":
        self._started = monotonic_ms()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.metrics.duration_ms = monotonic_ms() - self._started
        return False


@dataclass
class OrderMetrics:
    order_index: int
    customer_email: str
    draft_order_create: OperationMetrics
    draft_order_complete: OperationMetrics
    order_query: OperationMetrics
    total_duration_ms: float = 0.0

    @property
    def operations(self) -> List[OperationMetrics]:
        return [self.draft_order_create, self.draft_order_complete, self.order_query]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "orderIndex": self.order_index,
            "customerEmail": self.customer_email,
            "draftOrderCreate": self.draft_order_create.to_dict(),
            "draftOrderComplete": self.draft_order_complete.to_dict(),
            "orderQuery": self.order_query.to_dict(),
            "totalDurationMs": round(self.total_duration_ms, 2),
        }


@dataclass(frozen=True)
class BatchPerformanceMetrics:
    """Finalized batch telemetry. Built once by BatchMetricsRecorder.finalize()."""
    batch_id: str
    total_orders: int
    total_duration_ms: float
    total_api_calls: int
    total_requested_cost: float
    total_actual_cost: float
    average_order_duration_ms: float
    variant_lookup: Optional[OperationMetrics]
    order_metrics: Tuple[OrderMetrics, ...]
    minimum_available: float
    maximum_available: float
    final_available: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batchId": self.batch_id,
            "totalOrders": self.total_orders,
            "totalDurationMs": round(self.total_duration_ms, 2),
            "totalApiCalls": self.total_api_calls,
            "totalGraphQLCost": {
                "requested": self.total_requested_cost,
                "actual": self.total_actual_cost,
            },
            "averageOrderDurationMs": round(self.average_order_duration_ms, 2),
            "variantLookup": self.variant_lookup.to_dict() if self.variant_lookup else None,
            "orderMetrics": [m.to_dict() for m in self.order_metrics],
            "throttleStatus": {
                "minimumAvailable": self.minimum_available,
                "maximumAvailable": self.maximum_available,
                "finalAvailable": self.final_available,
            },
        }


@dataclass
class BatchMetricsRecorder:
    """
    Accumulates operation metrics while a batch runs.

    The batch-wide variant lookup is recorded as its own operation, measured
    directly rather than apportioned across orders.
    """
    batch_id: str
    variant_lookup: Optional[OperationMetrics] = None
    order_metrics: List[OrderMetrics] = field(default_factory=list)
    _started_ms: float = field(default_factory=monotonic_ms)
    _finalized: Optional[BatchPerformanceMetrics] = None

    def record_variant_lookup(self, metrics: OperationMetrics) -> None:
        self.variant_lookup = metrics

    def record_order(self, metrics: OrderMetrics) -> None:
        if self._finalized is not None:
            raise RuntimeError("Batch metrics already finalized")
        self.order_metrics.append(metrics)

    def _all_operations(self) -> List[OperationMetrics]:
        ops: List[OperationMetrics] = []
        if self.variant_lookup is not None:
            ops.append(self.variant_lookup)
        for order in self.order_metrics:
            ops.extend(order.operations)
        return ops

    def finalize(self) -> BatchPerformanceMetrics:
        if self._finalized is not None:
            return self._finalized

        ops = self._all_operations()
        costs = [op.graphql_cost for op in ops if op.graphql_cost is not None]
        throttles = [c.throttle_status for c in costs if c.throttle_status is not None]

        total_orders = len(self.order_metrics)
        order_duration = sum(m.total_duration_ms for m in self.order_metrics)

        self._finalized = BatchPerformanceMetrics(
            batch_id=self.batch_id,
            total_orders=total_orders,
            total_duration_ms=monotonic_ms() - self._started_ms,
            total_api_calls=sum(op.api_call_count for op in ops),
            total_requested_cost=sum(c.requested_query_cost for c in costs),
            total_actual_cost=sum(c.actual_query_cost for c in costs),
            average_order_duration_ms=order_duration / total_orders if total_orders else 0.0,
            variant_lookup=self.variant_lookup,
            order_metrics=tuple(self.order_metrics),
            minimum_available=min((t.currently_available for t in throttles), default=0),
            maximum_available=max((t.maximum_available for t in throttles), default=0),
            final_available=throttles[-1].currently_available if throttles else 0,
        )
        return self._finalized


def log_batch_metrics(metrics: BatchPerformanceMetrics) -> None:
    logger.info(
        f"Batch {metrics.batch_id} performance: orders={metrics.total_orders} "
        f"duration_ms={metrics.total_duration_ms:.0f} api_calls={metrics.total_api_calls} "
        f"cost_requested={metrics.total_requested_cost:.0f} cost_actual={metrics.total_actual_cost:.0f} "
        f"avg_order_ms={metrics.average_order_duration_ms:.0f} "
        f"throttle(min={metrics.minimum_available:.0f}, max={metrics.maximum_available:.0f}, "
        f"final={metrics.final_available:.0f})"
    )
