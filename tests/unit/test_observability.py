"""Tracing and metrics emitted while processing paid orders."""

from __future__ import annotations

from typing import Dict

import pytest
from opentelemetry.sdk.metrics.export import InMemoryMetricReader
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

from agents.fulfillment_workflow import FulfillmentWorkflow
from agents.interfaces import BaseOrderAgent
from agents.rate_selection import RateRules
from agents.shipping_rate_agent import ShippingRateAgent
from config.config import Settings
from conftest import FakeQuotingAgent, RecordingNotifier, make_quote, no_sleep
from schemas.shipping import QuoteResponse
from utils import observability
from utils.errors import ErrorKind, ShippingRateEscalation
from utils.retry import RetryPolicy

ORDER_ID = "gid://shopify/Order/42"


class StaticOrderAgent(BaseOrderAgent):
    def __init__(self, order):
        self.order = order

    async def get_order(self, order_id):
        return self.order

    async def create_fulfillment(self, fulfillment):
        return {}


@pytest.fixture
def telemetry():
    metric_reader = InMemoryMetricReader()
    span_exporter = InMemorySpanExporter()
    observability.configure_observability(
        metric_reader=metric_reader,
        span_processor=SimpleSpanProcessor(span_exporter),
        force=True,
    )
    yield span_exporter, metric_reader
    observability.shutdown_observability()


def _find_metric(metrics_data, name: str):
    for resource_metrics in metrics_data.resource_metrics:
        for scope_metrics in resource_metrics.scope_metrics:
            for metric in scope_metrics.metrics:
                if metric.name == name:
                    return metric
    raise AssertionError(f"Metric {name} not found")


def _collect_sum_points(metric) -> Dict[frozenset, float]:
    points = {}
    for point in metric.data.data_points:
        points[frozenset(point.attributes.items())] = point.value
    return points


def _workflow(fulfillment_order, response):
    quoting = FakeQuotingAgent([response])
    notifier = RecordingNotifier()
    rate_agent = ShippingRateAgent(
        quoting,
        notifier=notifier,
        rules=RateRules(),
        policy=RetryPolicy(max_retries=0, retry_interval=0, jitter=0),
        retryable_kinds=(ErrorKind.NO_SUITABLE_RATES,),
        sleep=no_sleep,
    )
    order = {
        "id": ORDER_ID,
        "name": "#1001",
        "fulfillmentOrders": {"nodes": [fulfillment_order]},
    }
    return FulfillmentWorkflow(
        order_agent=StaticOrderAgent(order),
        quoting_agent=quoting,
        notifier=notifier,
        rate_agent=rate_agent,
        settings=Settings(environment="development"),
    )


@pytest.mark.asyncio
async def test_successful_order_is_traced(telemetry, fulfillment_order):
    span_exporter, metric_reader = telemetry
    response = QuoteResponse(
        quoting_id="shp_1", quotes=(make_quote("rate_ups", "UPS", "6.50", 1),), zone=3
    )

    await _workflow(fulfillment_order, response).process_order_paid(
        {"admin_graphql_api_id": ORDER_ID}
    )

    spans = span_exporter.get_finished_spans()
    root = next(span for span in spans if span.name == "shipping.order")
    assert root.attributes["shop.order_id"] == ORDER_ID
    assert root.attributes["shipping.order.status"] == "success"

    names = {span.name for span in spans}
    assert {
        "shipping.order_lookup",
        "shipping.fulfillment_order",
        "shipping.rate_search",
        "shipping.label_purchase",
    } <= names
    assert len({span.context.trace_id for span in spans}) == 1

    rate_span = next(span for span in spans if span.name == "shipping.rate_search")
    assert rate_span.attributes["shipping.carrier"] == "UPS"
    assert rate_span.attributes["shop.order_id"] == ORDER_ID

    metrics_data = metric_reader.get_metrics_data()
    orders = _collect_sum_points(_find_metric(metrics_data, "shipping_orders_total"))
    assert orders[frozenset({("status", "success")})] == 1
    fulfillments = _collect_sum_points(
        _find_metric(metrics_data, "shipping_fulfillment_orders_total")
    )
    assert fulfillments[frozenset({("status", "fulfilled")})] == 1


@pytest.mark.asyncio
async def test_escalation_is_recorded_on_spans_and_counters(telemetry, fulfillment_order):
    span_exporter, metric_reader = telemetry
    response = QuoteResponse(
        quoting_id="shp_1", quotes=(make_quote("rate_slow", "UPS", "3.00", 6),), zone=3
    )

    with pytest.raises(ShippingRateEscalation):
        await _workflow(fulfillment_order, response).process_order_paid(
            {"admin_graphql_api_id": ORDER_ID}
        )

    spans = span_exporter.get_finished_spans()
    root = next(span for span in spans if span.name == "shipping.order")
    assert root.status.status_code is StatusCode.ERROR
    assert root.attributes["shipping.order.status"] == "failure"
    assert any(event.name == "exception" for event in root.events)

    rate_span = next(span for span in spans if span.name == "shipping.rate_search")
    assert rate_span.status.status_code is StatusCode.ERROR
    assert "shipping.label_purchase" not in {span.name for span in spans}

    metrics_data = metric_reader.get_metrics_data()
    escalations = _collect_sum_points(
        _find_metric(metrics_data, "shipping_rate_escalations_total")
    )
    assert escalations[frozenset({("error.kind", "no_suitable_rates")})] == 1
    orders = _collect_sum_points(_find_metric(metrics_data, "shipping_orders_total"))
    assert orders[frozenset({("status", "failure")})] == 1
    fulfillments = _collect_sum_points(
        _find_metric(metrics_data, "shipping_fulfillment_orders_total")
    )
    assert fulfillments[frozenset({("status", "failed")})] == 1


def test_order_run_sets_log_context(telemetry):
    assert observability.get_current_order_id() == "-"

    with observability.order_run(ORDER_ID):
        assert observability.get_current_order_id() == ORDER_ID

    assert observability.get_current_order_id() == "-"
