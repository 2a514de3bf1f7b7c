"""Tests for :class:`agents.shipping_rate_agent.ShippingRateAgent`."""

from __future__ import annotations

import logging

import pytest

from agents.rate_selection import RateRules
from agents.shipping_rate_agent import ShippingRateAgent
from conftest import FakeQuotingAgent, RecordingNotifier, make_quote, no_sleep
from schemas.shipping import QuoteResponse
from utils.errors import (
    ErrorKind,
    NoQuotesReturned,
    NoSuitableRates,
    ShippingRateEscalation,
    ShippingServiceError,
)
from utils.retry import RetryPolicy

pytestmark = pytest.mark.asyncio

POLICY = RetryPolicy(max_retries=2, retry_interval=0, backoff=False, jitter=0)


def response(quoting_id, quotes, zone=1):
    return QuoteResponse(quoting_id=quoting_id, quotes=quotes, zone=zone)


def build_agent(script, notifier=None, retryable_kinds=(ErrorKind.NO_SUITABLE_RATES,)):
    quoting = FakeQuotingAgent(script)
    agent = ShippingRateAgent(
        quoting,
        notifier=notifier,
        rules=RateRules(),
        policy=POLICY,
        retryable_kinds=retryable_kinds,
        sleep=no_sleep,
    )
    return agent, quoting


async def test_returns_quote_from_first_acceptable_response(shipment_spec):
    good = response("shp_1", (make_quote("rate_ups", "UPS", "7.00", 1),))
    agent, quoting = build_agent([good])

    quote, raw = await agent.obtain_shipping_rate(shipment_spec)

    assert quote.id == "rate_ups"
    assert raw is good
    assert quoting.quote_calls == [shipment_spec]


async def test_requotes_until_rules_are_met(shipment_spec):
    slow = response("shp_1", (make_quote("rate_slow", "UPS", "3.00", 5),))
    postal_far = response("shp_2", (make_quote("rate_usps", "USPS", "1.00", 1),), zone=5)
    good = response(
        "shp_3",
        (
            make_quote("rate_usps", "USPS", "1.00", 1),
            make_quote("rate_fedex", "FedEx", "6.00", 2),
        ),
        zone=5,
    )
    agent, quoting = build_agent([slow, postal_far, good])

    quote, raw = await agent.obtain_shipping_rate(shipment_spec)

    assert len(quoting.quote_calls) == 3
    assert raw.quoting_id == "shp_3"
    assert quote.id == "rate_fedex"
    assert quote in raw.quotes


async def test_exhaustion_escalates_with_last_quotes(shipment_spec):
    first = response("shp_1", (make_quote("rate_a", "UPS", "3.00", 4),))
    last = response(
        "shp_last",
        (make_quote("rate_b", "FedEx", "9.00", 3), make_quote("rate_c", "UPS", "8.00", 6)),
    )
    notifier = RecordingNotifier()
    agent, quoting = build_agent([first, last], notifier=notifier)
    context = {"order_name": "#1001", "order_id": "gid://shopify/Order/42"}

    with pytest.raises(ShippingRateEscalation) as excinfo:
        await agent.obtain_shipping_rate(shipment_spec, context=context)

    escalation = excinfo.value
    assert len(quoting.quote_calls) == POLICY.max_retries + 1
    assert [q.id for q in escalation.last_quotes] == ["rate_b", "rate_c"]
    assert escalation.response is last
    assert isinstance(escalation.triggering_error, NoSuitableRates)
    assert escalation.__cause__ is escalation.triggering_error
    assert escalation.shipment_context == context
    assert escalation.kind is ErrorKind.SHIPPING_RATE_ESCALATION
    assert notifier.escalations == [escalation]


async def test_missing_rate_list_is_not_retried(shipment_spec):
    notifier = RecordingNotifier()
    agent, quoting = build_agent([response("shp_1", None)], notifier=notifier)

    with pytest.raises(NoQuotesReturned):
        await agent.obtain_shipping_rate(shipment_spec)

    assert len(quoting.quote_calls) == 1
    assert notifier.escalations == []


async def test_missing_rate_list_can_be_made_retryable(shipment_spec):
    good = response("shp_2", (make_quote("rate_ups", "UPS", "7.00", 1),))
    agent, quoting = build_agent(
        [response("shp_1", None), good],
        retryable_kinds=(ErrorKind.NO_SUITABLE_RATES, ErrorKind.NO_QUOTES_RETURNED),
    )

    quote, _ = await agent.obtain_shipping_rate(shipment_spec)

    assert quote.id == "rate_ups"
    assert len(quoting.quote_calls) == 2


async def test_empty_rate_list_counts_as_no_suitable_rates(shipment_spec):
    notifier = RecordingNotifier()
    agent, _ = build_agent([response("shp_1", ())], notifier=notifier)

    with pytest.raises(ShippingRateEscalation, match="zero rates"):
        await agent.obtain_shipping_rate(shipment_spec)

    assert notifier.escalations[0].last_quotes == ()


async def test_service_errors_propagate_immediately(shipment_spec):
    notifier = RecordingNotifier()
    agent, quoting = build_agent(
        [ShippingServiceError("HTTP 500", status_code=500)], notifier=notifier
    )

    with pytest.raises(ShippingServiceError):
        await agent.obtain_shipping_rate(shipment_spec)

    assert len(quoting.quote_calls) == 1
    assert notifier.escalations == []


async def test_notifier_failure_does_not_mask_escalation(shipment_spec, caplog):
    class BrokenNotifier(RecordingNotifier):
        async def notify_escalation(self, escalation) -> None:
            raise RuntimeError("smtp down")

    slow = response("shp_1", (make_quote("rate_slow", "UPS", "3.00", 5),))
    agent, _ = build_agent([slow], notifier=BrokenNotifier())
    caplog.set_level(logging.ERROR)

    with pytest.raises(ShippingRateEscalation):
        await agent.obtain_shipping_rate(shipment_spec)

    assert "Failed to deliver shipping rate escalation" in caplog.text


async def test_escalates_without_notifier(shipment_spec, caplog):
    slow = response("shp_1", (make_quote("rate_slow", "UPS", "3.00", 5),))
    agent, _ = build_agent([slow])
    caplog.set_level(logging.WARNING)

    with pytest.raises(ShippingRateEscalation):
        await agent.obtain_shipping_rate(shipment_spec)

    assert "No notifier configured" in caplog.text


async def test_per_call_policy_overrides_default(shipment_spec):
    slow = response("shp_1", (make_quote("rate_slow", "UPS", "3.00", 5),))
    agent, quoting = build_agent([slow])

    with pytest.raises(ShippingRateEscalation):
        await agent.obtain_shipping_rate(
            shipment_spec, RetryPolicy(max_retries=0, retry_interval=0, jitter=0)
        )

    assert len(quoting.quote_calls) == 1
