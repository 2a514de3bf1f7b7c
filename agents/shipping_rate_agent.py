"""Obtain an acceptable shipping rate by re-quoting until the rules are met.

The quoting API returns a different rate set from call to call, and waiting a
while between calls tends to surface better options. This agent therefore
re-creates the quote on every attempt, runs :func:`select_rate` over the fresh
quotes and escalates to a human once the retry budget is spent.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Optional, Tuple

from agents.interfaces import BaseNotificationAgent, BaseQuotingAgent
from agents.rate_selection import RateRules, select_rate
from config.config import settings
from schemas.shipping import Quote, QuoteResponse, ShipmentSpec
from utils.errors import (
    ErrorKind,
    NoQuotesReturned,
    NoSuitableRates,
    ShippingRateEscalation,
)
from utils.observability import record_escalation
from utils.retry import RetryPolicy, SleepFunc, retry_async

logger = logging.getLogger(__name__)


class ShippingRateAgent:
    """Compose the quoting collaborator, the rate rules and the retry engine."""

    def __init__(
        self,
        quoting_agent: BaseQuotingAgent,
        *,
        notifier: Optional[BaseNotificationAgent] = None,
        rules: Optional[RateRules] = None,
        policy: Optional[RetryPolicy] = None,
        retryable_kinds: Optional[Iterable[ErrorKind]] = None,
        sleep: Optional[SleepFunc] = None,
    ) -> None:
        self._quoting = quoting_agent
        self._notifier = notifier
        self._rules = rules or settings.rate_rules()
        self._policy = policy or settings.rate_retry_policy()
        self._retryable_kinds = tuple(
            retryable_kinds
            if retryable_kinds is not None
            else settings.rate_retryable_kinds()
        )
        self._sleep = sleep

    async def obtain_shipping_rate(
        self,
        spec: ShipmentSpec,
        policy: Optional[RetryPolicy] = None,
        *,
        context: Optional[Mapping[str, Any]] = None,
    ) -> Tuple[Quote, QuoteResponse]:
        """Return the chosen quote and the quoting response it came from.

        Raises :class:`ShippingRateEscalation` when every attempt ended in
        :class:`NoSuitableRates`; any other failure propagates unchanged.
        """

        async def _quote_and_select() -> Tuple[Quote, QuoteResponse]:
            response = await self._quoting.create_shipment_quote(spec)
            logger.info(
                "Created shipment %s, received %s rates",
                response.quoting_id,
                len(response.quotes or ()),
            )
            if response.quotes is None:
                raise NoQuotesReturned(
                    f"Shipment {response.quoting_id} returned no rates", response=response
                )
            try:
                quote_id = select_rate(response.quotes, response.zone, self._rules)
            except NoSuitableRates as exc:
                exc.response = response
                raise
            return response.find(quote_id), response

        try:
            return await retry_async(
                _quote_and_select,
                self._retryable_kinds,
                policy or self._policy,
                sleep=self._sleep,
            )
        except NoSuitableRates as exc:
            escalation = ShippingRateEscalation(
                f"No suitable shipping rate found: {exc}",
                shipment_context=context,
                last_quotes=exc.quotes,
                response=exc.response,
                triggering_error=exc,
            )
            record_escalation(exc.kind.value)
            await self._notify(escalation)
            raise escalation from exc

    async def _notify(self, escalation: ShippingRateEscalation) -> None:
        if self._notifier is None:
            logger.warning("No notifier configured; escalation not delivered")
            return
        try:
            await self._notifier.notify_escalation(escalation)
        except Exception:
            logger.exception("Failed to deliver shipping rate escalation")
