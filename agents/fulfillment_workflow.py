"""Order-paid handler: buy a shipping label for every open fulfillment order.

Shopify splits an order into fulfillment orders (items assigned to one
location). Each one becomes its own shipment: rate it, buy the label, close
the fulfillment order with tracking info and email the warehouse.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from agents.interfaces import BaseNotificationAgent, BaseOrderAgent, BaseQuotingAgent
from agents.shipping_rate_agent import ShippingRateAgent
from agents.shopify_agent import tracking_company_for
from config.config import Settings, settings as default_settings
from schemas.shipping import Quote
from utils.observability import observe_operation, order_run, record_fulfillment_outcome
from utils.pii import mask_pii
from utils.shipment_spec import build_shipment_spec

logger = logging.getLogger(__name__)

STATUS_FULFILLED = "fulfilled"
STATUS_SKIPPED = "skipped"
STATUS_FAILED = "failed"


@dataclass
class FulfillmentResult:
    fulfillment_order_id: str
    status: str
    quote: Optional[Quote] = None
    tracking_code: Optional[str] = None
    label_url: Optional[str] = None
    error: Optional[str] = None


class FulfillmentWorkflow:
    """Process ``orders/paid`` webhooks end to end."""

    def __init__(
        self,
        *,
        order_agent: BaseOrderAgent,
        quoting_agent: BaseQuotingAgent,
        notifier: BaseNotificationAgent,
        rate_agent: Optional[ShippingRateAgent] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.settings = settings or default_settings
        self._orders = order_agent
        self._quoting = quoting_agent
        self._notifier = notifier
        self._rates = rate_agent or ShippingRateAgent(
            quoting_agent,
            notifier=notifier,
            rules=self.settings.rate_rules(),
            policy=self.settings.rate_retry_policy(),
            retryable_kinds=self.settings.rate_retryable_kinds(),
        )

    async def process_order_paid(self, payload: Mapping[str, Any]) -> List[FulfillmentResult]:
        order_id = payload.get("admin_graphql_api_id")
        if not order_id:
            raise ValueError("Webhook payload is missing 'admin_graphql_api_id'")

        with order_run(order_id):
            logger.info("Processing shipping labels for order %s", order_id)
            with observe_operation("order_lookup"):
                order = await self._orders.get_order(order_id)
            fulfillment_orders = (order.get("fulfillmentOrders") or {}).get("nodes") or []
            logger.info(
                "Retrieved order %s with %s fulfillment orders",
                order.get("name"),
                len(fulfillment_orders),
            )
            logger.debug("Order: %s", mask_pii(order))

            results: List[FulfillmentResult] = []
            for fulfillment_order in fulfillment_orders:
                fo_id = str(fulfillment_order.get("id"))
                try:
                    with observe_operation(
                        "fulfillment_order", {"fulfillment_order.id": fo_id}
                    ) as span:
                        result = await self._process_fulfillment_order(order, fulfillment_order)
                        span.set_attribute("fulfillment_order.status", result.status)
                except Exception as exc:
                    record_fulfillment_outcome(STATUS_FAILED)
                    if not self.settings.skip_failed_fulfillment_orders:
                        raise
                    logger.exception(
                        "Fulfillment order %s failed, continuing with the next one", fo_id
                    )
                    results.append(
                        FulfillmentResult(
                            fulfillment_order_id=fo_id,
                            status=STATUS_FAILED,
                            error=str(exc),
                        )
                    )
                    continue
                record_fulfillment_outcome(result.status)
                results.append(result)
            return results

    async def _process_fulfillment_order(
        self, order: Mapping[str, Any], fulfillment_order: Mapping[str, Any]
    ) -> FulfillmentResult:
        fo_id = str(fulfillment_order.get("id"))
        if self.settings.is_production and fulfillment_order.get("status") == "CLOSED":
            # Duplicate webhook deliveries land here.
            logger.info("Fulfillment order %s already CLOSED, skipping", fo_id)
            return FulfillmentResult(fulfillment_order_id=fo_id, status=STATUS_SKIPPED)

        destination = fulfillment_order.get("destination") or {}
        logger.info(
            "Processing fulfillment order %s (%s, %s)",
            fo_id,
            destination.get("city"),
            destination.get("province"),
        )

        spec = build_shipment_spec(
            fulfillment_order,
            from_name=self.settings.fulfillment_center_name,
            reference=str(order.get("name") or ""),
        )
        with observe_operation("rate_search") as span:
            quote, response = await self._rates.obtain_shipping_rate(
                spec,
                context={
                    "order_id": order.get("id"),
                    "order_name": order.get("name"),
                    "fulfillment_order_id": fo_id,
                },
            )
            span.set_attribute("shipping.carrier", quote.carrier)
            span.set_attribute("shipping.rate", quote.rate)

        with observe_operation(
            "label_purchase", {"shipping.quoting_id": response.quoting_id}
        ):
            purchase = await self._quoting.buy_shipment(response.quoting_id, quote.id)
        tracking_code = (purchase.get("tracker") or {}).get("tracking_code") or purchase.get(
            "tracking_code"
        )
        label_url = (purchase.get("postage_label") or {}).get("label_url")
        logger.info("Purchased shipping label for order %s", order.get("name"))
        logger.debug("Buy response: %s", mask_pii(purchase))

        actions = [a.get("action") for a in fulfillment_order.get("supportedActions") or []]
        if "CREATE_FULFILLMENT" in actions:
            fulfillment = self._fulfillment_input(fulfillment_order, quote, tracking_code)
            if self.settings.is_production:
                await self._orders.create_fulfillment(fulfillment)
                logger.info(
                    "Created Shopify fulfillment for order %s, tracking: %s",
                    order.get("name"),
                    tracking_code,
                )
            else:
                logger.debug(
                    "Would have created fulfillment for %s: %s", fo_id, mask_pii(fulfillment)
                )

        await self._notifier.send_fulfillment_notice(
            str(order.get("name")), label_url or "", quote
        )
        return FulfillmentResult(
            fulfillment_order_id=fo_id,
            status=STATUS_FULFILLED,
            quote=quote,
            tracking_code=tracking_code,
            label_url=label_url,
        )

    @staticmethod
    def _fulfillment_input(
        fulfillment_order: Mapping[str, Any], quote: Quote, tracking_code: Optional[str]
    ) -> Dict[str, Any]:
        origin = fulfillment_order.get("assignedLocation") or {}
        # No fulfillmentOrderLineItems: the whole fulfillment order ships at once.
        return {
            "lineItemsByFulfillmentOrder": [
                {"fulfillmentOrderId": fulfillment_order.get("id")}
            ],
            "notifyCustomer": False,
            "originAddress": {
                "address1": origin.get("address1"),
                "address2": origin.get("address2"),
                "city": origin.get("city"),
                "countryCode": origin.get("countryCode"),
                "provinceCode": origin.get("province"),
                "zip": origin.get("zip"),
            },
            "trackingInfo": {
                "company": tracking_company_for(quote.carrier),
                "number": tracking_code,
            },
        }
