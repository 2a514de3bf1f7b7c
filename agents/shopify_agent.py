"""Shopify Admin GraphQL client for orders and fulfillments."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

import httpx

from agents.interfaces import BaseOrderAgent
from config.config import settings
from utils.async_http import AsyncHTTP
from utils.errors import ShopApiError

logger = logging.getLogger(__name__)

ORDER_BY_ID = """
query OrderById($id: ID!) {
  order(id: $id) {
    id
    name
    fulfillmentOrders(first: 20) {
      nodes {
        id
        status
        supportedActions { action }
        assignedLocation {
          address1 address2 city province zip countryCode phone
        }
        destination {
          firstName lastName address1 address2 city province zip countryCode phone email
        }
        lineItems(first: 100) {
          nodes { weight { unit value } }
        }
      }
    }
  }
}
"""

FULFILLMENT_CREATE = """
mutation FulfillmentCreate($fulfillment: FulfillmentInput!) {
  fulfillmentCreate(fulfillment: $fulfillment) {
    fulfillment { id status }
    userErrors { field message }
  }
}
"""

# EasyPost carrier name -> Shopify tracking company (case sensitive on Shopify).
CARRIER_TRACKING_COMPANIES: Dict[str, str] = {
    "USPS": "USPS",
    "UPS": "UPS",
    "UPSDAP": "UPS",
    "FedEx": "FedEx",
    "FedExDefault": "FedEx",
    "DHLExpress": "DHL Express",
    "OnTrac": "OnTrac",
    "CanadaPost": "Canada Post",
}


def tracking_company_for(carrier: str) -> Optional[str]:
    return CARRIER_TRACKING_COMPANIES.get(carrier)


class ShopifyAgent(BaseOrderAgent):
    """Run the handful of GraphQL documents the workflow needs."""

    def __init__(
        self,
        *,
        endpoint: Optional[str] = None,
        access_token: Optional[str] = None,
        http: Optional[AsyncHTTP] = None,
    ) -> None:
        self._endpoint = endpoint or settings.shopify_api_base_url_gql
        token = access_token or settings.shopify_access_token
        if http is None and not token:
            raise ValueError("Shopify access token missing (set SHOPIFY_ACCESS_TOKEN)")
        self._http = http or AsyncHTTP(
            headers={
                "Content-Type": "application/json",
                "X-Shopify-Access-Token": token or "",
            }
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def gql_query(
        self, query: str, variables: Optional[Mapping[str, Any]] = None
    ) -> Dict[str, Any]:
        """Execute *query* and return its ``data`` member."""

        try:
            response = await self._http.post(
                self._endpoint, json={"query": query, "variables": dict(variables or {})}
            )
        except httpx.HTTPError as exc:
            raise ShopApiError(f"Shopify request failed: {exc}") from exc

        if response.status_code >= 400:
            raise ShopApiError(
                f"Shopify request failed with HTTP {response.status_code}: {response.text}"
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise ShopApiError("Shopify returned invalid JSON") from exc
        if not isinstance(body, dict):
            raise ShopApiError("Shopify returned an unexpected response body")
        if body.get("errors"):
            raise ShopApiError("Shopify GraphQL returned errors", errors=body["errors"])
        return body.get("data") or {}

    async def get_order(self, order_id: str) -> Dict[str, Any]:
        data = await self.gql_query(ORDER_BY_ID, {"id": order_id})
        order = data.get("order")
        if not order:
            raise ShopApiError(f"Order {order_id} not found")
        return order

    async def create_fulfillment(self, fulfillment: Mapping[str, Any]) -> Dict[str, Any]:
        data = await self.gql_query(FULFILLMENT_CREATE, {"fulfillment": dict(fulfillment)})
        result = data.get("fulfillmentCreate") or {}
        user_errors = result.get("userErrors") or []
        if user_errors:
            raise ShopApiError("Shopify rejected the fulfillment", errors=user_errors)
        return result.get("fulfillment") or {}
