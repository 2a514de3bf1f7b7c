"""EasyPost client for rating shipments and purchasing labels."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from agents.interfaces import BaseQuotingAgent
from config.config import settings
from schemas.shipping import QuoteResponse, ShipmentSpec
from utils.async_http import AsyncHTTP
from utils.errors import ShippingServiceError

logger = logging.getLogger(__name__)


class EasyPostAgent(BaseQuotingAgent):
    """Thin async wrapper over the EasyPost shipments API.

    Creating a shipment is free and returns its rates; only :meth:`buy_shipment`
    spends money, so the rate search may create several shipments per order.
    """

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        http: Optional[AsyncHTTP] = None,
    ) -> None:
        key = api_key or settings.easypost_api_key
        if http is None and not key:
            raise ValueError("EasyPost API key missing (set EASYPOST_API_KEY)")
        self._http = http or AsyncHTTP(
            base_url=base_url or settings.easypost_api_base_url,
            auth=(key, ""),
            headers={"Content-Type": "application/json"},
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def create_shipment_quote(self, spec: ShipmentSpec) -> QuoteResponse:
        payload = await self._post("/shipments", spec.to_easypost(), action="create shipment")
        return QuoteResponse.from_easypost(payload)

    async def buy_shipment(self, quoting_id: str, quote_id: str) -> Dict[str, Any]:
        return await self._post(
            f"/shipments/{quoting_id}/buy",
            {"rate": {"id": quote_id}},
            action="buy shipment",
        )

    async def _post(self, path: str, body: Dict[str, Any], *, action: str) -> Dict[str, Any]:
        try:
            response = await self._http.post(path, json=body)
        except httpx.HTTPError as exc:
            raise ShippingServiceError(f"EasyPost {action} failed: {exc}") from exc

        if response.status_code >= 400:
            raise ShippingServiceError(
                f"EasyPost {action} failed with HTTP {response.status_code}: {response.text}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise ShippingServiceError(
                f"EasyPost {action} returned invalid JSON",
                status_code=response.status_code,
            ) from exc
