"""Abstract base classes for the external collaborators of the workflow."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Mapping

from schemas.shipping import Quote, QuoteResponse, ShipmentSpec

if TYPE_CHECKING:  # pragma: no cover
    from utils.errors import ShippingRateEscalation


class BaseQuotingAgent(ABC):
    """Contract for agents that rate and buy shipments with a shipping API."""

    @abstractmethod
    async def create_shipment_quote(self, spec: ShipmentSpec) -> QuoteResponse:
        """Create a shipment and return the quotes offered for it.

        Each call may return a different quote set for the same spec.
        """

    @abstractmethod
    async def buy_shipment(self, quoting_id: str, quote_id: str) -> Dict[str, Any]:
        """Purchase the label for *quote_id* and return the raw purchase payload."""


class BaseNotificationAgent(ABC):
    """Contract for agents that tell humans what happened."""

    @abstractmethod
    async def notify_escalation(self, escalation: "ShippingRateEscalation") -> None:
        """Report that no quote satisfied the rules within the retry budget."""

    @abstractmethod
    async def send_fulfillment_notice(
        self,
        order_name: str,
        label_url: str,
        quote: Quote,
    ) -> None:
        """Send the warehouse the label link and shipping details."""


class BaseOrderAgent(ABC):
    """Contract for agents that read orders from and write fulfillments to the shop."""

    @abstractmethod
    async def get_order(self, order_id: str) -> Dict[str, Any]:
        """Return the order with its fulfillment orders."""

    @abstractmethod
    async def create_fulfillment(self, fulfillment: Mapping[str, Any]) -> Dict[str, Any]:
        """Create a fulfillment, closing the referenced fulfillment order."""
