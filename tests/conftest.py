"""Test configuration helpers and shared fixtures."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ.setdefault("SETTINGS_SKIP_DOTENV", "1")

from agents.interfaces import BaseNotificationAgent, BaseQuotingAgent  # noqa: E402
from schemas.shipping import Quote, QuoteResponse, ShipmentSpec  # noqa: E402


def make_quote(
    quote_id: str,
    carrier: str,
    rate: str,
    delivery_days: Optional[int],
    service: str = "Priority",
) -> Quote:
    return Quote(
        id=quote_id,
        carrier=carrier,
        service=service,
        rate=rate,
        delivery_days=delivery_days,
    )


class FakeQuotingAgent(BaseQuotingAgent):
    """Replays scripted quoting responses (or raises scripted errors) in order."""

    def __init__(self, script: Sequence[Union[QuoteResponse, Exception]]) -> None:
        self._script = list(script)
        self.quote_calls: List[ShipmentSpec] = []
        self.buy_calls: List[tuple] = []

    async def create_shipment_quote(self, spec: ShipmentSpec) -> QuoteResponse:
        self.quote_calls.append(spec)
        index = min(len(self.quote_calls), len(self._script)) - 1
        item = self._script[index]
        if isinstance(item, Exception):
            raise item
        return item

    async def buy_shipment(self, quoting_id: str, quote_id: str) -> Dict[str, Any]:
        self.buy_calls.append((quoting_id, quote_id))
        return {
            "id": quoting_id,
            "tracker": {"tracking_code": f"TRACK-{quote_id}"},
            "postage_label": {"label_url": f"https://labels.example.com/{quote_id}.pdf"},
        }


class RecordingNotifier(BaseNotificationAgent):
    def __init__(self) -> None:
        self.escalations: List[Any] = []
        self.notices: List[tuple] = []

    async def notify_escalation(self, escalation) -> None:
        self.escalations.append(escalation)

    async def send_fulfillment_notice(self, order_name, label_url, quote) -> None:
        self.notices.append((order_name, label_url, quote))


async def no_sleep(seconds: float) -> None:
    return None


@pytest.fixture
def shipment_spec() -> ShipmentSpec:
    return ShipmentSpec.model_validate(
        {
            "from_address": {"name": "Warehouse", "street1": "1 Dock St", "zip": "94107"},
            "to_address": {"name": "Jane Doe", "street1": "9 Elm St", "zip": "10001"},
            "parcel": {"weight": 24.0},
        }
    )


@pytest.fixture
def fulfillment_order() -> Dict[str, Any]:
    return {
        "id": "gid://shopify/FulfillmentOrder/11",
        "status": "OPEN",
        "supportedActions": [{"action": "CREATE_FULFILLMENT"}],
        "assignedLocation": {
            "address1": "1 Dock St",
            "address2": None,
            "city": "San Francisco",
            "province": "CA",
            "zip": "94107",
            "countryCode": "US",
            "phone": "415-555-0100",
        },
        "destination": {
            "firstName": "Jane",
            "lastName": "Doe",
            "address1": "9 Elm St",
            "address2": "Apt 2",
            "city": "New York",
            "province": "NY",
            "zip": "10001",
            "countryCode": "US",
            "phone": "212-555-0199",
            "email": "jane@example.com",
        },
        "lineItems": {
            "nodes": [
                {"weight": {"unit": "POUNDS", "value": 1.5}},
                {"weight": {"unit": "OUNCES", "value": 4}},
            ]
        },
    }
