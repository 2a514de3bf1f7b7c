"""Pydantic models for shipping quotes and shipment requests."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Quote(BaseModel):
    """A carrier's priced, timed offer to ship a parcel."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    carrier: str
    service: str
    rate: str
    delivery_days: Optional[int] = None
    currency: str = "USD"

    @field_validator("rate", mode="before")
    @classmethod
    def _rate_is_decimal(cls, value: Any) -> str:
        text = str(value).strip()
        try:
            amount = Decimal(text)
        except InvalidOperation as exc:
            raise ValueError(f"rate must be a decimal string, got {value!r}") from exc
        if not amount.is_finite():
            raise ValueError(f"rate must be finite, got {value!r}")
        return text

    @property
    def amount(self) -> Decimal:
        return Decimal(self.rate)

    def describe(self) -> str:
        """Return the one-line summary used in notification emails."""

        return f"{self.carrier} {self.service}: ${self.rate} ({self.delivery_days} days)"


class QuoteResponse(BaseModel):
    """Result of one quoting call.

    ``quotes`` is ``None`` when the API answered without a rate list at all,
    which is distinct from an empty list.
    """

    model_config = ConfigDict(frozen=True)

    quoting_id: str
    quotes: Optional[Tuple[Quote, ...]] = None
    zone: Optional[int] = None
    raw: Dict[str, Any] = Field(default_factory=dict, repr=False)

    @classmethod
    def from_easypost(cls, payload: Mapping[str, Any]) -> "QuoteResponse":
        rates = payload.get("rates")
        zone = payload.get("usps_zone")
        return cls(
            quoting_id=str(payload.get("id") or ""),
            quotes=None if rates is None else tuple(Quote.model_validate(r) for r in rates),
            zone=None if zone in (None, "") else int(zone),
            raw=dict(payload),
        )

    def find(self, quote_id: str) -> Optional[Quote]:
        for quote in self.quotes or ():
            if quote.id == quote_id:
                return quote
        return None


class Address(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    street1: Optional[str] = None
    street2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


class Parcel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # Ounces; the shipping API requires this unit.
    weight: float


class ShipmentSpec(BaseModel):
    """Everything the quoting API needs to rate a shipment."""

    model_config = ConfigDict(extra="forbid")

    from_address: Address
    to_address: Address
    parcel: Parcel
    reference: Optional[str] = None

    def to_easypost(self) -> Dict[str, Any]:
        shipment = self.model_dump(exclude_none=True)
        return {"shipment": shipment}


__all__ = ["Address", "Parcel", "Quote", "QuoteResponse", "ShipmentSpec"]
