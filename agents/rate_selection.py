"""Business rules that pick one shipping quote out of a quoting response."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from schemas.shipping import Quote
from utils.errors import NoSuitableRates

logger = logging.getLogger(__name__)

DEFAULT_MAX_DELIVERY_DAYS = 2
DEFAULT_RESERVED_CARRIER = "USPS"
DEFAULT_RESERVED_CARRIER_MAX_ZONE = 2


@dataclass(frozen=True)
class RateRules:
    """Policy parameters for :func:`select_rate`.

    Quotes slower than ``max_delivery_days`` are never chosen. The
    ``reserved_carrier`` (national postal service) is only allowed for zones up
    to ``reserved_carrier_max_zone``.
    """

    max_delivery_days: int = DEFAULT_MAX_DELIVERY_DAYS
    reserved_carrier: str = DEFAULT_RESERVED_CARRIER
    reserved_carrier_max_zone: int = DEFAULT_RESERVED_CARRIER_MAX_ZONE


def eligible_quotes(quotes: Sequence[Quote], rules: RateRules) -> List[Quote]:
    """Return quotes delivered fast enough, cheapest first (stable on ties)."""

    fast = [
        quote
        for quote in quotes
        if quote.delivery_days is not None and quote.delivery_days <= rules.max_delivery_days
    ]
    return sorted(fast, key=lambda quote: quote.amount)


def select_rate(
    quotes: Sequence[Quote],
    zone: Optional[int],
    rules: RateRules = RateRules(),
) -> str:
    """Return the id of the cheapest quote that satisfies *rules*.

    Raises :class:`NoSuitableRates` carrying the evaluated quotes when nothing
    qualifies. A missing zone is treated as a near zone (no carrier exclusion).
    """

    if len(quotes) == 0:
        raise NoSuitableRates("zero rates", quotes=quotes)

    candidates = eligible_quotes(quotes, rules)
    logger.debug("Rates for %s days or less: %s", rules.max_delivery_days, candidates)
    if not candidates:
        raise NoSuitableRates(
            f"no rates for {rules.max_delivery_days} days or less", quotes=quotes
        )

    if zone is not None and zone > rules.reserved_carrier_max_zone:
        candidates = [q for q in candidates if q.carrier != rules.reserved_carrier]
        logger.debug(
            "Zone %s excludes %s, remaining: %s", zone, rules.reserved_carrier, candidates
        )

    chosen = candidates[0].id if candidates else None
    if chosen is None:
        raise NoSuitableRates(f"chosen rate: {chosen} (zone {zone})", quotes=quotes)

    logger.debug("Chosen rate %s for zone %s", chosen, zone)
    return chosen


__all__ = [
    "DEFAULT_MAX_DELIVERY_DAYS",
    "DEFAULT_RESERVED_CARRIER",
    "DEFAULT_RESERVED_CARRIER_MAX_ZONE",
    "RateRules",
    "eligible_quotes",
    "select_rate",
]
