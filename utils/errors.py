"""Tagged error taxonomy shared by the retry engine and the shipping agents.

Every error raised by this codebase carries an :class:`ErrorKind` tag. The
retry engine matches on these tags instead of on exception classes, so a
retryable set can be configured from plain strings.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Optional, Tuple

if TYPE_CHECKING:  # pragma: no cover
    from schemas.shipping import Quote, QuoteResponse


class ErrorKind(str, Enum):
    """Kinds of failure the automation distinguishes."""

    INVALID_CONFIG = "invalid_config"
    OPERATION_TIMED_OUT = "operation_timed_out"
    NO_QUOTES_RETURNED = "no_quotes_returned"
    NO_SUITABLE_RATES = "no_suitable_rates"
    SHIPPING_RATE_ESCALATION = "shipping_rate_escalation"
    SHIPPING_SERVICE = "shipping_service"
    SHOP_API = "shop_api"
    INVALID_ORDER = "invalid_order"


class AutomationError(Exception):
    """Base class for all tagged errors."""

    kind: ErrorKind


class InvalidConfig(AutomationError, ValueError):
    """Malformed retry policy or retry engine arguments."""

    kind = ErrorKind.INVALID_CONFIG


class OperationTimedOut(AutomationError, TimeoutError):
    """A single attempt exceeded its per-attempt timeout."""

    kind = ErrorKind.OPERATION_TIMED_OUT


class NoQuotesReturned(AutomationError):
    """The quoting call succeeded but carried no quote list."""

    kind = ErrorKind.NO_QUOTES_RETURNED

    def __init__(self, message: str, *, response: Optional["QuoteResponse"] = None) -> None:
        super().__init__(message)
        self.response = response


class NoSuitableRates(AutomationError):
    """Quotes existed but none passed the eligibility and carrier rules.

    ``response`` is filled in by the caller that performed the quoting call so
    the last observed quotes survive the retry loop.
    """

    kind = ErrorKind.NO_SUITABLE_RATES

    def __init__(
        self,
        message: str,
        *,
        quotes: Iterable["Quote"] = (),
        response: Optional["QuoteResponse"] = None,
    ) -> None:
        super().__init__(message)
        self.quotes: Tuple["Quote", ...] = tuple(quotes)
        self.response = response


class ShippingRateEscalation(AutomationError):
    """No quote satisfied the rules within the retry budget."""

    kind = ErrorKind.SHIPPING_RATE_ESCALATION

    def __init__(
        self,
        message: str,
        *,
        shipment_context: Optional[Mapping[str, Any]] = None,
        last_quotes: Iterable["Quote"] = (),
        response: Optional["QuoteResponse"] = None,
        triggering_error: Optional[NoSuitableRates] = None,
    ) -> None:
        super().__init__(message)
        self.shipment_context = dict(shipment_context or {})
        self.last_quotes: Tuple["Quote", ...] = tuple(last_quotes)
        self.response = response
        self.triggering_error = triggering_error


class ShippingServiceError(AutomationError):
    """The shipping API failed at transport or HTTP level."""

    kind = ErrorKind.SHIPPING_SERVICE

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ShopApiError(AutomationError):
    """The shop GraphQL API failed or returned errors."""

    kind = ErrorKind.SHOP_API

    def __init__(self, message: str, *, errors: Optional[Any] = None) -> None:
        super().__init__(message)
        self.errors = errors


class InvalidOrderError(AutomationError):
    """Order data cannot be turned into a shipment."""

    kind = ErrorKind.INVALID_ORDER


def error_kind(exc: BaseException) -> Optional[ErrorKind]:
    """Return the tag of *exc*, or ``None`` for untagged exceptions."""

    if isinstance(exc, AutomationError):
        return exc.kind
    return None


def parse_error_kinds(raw: Optional[str]) -> Tuple[ErrorKind, ...]:
    """Parse a comma separated list of kind values (``"no_suitable_rates,..."``)."""

    if raw is None:
        return ()
    kinds = []
    for token in str(raw).split(","):
        token = token.strip().lower()
        if not token:
            continue
        try:
            kinds.append(ErrorKind(token))
        except ValueError as exc:
            raise InvalidConfig(f"Unknown error kind: {token}") from exc
    return tuple(kinds)


__all__ = [
    "AutomationError",
    "ErrorKind",
    "InvalidConfig",
    "InvalidOrderError",
    "NoQuotesReturned",
    "NoSuitableRates",
    "OperationTimedOut",
    "ShippingRateEscalation",
    "ShippingServiceError",
    "ShopApiError",
    "error_kind",
    "parse_error_kinds",
]
