"""Utilities for masking personally identifiable information (PII) in debug logs."""

from __future__ import annotations

import re
from typing import Any, Iterable, Mapping, Sequence, Set

_REDACTED_EMAIL = "<redacted-email>"
_REDACTED_PHONE = "<redacted-phone>"
_REDACTED_GENERIC = "<redacted>"
_REDACTED_NAME = "<redacted-name>"
_REDACTED_ADDRESS = "<redacted-address>"

_EMAIL_PATTERN = re.compile(
    r"(?P<local>[A-Za-z0-9.!#$%&'*+/=?^_`{|}~-]+)@(?P<domain>[A-Za-z0-9-]+(?:\.[A-Za-z0-9-]+)+)"
)
_PHONE_PATTERN = re.compile(r"(?<!\w)(?:\+?\d[\d\s().-]{6,}\d)(?!\w)")

# Kept verbatim: order/fulfillment identifiers and coarse location used in logs.
_DEFAULT_WHITELIST: Set[str] = {
    "id",
    "name",
    "status",
    "city",
    "province",
    "state",
    "country",
    "countrycode",
    "carrier",
    "service",
    "rate",
    "tracking_code",
}

# Everything below these keys is personal data, except coarse location. Any
# other key ending in "address" (buyer_address, return_address, ...) counts too.
_CONTAINER_KEYS = {
    "destination",
    "customer",
    "buyer",
    "toaddress",
    "fromaddress",
    "buyeraddress",
    "returnaddress",
    "shippingaddress",
    "billingaddress",
}
_CONTAINER_SAFE_KEYS = {"city", "province", "state", "country", "countrycode"}

_CATEGORIES = (
    ("email", _REDACTED_EMAIL),
    ("phone", _REDACTED_PHONE),
    ("firstname", _REDACTED_NAME),
    ("lastname", _REDACTED_NAME),
    ("address", _REDACTED_ADDRESS),
    ("street", _REDACTED_ADDRESS),
    ("zip", _REDACTED_ADDRESS),
)


def _normalise(value: Any) -> str:
    return str(value).strip().lower().replace("_", "")


def _is_container(key: str) -> bool:
    return key in _CONTAINER_KEYS or key.endswith("address")


def _categorise(key: str) -> str | None:
    for token, marker in _CATEGORIES:
        if token in key:
            return marker
    return None


def _mask_string(value: str) -> str:
    masked = _EMAIL_PATTERN.sub(_REDACTED_EMAIL, value)
    return _PHONE_PATTERN.sub(_REDACTED_PHONE, masked)


def mask_pii(payload: Any, *, whitelist: Iterable[str] | None = None) -> Any:
    """Return ``payload`` with personally identifiable information redacted."""

    whitelist_set = {_normalise(item) for item in (whitelist or _DEFAULT_WHITELIST)}

    def _mask(value: Any, key: str | None, in_container: bool) -> Any:
        if isinstance(value, Mapping):
            result = {}
            for sub_key, sub_value in value.items():
                sub_norm = _normalise(sub_key)
                result[sub_key] = _mask(
                    sub_value, sub_norm, in_container or _is_container(sub_norm)
                )
            return result

        if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
            return [_mask(item, key, in_container) for item in value]

        if value is None or isinstance(value, bool):
            return value

        marker = _categorise(key) if key and key not in whitelist_set else None
        if marker:
            return marker
        if in_container and key not in _CONTAINER_SAFE_KEYS:
            return _REDACTED_GENERIC
        if isinstance(value, str) and key not in whitelist_set:
            return _mask_string(value)
        return value

    return _mask(payload, None, False)


__all__ = ["mask_pii"]
