"""Shopify webhook signature verification."""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
from typing import Any, Dict, Optional

HMAC_HEADER = "X-Shopify-Hmac-SHA256"


class WebhookSignatureError(ValueError):
    """The webhook body is not signed with the shared secret."""


def compute_webhook_hmac(body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def validate_webhook_hmac(hmac_header: Optional[str], body: bytes, secret: Optional[str]) -> bool:
    if not hmac_header or not secret:
        return False
    expected = compute_webhook_hmac(body, secret).encode("ascii")
    return hmac.compare_digest(expected, hmac_header.strip().encode("utf-8"))


def parse_webhook(
    body: bytes,
    *,
    hmac_header: Optional[str] = None,
    secret: Optional[str] = None,
    require_signature: bool = True,
) -> Dict[str, Any]:
    """Verify (when required) and decode a webhook body.

    The signature is checked against the raw bytes before JSON parsing.
    """

    if require_signature and not validate_webhook_hmac(hmac_header, body, secret):
        raise WebhookSignatureError("Shopify webhook HMAC validation failed")
    payload = json.loads(body.decode("utf-8"))
    if not isinstance(payload, dict):
        raise ValueError("Webhook body must be a JSON object")
    return payload
