# Explanation:
# Run the order-paid handler once for a stored webhook body. Signature checks
# are enforced in production, mirroring what the webhook endpoint does.

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from agents.easypost_agent import EasyPostAgent
from agents.fulfillment_workflow import FulfillmentResult, FulfillmentWorkflow
from agents.notification_agent import NotificationAgent
from agents.shopify_agent import ShopifyAgent
from config.config import settings
from utils.errors import AutomationError
from utils.observability import (
    OrderIdFilter,
    configure_observability,
    shutdown_observability,
)
from utils.webhook_validation import WebhookSignatureError, parse_webhook

_LOG_FORMAT = "%(asctime)s %(levelname)s [order=%(order_id)s] %(name)s %(message)s"

_order_id_filter = OrderIdFilter()


def _init_logging(level: Optional[str] = None) -> None:
    """Configure structured logging once per process."""

    root_logger = logging.getLogger()
    if not root_logger.handlers:
        root_logger.addHandler(logging.StreamHandler())

    for handler in root_logger.handlers:
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        if _order_id_filter not in handler.filters:
            handler.addFilter(_order_id_filter)

    root_logger.setLevel((level or settings.log_level).upper())


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Purchase shipping labels for a paid order webhook"
    )
    parser.add_argument("payload", type=Path, help="Path to the raw webhook body (JSON)")
    parser.add_argument("--hmac", dest="hmac_header", help="X-Shopify-Hmac-SHA256 header value")
    parser.add_argument("--log-level", dest="log_level", help="Override LOG_LEVEL")
    return parser.parse_args(list(argv) if argv is not None else None)


async def _run_once(body: bytes, hmac_header: Optional[str]) -> List[FulfillmentResult]:
    payload = parse_webhook(
        body,
        hmac_header=hmac_header,
        secret=settings.shopify_webhook_secret,
        require_signature=settings.is_production,
    )

    shopify = ShopifyAgent()
    easypost = EasyPostAgent()
    try:
        workflow = FulfillmentWorkflow(
            order_agent=shopify,
            quoting_agent=easypost,
            notifier=NotificationAgent(),
        )
        return await workflow.process_order_paid(payload)
    finally:
        await shopify.aclose()
        await easypost.aclose()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    _init_logging(args.log_level)
    logger = logging.getLogger(__name__)
    logger.info("Environment: %s", settings.environment)
    logger.info("SEND_LIVE_EMAILS set to: %s", settings.send_live_emails)

    configure_observability()
    try:
        body = args.payload.read_bytes()
        results = asyncio.run(_run_once(body, args.hmac_header))
    except WebhookSignatureError as exc:
        logger.warning("%s", exc)
        return 2
    except AutomationError as exc:
        logger.error("Webhook processing failed (%s): %s", exc.kind.value, exc)
        return 1
    except Exception:
        logger.exception("Webhook processing failed")
        return 1
    finally:
        shutdown_observability()

    for result in results:
        logger.info(
            "Fulfillment order %s: %s", result.fulfillment_order_id, result.status
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())
