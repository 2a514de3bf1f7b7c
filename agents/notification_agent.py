"""Email notifications for the shop owner and the warehouse."""

from __future__ import annotations

import logging
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from typing import Any, Awaitable, Callable, Mapping, Optional

from agents.interfaces import BaseNotificationAgent
from config.config import Settings, settings as default_settings
from schemas.shipping import Quote
from utils.async_smtp import send_email
from utils.errors import ShippingRateEscalation

EmailTransport = Callable[[EmailMessage], Awaitable[None]]


def extract_number_from_gid(gid: str) -> str:
    """Return the trailing numeric part of ``gid://shopify/Order/123``."""

    return str(gid).rstrip("/").rsplit("/", 1)[-1]


class NotificationAgent(BaseNotificationAgent):
    """Compose and deliver workflow emails.

    Parameters
    ----------
    settings:
        Settings instance; defaults to the module singleton.
    transport:
        Optional coroutine delivering an :class:`EmailMessage`. Defaults to
        SMTP delivery using ``settings.smtp``.
    logger:
        Optional logger instance. Defaults to a class level logger.

    Messages are only delivered when ``SEND_LIVE_EMAILS`` is enabled; otherwise
    they are written to the debug log.
    """

    def __init__(
        self,
        *,
        settings: Optional[Settings] = None,
        transport: Optional[EmailTransport] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.settings = settings or default_settings
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self._transport = transport or self._smtp_transport

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def notify_escalation(self, escalation: ShippingRateEscalation) -> None:
        context = escalation.shipment_context
        order_name = context.get("order_name", "unknown")
        recipient = (
            self.settings.shop_owner_email
            if self.settings.is_production
            else self.settings.test_to_email
        )
        message = self._build_message(
            recipient,
            f"Order {order_name} - No suitable shipping rate found",
            self.escalation_body(escalation),
        )
        delivered = await self._deliver(message, "no suitable rate email")
        if delivered:
            self.logger.warning(
                "No suitable shipping rate found for order %s, notified shop owner",
                order_name,
            )

    async def send_fulfillment_notice(
        self,
        order_name: str,
        label_url: str,
        quote: Quote,
    ) -> None:
        recipient = (
            self.settings.fulfillments_to_email
            if self.settings.is_production
            else self.settings.test_to_email
        )
        body = (
            f"Shipping label link: {label_url}\n\n"
            "Shipping details:\n"
            f"- Carrier: {quote.carrier}\n"
            f"- Service: {quote.service}\n"
            f"- Cost: ${quote.rate}\n"
            f"- Delivery days: {quote.delivery_days}\n"
        )
        message = self._build_message(recipient, f"Fulfillment order {order_name}", body)
        if await self._deliver(message, "fulfillment notification"):
            self.logger.info("Sent fulfillment notification for order %s", order_name)

    def escalation_body(self, escalation: ShippingRateEscalation) -> str:
        context: Mapping[str, Any] = escalation.shipment_context
        if escalation.last_quotes:
            rejected = "\n".join(quote.describe() for quote in escalation.last_quotes)
        else:
            rejected = "No rates available"

        lines = [
            f"Order: {context.get('order_name', 'unknown')}",
            "Available rates that were rejected:",
            rejected,
            "",
        ]
        order_id = context.get("order_id")
        if order_id:
            admin_url = (
                f"{self.settings.shopify_admin_base_url.rstrip('/')}"
                f"/orders/{extract_number_from_gid(order_id)}"
            )
            lines.extend([f"View order in Shopify Admin: {admin_url}", ""])
        error = escalation.triggering_error or escalation
        lines.append(f"Error: {error}")
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _build_message(self, recipient: Optional[str], subject: str, body: str) -> EmailMessage:
        sender = str(self.settings.fulfillments_from_email)
        msg = EmailMessage()
        msg["From"] = sender
        if recipient:
            msg["To"] = str(recipient)
        msg["Subject"] = subject
        msg["Date"] = formatdate(localtime=True)
        msg["Message-ID"] = make_msgid(domain=sender.split("@")[-1])
        msg.set_content(body)
        return msg

    async def _deliver(self, message: EmailMessage, description: str) -> bool:
        if not message.get("To"):
            self.logger.warning("No recipient configured for %s", description)
            return False
        if not self.settings.send_live_emails:
            self.logger.debug(
                "Would have sent %s to %s:\n%s",
                description,
                message["To"],
                message.get_content(),
            )
            return False
        await self._transport(message)
        return True

    async def _smtp_transport(self, message: EmailMessage) -> None:
        smtp = self.settings.smtp
        await send_email(
            host=smtp.host,
            port=smtp.port,
            username=smtp.username,
            password=smtp.password,
            use_tls=smtp.ssl,
            message=message,
        )
