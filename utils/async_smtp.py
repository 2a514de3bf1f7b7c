"""Shared asynchronous SMTP helpers."""

from __future__ import annotations

from email.message import EmailMessage

import aiosmtplib
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from .retry import DEFAULT_MAX_ATTEMPTS, INITIAL_BACKOFF_SECONDS, MAX_BACKOFF_SECONDS

DEFAULT_SMTP_PORT = 465
DEFAULT_TIMEOUT = 20.0


@retry(
    reraise=True,
    stop=stop_after_attempt(DEFAULT_MAX_ATTEMPTS),
    wait=wait_random_exponential(
        multiplier=INITIAL_BACKOFF_SECONDS, max=MAX_BACKOFF_SECONDS
    ),
    retry=retry_if_exception_type((aiosmtplib.errors.SMTPException, TimeoutError)),
)
async def send_email(
    *,
    host: str,
    username: str,
    password: str,
    message: EmailMessage,
    port: int = DEFAULT_SMTP_PORT,
    use_tls: bool = True,
    timeout: float = DEFAULT_TIMEOUT,
) -> None:
    """Deliver *message* (implicit TLS when ``use_tls``, STARTTLS otherwise)."""

    if not message.get("To"):
        raise ValueError("message must include at least one recipient")

    client = aiosmtplib.SMTP(
        hostname=host,
        port=port,
        use_tls=use_tls,
        start_tls=not use_tls,
        timeout=timeout,
    )
    await client.connect()
    try:
        if username:
            await client.login(username, password)
        await client.send_message(message)
    finally:
        try:
            await client.quit()
        except aiosmtplib.errors.SMTPException:
            client.close()
