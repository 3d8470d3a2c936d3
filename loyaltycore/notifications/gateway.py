"""Outbound email delivery.

Gateways report success as a boolean and never raise: a failed send is a
per-recipient outcome for the caller to record, not a batch failure.
"""

from __future__ import annotations

from typing import Protocol

import httpx
import structlog

from loyaltycore.exceptions import NotificationError
from loyaltycore.utils.retry import retry

logger = structlog.get_logger(__name__)


class NotificationGateway(Protocol):
    async def send(self, to: str, subject: str, html: str) -> bool: ...


class LoggingEmailGateway:
    """Development gateway: logs the email instead of delivering it."""

    def __init__(self) -> None:
        self.outbox: list[dict[str, str]] = []

    async def send(self, to: str, subject: str, html: str) -> bool:
        self.outbox.append({"to": to, "subject": subject, "html": html})
        logger.info("email_logged", to=to, subject=subject)
        return True


class ResendEmailGateway:
    """Delivers email through the Resend HTTP API."""

    def __init__(
        self,
        api_key: str,
        sender: str,
        api_url: str = "https://api.resend.com/emails",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._sender = sender
        self._api_url = api_url
        self._timeout = timeout
        self._transport = transport

    async def send(self, to: str, subject: str, html: str) -> bool:
        try:
            message_id = await self._post(to, subject, html)
        except (httpx.HTTPError, NotificationError) as exc:
            logger.warning("email_send_failed", to=to, subject=subject, error=str(exc))
            return False
        logger.info("email_sent", to=to, message_id=message_id)
        return True

    @retry(max_attempts=3, delay_ms=500, retry_on=(httpx.TransportError,))
    async def _post(self, to: str, subject: str, html: str) -> str:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            resp = await client.post(
                self._api_url,
                headers={"Authorization": f"Bearer {self._api_key}"},
                json={"from": self._sender, "to": [to], "subject": subject, "html": html},
            )
        if resp.status_code >= 400:
            msg = f"Resend rejected email ({resp.status_code}): {resp.text[:200]}"
            raise NotificationError(msg)
        return str(resp.json().get("id", ""))
