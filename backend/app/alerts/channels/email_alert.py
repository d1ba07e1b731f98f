"""
email_alert.py — Email alert delivery channel.

Providers, in preference order:
    1. Resend    POST https://api.resend.com/emails
    2. SendGrid  POST https://api.sendgrid.com/v3/mail/send

Both authenticate with a bearer API key and receive the HTML body
rendered once per event by the dispatcher. With neither key set the
channel is a logged no-op.
"""

from __future__ import annotations

from typing import Optional

import httpx

from backend.app.alerts.channels.base import ChannelSender, NotificationProvider
from backend.app.alerts.models import DeliveryAttempt, NotificationChannel
from backend.app.core.config import Settings

RESEND_URL = "https://api.resend.com/emails"
SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"


class ResendProvider(NotificationProvider):
    name = "resend"
    channel = NotificationChannel.EMAIL

    def __init__(self, api_key: Optional[str], from_address: str):
        self.api_key = api_key
        self.from_address = from_address

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def send(
        self,
        client: httpx.AsyncClient,
        to: str,
        body: str,
        *,
        subject: Optional[str] = None,
        timeout: float = 10.0,
    ) -> None:
        response = await client.post(
            RESEND_URL,
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={
                "from": self.from_address,
                "to": to,
                "subject": subject or "",
                "html": body,
            },
            timeout=timeout,
        )
        self._check_response(response)


class SendGridProvider(NotificationProvider):
    name = "sendgrid"
    channel = NotificationChannel.EMAIL

    def __init__(self, api_key: Optional[str], from_address: str):
        self.api_key = api_key
        self.from_address = from_address

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def send(
        self,
        client: httpx.AsyncClient,
        to: str,
        body: str,
        *,
        subject: Optional[str] = None,
        timeout: float = 10.0,
    ) -> None:
        response = await client.post(
            SENDGRID_URL,
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={
                "personalizations": [{"to": [{"email": to}]}],
                "from": {"email": self.from_address},
                "subject": subject or "",
                "content": [{"type": "text/html", "value": body}],
            },
            timeout=timeout,
        )
        self._check_response(response)


class EmailSender(ChannelSender):
    """Sends alert emails through the first configured provider."""

    channel = NotificationChannel.EMAIL

    @classmethod
    def from_settings(
        cls, settings: Settings, *, client: Optional[httpx.AsyncClient] = None,
    ) -> "EmailSender":
        return cls(
            [
                ResendProvider(settings.RESEND_API_KEY, settings.ALERTS_EMAIL_FROM),
                SendGridProvider(settings.SENDGRID_API_KEY, settings.ALERTS_EMAIL_FROM),
            ],
            timeout_seconds=settings.ALERT_PROVIDER_TIMEOUT,
            client=client,
        )

    async def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        *,
        subscription_id: Optional[int] = None,
    ) -> DeliveryAttempt:
        """
        Send one email. Never raises.

        Returns
        -------
        DeliveryAttempt
            SENT, SKIPPED (no provider configured) or FAILED.
        """
        return await self._deliver(
            to, body, subject=subject, subscription_id=subscription_id,
        )
