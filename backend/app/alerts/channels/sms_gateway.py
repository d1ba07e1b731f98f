"""
sms_gateway.py — SMS delivery channel via Twilio.

    App  →  HTTP POST (form, basic auth)  →  Twilio Messages API  →  Handset

Twilio needs three settings: account SID, auth token and sender number.
If any of them is missing the channel is a logged no-op.

Message bodies are cut to ``SMS_MAX_LENGTH`` characters (140 by default)
after the full text is composed. The cut is a plain character slice;
it does not look for word boundaries.
"""

from __future__ import annotations

from typing import Optional, Sequence

import httpx

from backend.app.alerts.channels.base import ChannelSender, NotificationProvider
from backend.app.alerts.models import DeliveryAttempt, NotificationChannel
from backend.app.core.config import Settings

SMS_MAX_LENGTH = 140

TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"


def truncate_sms(body: str, max_length: int = SMS_MAX_LENGTH) -> str:
    return body[:max_length]


class TwilioProvider(NotificationProvider):
    name = "twilio"
    channel = NotificationChannel.SMS

    def __init__(
        self,
        account_sid: Optional[str],
        auth_token: Optional[str],
        from_number: Optional[str],
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number

    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

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
            TWILIO_MESSAGES_URL.format(sid=self.account_sid),
            auth=(self.account_sid, self.auth_token),
            data={"To": to, "From": self.from_number, "Body": body},
            timeout=timeout,
        )
        self._check_response(response)


class SmsSender(ChannelSender):
    """Sends alert SMS through the configured gateway."""

    channel = NotificationChannel.SMS

    def __init__(
        self,
        providers: Sequence[NotificationProvider],
        *,
        max_length: int = SMS_MAX_LENGTH,
        timeout_seconds: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(providers, timeout_seconds=timeout_seconds, client=client)
        self.max_length = max_length

    @classmethod
    def from_settings(
        cls, settings: Settings, *, client: Optional[httpx.AsyncClient] = None,
    ) -> "SmsSender":
        return cls(
            [
                TwilioProvider(
                    settings.TWILIO_ACCOUNT_SID,
                    settings.TWILIO_AUTH_TOKEN,
                    settings.TWILIO_FROM_NUMBER,
                ),
            ],
            max_length=settings.SMS_MAX_LENGTH,
            timeout_seconds=settings.ALERT_PROVIDER_TIMEOUT,
            client=client,
        )

    async def send_sms(
        self,
        to: str,
        body: str,
        *,
        subscription_id: Optional[int] = None,
    ) -> DeliveryAttempt:
        """Send one SMS, truncated to ``max_length``. Never raises."""
        return await self._deliver(
            to, truncate_sms(body, self.max_length), subscription_id=subscription_id,
        )
