"""
test_channels.py — Email / SMS senders and their providers.

Provider HTTP is served by ``httpx.MockTransport``; nothing leaves the
process.

Run with:
    pytest tests/test_channels.py -v
"""

from __future__ import annotations

import asyncio
import base64
import json
from typing import Callable, List

import httpx
import pytest

from backend.app.alerts.channels.base import NotificationProvider, select_provider
from backend.app.alerts.channels.email_alert import (
    RESEND_URL,
    SENDGRID_URL,
    EmailSender,
    ResendProvider,
    SendGridProvider,
)
from backend.app.alerts.channels.sms_gateway import (
    SmsSender,
    TwilioProvider,
    truncate_sms,
)
from backend.app.alerts.models import DeliveryStatus, NotificationChannel
from backend.app.core.config import Settings


# ═══════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════

def _recording_client(
    requests: List[httpx.Request],
    status_code: int = 200,
) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status_code, json={"id": "msg_1"})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _failing_client(exc_factory: Callable[[httpx.Request], Exception]) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        raise exc_factory(request)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _settings(**overrides) -> Settings:
    base = dict(
        RESEND_API_KEY=None,
        SENDGRID_API_KEY=None,
        TWILIO_ACCOUNT_SID=None,
        TWILIO_AUTH_TOKEN=None,
        TWILIO_FROM_NUMBER=None,
        ALERTS_EMAIL_FROM="alerts@example.com",
    )
    base.update(overrides)
    return Settings(_env_file=None, **base)


class SlowProvider(NotificationProvider):
    name = "slow"
    channel = NotificationChannel.EMAIL

    def is_configured(self) -> bool:
        return True

    async def send(self, client, to, body, *, subject=None, timeout=10.0) -> None:
        await asyncio.sleep(5)


# ═══════════════════════════════════════════════════════════════════════════
# Provider selection
# ═══════════════════════════════════════════════════════════════════════════

class TestSelectProvider:

    def test_first_configured_wins(self):
        resend = ResendProvider("re_key", "a@x.io")
        sendgrid = SendGridProvider("sg_key", "a@x.io")
        assert select_provider([resend, sendgrid]) is resend

    def test_falls_through_to_second(self):
        resend = ResendProvider(None, "a@x.io")
        sendgrid = SendGridProvider("sg_key", "a@x.io")
        assert select_provider([resend, sendgrid]) is sendgrid

    def test_none_configured(self):
        assert select_provider([ResendProvider("", "a@x.io"), SendGridProvider(None, "a@x.io")]) is None

    @pytest.mark.parametrize("sid, token, number", [
        (None, "tok", "+15550001"),
        ("AC1", None, "+15550001"),
        ("AC1", "tok", None),
        ("AC1", "tok", ""),
    ])
    def test_twilio_needs_all_three(self, sid, token, number):
        assert not TwilioProvider(sid, token, number).is_configured()

    def test_twilio_configured(self):
        assert TwilioProvider("AC1", "tok", "+15550001").is_configured()


# ═══════════════════════════════════════════════════════════════════════════
# Email
# ═══════════════════════════════════════════════════════════════════════════

class TestEmailSender:

    @pytest.mark.asyncio
    async def test_resend_payload(self):
        requests: List[httpx.Request] = []
        sender = EmailSender.from_settings(
            _settings(RESEND_API_KEY="re_key", SENDGRID_API_KEY="sg_key"),
            client=_recording_client(requests),
        )

        attempt = await sender.send_email("a@example.com", "Subject", "<p>Hi</p>")

        assert attempt.status == DeliveryStatus.SENT
        assert attempt.provider == "resend"
        assert len(requests) == 1
        req = requests[0]
        assert str(req.url) == RESEND_URL
        assert req.headers["Authorization"] == "Bearer re_key"
        assert json.loads(req.content) == {
            "from": "alerts@example.com",
            "to": "a@example.com",
            "subject": "Subject",
            "html": "<p>Hi</p>",
        }

    @pytest.mark.asyncio
    async def test_sendgrid_used_when_resend_missing(self):
        requests: List[httpx.Request] = []
        sender = EmailSender.from_settings(
            _settings(SENDGRID_API_KEY="sg_key"),
            client=_recording_client(requests, status_code=202),
        )

        attempt = await sender.send_email("a@example.com", "Subject", "<p>Hi</p>")

        assert attempt.status == DeliveryStatus.SENT
        assert attempt.provider == "sendgrid"
        req = requests[0]
        assert str(req.url) == SENDGRID_URL
        body = json.loads(req.content)
        assert body["personalizations"] == [{"to": [{"email": "a@example.com"}]}]
        assert body["from"] == {"email": "alerts@example.com"}
        assert body["content"] == [{"type": "text/html", "value": "<p>Hi</p>"}]

    @pytest.mark.asyncio
    async def test_no_provider_skips_with_warning(self, caplog):
        requests: List[httpx.Request] = []
        sender = EmailSender.from_settings(_settings(), client=_recording_client(requests))

        with caplog.at_level("WARNING"):
            attempt = await sender.send_email("a@example.com", "S", "B")

        assert attempt.status == DeliveryStatus.SKIPPED
        assert requests == []
        assert "No email provider configured" in caplog.text

    @pytest.mark.asyncio
    async def test_http_error_status_is_swallowed(self):
        requests: List[httpx.Request] = []
        sender = EmailSender.from_settings(
            _settings(RESEND_API_KEY="re_key"),
            client=_recording_client(requests, status_code=500),
        )

        attempt = await sender.send_email("a@example.com", "S", "B")

        assert attempt.status == DeliveryStatus.FAILED
        assert "500" in attempt.error_message

    @pytest.mark.asyncio
    async def test_transport_error_is_swallowed(self):
        sender = EmailSender.from_settings(
            _settings(RESEND_API_KEY="re_key"),
            client=_failing_client(lambda req: httpx.ConnectError("refused", request=req)),
        )

        attempt = await sender.send_email("a@example.com", "S", "B")

        assert attempt.status == DeliveryStatus.FAILED
        assert "refused" in attempt.error_message

    @pytest.mark.asyncio
    async def test_hung_provider_times_out(self):
        sender = EmailSender([SlowProvider()], timeout_seconds=0.05)

        attempt = await sender.send_email("a@example.com", "S", "B")

        assert attempt.status == DeliveryStatus.FAILED
        assert "Timed out" in attempt.error_message
        await sender.close()


# ═══════════════════════════════════════════════════════════════════════════
# SMS
# ═══════════════════════════════════════════════════════════════════════════

class TestSmsSender:

    def test_truncate_is_character_level(self):
        text = "word " * 40
        assert truncate_sms(text) == text[:140]
        assert len(truncate_sms(text)) == 140
        assert truncate_sms("short") == "short"

    @pytest.mark.asyncio
    async def test_twilio_request(self):
        requests: List[httpx.Request] = []
        sender = SmsSender.from_settings(
            _settings(
                TWILIO_ACCOUNT_SID="AC123",
                TWILIO_AUTH_TOKEN="secret",
                TWILIO_FROM_NUMBER="+15550001",
            ),
            client=_recording_client(requests, status_code=201),
        )

        attempt = await sender.send_sms("+919876543210", "x" * 300)

        assert attempt.status == DeliveryStatus.SENT
        assert attempt.provider == "twilio"
        req = requests[0]
        assert req.url.path == "/2010-04-01/Accounts/AC123/Messages.json"
        assert req.headers["Authorization"] == "Basic " + base64.b64encode(b"AC123:secret").decode()
        form = dict(httpx.QueryParams(req.content.decode()))
        assert form["To"] == "+919876543210"
        assert form["From"] == "+15550001"
        assert form["Body"] == "x" * 140

    @pytest.mark.asyncio
    async def test_missing_credentials_skip(self):
        requests: List[httpx.Request] = []
        sender = SmsSender.from_settings(
            _settings(TWILIO_ACCOUNT_SID="AC123", TWILIO_AUTH_TOKEN="secret"),
            client=_recording_client(requests),
        )

        attempt = await sender.send_sms("+919876543210", "hello")

        assert attempt.status == DeliveryStatus.SKIPPED
        assert requests == []

    @pytest.mark.asyncio
    async def test_gateway_rejection_is_swallowed(self):
        sender = SmsSender.from_settings(
            _settings(
                TWILIO_ACCOUNT_SID="AC123",
                TWILIO_AUTH_TOKEN="secret",
                TWILIO_FROM_NUMBER="+15550001",
            ),
            client=_recording_client([], status_code=400),
        )

        attempt = await sender.send_sms("not-a-number", "hello")

        assert attempt.status == DeliveryStatus.FAILED
