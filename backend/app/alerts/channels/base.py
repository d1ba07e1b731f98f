"""
base.py — Provider strategy and the shared best-effort sender.

Every channel delegates the actual transport to one of several
third-party providers. Providers are capability-checked strategies:

    provider.is_configured()  → bool   (credentials present?)
    await provider.send(...)  → None   (raises on transport / HTTP error)

A sender holds its providers in preference order and uses the first one
that is configured. When none is, the send is skipped with a warning.
Any failure while talking to the provider (HTTP error, rejection,
timeout) is logged and reported as a FAILED ``DeliveryAttempt``; it is
never raised to the caller, so one bad recipient cannot abort a fan-out.
"""

from __future__ import annotations

import abc
import asyncio
import logging
from typing import Optional, Sequence

import httpx

from backend.app.alerts.models import (
    DeliveryAttempt,
    DeliveryStatus,
    NotificationChannel,
)
from backend.app.core.errors import NotificationDeliveryError

logger = logging.getLogger(__name__)


class NotificationProvider(abc.ABC):
    """A concrete third-party transport for one channel."""

    name: str = "provider"
    channel: NotificationChannel

    @abc.abstractmethod
    def is_configured(self) -> bool:
        """True when every credential the provider needs is present."""

    @abc.abstractmethod
    async def send(
        self,
        client: httpx.AsyncClient,
        to: str,
        body: str,
        *,
        subject: Optional[str] = None,
        timeout: float = 10.0,
    ) -> None:
        """Deliver one message; raise on any failure."""

    def _check_response(self, response: httpx.Response) -> None:
        if not response.is_success:
            raise NotificationDeliveryError(
                self.name,
                f"HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )


def select_provider(
    providers: Sequence[NotificationProvider],
) -> Optional[NotificationProvider]:
    """Return the first configured provider, in preference order."""
    for provider in providers:
        if provider.is_configured():
            return provider
    return None


class ChannelSender:
    """
    Best-effort sender for one channel.

    Parameters
    ----------
    providers : sequence of NotificationProvider
        In preference order.
    timeout_seconds : float
        Upper bound on each provider call, end to end.
    client : httpx.AsyncClient | None
        Shared HTTP client. Created lazily when not injected.
    """

    channel: NotificationChannel

    def __init__(
        self,
        providers: Sequence[NotificationProvider],
        *,
        timeout_seconds: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.providers = list(providers)
        self.timeout_seconds = timeout_seconds
        self._client = client
        self._owns_client = client is None

    @property
    def active_provider(self) -> Optional[NotificationProvider]:
        return select_provider(self.providers)

    @property
    def is_configured(self) -> bool:
        return self.active_provider is not None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout_seconds)
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def _deliver(
        self,
        to: str,
        body: str,
        *,
        subject: Optional[str] = None,
        subscription_id: Optional[int] = None,
    ) -> DeliveryAttempt:
        provider = self.active_provider
        if provider is None:
            logger.warning(
                "No %s provider configured; skipping %s to %s",
                self.channel.value, self.channel.value, to,
                extra={"channel": self.channel.value, "subscription_id": subscription_id},
            )
            return DeliveryAttempt(
                channel=self.channel,
                recipient=to,
                status=DeliveryStatus.SKIPPED,
                subscription_id=subscription_id,
                error_message="No provider configured",
            )

        attempt = DeliveryAttempt(
            channel=self.channel,
            recipient=to,
            status=DeliveryStatus.SENT,
            provider=provider.name,
            subscription_id=subscription_id,
        )

        try:
            client = await self._get_client()
            await asyncio.wait_for(
                provider.send(
                    client, to, body,
                    subject=subject, timeout=self.timeout_seconds,
                ),
                timeout=self.timeout_seconds,
            )
            logger.info(
                "[%s/%s] Sent to %s",
                self.channel.value.upper(), provider.name, to,
                extra={"channel": self.channel.value, "provider": provider.name},
            )
        except asyncio.TimeoutError:
            attempt.status = DeliveryStatus.FAILED
            attempt.error_message = f"Timed out after {self.timeout_seconds:.1f}s"
            logger.warning(
                "[%s/%s] Timed out sending to %s",
                self.channel.value.upper(), provider.name, to,
                extra={"channel": self.channel.value, "provider": provider.name},
            )
        except Exception as exc:
            attempt.status = DeliveryStatus.FAILED
            attempt.error_message = str(exc) or type(exc).__name__
            logger.error(
                "[%s/%s] Failed for %s: %s",
                self.channel.value.upper(), provider.name, to, exc,
                extra={"channel": self.channel.value, "provider": provider.name},
            )

        return attempt
