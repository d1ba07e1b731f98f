"""
alert_service.py — Proximity alert dispatch for newly created events.

This is the coordinator that:
    1. Applies the escalation gate (only moderate / severe events alert)
    2. Asks the geo-fence matcher for nearby, interested subscriptions
    3. Renders subject / HTML body / SMS text once per event
    4. Fans out one send per matched subscription per selected channel
    5. Waits for every send to settle and reports the outcome

═══════════════════════════════════════════════════════════════════════════
DISPATCH FLOW
═══════════════════════════════════════════════════════════════════════════

    ┌─────────────────────┐
    │  Event created      │  (HTTP handler, after the insert commits)
    └─────────┬───────────┘
              │  background task, response already sent
              ▼
    ┌─────────────────────┐
    │  1. Escalation gate │  severity ∈ {moderate, severe}, else stop
    └─────────┬───────────┘
              ▼
    ┌─────────────────────┐
    │  2. Geo-fence match │  category token + radius, capped at 100
    └─────────┬───────────┘
              ▼
    ┌─────────────────────┐
    │  3. Compose message │  once per event
    └─────────┬───────────┘
              ▼
    ┌─────────────────────┐
    │  4. Fan-out         │  email if selected and address present
    │     (concurrent)    │  SMS   if selected and phone present
    └─────────┬───────────┘
              ▼
    ┌─────────────────────┐
    │  5. DispatchReport  │  logged; nothing is persisted or retried
    └─────────────────────┘

═══════════════════════════════════════════════════════════════════════════
FAILURE POLICY
═══════════════════════════════════════════════════════════════════════════

    No provider configured   → attempt SKIPPED, warning logged
    Transport / timeout      → attempt FAILED, other sends unaffected
    Storage failure          → cycle aborted, error logged, nothing raised
    Malformed subscription   → treated as no category / no channel

``dispatch`` never raises. A failed notification is not retried; it is
only visible in the logs.

A subscription that selects email but carries no ``email`` override is
skipped for email. It does not fall back to the owning account's email.
"""

from __future__ import annotations

import asyncio
import html
import logging
import math
from datetime import datetime, timezone
from typing import Any, Awaitable, Dict, FrozenSet, Iterable, List, Optional, Set

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.alerts.channels.email_alert import EmailSender
from backend.app.alerts.channels.sms_gateway import SMS_MAX_LENGTH, SmsSender, truncate_sms
from backend.app.alerts.geo_fence import SubscriptionMatcher
from backend.app.alerts.models import (
    AlertMessage,
    AlertSubscription,
    DeliveryAttempt,
    DisasterEvent,
    DispatchReport,
    NotificationChannel,
    Severity,
)
from backend.app.alerts.repository import SqlSubscriptionRepository
from backend.app.core.config import Settings

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Escalation Gate
# ═══════════════════════════════════════════════════════════════════════════

ESCALATION_SEVERITIES: FrozenSet[Severity] = frozenset({Severity.MODERATE, Severity.SEVERE})


def is_escalated(
    severity: Any,
    escalation_severities: Iterable[Severity] = ESCALATION_SEVERITIES,
) -> bool:
    """True when an event of this severity should notify subscribers."""
    parsed = Severity.parse(severity)
    return parsed is not None and parsed in set(escalation_severities)


# ═══════════════════════════════════════════════════════════════════════════
# Message Composition
# ═══════════════════════════════════════════════════════════════════════════

DEFAULT_EMAIL_ADVICE = "Stay safe and follow local guidelines."
DEFAULT_SMS_ADVICE = "Stay safe."


def format_event_time(timestamp: Any) -> str:
    """
    Render an epoch timestamp as 'YYYY-MM-DD HH:MM UTC'.

    Values above 1e11 are taken as milliseconds, anything smaller as
    seconds. Unparseable values render as 'unknown time'.
    """
    try:
        value = float(timestamp)
        if not math.isfinite(value):
            raise ValueError(timestamp)
        if abs(value) > 1e11:
            value /= 1000.0
        return datetime.fromtimestamp(value, tz=timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    except (TypeError, ValueError, OverflowError, OSError):
        return "unknown time"


def _format_magnitude(magnitude: Optional[float]) -> str:
    if not magnitude:
        return ""
    return f" • Magnitude: {magnitude:g}"


def build_alert_message(
    event: DisasterEvent,
    *,
    sms_max_length: int = SMS_MAX_LENGTH,
) -> AlertMessage:
    """
    Render the subject, HTML body and SMS text for an event.

    Examples
    --------
    >>> event = DisasterEvent(1, "flood", "River overflow", "Delhi",
    ...                       "moderate", 28.6, 77.2, 1700000000)
    >>> build_alert_message(event).subject
    'High-risk flood near Delhi'
    """
    subject = f"High-risk {event.type} near {event.location}"
    description = (event.description or "").strip()
    esc = html.escape

    html_body = (
        f"<h2>{esc(subject)}</h2>\n"
        f"<p>{esc(event.title)}</p>\n"
        f"<p>Severity: <strong>{esc(str(event.severity))}</strong>"
        f"{esc(_format_magnitude(event.magnitude))}</p>\n"
        f"<p>Location: {esc(event.location)} • Time: {format_event_time(event.timestamp)}</p>\n"
        f"<p>{esc(description or DEFAULT_EMAIL_ADVICE)}</p>\n"
    )

    sms_text = truncate_sms(
        f"{subject}: {event.title}. {description or DEFAULT_SMS_ADVICE}",
        sms_max_length,
    )

    return AlertMessage(subject=subject, html_body=html_body, sms_text=sms_text)


def _contact(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


# ═══════════════════════════════════════════════════════════════════════════
# Dispatcher
# ═══════════════════════════════════════════════════════════════════════════

class AlertDispatcher:
    """
    Dispatch proximity alerts for one event at a time.

    Holds no state between calls apart from references to in-flight
    background tasks started by ``schedule``.

    Parameters
    ----------
    matcher : SubscriptionMatcher
    email_sender : EmailSender
    sms_sender : SmsSender
    escalation_severities : iterable of Severity
        Severities that trigger notification.
    """

    def __init__(
        self,
        matcher: SubscriptionMatcher,
        email_sender: EmailSender,
        sms_sender: SmsSender,
        *,
        escalation_severities: Iterable[Severity] = ESCALATION_SEVERITIES,
    ):
        self.matcher = matcher
        self.email_sender = email_sender
        self.sms_sender = sms_sender
        self.escalation_severities = frozenset(escalation_severities)
        self._background: Set[asyncio.Task] = set()

    def _sends_for(
        self,
        sub: AlertSubscription,
        message: AlertMessage,
    ) -> List[Awaitable[DeliveryAttempt]]:
        sends: List[Awaitable[DeliveryAttempt]] = []
        if sub.wants(NotificationChannel.EMAIL):
            email = _contact(sub.email)
            if email:
                sends.append(self.email_sender.send_email(
                    email, message.subject, message.html_body,
                    subscription_id=sub.id,
                ))
            else:
                logger.debug("Subscription %s selects email but has no address", sub.id)

        if sub.wants(NotificationChannel.SMS):
            phone = _contact(sub.phone)
            if phone:
                sends.append(self.sms_sender.send_sms(
                    phone, message.sms_text, subscription_id=sub.id,
                ))
            else:
                logger.debug("Subscription %s selects sms but has no phone", sub.id)

        return sends

    async def _run(self, event: DisasterEvent, report: DispatchReport) -> None:
        if not is_escalated(event.severity, self.escalation_severities):
            logger.debug(
                "Event %s severity %r below escalation threshold",
                event.id, event.severity,
            )
            return
        report.escalated = True

        matches = await self.matcher.find_matches(event)
        report.matched_subscriptions = len(matches)
        if not matches:
            return

        message = build_alert_message(event, sms_max_length=self.sms_sender.max_length)

        sends: List[Awaitable[DeliveryAttempt]] = []
        for sub in matches:
            sends.extend(self._sends_for(sub, message))

        results = await asyncio.gather(*sends, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                logger.error("Send raised unexpectedly: %r", result)
                continue
            report.attempts.append(result)

    async def dispatch(self, event: DisasterEvent) -> DispatchReport:
        """
        Notify every matching subscriber of ``event``. Never raises.

        Returns
        -------
        DispatchReport
            ``error`` is set when the cycle aborted (e.g. storage failure).
        """
        report = DispatchReport(event_id=event.id)
        try:
            await self._run(event, report)
        except Exception as exc:
            report.error = str(exc) or type(exc).__name__
            logger.exception(
                "Alert dispatch for event %s failed", event.id,
                extra={"event_id": event.id},
            )
        report.completed_at = datetime.now(timezone.utc)

        if report.escalated:
            logger.info(
                "Alert dispatch for event %s: %d matched, %d sent, %d failed, %d attempts",
                event.id, report.matched_subscriptions, report.sent,
                report.failed, len(report.attempts),
                extra={"event_id": event.id, "recipient_count": report.matched_subscriptions},
            )
        return report

    def schedule(self, event: DisasterEvent) -> asyncio.Task:
        """Start ``dispatch`` without awaiting it (needs a running loop)."""
        task = asyncio.create_task(self.dispatch(event))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def close(self) -> None:
        await self.email_sender.close()
        await self.sms_sender.close()

    def channel_status(self) -> Dict[str, Dict[str, Any]]:
        """Which provider, if any, each channel would use right now."""
        status: Dict[str, Dict[str, Any]] = {}
        for sender in (self.email_sender, self.sms_sender):
            active = sender.active_provider
            status[sender.channel.value] = {
                "configured": active is not None,
                "provider": active.name if active else None,
                "providers": [p.name for p in sender.providers],
            }
        return status


def build_dispatcher(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
) -> AlertDispatcher:
    """Wire a dispatcher from settings and a database session factory."""
    escalation = [s for s in (Severity.parse(v) for v in settings.ALERT_ESCALATION_SEVERITIES) if s]
    return AlertDispatcher(
        SubscriptionMatcher(
            SqlSubscriptionRepository(session_factory),
            max_results=settings.ALERT_MAX_RECIPIENTS,
        ),
        EmailSender.from_settings(settings),
        SmsSender.from_settings(settings),
        escalation_severities=escalation,
    )
