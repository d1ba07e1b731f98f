"""
models.py — Shared data structures for proximity alert notification.

Defines:
    • DisasterType        — closed category set for events and subscriptions
    • Severity            — escalation-ordered event severity
    • NotificationChannel — delivery medium (email / SMS)
    • DeliveryStatus      — outcome of a single send attempt
    • DisasterEvent       — read-only view of a newly created event
    • AlertSubscription   — a user's proximity subscription
    • AlertMessage        — subject / HTML body / SMS text composed once per event
    • DeliveryAttempt     — one send to one recipient via one channel
    • DispatchReport      — summary of a dispatch cycle

═══════════════════════════════════════════════════════════════════════════
PERSISTED REPRESENTATION
═══════════════════════════════════════════════════════════════════════════

Subscriptions store their categories and channels as comma-delimited
strings ("flood,earthquake", "email,sms"). ``parse_csv_set`` turns such
a string into a frozenset of trimmed, lower-cased tokens at the storage
boundary, so membership is an exact token test:

    "storm" in parse_csv_set("stormwater,flood")   → False
    "storm" in parse_csv_set("flood, Storm")       → True

Malformed values (None, non-strings, empty) parse to the empty set,
which the matcher treats as "no category match" / "no channels".
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional


# ═══════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════

class DisasterType(str, Enum):
    EARTHQUAKE = "earthquake"
    FLOOD      = "flood"
    WILDFIRE   = "wildfire"
    CYCLONE    = "cyclone"
    TSUNAMI    = "tsunami"
    STORM      = "storm"


class Severity(str, Enum):
    """Event severity, declared in escalation order."""
    LOW      = "low"
    MODERATE = "moderate"
    SEVERE   = "severe"

    @classmethod
    def parse(cls, value: Any) -> Optional["Severity"]:
        """Case-insensitive lookup; None for anything unrecognised."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class NotificationChannel(str, Enum):
    EMAIL = "email"
    SMS   = "sms"


class DeliveryStatus(str, Enum):
    SENT    = "sent"      # provider accepted the message
    SKIPPED = "skipped"   # no provider configured for the channel
    FAILED  = "failed"    # transport error, timeout or provider rejection


# ═══════════════════════════════════════════════════════════════════════════
# Parsing helpers
# ═══════════════════════════════════════════════════════════════════════════

def parse_csv_set(raw: Any) -> FrozenSet[str]:
    """Split a comma-delimited field into a set of lower-cased tokens."""
    if not isinstance(raw, str):
        return frozenset()
    return frozenset(
        token.strip().lower() for token in raw.split(",") if token.strip()
    )


def join_csv_set(values: Iterable[str]) -> str:
    """Inverse of ``parse_csv_set`` for persistence (stable order)."""
    return ",".join(sorted({v.strip().lower() for v in values if v and v.strip()}))


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ═══════════════════════════════════════════════════════════════════════════
# Data Structures
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class DisasterEvent:
    """
    A newly persisted disaster event, as handed to the dispatcher.

    ``type`` and ``severity`` are kept as the raw strings the producer
    stored; the dispatcher normalises them. ``timestamp`` is epoch-based
    (seconds, or milliseconds when above 1e11).
    """
    id: int
    type: str
    title: str
    location: str
    severity: str
    lat: float
    lng: float
    timestamp: float
    magnitude: Optional[float] = None
    description: Optional[str] = None

    @property
    def category(self) -> str:
        return self.type.strip().lower() if isinstance(self.type, str) else ""


@dataclass(frozen=True)
class AlertSubscription:
    """
    A user's proximity subscription.

    Attributes
    ----------
    categories, channels : str
        Raw comma-delimited values as persisted.
    email, phone : str | None
        Contact overrides. A channel whose contact value is missing is
        skipped for this subscription; there is no fallback to the
        owning user's account email.
    """
    id: int
    user_id: str
    lat: float
    lng: float
    radius_km: float
    categories: str
    channels: str
    email: Optional[str] = None
    phone: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def category_set(self) -> FrozenSet[str]:
        return parse_csv_set(self.categories)

    @property
    def channel_set(self) -> FrozenSet[NotificationChannel]:
        known = {c.value: c for c in NotificationChannel}
        return frozenset(known[t] for t in parse_csv_set(self.channels) if t in known)

    def wants(self, channel: NotificationChannel) -> bool:
        return channel in self.channel_set


@dataclass(frozen=True)
class AlertMessage:
    """Rendered once per event and shared by every recipient."""
    subject: str
    html_body: str
    sms_text: str


@dataclass
class DeliveryAttempt:
    """Record of a single send to one recipient via one channel."""
    channel: NotificationChannel
    recipient: str
    status: DeliveryStatus
    provider: Optional[str] = None
    subscription_id: Optional[int] = None
    error_message: Optional[str] = None
    attempt_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    attempted_at: datetime = field(default_factory=_now)

    @property
    def succeeded(self) -> bool:
        return self.status == DeliveryStatus.SENT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempt_id": self.attempt_id,
            "channel": self.channel.value,
            "recipient": self.recipient,
            "status": self.status.value,
            "provider": self.provider,
            "subscription_id": self.subscription_id,
            "error_message": self.error_message,
            "attempted_at": self.attempted_at.isoformat(),
        }


@dataclass
class DispatchReport:
    """Outcome of one dispatch cycle for one event."""
    event_id: int
    escalated: bool = False
    matched_subscriptions: int = 0
    attempts: List[DeliveryAttempt] = field(default_factory=list)
    error: Optional[str] = None
    started_at: datetime = field(default_factory=_now)
    completed_at: Optional[datetime] = None

    def count(self, channel: NotificationChannel, status: Optional[DeliveryStatus] = None) -> int:
        return sum(
            1 for a in self.attempts
            if a.channel == channel and (status is None or a.status == status)
        )

    @property
    def sent(self) -> int:
        return sum(1 for a in self.attempts if a.succeeded)

    @property
    def failed(self) -> int:
        return sum(1 for a in self.attempts if a.status == DeliveryStatus.FAILED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "escalated": self.escalated,
            "matched_subscriptions": self.matched_subscriptions,
            "attempts": [a.to_dict() for a in self.attempts],
            "sent": self.sent,
            "failed": self.failed,
            "error": self.error,
            "started_at": self.started_at.isoformat(),
            "completed_at": (
                self.completed_at.isoformat() if self.completed_at else None
            ),
        }
