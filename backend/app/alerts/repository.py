"""
repository.py — Subscription lookup backed by SQLAlchemy.

The query runs in two stages:

    1. SQL:    categories LIKE '%flood%'        (coarse, index-friendly)
    2. Python: "flood" in parse_csv_set(...)    (exact token membership)

Stage 1 alone would let "storm" match "stormwater"; stage 2 removes
those partial-word hits. The repository opens its own session because
dispatch runs after the request that created the event has finished.
"""

from __future__ import annotations

import logging
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.alerts.models import AlertSubscription, parse_csv_set
from backend.app.storage.tables import AlertSubscriptionRecord

logger = logging.getLogger(__name__)


def record_to_subscription(record: AlertSubscriptionRecord) -> AlertSubscription:
    return AlertSubscription(
        id=record.id,
        user_id=record.user_id,
        lat=record.lat,
        lng=record.lng,
        radius_km=record.radius_km,
        categories=record.categories,
        channels=record.channels,
        email=record.email,
        phone=record.phone,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqlSubscriptionRepository:
    """Read-only access to persisted alert subscriptions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def find_by_category(self, category: str) -> List[AlertSubscription]:
        """All subscriptions whose category set contains ``category`` exactly."""
        token = category.strip().lower()
        if not token:
            return []

        stmt = (
            select(AlertSubscriptionRecord)
            .where(
                AlertSubscriptionRecord.categories.ilike(
                    f"%{_escape_like(token)}%", escape="\\",
                )
            )
            .order_by(AlertSubscriptionRecord.id)
        )

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            records = result.scalars().all()

        subscriptions = [
            record_to_subscription(r)
            for r in records
            if token in parse_csv_set(r.categories)
        ]
        logger.debug(
            "Category %r: %d candidate rows, %d exact matches",
            token, len(records), len(subscriptions),
        )
        return subscriptions
