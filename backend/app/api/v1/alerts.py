"""
FastAPI route: Alert subscriptions and channel status.

    GET    /api/v1/alerts/subscription   — the caller's subscription (or null)
    POST   /api/v1/alerts/subscription   — create or replace it (one per user)
    DELETE /api/v1/alerts/subscription   — remove it
    GET    /api/v1/alerts/channels       — which providers are configured
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.alerts.alert_service import AlertDispatcher
from backend.app.alerts.models import join_csv_set
from backend.app.api.deps import get_current_user_id, get_dispatcher
from backend.app.api.schemas import SubscriptionIn, SubscriptionOut
from backend.app.core.database import get_db
from backend.app.storage.tables import AlertSubscriptionRecord

router = APIRouter(prefix="/api/v1/alerts", tags=["alerts"])


async def _find_subscription(db: AsyncSession, user_id: str) -> Optional[AlertSubscriptionRecord]:
    result = await db.execute(
        select(AlertSubscriptionRecord).where(AlertSubscriptionRecord.user_id == user_id)
    )
    return result.scalar_one_or_none()


@router.get(
    "/subscription",
    response_model=Optional[SubscriptionOut],
    summary="Get the caller's alert subscription",
)
async def get_subscription(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await _find_subscription(db, user_id)


@router.post(
    "/subscription",
    response_model=SubscriptionOut,
    summary="Create or replace the caller's alert subscription",
)
async def upsert_subscription(
    body: SubscriptionIn,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    now = datetime.now(timezone.utc)
    values = {
        "lat": body.lat,
        "lng": body.lng,
        "radius_km": body.radius_km,
        "categories": join_csv_set(c.value for c in body.categories),
        "channels": join_csv_set(c.value for c in body.channels),
        "email": body.email or None,
        "phone": body.phone or None,
        "updated_at": now,
    }

    record = await _find_subscription(db, user_id)
    if record is None:
        record = AlertSubscriptionRecord(user_id=user_id, created_at=now, **values)
        db.add(record)
    else:
        for key, value in values.items():
            setattr(record, key, value)

    await db.commit()
    await db.refresh(record)
    return record


@router.delete("/subscription", summary="Delete the caller's alert subscription")
async def delete_subscription(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await db.execute(
        delete(AlertSubscriptionRecord).where(AlertSubscriptionRecord.user_id == user_id)
    )
    await db.commit()
    return {"ok": True}


@router.get("/channels", summary="Notification channel configuration")
async def list_channels(dispatcher: AlertDispatcher = Depends(get_dispatcher)):
    return {"channels": dispatcher.channel_status()}
