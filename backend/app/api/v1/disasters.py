"""
FastAPI route: Disaster-event CRUD.

    GET    /api/v1/disasters          — list the caller's events (filtered)
    GET    /api/v1/disasters/{id}     — one event
    POST   /api/v1/disasters          — create; schedules alert dispatch
    PUT    /api/v1/disasters/{id}     — partial update
    DELETE /api/v1/disasters/{id}     — delete

Creating an event commits it first and only then hands it to the alert
dispatcher as a background task. The 201 response does not wait for
notifications, and nothing the dispatcher does can change it.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.alerts.alert_service import AlertDispatcher
from backend.app.alerts.models import DisasterEvent, DisasterType, Severity
from backend.app.api.deps import get_current_user_id, get_dispatcher
from backend.app.api.schemas import DisasterEventCreate, DisasterEventOut, DisasterEventUpdate
from backend.app.core.database import get_db
from backend.app.core.errors import NotFoundError, ValidationError
from backend.app.storage.tables import DisasterEventRecord

router = APIRouter(prefix="/api/v1/disasters", tags=["disasters"])

MAX_PAGE_SIZE = 100
_NULLABLE_FIELDS = ("magnitude", "description")


def record_to_event(record: DisasterEventRecord) -> DisasterEvent:
    return DisasterEvent(
        id=record.id,
        type=record.type,
        title=record.title,
        location=record.location,
        severity=record.severity,
        magnitude=record.magnitude,
        description=record.description,
        lat=record.lat,
        lng=record.lng,
        timestamp=record.timestamp,
    )


async def _get_owned(db: AsyncSession, disaster_id: int, user_id: str) -> DisasterEventRecord:
    result = await db.execute(
        select(DisasterEventRecord).where(
            DisasterEventRecord.id == disaster_id,
            DisasterEventRecord.user_id == user_id,
        )
    )
    record = result.scalar_one_or_none()
    if record is None:
        raise NotFoundError("Disaster", id=disaster_id)
    return record


@router.get("", response_model=List[DisasterEventOut], summary="List disaster events")
async def list_disasters(
    type: Optional[DisasterType] = Query(None),
    severity: Optional[Severity] = Query(None),
    active: bool = Query(True, description="Only active events"),
    limit: int = Query(50, ge=1),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    stmt = select(DisasterEventRecord).where(DisasterEventRecord.user_id == user_id)
    if active:
        stmt = stmt.where(DisasterEventRecord.is_active.is_(True))
    if type is not None:
        stmt = stmt.where(DisasterEventRecord.type == type.value)
    if severity is not None:
        stmt = stmt.where(DisasterEventRecord.severity == severity.value)

    stmt = (
        stmt.order_by(DisasterEventRecord.timestamp.desc())
        .limit(min(limit, MAX_PAGE_SIZE))
        .offset(offset)
    )
    result = await db.execute(stmt)
    return result.scalars().all()


@router.get("/{disaster_id}", response_model=DisasterEventOut, summary="Get one disaster event")
async def get_disaster(
    disaster_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await _get_owned(db, disaster_id, user_id)


@router.post(
    "",
    response_model=DisasterEventOut,
    status_code=201,
    summary="Create a disaster event",
    description=(
        "Persists the event, then notifies nearby subscribers in the "
        "background when its severity is moderate or severe."
    ),
)
async def create_disaster(
    body: DisasterEventCreate,
    background_tasks: BackgroundTasks,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    dispatcher: AlertDispatcher = Depends(get_dispatcher),
):
    now = datetime.now(timezone.utc)
    record = DisasterEventRecord(
        type=body.type.value,
        title=body.title,
        location=body.location,
        severity=body.severity.value,
        magnitude=body.magnitude,
        description=body.description or None,
        lat=body.lat,
        lng=body.lng,
        timestamp=body.timestamp,
        user_id=user_id,
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    db.add(record)
    await db.commit()
    await db.refresh(record)

    background_tasks.add_task(dispatcher.dispatch, record_to_event(record))
    return record


@router.put("/{disaster_id}", response_model=DisasterEventOut, summary="Update a disaster event")
async def update_disaster(
    disaster_id: int,
    body: DisasterEventUpdate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    changes = body.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationError("No fields to update")

    record = await _get_owned(db, disaster_id, user_id)
    for field, value in changes.items():
        if value is None and field not in _NULLABLE_FIELDS:
            continue
        if isinstance(value, (DisasterType, Severity)):
            value = value.value
        setattr(record, field, value)
    record.updated_at = datetime.now(timezone.utc)

    await db.commit()
    await db.refresh(record)
    return record


@router.delete("/{disaster_id}", summary="Delete a disaster event")
async def delete_disaster(
    disaster_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    record = await _get_owned(db, disaster_id, user_id)
    deleted = DisasterEventOut.model_validate(record).model_dump(mode="json", by_alias=True)
    await db.delete(record)
    await db.commit()
    return {"message": "Disaster deleted successfully", "disaster": deleted}
