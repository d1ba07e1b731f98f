"""
Pydantic schemas for the disaster-event and alert-subscription API.

JSON bodies use camelCase (``radiusKm``, ``isActive``); snake_case
field names are accepted too.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from backend.app.alerts.models import DisasterType, NotificationChannel, Severity, parse_csv_set


class _ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        from_attributes=True,
    )


def _reject_user_id(data: Any) -> Any:
    if isinstance(data, dict) and ("userId" in data or "user_id" in data):
        raise ValueError("User ID cannot be provided in request body")
    return data


# ---------------------------------------------------------------------------
# Disaster events
# ---------------------------------------------------------------------------

class DisasterEventCreate(_ApiModel):
    """Request body for POST /api/v1/disasters."""
    type: DisasterType = Field(..., examples=["flood"])
    title: str = Field(..., min_length=1, max_length=255, examples=["Yamuna overflow"])
    location: str = Field(..., min_length=1, max_length=255, examples=["New Delhi"])
    severity: Severity = Field(..., examples=["moderate"])
    magnitude: Optional[float] = Field(None, examples=[5.4])
    description: Optional[str] = Field(None, max_length=5000)
    lat: float = Field(..., ge=-90.0, le=90.0, examples=[28.6])
    lng: float = Field(..., ge=-180.0, le=180.0, examples=[77.2])
    timestamp: int = Field(
        ..., ge=0, description="Epoch seconds (milliseconds accepted)", examples=[1760000000],
    )

    @model_validator(mode="before")
    @classmethod
    def forbid_user_id(cls, data: Any) -> Any:
        return _reject_user_id(data)


class DisasterEventUpdate(_ApiModel):
    """Partial update for PUT /api/v1/disasters/{id}."""
    type: Optional[DisasterType] = None
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    location: Optional[str] = Field(None, min_length=1, max_length=255)
    severity: Optional[Severity] = None
    magnitude: Optional[float] = None
    description: Optional[str] = Field(None, max_length=5000)
    lat: Optional[float] = Field(None, ge=-90.0, le=90.0)
    lng: Optional[float] = Field(None, ge=-180.0, le=180.0)
    timestamp: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None

    @model_validator(mode="before")
    @classmethod
    def forbid_user_id(cls, data: Any) -> Any:
        return _reject_user_id(data)


class DisasterEventOut(_ApiModel):
    id: int
    type: str
    title: str
    location: str
    severity: str
    magnitude: Optional[float] = None
    description: Optional[str] = None
    lat: float
    lng: float
    timestamp: int
    user_id: str
    is_active: bool
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Alert subscriptions
# ---------------------------------------------------------------------------

def _split_csv(value: Any) -> Any:
    if isinstance(value, str):
        return sorted(parse_csv_set(value))
    return value


class SubscriptionIn(_ApiModel):
    """
    Request body for POST /api/v1/alerts/subscription.

    ``categories`` and ``channels`` accept a list or a comma-delimited string.
    """
    lat: float = Field(..., ge=-90.0, le=90.0, examples=[28.7])
    lng: float = Field(..., ge=-180.0, le=180.0, examples=[77.1])
    radius_km: float = Field(..., gt=0, le=20_000, examples=[100.0])
    categories: List[DisasterType] = Field(..., min_length=1, examples=[["flood", "earthquake"]])
    channels: List[NotificationChannel] = Field(..., min_length=1, examples=[["email"]])
    email: Optional[str] = Field(None, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    phone: Optional[str] = Field(None, max_length=32, examples=["+919876543210"])

    @field_validator("categories", "channels", mode="before")
    @classmethod
    def split_csv_lists(cls, value: Any) -> Any:
        return _split_csv(value)


class SubscriptionOut(_ApiModel):
    id: int
    user_id: str
    lat: float
    lng: float
    radius_km: float
    categories: List[str]
    channels: List[str]
    email: Optional[str] = None
    phone: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @field_validator("categories", "channels", mode="before")
    @classmethod
    def split_csv_lists(cls, value: Any) -> Any:
        return _split_csv(value)
