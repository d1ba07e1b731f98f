"""
Shared FastAPI dependencies.

Authentication itself happens upstream (session cookie or token, owned
by the auth provider in front of this service). By the time a request
reaches us the caller's id is in the ``X-User-ID`` header.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Header, Request

from backend.app.alerts.alert_service import AlertDispatcher, build_dispatcher
from backend.app.core.config import settings
from backend.app.core.database import async_session_factory
from backend.app.core.errors import AuthenticationError


async def get_current_user_id(
    x_user_id: Optional[str] = Header(None, alias="X-User-ID"),
) -> str:
    if not x_user_id or not x_user_id.strip():
        raise AuthenticationError()
    return x_user_id.strip()


def get_dispatcher(request: Request) -> AlertDispatcher:
    """The application-wide dispatcher, built on first use."""
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is None:
        dispatcher = build_dispatcher(settings, async_session_factory)
        request.app.state.dispatcher = dispatcher
    return dispatcher
