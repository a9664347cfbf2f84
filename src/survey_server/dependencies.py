"""FastAPI dependency injection — DB sessions, services, respondent token, admin auth.

Each request that touches the database gets a fresh ``AsyncSession`` via
``get_db()``.  The session is committed on success and rolled back on error,
matching the SDK convention where engine/repository call ``flush()`` but
never ``commit()``.
"""

from typing import AsyncGenerator

from fastapi import Cookie, Header, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from survey_db.engine import get_session_factory
from survey_flow.admin import AdminService
from survey_flow.engine import SurveyEngine
from survey_flow.insights import SummaryGenerator

from survey_server.config import ADMIN_COOKIE_NAME, ServerSettings
from survey_server.security import decode_admin_token


# ------------------------------------------------------------------
# Database session — transaction boundary lives here
# ------------------------------------------------------------------

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async DB session; commit on success, rollback on error.

    The SDK's repository methods call ``flush()`` but never ``commit()``,
    so this dependency is the single place where transactions are finalised.
    """
    factory = get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# ------------------------------------------------------------------
# Services — stashed on app.state during lifespan
# ------------------------------------------------------------------

def get_engine(request: Request) -> SurveyEngine:
    """Return the SurveyEngine singleton from ``app.state``."""
    return request.app.state.engine


def get_admin_service(request: Request) -> AdminService:
    """Return the AdminService singleton from ``app.state``."""
    return request.app.state.admin


def get_summarizer(request: Request) -> SummaryGenerator | None:
    """The AI summarizer, or None when no OpenAI key is configured."""
    return getattr(request.app.state, "summarizer", None)


def get_settings(request: Request) -> ServerSettings:
    return request.app.state.settings


# ------------------------------------------------------------------
# Respondent identity — opaque session token
# ------------------------------------------------------------------

async def get_session_token(
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
    token: str | None = Query(None),
) -> str | None:
    """Session token from the ``X-Session-Token`` header or ``?token=``.

    A missing token is passed through as None; the engine answers it with
    a 401 that tells the client to restart.
    """
    return x_session_token or token


# ------------------------------------------------------------------
# Admin identity — signed cookie set by POST /admin/login
# ------------------------------------------------------------------

async def require_admin(
    request: Request,
    admin_session: str | None = Cookie(None, alias=ADMIN_COOKIE_NAME),
) -> str:
    """Validate the admin session cookie.  Returns 401 if missing or invalid."""
    if not admin_session:
        raise HTTPException(status_code=401, detail="Admin login required")
    settings: ServerSettings = request.app.state.settings
    payload = decode_admin_token(admin_session, settings.admin_session_secret)
    if payload is None:
        raise HTTPException(status_code=401, detail="Admin session expired")
    return payload["sub"]
