"""Respondent endpoints — register / log in, resume, log out.

Identity is the normalized phone number; the returned opaque session token
is sent back on every later call in the ``X-Session-Token`` header.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from survey_flow.engine import SurveyEngine
from survey_flow.models.session import ResumeState, StartResult

from survey_server.dependencies import get_db, get_engine, get_session_token

router = APIRouter(prefix="/respondents", tags=["respondents"])


# ------------------------------------------------------------------
# Request models
# ------------------------------------------------------------------

class StartRequest(BaseModel):
    """Body for POST /respondents/start."""
    full_name: str | None = None
    phone: str | None = None


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------

@router.post("/start")
async def start(
    body: StartRequest,
    db: AsyncSession = Depends(get_db),
    engine: SurveyEngine = Depends(get_engine),
) -> StartResult:
    """Register a new respondent or log a returning one back in.

    Returns the session token and where to resume.  400 on an invalid
    name or phone number.
    """
    return await engine.start(db, full_name=body.full_name, phone=body.phone)


@router.get("/resume")
async def resume(
    token: str | None = Depends(get_session_token),
    db: AsyncSession = Depends(get_db),
    engine: SurveyEngine = Depends(get_engine),
) -> ResumeState:
    """Rebuild client state (progress, saved answers, resume point) from a token."""
    return await engine.resume(db, token)


@router.post("/logout")
async def logout(
    token: str | None = Depends(get_session_token),
    db: AsyncSession = Depends(get_db),
    engine: SurveyEngine = Depends(get_engine),
) -> dict:
    """Acknowledge a logout.  The client discards its token."""
    await engine.logout(db, token)
    return {"status": "ok"}
