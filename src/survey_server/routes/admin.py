"""Admin endpoints — login, dashboard analytics, AI summary, dataset management, CSV/XLSX.

Login checks the password against ``ADMIN_PASSWORD_HASH`` (bcrypt) and
sets a signed, HTTP-only ``admin_session`` cookie.  Every other endpoint
requires that cookie and returns 401 without it.

Destructive operations (clear / restore / permanent delete) additionally
require the typed confirmation phrase in the request body.
"""

import logging
from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from survey_db.models.enums import ActorType
from survey_db.repository import SurveyRepository
from survey_flow.admin import AdminService
from survey_flow.csv_io import XLSX_MEDIA_TYPE
from survey_flow.insights import SummaryGenerator
from survey_flow.models.admin import (
    AiSummary,
    DatasetResult,
    FunnelStats,
    ImportResult,
    Overview,
    QuestionAnalytics,
    RespondentPage,
)

from survey_server.config import (
    ADMIN_COOKIE_NAME,
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    ServerSettings,
)
from survey_server.dependencies import (
    get_admin_service,
    get_db,
    get_settings,
    get_summarizer,
    require_admin,
)
from survey_server.security import create_admin_token, verify_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])

_repo = SurveyRepository()


# ------------------------------------------------------------------
# Request models
# ------------------------------------------------------------------

class LoginRequest(BaseModel):
    """Body for POST /admin/login."""
    password: str


class ConfirmRequest(BaseModel):
    """Body for the destructive dataset operations."""
    confirmation: str | None = None


# ------------------------------------------------------------------
# Login / logout
# ------------------------------------------------------------------

@router.post("/login")
async def login(
    body: LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    settings: ServerSettings = Depends(get_settings),
) -> JSONResponse:
    """Exchange the admin password for a session cookie.

    403 when no password hash is configured, 401 on a wrong password.
    """
    if not settings.admin_password_hash:
        raise HTTPException(
            status_code=403,
            detail="Admin login is disabled (ADMIN_PASSWORD_HASH not configured)",
        )
    client_ip = request.client.host if request.client else None
    if not verify_password(body.password, settings.admin_password_hash):
        await _repo.log_event(
            db,
            actor_type=ActorType.ADMIN.value,
            event_type="admin_login_failed",
            payload={"ip": client_ip},
        )
        logger.warning("Failed admin login from %s", client_ip)
        # Returned rather than raised so the audit row is committed
        return JSONResponse(status_code=401, content={"detail": "Invalid password"})

    await _repo.log_event(
        db,
        actor_type=ActorType.ADMIN.value,
        actor_id="admin",
        event_type="admin_login",
        payload={"ip": client_ip},
    )
    response = JSONResponse(content={"status": "ok"})
    response.set_cookie(
        ADMIN_COOKIE_NAME,
        create_admin_token(settings.admin_session_secret, settings.admin_session_hours),
        max_age=settings.admin_session_hours * 3600,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
    )
    return response


@router.post("/logout")
async def logout() -> JSONResponse:
    """Drop the admin session cookie."""
    response = JSONResponse(content={"status": "ok"})
    response.delete_cookie(ADMIN_COOKIE_NAME)
    return response


# ------------------------------------------------------------------
# Dashboard
# ------------------------------------------------------------------

@router.get("/dashboard/overview")
async def overview(
    start: datetime | None = Query(None),
    end: datetime | None = Query(None),
    db: AsyncSession = Depends(get_db),
    admin: AdminService = Depends(get_admin_service),
    _admin: str = Depends(require_admin),
) -> Overview:
    """Totals, funnel, per-phase stats and the latest respondents."""
    return await admin.overview(db, start=start, end=end)


@router.get("/dashboard/funnel")
async def funnel(
    db: AsyncSession = Depends(get_db),
    admin: AdminService = Depends(get_admin_service),
    _admin: str = Depends(require_admin),
) -> FunnelStats:
    return await admin.funnel(db)


@router.get("/dashboard/questions")
async def question_analytics(
    phase: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
    admin: AdminService = Depends(get_admin_service),
    _admin: str = Depends(require_admin),
) -> QuestionAnalytics:
    """Option counts and likert summaries for one phase."""
    return await admin.question_analytics(db, phase)


@router.get("/dashboard/respondents")
async def list_respondents(
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    search: str | None = Query(None),
    phase: str | None = Query(None),
    start: datetime | None = Query(None),
    end: datetime | None = Query(None),
    db: AsyncSession = Depends(get_db),
    admin: AdminService = Depends(get_admin_service),
    _admin: str = Depends(require_admin),
) -> RespondentPage:
    """Paginated active respondents, newest first."""
    return await admin.list_respondents(
        db,
        page=page,
        page_size=page_size,
        search=search,
        phase=phase,
        start=start,
        end=end,
    )


# ------------------------------------------------------------------
# Dataset management
# ------------------------------------------------------------------

@router.post("/dashboard/clear-data")
async def clear_data(
    body: ConfirmRequest,
    db: AsyncSession = Depends(get_db),
    admin: AdminService = Depends(get_admin_service),
    _admin: str = Depends(require_admin),
) -> DatasetResult:
    """Soft-delete every active respondent (reversible)."""
    return await admin.clear_data(db, body.confirmation)


@router.post("/dashboard/restore-data")
async def restore_data(
    body: ConfirmRequest,
    db: AsyncSession = Depends(get_db),
    admin: AdminService = Depends(get_admin_service),
    _admin: str = Depends(require_admin),
) -> DatasetResult:
    return await admin.restore_data(db, body.confirmation)


@router.post("/dashboard/permanent-delete")
async def permanent_delete(
    body: ConfirmRequest,
    db: AsyncSession = Depends(get_db),
    admin: AdminService = Depends(get_admin_service),
    _admin: str = Depends(require_admin),
) -> DatasetResult:
    """Remove cleared respondents and all of their data for good."""
    return await admin.permanent_delete(db, body.confirmation)


# ------------------------------------------------------------------
# AI summary
# ------------------------------------------------------------------

@router.get("/dashboard/ai-summary")
async def latest_summary(
    db: AsyncSession = Depends(get_db),
    admin: AdminService = Depends(get_admin_service),
    _admin: str = Depends(require_admin),
) -> AiSummary:
    """The most recently generated summary (empty if none yet)."""
    return await admin.latest_summary(db)


@router.post("/dashboard/ai-summary")
async def generate_summary(
    db: AsyncSession = Depends(get_db),
    admin: AdminService = Depends(get_admin_service),
    summarizer: SummaryGenerator | None = Depends(get_summarizer),
    _admin: str = Depends(require_admin),
) -> AiSummary:
    """Generate and store a new summary.  503 when no OpenAI key is configured."""
    return await admin.generate_summary(db, summarizer)


# ------------------------------------------------------------------
# Export / import (CSV or XLSX)
# ------------------------------------------------------------------

@router.get("/export")
async def export_dataset(
    kind: Literal["respondents", "responses"] = Query("responses"),
    fmt: Literal["csv", "xlsx"] = Query("csv", alias="format"),
    db: AsyncSession = Depends(get_db),
    admin: AdminService = Depends(get_admin_service),
    _admin: str = Depends(require_admin),
) -> Response:
    """Download respondents or responses (deleted respondents excluded)."""
    content = await admin.export_dataset(db, kind, fmt)
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    media_type = XLSX_MEDIA_TYPE if fmt == "xlsx" else "text/csv; charset=utf-8"
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{kind}_{stamp}.{fmt}"'},
    )


@router.post("/import")
async def import_dataset(
    kind: Literal["respondents", "responses"] = Query(...),
    fmt: Literal["csv", "xlsx"] | None = Query(None, alias="format"),
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    admin: AdminService = Depends(get_admin_service),
    _admin: str = Depends(require_admin),
) -> ImportResult:
    """Upload a file in the export format.  Bad rows are reported by line.

    Without ``format`` the file name decides: ``.xlsx`` is read as a
    workbook, anything else as CSV.
    """
    if fmt is None:
        name = (file.filename or "").lower()
        fmt = "xlsx" if name.endswith(".xlsx") else "csv"
    data = await file.read()
    return await admin.import_dataset(db, kind, data, fmt)
