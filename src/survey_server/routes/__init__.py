"""Route registration — mounts all routers under ``/api/v1``."""

from fastapi import FastAPI

from survey_server.routes.admin import router as admin_router
from survey_server.routes.phases import router as phases_router
from survey_server.routes.respondents import router as respondents_router
from survey_server.routes.responses import router as responses_router
from survey_server.routes.survey import router as survey_router

API_PREFIX = "/api/v1"


def register_routes(app: FastAPI) -> None:
    """Include all sub-routers under the versioned API prefix."""
    app.include_router(respondents_router, prefix=API_PREFIX)
    app.include_router(survey_router, prefix=API_PREFIX)
    app.include_router(phases_router, prefix=API_PREFIX)
    app.include_router(responses_router, prefix=API_PREFIX)
    app.include_router(admin_router, prefix=API_PREFIX)
