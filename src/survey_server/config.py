"""Server configuration — reads settings from environment variables.

All settings have sensible defaults for local development.  In production
the values are typically overridden via env vars or a ``.env`` file.
"""

import logging
import os
import secrets
from dataclasses import dataclass, field

from survey_flow.constants import ADMIN_CONFIRMATION_PHRASE
from survey_flow.insights import DEFAULT_MODEL

logger = logging.getLogger(__name__)

# --- Pagination defaults ---
# Module-level constants read at import time so FastAPI Query() defaults
# can reference them (Query defaults must be static at decoration time).
DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "20"))
MAX_PAGE_SIZE = int(os.getenv("MAX_PAGE_SIZE", "100"))

ADMIN_COOKIE_NAME = "admin_session"


@dataclass(frozen=True)
class ServerSettings:
    """Immutable server configuration read from environment at startup."""

    # Network
    host: str = "0.0.0.0"
    port: int = 8080

    # CORS: comma-separated origins, or "*" for wide-open dev mode
    cors_origins: list[str] = field(default_factory=lambda: ["*"])

    # Questionnaire directory (None → QuestionnaireStore default, v1/ from repo root)
    questionnaire_dir: str | None = None

    # Logging
    log_level: str = "INFO"

    # Admin login: bcrypt hash of the dashboard password (None = login disabled)
    admin_password_hash: str | None = None
    # HS256 key for the admin session cookie
    admin_session_secret: str = field(default_factory=lambda: secrets.token_urlsafe(32))
    admin_session_hours: int = 8
    # Send the admin cookie only over HTTPS
    cookie_secure: bool = False

    # AI summary: OpenAI key (None = summaries disabled) and chat model
    openai_api_key: str | None = None
    openai_model: str = DEFAULT_MODEL

    # Phrase typed to confirm clear / restore / permanent delete
    confirmation_phrase: str = ADMIN_CONFIRMATION_PHRASE


def load_settings() -> ServerSettings:
    """Build settings from ``SERVER_*`` / ``ADMIN_*`` / ``OPENAI_*`` environment variables."""
    raw_origins = os.getenv("SERVER_CORS_ORIGINS", "*")
    origins = [o.strip() for o in raw_origins.split(",") if o.strip()]

    secret = os.getenv("ADMIN_SESSION_SECRET")
    if not secret:
        # Admin sessions will not survive a restart
        logger.warning("ADMIN_SESSION_SECRET not set; using a random per-process key")
        secret = secrets.token_urlsafe(32)

    return ServerSettings(
        host=os.getenv("SERVER_HOST", "0.0.0.0"),
        port=int(os.getenv("SERVER_PORT", "8080")),
        cors_origins=origins,
        questionnaire_dir=os.getenv("QUESTIONNAIRE_DIR") or None,
        log_level=os.getenv("SERVER_LOG_LEVEL", "INFO").upper(),
        admin_password_hash=os.getenv("ADMIN_PASSWORD_HASH") or None,
        admin_session_secret=secret,
        admin_session_hours=int(os.getenv("ADMIN_SESSION_HOURS", "8")),
        cookie_secure=os.getenv("ADMIN_COOKIE_SECURE", "false").lower() in ("1", "true", "yes"),
        openai_api_key=os.getenv("OPENAI_API_KEY") or None,
        openai_model=os.getenv("OPENAI_MODEL", DEFAULT_MODEL),
        confirmation_phrase=ADMIN_CONFIRMATION_PHRASE,
    )
