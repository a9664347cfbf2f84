"""Admin password hashing and signed admin session tokens."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
ADMIN_SUBJECT = "admin"

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify a password against a hash.  A missing or malformed hash never matches."""
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        logger.error("ADMIN_PASSWORD_HASH is not a valid bcrypt hash")
        return False


def get_password_hash(password: str) -> str:
    """Hash a password."""
    return pwd_context.hash(password)


def create_admin_token(secret: str, hours: int) -> str:
    """Create the JWT stored in the admin session cookie."""
    now = datetime.now(timezone.utc)
    to_encode = {
        "sub": ADMIN_SUBJECT,
        "exp": now + timedelta(hours=hours),
        "iat": now,
        "type": "admin_session",
    }
    return jwt.encode(to_encode, secret, algorithm=ALGORITHM)


def decode_admin_token(token: str, secret: str) -> Optional[dict[str, Any]]:
    """Decode and verify an admin token; None when invalid or expired."""
    try:
        payload = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except JWTError:
        return None
    if payload.get("type") != "admin_session" or payload.get("sub") != ADMIN_SUBJECT:
        return None
    return payload
