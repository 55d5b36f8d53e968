# core/security.py
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from core.config import settings
from core.errors import UnauthorizedError


# ========================================
# 🔑 JWT CONFIG
# ========================================
SECRET_KEY = settings.SECRET_KEY
ALGORITHM = settings.ALGORITHM or "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class OrgContext:
    """Authenticated caller, scoped to one tenant of the identity provider."""

    org_id: str
    subject: Optional[str] = None


# ========================================
# 🔑 Token Helpers
# ========================================
def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode JWT and return payload."""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise UnauthorizedError("Invalid or expired token.")


# ========================================
# 👤 Org context
# ========================================
def get_org_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> OrgContext:
    """Require a bearer token that carries an organization id."""
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("Authentication required.")

    payload = decode_token(credentials.credentials)
    org_id = payload.get("org_id")
    if not org_id:
        raise UnauthorizedError("Token is not scoped to an organization.", code="ORG_CONTEXT_REQUIRED")

    return OrgContext(org_id=str(org_id), subject=payload.get("sub"))
