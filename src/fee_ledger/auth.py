"""Authentication, role checks and rate limiting helpers for the API."""

import logging
import time
from dataclasses import dataclass, field
from typing import Optional, FrozenSet

import jwt
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from slowapi import Limiter
from slowapi.util import get_remote_address

from .config import get_settings

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("fee_ledger.security")

ROLE_STUDENT = "student"
ROLE_ADMIN = "admin"

# auto_error=False so a missing header is a 401 rather than FastAPI's 403
security = HTTPBearer(auto_error=False)

# Rate limiter
limiter = Limiter(key_func=get_remote_address, enabled=get_settings().rate_limit_enabled)


@dataclass(frozen=True)
class Principal:
    """Authenticated caller taken from a bearer token."""
    subject: str
    roles: FrozenSet[str] = field(default_factory=frozenset)

    def has_any_role(self, *roles: str) -> bool:
        return bool(self.roles.intersection(r.lower() for r in roles))


def _roles_from_claims(claims: dict) -> FrozenSet[str]:
    raw = claims.get("roles", claims.get("role", []))
    if isinstance(raw, str):
        raw = [raw]
    return frozenset(str(r).strip().lower() for r in raw if str(r).strip())


def decode_token(token: str) -> Principal:
    """Decode and validate a bearer JWT.

    Raises:
        HTTPException: 401 if the token is invalid or has no subject.
        HTTPException: 500 if JWT_SECRET is not configured.
    """
    settings = get_settings()
    if not settings.jwt_secret:
        logger.error("JWT_SECRET environment variable is not configured")
        raise HTTPException(status_code=500, detail="Server configuration error")
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.PyJWTError as e:
        security_logger.info(f"Rejected bearer token: {type(e).__name__}")
        raise HTTPException(status_code=401, detail="Invalid token")
    subject = claims.get("sub")
    if not subject:
        raise HTTPException(status_code=401, detail="Invalid token")
    return Principal(subject=str(subject), roles=_roles_from_claims(claims))


def create_token(subject: str, role: str, expires_in: Optional[int] = 3600) -> str:
    """Issue a signed token. Used by local tooling and tests."""
    settings = get_settings()
    claims = {"sub": subject, "role": role, "iat": int(time.time())}
    if expires_in is not None:
        claims["exp"] = int(time.time()) + expires_in
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


async def get_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
) -> Principal:
    """Resolve the caller from the Authorization header.

    Raises:
        HTTPException: 401 if the header is missing or the token is invalid.
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Authentication required")
    return decode_token(credentials.credentials)


def require_roles(*roles: str):
    """Dependency factory allowing callers holding any of ``roles``."""

    async def _dep(principal: Principal = Depends(get_principal)) -> Principal:
        if roles and not principal.has_any_role(*roles):
            security_logger.info(
                f"Denied {principal.subject} with roles {sorted(principal.roles)}; "
                f"needs one of {sorted(roles)}"
            )
            raise HTTPException(status_code=403, detail="Insufficient role")
        return principal

    return _dep
