"""Bearer token verification and role guards.

Tokens are issued by the hosted identity provider; this service only checks
the signature, resolves the profile once per request and hands route handlers
an `Identity`.
"""

from dataclasses import dataclass
from typing import Optional

import jwt
import structlog
from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from .constants import ROLE_ADMIN, ROLE_BUSINESS
from .config import JWT_ALGORITHMS, JWT_AUDIENCE, JWT_SECRET
from .database import get_db
from .models import Profile

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Identity:
    user_id: str
    role: str
    is_banned: bool = False
    name: str | None = None
    email: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_business(self) -> bool:
        return self.role == ROLE_BUSINESS


def extract_bearer_token(authorization: str | None) -> str | None:
    """Return the token from an `Authorization: Bearer <token>` header value.

    Raises:
        HTTPException: 401 when the header is present but malformed.
    """
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(status_code=401, detail="Invalid authorization header format")
    return parts[1]


def decode_access_token(token: str) -> dict:
    """Verify an access token and return its claims.

    Raises:
        HTTPException: 401 for bad signature, expiry, audience or missing subject.
    """
    try:
        claims = jwt.decode(
            token,
            JWT_SECRET,
            algorithms=JWT_ALGORITHMS,
            audience=JWT_AUDIENCE,
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired")
    except jwt.InvalidTokenError as exc:
        logger.info("invalid_access_token", error=str(exc))
        raise HTTPException(status_code=401, detail="Invalid token")
    return claims


def resolve_identity(db: Session, token: str) -> Identity:
    claims = decode_access_token(token)
    profile = db.get(Profile, claims["sub"])
    if profile is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return Identity(
        user_id=profile.id,
        role=profile.role,
        is_banned=bool(profile.is_banned),
        name=profile.name,
        email=profile.email,
    )


def get_optional_identity(
    authorization: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> Identity | None:
    """FastAPI dependency: the caller's identity, or None for anonymous requests."""
    token = extract_bearer_token(authorization)
    if token is None:
        return None
    return resolve_identity(db, token)


def get_identity(identity: Identity | None = Depends(get_optional_identity)) -> Identity:
    """FastAPI dependency: the caller's identity; 401 when anonymous."""
    if identity is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return identity


def get_active_identity(identity: Identity = Depends(get_identity)) -> Identity:
    """Identity of a caller allowed to write content (not banned)."""
    if identity.is_banned:
        raise HTTPException(status_code=403, detail="Your account has been banned")
    return identity


def require_role(*roles: str):
    """Build a dependency that only lets the given roles through.

    Usage:
        router = APIRouter(dependencies=[Depends(require_role("admin"))])
    """

    def guard(identity: Identity = Depends(get_identity)) -> Identity:
        if identity.role not in roles:
            raise HTTPException(status_code=403, detail="Forbidden")
        if identity.is_banned and identity.role != ROLE_ADMIN:
            raise HTTPException(status_code=403, detail="Your account has been banned")
        return identity

    return guard


require_admin = require_role(ROLE_ADMIN)
require_business = require_role(ROLE_BUSINESS)
