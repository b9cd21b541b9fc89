import hmac
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from jose import jwt as jose_jwt
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .cache import AuthCache
from .config import CRON_SECRET, SUPABASE_JWT_AUDIENCE, SUPABASE_JWT_SECRET
from .database import get_db
from .models import MANAGER_ROLES, TECHNICIAN_ADMIN_ROLES, User

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

ALGORITHM = "HS256"


class AuthLookupUnavailable(Exception):
    """User lookup failed for a transient reason (database or network hiccup)"""


@dataclass(frozen=True)
class CurrentUser:
    """Detached snapshot of the authenticated user, safe to keep in the auth cache"""

    id: str
    organization_id: str
    email: str
    full_name: Optional[str]
    role: str
    is_active: bool = True

    @property
    def is_manager(self) -> bool:
        return self.role in MANAGER_ROLES

    @classmethod
    def from_model(cls, user: User) -> "CurrentUser":
        return cls(
            id=user.id,
            organization_id=user.organization_id,
            email=user.email,
            full_name=user.full_name,
            role=user.role,
            is_active=bool(user.is_active),
        )


def get_auth_cache(request: Request) -> AuthCache:
    """Application-scoped auth cache created in the lifespan handler"""
    cache = getattr(request.app.state, "auth_cache", None)
    if cache is None:
        cache = AuthCache()
        request.app.state.auth_cache = cache
    return cache


def decode_access_token(token: str) -> dict:
    """Verify a Supabase access token and return its claims"""
    if not SUPABASE_JWT_SECRET:
        logger.error("❌ SUPABASE_JWT_SECRET not configured")
        raise HTTPException(status_code=500, detail="Authentication not configured")

    try:
        claims = jose_jwt.decode(
            token,
            SUPABASE_JWT_SECRET,
            algorithms=[ALGORITHM],
            audience=SUPABASE_JWT_AUDIENCE,
        )
    except JWTError as e:
        logger.info(f"ℹ️ Rejected access token: {e}")
        raise HTTPException(status_code=401, detail="Invalid or expired token") from e

    if not claims.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid token claims")
    return claims


def resolve_user(token: str, db: Session, cache: AuthCache) -> Optional[CurrentUser]:
    """
    Resolve a bearer token to a user, memoized for the cache TTL.

    Returns None when the token is valid but no active user row matches.
    Raises AuthLookupUnavailable when the user table cannot be read and no
    previous result is cached.
    """
    cached = cache.get(token)
    if cached is not None:
        return cached

    claims = decode_access_token(token)

    try:
        user = (
            db.query(User)
            .filter(User.id == claims["sub"], User.is_active.is_(True))
            .first()
        )
    except SQLAlchemyError as e:
        logger.warning(f"⚠️ User lookup failed (transient): {e}")
        stale = cache.get_stale(token)
        if stale is not None:
            logger.info("ℹ️ Serving stale auth result after lookup failure")
            return stale
        raise AuthLookupUnavailable(str(e)) from e

    if not user:
        # Don't cache misses
        return None

    current = CurrentUser.from_model(user)
    cache.set(token, current)
    return current


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
    cache: AuthCache = Depends(get_auth_cache),
) -> CurrentUser:
    """Get current user from the Supabase bearer token"""
    if not credentials:
        raise HTTPException(status_code=401, detail="Unauthorized")

    try:
        user = resolve_user(credentials.credentials, db, cache)
    except AuthLookupUnavailable as e:
        raise HTTPException(status_code=503, detail="User lookup temporarily unavailable") from e

    if not user:
        raise HTTPException(status_code=401, detail="Unauthorized")

    return user


async def require_manager(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Owner, admin, manager or dispatcher"""
    if user.role not in MANAGER_ROLES:
        logger.warning(f"⚠️ User {user.email} with role {user.role} attempted a manager action")
        raise HTTPException(status_code=403, detail="Forbidden")
    return user


async def require_technician_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
    cache: AuthCache = Depends(get_auth_cache),
) -> CurrentUser:
    """Technician account management: any failure is reported as 401"""
    if not credentials:
        raise HTTPException(status_code=401, detail="Unauthorized")
    try:
        user = resolve_user(credentials.credentials, db, cache)
    except AuthLookupUnavailable as e:
        raise HTTPException(status_code=503, detail="User lookup temporarily unavailable") from e
    if not user or user.role not in TECHNICIAN_ADMIN_ROLES:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user


async def verify_cron_request(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> None:
    """Scan endpoints: require the shared cron secret when one is configured"""
    if not CRON_SECRET:
        return
    if not credentials or not hmac.compare_digest(credentials.credentials, CRON_SECRET):
        logger.warning("⚠️ Scan request rejected: bad or missing cron secret")
        raise HTTPException(status_code=401, detail="Unauthorized")
