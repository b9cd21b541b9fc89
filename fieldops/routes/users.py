import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from ..auth import AuthLookupUnavailable, get_auth_cache, resolve_user, security
from ..cache import AuthCache
from ..database import get_db
from ..schemas import CurrentUserResponse, SuccessResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/user", tags=["Users"])


@router.get("/current", response_model=CurrentUserResponse)
async def current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
    cache: AuthCache = Depends(get_auth_cache),
):
    """
    Current user profile.

    Lookup problems are reported as 503 rather than 401 so the frontend
    retries instead of signing the user out.
    """
    if not credentials:
        raise HTTPException(status_code=401, detail="Unauthorized")

    try:
        user = resolve_user(credentials.credentials, db, cache)
    except AuthLookupUnavailable:
        return JSONResponse(
            status_code=503,
            content={"error": "Temporary authentication issue", "transient": True},
        )

    if not user:
        logger.warning("⚠️ Valid token but no active user row, reporting as temporarily unavailable")
        return JSONResponse(
            status_code=503,
            content={"error": "Service temporarily unavailable", "rateLimited": True},
        )

    return CurrentUserResponse(id=user.id, email=user.email, full_name=user.full_name, role=user.role)


@router.post("/logout", response_model=SuccessResponse)
async def logout(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    cache: AuthCache = Depends(get_auth_cache),
):
    """Drop the cached auth result for this token"""
    if credentials and cache.invalidate(credentials.credentials):
        logger.info("🔓 Auth cache entry invalidated on logout")
    return SuccessResponse()
