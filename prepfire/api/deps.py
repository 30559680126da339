from typing import Generator

from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from prepfire.core.auth import get_user_from_request
from prepfire.core.config import settings
from prepfire.crud import crud_user
from prepfire.db import models as db_models
from prepfire.db.session import SessionLocal


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


async def get_user_auth(
        request: Request, db: Session = Depends(get_db)
) -> db_models.User:
    user = await get_user_from_request(request, db)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return user


async def get_submitter(
        request: Request, db: Session = Depends(get_db)
) -> db_models.User:
    """Authenticated user, or the configured fallback user for anonymous requests."""
    user = await get_user_from_request(request, db)
    if user:
        return user
    if settings.FALLBACK_USER_EMAIL:
        return crud_user.user.get_or_create(db, email=settings.FALLBACK_USER_EMAIL)
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
    )


async def verify_admin_token(
        auth: HTTPAuthorizationCredentials = Depends(HTTPBearer())
) -> bool:
    if not settings.ADMIN_TOKEN:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Admin token not configured.")

    if auth.scheme != "Bearer" or auth.credentials != settings.ADMIN_TOKEN:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing admin token",
        )
    return True
