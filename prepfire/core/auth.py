from typing import Optional

from fastapi import Request
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from prepfire.core.config import settings
from prepfire.crud import crud_user
from prepfire.db import models as db_models

ACCESS_TOKEN_COOKIE = "access_token_cookie"


def _token_from_request(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[len("Bearer "):].strip() or None
    return request.cookies.get(ACCESS_TOKEN_COOKIE)


async def get_user_from_request(request: Request, db: Session) -> Optional[db_models.User]:
    token = _token_from_request(request)
    if not token:
        return None
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        email: Optional[str] = payload.get("sub")
        if email is None:
            return None

        user = crud_user.user.get_by_email(db, email=email)
        if user and crud_user.user.is_active(user):
            return user
    except JWTError:
        return None
    return None
