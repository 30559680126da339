from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from prepfire.api import deps
from prepfire.db import models as db_models
from prepfire.schemas.user import UserProgress, UserPublic
from prepfire.services import user_service

router = APIRouter()


@router.get("/me", response_model=UserPublic)
async def read_current_user(current_user: db_models.User = Depends(deps.get_user_auth)):
    return current_user


@router.get("/me/progress", response_model=UserProgress)
async def read_current_user_progress(
        db: Session = Depends(deps.get_db),
        current_user: db_models.User = Depends(deps.get_submitter)
):
    return user_service.build_user_progress(db, current_user)
