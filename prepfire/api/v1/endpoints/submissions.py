import logging

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from prepfire.api import deps
from prepfire.db import models as db_models
from prepfire.schemas.run import RunRequest, RunResult
from prepfire.schemas.submission import (
    SubmissionCreate, SubmissionCreated, SubmissionEnvelope, SubmissionList, SubmissionReceipt
)
from prepfire.services import run_service, submission_service

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("", response_model=SubmissionCreated, status_code=status.HTTP_201_CREATED)
async def create_new_submission(
        submission_in: SubmissionCreate,
        db: Session = Depends(deps.get_db),
        current_user: db_models.User = Depends(deps.get_submitter)
):
    submission_info = await submission_service.create_submission(
        db=db,
        submission_data=submission_in,
        current_user=current_user
    )
    return SubmissionCreated(
        submission=SubmissionReceipt(
            id=submission_info.id,
            status=submission_info.status,
            submitted_at=submission_info.submitted_at,
        )
    )


@router.post("/run", response_model=RunResult)
async def run_submission_code(
        run_request: RunRequest,
        db: Session = Depends(deps.get_db),
        current_user: db_models.User = Depends(deps.get_submitter)
) -> RunResult:
    return await run_service.run_code(db=db, run_request=run_request, current_user=current_user)


@router.get("/recent", response_model=SubmissionList)
async def get_recent_submissions(
        limit: int = Query(20, ge=1, le=100),
        db: Session = Depends(deps.get_db),
        current_user: db_models.User = Depends(deps.get_user_auth)
):
    return SubmissionList(submissions=submission_service.get_recent_submissions(db=db, limit=limit))


@router.get("/problem/{problem_id}", response_model=SubmissionList)
async def get_problem_submissions(
        problem_id: str,
        db: Session = Depends(deps.get_db),
        current_user: db_models.User = Depends(deps.get_submitter)
):
    submissions = submission_service.get_submissions_for_problem(
        db=db, problem_id=problem_id, current_user=current_user
    )
    return SubmissionList(submissions=submissions)


@router.get("/user/{user_id}", response_model=SubmissionList)
async def get_user_submissions(
        user_id: int,
        limit: int = Query(50, ge=1, le=200),
        db: Session = Depends(deps.get_db),
        current_user: db_models.User = Depends(deps.get_submitter)
):
    submissions = submission_service.get_submissions_for_user(
        db=db, user_id=user_id, current_user=current_user, limit=limit
    )
    return SubmissionList(submissions=submissions)


@router.get("/{submission_id}", response_model=SubmissionEnvelope)
async def get_submission_details(
        submission_id: str,
        db: Session = Depends(deps.get_db),
        current_user: db_models.User = Depends(deps.get_submitter)
):
    submission = submission_service.get_submission_by_id(db=db, submission_id=submission_id, current_user=current_user)
    return SubmissionEnvelope(submission=submission)
