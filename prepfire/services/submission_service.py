import logging
from datetime import datetime, timezone, timedelta
from typing import List, Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from prepfire.core.config import settings
from prepfire.core.exceptions import ProblemNotFound, SubmissionValidationError
from prepfire.core.logging_config import log_user_event
from prepfire.crud import crud_problem, crud_submission, crud_user
from prepfire.db import models as db_models
from prepfire.sandbox.executor import judge_queue
from prepfire.schemas.submission import (
    SUPPORTED_LANGUAGES, SubmissionCreate, SubmissionInfo, Submission as SubmissionSchema
)

logger = logging.getLogger(__name__)


def validate_code_and_language(code: Optional[str], language: Optional[str]) -> None:
    errors = []
    if not code or not code.strip():
        errors.append("Code is required")
    elif len(code) > settings.MAX_CODE_LENGTH:
        errors.append(f"Code exceeds the maximum length of {settings.MAX_CODE_LENGTH} characters")
    if not language:
        errors.append("Language is required")
    elif language not in SUPPORTED_LANGUAGES:
        errors.append(f"Language {language} is not supported. Use one of: {', '.join(SUPPORTED_LANGUAGES)}")
    if errors:
        raise SubmissionValidationError(errors)


def remaining_cooldown(last_at: Optional[datetime], cooldown_sec: int, now: datetime) -> float:
    if not cooldown_sec or last_at is None:
        return 0.0
    if last_at.tzinfo is None:
        last_at = last_at.replace(tzinfo=timezone.utc)
    remaining = (last_at + timedelta(seconds=cooldown_sec) - now).total_seconds()
    return max(remaining, 0.0)


async def create_submission(
        db: Session,
        submission_data: SubmissionCreate,
        current_user: db_models.User
) -> SubmissionInfo:
    log_details = {"problem_id": submission_data.problem_id, "language": submission_data.language}
    try:
        validate_code_and_language(submission_data.code, submission_data.language)
    except SubmissionValidationError as e:
        log_user_event(user_id=current_user.id, user_email=current_user.email, event_type="submission_create_failed",
                       details={**log_details, "detail": str(e), "status_code": status.HTTP_400_BAD_REQUEST})
        raise

    problem = crud_problem.problem.get_active(db, submission_data.problem_id)
    if not problem:
        log_user_event(user_id=current_user.id, user_email=current_user.email, event_type="submission_create_failed",
                       details={**log_details, "detail": "Problem not found", "status_code": status.HTTP_404_NOT_FOUND})
        raise ProblemNotFound(submission_data.problem_id)

    now = datetime.now(timezone.utc)
    wait = remaining_cooldown(current_user.last_submission_at, settings.SUBMISSION_COOLDOWN_SEC, now)
    if wait > 0:
        log_user_event(user_id=current_user.id, user_email=current_user.email, event_type="submission_rate_limited",
                       details={**log_details, "wait_seconds": wait})
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Please wait {wait:.1f} seconds before submitting again."
        )

    current_user.last_submission_at = now
    db_submission = crud_submission.submission.create_with_owner(
        db=db,
        obj_in=submission_data,
        submitter_id=current_user.id,
        total_test_cases=len(problem.test_cases),
        judge_delay_sec=settings.JUDGE_DELAY_SEC,
    )
    submission_id = db_submission.id

    judge_queue.notify(submission_id, delay_sec=settings.JUDGE_DELAY_SEC)
    log_user_event(user_id=current_user.id, user_email=current_user.email, event_type="submission_created_enqueued",
                   details={**log_details, "submission_id": submission_id})
    logger.info(f"Submission {submission_id[:8]} queued for judging")

    return SubmissionInfo.model_validate(db_submission)


def to_submission_detail(db_submission: db_models.Submission) -> SubmissionSchema:
    info = SubmissionInfo.model_validate(db_submission)
    submitter = db_submission.submitter
    return SubmissionSchema(
        **info.model_dump(),
        code=db_submission.code,
        error_message=db_submission.error_message,
        results=crud_submission.submission.parse_results(db_submission),
        user_email=submitter.email if submitter else None,
    )


def get_submission_by_id(
        db: Session,
        submission_id: str,
        current_user: db_models.User
) -> SubmissionSchema:
    db_submission = crud_submission.submission.get_with_details(db, submission_id)
    if not db_submission:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Submission not found")

    if db_submission.submitter_id != current_user.id and not crud_user.user.is_admin(current_user):
        log_user_event(user_id=current_user.id, user_email=current_user.email, event_type="submission_view_failed",
                       details={"submission_id": submission_id, "detail": "Not authorized",
                                "status_code": status.HTTP_403_FORBIDDEN})
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized to view this submission")

    return to_submission_detail(db_submission)


def get_submissions_for_problem(
        db: Session,
        problem_id: str,
        current_user: db_models.User
) -> List[SubmissionInfo]:
    if not crud_problem.problem.get(db, problem_id):
        raise ProblemNotFound(problem_id)
    db_submissions = crud_submission.submission.get_multi_by_owner_and_problem(
        db, submitter_id=current_user.id, problem_id=problem_id
    )
    return [SubmissionInfo.model_validate(sub) for sub in db_submissions]


def get_submissions_for_user(
        db: Session,
        user_id: int,
        current_user: db_models.User,
        limit: int = 50
) -> List[SubmissionInfo]:
    if user_id != current_user.id and not crud_user.user.is_admin(current_user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized to view these submissions")
    db_submissions = crud_submission.submission.get_multi_by_owner(db, submitter_id=user_id, limit=limit)
    return [SubmissionInfo.model_validate(sub) for sub in db_submissions]


def get_recent_submissions(db: Session, limit: int = 20) -> List[SubmissionInfo]:
    return [SubmissionInfo.model_validate(sub) for sub in crud_submission.submission.get_recent(db, limit=limit)]
