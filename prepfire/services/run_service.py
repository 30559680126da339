import asyncio
import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from prepfire.core.config import settings
from prepfire.core.exceptions import ProblemNotFound, SubmissionValidationError
from prepfire.core.logging_config import log_user_event
from prepfire.crud import crud_problem
from prepfire.db import models as db_models
from prepfire.sandbox.engine import ExecutionEngine, ExecutionLimits, get_execution_engine
from prepfire.sandbox.executor import classify_execution
from prepfire.schemas.problem import TestCase
from prepfire.schemas.run import RunCaseResult, RunRequest, RunResult
from prepfire.schemas.submission import SubmissionStatus
from prepfire.services.submission_service import remaining_cooldown, validate_code_and_language

logger = logging.getLogger(__name__)


def _resolve_test_cases(db: Session, run_request: RunRequest):
    if run_request.test_cases:
        limits = ExecutionLimits(time_limit_sec=settings.DEFAULT_TIME_LIMIT_SEC,
                                 memory_limit_mb=settings.DEFAULT_MEMORY_LIMIT_MB)
        cases = [
            TestCase(name=f"case-{i}", input=tc.input, expected_output=tc.expected_output)
            for i, tc in enumerate(run_request.test_cases, start=1)
        ]
    elif run_request.problem_id:
        problem = crud_problem.problem.get_active(db, run_request.problem_id)
        if not problem:
            raise ProblemNotFound(run_request.problem_id)
        limits = ExecutionLimits(time_limit_sec=problem.time_limit_sec, memory_limit_mb=problem.memory_limit_mb)
        cases = [
            TestCase(name=tc.name, input=tc.input, expected_output=tc.expected_output)
            for tc in problem.test_cases if not tc.is_hidden
        ]
    else:
        raise SubmissionValidationError(["Either problemId or testCases is required"])

    if not cases:
        raise SubmissionValidationError(["No sample test cases to run against"])
    return cases, limits


async def run_code(
        db: Session,
        run_request: RunRequest,
        current_user: db_models.User,
        engine: Optional[ExecutionEngine] = None
) -> RunResult:
    """
    Executes code against sample or caller-provided cases. Nothing about the run is
    persisted and no statistics change.
    """
    validate_code_and_language(run_request.code, run_request.language)
    test_cases, limits = _resolve_test_cases(db, run_request)

    now = datetime.now(timezone.utc)
    wait = remaining_cooldown(current_user.last_run_at, settings.RUN_COOLDOWN_SEC, now)
    if wait > 0:
        log_user_event(user_id=current_user.id, user_email=current_user.email, event_type="run_rate_limited",
                       details={"language": run_request.language, "remaining_wait_sec": wait})
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Please wait {wait:.1f} seconds before running code again."
        )
    if settings.RUN_COOLDOWN_SEC:
        current_user.last_run_at = now
        db.commit()

    log_user_event(user_id=current_user.id, user_email=current_user.email, event_type="run_request",
                   details={"language": run_request.language, "problem_id": run_request.problem_id,
                            "test_cases": len(test_cases)})

    engine = engine or get_execution_engine(stop_on_failure=False)
    try:
        result = await asyncio.wait_for(
            engine.execute(run_request.code, run_request.language, test_cases, limits),
            timeout=settings.JUDGE_EXECUTION_TIMEOUT_SEC,
        )
        verdict = classify_execution(result, test_cases)
    except asyncio.TimeoutError:
        return RunResult(status=SubmissionStatus.TIME_LIMIT_EXCEEDED,
                         error_message="Execution exceeded the judging deadline")
    except Exception as e:
        logger.error(f"Dry run failed for user {current_user.email}: {e}", exc_info=True)
        return RunResult(status=SubmissionStatus.RUNTIME_ERROR, error_message=f"Execution failed: {e}")

    if verdict.status == SubmissionStatus.COMPILATION_ERROR:
        return RunResult(status=verdict.status, error_message=verdict.error_message)

    executed = {case.name: case for case in result.cases}
    results: List[RunCaseResult] = []
    for tc in test_cases:
        case = executed.get(tc.name)
        if case is None:
            continue
        results.append(RunCaseResult(
            input=tc.input,
            expected_output=tc.expected_output,
            actual_output=case.stdout,
            passed=case.status == SubmissionStatus.ACCEPTED,
            status=case.status,
            execution_time_ms=case.execution_time_ms,
            memory_used_kb=case.memory_used_kb,
            error=case.stderr,
        ))

    return RunResult(
        status=verdict.status,
        results=results,
        runtime_ms=verdict.runtime_ms,
        memory_mb=verdict.memory_mb,
        error_message=verdict.error_message,
    )
