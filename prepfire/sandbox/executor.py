import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from prepfire.core.config import settings
from prepfire.core.logging_config import log_judge_event
from prepfire.crud import crud_judge_task, crud_submission
from prepfire.db.session import SessionLocal
from prepfire.sandbox.engine import ExecutionEngine, ExecutionLimits, ExecutionResult, get_execution_engine
from prepfire.schemas.problem import TestCase, points_for_difficulty
from prepfire.schemas.submission import SubmissionStatus, TERMINAL_STATUSES, TestCaseResult, Verdict
from prepfire.services.statistics_service import apply_judged_submission

logger = logging.getLogger(__name__)


def failure_verdict(status: SubmissionStatus, total_test_cases: int, message: str) -> Verdict:
    return Verdict(status=status, test_cases_passed=0, total_test_cases=total_test_cases, score=0,
                   error_message=message)


def classify_execution(result: ExecutionResult, test_cases: List[TestCase]) -> Verdict:
    """Maps an engine result onto exactly one terminal status."""
    total = len(test_cases)
    if not total:
        raise ValueError("Problem has no test cases")
    if result.compilation_error is not None:
        return failure_verdict(SubmissionStatus.COMPILATION_ERROR, total, result.compilation_error)

    by_name = {tc.name: tc for tc in test_cases}
    if len(result.cases) > total or any(case.name not in by_name for case in result.cases):
        raise ValueError("Execution result does not match the problem's test cases")

    results: List[TestCaseResult] = []
    passed = passed_weight = 0
    first_failure = None
    for case in result.cases:
        tc = by_name[case.name]
        ok = case.status == SubmissionStatus.ACCEPTED
        if ok:
            passed += 1
            passed_weight += tc.weight
        elif first_failure is None:
            first_failure = case
        results.append(TestCaseResult(
            test_case_name=case.name,
            status=case.status,
            passed=ok,
            hidden=tc.is_hidden,
            stdout=None if tc.is_hidden else case.stdout,
            stderr=None if tc.is_hidden else case.stderr,
            execution_time_ms=case.execution_time_ms,
            memory_used_kb=case.memory_used_kb,
        ))

    if first_failure is None and passed < total:
        raise ValueError(f"Execution result covers {passed} of {total} test cases")

    total_weight = sum(tc.weight for tc in test_cases)
    score = round(passed_weight * 100 / total_weight) if total_weight else 0
    status = first_failure.status if first_failure else SubmissionStatus.ACCEPTED
    if status == SubmissionStatus.PENDING:
        raise ValueError("Execution engine reported a non-terminal case status")

    error_message = None
    if first_failure is not None:
        error_message = f"Failed on test case {first_failure.name}"
        if first_failure.stderr and not by_name[first_failure.name].is_hidden:
            error_message += f": {first_failure.stderr[:500]}"

    return Verdict(
        status=status,
        test_cases_passed=passed,
        total_test_cases=total,
        score=score,
        runtime_ms=result.runtime_ms,
        memory_mb=result.memory_mb,
        error_message=error_message,
        results=results,
    )


class SubmissionJudge:
    """
    Drives one submission from pending to a terminal status and then folds it into
    the aggregates. Safe to invoke any number of times for the same submission.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal,
                 engine: Optional[ExecutionEngine] = None,
                 execution_timeout_sec: Optional[float] = None):
        self.session_factory = session_factory
        self._engine = engine
        self.execution_timeout_sec = execution_timeout_sec or settings.JUDGE_EXECUTION_TIMEOUT_SEC

    @property
    def engine(self) -> ExecutionEngine:
        if self._engine is None:
            self._engine = get_execution_engine()
        return self._engine

    async def judge(self, submission_id: str) -> Optional[SubmissionStatus]:
        db = self.session_factory()
        try:
            sub = crud_submission.submission.get(db, id_=submission_id)
            if not sub:
                logger.warning(f"Judge: submission {submission_id} not found")
                return None

            if sub.status in TERMINAL_STATUSES:
                if not sub.stats_applied:
                    logger.info(f"Judge: reconciling aggregates for terminal submission {submission_id}")
                    apply_judged_submission(db, sub)
                return SubmissionStatus(sub.status)

            problem = sub.problem
            code, language = sub.code, sub.language
            test_cases = [
                TestCase(name=tc.name, input=tc.input, expected_output=tc.expected_output,
                         is_hidden=tc.is_hidden, weight=tc.weight)
                for tc in problem.test_cases
            ]
            limits = ExecutionLimits(time_limit_sec=problem.time_limit_sec,
                                     memory_limit_mb=problem.memory_limit_mb)
            problem_points = points_for_difficulty(problem.difficulty, problem.points)
        finally:
            db.close()

        log_judge_event(submission_id, "judge_started",
                        {"language": language, "test_cases": len(test_cases), "engine": self.engine.name})
        verdict = await self._execute(submission_id, code, language, test_cases, limits)
        points = problem_points if verdict.status == SubmissionStatus.ACCEPTED else 0

        db = self.session_factory()
        try:
            judged_at = datetime.now(timezone.utc)
            newly_terminal = crud_submission.submission.finalize(
                db, id_=submission_id, verdict=verdict, points=points, judged_at=judged_at
            )
            if not newly_terminal:
                logger.info(f"Judge: submission {submission_id} was already terminal, skipping")
                sub = crud_submission.submission.get(db, id_=submission_id)
                if sub is not None and not sub.stats_applied:
                    apply_judged_submission(db, sub)
                return SubmissionStatus(sub.status) if sub is not None else None

            log_judge_event(submission_id, "judge_finished", {
                "status": verdict.status.value,
                "passed": verdict.test_cases_passed,
                "total": verdict.total_test_cases,
                "runtime_ms": verdict.runtime_ms,
                "memory_mb": verdict.memory_mb,
            })
            sub = crud_submission.submission.get(db, id_=submission_id)
            apply_judged_submission(db, sub)
            return verdict.status
        finally:
            db.close()

    async def _execute(self, submission_id: str, code: str, language: str, test_cases: List[TestCase],
                       limits: ExecutionLimits) -> Verdict:
        total = len(test_cases)
        try:
            result = await asyncio.wait_for(
                self.engine.execute(code, language, test_cases, limits),
                timeout=self.execution_timeout_sec,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Judge: execution of {submission_id} exceeded {self.execution_timeout_sec}s")
            return failure_verdict(SubmissionStatus.TIME_LIMIT_EXCEEDED, total,
                                   f"Execution exceeded the {self.execution_timeout_sec:g}s judging deadline")
        except Exception as e:
            logger.error(f"Judge: execution engine failed for {submission_id}", exc_info=True)
            return failure_verdict(SubmissionStatus.RUNTIME_ERROR, total,
                                   f"Execution failed: {type(e).__name__}: {e}")

        try:
            if not isinstance(result, ExecutionResult):
                raise ValueError(f"Execution engine returned {type(result).__name__}")
            return classify_execution(result, test_cases)
        except ValueError as e:
            logger.error(f"Judge: malformed execution result for {submission_id}: {e}")
            return failure_verdict(SubmissionStatus.RUNTIME_ERROR, total, f"Malformed execution result: {e}")


class JudgeTaskQueue:
    """
    asyncio workers over the durable judge_tasks table.

    A task is leased for `visibility_timeout_sec`; it is marked done only after the
    judge returned, so a crash anywhere in between leaves it claimable again once the
    lease expires. `notify` is an in-process hint that wakes an idle worker early.
    """

    def __init__(self, worker_count: int, judge: Optional[SubmissionJudge] = None,
                 session_factory: Callable[[], Session] = SessionLocal,
                 poll_interval_sec: Optional[float] = None,
                 visibility_timeout_sec: Optional[float] = None,
                 max_attempts: Optional[int] = None,
                 retry_base_sec: float = 1.0):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._worker_count = worker_count
        self._workers: List[asyncio.Task] = []
        self.session_factory = session_factory
        self.judge = judge or SubmissionJudge(session_factory=session_factory)
        self.poll_interval_sec = poll_interval_sec or settings.JUDGE_POLL_INTERVAL_SEC
        self.visibility_timeout_sec = visibility_timeout_sec or settings.JUDGE_VISIBILITY_TIMEOUT_SEC
        self.max_attempts = max_attempts or settings.JUDGE_MAX_ATTEMPTS
        self.retry_base_sec = retry_base_sec

    @property
    def running(self) -> bool:
        return bool(self._workers)

    async def start_workers(self):
        if self._workers: return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._workers = [loop.create_task(self._worker(worker_id=i)) for i in range(self._worker_count)]
        logger.info(f"Judge queue started with {self._worker_count} workers")

    async def stop_workers(self):
        if not self._workers: return
        for _ in self._workers: await self._queue.put(None)
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        while not self._queue.empty():
            try:
                self._queue.get_nowait()
                self._queue.task_done()
            except asyncio.QueueEmpty:
                break
        logger.info("Judge queue stopped")

    def notify(self, submission_id: str, delay_sec: float = 0.0):
        if not self._workers:
            return
        loop = asyncio.get_running_loop()
        if delay_sec > 0:
            loop.call_later(delay_sec, self._queue.put_nowait, submission_id)
        else:
            self._queue.put_nowait(submission_id)

    async def _worker(self, worker_id: int):
        while True:
            try:
                hint = await asyncio.wait_for(self._queue.get(), timeout=self.poll_interval_sec)
                self._queue.task_done()
                if hint is None:
                    break
            except asyncio.TimeoutError:
                pass

            try:
                while await self.process_next(worker_id):
                    pass
            except Exception:
                logger.error(f"Judge worker {worker_id} failed while polling tasks", exc_info=True)

    async def process_next(self, worker_id: int = 0) -> bool:
        """Claims and judges one task. Returns False when nothing was claimable."""
        db = self.session_factory()
        try:
            task = crud_judge_task.judge_task.claim_next(db, visibility_timeout_sec=self.visibility_timeout_sec)
        finally:
            db.close()
        if task is None:
            return False

        logger.info(f"Worker {worker_id}: judging submission {task.submission_id} (attempt {task.attempts})")
        try:
            await self.judge.judge(task.submission_id)
        except Exception as e:
            logger.error(f"Worker {worker_id}: judging {task.submission_id} raised", exc_info=True)
            self._handle_failure(task, f"{type(e).__name__}: {e}")
            return True

        db = self.session_factory()
        try:
            crud_judge_task.judge_task.complete(db, task_id=task.id)
        finally:
            db.close()
        return True

    def _handle_failure(self, task: crud_judge_task.ClaimedTask, error: str):
        db = self.session_factory()
        try:
            if task.attempts < self.max_attempts:
                retry_in = self.retry_base_sec * (2 ** (task.attempts - 1))
                logger.warning(f"Judge task {task.id} failed (attempt {task.attempts}), retrying in {retry_in}s: {error}")
                crud_judge_task.judge_task.release(db, task_id=task.id, error=error, retry_in_sec=retry_in)
                return

            logger.error(f"Judge task {task.id} failed permanently after {task.attempts} attempts: {error}")
            crud_judge_task.judge_task.fail(db, task_id=task.id, error=error)
            sub = crud_submission.submission.get(db, id_=task.submission_id)
            total = sub.total_test_cases if sub is not None else 0
            forced = crud_submission.submission.finalize(
                db,
                id_=task.submission_id,
                verdict=failure_verdict(SubmissionStatus.RUNTIME_ERROR, total, "Judging failed, please resubmit"),
                points=0,
                judged_at=datetime.now(timezone.utc),
            )
            if forced:
                log_judge_event(task.submission_id, "judge_forced_terminal", {"error": error[:500]})
            sub = crud_submission.submission.get(db, id_=task.submission_id)
            if sub is not None and not sub.stats_applied:
                try:
                    apply_judged_submission(db, sub)
                except Exception:
                    logger.error(f"Aggregates for {task.submission_id} left unapplied, run a statistics rebuild",
                                 exc_info=True)
        finally:
            db.close()


judge = SubmissionJudge()
judge_queue = JudgeTaskQueue(worker_count=settings.JUDGE_WORKER_COUNT, judge=judge)


async def judge_submission(submission_id: str) -> Optional[SubmissionStatus]:
    """Single judging entry point shared by every intake path."""
    return await judge.judge(submission_id)
