import asyncio

import pytest
from sqlalchemy.orm import Session

from prepfire.db import models
from prepfire.sandbox import executor
from prepfire.sandbox.engine import CaseExecution, ExecutionResult
from prepfire.sandbox.executor import classify_execution
from prepfire.schemas.problem import TestCase
from prepfire.schemas.submission import SubmissionStatus

CASES = [
    TestCase(name="sample-1", input="1 2", expected_output="3", weight=1),
    TestCase(name="hidden-1", input="2 2", expected_output="4", is_hidden=True, weight=3),
]


def _case(name, status, **kwargs):
    return CaseExecution(name=name, status=status, execution_time_ms=5.0, memory_used_kb=1024, **kwargs)


def test_classify_all_passed_is_accepted():
    result = ExecutionResult(
        cases=[_case("sample-1", SubmissionStatus.ACCEPTED), _case("hidden-1", SubmissionStatus.ACCEPTED)],
        runtime_ms=5.0, memory_mb=1.0,
    )
    verdict = classify_execution(result, CASES)
    assert verdict.status == SubmissionStatus.ACCEPTED
    assert verdict.test_cases_passed == 2
    assert verdict.score == 100
    assert verdict.error_message is None


def test_classify_first_failure_decides_status_and_score_is_weighted():
    result = ExecutionResult(cases=[
        _case("sample-1", SubmissionStatus.ACCEPTED),
        _case("hidden-1", SubmissionStatus.TIME_LIMIT_EXCEEDED, stderr="killed"),
    ])
    verdict = classify_execution(result, CASES)
    assert verdict.status == SubmissionStatus.TIME_LIMIT_EXCEEDED
    assert verdict.test_cases_passed == 1
    assert verdict.total_test_cases == 2
    assert verdict.score == 25
    hidden = verdict.results[1]
    assert hidden.hidden is True
    assert hidden.stderr is None
    assert "killed" not in verdict.error_message


def test_classify_compilation_error():
    verdict = classify_execution(ExecutionResult(compilation_error="expected ';'"), CASES)
    assert verdict.status == SubmissionStatus.COMPILATION_ERROR
    assert verdict.test_cases_passed == 0
    assert verdict.error_message == "expected ';'"


def test_classify_rejects_results_for_unknown_cases():
    result = ExecutionResult(cases=[_case("nope", SubmissionStatus.ACCEPTED)])
    with pytest.raises(ValueError):
        classify_execution(result, CASES)


def test_classify_rejects_incomplete_all_pass_result():
    result = ExecutionResult(cases=[_case("sample-1", SubmissionStatus.ACCEPTED)])
    with pytest.raises(ValueError):
        classify_execution(result, CASES)


async def test_judge_accepts_and_records_results(db: Session, test_user, problem, make_submission, make_judge,
                                                scripted_engine):
    sub = make_submission(test_user, problem)
    judge = make_judge(scripted_engine())

    status = await judge.judge(sub.id)

    assert status == SubmissionStatus.ACCEPTED
    db.expire_all()
    sub = db.get(models.Submission, sub.id)
    assert sub.status == "accepted"
    assert sub.test_cases_passed == 2
    assert sub.total_test_cases == 2
    assert sub.score == 100
    assert sub.points == 10
    assert sub.runtime_ms == 20.0
    assert sub.memory_mb == 4.0
    assert sub.judged_at is not None
    assert sub.stats_applied is True


async def test_judge_twice_is_a_noop(db: Session, test_user, problem, make_submission, make_judge, scripted_engine):
    sub = make_submission(test_user, problem)
    engine = scripted_engine()
    judge = make_judge(engine)

    await judge.judge(sub.id)
    second = await judge.judge(sub.id)

    assert second == SubmissionStatus.ACCEPTED
    assert engine.calls == 1
    db.expire_all()
    assert db.get(models.Problem, problem.id).total_submissions == 1
    assert db.get(models.User, test_user.id).total_submissions == 1


async def test_concurrent_judges_of_same_submission_apply_once(db: Session, test_user, problem, make_submission,
                                                              make_judge, scripted_engine):
    sub = make_submission(test_user, problem)
    judge_a = make_judge(scripted_engine(delay_sec=0.01))
    judge_b = make_judge(scripted_engine([SubmissionStatus.WRONG_ANSWER], delay_sec=0.02))

    await asyncio.gather(judge_a.judge(sub.id), judge_b.judge(sub.id))

    db.expire_all()
    sub = db.get(models.Submission, sub.id)
    assert sub.status == "accepted"
    assert db.get(models.Problem, problem.id).total_submissions == 1
    assert db.get(models.User, test_user.id).solved_count == 1


async def test_engine_exception_forces_runtime_error(db: Session, test_user, problem, make_submission, make_judge,
                                                     scripted_engine):
    sub = make_submission(test_user, problem)
    judge = make_judge(scripted_engine(error=RuntimeError("sandbox unavailable")))

    status = await judge.judge(sub.id)

    assert status == SubmissionStatus.RUNTIME_ERROR
    db.expire_all()
    sub = db.get(models.Submission, sub.id)
    assert sub.status == "runtime_error"
    assert sub.test_cases_passed == 0
    assert "sandbox unavailable" in sub.error_message


async def test_execution_deadline_forces_time_limit(db: Session, test_user, problem, make_submission,
                                                           make_judge, scripted_engine):
    sub = make_submission(test_user, problem)
    judge = make_judge(scripted_engine(delay_sec=5), execution_timeout_sec=0.05)

    status = await asyncio.wait_for(judge.judge(sub.id), timeout=2)

    assert status == SubmissionStatus.TIME_LIMIT_EXCEEDED
    db.expire_all()
    sub = db.get(models.Submission, sub.id)
    assert sub.status == "time_limit_exceeded"
    assert sub.test_cases_passed == 0


async def test_malformed_engine_result_forces_runtime_error(db: Session, test_user, problem, make_submission,
                                                            make_judge, scripted_engine):
    sub = make_submission(test_user, problem)
    bogus = ExecutionResult(cases=[CaseExecution(name="not-a-case", status=SubmissionStatus.ACCEPTED)])
    judge = make_judge(scripted_engine(result=bogus))

    assert await judge.judge(sub.id) == SubmissionStatus.RUNTIME_ERROR
    db.expire_all()
    assert db.get(models.Submission, sub.id).status == "runtime_error"


async def test_compilation_error_is_terminal(db: Session, test_user, problem, make_submission, make_judge,
                                             scripted_engine):
    sub = make_submission(test_user, problem, code="int main( {", language="c")
    judge = make_judge(scripted_engine(compilation_error="error: expected declaration"))

    assert await judge.judge(sub.id) == SubmissionStatus.COMPILATION_ERROR
    db.expire_all()
    sub = db.get(models.Submission, sub.id)
    assert sub.status == "compilation_error"
    assert sub.points == 0


async def test_aggregate_failure_keeps_terminal_status_and_reconciles(db: Session, test_user, problem,
                                                                      make_submission, make_judge, scripted_engine,
                                                                      mocker):
    sub = make_submission(test_user, problem)
    judge = make_judge(scripted_engine())
    real_apply = executor.apply_judged_submission
    mocker.patch("prepfire.sandbox.executor.apply_judged_submission", side_effect=RuntimeError("database is locked"))

    with pytest.raises(RuntimeError):
        await judge.judge(sub.id)

    db.expire_all()
    stored = db.get(models.Submission, sub.id)
    assert stored.status == "accepted"
    assert stored.stats_applied is False
    assert db.get(models.Problem, problem.id).total_submissions == 0

    mocker.patch("prepfire.sandbox.executor.apply_judged_submission", side_effect=real_apply)
    assert await judge.judge(sub.id) == SubmissionStatus.ACCEPTED

    db.expire_all()
    assert db.get(models.Submission, sub.id).stats_applied is True
    assert db.get(models.Problem, problem.id).total_submissions == 1
    assert db.get(models.User, test_user.id).solved_count == 1


async def test_resubmitting_solved_problem_awards_nothing(db: Session, test_user, problem, make_submission, make_judge,
                                             scripted_engine):
    judge = make_judge(scripted_engine())

    first = make_submission(test_user, problem)
    assert await judge.judge(first.id) == SubmissionStatus.ACCEPTED

    db.expire_all()
    user = db.get(models.User, test_user.id)
    assert user.solved_count == 1
    assert user.points == 10
    solved = db.get(models.UserProblem, (test_user.id, problem.id))
    assert solved is not None and solved.solved_at is not None

    second = make_submission(test_user, problem)
    assert await judge.judge(second.id) == SubmissionStatus.ACCEPTED

    db.expire_all()
    user = db.get(models.User, test_user.id)
    assert user.solved_count == 1
    assert user.points == 10
    assert user.total_submissions == 2
    assert user.accepted_submissions == 2
    assert db.get(models.Submission, second.id).test_cases_passed == 2


async def test_runtime_error_counts_as_attempt_only(db: Session, test_user, problem, make_submission, make_judge,
                                                     scripted_engine):
    sub = make_submission(test_user, problem, code="raise SystemExit(1)")
    judge = make_judge(scripted_engine([SubmissionStatus.RUNTIME_ERROR]))

    assert await judge.judge(sub.id) == SubmissionStatus.RUNTIME_ERROR

    db.expire_all()
    stored = db.get(models.Submission, sub.id)
    assert stored.test_cases_passed == 0
    user = db.get(models.User, test_user.id)
    assert user.solved_count == 0
    assert user.attempted_count == 1
    assert user.points == 0


async def test_concurrent_users_on_same_problem(db: Session, test_user, other_user, problem, make_submission,
                                                      make_judge, scripted_engine):
    sub_a = make_submission(test_user, problem)
    sub_b = make_submission(other_user, problem)
    judge = make_judge(scripted_engine(delay_sec=0.01))

    results = await asyncio.gather(judge.judge(sub_a.id), judge.judge(sub_b.id))

    assert results == [SubmissionStatus.ACCEPTED, SubmissionStatus.ACCEPTED]
    db.expire_all()
    stats = db.get(models.Problem, problem.id)
    assert stats.total_submissions == 2
    assert stats.accepted_submissions == 2
    assert stats.attempted_by == 2
    assert stats.acceptance_rate == 100
