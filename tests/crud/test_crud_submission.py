from datetime import datetime, timezone

from sqlalchemy.orm import Session

from prepfire.crud import crud_judge_task, crud_submission
from prepfire.db import models
from prepfire.schemas.submission import SubmissionStatus, TestCaseResult, Verdict


def _verdict(status: SubmissionStatus) -> Verdict:
    return Verdict(
        status=status, test_cases_passed=1, total_test_cases=2, score=50, runtime_ms=12.5, memory_mb=3.0,
        error_message="Failed on test case case-2",
        results=[TestCaseResult(test_case_name="case-1", status=SubmissionStatus.ACCEPTED, passed=True)],
    )


def test_create_with_owner_enqueues_judge_task(db: Session, test_user, problem, make_submission):
    sub = make_submission(test_user, problem)

    assert sub.status == "pending"
    assert sub.total_test_cases == 2
    assert sub.stats_applied is False
    task = crud_judge_task.judge_task.get_by_submission(db, submission_id=sub.id)
    assert task is not None
    assert task.state == crud_judge_task.QUEUED
    assert task.attempts == 0


def test_get_rejects_malformed_ids(db: Session):
    assert crud_submission.submission.get(db, id_="not-a-uuid") is None
    assert crud_submission.submission.get_with_details(db, id_="not-a-uuid") is None


def test_finalize_only_from_pending(db: Session, test_user, problem, make_submission):
    sub = make_submission(test_user, problem)
    judged_at = datetime.now(timezone.utc)

    assert crud_submission.submission.finalize(
        db, id_=sub.id, verdict=_verdict(SubmissionStatus.WRONG_ANSWER), points=0, judged_at=judged_at
    )
    assert not crud_submission.submission.finalize(
        db, id_=sub.id, verdict=_verdict(SubmissionStatus.ACCEPTED), points=10, judged_at=judged_at
    )

    db.expire_all()
    stored = db.get(models.Submission, sub.id)
    assert stored.status == "wrong_answer"
    assert stored.score == 50
    assert stored.points == 0
    results = crud_submission.submission.parse_results(stored)
    assert [r.test_case_name for r in results] == ["case-1"]


def test_mark_stats_applied_requires_terminal_status(db: Session, test_user, problem, make_submission):
    sub = make_submission(test_user, problem)
    assert not crud_submission.submission.mark_stats_applied(db, id_=sub.id)
    db.rollback()

    crud_submission.submission.finalize(db, id_=sub.id, verdict=_verdict(SubmissionStatus.RUNTIME_ERROR), points=0,
                                        judged_at=datetime.now(timezone.utc))
    assert crud_submission.submission.mark_stats_applied(db, id_=sub.id)
    assert not crud_submission.submission.mark_stats_applied(db, id_=sub.id)
    db.commit()


def test_listings(db: Session, test_user, other_user, make_problem, make_submission):
    first, second = make_problem(), make_problem()
    make_submission(test_user, first)
    make_submission(test_user, second)
    make_submission(other_user, first)

    mine = crud_submission.submission.get_multi_by_owner(db, submitter_id=test_user.id)
    assert len(mine) == 2
    on_first = crud_submission.submission.get_multi_by_owner_and_problem(
        db, submitter_id=test_user.id, problem_id=first.id
    )
    assert len(on_first) == 1
    assert len(crud_submission.submission.get_recent(db, limit=2)) == 2
