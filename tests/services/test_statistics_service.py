from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy.orm import Session

from prepfire.crud import crud_submission
from prepfire.db import models
from prepfire.schemas.submission import SubmissionStatus, Verdict
from prepfire.services import statistics_service
from prepfire.services.statistics_service import (
    apply_judged_submission, compute_streak, level_for_points, percent, rebuild_all_statistics
)

DAY_ONE = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def _judged(db: Session, submission: models.Submission, status: SubmissionStatus, judged_at: datetime = DAY_ONE,
            runtime_ms: float = 10.0, memory_mb: float = 2.0, points: int = 0) -> models.Submission:
    passed = submission.total_test_cases if status == SubmissionStatus.ACCEPTED else 0
    verdict = Verdict(status=status, test_cases_passed=passed, total_test_cases=submission.total_test_cases,
                      score=100 if passed else 0, runtime_ms=runtime_ms, memory_mb=memory_mb)
    assert crud_submission.submission.finalize(db, id_=submission.id, verdict=verdict, points=points,
                                               judged_at=judged_at)
    return db.get(models.Submission, submission.id)


def test_percent_rounds_half_up():
    assert percent(0, 0) == 0
    assert percent(1, 3) == 33
    assert percent(2, 3) == 67
    assert percent(1, 8) == 13
    assert percent(5, 5) == 100


def test_level_for_points():
    assert level_for_points(0) == 1
    assert level_for_points(999) == 1
    assert level_for_points(1000) == 2


def test_compute_streak():
    today = date(2026, 3, 10)
    assert compute_streak(0, 0, None, today) == (1, 1, today)
    assert compute_streak(3, 3, today - timedelta(days=1), today) == (4, 4, today)
    assert compute_streak(4, 6, today - timedelta(days=3), today) == (1, 6, today)
    assert compute_streak(2, 2, today, today) == (2, 2, today)
    # out-of-order activity leaves the streak alone
    assert compute_streak(2, 2, today, today - timedelta(days=1)) == (2, 2, today)


def test_apply_is_counted_once(db: Session, test_user, problem, make_submission):
    sub = _judged(db, make_submission(test_user, problem), SubmissionStatus.WRONG_ANSWER)

    assert apply_judged_submission(db, sub) is True
    assert apply_judged_submission(db, sub) is False

    db.expire_all()
    stats = db.get(models.Problem, problem.id)
    assert stats.total_submissions == 1
    assert stats.accepted_submissions == 0
    assert stats.attempted_by == 1
    assert stats.solved_by == 0


def test_acceptance_rate_and_accuracy(db: Session, test_user, problem, make_submission):
    for status in (SubmissionStatus.ACCEPTED, SubmissionStatus.WRONG_ANSWER, SubmissionStatus.WRONG_ANSWER):
        apply_judged_submission(db, _judged(db, make_submission(test_user, problem), status))

    db.expire_all()
    stats = db.get(models.Problem, problem.id)
    assert stats.total_submissions == 3
    assert stats.accepted_submissions == 1
    assert stats.acceptance_rate == 33
    assert stats.attempted_by == 1
    user = db.get(models.User, test_user.id)
    assert user.accuracy == 33
    assert user.attempted_count == 1
    assert user.solved_count == 1


def test_running_averages(db: Session, test_user, problem, make_submission):
    apply_judged_submission(db, _judged(db, make_submission(test_user, problem), SubmissionStatus.ACCEPTED,
                                        runtime_ms=10.0, memory_mb=2.0))
    apply_judged_submission(db, _judged(db, make_submission(test_user, problem), SubmissionStatus.ACCEPTED,
                                        runtime_ms=30.0, memory_mb=6.0))

    db.expire_all()
    stats = db.get(models.Problem, problem.id)
    assert stats.average_runtime_ms == 20.0
    assert stats.average_memory_mb == 4.0


def test_first_solve_awards_points_and_difficulty_counts(db: Session, test_user, make_problem, make_submission):
    easy = make_problem(difficulty="easy")
    hard = make_problem(difficulty="hard", category="dp")

    apply_judged_submission(db, _judged(db, make_submission(test_user, easy), SubmissionStatus.ACCEPTED))
    apply_judged_submission(db, _judged(db, make_submission(test_user, hard), SubmissionStatus.ACCEPTED))
    apply_judged_submission(db, _judged(db, make_submission(test_user, hard), SubmissionStatus.ACCEPTED))

    db.expire_all()
    user = db.get(models.User, test_user.id)
    assert user.solved_count == 2
    assert user.easy_solved == 1
    assert user.hard_solved == 1
    assert user.points == 40
    assert user.level == 1
    assert db.get(models.Problem, hard.id).solved_by == 2

    categories = {row.category: row for row in
                  db.query(models.UserCategoryProgress).filter_by(user_id=test_user.id).all()}
    assert categories["math"].solved == 1
    assert categories["dp"].attempted == 1
    assert categories["dp"].solved == 1


def test_solve_after_failures_is_first_solve(db: Session, test_user, problem, make_submission):
    apply_judged_submission(db, _judged(db, make_submission(test_user, problem), SubmissionStatus.WRONG_ANSWER))
    apply_judged_submission(db, _judged(db, make_submission(test_user, problem), SubmissionStatus.ACCEPTED))

    db.expire_all()
    user = db.get(models.User, test_user.id)
    assert user.attempted_count == 1
    assert user.solved_count == 1
    assert user.points == 10
    progress = db.query(models.UserCategoryProgress).filter_by(user_id=test_user.id, category="math").one()
    assert progress.attempted == 1
    assert progress.solved == 1


def test_streak_follows_judged_dates(db: Session, test_user, make_problem, make_submission):
    days = [DAY_ONE, DAY_ONE + timedelta(days=1), DAY_ONE + timedelta(days=3)]
    for judged_at in days:
        p = make_problem()
        apply_judged_submission(db, _judged(db, make_submission(test_user, p), SubmissionStatus.ACCEPTED,
                                            judged_at=judged_at))

    db.expire_all()
    user = db.get(models.User, test_user.id)
    assert user.streak_current == 1
    assert user.streak_longest == 2
    assert user.last_active_date == days[-1].date()


def test_same_day_solves_keep_streak(db: Session, test_user, make_problem, make_submission):
    for offset in (0, 2):
        p = make_problem()
        apply_judged_submission(db, _judged(db, make_submission(test_user, p), SubmissionStatus.ACCEPTED,
                                            judged_at=DAY_ONE + timedelta(hours=offset)))

    db.expire_all()
    user = db.get(models.User, test_user.id)
    assert user.streak_current == 1
    assert user.streak_longest == 1


def test_achievements_unlock_once(db: Session, test_user, problem, make_submission):
    apply_judged_submission(db, _judged(db, make_submission(test_user, problem), SubmissionStatus.ACCEPTED))
    apply_judged_submission(db, _judged(db, make_submission(test_user, problem), SubmissionStatus.ACCEPTED))

    unlocked = db.query(models.UserAchievement).filter_by(user_id=test_user.id).all()
    assert [a.achievement_id for a in unlocked] == ["first-steps"]


def test_apply_rolls_back_on_error(db: Session, test_user, problem, make_submission, mocker):
    sub = _judged(db, make_submission(test_user, problem), SubmissionStatus.ACCEPTED)
    mocker.patch.object(statistics_service, "_unlock_achievements", side_effect=RuntimeError("boom"))

    with pytest.raises(RuntimeError):
        apply_judged_submission(db, sub)

    db.expire_all()
    assert db.get(models.Submission, sub.id).stats_applied is False
    assert db.get(models.Problem, problem.id).total_submissions == 0
    assert db.get(models.User, test_user.id).solved_count == 0


def test_rebuild_matches_live_aggregates(db: Session, test_user, other_user, make_problem, make_submission):
    first = make_problem(difficulty="medium", category="array")
    second = make_problem()
    plan = [
        (test_user, first, SubmissionStatus.WRONG_ANSWER, DAY_ONE),
        (test_user, first, SubmissionStatus.ACCEPTED, DAY_ONE + timedelta(hours=1)),
        (test_user, second, SubmissionStatus.ACCEPTED, DAY_ONE + timedelta(days=1)),
        (other_user, first, SubmissionStatus.TIME_LIMIT_EXCEEDED, DAY_ONE + timedelta(days=1)),
        (other_user, second, SubmissionStatus.ACCEPTED, DAY_ONE + timedelta(days=2)),
    ]
    for runtime, (user, p, status, judged_at) in enumerate(plan, start=1):
        apply_judged_submission(db, _judged(db, make_submission(user, p), status, judged_at=judged_at,
                                            runtime_ms=float(runtime * 10)))

    user_fields = ["total_submissions", "accepted_submissions", "accuracy", "attempted_count", "solved_count",
                   "easy_solved", "medium_solved", "hard_solved", "points", "level", "streak_current",
                   "streak_longest", "last_active_date"]
    problem_fields = ["total_submissions", "accepted_submissions", "acceptance_rate", "solved_by", "attempted_by",
                      "average_runtime_ms", "average_memory_mb"]

    def snapshot():
        db.expire_all()
        users = {u.id: tuple(getattr(u, f) for f in user_fields) for u in db.query(models.User).all()}
        problems = {p.id: tuple(getattr(p, f) for f in problem_fields) for p in db.query(models.Problem).all()}
        solved = sorted((r.user_id, r.problem_id, r.solved_at is not None) for r in db.query(models.UserProblem).all())
        categories = sorted((r.user_id, r.category, r.attempted, r.solved)
                            for r in db.query(models.UserCategoryProgress).all())
        return users, problems, solved, categories

    live = snapshot()
    db.query(models.User).update({models.User.points: 0, models.User.solved_count: 0}, synchronize_session=False)
    db.query(models.Problem).update({models.Problem.total_submissions: 0}, synchronize_session=False)
    db.commit()

    assert rebuild_all_statistics(db) == {"problems": 2, "users": 2}
    assert snapshot() == live


def test_unknown_difficulty_is_rejected(db: Session, test_user, make_problem, make_submission):
    odd = make_problem(difficulty="legendary")
    sub = _judged(db, make_submission(test_user, odd), SubmissionStatus.ACCEPTED)

    with pytest.raises(ValueError):
        apply_judged_submission(db, sub)

    db.expire_all()
    assert db.get(models.Submission, sub.id).stats_applied is False
    user = db.get(models.User, test_user.id)
    assert user.solved_count == 0
    assert user.easy_solved == 0
    assert user.points == 0


def test_late_processed_older_solve_keeps_streak(db: Session, test_user, make_problem, make_submission):
    for judged_at in (DAY_ONE + timedelta(days=2), DAY_ONE + timedelta(days=3), DAY_ONE):
        p = make_problem()
        apply_judged_submission(db, _judged(db, make_submission(test_user, p), SubmissionStatus.ACCEPTED,
                                            judged_at=judged_at))

    db.expire_all()
    user = db.get(models.User, test_user.id)
    assert user.solved_count == 3
    assert user.streak_current == 2
    assert user.streak_longest == 2
    assert user.last_active_date == (DAY_ONE + timedelta(days=3)).date()
