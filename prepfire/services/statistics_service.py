import logging
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional, Set, Tuple

from sqlalchemy import and_, case, func, insert, literal, select
from sqlalchemy.orm import Session

from prepfire.crud import crud_submission
from prepfire.db.models import (
    Problem, Submission, User, UserAchievement, UserCategoryProgress, UserProblem
)
from prepfire.schemas.problem import DIFFICULTY_POINTS, points_for_difficulty
from prepfire.schemas.submission import SubmissionStatus, TERMINAL_STATUSES

logger = logging.getLogger(__name__)

POINTS_PER_LEVEL = 1000

# (id, name, description, icon, category, field, threshold)
ACHIEVEMENTS = [
    ("first-steps", "First Steps", "Solved your first problem", "🎯", "solving", "solved_count", 1),
    ("getting-started", "Getting Started", "Solved 5 problems", "🌱", "solving", "solved_count", 5),
    ("problem-solver", "Problem Solver", "Solved 10 problems", "💪", "solving", "solved_count", 10),
    ("dedicated-learner", "Dedicated Learner", "Solved 25 problems", "🏆", "solving", "solved_count", 25),
    ("week-streak", "On Fire", "Solved problems 7 days in a row", "🔥", "streak", "streak_current", 7),
    ("month-streak", "Unstoppable", "Solved problems 30 days in a row", "⚡", "streak", "streak_current", 30),
]


def percent(numerator: int, denominator: int) -> int:
    """round(numerator / denominator * 100), halves rounded up; 0 when denominator is 0."""
    if not denominator:
        return 0
    return (numerator * 200 + denominator) // (denominator * 2)


def _percent_expr(numerator, denominator):
    return (numerator * 200 + denominator) // (denominator * 2)


def level_for_points(points: int) -> int:
    return points // POINTS_PER_LEVEL + 1


def running_mean(old_mean: Optional[float], sample: float, n: int) -> float:
    """Incremental mean, n is the count after the increment."""
    return ((old_mean or 0.0) * (n - 1) + sample) / n


def compute_streak(current: int, longest: int, last_active: Optional[date], today: date) -> Tuple[int, int, date]:
    """Returns (current, longest, last_active_date) after one qualifying activity on `today`."""
    if last_active is None:
        current = 1
    else:
        gap = (today - last_active).days
        if gap == 1:
            current += 1
        elif gap > 1:
            current = 1
        elif gap < 0:
            return current, longest, last_active
    return current, max(longest, current), today


def _activity_date(judged_at: Optional[datetime]) -> date:
    if judged_at is None:
        return datetime.now(timezone.utc).date()
    if judged_at.tzinfo is None:
        judged_at = judged_at.replace(tzinfo=timezone.utc)
    return judged_at.astimezone(timezone.utc).date()


def _solved_column(difficulty: str):
    if difficulty not in DIFFICULTY_POINTS:
        raise ValueError(f"Unknown problem difficulty '{difficulty}'")
    return getattr(User, f"{difficulty}_solved")


def _insert_if_absent(db: Session, model, key: Dict, values: Dict) -> bool:
    """INSERT ... SELECT ... WHERE NOT EXISTS. True when this call created the row."""
    row = {**key, **values}
    columns = list(row.keys())
    taken = (
        select(literal(1))
        .select_from(model)
        .where(and_(*[getattr(model, name) == value for name, value in key.items()]))
        .exists()
    )
    source = select(*[literal(value, getattr(model, name).type) for name, value in row.items()]).where(~taken)
    result = db.execute(insert(model).from_select(columns, source))
    return result.rowcount == 1


def _unlock_achievements(db: Session, user_id: int, unlocked_at: datetime) -> List[str]:
    current = db.execute(
        select(User.solved_count, User.streak_current).where(User.id == user_id)
    ).one()
    reached = {"solved_count": current.solved_count, "streak_current": current.streak_current}
    unlocked = []
    for achievement_id, name, description, icon, category, field, threshold in ACHIEVEMENTS:
        if reached[field] < threshold:
            continue
        created = _insert_if_absent(
            db, UserAchievement,
            key={"user_id": user_id, "achievement_id": achievement_id},
            values={"name": name, "description": description, "icon": icon, "category": category,
                    "unlocked_at": unlocked_at},
        )
        if created:
            unlocked.append(achievement_id)
    return unlocked


def apply_judged_submission(db: Session, submission: Submission) -> bool:
    """
    Folds one terminal submission into the problem and user aggregates.

    Everything happens in a single transaction that starts by flipping the
    submission's `stats_applied` flag, so a submission is counted at most once even
    when the judge is retried. Counters are updated with SQL column arithmetic, never
    read-modify-written in Python, so concurrent judges of the same user or problem
    do not lose updates.

    Returns False when the submission had already been applied.
    """
    submission_id = submission.id
    user_id = submission.submitter_id
    problem_id = submission.problem_id
    accepted = submission.status == SubmissionStatus.ACCEPTED.value
    judged_at = submission.judged_at or datetime.now(timezone.utc)
    runtime_sample = submission.runtime_ms
    memory_sample = submission.memory_mb

    try:
        if not crud_submission.submission.mark_stats_applied(db, id_=submission_id):
            db.rollback()
            return False

        problem = db.execute(
            select(Problem.difficulty, Problem.category, Problem.points).where(Problem.id == problem_id)
        ).one()

        first_attempt = _insert_if_absent(
            db, UserProblem,
            key={"user_id": user_id, "problem_id": problem_id},
            values={"attempted_at": judged_at},
        )
        first_solve = False
        if accepted:
            first_solve = db.query(UserProblem).filter(
                UserProblem.user_id == user_id,
                UserProblem.problem_id == problem_id,
                UserProblem.solved_at.is_(None),
            ).update({UserProblem.solved_at: judged_at}, synchronize_session=False) == 1

        accepted_inc = 1 if accepted else 0
        new_total = Problem.total_submissions + 1
        new_accepted = Problem.accepted_submissions + accepted_inc
        problem_values = {
            Problem.total_submissions: new_total,
            Problem.accepted_submissions: new_accepted,
            Problem.acceptance_rate: _percent_expr(new_accepted, new_total),
            Problem.solved_by: Problem.solved_by + accepted_inc,
            Problem.attempted_by: Problem.attempted_by + (1 if first_attempt else 0),
        }
        if runtime_sample is not None:
            problem_values[Problem.average_runtime_ms] = (
                    (func.coalesce(Problem.average_runtime_ms, 0.0) * Problem.total_submissions + runtime_sample)
                    / new_total
            )
        if memory_sample is not None:
            problem_values[Problem.average_memory_mb] = (
                    (func.coalesce(Problem.average_memory_mb, 0.0) * Problem.total_submissions + memory_sample)
                    / new_total
            )
        db.query(Problem).filter(Problem.id == problem_id).update(problem_values, synchronize_session=False)

        user_total = User.total_submissions + 1
        user_accepted = User.accepted_submissions + accepted_inc
        user_values = {
            User.total_submissions: user_total,
            User.accepted_submissions: user_accepted,
            User.accuracy: _percent_expr(user_accepted, user_total),
            User.attempted_count: User.attempted_count + (1 if first_attempt else 0),
        }
        award = 0
        if first_solve:
            difficulty_column = _solved_column(problem.difficulty)
            award = points_for_difficulty(problem.difficulty, problem.points)
            today = _activity_date(judged_at)
            yesterday = today - timedelta(days=1)
            new_streak = case(
                (User.last_active_date.is_(None), 1),
                (User.last_active_date == yesterday, User.streak_current + 1),
                (User.last_active_date < yesterday, 1),
                else_=User.streak_current,
            )
            user_values.update({
                User.solved_count: User.solved_count + 1,
                difficulty_column: difficulty_column + 1,
                User.points: User.points + award,
                User.level: (User.points + award) // POINTS_PER_LEVEL + 1,
                User.streak_current: new_streak,
                User.streak_longest: case(
                    (new_streak > User.streak_longest, new_streak), else_=User.streak_longest
                ),
                User.last_active_date: case(
                    (User.last_active_date > today, User.last_active_date), else_=today
                ),
            })
        db.query(User).filter(User.id == user_id).update(user_values, synchronize_session=False)

        if first_attempt or first_solve:
            _insert_if_absent(
                db, UserCategoryProgress,
                key={"user_id": user_id, "category": problem.category},
                values={"attempted": 0, "solved": 0},
            )
            db.query(UserCategoryProgress).filter(
                UserCategoryProgress.user_id == user_id,
                UserCategoryProgress.category == problem.category,
            ).update(
                {
                    UserCategoryProgress.attempted: UserCategoryProgress.attempted + (1 if first_attempt else 0),
                    UserCategoryProgress.solved: UserCategoryProgress.solved + (1 if first_solve else 0),
                },
                synchronize_session=False,
            )

        unlocked = _unlock_achievements(db, user_id, judged_at) if first_solve else []
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        f"Statistics applied for submission {submission_id}: accepted={accepted} "
        f"first_attempt={first_attempt} first_solve={first_solve} points={award}"
    )
    if unlocked:
        logger.info(f"User {user_id} unlocked achievements {unlocked}")
    return True


def _terminal_submissions(db: Session, *filters) -> List[Submission]:
    return (
        db.query(Submission)
        .filter(Submission.status.in_(TERMINAL_STATUSES), *filters)
        .order_by(Submission.judged_at, Submission.submitted_at, Submission.id)
        .all()
    )


def rebuild_problem_statistics(db: Session, problem_id: str) -> Optional[Problem]:
    """Recomputes one problem's aggregates from its terminal submissions."""
    problem = db.get(Problem, problem_id)
    if problem is None:
        return None

    total = accepted = 0
    attempted_users: Set[int] = set()
    avg_runtime: Optional[float] = None
    avg_memory: Optional[float] = None
    for sub in _terminal_submissions(db, Submission.problem_id == problem_id):
        total += 1
        if sub.status == SubmissionStatus.ACCEPTED.value:
            accepted += 1
        attempted_users.add(sub.submitter_id)
        if sub.runtime_ms is not None:
            avg_runtime = running_mean(avg_runtime, sub.runtime_ms, total)
        if sub.memory_mb is not None:
            avg_memory = running_mean(avg_memory, sub.memory_mb, total)
        sub.stats_applied = True

    problem.total_submissions = total
    problem.accepted_submissions = accepted
    problem.acceptance_rate = percent(accepted, total)
    problem.solved_by = accepted
    problem.attempted_by = len(attempted_users)
    problem.average_runtime_ms = avg_runtime
    problem.average_memory_mb = avg_memory
    db.commit()
    db.refresh(problem)
    return problem


def rebuild_user_statistics(db: Session, user_id: int) -> Optional[User]:
    """
    Recomputes one user's aggregates, problem sets, category progress and achievements
    by replaying their terminal submissions in the order they were judged.
    """
    user = db.get(User, user_id)
    if user is None:
        return None

    problems = {p.id: p for p in db.query(Problem).all()}
    progress: Dict[str, UserProblem] = {}
    categories: Dict[str, UserCategoryProgress] = {}
    counts = {"easy": 0, "medium": 0, "hard": 0}
    total = accepted = points = 0
    streak_current, streak_longest, last_active = 0, 0, None

    for sub in _terminal_submissions(db, Submission.submitter_id == user_id):
        problem = problems.get(sub.problem_id)
        if problem is None:
            continue
        judged_at = sub.judged_at or sub.submitted_at
        total += 1
        is_accepted = sub.status == SubmissionStatus.ACCEPTED.value
        if is_accepted:
            accepted += 1

        category = categories.setdefault(
            problem.category, UserCategoryProgress(user_id=user_id, category=problem.category, attempted=0, solved=0)
        )
        row = progress.get(problem.id)
        if row is None:
            row = progress[problem.id] = UserProblem(user_id=user_id, problem_id=problem.id, attempted_at=judged_at)
            category.attempted += 1
        if is_accepted and row.solved_at is None:
            row.solved_at = judged_at
            category.solved += 1
            _solved_column(problem.difficulty)
            counts[problem.difficulty] += 1
            points += points_for_difficulty(problem.difficulty, problem.points)
            streak_current, streak_longest, last_active = compute_streak(
                streak_current, streak_longest, last_active, _activity_date(judged_at)
            )
        sub.stats_applied = True

    db.query(UserProblem).filter(UserProblem.user_id == user_id).delete(synchronize_session="fetch")
    db.query(UserCategoryProgress).filter(UserCategoryProgress.user_id == user_id).delete(synchronize_session="fetch")
    db.add_all(list(progress.values()) + list(categories.values()))

    solved = [row for row in progress.values() if row.solved_at is not None]
    user.total_submissions = total
    user.accepted_submissions = accepted
    user.accuracy = percent(accepted, total)
    user.attempted_count = len(progress)
    user.solved_count = len(solved)
    user.easy_solved = counts["easy"]
    user.medium_solved = counts["medium"]
    user.hard_solved = counts["hard"]
    user.points = points
    user.level = level_for_points(points)
    user.streak_current = streak_current
    user.streak_longest = max(streak_longest, user.streak_longest or 0)
    user.last_active_date = last_active
    db.flush()

    if solved:
        _unlock_achievements(db, user_id, max(row.solved_at for row in solved))
    db.commit()
    db.refresh(user)
    return user


def rebuild_all_statistics(db: Session) -> Dict[str, int]:
    problem_ids = [row.id for row in db.query(Problem.id).all()]
    user_ids = [row.id for row in db.query(User.id).all()]
    for problem_id in problem_ids:
        rebuild_problem_statistics(db, problem_id)
    for user_id in user_ids:
        rebuild_user_statistics(db, user_id)
    logger.info(f"Rebuilt statistics for {len(problem_ids)} problems and {len(user_ids)} users")
    return {"problems": len(problem_ids), "users": len(user_ids)}
