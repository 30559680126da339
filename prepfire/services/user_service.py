from sqlalchemy.orm import Session

from prepfire.crud import crud_submission
from prepfire.db import models as db_models
from prepfire.schemas.submission import SubmissionInfo
from prepfire.schemas.user import Achievement, CategoryProgress, Streak, UserProgress, UserStatistics
from prepfire.services.statistics_service import percent

RECENT_SUBMISSIONS_LIMIT = 10


def build_user_progress(db: Session, user: db_models.User) -> UserProgress:
    rows = db.query(db_models.UserProblem).filter(db_models.UserProblem.user_id == user.id).all()
    categories = (
        db.query(db_models.UserCategoryProgress)
        .filter(db_models.UserCategoryProgress.user_id == user.id)
        .order_by(db_models.UserCategoryProgress.category)
        .all()
    )
    recent = crud_submission.submission.get_multi_by_owner(db, submitter_id=user.id, limit=RECENT_SUBMISSIONS_LIMIT)

    return UserProgress(
        statistics=UserStatistics.model_validate(user),
        streak=Streak(current=user.streak_current, longest=user.streak_longest,
                      last_active_date=user.last_active_date),
        categories=[
            CategoryProgress(category=c.category, attempted=c.attempted, solved=c.solved,
                             accuracy=percent(c.solved, c.attempted))
            for c in categories
        ],
        achievements=[Achievement.model_validate(a) for a in user.achievements],
        solved_problems=[row.problem_id for row in rows if row.solved_at is not None],
        attempted_problems=[row.problem_id for row in rows],
        recent_submissions=[SubmissionInfo.model_validate(sub) for sub in recent],
    )
