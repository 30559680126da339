import logging
from datetime import datetime, timedelta, timezone
from typing import NamedTuple, Optional

from pydantic import BaseModel
from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from prepfire.crud.base import CRUDBase
from prepfire.db.models import JudgeTask

logger = logging.getLogger(__name__)

QUEUED = "queued"
LEASED = "leased"
DONE = "done"
FAILED = "failed"


class JudgeTaskCreate(BaseModel):
    submission_id: str


class JudgeTaskUpdate(BaseModel):
    state: Optional[str] = None


class ClaimedTask(NamedTuple):
    id: int
    submission_id: str
    attempts: int


def _claimable(now: datetime):
    return or_(
        and_(JudgeTask.state == QUEUED, JudgeTask.available_at <= now),
        and_(JudgeTask.state == LEASED, JudgeTask.lease_expires_at <= now),
    )


class CRUDJudgeTask(CRUDBase[JudgeTask, JudgeTaskCreate, JudgeTaskUpdate]):
    @staticmethod
    def create_for_submission(db: Session, *, submission_id: str, available_at: datetime) -> JudgeTask:
        """Adds the task to the session. The caller commits it together with the submission."""
        db_obj = JudgeTask(submission_id=submission_id, state=QUEUED, available_at=available_at)
        db.add(db_obj)
        return db_obj

    def get_by_submission(self, db: Session, *, submission_id: str) -> Optional[JudgeTask]:
        return db.query(self.model).filter(self.model.submission_id == submission_id).first()

    def claim_next(self, db: Session, *, visibility_timeout_sec: float) -> Optional[ClaimedTask]:
        """
        Leases the oldest claimable task. A task whose lease expired is claimable again,
        so a worker that died mid-judge does not strand its submission.
        """
        now = datetime.now(timezone.utc)
        candidates = (
            db.query(JudgeTask.id)
            .filter(_claimable(now))
            .order_by(JudgeTask.available_at, JudgeTask.id)
            .limit(5)
            .all()
        )
        for (task_id,) in candidates:
            rows = (
                db.query(JudgeTask)
                .filter(JudgeTask.id == task_id, _claimable(now))
                .update(
                    {
                        JudgeTask.state: LEASED,
                        JudgeTask.lease_expires_at: now + timedelta(seconds=visibility_timeout_sec),
                        JudgeTask.attempts: JudgeTask.attempts + 1,
                    },
                    synchronize_session=False,
                )
            )
            db.commit()
            if rows == 1:
                task = db.get(JudgeTask, task_id)
                db.refresh(task)
                return ClaimedTask(id=task.id, submission_id=task.submission_id, attempts=task.attempts)
        return None

    @staticmethod
    def complete(db: Session, *, task_id: int) -> None:
        db.query(JudgeTask).filter(JudgeTask.id == task_id).update(
            {
                JudgeTask.state: DONE,
                JudgeTask.lease_expires_at: None,
                JudgeTask.completed_at: datetime.now(timezone.utc),
            },
            synchronize_session=False,
        )
        db.commit()

    @staticmethod
    def release(db: Session, *, task_id: int, error: str, retry_in_sec: float) -> None:
        db.query(JudgeTask).filter(JudgeTask.id == task_id).update(
            {
                JudgeTask.state: QUEUED,
                JudgeTask.lease_expires_at: None,
                JudgeTask.available_at: datetime.now(timezone.utc) + timedelta(seconds=retry_in_sec),
                JudgeTask.last_error: error[:2000],
            },
            synchronize_session=False,
        )
        db.commit()

    @staticmethod
    def fail(db: Session, *, task_id: int, error: str) -> None:
        db.query(JudgeTask).filter(JudgeTask.id == task_id).update(
            {
                JudgeTask.state: FAILED,
                JudgeTask.lease_expires_at: None,
                JudgeTask.last_error: error[:2000],
                JudgeTask.completed_at: datetime.now(timezone.utc),
            },
            synchronize_session=False,
        )
        db.commit()


judge_task = CRUDJudgeTask(JudgeTask)
