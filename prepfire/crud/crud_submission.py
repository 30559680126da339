import json
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Any

from pydantic import BaseModel
from sqlalchemy import desc
from sqlalchemy.orm import Session, joinedload

from prepfire.crud.base import CRUDBase
from prepfire.crud.crud_judge_task import judge_task as crud_judge_task
from prepfire.db.models import Submission
from prepfire.schemas.submission import SubmissionCreate, SubmissionStatus, TestCaseResult, Verdict

logger = logging.getLogger(__name__)


class SubmissionUpdate(BaseModel):
    status: Optional[SubmissionStatus] = None


class CRUDSubmission(CRUDBase[Submission, SubmissionCreate, SubmissionUpdate]):
    def get(self, db: Session, id_: Any) -> Optional[Submission]:
        if isinstance(id_, uuid.UUID):
            id_str = str(id_)
        elif isinstance(id_, str):
            id_str = id_
            try:
                uuid.UUID(id_str)
            except ValueError:
                logger.warning(f"CRUD: Invalid UUID string format provided to get: {id_str}")
                return None
        else:
            logger.warning(f"CRUD: Unexpected ID type for get: {type(id_)}")
            return None

        return db.query(self.model).filter(self.model.id == id_str).first()

    def get_with_details(self, db: Session, id_: str) -> Optional[Submission]:
        try:
            uuid.UUID(id_)
        except ValueError:
            return None
        return (
            db.query(self.model)
            .options(joinedload(Submission.problem), joinedload(Submission.submitter))
            .filter(self.model.id == id_)
            .first()
        )

    @staticmethod
    def create_with_owner(
            db: Session, *, obj_in: SubmissionCreate, submitter_id: int, total_test_cases: int,
            judge_delay_sec: float = 0.0
    ) -> Submission:
        now = datetime.now(timezone.utc)
        db_obj = Submission(
            problem_id=obj_in.problem_id,
            language=obj_in.language,
            code=obj_in.code,
            submitter_id=submitter_id,
            status=SubmissionStatus.PENDING.value,
            total_test_cases=total_test_cases,
            submitted_at=now,
            results_json=json.dumps([])
        )
        db.add(db_obj)
        db.flush()
        crud_judge_task.create_for_submission(
            db, submission_id=db_obj.id, available_at=now + timedelta(seconds=judge_delay_sec)
        )

        try:
            db.commit()
            db.refresh(db_obj)
            return db_obj
        except Exception:
            logger.error(f"Failed to create submission for owner {submitter_id}", exc_info=True)
            db.rollback()
            raise

    def get_multi_by_owner(
            self, db: Session, *, submitter_id: int, skip: int = 0, limit: int = 100
    ) -> List[Submission]:
        return (
            db.query(self.model)
            .options(joinedload(Submission.problem))
            .filter(Submission.submitter_id == submitter_id)
            .order_by(desc(Submission.submitted_at))
            .offset(skip)
            .limit(limit)
            .all()
        )

    def get_multi_by_owner_and_problem(
            self, db: Session, *, submitter_id: int, problem_id: str, limit: int = 100
    ) -> List[Submission]:
        return (
            db.query(self.model)
            .filter(
                Submission.submitter_id == submitter_id,
                Submission.problem_id == problem_id
            )
            .order_by(desc(Submission.submitted_at))
            .limit(limit)
            .all()
        )

    def get_recent(self, db: Session, *, limit: int = 20) -> List[Submission]:
        return (
            db.query(self.model)
            .options(joinedload(Submission.problem))
            .order_by(desc(Submission.submitted_at))
            .limit(limit)
            .all()
        )

    @staticmethod
    def finalize(db: Session, *, id_: str, verdict: Verdict, points: int, judged_at: datetime) -> bool:
        """
        Writes the terminal judging fields, only if the submission is still pending.
        Returns True when this call performed the pending -> terminal transition.
        """
        results_list_of_dicts = [result.model_dump(mode="json") for result in verdict.results]
        rows = (
            db.query(Submission)
            .filter(Submission.id == id_, Submission.status == SubmissionStatus.PENDING.value)
            .update(
                {
                    Submission.status: verdict.status.value,
                    Submission.test_cases_passed: verdict.test_cases_passed,
                    Submission.total_test_cases: verdict.total_test_cases,
                    Submission.score: verdict.score,
                    Submission.runtime_ms: verdict.runtime_ms,
                    Submission.memory_mb: verdict.memory_mb,
                    Submission.points: points,
                    Submission.error_message: verdict.error_message,
                    Submission.results_json: json.dumps(results_list_of_dicts),
                    Submission.judged_at: judged_at,
                },
                synchronize_session=False,
            )
        )
        try:
            db.commit()
        except Exception:
            logger.error(f"Failed to finalize submission {id_}", exc_info=True)
            db.rollback()
            raise
        return rows == 1

    @staticmethod
    def mark_stats_applied(db: Session, *, id_: str) -> bool:
        rows = (
            db.query(Submission)
            .filter(
                Submission.id == id_,
                Submission.status != SubmissionStatus.PENDING.value,
                Submission.stats_applied.is_(False),
            )
            .update({Submission.stats_applied: True}, synchronize_session=False)
        )
        return rows == 1

    @staticmethod
    def parse_results(db_obj: Submission) -> List[TestCaseResult]:
        if not db_obj.results_json:
            return []
        try:
            results_list_of_dicts = json.loads(db_obj.results_json)
        except json.JSONDecodeError:
            logger.warning(f"Error decoding results_json for submission {db_obj.id}")
            return []
        if not isinstance(results_list_of_dicts, list):
            return []
        parsed: List[TestCaseResult] = []
        for res_dict in results_list_of_dicts:
            if isinstance(res_dict, dict):
                parsed.append(TestCaseResult.model_validate(res_dict))
        return parsed


submission = CRUDSubmission(Submission)
