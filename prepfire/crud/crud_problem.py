from typing import Optional

from pydantic import BaseModel
from sqlalchemy.orm import Session

from prepfire.crud.base import CRUDBase
from prepfire.db.models import Problem
from prepfire.schemas.problem import ProblemDefinition


class ProblemUpdate(BaseModel):
    is_active: Optional[bool] = None


class CRUDProblem(CRUDBase[Problem, ProblemDefinition, ProblemUpdate]):
    def get_active(self, db: Session, id_: str) -> Optional[Problem]:
        return (
            db.query(self.model)
            .filter(self.model.id == id_, self.model.is_active.is_(True))
            .first()
        )

    def get_by_slug(self, db: Session, *, slug: str) -> Optional[Problem]:
        return db.query(self.model).filter(self.model.slug == slug).first()

    def deactivate(self, db: Session, *, db_obj: Problem) -> Problem:
        return self.update(db, db_obj=db_obj, obj_in={"is_active": False})


problem = CRUDProblem(Problem)
