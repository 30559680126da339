from typing import Any, Dict, Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from prepfire.crud.base import CRUDBase
from prepfire.db.models import User
from prepfire.schemas.user import UserCreate, UserUpdate


class CRUDUser(CRUDBase[User, UserCreate, UserUpdate]):
    @staticmethod
    def get_by_email(db: Session, *, email: str) -> Optional[User]:
        return db.query(User).filter(User.email == email.lower()).first()

    def create(self, db: Session, *, obj_in: UserCreate) -> User:
        db_obj = User(
            email=obj_in.email.lower(),
            name=obj_in.name,
            role=obj_in.role,
            is_active=True
        )
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def get_or_create(self, db: Session, *, email: str) -> User:
        existing = self.get_by_email(db, email=email)
        if existing:
            return existing
        try:
            return self.create(db, obj_in=UserCreate(email=email))
        except IntegrityError:
            db.rollback()
            return self.get_by_email(db, email=email)

    def update(
            self, db: Session, *, db_obj: User, obj_in: Union[UserUpdate, Dict[str, Any]]
    ) -> User:
        if isinstance(obj_in, dict):
            update_data = obj_in
        else:
            update_data = obj_in.model_dump(exclude_unset=True)

        return super().update(db, db_obj=db_obj, obj_in=update_data)

    @staticmethod
    def is_active(db_user: User) -> bool:
        return db_user.is_active

    @staticmethod
    def is_admin(db_user: User) -> bool:
        return db_user.role == "admin"


user = CRUDUser(User)
