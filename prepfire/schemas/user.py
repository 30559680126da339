from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr

from prepfire.schemas.base import CamelModel
from prepfire.schemas.submission import SubmissionInfo


class UserBase(BaseModel):
    email: EmailStr


class UserCreate(UserBase):
    name: Optional[str] = None
    role: str = "user"


class UserUpdate(BaseModel):
    name: Optional[str] = None
    is_active: Optional[bool] = None
    role: Optional[str] = None


class UserPublic(CamelModel):
    id: int
    email: EmailStr
    name: Optional[str] = None
    role: str
    is_active: bool


class UserStatistics(CamelModel):
    solved_count: int = 0
    attempted_count: int = 0
    easy_solved: int = 0
    medium_solved: int = 0
    hard_solved: int = 0
    total_submissions: int = 0
    accepted_submissions: int = 0
    accuracy: int = 0
    points: int = 0
    level: int = 1


class Streak(CamelModel):
    current: int = 0
    longest: int = 0
    last_active_date: Optional[date] = None


class CategoryProgress(CamelModel):
    category: str
    attempted: int = 0
    solved: int = 0
    accuracy: int = 0


class Achievement(CamelModel):
    achievement_id: str
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None
    category: str
    unlocked_at: datetime


class UserProgress(CamelModel):
    success: bool = True
    statistics: UserStatistics
    streak: Streak
    categories: List[CategoryProgress] = []
    achievements: List[Achievement] = []
    solved_problems: List[str] = []
    attempted_problems: List[str] = []
    recent_submissions: List[SubmissionInfo] = []
