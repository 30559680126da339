import uuid as uuid_pkg
from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, Boolean, Date, DateTime, Float, Text, ForeignKey, Index
)
from sqlalchemy.orm import relationship

from prepfire.db.base_class import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _uuid_str() -> str:
    return str(uuid_pkg.uuid4())


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String(50), nullable=True)
    role = Column(String, default="user", nullable=False)
    is_active = Column(Boolean(), default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    last_submission_at = Column(DateTime(timezone=True), nullable=True)
    last_run_at = Column(DateTime(timezone=True), nullable=True)

    solved_count = Column(Integer, default=0, nullable=False)
    attempted_count = Column(Integer, default=0, nullable=False)
    easy_solved = Column(Integer, default=0, nullable=False)
    medium_solved = Column(Integer, default=0, nullable=False)
    hard_solved = Column(Integer, default=0, nullable=False)
    total_submissions = Column(Integer, default=0, nullable=False)
    accepted_submissions = Column(Integer, default=0, nullable=False)
    accuracy = Column(Integer, default=0, nullable=False)
    points = Column(Integer, default=0, nullable=False, index=True)
    level = Column(Integer, default=1, nullable=False)

    streak_current = Column(Integer, default=0, nullable=False)
    streak_longest = Column(Integer, default=0, nullable=False)
    last_active_date = Column(Date, nullable=True)

    submissions = relationship("Submission", back_populates="submitter")
    problem_progress = relationship("UserProblem", back_populates="user", cascade="all, delete-orphan")
    category_progress = relationship("UserCategoryProgress", back_populates="user", cascade="all, delete-orphan")
    achievements = relationship("UserAchievement", back_populates="user", cascade="all, delete-orphan",
                                order_by="UserAchievement.unlocked_at")


class Problem(Base):
    __tablename__ = "problems"

    id = Column(String, primary_key=True, index=True, default=_uuid_str)
    slug = Column(String, unique=True, index=True, nullable=False)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")
    difficulty = Column(String, nullable=False, index=True)
    category = Column(String, nullable=False, index=True)
    time_limit_sec = Column(Float, nullable=False, default=2.0)
    memory_limit_mb = Column(Integer, nullable=False, default=128)
    points = Column(Integer, nullable=True)
    source = Column(String, nullable=False, default="original")
    version = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean(), default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    total_submissions = Column(Integer, default=0, nullable=False)
    accepted_submissions = Column(Integer, default=0, nullable=False)
    acceptance_rate = Column(Integer, default=0, nullable=False)
    solved_by = Column(Integer, default=0, nullable=False)
    attempted_by = Column(Integer, default=0, nullable=False)
    average_runtime_ms = Column(Float, nullable=True)
    average_memory_mb = Column(Float, nullable=True)

    test_cases = relationship("TestCase", back_populates="problem", cascade="all, delete-orphan",
                              order_by="TestCase.position")
    submissions = relationship("Submission", back_populates="problem")


class TestCase(Base):
    __test__ = False
    __tablename__ = "test_cases"

    id = Column(Integer, primary_key=True, index=True)
    problem_id = Column(String, ForeignKey("problems.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    name = Column(String, nullable=False)
    input = Column(Text, nullable=False, default="")
    expected_output = Column(Text, nullable=False, default="")
    is_hidden = Column(Boolean(), default=False, nullable=False)
    weight = Column(Integer, default=1, nullable=False)
    explanation = Column(Text, nullable=True)

    problem = relationship("Problem", back_populates="test_cases")


class Submission(Base):
    __tablename__ = "submissions"

    id = Column(String, primary_key=True, index=True, default=_uuid_str)
    problem_id = Column(String, ForeignKey("problems.id"), nullable=False, index=True)
    language = Column(String, nullable=False)
    code = Column(Text, nullable=False)

    submitter_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    submitter = relationship("User", back_populates="submissions")
    problem = relationship("Problem", back_populates="submissions")

    status = Column(String, default="pending", nullable=False, index=True)
    test_cases_passed = Column(Integer, default=0, nullable=False)
    total_test_cases = Column(Integer, default=0, nullable=False)
    score = Column(Integer, default=0, nullable=False)
    runtime_ms = Column(Float, nullable=True)
    memory_mb = Column(Float, nullable=True)
    points = Column(Integer, default=0, nullable=False)
    error_message = Column(Text, nullable=True)
    results_json = Column(Text, nullable=True)
    submitted_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, index=True)
    judged_at = Column(DateTime(timezone=True), nullable=True)
    stats_applied = Column(Boolean(), default=False, nullable=False)

    judge_task = relationship("JudgeTask", back_populates="submission", uselist=False)

    __table_args__ = (
        Index("ix_submissions_submitter_problem", "submitter_id", "problem_id"),
    )


class JudgeTask(Base):
    __tablename__ = "judge_tasks"

    id = Column(Integer, primary_key=True, index=True)
    submission_id = Column(String, ForeignKey("submissions.id"), unique=True, nullable=False)
    state = Column(String, default="queued", nullable=False, index=True)
    attempts = Column(Integer, default=0, nullable=False)
    available_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, index=True)
    lease_expires_at = Column(DateTime(timezone=True), nullable=True)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    submission = relationship("Submission", back_populates="judge_task")


class UserProblem(Base):
    __tablename__ = "user_problems"

    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    problem_id = Column(String, ForeignKey("problems.id"), primary_key=True)
    attempted_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    solved_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User", back_populates="problem_progress")


class UserCategoryProgress(Base):
    __tablename__ = "user_category_progress"

    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    category = Column(String, primary_key=True)
    attempted = Column(Integer, default=0, nullable=False)
    solved = Column(Integer, default=0, nullable=False)

    user = relationship("User", back_populates="category_progress")


class UserAchievement(Base):
    __tablename__ = "user_achievements"

    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    achievement_id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    icon = Column(String, nullable=True)
    category = Column(String, nullable=False, default="solving")
    unlocked_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    user = relationship("User", back_populates="achievements")
