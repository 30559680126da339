from datetime import datetime
from enum import Enum
from typing import Optional, List

from pydantic import BaseModel, Field, field_validator

from prepfire.schemas.base import CamelModel
from prepfire.schemas.problem import ProblemMinimal

SUPPORTED_LANGUAGES = ["python", "javascript", "c", "cpp"]


class SubmissionStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    WRONG_ANSWER = "wrong_answer"
    TIME_LIMIT_EXCEEDED = "time_limit_exceeded"
    MEMORY_LIMIT_EXCEEDED = "memory_limit_exceeded"
    RUNTIME_ERROR = "runtime_error"
    COMPILATION_ERROR = "compilation_error"


TERMINAL_STATUSES = {s.value for s in SubmissionStatus if s != SubmissionStatus.PENDING}


class TestCaseResult(CamelModel):
    __test__ = False

    test_case_name: str
    status: SubmissionStatus
    passed: bool = False
    hidden: bool = False
    stdout: Optional[str] = None
    stderr: Optional[str] = None
    execution_time_ms: Optional[float] = None
    memory_used_kb: Optional[int] = None


class SubmissionCreate(CamelModel):
    problem_id: str = Field(min_length=1)
    language: str
    code: str

    @field_validator("language")
    @classmethod
    def normalize_language(cls, value: str) -> str:
        return value.strip().lower()


class Verdict(BaseModel):
    status: SubmissionStatus
    test_cases_passed: int = 0
    total_test_cases: int = 0
    score: int = 0
    runtime_ms: Optional[float] = None
    memory_mb: Optional[float] = None
    error_message: Optional[str] = None
    results: List[TestCaseResult] = []


class SubmissionInfo(CamelModel):
    id: str
    problem_id: str
    submitter_id: int
    language: str
    status: SubmissionStatus
    test_cases_passed: int = 0
    total_test_cases: int = 0
    score: int = 0
    runtime_ms: Optional[float] = None
    memory_mb: Optional[float] = None
    points: int = 0
    submitted_at: datetime
    judged_at: Optional[datetime] = None
    problem: Optional[ProblemMinimal] = None


class Submission(SubmissionInfo):
    code: str
    error_message: Optional[str] = None
    results: List[TestCaseResult] = []
    user_email: Optional[str] = None


class SubmissionReceipt(CamelModel):
    id: str
    status: SubmissionStatus
    submitted_at: datetime


class SubmissionCreated(CamelModel):
    success: bool = True
    submission: SubmissionReceipt
    message: str = "Solution submitted successfully"


class SubmissionEnvelope(CamelModel):
    success: bool = True
    submission: Submission


class SubmissionList(CamelModel):
    success: bool = True
    submissions: List[SubmissionInfo] = []
