from typing import List, Optional

from pydantic import Field, field_validator

from prepfire.schemas.base import CamelModel
from prepfire.schemas.submission import SubmissionStatus


class RunTestCase(CamelModel):
    input: str = ""
    expected_output: str = ""


class RunRequest(CamelModel):
    code: str
    language: str
    problem_id: Optional[str] = None
    test_cases: Optional[List[RunTestCase]] = Field(default=None, max_length=20)

    @field_validator("language")
    @classmethod
    def normalize_language(cls, value: str) -> str:
        return value.strip().lower()


class RunCaseResult(CamelModel):
    input: str
    expected_output: str
    actual_output: Optional[str] = None
    passed: bool
    status: SubmissionStatus
    execution_time_ms: Optional[float] = None
    memory_used_kb: Optional[int] = None
    error: Optional[str] = None


class RunResult(CamelModel):
    success: bool = True
    status: SubmissionStatus
    results: List[RunCaseResult] = []
    runtime_ms: Optional[float] = None
    memory_mb: Optional[float] = None
    error_message: Optional[str] = None
