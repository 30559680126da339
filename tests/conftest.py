import asyncio
import os
import tempfile
from typing import AsyncGenerator, Callable, Generator, List, Optional

_TEST_ROOT = tempfile.mkdtemp(prefix="prepfire_tests_")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_ROOT, 'default.db')}"
os.environ["LOG_DIR"] = os.path.join(_TEST_ROOT, "logs")
os.environ["ADMIN_TOKEN"] = "test-admin-token"
os.environ["JUDGE_ENGINE"] = "simulated"
os.environ["FALLBACK_USER_EMAIL"] = ""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import sessionmaker, Session

from prepfire.api import deps
from prepfire.core.security import create_access_token
from prepfire.crud import crud_submission, crud_user
from prepfire.db import models
from prepfire.db.session import init_db, make_engine
from prepfire.main import app
from prepfire.sandbox.engine import (
    CaseExecution, ExecutionEngine, ExecutionLimits, ExecutionResult, summarize
)
from prepfire.sandbox.executor import SubmissionJudge
from prepfire.schemas.problem import TestCase
from prepfire.schemas.submission import SubmissionCreate, SubmissionStatus
from prepfire.schemas.user import UserCreate

class ScriptedEngine(ExecutionEngine):
    """Execution engine double: returns the configured per-case statuses."""

    name = "scripted"

    def __init__(self, statuses: Optional[List[SubmissionStatus]] = None, compilation_error: Optional[str] = None,
                 delay_sec: float = 0.0, error: Optional[Exception] = None, result=None):
        self.statuses = statuses or []
        self.compilation_error = compilation_error
        self.delay_sec = delay_sec
        self.error = error
        self.result = result
        self.calls = 0

    async def execute(self, code: str, language: str, test_cases: List[TestCase],
                      limits: ExecutionLimits) -> ExecutionResult:
        self.calls += 1
        if self.delay_sec:
            await asyncio.sleep(self.delay_sec)
        if self.error is not None:
            raise self.error
        if self.result is not None:
            return self.result
        if self.compilation_error is not None:
            return ExecutionResult(compilation_error=self.compilation_error)

        cases = []
        for index, tc in enumerate(test_cases):
            status = self.statuses[index] if index < len(self.statuses) else SubmissionStatus.ACCEPTED
            ok = status == SubmissionStatus.ACCEPTED
            cases.append(CaseExecution(
                name=tc.name,
                status=status,
                stdout=tc.expected_output if ok else "wrong\n",
                stderr=None if ok else "Traceback: boom",
                execution_time_ms=10.0 * (index + 1),
                memory_used_kb=2048 * (index + 1),
            ))
            if not ok:
                break
        return summarize(cases)


@pytest.fixture
def session_factory(tmp_path) -> Generator[Callable[[], Session], None, None]:
    engine = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[deps.get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def test_user(db: Session) -> models.User:
    return crud_user.user.create(db, obj_in=UserCreate(email="test@example.com", name="Tester"))


@pytest.fixture
def other_user(db: Session) -> models.User:
    return crud_user.user.create(db, obj_in=UserCreate(email="other@example.com", name="Other"))


@pytest.fixture
def admin_user(db: Session) -> models.User:
    return crud_user.user.create(db, obj_in=UserCreate(email="admin@example.com", role="admin"))


def auth_headers(user: models.User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(data={'sub': user.email})}"}


@pytest.fixture
def headers_for():
    return auth_headers


@pytest.fixture
def make_problem(db: Session):
    counter = {"n": 0}

    def _make(difficulty: str = "easy", category: str = "math", cases: int = 2, points: Optional[int] = None,
              is_active: bool = True, hidden_from: int = 1) -> models.Problem:
        counter["n"] += 1
        problem = models.Problem(
            slug=f"problem-{counter['n']}",
            title=f"Problem {counter['n']}",
            description="Add two numbers.",
            difficulty=difficulty,
            category=category,
            time_limit_sec=2.0,
            memory_limit_mb=128,
            points=points,
            is_active=is_active,
        )
        problem.test_cases = [
            models.TestCase(position=i, name=f"case-{i + 1}", input=f"{i} {i}\n", expected_output=f"{2 * i}\n",
                            is_hidden=i >= hidden_from, weight=1)
            for i in range(cases)
        ]
        db.add(problem)
        db.commit()
        db.refresh(problem)
        return problem

    return _make


@pytest.fixture
def problem(make_problem) -> models.Problem:
    return make_problem()


@pytest.fixture
def make_submission(db: Session):
    def _make(user: models.User, problem: models.Problem, code: str = "a, b = map(int, input().split())\nprint(a + b)",
              language: str = "python") -> models.Submission:
        return crud_submission.submission.create_with_owner(
            db,
            obj_in=SubmissionCreate(problem_id=problem.id, language=language, code=code),
            submitter_id=user.id,
            total_test_cases=len(problem.test_cases),
        )

    return _make


@pytest.fixture
def scripted_engine():
    return ScriptedEngine


@pytest.fixture
def make_judge(session_factory):
    def _make(engine: ExecutionEngine, execution_timeout_sec: Optional[float] = None) -> SubmissionJudge:
        return SubmissionJudge(session_factory=session_factory, engine=engine,
                               execution_timeout_sec=execution_timeout_sec)

    return _make
