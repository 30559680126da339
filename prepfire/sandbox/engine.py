import abc
import asyncio
import logging
import math
import os
import random
import shutil
import signal
import subprocess
import tempfile
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from typing import List, Optional

from pydantic import BaseModel

from prepfire.core.config import settings
from prepfire.sandbox.common import (
    LANGUAGE_CONFIG, EXECUTION_WRAPPER, INPUT_FILE, STDOUT_FILE, STDERR_FILE, RES_LOG_FILE,
    MEMORY_ERROR_MARKERS, run_wrapped, read_res_log, read_text, outputs_match
)
from prepfire.schemas.problem import TestCase
from prepfire.schemas.submission import SubmissionStatus

MAX_THREADS = (os.cpu_count() or 2) * 2
blocking_executor = ThreadPoolExecutor(max_workers=MAX_THREADS)

logger = logging.getLogger(__name__)


class ExecutionLimits(BaseModel):
    time_limit_sec: float = 2.0
    memory_limit_mb: int = 128


class CaseExecution(BaseModel):
    name: str
    status: SubmissionStatus
    stdout: Optional[str] = None
    stderr: Optional[str] = None
    execution_time_ms: float = 0.0
    memory_used_kb: int = 0


class ExecutionResult(BaseModel):
    cases: List[CaseExecution] = []
    compilation_error: Optional[str] = None
    runtime_ms: float = 0.0
    memory_mb: float = 0.0

    @property
    def passed(self) -> bool:
        return (
                self.compilation_error is None
                and bool(self.cases)
                and all(c.status == SubmissionStatus.ACCEPTED for c in self.cases)
        )


def summarize(cases: List[CaseExecution]) -> ExecutionResult:
    return ExecutionResult(
        cases=cases,
        runtime_ms=max((c.execution_time_ms for c in cases), default=0.0),
        memory_mb=round(max((c.memory_used_kb for c in cases), default=0) / 1024, 2),
    )


def _remove_when_idle(workspace: str, in_flight: Optional[Future]) -> None:
    # A cancelled await does not stop the worker thread, which may still be using the workspace.
    if in_flight is not None and not in_flight.done():
        in_flight.add_done_callback(lambda _: shutil.rmtree(workspace, ignore_errors=True))
        return
    shutil.rmtree(workspace, ignore_errors=True)


class ExecutionEngine(abc.ABC):
    """Runs submitted code against test cases. Implementations must not persist anything."""

    name = "abstract"

    @abc.abstractmethod
    async def execute(self, code: str, language: str, test_cases: List[TestCase],
                      limits: ExecutionLimits) -> ExecutionResult:
        raise NotImplementedError


class LocalProcessEngine(ExecutionEngine):
    """
    Runs code in a scratch directory on this host, one process per test case, under
    CPU and address-space rlimits. It is not an isolation boundary for untrusted code.
    """

    name = "local"

    def __init__(self, stop_on_failure: bool = True, compile_timeout_sec: int = 30):
        self.stop_on_failure = stop_on_failure
        self.compile_timeout_sec = compile_timeout_sec

    async def execute(self, code: str, language: str, test_cases: List[TestCase],
                      limits: ExecutionLimits) -> ExecutionResult:
        cfg = LANGUAGE_CONFIG.get(language.lower())
        if not cfg:
            return ExecutionResult(compilation_error=f"Language {language} is not supported")

        workspace = tempfile.mkdtemp(prefix=f"prepfire_{uuid.uuid4().hex[:8]}_")
        in_flight: Optional[Future] = None
        try:
            with open(os.path.join(workspace, "user_code" + cfg["ext"]), 'w') as f:
                f.write(code)
            wrapper_path = os.path.join(workspace, "wrapper.py")
            with open(wrapper_path, 'w') as f:
                f.write(EXECUTION_WRAPPER)

            if cfg["compile"]:
                in_flight = blocking_executor.submit(self._compile, workspace, cfg["compile"])
                compile_error = await asyncio.wrap_future(in_flight)
                if compile_error is not None:
                    return ExecutionResult(compilation_error=compile_error)

            cases: List[CaseExecution] = []
            for tc in test_cases:
                in_flight = blocking_executor.submit(self._run_case, workspace, wrapper_path, cfg, tc, limits)
                case = await asyncio.wrap_future(in_flight)
                cases.append(case)
                if self.stop_on_failure and case.status != SubmissionStatus.ACCEPTED:
                    break
            return summarize(cases)
        finally:
            _remove_when_idle(workspace, in_flight)

    def _compile(self, workspace: str, command: List[str]) -> Optional[str]:
        try:
            proc = subprocess.run(command, cwd=workspace, capture_output=True, text=True,
                                  timeout=self.compile_timeout_sec, check=False)
        except FileNotFoundError:
            return f"Compiler not available: {command[0]}"
        except subprocess.TimeoutExpired:
            return "Compilation Timed Out (Wall Clock)."
        if proc.returncode != 0 or not os.path.exists(os.path.join(workspace, "user_exec")):
            return (proc.stderr or "Compilation failed.")[:4096].strip()
        return None

    @staticmethod
    def _run_case(workspace: str, wrapper_path: str, cfg: dict, tc: TestCase,
                  limits: ExecutionLimits) -> CaseExecution:
        for name in (STDOUT_FILE, STDERR_FILE, RES_LOG_FILE):
            path = os.path.join(workspace, name)
            if os.path.exists(path):
                os.remove(path)
        with open(os.path.join(workspace, INPUT_FILE), 'w') as f:
            f.write(tc.input or "")

        cpu_limit_sec = max(1, math.ceil(limits.time_limit_sec))
        mem_limit_mb = limits.memory_limit_mb if cfg["limit_address_space"] else 0
        timed_out = run_wrapped(workspace, wrapper_path, cfg["run"], cpu_limit_sec, mem_limit_mb,
                                wall_limit_sec=limits.time_limit_sec * 2 + 1)

        res = read_res_log(os.path.join(workspace, RES_LOG_FILE))
        stdout = read_text(os.path.join(workspace, STDOUT_FILE)) or ""
        stderr = (read_text(os.path.join(workspace, STDERR_FILE), limit=4096) or "").strip() or None
        exec_ms, mem_kb = res["cpu_ms"], int(res["mem_kb"])

        if timed_out or res["signal"] == signal.SIGXCPU or exec_ms > limits.time_limit_sec * 1000:
            status = SubmissionStatus.TIME_LIMIT_EXCEEDED
            exec_ms = max(exec_ms, limits.time_limit_sec * 1000)
        elif (stderr and any(marker in stderr for marker in MEMORY_ERROR_MARKERS)) \
                or mem_kb > limits.memory_limit_mb * 1024:
            status = SubmissionStatus.MEMORY_LIMIT_EXCEEDED
        elif res["exit_code"] != 0:
            status = SubmissionStatus.RUNTIME_ERROR
        elif outputs_match(stdout, tc.expected_output):
            status = SubmissionStatus.ACCEPTED
        else:
            status = SubmissionStatus.WRONG_ANSWER

        display_stdout = (stdout[:4096] + '...') if len(stdout) > 4096 else stdout
        return CaseExecution(name=tc.name, status=status, stdout=display_stdout, stderr=stderr,
                             execution_time_ms=exec_ms, memory_used_kb=mem_kb)


class SimulatedEngine(ExecutionEngine):
    """Random verdicts with plausible runtime and memory figures, for demos and load tests."""

    name = "simulated"

    def __init__(self, accept_probability: float = 0.7, latency_sec: float = 0.0, seed: Optional[int] = None,
                 stop_on_failure: bool = True):
        self.stop_on_failure = stop_on_failure
        self.accept_probability = accept_probability
        self.latency_sec = latency_sec
        self._random = random.Random(seed)

    async def execute(self, code: str, language: str, test_cases: List[TestCase],
                      limits: ExecutionLimits) -> ExecutionResult:
        if self.latency_sec:
            await asyncio.sleep(self.latency_sec)

        accepted = self._random.random() < self.accept_probability
        passed_count = len(test_cases) if accepted else self._random.randrange(max(len(test_cases), 1))
        cases: List[CaseExecution] = []
        for index, tc in enumerate(test_cases):
            status = SubmissionStatus.ACCEPTED if index < passed_count else SubmissionStatus.WRONG_ANSWER
            cases.append(CaseExecution(
                name=tc.name,
                status=status,
                execution_time_ms=float(self._random.randint(50, 550)),
                memory_used_kb=self._random.randint(10, 60) * 1024,
            ))
            if self.stop_on_failure and status != SubmissionStatus.ACCEPTED:
                break
        return summarize(cases)


def get_execution_engine(name: Optional[str] = None, stop_on_failure: bool = True) -> ExecutionEngine:
    name = (name or settings.JUDGE_ENGINE).lower()
    if name == LocalProcessEngine.name:
        return LocalProcessEngine(stop_on_failure=stop_on_failure)
    if name == SimulatedEngine.name:
        return SimulatedEngine(accept_probability=settings.SIMULATED_ACCEPT_PROBABILITY,
                               stop_on_failure=stop_on_failure)
    raise ValueError(f"Unknown judge engine: {name}")
