import os
import signal
import subprocess
import sys
from typing import Any, Dict, List, Optional

PYTHON3 = os.getenv("PYTHON3_PATH", sys.executable or "/usr/bin/python3")
NODE = os.getenv("NODE_BIN", "/usr/bin/node")
GCC = os.getenv("GCC_PATH", "/usr/bin/gcc")
GPP = os.getenv("GPP_PATH", "/usr/bin/g++")

INPUT_FILE = "input.txt"
STDOUT_FILE = "user.stdout"
STDERR_FILE = "user.stderr"
RES_LOG_FILE = "res.log"

EXECUTION_WRAPPER = """
import os
import resource
import sys

command = sys.argv[1:]
stdin_path = 'input.txt'
stdout_path = 'user.stdout'
stderr_path = 'user.stderr'
res_log_path = 'res.log'

cpu_limit_sec = int(os.environ['CPU_LIMIT_S'])
mem_limit_mb = int(os.environ.get('MEM_LIMIT_MB', '0'))

if os.path.exists(stdin_path):
    stdin_fd = os.open(stdin_path, os.O_RDONLY)
else:
    stdin_fd = os.open(os.devnull, os.O_RDONLY)

stdout_fd = os.open(stdout_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC)
stderr_fd = os.open(stderr_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC)

pid = os.fork()

if pid == 0:
    try:
        resource.setrlimit(resource.RLIMIT_CPU, (cpu_limit_sec, cpu_limit_sec + 1))
        if mem_limit_mb > 0:
            limit_bytes = mem_limit_mb * 1024 * 1024
            resource.setrlimit(resource.RLIMIT_AS, (limit_bytes, limit_bytes))
        os.dup2(stdin_fd, 0)
        os.dup2(stdout_fd, 1)
        os.dup2(stderr_fd, 2)
        os.execv(command[0], command)
    except Exception as e:
        os.write(stderr_fd, f"Wrapper execv error: {e}".encode())
        os._exit(127)
else:
    _pid, status, rusage = os.wait4(pid, 0)

    cpu_time_s = rusage.ru_utime + rusage.ru_stime
    mem_kb = rusage.ru_maxrss

    exit_code = -1
    signal_num = 0

    if os.WIFSIGNALED(status):
        signal_num = os.WTERMSIG(status)
        exit_code = -signal_num
    elif os.WIFEXITED(status):
        exit_code = os.WEXITSTATUS(status)

    with open(res_log_path, 'w') as f:
        f.write(f"EXIT_CODE:{exit_code}\\n")
        f.write(f"SIGNAL:{signal_num}\\n")
        f.write(f"CPU_S:{cpu_time_s:.4f}\\n")
        f.write(f"MEM_KB:{mem_kb}\\n")

    os.close(stdin_fd)
    os.close(stdout_fd)
    os.close(stderr_fd)
"""

# V8 reserves far more address space than it uses, so javascript runs without RLIMIT_AS.
LANGUAGE_CONFIG: Dict[str, Dict[str, Any]] = {
    "python": {
        "ext": ".py",
        "compile": None,
        "run": [PYTHON3, "user_code.py"],
        "limit_address_space": True,
    },
    "javascript": {
        "ext": ".js",
        "compile": None,
        "run": [NODE, "user_code.js"],
        "limit_address_space": False,
    },
    "c": {
        "ext": ".c",
        "compile": [GCC, "user_code.c", "-o", "user_exec", "-O2", "-std=c11", "-lm"],
        "run": ["./user_exec"],
        "limit_address_space": True,
    },
    "cpp": {
        "ext": ".cpp",
        "compile": [GPP, "user_code.cpp", "-o", "user_exec", "-O2", "-std=c++17"],
        "run": ["./user_exec"],
        "limit_address_space": True,
    },
}

MEMORY_ERROR_MARKERS = ("MemoryError", "std::bad_alloc", "JavaScript heap out of memory")


def run_wrapped(workspace: str, wrapper_path: str, command: List[str], cpu_limit_sec: int,
                mem_limit_mb: int, wall_limit_sec: float) -> bool:
    """
    Runs `command` through the execution wrapper inside `workspace`.
    Returns True if the wall clock limit was hit and the process group was killed.
    """
    env = os.environ.copy()
    env["CPU_LIMIT_S"] = str(cpu_limit_sec)
    env["MEM_LIMIT_MB"] = str(mem_limit_mb)
    proc = subprocess.Popen(
        [PYTHON3, wrapper_path] + command,
        cwd=workspace,
        env=env,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
    )
    try:
        proc.wait(timeout=wall_limit_sec)
        return False
    except subprocess.TimeoutExpired:
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        proc.wait()
        return True


def read_res_log(path: str) -> Dict[str, float]:
    res = {"exit_code": -1, "signal": 0, "cpu_ms": 0.0, "mem_kb": 0}
    try:
        with open(path, 'r') as f:
            for line in f:
                if line.startswith("EXIT_CODE:"): res["exit_code"] = int(line.strip().split(':')[1])
                if line.startswith("SIGNAL:"): res["signal"] = int(line.strip().split(':')[1])
                if line.startswith("CPU_S:"): res["cpu_ms"] = round(float(line.strip().split(':')[1]) * 1000, 2)
                if line.startswith("MEM_KB:"): res["mem_kb"] = int(line.strip().split(':')[1])
    except (IOError, IndexError, ValueError):
        pass
    return res


def read_text(path: str, limit: Optional[int] = None) -> Optional[str]:
    if not os.path.exists(path):
        return None
    with open(path, 'r', errors='ignore') as f:
        return f.read(limit) if limit else f.read()


def normalize_output(text: Optional[str]) -> List[str]:
    lines = [line.rstrip() for line in (text or "").replace("\r\n", "\n").split("\n")]
    while lines and not lines[-1]:
        lines.pop()
    return lines


def outputs_match(actual: Optional[str], expected: Optional[str]) -> bool:
    return normalize_output(actual) == normalize_output(expected)
