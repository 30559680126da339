import csv
import os
import random

from locust import HttpUser, task, constant

TARGET_HOST = os.getenv("LOCUST_TARGET_HOST", "http://127.0.0.1:8000")
TOKENS_FILE = os.getenv("LOCUST_TOKENS_FILE", "user_tokens.csv")
PROBLEM_ID = os.getenv("LOCUST_PROBLEM_ID", "")
BASE_API_PATH = "/api/v1"

# Solutions for server_data/problems/add-two
AC_PYTHON = "a, b = map(int, input().split())\nprint(a + b)"
AC_CPP = "#include <iostream>\nint main() { long long a, b; std::cin >> a >> b; std::cout << a + b << std::endl; }"
WA_PYTHON = "print('This is the wrong answer')"
TLE_PYTHON = "while True: pass"
TLE_CPP = "#include <iostream>\nint main() { while(true); return 0; }"
MLE_PYTHON = "a = []\nwhile True: a.append('A' * 1024 * 1024)"
RE_PYTHON_DIV_ZERO = "print(1/0)"
RE_CPP_SEGFAULT = "int main() { int *p = nullptr; *p = 42; return 0; }"
CE_CPP = "int main() { int x = ; return 0; }"


def _load_tokens():
    if not os.path.exists(TOKENS_FILE):
        return []
    with open(TOKENS_FILE, newline='') as f:
        return [row["access_token"] for row in csv.DictReader(f) if row.get("access_token")]


TOKENS = _load_tokens()


class JudgingUser(HttpUser):
    host = TARGET_HOST

    wait_time = constant(1.0)

    def on_start(self):
        # Without tokens the server must be running with FALLBACK_USER_EMAIL set.
        self.headers = {"Authorization": f"Bearer {random.choice(TOKENS)}"} if TOKENS else {}
        self.submission_ids = []

    def _submit_code(self, language: str, code: str, name_suffix: str):
        payload = {"problemId": PROBLEM_ID, "language": language, "code": code}
        request_name = f"{BASE_API_PATH}/submissions ({name_suffix})"

        with self.client.post(
                f"{BASE_API_PATH}/submissions",
                json=payload,
                headers=self.headers,
                name=request_name,
                catch_response=True
        ) as response:
            if response.status_code != 201:
                response.failure(f"Submit failed for {request_name} with status {response.status_code}")
                return
            self.submission_ids.append(response.json()["submission"]["id"])

    @task(10)
    def submit_python_ac(self):
        self._submit_code("python", AC_PYTHON, "AC_PY")

    @task(5)
    def submit_cpp_ac(self):
        self._submit_code("cpp", AC_CPP, "AC_CPP")

    @task(5)
    def submit_python_wa(self):
        self._submit_code("python", WA_PYTHON, "WA_PY")

    @task(2)
    def submit_tle(self):
        language, code = random.choice([("python", TLE_PYTHON), ("cpp", TLE_CPP)])
        self._submit_code(language, code, "TLE")

    @task(2)
    def submit_python_mle(self):
        self._submit_code("python", MLE_PYTHON, "MLE_PY")

    @task(2)
    def submit_re(self):
        language, code = random.choice([("python", RE_PYTHON_DIV_ZERO), ("cpp", RE_CPP_SEGFAULT)])
        self._submit_code(language, code, "RE")

    @task(1)
    def submit_cpp_ce(self):
        self._submit_code("cpp", CE_CPP, "CE_CPP")

    @task(8)
    def poll_submission(self):
        if not self.submission_ids or not self.headers:
            return
        submission_id = random.choice(self.submission_ids)
        self.client.get(f"{BASE_API_PATH}/submissions/{submission_id}", headers=self.headers,
                        name=f"{BASE_API_PATH}/submissions/[id]")

    @task(2)
    def dry_run(self):
        self.client.post(f"{BASE_API_PATH}/submissions/run",
                         json={"problemId": PROBLEM_ID, "language": "python", "code": AC_PYTHON},
                         headers=self.headers, name=f"{BASE_API_PATH}/submissions/run")
