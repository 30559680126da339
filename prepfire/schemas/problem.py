from enum import Enum
from typing import List, Optional

from pydantic import BaseModel

from prepfire.schemas.base import CamelModel

DIFFICULTY_POINTS = {"easy": 10, "medium": 20, "hard": 30}

CATEGORIES = [
    "array", "string", "linkedlist", "tree", "graph", "dp", "greedy",
    "backtracking", "sorting", "searching", "math", "bit-manipulation",
    "two-pointers", "sliding-window", "stack", "queue", "heap", "trie",
    "union-find", "design", "simulation",
]


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


def points_for_difficulty(difficulty: str, override: Optional[int] = None) -> int:
    if override is not None:
        return override
    return DIFFICULTY_POINTS.get(difficulty, DIFFICULTY_POINTS["easy"])


class TestCase(BaseModel):
    __test__ = False

    name: str
    input: str = ""
    expected_output: str = ""
    is_hidden: bool = False
    weight: int = 1


class ProblemDefinition(BaseModel):
    slug: str
    title: str
    description: str
    difficulty: Difficulty
    category: str
    time_limit_sec: float = 2.0
    memory_limit_mb: int = 128
    points: Optional[int] = None
    source: str = "original"
    test_cases: List[TestCase] = []


class ProblemStatistics(CamelModel):
    total_submissions: int = 0
    accepted_submissions: int = 0
    acceptance_rate: int = 0
    solved_by: int = 0
    attempted_by: int = 0
    average_runtime_ms: Optional[float] = None
    average_memory_mb: Optional[float] = None


class ProblemMinimal(CamelModel):
    id: str
    slug: str
    title: str
    difficulty: str
    category: str
