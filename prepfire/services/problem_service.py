import json
import logging
import os
from typing import Dict, List, Optional, Tuple

from fastapi import HTTPException, status
from pydantic import ValidationError
from sqlalchemy.orm import Session

from prepfire.core.config import settings
from prepfire.core.exceptions import ProblemNotFound
from prepfire.crud import crud_problem
from prepfire.db import models as db_models
from prepfire.schemas.problem import CATEGORIES, ProblemDefinition, TestCase

logger = logging.getLogger(__name__)

PROBLEMS_DIR = "problems"
VISIBLE_TEST_PREFIX = "sample"

_CONTENT_FIELDS = ("title", "description", "difficulty", "category", "time_limit_sec", "memory_limit_mb",
                   "points", "source")


def _read_test_cases(problem_path: str, weights: Dict[str, int]) -> List[TestCase]:
    tests_dir_path = os.path.join(problem_path, "tests")
    search_path = tests_dir_path if os.path.isdir(tests_dir_path) else problem_path

    test_cases: List[TestCase] = []
    for item in sorted(os.listdir(search_path)):
        if not item.endswith(".in"):
            continue
        name = item[:-3]
        out_path = os.path.join(search_path, f"{name}.out")
        with open(os.path.join(search_path, item), "r", encoding='utf-8') as f_in:
            tc_input = f_in.read()
        tc_output = ""
        if os.path.exists(out_path):
            with open(out_path, "r", encoding='utf-8') as f_out:
                tc_output = f_out.read()
        else:
            logger.warning(f"Test case {name} in {problem_path} has no .out file")

        test_cases.append(TestCase(
            name=name,
            input=tc_input,
            expected_output=tc_output,
            is_hidden=not name.startswith(VISIBLE_TEST_PREFIX),
            weight=int(weights.get(name, 1)),
        ))
    return test_cases


def parse_problem_dir(slug: str, problem_path: str) -> Optional[ProblemDefinition]:
    index_md_path = os.path.join(problem_path, "index.md")
    settings_json_path = os.path.join(problem_path, "settings.json")

    if not (os.path.exists(index_md_path) and os.path.exists(settings_json_path)):
        return None

    try:
        with open(index_md_path, "r", encoding='utf-8') as f:
            description_md = f.read()
        with open(settings_json_path, "r", encoding='utf-8') as f:
            settings_data = json.load(f)
        test_cases = _read_test_cases(problem_path, settings_data.get("test_weights", {}))
        definition = ProblemDefinition(
            slug=slug,
            title=settings_data.get("title", slug),
            description=description_md,
            difficulty=settings_data.get("difficulty", "easy"),
            category=settings_data.get("category", "array"),
            time_limit_sec=settings_data.get("time_limit_sec", settings.DEFAULT_TIME_LIMIT_SEC),
            memory_limit_mb=settings_data.get("memory_limit_mb", settings.DEFAULT_MEMORY_LIMIT_MB),
            points=settings_data.get("points"),
            source=settings_data.get("source", "original"),
            test_cases=test_cases,
        )
    except (OSError, json.JSONDecodeError, ValidationError, ValueError) as e:
        logger.error(f"Skipping problem {slug}: {e}")
        return None

    if definition.category not in CATEGORIES:
        logger.error(f"Skipping problem {slug}: unknown category {definition.category}")
        return None
    if not definition.test_cases:
        logger.warning(f"Problem {slug} has no test cases")
    return definition


def _content_of(problem: db_models.Problem) -> Tuple:
    return (
        tuple(getattr(problem, field) for field in _CONTENT_FIELDS),
        tuple((tc.name, tc.input, tc.expected_output, tc.is_hidden, tc.weight) for tc in problem.test_cases),
    )


def _content_of_definition(definition: ProblemDefinition) -> Tuple:
    values = definition.model_dump(mode="json")
    return (
        tuple(values[field] for field in _CONTENT_FIELDS),
        tuple((tc.name, tc.input, tc.expected_output, tc.is_hidden, tc.weight) for tc in definition.test_cases),
    )


def _test_case_rows(definition: ProblemDefinition) -> List[db_models.TestCase]:
    return [
        db_models.TestCase(position=position, name=tc.name, input=tc.input, expected_output=tc.expected_output,
                           is_hidden=tc.is_hidden, weight=tc.weight)
        for position, tc in enumerate(definition.test_cases)
    ]


def upsert_problem(db: Session, definition: ProblemDefinition) -> Tuple[db_models.Problem, str]:
    """
    Creates or updates the problem with `definition.slug`. Aggregate statistics are
    never touched. Returns the problem and one of "created", "updated", "unchanged".
    """
    values = definition.model_dump(mode="json", exclude={"slug", "test_cases"})
    problem = crud_problem.problem.get_by_slug(db, slug=definition.slug)

    if problem is None:
        problem = db_models.Problem(slug=definition.slug, version=1, is_active=True, **values)
        problem.test_cases = _test_case_rows(definition)
        db.add(problem)
        db.commit()
        db.refresh(problem)
        return problem, "created"

    if _content_of(problem) == _content_of_definition(definition):
        return problem, "unchanged"

    for field, value in values.items():
        setattr(problem, field, value)
    problem.test_cases = _test_case_rows(definition)
    problem.version += 1
    db.commit()
    db.refresh(problem)
    return problem, "updated"


def load_server_data(db: Session, path: Optional[str] = None) -> Dict[str, int]:
    problems_path = os.path.join(path or settings.SERVER_DATA_PATH, PROBLEMS_DIR)
    counts = {"created": 0, "updated": 0, "unchanged": 0, "skipped": 0}
    if not os.path.isdir(problems_path):
        logger.warning(f"Problems directory not found at {problems_path}")
        return counts

    for slug in sorted(os.listdir(problems_path)):
        problem_path = os.path.join(problems_path, slug)
        if not os.path.isdir(problem_path) or slug.startswith('__'):
            continue
        definition = parse_problem_dir(slug, problem_path)
        if definition is None:
            counts["skipped"] += 1
            continue
        _, outcome = upsert_problem(db, definition)
        counts[outcome] += 1

    logger.info(f"Problem sync from {problems_path}: {counts}")
    return counts


def deactivate_problem(db: Session, problem_id: str) -> db_models.Problem:
    problem = crud_problem.problem.get(db, problem_id)
    if not problem:
        raise ProblemNotFound(problem_id)
    if not problem.is_active:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Problem is already inactive")
    return crud_problem.problem.deactivate(db, db_obj=problem)
