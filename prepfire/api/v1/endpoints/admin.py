import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from prepfire.api import deps
from prepfire.core.logging_config import log_audit_event
from prepfire.schemas.problem import ProblemMinimal
from prepfire.services import problem_service, statistics_service

router = APIRouter()
logger = logging.getLogger(__name__)


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


@router.post("/problems/reload")
async def reload_problems(
        request: Request,
        db: Session = Depends(deps.get_db),
        _: bool = Depends(deps.verify_admin_token)
):
    counts = problem_service.load_server_data(db)
    log_audit_event(actor="admin-token", ip_address=_client_ip(request), action=f"PROBLEMS_RELOAD {counts}")
    return {"success": True, "problems": counts}


@router.post("/problems/{problem_id}/deactivate")
async def deactivate_problem(
        problem_id: str,
        request: Request,
        db: Session = Depends(deps.get_db),
        _: bool = Depends(deps.verify_admin_token)
):
    problem = problem_service.deactivate_problem(db, problem_id)
    log_audit_event(actor="admin-token", ip_address=_client_ip(request), action=f"PROBLEM_DEACTIVATE {problem.slug}")
    return {"success": True, "problem": ProblemMinimal.model_validate(problem).model_dump(by_alias=True)}


@router.post("/statistics/rebuild")
async def rebuild_statistics(
        request: Request,
        db: Session = Depends(deps.get_db),
        _: bool = Depends(deps.verify_admin_token)
):
    counts = statistics_service.rebuild_all_statistics(db)
    log_audit_event(actor="admin-token", ip_address=_client_ip(request), action=f"STATISTICS_REBUILD {counts}")
    return {"success": True, "rebuilt": counts}
