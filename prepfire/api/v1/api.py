from fastapi import APIRouter

from prepfire.api.v1.endpoints import admin, submissions, users

api_router = APIRouter()
api_router.include_router(submissions.router, prefix="/submissions", tags=["submissions"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
