import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from prepfire.api.v1.api import api_router as api_v1_router
from prepfire.core.config import settings
from prepfire.core.exceptions import ProblemNotFound, SubmissionValidationError
from prepfire.core.logging_config import setup_log_queue_handler
from prepfire.db.session import SessionLocal, init_db
from prepfire.sandbox.executor import judge_queue
from prepfire.services import problem_service

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    _, listener = setup_log_queue_handler()
    listener.start()
    logger.info("Application startup sequence initiated...")

    if settings.AUTO_CREATE_TABLES:
        init_db()

    if 'GUNICORN_PID' not in os.environ:
        db = SessionLocal()
        try:
            logger.info("Non-Gunicorn environment detected. Syncing problems from server data.")
            problem_service.load_server_data(db)
        except Exception as e:
            logger.error(f"Error syncing problems on startup: {e}", exc_info=True)
        finally:
            db.close()

    await judge_queue.start_workers()
    logger.info("Application startup complete. Ready to accept requests.")
    yield

    logger.info("Application shutdown sequence initiated...")
    await judge_queue.stop_workers()
    logger.info("Application shutdown complete.")
    listener.stop()


app = FastAPI(
    title="PrepFire Judge",
    lifespan=lifespan
)

app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")
app.include_router(api_v1_router, prefix="/api/v1")


def _error(status_code: int, detail) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "detail": detail})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    logger.warning(f"HTTP Exception: {exc.status_code} for {request.url} - Detail: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        f"{'.'.join(str(part) for part in err['loc'] if part != 'body')}: {err['msg']}"
        for err in exc.errors()
    ]
    return _error(status.HTTP_400_BAD_REQUEST, "; ".join(errors) or "Invalid request")


@app.exception_handler(SubmissionValidationError)
async def submission_validation_handler(request: Request, exc: SubmissionValidationError):
    return _error(status.HTTP_400_BAD_REQUEST, str(exc))


@app.exception_handler(ProblemNotFound)
async def problem_not_found_handler(request: Request, exc: ProblemNotFound):
    return _error(status.HTTP_404_NOT_FOUND, str(exc))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled Internal Server Error for {request.url}:", exc_info=True)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "An internal server error occurred. Please try again later.")


@app.get("/api/status")
async def api_status():
    return {"success": True, "status": "ok", "judge_workers": judge_queue.running}
