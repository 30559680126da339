import logging
import os

wsgi_app = "prepfire.main:app"
preload_app = False

logger = logging.getLogger(__name__)


def on_starting(server):
    from prepfire.core.config import settings
    from prepfire.db.session import SessionLocal, init_db
    from prepfire.services.problem_service import load_server_data

    if settings.AUTO_CREATE_TABLES:
        init_db()
    db = SessionLocal()
    try:
        counts = load_server_data(db)
        server.log.info(f"Gunicorn master synced problems: {counts}")
    finally:
        db.close()


def when_ready(server):
    pid = os.getpid()
    os.environ['GUNICORN_PID'] = str(pid)
    server.log.info(f"Gunicorn master (PID: {pid}) is ready. Setting GUNICORN_PID.")


workers = int(os.getenv("WEB_CONCURRENCY", "4"))
worker_class = "uvicorn.workers.UvicornWorker"
