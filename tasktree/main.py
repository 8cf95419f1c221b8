import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tasktree.core.config import settings
from tasktree.core.database import engine, Base
from tasktree.core.errors import TaskTreeError
from tasktree.routers import health, tasks, bulk, tags, groups, conflicts

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("tasktree")

# Init DB
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0"
)


@app.exception_handler(TaskTreeError)
def handle_core_error(request: Request, exc: TaskTreeError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
def handle_unexpected_error(request: Request, exc: Exception):
    correlation_id = str(uuid.uuid4())
    logger.exception(f"Unexpected error on {request.method} {request.url.path} [{correlation_id}]")
    return JSONResponse(
        status_code=500,
        content={"error": "An unexpected error occurred", "correlation_id": correlation_id},
    )


# Routes (bulk avant tasks: /tasks/bulk ne doit pas matcher /tasks/{task_id})
app.include_router(health.router, prefix="/health")
app.include_router(bulk.router)
app.include_router(tasks.router)
app.include_router(tags.router)
app.include_router(groups.router)
app.include_router(conflicts.router)
