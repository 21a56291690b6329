import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from slotwise.api.routes import activity, conflicts, health, sessions, timetables
from slotwise.core.config import get_settings
from slotwise.core.exceptions import AppError
from slotwise.core.middleware import RequestSizeLimitMiddleware, RequestTimingMiddleware
from slotwise.db.bootstrap import ensure_runtime_schema

logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(_: FastAPI):
    ensure_runtime_schema()
    yield


async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "details": exc.details},
    )


app = FastAPI(title=settings.project_name, lifespan=lifespan)
app.add_exception_handler(AppError, app_error_handler)

app.add_middleware(RequestSizeLimitMiddleware, max_bytes=settings.max_request_size_bytes)
app.add_middleware(RequestTimingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix=settings.api_prefix, tags=["health"])
app.include_router(timetables.router, prefix=f"{settings.api_prefix}/timetables", tags=["timetables"])
app.include_router(conflicts.router, prefix=f"{settings.api_prefix}/conflicts", tags=["conflicts"])
app.include_router(sessions.router, prefix=f"{settings.api_prefix}/sessions", tags=["sessions"])
app.include_router(activity.router, prefix=settings.api_prefix, tags=["activity"])
