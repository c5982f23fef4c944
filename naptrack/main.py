"""FastAPI app: lifespan, CORS, error mapping, router registration."""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging
from .api.schedule import router as schedule_router
from .services.scheduler import start_scheduler, stop_scheduler, get_scheduler_status
from .core.database import get_database
from .core.errors import NapTrackError, ScheduleValidationError
from .core.settings import settings

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


# Used by: FastAPI lifespan (init DB + scheduler on startup, tear down on shutdown)
@asynccontextmanager
async def lifespan(app: FastAPI):
    db = get_database()
    await db.connect(settings.DATABASE_URL, create_schema=settings.DB_CREATE_SCHEMA)
    await start_scheduler()

    yield

    await stop_scheduler()
    await db.disconnect()


app = FastAPI(
    title="NapTrack API",
    version="1.0.0",
    description="NapTrack - Nap schedule recommendations and 2-to-1 nap transitions",
    lifespan=lifespan
)

cors_origins = settings.CORS_ORIGINS.copy()
if settings.CORS_EXTRA_ORIGINS:
    cors_origins.extend([o.strip() for o in settings.CORS_EXTRA_ORIGINS.split(",") if o.strip()])

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Used by: every route (core errors become {"code", "detail"} with the error's status)
@app.exception_handler(NapTrackError)
async def naptrack_error_handler(request: Request, exc: NapTrackError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}")

    body = {"code": exc.code, "detail": exc.message}
    if isinstance(exc, ScheduleValidationError):
        body["issues"] = [{"field": issue.field, "message": issue.message} for issue in exc.issues]
    return JSONResponse(status_code=exc.status_code, content=body)


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "database": get_database().is_connected,
        "scheduler": get_scheduler_status(),
    }


app.include_router(schedule_router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("naptrack.main:app", host=settings.HOST, port=settings.PORT)
