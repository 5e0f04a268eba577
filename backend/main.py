"""
Main FastAPI application
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.config import get_settings
from backend.database import engine, Base
from backend.api import bookings, milestones, tasks, approvals, time_entries, comments
from backend.services.errors import ProgressEngineError
from backend.services.events import event_bus, log_event

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")

    event_bus.subscribe(log_event)

    yield

    event_bus.unsubscribe(log_event)
    await engine.dispose()

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ProgressEngineError)
async def progress_error_handler(request: Request, exc: ProgressEngineError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}", exc_info=exc)
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({exc.error}): {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.error,
            "message": exc.message,
            "detail": exc.detail,
        },
    )


# Include routers
app.include_router(bookings.router, prefix="/api/bookings", tags=["Bookings"])
app.include_router(milestones.router, prefix="/api", tags=["Milestones"])
app.include_router(tasks.router, prefix="/api", tags=["Tasks"])
app.include_router(approvals.router, prefix="/api", tags=["Approvals"])
app.include_router(time_entries.router, prefix="/api", tags=["Time Tracking"])
app.include_router(comments.router, prefix="/api", tags=["Comments"])


@app.get("/")
async def root():
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running"
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
