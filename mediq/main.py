import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

# Import all models to ensure they're registered with SQLAlchemy Base
from . import (
    models,  # noqa: F401
    models_queue,  # noqa: F401
    models_schedule,  # noqa: F401
    models_stats,  # noqa: F401
)
from .config import ALLOWED_ORIGINS, REALTIME_REDIS_CHANNEL, REALTIME_REDIS_ENABLED, REDIS_URL
from .database import Base, engine
from .domain.availability.router import admin_router as schedules_admin_router
from .domain.availability.router import availability_router
from .domain.availability.router import router as schedules_router
from .domain.leave.router import admin_router as leave_admin_router
from .domain.leave.router import router as leave_router
from .domain.queue.router import admin_router as queue_admin_router
from .domain.queue.router import router as queue_router
from .domain.stats.router import admin_router as stats_admin_router
from .domain.stats.router import router as stats_router
from .realtime.hub import get_hub
from .routes.notifications import router as notifications_router
from .routes.realtime import router as realtime_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("✅ Database tables created successfully")
    except Exception as e:
        # Ignore "already exists" errors from race conditions between workers
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"❌ Failed to create database tables: {e}")

    relay_task = None
    if REALTIME_REDIS_ENABLED and REDIS_URL:
        from .realtime.redis_relay import relay_to_hub

        relay_task = asyncio.create_task(relay_to_hub(get_hub(), REDIS_URL, REALTIME_REDIS_CHANNEL))
    else:
        logger.info("📡 Realtime events delivered in-process (Redis relay disabled)")

    yield

    logger.info("Application shutting down...")
    if relay_task:
        relay_task.cancel()
        try:
            await relay_task
        except asyncio.CancelledError:
            pass


app = FastAPI(title="MediQ OPD API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Convert 422 validation errors on the Authorization header to 401,
    everything else stays a 422 with the pydantic error list
    """
    for error in exc.errors():
        if error.get("loc") and "authorization" in str(error.get("loc")).lower():
            logger.warning(f"Authentication failed for {request.url.path}: Missing or invalid Authorization header")
            return JSONResponse(status_code=401, content={"message": "Not authenticated"})

    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=422,
        content={"message": "Validation failed", "errors": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail}, headers=exc.headers)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"❌ {request.method} {request.url.path} - Error: {str(exc)}")
    return JSONResponse(status_code=500, content={"message": "Server error", "error": str(exc)})


# Log CORS configuration for debugging
logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

# Routes
app.include_router(queue_router)
app.include_router(queue_admin_router)
app.include_router(schedules_router)
app.include_router(schedules_admin_router)
app.include_router(availability_router)
app.include_router(leave_router)
app.include_router(leave_admin_router)
app.include_router(stats_router)
app.include_router(stats_admin_router)
app.include_router(notifications_router)
app.include_router(realtime_router)


@app.get("/")
def root():
    return {"message": "MediQ OPD API is running"}


@app.get("/health")
def health():
    return {"status": "healthy", "realtimeConnections": get_hub().connection_count}
