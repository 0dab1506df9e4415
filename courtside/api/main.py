"""
Courtside API Server

FastAPI server that runs a live doubles badminton rotation: players, courts,
automatic match assembly and the completed match ledger.
"""

from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
import os
import uvicorn
from slowapi import _rate_limit_exceeded_handler  # type: ignore
from slowapi.errors import RateLimitExceeded  # type: ignore

from courtside.api.routes import router, limiter as routes_limiter
from courtside.database import db
from courtside.models.schemas import HealthResponse
from courtside.services.rotation_service import RotationService, get_rotation_service

# Set up logging
# Allow log level to be configured via environment variable (default: INFO)
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
numeric_level = getattr(logging, log_level, logging.INFO)
logging.basicConfig(
    level=numeric_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler for startup and shutdown events."""
    # Startup
    logger.info("Starting up Courtside API...")

    try:
        await db.init_database()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)
        # Don't raise - the rotation still runs in memory

    # Restore the stored rotation, if any
    service = get_rotation_service()
    await service.load()
    logger.info(f"Rotation {service.state_key!r} ready in {service.state.phase.value} phase")

    yield  # App is running

    # Shutdown
    logger.info("Shutting down Courtside API...")
    try:
        await db.engine.dispose()
    except Exception as e:
        logger.error(f"Error disposing database engine: {e}", exc_info=True)


app = FastAPI(
    title="Courtside API",
    description="API for running a live doubles badminton court rotation",
    version="1.0.0",
    lifespan=lifespan,
)

# Setup rate limiter
app.state.limiter = routes_limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add CORS middleware - origins configured via ALLOWED_ORIGINS env var
allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router)


@app.get("/api/health", response_model=HealthResponse)
async def health_check(service: RotationService = Depends(get_rotation_service)):
    """
    Health check endpoint.

    Returns:
        HealthResponse: Service status and current rotation phase
    """
    return HealthResponse(status="healthy", phase=service.state.phase, message="API is running")


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
