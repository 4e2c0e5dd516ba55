"""
Star Oracle Backend API
A steady eye on near-Earth space.
Observers watch, researchers annotate, the feed is scored.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pymongo.errors import PyMongoError

from staroracle import __version__
from staroracle.config import get_settings
from staroracle.database import Database, check_write_isolation, ensure_indexes
from staroracle.routers import admin, asteroids, auth, researcher, settings as settings_router, watchlist
from staroracle.security import get_token_codec
from staroracle.sessions import SessionStore, sweep_periodically

# Configure logging with measured verbosity
logging.basicConfig(
    level=get_settings().log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("star_oracle")

# === FASTAPI APPLICATION ===
# The observatory opens its doors

app = FastAPI(
    title="Star Oracle API",
    description="Near-Earth Object observation, watchlists and research notes",
    version=__version__,
    docs_url="/api/docs",
    redoc_url="/api/redoc"
)

# CORS - open to every origin; credentials travel in the Authorization header
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=86400,
)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
    "Access-Control-Max-Age": "86400",
}


@app.middleware("http")
async def preflight_short_circuit(request: Request, call_next):
    """Every OPTIONS request succeeds here with an empty body, before routing."""
    if request.method == "OPTIONS":
        return Response(status_code=status.HTTP_200_OK, headers=CORS_HEADERS)
    return await call_next(request)


app.include_router(auth.router)
app.include_router(asteroids.router)
app.include_router(watchlist.router)
app.include_router(settings_router.router)
app.include_router(researcher.router)
app.include_router(admin.router)

# === ERROR BOUNDARY ===


def _describe(error: dict) -> str:
    location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
    message = error.get("msg", "Invalid value")
    return f"{location}: {message}" if location else message


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed input is a 400, checked before anything is written."""
    detail = "; ".join(_describe(error) for error in exc.errors()) or "Invalid request."
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": detail})


@app.exception_handler(PyMongoError)
async def persistence_exception_handler(request: Request, exc: PyMongoError):
    logger.exception(f"Storage failure on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Storage unavailable. Try again shortly."},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Log the failure, tell the caller nothing about it."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error."},
    )


# === LIFECYCLE EVENTS ===

_sweeper: Optional[asyncio.Task] = None


@app.on_event("startup")
async def startup_event():
    """Initialize connections when service awakens."""
    global _sweeper
    logger.info("Star Oracle backend initializing...")
    settings = get_settings()

    # Fail fast without a signing key
    get_token_codec()

    await Database.connect()
    await check_write_isolation(Database.client, settings.mongo_transactions)
    db = Database.get_database()
    await ensure_indexes(db)

    if settings.session_sweep_interval > 0:
        _sweeper = asyncio.create_task(
            sweep_periodically(SessionStore(db), settings.session_sweep_interval)
        )

    logger.info("Observatory is operational. Observation begins.")


@app.on_event("shutdown")
async def shutdown_event():
    """Clean shutdown when service rests."""
    global _sweeper
    logger.info("Star Oracle backend shutting down...")
    if _sweeper is not None:
        _sweeper.cancel()
        try:
            await _sweeper
        except asyncio.CancelledError:
            pass
        _sweeper = None
    await Database.disconnect()
    logger.info("Observatory closed. Until next observation cycle.")


# === HEALTH CHECK ===

@app.get("/api/health", tags=["System"])
async def health_check():
    """Verify system responsiveness. Simple heartbeat."""
    return {
        "status": "operational",
        "timestamp": datetime.utcnow().isoformat(),
        "message": "The eye remains steady."
    }


@app.get("/", tags=["System"])
async def root():
    """API root. Gateway to observation."""
    return {
        "service": "Star Oracle Backend API",
        "version": __version__,
        "status": "operational",
        "documentation": "/api/docs",
        "health": "/api/health"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("staroracle.main:app", host="0.0.0.0", port=8000)
