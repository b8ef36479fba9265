"""Podium FastAPI application.

Weekly podium prediction game: live odds, wager placement and the
monthly leaderboard. Settlement and the weekly lifecycle run in Celery.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from podium import __version__
from podium.api.routes import admin, health, periods, rankings, wagers
from podium.config import get_settings
from podium.exceptions import (
    InvalidTransition,
    OddsFrozen,
    PeriodAlreadyFinalized,
    PeriodNotFound,
    PodiumError,
)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("starting_podium", version=__version__)
    yield
    logger.info("shutting_down_podium")


# Create FastAPI application
app = FastAPI(
    title="Podium",
    description="Weekly podium prediction game with Glicko-2 ratings and simulated odds",
    version=__version__,
    lifespan=lifespan,
    debug=settings.debug,
)

# Include API routers
app.include_router(health.router)
app.include_router(periods.router)
app.include_router(wagers.router)
app.include_router(rankings.router)
app.include_router(admin.router)


# Error handlers
@app.exception_handler(PodiumError)
async def domain_error_handler(request: Request, exc: PodiumError):
    """Domain errors that escaped a route."""
    if isinstance(exc, PeriodNotFound):
        status_code = 404
    elif isinstance(exc, (PeriodAlreadyFinalized, InvalidTransition, OddsFrozen)):
        status_code = 409
    else:
        status_code = 400
    logger.info("domain_error", path=request.url.path, error=str(exc), status_code=status_code)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.exception_handler(500)
async def server_error_handler(request: Request, exc):
    """Custom 500 handler."""
    logger.error("server_error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})
