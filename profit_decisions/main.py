"""
Profit Decisions
Main FastAPI application
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from profit_decisions.config import get_settings
from profit_decisions.utils.logger import log
from profit_decisions import __version__

# Import routers
from profit_decisions.api import health, decisions, costs, profit, settings as shop_settings

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    # Startup
    log.info(f"Starting {settings.app_name} v{__version__}")
    log.info(f"Environment: {settings.environment}")

    # Initialize database
    try:
        from profit_decisions.models.base import init_db
        init_db()
        log.info("Database initialized")
    except Exception as e:
        log.error(f"Database initialization error: {str(e)}")

    # Start the scheduler for outcome evaluation and cache cleanup
    scheduler_started = False
    if settings.enable_scheduler:
        try:
            from profit_decisions.scheduler import start_scheduler
            start_scheduler()
            scheduler_started = True
        except Exception as e:
            log.error(f"Scheduler startup error: {str(e)}")

    yield

    # Shutdown
    if scheduler_started:
        from profit_decisions.scheduler import stop_scheduler
        stop_scheduler()
    log.info("Shutting down application")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=__version__,
    description="""
    Profit decision engine for online stores

    Turns a shop's recent orders into at most three ranked actions:
    - Best sellers that lose money on every sale
    - Free-shipping thresholds that cost more than they earn
    - Heavily discounted products that come back as refunds

    Tracks what the merchant did with each decision and grades the
    outcome once the evaluation window has passed.
    """,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(decisions.router)
app.include_router(costs.router)
app.include_router(profit.router)
app.include_router(shop_settings.router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "profit_decisions.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug
    )
