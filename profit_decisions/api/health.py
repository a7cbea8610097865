"""
Health check and status endpoints
"""
from fastapi import APIRouter
from datetime import datetime
from profit_decisions.config import get_settings
from profit_decisions import __version__

settings = get_settings()

router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "version": __version__
    }


@router.get("/status")
async def get_status():
    """Get system status"""
    return {
        "app_name": settings.app_name,
        "version": __version__,
        "environment": settings.environment,
        "engine": {
            "system_min_impact": settings.system_min_impact,
            "min_orders_for_decisions": settings.min_orders_for_decisions,
            "analysis_window_days": settings.analysis_window_days,
            "max_active_decisions": settings.max_active_decisions,
            "outcome_window_days": settings.outcome_window_days,
        },
        "scheduler_enabled": settings.enable_scheduler,
        "timestamp": datetime.utcnow().isoformat()
    }
