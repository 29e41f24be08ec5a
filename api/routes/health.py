# api/routes/health.py
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from datetime import datetime, timezone

from config.settings import Settings, get_settings
from models.database import get_session

router = APIRouter()

# Environment variable -> settings attribute
CHECKED_VARIABLES = {
    "DATABASE_URL": "database_url",
    "NEXT_PUBLIC_SUPABASE_URL": "supabase_url",
    "SUPABASE_SERVICE_ROLE_KEY": "supabase_service_role_key",
    "TICKETMASTER_API_KEY": "ticketmaster_api_key",
    "SPOTIFY_CLIENT_ID": "spotify_client_id",
    "SPOTIFY_CLIENT_SECRET": "spotify_client_secret",
    "SETLIST_FM_API_KEY": "setlist_fm_api_key",
    "CRON_SECRET_TOKEN": "cron_secret_token",
}


@router.get("/health")
async def health_check(session: AsyncSession = Depends(get_session)):
    """
    Health check endpoint for load balancers and monitoring.
    """
    checks = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "services": {}
    }

    # Check database
    try:
        await session.execute(text("SELECT 1"))
        checks["services"]["database"] = "ok"
    except Exception as e:
        checks["services"]["database"] = f"error: {str(e)}"
        checks["status"] = "unhealthy"

    return checks


@router.get("/env-check")
async def env_check(settings: Settings = Depends(get_settings)):
    """Report which variables are configured. Values are never returned."""
    variables = {name: bool(getattr(settings, attr)) for name, attr in CHECKED_VARIABLES.items()}
    return {
        "environment": settings.environment,
        "variables": variables,
        "missing": [name for name, present in variables.items() if not present],
    }
