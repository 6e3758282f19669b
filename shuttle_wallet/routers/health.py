"""Health check endpoint."""
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
import logging

from shuttle_wallet.config import get_settings
from shuttle_wallet.version import APP_VERSION

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Health check endpoint for monitoring."""
    store = request.app.state.store
    directory = request.app.state.user_directory

    try:
        async with store.unit_of_work("health") as session:
            await session.execute(text("SELECT 1"))
        db_status = "connected"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={"status": "error", "detail": "Database connection failed"},
        )

    return {
        "status": "ok",
        "version": APP_VERSION,
        "environment": get_settings().environment,
        "database": db_status,
        "locks": request.app.state.lock_client.backend,
        "user_directory": {
            "subscribed": directory.is_subscribed,
            "users": len(directory.current_users()),
            "last_error": str(directory.last_error) if directory.last_error else None,
        },
    }
