"""
Health endpoint: database, massif directory and circuit breakers
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from conditions.core.circuit_breaker import CircuitBreaker
from conditions.core.logging import get_logger
from conditions.db.database import get_db

logger = get_logger(__name__)

router = APIRouter()


@router.get("/health", summary="Readiness check", tags=["Health"])
async def health_check(request: Request, db: AsyncSession = Depends(get_db)) -> JSONResponse:
    result: dict = {"status": "healthy"}

    try:
        await db.execute(text("SELECT 1"))
        result["db"] = "ok"
    except Exception as e:
        logger.warning("Health check: database unreachable", extra_data={"error": str(e)})
        result["db"] = f"error: {type(e).__name__}"
        result["status"] = "degraded"

    directory = getattr(request.app.state, "directory", None)
    if directory is not None and directory.is_initialized:
        result["massifs"] = len(directory)
    else:
        result["massifs"] = 0
        result["status"] = "degraded"

    result["circuit_breakers"] = CircuitBreaker.snapshot_all()

    return JSONResponse(content=result, status_code=200 if result["status"] == "healthy" else 503)
