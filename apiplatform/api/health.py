# ABOUTME: Health and readiness endpoints
# ABOUTME: Liveness needs nothing; readiness checks the database and reports the counter store backend

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from apiplatform.database import get_db
from apiplatform.dependencies import get_platform
from apiplatform.services.platform import APIPlatform

router = APIRouter(tags=["health"])


@router.get("/health", responses={
    200: {"description": "API is healthy", "content": {"application/json": {"example": {"status": "ok"}}}}
})
async def health_check():
    """Returns API health status."""
    return {"status": "ok"}


@router.get("/health/ready", responses={
    200: {"description": "Database reachable", "content": {"application/json": {"example": {
        "status": "ok", "database": "ok", "counter_store": "RedisRateCounterStore"
    }}}},
    503: {"description": "Database unreachable"},
})
def readiness_check(db: Session = Depends(get_db), platform: APIPlatform = Depends(get_platform)):
    """Checks the database connection before reporting ready."""
    body = {"status": "ok", "database": "ok", "counter_store": type(platform.limiter.store).__name__}
    try:
        db.execute(text("SELECT 1"))
    except Exception:
        body.update(status="unavailable", database="unreachable")
        return JSONResponse(status_code=503, content=body)
    return body
