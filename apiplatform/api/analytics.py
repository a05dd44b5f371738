# ABOUTME: Usage analytics endpoint
# ABOUTME: Returns aggregated usage for the caller's own keys over a time window

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from apiplatform.database import get_db
from apiplatform.dependencies import get_platform, require_api_key
from apiplatform.models.database import APIKey
from apiplatform.models.errors import AUTH_REQUIRED, INVALID_PARAMETER, NOT_FOUND, api_error
from apiplatform.services.platform import APIPlatform

router = APIRouter(prefix="/api", tags=["analytics"])


@router.get("/analytics", responses={
    200: {"description": "Aggregated usage", "content": {"application/json": {"example": {
        "total_requests": 10,
        "avg_response_time": 41.5,
        "status_codes": [{"status": 200, "count": 9}, {"status": 404, "count": 1}],
        "top_groups": [{"endpoint": "/api/jobs", "count": 7}, {"endpoint": "/api/applications", "count": 3}],
        "time_range": "hour",
        "group_by": "endpoint",
        "generated_at": "2025-06-01T12:00:00",
    }}}},
    **AUTH_REQUIRED,
    **INVALID_PARAMETER,
    **NOT_FOUND,
})
def get_analytics(
    window: str = "day",
    group_by: str = "endpoint",
    api_key_id: Optional[str] = None,
    api_key: APIKey = Depends(require_api_key),
    db: Session = Depends(get_db),
    platform: APIPlatform = Depends(get_platform),
):
    """
    Aggregate usage over the last hour, day, week, or month.

    Without `api_key_id` the result covers every key of the caller's owner.
    A specific key must belong to the same owner unless the caller is an admin.
    """
    if api_key_id is not None:
        target = db.get(APIKey, api_key_id)
        if target is None or (target.owner_id != api_key.owner_id and "admin" not in (api_key.scopes or [])):
            raise api_error(404, "NOT_FOUND", f"API key not found: {api_key_id}")

    try:
        return platform.query_analytics(
            db,
            window=window,
            group_by=group_by,
            api_key_id=api_key_id,
            owner_id=None if api_key_id else api_key.owner_id,
        )
    except ValueError as e:
        raise api_error(400, "INVALID_PARAMETER", str(e))
