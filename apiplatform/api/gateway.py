# ABOUTME: Endpoints used by gateways fronting other services
# ABOUTME: Validates a caller's key for an arbitrary endpoint and accepts usage reports

from datetime import timezone

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from apiplatform.database import get_db
from apiplatform.dependencies import get_platform, require_api_key
from apiplatform.models.database import APIKey
from apiplatform.models.errors import AUTH_REQUIRED, NOT_FOUND, api_error
from apiplatform.models.schemas import UsageReport, ValidateRequest
from apiplatform.services.platform import APIPlatform
from apiplatform.services.usage import UsageRecord

router = APIRouter(tags=["gateway"])


@router.post("/v1/validate", responses={
    200: {"description": "Validation decision", "content": {"application/json": {"example": {
        "valid": False,
        "error": "InsufficientScope",
        "message": "Insufficient permissions",
        "api_key_id": "key_5f0c1e9a2b7d4c3e8a6f1d20",
        "owner_id": "employer_42",
        "scopes": ["jobs:read"],
        "required_scope": "jobs:write",
        "rate_limit": None,
    }}}},
})
def validate(
    request: ValidateRequest,
    db: Session = Depends(get_db),
    platform: APIPlatform = Depends(get_platform),
):
    """
    Validate `api_key` for `method endpoint`.

    Always answers 200; the decision is in the body. Allowed calls count
    against the key's rate limits exactly as direct calls do.
    """
    result = platform.validate(db, request.api_key, request.endpoint, request.method)
    return result.to_dict()


@router.post("/api/usage", status_code=202, responses={**AUTH_REQUIRED, **NOT_FOUND})
def report_usage(
    report: UsageReport,
    api_key: APIKey = Depends(require_api_key),
    db: Session = Depends(get_db),
    platform: APIPlatform = Depends(get_platform),
):
    """
    Record a usage fact observed by a gateway. Requires the usage:write scope.

    The reported key must belong to the caller's owner unless the caller is
    an admin; admins reporting an unknown key are accepted and the row dropped.
    """
    if "admin" not in (api_key.scopes or []):
        target = db.get(APIKey, report.api_key_id)
        if target is None or target.owner_id != api_key.owner_id:
            raise api_error(404, "NOT_FOUND", f"API key not found: {report.api_key_id}")

    fields = report.model_dump(exclude_none=True)
    if report.timestamp is not None and report.timestamp.tzinfo is not None:
        fields["timestamp"] = report.timestamp.astimezone(timezone.utc).replace(tzinfo=None)
    platform.record_usage(db, UsageRecord(**fields))
    return {"status": "accepted"}
