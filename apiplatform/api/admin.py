# ABOUTME: Admin API endpoints
# ABOUTME: Issues API keys and manages their lifecycle; guarded by the admin scope rule

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from apiplatform.database import get_db
from apiplatform.dependencies import get_platform, require_api_key
from apiplatform.models.database import APIKey
from apiplatform.models.errors import AUTH_REQUIRED, NOT_FOUND, api_error
from apiplatform.models.schemas import (
    APIKeySummary,
    CreateAPIKeyRequest,
    CreateAPIKeyResponse,
    UpdateAPIKeyStatusRequest,
)
from apiplatform.services.key_issuer import (
    InvalidExpiryError,
    InvalidStatusTransitionError,
    KeyNotFoundError,
    get_key,
    list_keys,
)
from apiplatform.services.platform import APIPlatform
from apiplatform.services.tiers import InvalidTierError

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/keys", status_code=201, response_model=CreateAPIKeyResponse, responses={
    400: {"description": "Unknown tier or unrepresentable expiry"},
    **AUTH_REQUIRED,
})
def create_api_key(
    request: CreateAPIKeyRequest,
    admin_key: APIKey = Depends(require_api_key),
    db: Session = Depends(get_db),
    platform: APIPlatform = Depends(get_platform),
):
    """
    Issue a new API key (admin only).

    The plaintext key is returned only in this response.
    Only the SHA-256 hash of its secret is stored.
    """
    try:
        issued = platform.issue_key(
            db,
            owner_id=request.owner_id,
            name=request.name,
            scopes=request.scopes,
            tier=request.tier,
            expires_in_days=request.expires_in_days,
            metadata=request.metadata,
            actor=admin_key.id,
        )
    except InvalidTierError as e:
        raise api_error(400, "INVALID_TIER", str(e))
    except InvalidExpiryError as e:
        raise api_error(400, "INVALID_PARAMETER", str(e))

    summary = APIKeySummary.from_model(issued.api_key)
    return CreateAPIKeyResponse(**summary.model_dump(), api_key=issued.plaintext)


@router.get("/keys", responses=AUTH_REQUIRED)
def get_api_keys(
    owner_id: Optional[str] = None,
    admin_key: APIKey = Depends(require_api_key),
    db: Session = Depends(get_db),
):
    """List keys, optionally for one owner. Secrets are never returned."""
    keys = list_keys(db, owner_id=owner_id)
    return {
        "data": [APIKeySummary.from_model(k).model_dump(mode="json") for k in keys],
        "meta": {"count": len(keys)},
    }


@router.get("/keys/{key_id}", response_model=APIKeySummary, responses={**AUTH_REQUIRED, **NOT_FOUND})
def get_api_key(
    key_id: str,
    admin_key: APIKey = Depends(require_api_key),
    db: Session = Depends(get_db),
):
    try:
        return APIKeySummary.from_model(get_key(db, key_id))
    except KeyNotFoundError:
        raise api_error(404, "NOT_FOUND", f"API key not found: {key_id}")


@router.patch("/keys/{key_id}", response_model=APIKeySummary, responses={
    409: {"description": "Status change not allowed (revoked keys stay revoked)"},
    **AUTH_REQUIRED,
    **NOT_FOUND,
})
def update_api_key_status(
    key_id: str,
    request: UpdateAPIKeyStatusRequest,
    admin_key: APIKey = Depends(require_api_key),
    db: Session = Depends(get_db),
    platform: APIPlatform = Depends(get_platform),
):
    """Suspend, reactivate, or revoke a key (admin only)."""
    try:
        api_key = platform.set_key_status(db, key_id, request.status, actor=admin_key.id)
    except KeyNotFoundError:
        raise api_error(404, "NOT_FOUND", f"API key not found: {key_id}")
    except InvalidStatusTransitionError as e:
        raise api_error(409, "INVALID_STATUS_TRANSITION", str(e))
    return APIKeySummary.from_model(api_key)
