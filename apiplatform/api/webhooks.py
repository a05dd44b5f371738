# ABOUTME: Webhook registration endpoints
# ABOUTME: Registers outbound webhook endpoints and lists the caller's registrations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from apiplatform.database import get_db
from apiplatform.dependencies import get_platform, require_api_key
from apiplatform.models.database import APIKey
from apiplatform.models.errors import AUTH_REQUIRED, INVALID_PARAMETER, api_error
from apiplatform.models.schemas import CreateWebhookRequest, WebhookResponse
from apiplatform.services.platform import APIPlatform
from apiplatform.services.webhooks import list_webhooks

router = APIRouter(prefix="/api", tags=["webhooks"])


@router.post("/webhooks", status_code=201, response_model=WebhookResponse, responses={
    **AUTH_REQUIRED,
    **INVALID_PARAMETER,
})
def create_webhook(
    request: CreateWebhookRequest,
    api_key: APIKey = Depends(require_api_key),
    db: Session = Depends(get_db),
    platform: APIPlatform = Depends(get_platform),
):
    """
    Register a webhook endpoint for the caller's owner.

    The secret is generated when omitted and is returned in full only here.
    """
    try:
        webhook = platform.register_webhook(
            db,
            owner_id=api_key.owner_id,
            url=str(request.url),
            events=request.events,
            secret=request.secret,
        )
    except ValueError as e:
        raise api_error(400, "INVALID_PARAMETER", str(e))
    return WebhookResponse.from_model(webhook)


@router.get("/webhooks", responses=AUTH_REQUIRED)
def get_webhooks(
    api_key: APIKey = Depends(require_api_key),
    db: Session = Depends(get_db),
):
    """Lists the caller's webhook endpoints with secrets masked."""
    endpoints = list_webhooks(db, api_key.owner_id)
    return {
        "data": [WebhookResponse.from_model(w, mask_secret=True).model_dump(mode="json") for w in endpoints],
        "meta": {"count": len(endpoints)},
    }
