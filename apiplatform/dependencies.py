# ABOUTME: FastAPI dependency injection utilities
# ABOUTME: Provides database sessions, the platform service, and API key authentication

from typing import Annotated, Iterator

from fastapi import Depends, Header, Request, Response
from sqlalchemy.orm import Session

from apiplatform.database import get_db
from apiplatform.models.database import APIKey
from apiplatform.models.errors import api_error
from apiplatform.services.platform import APIPlatform
from apiplatform.services.rate_limiter import RateLimitStatus
from apiplatform.services.validator import KeyValidationError


def get_platform(request: Request) -> APIPlatform:
    """The APIPlatform instance attached to the app at startup."""
    return request.app.state.platform


def _rate_limit_headers(status: RateLimitStatus) -> dict:
    return {
        "X-RateLimit-Limit": str(status.limit),
        "X-RateLimit-Remaining": str(max(0, status.remaining)),
        "X-RateLimit-Reset": str(status.reset_time // 1000),
    }


def _extract_api_key(authorization: str | None, x_api_key: str | None) -> str | None:
    if authorization and authorization.startswith("Bearer "):
        return authorization.replace("Bearer ", "", 1).strip() or None
    if x_api_key:
        return x_api_key.strip() or None
    return None


def require_api_key(
    request: Request,
    response: Response,
    authorization: Annotated[str | None, Header()] = None,
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
    db: Session = Depends(get_db),
    platform: APIPlatform = Depends(get_platform),
) -> Iterator[APIKey]:
    """
    Authenticate the request and hold a concurrency slot while it runs.

    Accepts `Authorization: Bearer <key>` or `X-API-Key`. Validation runs
    against this request's path and method, so scope rules apply to every
    protected route. Raises HTTPException with the standard error envelope.
    """
    raw_key = _extract_api_key(authorization, x_api_key)
    if not raw_key:
        raise api_error(401, "INVALID_API_KEY", "API key is missing or invalid")

    result = platform.validate(db, raw_key, request.url.path, request.method)

    # Lets the usage middleware attribute the attempt, including denials
    if result.api_key is not None:
        request.state.api_key_id = result.api_key.id

    headers = _rate_limit_headers(result.rate_limit_status) if result.rate_limit_status else {}

    if not result.valid:
        error = result.error
        details = None
        if error == KeyValidationError.RATE_LIMIT_EXCEEDED:
            retry_after = result.rate_limit_status.retry_after
            headers["Retry-After"] = str(retry_after)
            details = result.rate_limit_status.to_dict()
            message = f"Rate limit exceeded. Retry after {retry_after} seconds."
        elif error == KeyValidationError.INSUFFICIENT_SCOPE:
            details = {"required_scope": result.required_scope}
            message = result.message
        else:
            message = result.message
        raise api_error(error.http_status, error.code, message, details=details, headers=headers or None)

    api_key = result.api_key
    if not platform.limiter.acquire_concurrency_slot(api_key.id, api_key.concurrent_requests):
        raise api_error(
            429,
            "CONCURRENCY_LIMIT",
            f"Too many concurrent requests. Limit is {api_key.concurrent_requests}.",
            headers=headers or None,
        )

    for name, value in headers.items():
        response.headers[name] = value

    try:
        yield api_key
    finally:
        platform.limiter.release_concurrency_slot(api_key.id)

