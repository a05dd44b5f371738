# ABOUTME: Error response models and OpenAPI response examples
# ABOUTME: Pydantic model for the error envelope and shared route response fragments

from fastapi import HTTPException
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""
    code: str
    message: str
    details: dict | None = None


def api_error(status_code: int, code: str, message: str, details: dict | None = None,
              headers: dict | None = None) -> HTTPException:
    """Build an HTTPException carrying the standard error envelope."""
    detail = {"code": code, "message": message}
    if details:
        detail["details"] = details
    return HTTPException(status_code=status_code, detail=detail, headers=headers)


def _error_example(code: str, message: str) -> dict:
    """Builds a single OpenAPI response entry with an error example."""
    return {"content": {"application/json": {"example": {"code": code, "message": message}}}}


# Reusable OpenAPI response fragments for route decorators
AUTH_REQUIRED = {
    401: {
        "description": "API key missing, invalid, inactive, or expired",
        **_error_example("INVALID_API_KEY", "API key is missing or invalid"),
    },
    403: {
        "description": "API key lacks the scope this endpoint requires",
        **_error_example("INSUFFICIENT_SCOPE", "Insufficient permissions"),
    },
    429: {
        "description": "Rate or concurrency limit exceeded",
        **_error_example("RATE_LIMITED", "Rate limit exceeded. Retry after 42 seconds."),
    },
}

NOT_FOUND = {
    404: {
        "description": "Requested resource not found",
        **_error_example("NOT_FOUND", "Resource not found"),
    }
}

INVALID_PARAMETER = {
    400: {
        "description": "Invalid parameter",
        **_error_example("INVALID_PARAMETER", "Invalid window: year. Valid windows: hour, day, week, month"),
    }
}
