# ABOUTME: FastAPI application entry point
# ABOUTME: Configures logging, builds the platform service, registers routers, and sets up middleware

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from apiplatform.api import admin, analytics, gateway, health, webhooks
from apiplatform.config import get_settings
from apiplatform.database import SessionLocal
from apiplatform.log_config import configure_logging
from apiplatform.middleware.logging import UsageLoggingMiddleware
from apiplatform.services.platform import build_platform

settings = get_settings()
configure_logging(settings.log_level, settings.log_json)

app = FastAPI(
    title="209 Works API Platform",
    description="API key issuance, validation, rate limiting, usage analytics, and webhook registration",
    version="0.1.0",
)

app.state.platform = build_platform(settings)
app.state.session_factory = SessionLocal

# Add middleware
app.add_middleware(UsageLoggingMiddleware)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Custom exception handler to format error responses."""
    # If detail is a dict, use it directly (for our custom error format)
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.detail,
            headers=exc.headers,
        )
    # Otherwise, wrap it in standard format
    return JSONResponse(
        status_code=exc.status_code,
        content={"code": "ERROR", "message": exc.detail},
        headers=exc.headers,
    )


# Register routers
app.include_router(health.router)
app.include_router(gateway.router)
app.include_router(analytics.router)
app.include_router(webhooks.router)
app.include_router(admin.router)
