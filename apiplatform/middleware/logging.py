# ABOUTME: Usage middleware for request/response tracking
# ABOUTME: Captures latency, sizes, status, and client details and hands them to the usage recorder

import time

from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from apiplatform.config import get_settings
from apiplatform.services.usage import UsageRecord


def _int_header(headers, name: str) -> int:
    try:
        return int(headers.get(name, 0))
    except ValueError:
        return 0


class UsageLoggingMiddleware(BaseHTTPMiddleware):
    """
    Record one usage fact for every request that resolved an API key.

    The key id is left on request.state by the authentication dependency.
    Recording happens after the response is produced and never fails it.
    """

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)

        api_key_id = getattr(request.state, "api_key_id", None)
        if api_key_id is None:
            return response

        record = UsageRecord(
            api_key_id=api_key_id,
            endpoint=request.url.path,
            method=request.method,
            status_code=response.status_code,
            response_time_ms=int((time.perf_counter() - start) * 1000),
            request_size=_int_header(request.headers, "content-length"),
            response_size=_int_header(response.headers, "content-length"),
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
            region=request.headers.get("x-region") or get_settings().default_region,
        )

        platform = request.app.state.platform
        session_factory = request.app.state.session_factory
        await run_in_threadpool(_persist_usage, platform, session_factory, record)

        return response


def _persist_usage(platform, session_factory, record: UsageRecord) -> None:
    db = session_factory()
    try:
        platform.record_usage(db, record)
    finally:
        db.close()
