"""
Rate limiting for the cost and optimization APIs (slowapi).

Limits are keyed per organization once auth has run, so one noisy
organization cannot starve the others sharing an IP (e.g. behind a proxy).
"""

import hashlib
from typing import Callable

import structlog
from fastapi import FastAPI, Request
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from app.shared.core.config import get_settings

logger = structlog.get_logger()


def context_aware_key(request: Request) -> str:
    """organization_id, else a hash of the bearer token, else the client IP."""
    organization_id = getattr(request.state, "organization_id", None)
    if organization_id:
        return f"org:{organization_id}"

    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        digest = hashlib.sha256(auth_header[7:].encode()).hexdigest()
        return f"token:{digest[:16]}"

    return get_remote_address(request)


_limiter: Limiter | None = None


def get_limiter() -> Limiter:
    global _limiter
    if _limiter is None:
        settings = get_settings()
        _limiter = Limiter(
            key_func=context_aware_key,
            storage_uri=settings.RATELIMIT_STORAGE_URI,
            strategy="fixed-window",
            enabled=settings.RATELIMIT_ENABLED,
        )
    return _limiter


def setup_rate_limiting(app: FastAPI) -> None:
    app.state.limiter = get_limiter()
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    logger.info("rate_limiting_configured", storage=get_settings().RATELIMIT_STORAGE_URI.split(":", 1)[0])


def rate_limit(limit: str) -> Callable:
    """Endpoint decorator. A no-op under TESTING so suites never hit a window."""
    if get_settings().TESTING:
        return lambda endpoint: endpoint
    return get_limiter().limit(limit)


_settings = get_settings()
standard_limit = rate_limit(_settings.RATE_LIMIT_STANDARD)
import_limit = rate_limit(_settings.RATE_LIMIT_IMPORT)
analysis_limit = rate_limit(_settings.RATE_LIMIT_ANALYSIS)
