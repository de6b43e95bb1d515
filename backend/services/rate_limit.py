"""
Rate Limiting Configuration for SmartSpec

Protects against abuse and controls costs for:
- Task generation endpoints (protect LLM API costs)
- Lifecycle write endpoints (revisions, finalize, upload)
"""
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request, Response
from fastapi.responses import JSONResponse
import logging
import os

logger = logging.getLogger(__name__)


def get_client_key(request: Request) -> str:
    """Per-client key; honours the first X-Forwarded-For hop behind a proxy"""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return f"ip:{forwarded.split(',')[0].strip()}"
    return f"ip:{get_remote_address(request)}"


# In-memory storage; for multiple workers use Redis: "redis://localhost:6379"
limiter = Limiter(
    key_func=get_client_key,
    default_limits=["200/minute"],
    storage_uri="memory://",
    strategy="fixed-window"
)

# Rate limit configurations by endpoint type
RATE_LIMITS = {
    # Task generation - every call hits the LLM
    "ai_generate": os.environ.get("RATE_LIMIT_GENERATE", "10/minute"),

    # Lifecycle writes
    "api_write": "30/minute",
}


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """
    Custom handler for rate limit exceeded errors.
    Returns a JSON response with retry information.
    """
    retry_after = getattr(exc, 'retry_after', 60)
    limit = str(exc.detail) if hasattr(exc, 'detail') else "unknown"

    client_id = get_client_key(request)
    logger.warning(
        f"Rate limit exceeded for {client_id} on {request.url.path}",
        extra={
            "client_id": client_id,
            "path": request.url.path,
            "method": request.method,
            "limit": limit
        }
    )

    return JSONResponse(
        status_code=429,
        content={
            "detail": "Rate limit exceeded. Please slow down.",
            "error_code": "RATE_LIMIT_EXCEEDED",
            "retry_after_seconds": retry_after,
        },
        headers={
            "Retry-After": str(retry_after),
            "X-RateLimit-Limit": limit,
        }
    )


def limit_ai(limit: str = RATE_LIMITS["ai_generate"]):
    """Rate limit decorator for task generation endpoints."""
    return limiter.limit(limit)


def limit_api_write(limit: str = RATE_LIMITS["api_write"]):
    """Rate limit decorator for write endpoints."""
    return limiter.limit(limit)
