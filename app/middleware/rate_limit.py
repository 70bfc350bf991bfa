"""
Rate Limiting for FastAPI

Throttles the engagement write endpoints (view, like) per client address.
Rejections are rendered by the shared exception handlers as a 429 failure
envelope.
"""

from fastapi import Request
from slowapi import Limiter

from app.config import settings
from app.services.identity_service import extract_client_ip, normalize_ip


def client_address_key(request: Request) -> str:
    """Rate limit key: the normalized client address as identity resolution sees it."""
    return normalize_ip(extract_client_ip(request)) or "unknown"


# Create rate limiter instance
limiter = Limiter(
    key_func=client_address_key,
    storage_uri=settings.redis_url or "memory://",
    headers_enabled=False,
)

# Limit applied to view and like writes
engagement_limit = settings.engagement_rate_limit


def configure_rate_limiting(app) -> None:
    """Attach the limiter to the FastAPI application."""
    app.state.limiter = limiter
