"""Shared slowapi limiters.

``limiter`` keys on client address and guards the public endpoints (promo
validation, quotes). ``user_limiter`` keys on the authenticated user so that
several customers behind one NAT do not starve each other on order submission
and point redemption.
"""

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.config import settings
from app.core.rbac import _token_from_request

limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)


def user_or_ip_key(request: Request) -> str:
    payload = _token_from_request(request)
    if payload and payload.get("sub"):
        return f"user:{payload['sub']}"
    return get_remote_address(request)


user_limiter = Limiter(key_func=user_or_ip_key, enabled=settings.rate_limit_enabled)
