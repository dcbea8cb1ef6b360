"""Role-Based Access Control (RBAC) utilities."""

from enum import Enum
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status

from app.core.security import decode_access_token
from app.db.session import DbSession


class UserRole(str, Enum):
    """Platform roles carried in the access token."""

    CUSTOMER = "customer"
    RESTAURANT_OWNER = "restaurant_owner"
    ADMIN = "admin"
    DRIVER = "driver"


class TokenData:
    """Decoded token data.

    Attributes:
        user_id: The caller's user ID.
        role: The caller's platform role.
        email: Email claim, when the issuer includes one.
        id: Alias for user_id.
    """

    def __init__(self, user_id: int, role: UserRole, email: str = ""):
        self.user_id = user_id
        self.id = user_id
        self.role = role
        self.email = email

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def _token_from_request(request: Request) -> Optional[dict]:
    """Read the bearer token from the Authorization header or access_token cookie."""
    payload = None

    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header.split(" ", 1)[1]
        if token:
            payload = decode_access_token(token)

    if payload is None:
        cookie_token = request.cookies.get("access_token")
        if cookie_token:
            payload = decode_access_token(cookie_token)

    return payload


def token_data_from_payload(payload: Optional[dict]) -> Optional[TokenData]:
    """Build TokenData from a decoded payload, or None if claims are missing/invalid."""
    if not payload:
        return None

    user_id = payload.get("sub")
    role = payload.get("role")
    if user_id is None or role is None:
        return None

    try:
        return TokenData(user_id=int(user_id), role=UserRole(role), email=payload.get("email") or "")
    except ValueError:
        return None


def get_current_user(request: Request, db: DbSession) -> TokenData:
    """Get the current authenticated user from the JWT token."""
    payload = _token_from_request(request)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token_data = token_data_from_payload(payload)
    if token_data is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    # Users unknown to this service are fine; explicitly disabled ones are not.
    from app.models.user import User
    user = db.get(User, token_data.user_id)
    if user is not None and not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User account is disabled",
        )

    return token_data


def require_roles(*roles: UserRole):
    """Dependency requiring one of ``roles``. Admins always pass."""

    async def role_checker(
        current_user: Annotated[TokenData, Depends(get_current_user)]
    ) -> TokenData:
        if current_user.is_admin or current_user.role in roles:
            return current_user
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Requires role: {', '.join(r.value for r in roles) or 'admin'}",
        )

    return role_checker


CurrentUser = Annotated[TokenData, Depends(get_current_user)]
RequireAdmin = Annotated[TokenData, Depends(require_roles())]
RequireRestaurantStaff = Annotated[
    TokenData, Depends(require_roles(UserRole.RESTAURANT_OWNER, UserRole.DRIVER))
]
RequireRestaurantOwner = Annotated[TokenData, Depends(require_roles(UserRole.RESTAURANT_OWNER))]
