"""Bearer-token authentication dependencies."""

from dataclasses import dataclass
from typing import Optional

from fastapi import Header

from nexaconnect_billing.common.exceptions import AuthenticationError


@dataclass
class UserContext:
    """Authenticated user available to request handlers."""
    id: str
    email: Optional[str] = None


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        return ""
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return token.strip()


async def require_user(
    authorization: str = Header(None, alias="Authorization"),
) -> UserContext:
    """FastAPI dependency that resolves the bearer token to a user."""
    token = _bearer_token(authorization)
    if not token:
        raise AuthenticationError()

    from nexaconnect_billing.deps import get_identity_client

    user = await get_identity_client().get_user(token)
    if user is None:
        raise AuthenticationError()
    return UserContext(id=str(user["id"]), email=user.get("email"))
