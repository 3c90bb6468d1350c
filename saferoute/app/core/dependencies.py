"""
Authentication and service dependencies for FastAPI.

Bearer tokens are issued by the SafeRoute auth service; here they are
only verified and resolved to a user row. Long-lived services are built
by the application lifespan and read from ``app.state``.
"""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from saferoute.app.core.exceptions import AuthenticationError
from saferoute.app.core.jwt import decode_access_token
from saferoute.app.db.session import get_db
from saferoute.app.models.user import User

# HTTP Bearer security scheme
security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> User:
    """
    FastAPI dependency for JWT authentication.

    1. Validates JWT token signature and expiry
    2. Resolves the ``sub`` claim to a user row

    Raises:
        HTTPException: 401 if the token is invalid
        AuthenticationError: 401 if the user is unknown
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = await db.get(User, str(user_id))
    if user is None:
        # Valid token for an account this service has never seen
        raise AuthenticationError("User not found")

    return user


def get_tracking_service(request: Request):
    return request.app.state.tracking


def get_dispatcher(request: Request):
    return request.app.state.tracking.dispatcher