"""Authentication module: HS256 JWT verification, roles, and per-subject rate limits."""
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings, get_settings
from core.rate_limit_config import RateLimitExceededError, get_operation_type
from core.rate_limiter import check_rate_limit
from db.session import get_async_session
from models.user import User

logger = logging.getLogger(__name__)


# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)

DEV_USER_EMAIL = "dev@localhost"
DEFAULT_ROLE = "user"


@dataclass(frozen=True)
class Principal:
    """The authenticated caller: who they are and what role they hold."""

    subject: str
    role: str = DEFAULT_ROLE

    @property
    def user_id(self) -> UUID:
        """Subject as a user id."""
        return UUID(self.subject)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def verify_token(token: str, settings: Settings) -> Principal:
    """
    Decode and validate an HS256 JWT issued by the auth service.

    The subject comes from the userId claim (sub as a fallback) and must be a
    user id. role defaults to "user".

    Raises:
        HTTPException: 401 if the token is invalid or expired, 503 if no secret is configured.
    """
    if not settings.jwt_secret:
        logger.error("jwt_secret_not_configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not validate credentials",
        )

    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token has expired")
    except jwt.PyJWTError as e:
        # Log full details for debugging (server-side only)
        logger.warning("JWT validation failed: %s", e)
        raise _unauthorized("Invalid token")

    subject = payload.get("userId") or payload.get("sub")
    if not subject:
        raise _unauthorized("Invalid token: missing subject claim")
    try:
        UUID(str(subject))
    except ValueError:
        raise _unauthorized("Invalid token: subject is not a user id")

    return Principal(subject=str(subject), role=str(payload.get("role") or DEFAULT_ROLE))


async def get_or_create_dev_user(db: AsyncSession) -> User:
    """
    Get or create the development user for DEV_MODE.

    Note: Uses flush(), not commit. Session generator handles commit at request end.
    """
    user = await db.scalar(select(User).where(User.email == DEV_USER_EMAIL))
    if user is not None:
        return user

    user = User(email=DEV_USER_EMAIL, display_name="Dev User")
    db.add(user)
    try:
        await db.flush()
    except IntegrityError:
        # Race condition: another request created the user between our SELECT
        # and INSERT. Rollback and fetch the existing user.
        await db.rollback()
        user = (await db.execute(select(User).where(User.email == DEV_USER_EMAIL))).scalar_one()
    return user


async def _apply_rate_limit(request: Request, principal: Principal, settings: Settings) -> None:
    """Enforce the per-subject limit and stash header values for the middleware."""
    if not settings.rate_limit_enabled:
        return
    services = getattr(request.app.state, "services", None)
    redis_client = services.redis if services is not None else None
    result = await check_rate_limit(
        redis_client, principal.subject, get_operation_type(request.method),
    )
    if not result.allowed:
        raise RateLimitExceededError(result)
    request.state.rate_limit = result


async def get_current_principal(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_settings),
) -> Principal:
    """
    Dependency that validates the bearer token and returns the caller.

    In DEV_MODE, bypasses auth and returns the dev user as an admin.
    """
    if settings.dev_mode:
        dev_user = await get_or_create_dev_user(db)
        principal = Principal(subject=str(dev_user.id), role="admin")
    elif credentials is None:
        raise _unauthorized("Not authenticated")
    else:
        principal = verify_token(credentials.credentials, settings)

    await _apply_rate_limit(request, principal, settings)
    return principal


def require_role(*roles: str) -> Callable[..., Awaitable[Principal]]:
    """Dependency factory that only admits callers holding one of the given roles."""

    async def _require_role(
        principal: Principal = Depends(get_current_principal),
    ) -> Principal:
        if principal.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "code": "forbidden",
                    "message": f"Requires one of roles: {', '.join(roles)}",
                },
            )
        return principal

    return _require_role
