from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import Request

from psychx.core.errors import NotAuthenticatedError, PermissionDeniedError, error_response
from psychx.core.jwt_auth import decode_token
from psychx.core.logging import DOMAIN_AUTH, get_domain_logger
from psychx.core.settings import settings
from psychx.memory.database import get_db
from psychx.memory.records import UserStore
from psychx.models.entities import User, UserRole

logger = get_domain_logger(__name__, DOMAIN_AUTH)

EXEMPT_PATH_PREFIXES = (
    "/health",
    "/docs",
    "/openapi.json",
    "/redoc",
)

bearer_scheme = HTTPBearer(auto_error=False)


async def api_key_auth_middleware(request: Request, call_next):
    if settings.gateway_auth_enabled:
        path = request.url.path
        if not any(path.startswith(prefix) for prefix in EXEMPT_PATH_PREFIXES):
            provided = request.headers.get("x-api-key", "")
            if not settings.gateway_api_key or provided != settings.gateway_api_key:
                return error_response(
                    request,
                    code="unauthorized",
                    message="Unauthorized: invalid or missing x-api-key",
                    status_code=401,
                )
    return await call_next(request)


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User | None:
    if credentials is None:
        return None
    claims = decode_token(credentials.credentials)
    if not claims or not claims.get("sub"):
        logger.info("Rejected bearer token")
        return None
    return await UserStore(db).get_by_id(str(claims["sub"]))


async def get_current_user(user: User | None = Depends(get_optional_user)) -> User:
    if user is None:
        raise NotAuthenticatedError("Not logged in")
    return user


def require_role(*roles: UserRole):
    allowed = {role.value for role in roles}

    async def _dependency(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            raise PermissionDeniedError(
                "Your account cannot access this resource.",
                details={"required_roles": sorted(allowed)},
            )
        return user

    return _dependency
