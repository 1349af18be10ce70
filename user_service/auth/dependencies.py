import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from user_service.auth.jwt import TokenService
from user_service.database import Database, get_db
from user_service.errors import ForbiddenError, InvalidTokenError, UnauthorizedError
from user_service.models.user import UserRole
from user_service.schemas import UserRead
from user_service.services.user_repository import UserRepository

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class AuthContext:
    user: UserRead
    claims: Dict[str, Any]


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def get_user_repository(db: Database = Depends(get_db)) -> UserRepository:
    return UserRepository(db)


async def _authenticate(token: str, repository: UserRepository, tokens: TokenService) -> AuthContext:
    claims = tokens.verify(token)

    # Re-read the user so deletions and suspensions take effect immediately
    user = await repository.get_by_id(claims["id"])
    if user is None:
        raise UnauthorizedError("Token is valid but user no longer exists.")
    if not user.is_active:
        raise ForbiddenError("Your account is not active. Please contact support.")
    return AuthContext(user=user, claims=claims)


async def get_current_auth(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    repository: UserRepository = Depends(get_user_repository),
    tokens: TokenService = Depends(get_token_service),
) -> AuthContext:
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError(
            "No token provided. Please include a Bearer token in the Authorization header."
        )

    context = await _authenticate(credentials.credentials, repository, tokens)
    request.state.auth = context
    return context


def get_current_user(context: AuthContext = Depends(get_current_auth)) -> UserRead:
    return context.user


def require_role(allowed_roles: List[UserRole]):
    allowed = {UserRole(role).value for role in allowed_roles}

    def role_checker(current_user: UserRead = Depends(get_current_user)) -> UserRead:
        if current_user.role.value not in allowed:
            logger.debug("User %s with role %s denied; needs one of %s", current_user.id, current_user.role.value, sorted(allowed))
            raise ForbiddenError(
                f"This action requires one of the following roles: {', '.join(sorted(allowed))}"
            )
        return current_user

    return role_checker


async def get_optional_auth(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    repository: UserRepository = Depends(get_user_repository),
    tokens: TokenService = Depends(get_token_service),
) -> Optional[AuthContext]:
    """Best-effort identification: any authentication failure yields ``None``."""
    if credentials is None or not credentials.credentials:
        return None
    try:
        claims = tokens.verify(credentials.credentials)
    except InvalidTokenError:
        return None

    user = await repository.get_by_id(claims["id"])
    if user is None or not user.is_active:
        return None

    context = AuthContext(user=user, claims=claims)
    request.state.auth = context
    return context
