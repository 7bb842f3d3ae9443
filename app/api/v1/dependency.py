import hmac
from typing import Annotated

import jwt
from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from loguru import logger
from pydantic import BaseModel

from app.app_config import get_app_environ_config
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

ROLE_ADMIN = "admin"

_bearer = HTTPBearer(auto_error=False)


class User(BaseModel):
    user_id: str
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


def _bad_token(message: str = "Invalid token") -> AppError:
    return AppError(
        errcode=AppErrorCode.E_BAD_TOKEN,
        errmesg=message,
        status_code=HttpStatusCode.UNAUTHORIZED,
    )


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer)],
) -> User:
    # Do not log request headers here (may include secrets like Authorization).
    if credentials is None or not credentials.credentials:
        raise _bad_token("Missing bearer token")

    settings = get_app_environ_config()
    try:
        claims = jwt.decode(
            credentials.credentials,
            settings.IDENTITY_JWT_SECRET,
            algorithms=[settings.IDENTITY_JWT_ALGORITHM],
            options={"require": ["sub", "exp"]},
        )
    except jwt.PyJWTError as e:
        logger.debug("Bearer token rejected: {}", e)
        raise _bad_token() from e

    user_id = claims.get("sub")
    if not user_id:
        raise _bad_token()

    logger.debug("Authenticated user_id: {}", user_id)
    return User(user_id=str(user_id), role=str(claims.get("role") or "user"))


async def get_admin_user(user: Annotated[User, Depends(get_current_user)]) -> User:
    if not user.is_admin:
        raise AppError(
            errcode=AppErrorCode.E_FORBIDDEN,
            errmesg="Admin role required",
            status_code=HttpStatusCode.FORBIDDEN,
        )
    return user


async def verify_api_key(x_api_key: Annotated[str | None, Header()] = None) -> None:
    """Authenticate internal callers such as the RTMP ingest server."""
    expected = get_app_environ_config().INTERNAL_API_KEY
    if not expected or not x_api_key or not hmac.compare_digest(x_api_key, expected):
        raise AppError(
            errcode=AppErrorCode.E_BAD_TOKEN,
            errmesg="Invalid API key",
            status_code=HttpStatusCode.UNAUTHORIZED,
        )


CurrentUser = Annotated[User, Depends(get_current_user)]
AdminUser = Annotated[User, Depends(get_admin_user)]
