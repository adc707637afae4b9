"""
Authentication dependency for JWT validation.

This module exposes:
- JWTTokenValidator
- CurrentUser
- get_current_user
- CurrentUserDep (FastAPI dependency alias)
"""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ConfigDict, Field

from salesfloor.config import Settings, get_settings
from salesfloor.shared.exceptions import InvalidTokenError, TokenExpiredError
from salesfloor.shared.logging import get_logger

logger = get_logger(__name__)
security = HTTPBearer(auto_error=False)


class CurrentUser(BaseModel):
    """Current authenticated user information."""

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(..., description="User ID")
    email: str = Field(default="", description="User email")
    name: str = Field(default="", description="User display name")
    role: str = Field(..., description="User role")

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class JWTTokenValidator:
    """JWT access token validator."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()

    def validate_access_token(self, token: str) -> dict:
        try:
            payload = jwt.decode(
                token,
                self._settings.jwt_secret_key,
                algorithms=[self._settings.jwt_algorithm],
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpiredError()
        except jwt.InvalidTokenError as e:
            raise InvalidTokenError(details={"error": str(e)})

        if payload.get("type") != "access":
            raise InvalidTokenError(
                message="Invalid token type",
                details={"expected": "access", "got": payload.get("type")},
            )
        return payload


def _unauthorized(code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": code, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)] = None,
    settings: Settings = Depends(get_settings),
) -> CurrentUser:
    """Extract and validate current user from the bearer token."""
    if credentials is None:
        logger.warning(
            "Missing authentication credentials",
            extra={
                "endpoint": str(request.url.path),
                "method": request.method,
                "client_ip": request.client.host if request.client else "unknown",
            },
        )
        raise _unauthorized("MISSING_CREDENTIALS", "Authentication credentials required")

    try:
        payload = JWTTokenValidator(settings).validate_access_token(credentials.credentials)

        user_id = payload.get("user_id") or payload.get("sub")
        role = payload.get("role")
        if not user_id or not role:
            raise InvalidTokenError(
                message="Token missing user_id or role",
                details={"payload_keys": sorted(payload.keys())},
            )
        try:
            parsed_id = UUID(str(user_id))
        except ValueError:
            raise InvalidTokenError(message="Token user_id is not a UUID")

        return CurrentUser(
            id=parsed_id,
            email=payload.get("email", "") or "",
            name=payload.get("name", "") or "",
            role=role,
        )

    except TokenExpiredError as e:
        logger.info(
            "Token expired",
            extra={"endpoint": str(request.url.path), "method": request.method},
        )
        raise _unauthorized(e.code, e.message)
    except InvalidTokenError as e:
        logger.warning(
            "Invalid token",
            extra={
                "endpoint": str(request.url.path),
                "method": request.method,
                "error": e.message,
            },
        )
        raise _unauthorized(e.code, e.message)


CurrentUserDep = Annotated[CurrentUser, Depends(get_current_user)]
