"""Tests for JWT validation and role checks."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import jwt
import pytest

from salesfloor.auth.middleware import JWTTokenValidator
from salesfloor.auth.rbac import Role
from salesfloor.config import Settings
from salesfloor.shared.exceptions import InvalidTokenError, TokenExpiredError

SECRET = "unit-test-secret"


@pytest.fixture
def validator() -> JWTTokenValidator:
    return JWTTokenValidator(Settings(_env_file=None, jwt_secret_key=SECRET))


def _token(secret: str = SECRET, **claims) -> str:
    payload = {
        "user_id": str(uuid4()),
        "role": "agent",
        "type": "access",
        "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
    }
    payload.update(claims)
    return jwt.encode(payload, secret, algorithm="HS256")


class TestJWTTokenValidator:
    def test_valid_token(self, validator) -> None:
        payload = validator.validate_access_token(_token(role="manager"))

        assert payload["role"] == "manager"

    def test_expired_token(self, validator) -> None:
        with pytest.raises(TokenExpiredError):
            validator.validate_access_token(
                _token(exp=datetime.now(timezone.utc) - timedelta(minutes=1))
            )

    def test_wrong_secret(self, validator) -> None:
        with pytest.raises(InvalidTokenError):
            validator.validate_access_token(_token(secret="someone-else"))

    def test_wrong_type(self, validator) -> None:
        with pytest.raises(InvalidTokenError) as exc_info:
            validator.validate_access_token(_token(type="refresh"))

        assert exc_info.value.details == {"expected": "access", "got": "refresh"}


class TestRoleHierarchy:
    @pytest.mark.parametrize(
        ("role", "required", "allowed"),
        [
            (Role.ADMIN, Role.MANAGER, True),
            (Role.MANAGER, Role.MANAGER, True),
            (Role.AGENT, Role.MANAGER, False),
            (Role.AGENT, Role.AGENT, True),
            (Role.MANAGER, Role.ADMIN, False),
        ],
    )
    def test_has_permission(self, role, required, allowed) -> None:
        assert role.has_permission(required) is allowed

    def test_from_string_rejects_unknown(self) -> None:
        with pytest.raises(ValueError):
            Role.from_string("guest")
