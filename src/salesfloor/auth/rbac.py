"""
Role-Based Access Control (RBAC) dependencies.
"""

from enum import Enum

from fastapi import Depends, HTTPException, Request, status

from salesfloor.auth.middleware import CurrentUser, get_current_user
from salesfloor.shared.logging import get_logger

logger = get_logger(__name__)


class Role(str, Enum):
    """User roles with hierarchical ordering."""

    ADMIN = "admin"
    MANAGER = "manager"
    AGENT = "agent"

    @classmethod
    def from_string(cls, role_str: str) -> "Role":
        """Convert string to Role enum.

        Raises:
            ValueError: If role string is invalid.
        """
        try:
            return cls(role_str)
        except ValueError:
            raise ValueError(f"Invalid role: {role_str}")

    def has_permission(self, required_role: "Role") -> bool:
        """Role hierarchy: admin > manager > agent."""
        hierarchy = {
            Role.ADMIN: 3,
            Role.MANAGER: 2,
            Role.AGENT: 1,
        }
        return hierarchy.get(self, 0) >= hierarchy.get(required_role, 0)


class RBACChecker:
    """Dependency class for role-based access control checks."""

    def __init__(self, minimum_role: Role) -> None:
        self.minimum_role = minimum_role

    async def __call__(
        self,
        request: Request,
        current_user: CurrentUser = Depends(get_current_user),
    ) -> CurrentUser:
        """Return the current user if their role is sufficient.

        Raises:
            HTTPException: 403 if the user lacks the required role.
        """
        try:
            user_role = Role.from_string(current_user.role)
            allowed = user_role.has_permission(self.minimum_role)
        except ValueError:
            allowed = False

        if not allowed:
            logger.warning(
                "Access denied",
                extra={
                    "user_id": str(current_user.id),
                    "user_role": current_user.role,
                    "required_role": self.minimum_role.value,
                    "endpoint": str(request.url.path),
                    "method": request.method,
                },
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "code": "INSUFFICIENT_PERMISSIONS",
                    "message": f"Role '{self.minimum_role.value}' or higher required",
                    "required_role": self.minimum_role.value,
                    "current_role": current_user.role,
                },
            )
        return current_user


require_agent = RBACChecker(Role.AGENT)
require_manager = RBACChecker(Role.MANAGER)
require_admin = RBACChecker(Role.ADMIN)
