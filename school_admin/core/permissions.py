import enum
from fastapi import Depends
from .auth import get_current_user
from .exceptions import ForbiddenError
import logging

logger = logging.getLogger(__name__)


class Role(str, enum.Enum):
    ADMIN = "admin"
    USER = "user"


class Permission(str, enum.Enum):
    STUDENTS_READ = "students:read"
    STUDENTS_WRITE = "students:write"
    STUDENTS_DELETE = "students:delete"
    GROUPS_READ = "groups:read"
    GROUPS_WRITE = "groups:write"
    ENROLLMENTS_READ = "enrollments:read"
    ENROLLMENTS_WRITE = "enrollments:write"
    USERS_READ = "users:read"
    USERS_WRITE = "users:write"
    MAINTENANCE = "maintenance"


ROLE_PERMISSIONS = {
    Role.ADMIN: frozenset(Permission),
    Role.USER: frozenset({
        Permission.STUDENTS_READ,
        Permission.STUDENTS_WRITE,
        Permission.GROUPS_READ,
        Permission.GROUPS_WRITE,
        Permission.ENROLLMENTS_READ,
        Permission.ENROLLMENTS_WRITE,
    }),
}


def has_permission(role: str, permission: Permission) -> bool:
    try:
        return permission in ROLE_PERMISSIONS[Role(role)]
    except ValueError:
        return False


def require_permission(permission: Permission):
    """Build a dependency that authenticates the caller and checks one permission."""

    def dependency(current_user: dict = Depends(get_current_user)) -> dict:
        if not has_permission(current_user["role"], permission):
            logger.error(
                f"Access denied - user '{current_user['user_id']}' with role "
                f"'{current_user['role']}' lacks '{permission.value}'"
            )
            raise ForbiddenError(f"Permission '{permission.value}' required")
        return current_user

    return dependency
