"""Role-based access control for tracking.

Hierarchical roles:
- ADMIN (level 2): May read any learner's tracking data
- INSTRUCTOR (level 1): Authors content elsewhere; tracks like a student here
- STUDENT (level 0): Tracks own progress
"""

from enum import Enum
from uuid import UUID


class UserRole(str, Enum):
    """User roles carried in the access token."""

    STUDENT = "student"
    INSTRUCTOR = "instructor"
    ADMIN = "admin"


ROLE_HIERARCHY: dict[UserRole, int] = {
    UserRole.STUDENT: 0,
    UserRole.INSTRUCTOR: 1,
    UserRole.ADMIN: 2,
}


def get_role_level(role: UserRole | str) -> int:
    """Get the permission level for a role, 0 for unknown roles."""
    if isinstance(role, str):
        try:
            role = UserRole(role)
        except ValueError:
            return 0
    return ROLE_HIERARCHY.get(role, 0)


def has_permission(user_role: UserRole | str, required_role: UserRole | str) -> bool:
    """Check if user has at least the required permission level.

    Examples:
        >>> has_permission(UserRole.ADMIN, UserRole.STUDENT)
        True
        >>> has_permission("student", "admin")
        False
    """
    return get_role_level(user_role) >= get_role_level(required_role)


def can_read_user_data(
    actor_id: UUID, actor_role: UserRole | str, owner_id: UUID
) -> bool:
    """Owners read their own records; admins read anyone's."""
    return actor_id == owner_id or has_permission(actor_role, UserRole.ADMIN)


def can_write_user_data(actor_id: UUID, owner_id: UUID) -> bool:
    """Only the owner mutates tracking records, admins included."""
    return actor_id == owner_id
