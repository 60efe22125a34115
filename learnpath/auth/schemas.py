"""Identity schemas."""

from uuid import UUID

from pydantic import BaseModel

from .permissions import UserRole


class AuthenticatedUser(BaseModel):
    """Identity extracted from a verified access token."""

    id: UUID
    role: UserRole = UserRole.STUDENT

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
