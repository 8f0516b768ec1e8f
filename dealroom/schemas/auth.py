"""Auth schemas."""

import uuid

from pydantic import BaseModel

from dealroom.models.enums import UserRole


class CurrentUser(BaseModel):
    """Lightweight user context extracted from the bearer JWT + DB lookup."""

    user_id: uuid.UUID
    role: UserRole
    email: str

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
