"""Repository for User model."""

from __future__ import annotations

from tokenshare.core.models import User
from tokenshare.core.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """User-specific repository operations."""

    def __init__(self) -> None:
        super().__init__(User)

    async def get_by_name(self, name: str) -> User | None:
        """Get a user by name."""
        return await self.model.get_or_none(name=name)
