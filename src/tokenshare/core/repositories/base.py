"""Base repository for common CRUD operations."""

from __future__ import annotations

from typing import Generic, Type, TypeVar
from uuid import UUID

from tortoise.models import Model

ModelType = TypeVar("ModelType", bound=Model)


class BaseRepository(Generic[ModelType]):
    """Generic repository with basic CRUD methods."""

    def __init__(self, model: Type[ModelType]):
        self.model = model

    async def get(self, pk: UUID | str) -> ModelType | None:
        """Get a model instance by its primary key."""
        return await self.model.get_or_none(id=pk)

    async def all(self) -> list[ModelType]:
        """Get all model instances."""
        return await self.model.all()

    async def count(self) -> int:
        """Count all model instances."""
        return await self.model.all().count()

    async def create(self, **kwargs) -> ModelType:
        """Create a new model instance."""
        return await self.model.create(**kwargs)

    async def update(self, instance: ModelType, **kwargs) -> ModelType:
        """Apply field values to an instance and persist them."""
        instance.update_from_dict(kwargs)
        await instance.save()
        return instance

    async def delete(self, pk: UUID | str) -> int:
        """Delete a model instance by its primary key."""
        instance = await self.get(pk=pk)
        if instance:
            await instance.delete()
            return 1
        return 0
