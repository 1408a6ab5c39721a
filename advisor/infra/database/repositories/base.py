"""Shared async repository base for the transcript tables."""
from __future__ import annotations

from typing import Any, ClassVar, Dict, Generic, Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

ModelT = TypeVar("ModelT")


class BaseRepository(Generic[ModelT]):
    """Wraps one AsyncSession; commits are left to the caller."""

    model: ClassVar[type]

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_one_by(self, **filters: Any) -> Optional[ModelT]:
        stmt = select(self.model).filter_by(**filters).limit(1)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()  # type: ignore[return-value]

    async def create(self, data: Dict[str, Any]) -> ModelT:
        """Add a row and flush so server defaults (id, created_at) are populated."""
        instance = self.model(**data)
        self.session.add(instance)
        await self.session.flush()
        await self.session.refresh(instance)
        return instance  # type: ignore[return-value]
