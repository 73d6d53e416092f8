"""Pagination utilities."""

from collections.abc import Callable
from typing import Any, Dict, Generic, Optional, TypeVar

from pydantic import BaseModel, Field
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.sql import Select

T = TypeVar("T")


class PaginationParams(BaseModel):
    """Pagination parameters."""

    page: int = Field(default=1, ge=1, description="Page number (1-based)")
    size: int = Field(default=20, ge=1, le=100, description="Page size")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.size


class PaginatedResponse(BaseModel, Generic[T]):
    """Generic paginated response."""

    items: list[T]
    total: int
    page: int
    size: int
    has_next: bool
    has_prev: bool
    total_pages: int


async def paginate(
    db: AsyncSession,
    query: Select,
    pagination: PaginationParams,
    transform: Optional[Callable[[Any], Any]] = None,
) -> Dict[str, Any]:
    """
    Paginate a SQLAlchemy query.

    Args:
        db: Database session
        query: SQLAlchemy select query, already ordered
        pagination: Pagination parameters
        transform: Applied to every row before it is returned

    Returns:
        Dictionary with pagination info and items
    """
    count_query = select(func.count()).select_from(query.order_by(None).subquery())
    total = (await db.execute(count_query)).scalar() or 0

    total_pages = (total + pagination.size - 1) // pagination.size

    result = await db.execute(query.offset(pagination.offset).limit(pagination.size))
    rows = result.scalars().all()

    return {
        "items": [transform(row) for row in rows] if transform else list(rows),
        "total": total,
        "page": pagination.page,
        "size": pagination.size,
        "has_next": pagination.page < total_pages,
        "has_prev": pagination.page > 1,
        "total_pages": total_pages,
    }
