"""
Base Repository implementation.
Provides common data access patterns with store isolation.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TypeVar, Generic, Sequence

from sqlalchemy import Select, select, func
from sqlalchemy.orm import Session

from shared.config.constants import Limits


ModelT = TypeVar("ModelT")


@dataclass
class RepositoryFilters:
    """Base filters for repository queries."""

    # Pagination
    limit: int = Limits.DEFAULT_PAGE_SIZE
    offset: int = 0

    # Inactive rows are hidden unless requested
    include_inactive: bool = False

    def __post_init__(self):
        """Validate and normalize filters."""
        self.limit = min(max(1, self.limit), Limits.MAX_PAGE_SIZE)
        self.offset = max(0, self.offset)


class BaseRepository(ABC, Generic[ModelT]):
    """
    Abstract base repository with common operations.

    Every query is scoped to one store. Subclasses implement:
    - model: the SQLAlchemy model class
    - _base_query(): base query with eager loading
    - _apply_filters(): entity-specific filters
    """

    def __init__(self, db: Session):
        self._db = db

    @property
    @abstractmethod
    def model(self) -> type[ModelT]:
        """Return the SQLAlchemy model class."""
        ...

    @abstractmethod
    def _base_query(self, store_id: int) -> Select:
        """Return base query with proper eager loading."""
        ...

    def _apply_filters(self, query: Select, filters: RepositoryFilters) -> Select:
        """Apply entity-specific filters to query."""
        return query

    def _active_only(self, query: Select, include_inactive: bool) -> Select:
        if not include_inactive and hasattr(self.model, "is_active"):
            query = query.where(self.model.is_active.is_(True))
        return query

    def find_all(
        self,
        store_id: int,
        filters: RepositoryFilters | None = None,
    ) -> Sequence[ModelT]:
        """
        Find all entities of a store matching filters.

        Args:
            store_id: Store ID for isolation
            filters: Optional filters

        Returns:
            List of entities
        """
        filters = filters or RepositoryFilters()
        query = self._active_only(self._base_query(store_id), filters.include_inactive)
        query = self._apply_filters(query, filters)
        query = query.offset(filters.offset).limit(filters.limit)
        return self._db.execute(query).scalars().unique().all()

    def find_by_id(self, entity_id: int, include_inactive: bool = True) -> ModelT | None:
        """Find entity by ID regardless of store."""
        query = self._active_only(
            select(self.model).where(self.model.id == entity_id),
            include_inactive,
        )
        return self._db.scalar(query)

    def count(
        self,
        store_id: int,
        filters: RepositoryFilters | None = None,
    ) -> int:
        """Count entities of a store matching filters."""
        filters = filters or RepositoryFilters()
        query = (
            select(func.count())
            .select_from(self.model)
            .where(self.model.store_id == store_id)
        )
        query = self._active_only(query, filters.include_inactive)
        query = self._apply_filters(query, filters)
        return self._db.scalar(query) or 0

    def save(self, entity: ModelT) -> ModelT:
        """
        Save entity (insert or update).

        Flushes so generated ids are available; the caller commits.
        """
        self._db.add(entity)
        self._db.flush()
        self._db.refresh(entity)
        return entity

    def delete(self, entity: ModelT) -> None:
        """Hard delete entity."""
        self._db.delete(entity)
        self._db.flush()
