"""Abstract storage interfaces for the skill index."""
from abc import ABC, abstractmethod
from typing import Generic, Optional, TypeVar

T = TypeVar("T", bound=dict)


class BaseTable(ABC, Generic[T]):
    """Minimal CRUD interface shared by every index table."""

    @abstractmethod
    async def put(self, item: T) -> T:
        """Insert or update an item."""

    @abstractmethod
    async def get(self, item_id: str) -> Optional[T]:
        """Get an item by ID."""

    @abstractmethod
    async def list(self) -> list[T]:
        """List all items."""

    @abstractmethod
    async def delete(self, item_id: str) -> bool:
        """Delete an item by ID."""

    @abstractmethod
    async def update(self, item_id: str, updates: dict) -> Optional[T]:
        """Apply a partial update to an item."""


class BaseDatabase(ABC):
    """Skill index database."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create the schema if needed."""

    @property
    @abstractmethod
    def skills(self) -> BaseTable:
        """Managed skills."""

    @property
    @abstractmethod
    def skill_targets(self) -> BaseTable:
        """Per-tool sync targets of managed skills."""

    @property
    @abstractmethod
    def settings(self) -> BaseTable:
        """Persisted runtime settings."""

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the database is reachable."""
