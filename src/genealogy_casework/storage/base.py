"""Abstract persistence interfaces consumed by the services.

Every method takes an optional ``tx`` handle. Passing the handle given to
``TransactionalStorage.execute_transaction`` makes the call part of that
transaction; omitting it runs the call on its own.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Callable, TypeVar
from uuid import UUID

from genealogy_casework.models import (
    Person,
    PersonEvent,
    Relationship,
    RelationshipPage,
    RelationshipQualifier,
    RelationshipQuery,
    RelationshipType,
)

T = TypeVar("T")
Tx = Any


class PersonRepository(ABC):
    """Read (and, for the person workflow, write) access to persons."""

    @abstractmethod
    def find_by_id(self, person_id: UUID, tx: Tx | None = None) -> Person | None:
        ...

    @abstractmethod
    def create(self, person: Person, tx: Tx | None = None) -> Person:
        ...

    @abstractmethod
    def update(self, person_id: UUID, changes: dict[str, Any], tx: Tx | None = None) -> Person | None:
        ...

    @abstractmethod
    def delete(self, person_id: UUID, tx: Tx | None = None) -> bool:
        ...

    @abstractmethod
    def find_by_name(self, term: str, limit: int = 50, tx: Tx | None = None) -> list[Person]:
        """Case-insensitive substring match over first, last and maiden names."""
        ...

    @abstractmethod
    def list_persons(self, limit: int = 100, offset: int = 0, tx: Tx | None = None) -> list[Person]:
        ...


class RelationshipRepository(ABC):
    """Flat storage of relationship edges.

    Listing methods return rows in insertion order unless a query says
    otherwise; graph tie-breaks rely on that.
    """

    @abstractmethod
    def create(self, relationship: Relationship, tx: Tx | None = None) -> Relationship:
        ...

    @abstractmethod
    def update(self, relationship_id: UUID, changes: dict[str, Any], tx: Tx | None = None) -> Relationship | None:
        ...

    @abstractmethod
    def delete(self, relationship_id: UUID, tx: Tx | None = None) -> bool:
        ...

    @abstractmethod
    def find_by_id(self, relationship_id: UUID, tx: Tx | None = None) -> Relationship | None:
        ...

    @abstractmethod
    def find_one(self, tx: Tx | None = None, **filters: Any) -> Relationship | None:
        """First row (in insertion order) whose columns equal ``filters``."""
        ...

    @abstractmethod
    def find_all(self, types: list[RelationshipType] | None = None, tx: Tx | None = None) -> list[Relationship]:
        ...

    @abstractmethod
    def find_between_persons(self, person1_id: UUID, person2_id: UUID, tx: Tx | None = None) -> list[Relationship]:
        """Edges joining the two persons, in either direction."""
        ...

    @abstractmethod
    def find_by_person(self, person_id: UUID, tx: Tx | None = None) -> list[Relationship]:
        ...

    @abstractmethod
    def find_by_type(self, relationship_type: RelationshipType, tx: Tx | None = None) -> list[Relationship]:
        ...

    @abstractmethod
    def find_by_qualifier(self, qualifier: RelationshipQualifier, tx: Tx | None = None) -> list[Relationship]:
        ...

    @abstractmethod
    def find_by_date_range(
        self, start: date, end: date, date_field: str = "start_date", tx: Tx | None = None
    ) -> list[Relationship]:
        ...

    @abstractmethod
    def find_active(self, today: date, tx: Tx | None = None) -> list[Relationship]:
        """Edges without an end date or ending after ``today``."""
        ...

    @abstractmethod
    def find_ended(self, today: date, tx: Tx | None = None) -> list[Relationship]:
        ...

    @abstractmethod
    def find_relationships(self, query: RelationshipQuery, tx: Tx | None = None) -> RelationshipPage:
        ...


class EventRepository(ABC):
    @abstractmethod
    def create(self, event: PersonEvent, tx: Tx | None = None) -> PersonEvent:
        ...

    @abstractmethod
    def find_by_person(self, person_id: UUID, tx: Tx | None = None) -> list[PersonEvent]:
        ...


class TransactionalStorage(ABC):
    """Bundle of repositories sharing one transaction boundary."""

    persons: PersonRepository
    relationships: RelationshipRepository
    events: EventRepository

    @abstractmethod
    def execute_transaction(self, fn: Callable[[Tx], T]) -> T:
        """Run ``fn(tx)`` atomically.

        Commits and returns ``fn``'s value on success; rolls back every
        write and re-raises on any exception.
        """
        ...

    @abstractmethod
    def close(self) -> None:
        ...
