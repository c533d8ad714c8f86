"""Core data models for persons, relationship edges and pedigree results.

Persons and relationships are plain pydantic records; the graph they form is
never held as live object references. Traversal code rebuilds adjacency from
flat edge lists (see ``graph.engine``).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any, Iterator, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from uuid_utils import uuid7 as _uuid7


def uuid7() -> UUID:
    """Generate a UUID7 compatible with stdlib UUID."""
    return UUID(str(_uuid7()))


def _now() -> datetime:
    return datetime.now(UTC)


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"
    UNKNOWN = "unknown"


class RelationshipType(str, Enum):
    """Kinds of stored relationship edges."""

    PARENT = "parent"
    CHILD = "child"  # Derived mirror of a parent edge
    SPOUSE = "spouse"

    # Derived by traversal, never written directly
    SIBLING = "sibling"
    GRANDPARENT = "grandparent"
    GRANDCHILD = "grandchild"
    AUNT_UNCLE = "aunt/uncle"
    NIECE_NEPHEW = "niece/nephew"
    COUSIN = "cousin"


DIRECT_TYPES = frozenset({RelationshipType.PARENT, RelationshipType.SPOUSE})
UPDATABLE_TYPES = frozenset({RelationshipType.PARENT, RelationshipType.CHILD, RelationshipType.SPOUSE})
LINEAGE_TYPES = frozenset({RelationshipType.PARENT, RelationshipType.CHILD})


class RelationshipQualifier(str, Enum):
    BIOLOGICAL = "biological"
    ADOPTIVE = "adoptive"
    STEP = "step"
    FOSTER = "foster"
    IN_LAW = "in-law"


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class Person(BaseModel):
    """A person referenced by relationships and events.

    Persons are owned by the person-management workflow; the relationship
    core only reads them.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid7)
    first_name: str = Field(min_length=1, max_length=100)
    middle_name: str | None = Field(default=None, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    maiden_name: str | None = Field(default=None, max_length=100)
    gender: Gender | None = None

    birth_date: date | None = None
    birth_location: str | None = None
    death_date: date | None = None
    death_location: str | None = None
    notes: str | None = None

    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    @field_validator("gender", mode="before")
    @classmethod
    def _normalize_gender(cls, value: Any) -> Any:
        value = _blank_to_none(value)
        return value.lower() if isinstance(value, str) else value

    @field_validator("middle_name", "maiden_name", "birth_location", "death_location", "notes", mode="before")
    @classmethod
    def _blank_optional(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.middle_name, self.last_name) if p)

    @property
    def is_living(self) -> bool:
        return self.death_date is None

    def to_summary(self) -> dict[str, Any]:
        """Short summary for list views."""
        return {
            "id": str(self.id),
            "name": self.full_name,
            "birth_date": self.birth_date.isoformat() if self.birth_date else None,
            "death_date": self.death_date.isoformat() if self.death_date else None,
            "gender": self.gender.value if self.gender else None,
        }


class PersonUpdate(BaseModel):
    """Partial update for a person; unset fields keep their current value."""

    model_config = ConfigDict(str_strip_whitespace=True)

    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    middle_name: str | None = None
    last_name: str | None = Field(default=None, min_length=1, max_length=100)
    maiden_name: str | None = None
    gender: Gender | None = None
    birth_date: date | None = None
    birth_location: str | None = None
    death_date: date | None = None
    death_location: str | None = None
    notes: str | None = None

    @field_validator("gender", mode="before")
    @classmethod
    def _normalize_gender(cls, value: Any) -> Any:
        value = _blank_to_none(value)
        return value.lower() if isinstance(value, str) else value


class Relationship(BaseModel):
    """One stored relationship row (an edge of the kinship graph).

    A ``parent`` edge from person1 to person2 means person1 is the parent of
    person2. Its ``child`` mirror points the other way and is maintained by
    the relationship service, never by callers.
    """

    id: UUID = Field(default_factory=uuid7)
    person1_id: UUID
    person2_id: UUID
    relationship_type: RelationshipType
    relationship_qualifier: RelationshipQualifier | None = None
    start_date: date | None = None  # marriage for spouse edges
    end_date: date | None = None  # divorce / end of union
    notes: str | None = None

    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    @field_validator("relationship_qualifier", "notes", mode="before")
    @classmethod
    def _blank_optional(cls, value: Any) -> Any:
        return _blank_to_none(value)

    def involves(self, person_id: UUID) -> bool:
        return person_id in (self.person1_id, self.person2_id)

    def other_person(self, person_id: UUID) -> UUID:
        """Return the endpoint that is not ``person_id``."""
        return self.person2_id if self.person1_id == person_id else self.person1_id

    def is_active(self, today: date | None = None) -> bool:
        today = today or date.today()
        return self.end_date is None or self.end_date > today

    def to_summary(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "person1_id": str(self.person1_id),
            "person2_id": str(self.person2_id),
            "relationship_type": self.relationship_type.value,
            "relationship_qualifier": self.relationship_qualifier.value if self.relationship_qualifier else None,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
        }


class RelationshipCreate(BaseModel):
    """Caller-supplied data for a new relationship edge."""

    person1_id: UUID
    person2_id: UUID
    relationship_type: RelationshipType
    relationship_qualifier: RelationshipQualifier | None = None
    start_date: date | None = None
    end_date: date | None = None
    notes: str | None = None

    @field_validator("relationship_qualifier", "notes", mode="before")
    @classmethod
    def _blank_optional(cls, value: Any) -> Any:
        return _blank_to_none(value)


class RelationshipUpdate(BaseModel):
    """Partial update for an edge. Endpoints are immutable."""

    relationship_type: RelationshipType | None = None
    relationship_qualifier: RelationshipQualifier | None = None
    start_date: date | None = None
    end_date: date | None = None
    notes: str | None = None

    @field_validator("relationship_qualifier", "notes", mode="before")
    @classmethod
    def _blank_optional(cls, value: Any) -> Any:
        return _blank_to_none(value)

    def changes(self) -> dict[str, Any]:
        """Fields the caller actually supplied."""
        return self.model_dump(exclude_unset=True)


class EventType(str, Enum):
    BIRTH = "birth"
    DEATH = "death"
    MARRIAGE = "marriage"
    DIVORCE = "divorce"
    IMMIGRATION = "immigration"
    EMIGRATION = "emigration"
    NATURALIZATION = "naturalization"
    GRADUATION = "graduation"
    MILITARY_SERVICE = "military_service"
    RETIREMENT = "retirement"
    RELIGIOUS = "religious"
    MEDICAL = "medical"
    RESIDENCE = "residence"
    CENSUS = "census"
    OTHER = "other"


class PersonEvent(BaseModel):
    """A dated life event attached to a person (birth, census, immigration...)."""

    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid7)
    person_id: UUID
    event_type: EventType
    event_date: date | None = None
    event_location: str | None = Field(default=None, max_length=255)
    description: str | None = None
    created_at: datetime = Field(default_factory=_now)

    @field_validator("event_type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        return value.strip().lower().replace(" ", "_") if isinstance(value, str) else value

    @model_validator(mode="after")
    def _vital_events_need_dates(self) -> PersonEvent:
        if self.event_type in (EventType.BIRTH, EventType.DEATH) and self.event_date is None:
            raise ValueError(f"Date is required for {self.event_type.value} events")
        return self


SortField = Literal["relationship_type", "relationship_qualifier", "start_date", "end_date", "created_at", "updated_at"]


class RelationshipQuery(BaseModel):
    """Pagination, filter and search parameters for listing relationships."""

    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=10, ge=1, le=100)
    sort_by: SortField = "created_at"
    sort_order: Literal["asc", "desc"] = "desc"

    relationship_type: RelationshipType | None = None
    relationship_qualifier: RelationshipQualifier | None = None
    person_id: UUID | None = None
    search: str | None = Field(default=None, description="Matches notes and person names")

    start_date_from: date | None = None
    start_date_to: date | None = None
    end_date_from: date | None = None
    end_date_to: date | None = None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


class RelationshipPage(BaseModel):
    relationships: list[Relationship] = Field(default_factory=list)
    total_count: int = 0
    total_pages: int = 0
    current_page: int = 1
    page_size: int = 10


class PedigreeNode(BaseModel):
    """A node of an ancestor or descendant tree.

    ``parents`` (or ``children``) is ``None`` on a leaf reached at depth 0
    and an empty list when the person simply has no recorded relatives.
    """

    id: UUID
    name: str
    birth_date: date | None = None
    death_date: date | None = None
    gender: Gender | None = None
    parents: list[PedigreeNode] | None = None
    children: list[PedigreeNode] | None = None

    @classmethod
    def leaf(cls, person: Person) -> PedigreeNode:
        return cls(
            id=person.id,
            name=f"{person.first_name} {person.last_name}",
            birth_date=person.birth_date,
            death_date=person.death_date,
            gender=person.gender,
        )

    def branches(self) -> list[PedigreeNode]:
        return list(self.parents or self.children or [])

    def walk(self) -> Iterator[PedigreeNode]:
        """Depth-first walk over this node and everything below it."""
        yield self
        for branch in self.branches():
            yield from branch.walk()

    def depth(self) -> int:
        """Number of generations below this node."""
        branches = self.branches()
        if not branches:
            return 0
        return 1 + max(b.depth() for b in branches)


@dataclass
class DerivedRelationship:
    """A relationship computed by traversal rather than stored."""

    person_a_id: UUID
    person_b_id: UUID
    relationship_type: RelationshipType | None
    label: str  # e.g. "first cousin once removed"
    common_ancestor_ids: list[UUID] = field(default_factory=list)
    generations_a: int = 0
    generations_b: int = 0

    @property
    def degree(self) -> int:
        return self.generations_a + self.generations_b

    def to_dict(self) -> dict[str, Any]:
        return {
            "person_a_id": str(self.person_a_id),
            "person_b_id": str(self.person_b_id),
            "relationship_type": self.relationship_type.value if self.relationship_type else None,
            "label": self.label,
            "common_ancestor_ids": [str(a) for a in self.common_ancestor_ids],
            "generations_a": self.generations_a,
            "generations_b": self.generations_b,
        }


@dataclass
class FamilyMembers:
    """Immediate family of a person, grouped by relationship."""

    person: Person
    parents: list[Person] = field(default_factory=list)
    children: list[Person] = field(default_factory=list)
    spouses: list[Person] = field(default_factory=list)
    siblings: list[Person] = field(default_factory=list)

    @property
    def family_size(self) -> int:
        return 1 + len(self.parents) + len(self.children) + len(self.spouses) + len(self.siblings)
