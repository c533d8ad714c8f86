"""Error taxonomy for the relationship core.

Every failure is terminal for the operation that raised it. Nothing here is
retried; storage errors are wrapped once at the transaction boundary.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


class CaseworkError(Exception):
    """Base class for all errors raised by the relationship core."""

    kind: str = "error"

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": str(self)}


@dataclass
class NotFoundError(CaseworkError):
    """A referenced person, relationship or event does not exist."""

    entity: str
    entity_id: Any
    kind = "not_found"

    def __str__(self) -> str:
        return f"{self.entity.capitalize()} with id {self.entity_id} not found"


@dataclass
class PolicyViolation(CaseworkError):
    """A write that the relationship policy does not allow.

    Raised for direct writes of derived relationship types, re-typing a
    derived edge, or removing a person who is still referenced.
    """

    policy: str
    detail: str
    kind = "policy_violation"

    def __str__(self) -> str:
        return self.detail


@dataclass
class DuplicateRelationship(CaseworkError):
    """An edge of the same type (or its redundant inverse) already exists."""

    person1_id: Any
    person2_id: Any
    relationship_type: str
    existing_id: Any = None
    kind = "duplicate_relationship"

    def __str__(self) -> str:
        return (
            f"A relationship of type '{self.relationship_type}' already exists "
            f"between these people ({self.person1_id}, {self.person2_id})"
        )


@dataclass
class ValidationFailure(CaseworkError):
    """A chronology or plausibility rule rejected the data."""

    rule: str
    reasons: list[str] = field(default_factory=list)
    kind = "validation_failure"

    @property
    def label(self) -> str:
        return self.rule.replace("_", " ").capitalize()

    def __str__(self) -> str:
        if not self.reasons:
            return f"{self.label} validation failed"
        return f"{self.label} validation failed: {', '.join(self.reasons)}"

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "rule": self.rule, "reasons": list(self.reasons)}


@dataclass
class ChronologyError(ValidationFailure):
    """An event falls outside the lifespan of the person it belongs to."""

    bound: str | None = None  # "birth" or "death"
    kind = "chronology_error"

    def __str__(self) -> str:
        return "; ".join(self.reasons) if self.reasons else "Chronology validation failed"


@dataclass
class CircularRelationship(CaseworkError):
    """A proposed parent edge would make someone their own ancestor."""

    parent_id: Any
    child_id: Any
    reasons: list[str] = field(default_factory=list)
    kind = "circular_relationship"

    def __str__(self) -> str:
        detail = ", ".join(self.reasons) or f"{self.child_id} is already an ancestor of {self.parent_id}"
        return f"Circular relationship detected: {detail}"


@dataclass
class StorageFailure(CaseworkError):
    """The storage layer failed (connection, constraint, lock)."""

    operation: str
    detail: str
    kind = "storage_failure"

    def __str__(self) -> str:
        return f"Storage failure during {self.operation}: {self.detail}"


@dataclass
class TraversalCancelled(CaseworkError):
    """A graph traversal was stopped through its cancellation event."""

    operation: str
    kind = "traversal_cancelled"

    def __str__(self) -> str:
        return f"{self.operation} was cancelled"
