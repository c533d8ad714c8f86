"""Relationship service: the only write path for kinship edges.

Every mutation runs inside a single storage transaction. Only ``parent`` and
``spouse`` edges are written by callers; each ``parent`` edge A -> B gets a
mirrored ``child`` edge B -> A in the same transaction, and the pair is kept
in step on update and delete.
"""
from __future__ import annotations

import threading
from datetime import date
from typing import Any, Callable
from uuid import UUID

import structlog

from genealogy_casework.config import GRAPH, RULES, GraphConfig, RulesConfig
from genealogy_casework.exceptions import (
    CircularRelationship,
    DuplicateRelationship,
    NotFoundError,
    PolicyViolation,
    ValidationFailure,
)
from genealogy_casework.graph.engine import RelationshipGraph, detect_circular_relationships
from genealogy_casework.models import (
    DIRECT_TYPES,
    LINEAGE_TYPES,
    UPDATABLE_TYPES,
    DerivedRelationship,
    PedigreeNode,
    Person,
    Relationship,
    RelationshipCreate,
    RelationshipPage,
    RelationshipQualifier,
    RelationshipQuery,
    RelationshipType,
    RelationshipUpdate,
)
from genealogy_casework.storage.base import TransactionalStorage, Tx
from genealogy_casework.validation.chronology import validate_relationship_dates
from genealogy_casework.validation.result import enforce
from genealogy_casework.validation.rules import (
    validate_marriage,
    validate_parent_child_age_difference,
    validate_relationship,
)

logger = structlog.get_logger(__name__)

RelationshipData = Relationship | RelationshipCreate


class RelationshipService:
    """Create, update, delete and query relationship edges.

    Example:
        >>> service = RelationshipService(SQLiteStorage("data/casework.db"))
        >>> edge = service.create_relationship(
        ...     {"person1_id": mother.id, "person2_id": son.id, "relationship_type": "parent"}
        ... )
        >>> service.find_relationship_path(mother.id, grandson.id)
    """

    def __init__(
        self,
        storage: TransactionalStorage,
        rules: RulesConfig = RULES,
        graph: GraphConfig = GRAPH,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.storage = storage
        self.rules = rules
        self.graph_config = graph
        self._today = today

    # =========================================================================
    # Write path
    # =========================================================================

    def create_relationship(self, data: RelationshipCreate | dict[str, Any]) -> Relationship:
        data = data if isinstance(data, RelationshipCreate) else RelationshipCreate.model_validate(data)

        def work(tx: Tx) -> Relationship:
            if data.relationship_type not in DIRECT_TYPES:
                raise PolicyViolation(
                    policy="direct_types",
                    detail=(
                        "Only 'parent' and 'spouse' relationships can be created directly. "
                        "Other relationship types are derived automatically."
                    ),
                )
            if data.person1_id == data.person2_id:
                raise ValidationFailure(
                    rule="distinct_persons", reasons=["A person cannot have a relationship with themselves"]
                )

            person1 = self._require_person(data.person1_id, tx)
            person2 = self._require_person(data.person2_id, tx)

            self._check_duplicate(data.person1_id, data.person2_id, data.relationship_type, tx)
            self._validate(data, person1, person2)
            if data.relationship_type is RelationshipType.PARENT:
                self._check_cycle(data.person1_id, data.person2_id, tx)

            relationship = Relationship(**data.model_dump())
            self.storage.relationships.create(relationship, tx)
            if relationship.relationship_type is RelationshipType.PARENT:
                self.storage.relationships.create(self._mirror_of(relationship), tx)

            logger.info(
                "relationship.create",
                relationship_id=str(relationship.id),
                relationship_type=relationship.relationship_type.value,
                person1_id=str(relationship.person1_id),
                person2_id=str(relationship.person2_id),
            )
            return relationship

        return self.storage.execute_transaction(work)

    def update_relationship(
        self, relationship_id: UUID, data: RelationshipUpdate | dict[str, Any]
    ) -> Relationship:
        """Apply a partial update, keeping any mirror edge consistent.

        A qualifier change on either half of a parent/child pair is copied
        to the other half. A stored ``child`` edge cannot be re-typed. Re-typing
        ``parent`` to ``spouse`` drops the mirror; ``spouse`` to ``parent``
        runs the cycle check and creates one. Notes are never copied to the
        mirror on update.
        """
        data = data if isinstance(data, RelationshipUpdate) else RelationshipUpdate.model_validate(data)
        changes = data.changes()

        def work(tx: Tx) -> Relationship:
            current = self._require_relationship(relationship_id, tx)
            requested = changes.get("relationship_type")

            if requested is not None and requested not in DIRECT_TYPES:
                raise PolicyViolation(
                    policy="direct_types",
                    detail=(
                        "Only 'parent' and 'spouse' relationships can be updated directly. "
                        "Other relationship types are derived automatically."
                    ),
                )
            if current.relationship_type is RelationshipType.CHILD and requested is not None:
                raise PolicyViolation(
                    policy="derived_edge",
                    detail="Derived 'child' relationships cannot be re-typed; update the parent relationship instead",
                )

            merged = current.model_copy(update=changes)
            if merged.relationship_type not in UPDATABLE_TYPES:
                raise PolicyViolation(
                    policy="updatable_types",
                    detail="Invalid relationship type. Only 'parent', 'child', and 'spouse' relationships are allowed.",
                )

            person1 = self._require_person(current.person1_id, tx)
            person2 = self._require_person(current.person2_id, tx)
            self._validate(merged, person1, person2)

            retyped = merged.relationship_type is not current.relationship_type
            if retyped:
                self._check_duplicate(
                    current.person1_id, current.person2_id, merged.relationship_type, tx, ignore=current.id
                )
                if merged.relationship_type is RelationshipType.PARENT:
                    self._check_cycle(current.person1_id, current.person2_id, tx)

            updated = self.storage.relationships.update(relationship_id, changes, tx)
            if updated is None:
                raise NotFoundError("relationship", relationship_id)

            if current.relationship_type in LINEAGE_TYPES and not retyped:
                qualifier = changes.get("relationship_qualifier", current.relationship_qualifier)
                if "relationship_qualifier" in changes and qualifier != current.relationship_qualifier:
                    self._sync_mirror_qualifier(current, qualifier, tx)
            elif current.relationship_type is RelationshipType.PARENT:
                self._delete_mirror(current, tx)
            elif merged.relationship_type is RelationshipType.PARENT:
                self.storage.relationships.create(self._mirror_of(updated), tx)

            logger.info(
                "relationship.update",
                relationship_id=str(relationship_id),
                fields=sorted(changes),
                retyped=retyped,
            )
            return updated

        return self.storage.execute_transaction(work)

    def delete_relationship(self, relationship_id: UUID) -> bool:
        def work(tx: Tx) -> bool:
            relationship = self._require_relationship(relationship_id, tx)
            if relationship.relationship_type in LINEAGE_TYPES:
                self._delete_mirror(relationship, tx)
            deleted = self.storage.relationships.delete(relationship_id, tx)
            logger.info(
                "relationship.delete",
                relationship_id=str(relationship_id),
                relationship_type=relationship.relationship_type.value,
            )
            return deleted

        return self.storage.execute_transaction(work)

    # =========================================================================
    # Read surface
    # =========================================================================

    def get_relationship(self, relationship_id: UUID) -> Relationship:
        return self._require_relationship(relationship_id)

    def list_relationships(self, query: RelationshipQuery | dict[str, Any] | None = None) -> RelationshipPage:
        if query is None:
            query = RelationshipQuery()
        elif not isinstance(query, RelationshipQuery):
            query = RelationshipQuery.model_validate(query)
        return self.storage.relationships.find_relationships(query)

    def get_relationships_by_person_id(self, person_id: UUID) -> list[Relationship]:
        self._require_person(person_id)
        return self.storage.relationships.find_by_person(person_id)

    def get_relationships_by_type(self, relationship_type: RelationshipType | str) -> list[Relationship]:
        return self.storage.relationships.find_by_type(RelationshipType(relationship_type))

    def get_relationships_by_qualifier(self, qualifier: RelationshipQualifier | str) -> list[Relationship]:
        return self.storage.relationships.find_by_qualifier(RelationshipQualifier(qualifier))

    def get_relationships_between_persons(self, person1_id: UUID, person2_id: UUID) -> list[Relationship]:
        self._require_person(person1_id)
        self._require_person(person2_id)
        return self.storage.relationships.find_between_persons(person1_id, person2_id)

    def get_relationships_by_date_range(
        self, start: date, end: date, date_field: str = "start_date"
    ) -> list[Relationship]:
        if date_field not in ("start_date", "end_date"):
            raise ValidationFailure(rule="date_range", reasons=["date_field must be 'start_date' or 'end_date'"])
        return self.storage.relationships.find_by_date_range(start, end, date_field)

    def get_active_relationships(self) -> list[Relationship]:
        return self.storage.relationships.find_active(self._today())

    def get_ended_relationships(self) -> list[Relationship]:
        return self.storage.relationships.find_ended(self._today())

    def get_parent_child_relationships(self) -> list[Relationship]:
        return self.storage.relationships.find_by_type(RelationshipType.PARENT)

    def get_spouse_relationships(self) -> list[Relationship]:
        return self.storage.relationships.find_by_type(RelationshipType.SPOUSE)

    def find_relationship_path(
        self,
        person1_id: UUID,
        person2_id: UUID,
        max_depth: int | None = None,
        cancel: threading.Event | None = None,
    ) -> list[Relationship]:
        """Shortest edge chain between two existing persons (``[]`` if none)."""
        self._require_person(person1_id)
        self._require_person(person2_id)
        depth = self.graph_config.max_path_depth if max_depth is None else max_depth
        path = self._graph().find_path(person1_id, person2_id, depth, cancel)
        logger.debug("relationship.path", person1_id=str(person1_id), person2_id=str(person2_id), length=len(path))
        return path

    def get_ancestors(
        self, person_id: UUID, generations: int = 3, cancel: threading.Event | None = None
    ) -> PedigreeNode:
        root = self._require_person(person_id)
        return self._lineage_graph().ancestor_tree(
            root, generations, self.storage.persons.find_by_id, self.graph_config.max_generations, cancel
        )

    def get_descendants(
        self, person_id: UUID, generations: int = 3, cancel: threading.Event | None = None
    ) -> PedigreeNode:
        root = self._require_person(person_id)
        return self._lineage_graph().descendant_tree(
            root, generations, self.storage.persons.find_by_id, self.graph_config.max_generations, cancel
        )

    def get_derived_relationship(self, person_a_id: UUID, person_b_id: UUID) -> DerivedRelationship | None:
        """How person B relates to person A (sibling, first cousin, ...)."""
        self._require_person(person_a_id)
        self._require_person(person_b_id)
        return self._graph().derive_relationship(person_a_id, person_b_id, self.graph_config.max_generations)

    def find_relatives(self, person_id: UUID, relationship_type: RelationshipType | str) -> list[Person]:
        self._require_person(person_id)
        ids = self._graph().find_relatives(person_id, RelationshipType(relationship_type))
        return [p for p in (self.storage.persons.find_by_id(i) for i in ids) if p is not None]

    # =========================================================================
    # Helpers
    # =========================================================================

    def _graph(self) -> RelationshipGraph:
        return RelationshipGraph.from_edges(self.storage.relationships.find_all())

    def _lineage_graph(self) -> RelationshipGraph:
        return RelationshipGraph.from_edges(self.storage.relationships.find_all(list(LINEAGE_TYPES)))

    def _require_person(self, person_id: UUID, tx: Tx | None = None) -> Person:
        person = self.storage.persons.find_by_id(person_id, tx)
        if person is None:
            raise NotFoundError("person", person_id)
        return person

    def _require_relationship(self, relationship_id: UUID, tx: Tx | None = None) -> Relationship:
        relationship = self.storage.relationships.find_by_id(relationship_id, tx)
        if relationship is None:
            raise NotFoundError("relationship", relationship_id)
        return relationship

    def _check_duplicate(
        self,
        person1_id: UUID,
        person2_id: UUID,
        relationship_type: RelationshipType,
        tx: Tx,
        ignore: UUID | None = None,
    ) -> None:
        """Reject a second edge of the same type between the pair.

        Either direction counts, so an existing ``parent`` B -> A also blocks
        a new ``parent`` A -> B.
        """
        for existing in self.storage.relationships.find_between_persons(person1_id, person2_id, tx):
            if existing.id == ignore:
                continue
            same_type = existing.relationship_type is relationship_type
            inverse_parent = (
                existing.relationship_type is RelationshipType.PARENT
                and relationship_type is RelationshipType.PARENT
                and existing.person1_id == person2_id
                and existing.person2_id == person1_id
            )
            if same_type or inverse_parent:
                raise DuplicateRelationship(
                    person1_id=person1_id,
                    person2_id=person2_id,
                    relationship_type=relationship_type.value,
                    existing_id=existing.id,
                )

    def _check_cycle(self, parent_id: UUID, child_id: UUID, tx: Tx) -> None:
        edges = self.storage.relationships.find_all(list(LINEAGE_TYPES), tx)
        result = detect_circular_relationships(edges, proposed=(parent_id, child_id))
        if not result.is_valid:
            raise CircularRelationship(parent_id=parent_id, child_id=child_id, reasons=list(result.reasons))

    def _validate(self, data: RelationshipData, person1: Person, person2: Person) -> None:
        kind = data.relationship_type
        if kind is RelationshipType.SPOUSE:
            if data.start_date is None:
                raise ValidationFailure(
                    rule="marriage", reasons=["Marriage date (start_date) is required for spouse relationships"]
                )
            enforce(
                validate_marriage(person1, person2, data, self._today(), self.rules).merge(
                    validate_relationship_dates(data.start_date, data.end_date)
                ),
                "marriage",
            )
            return

        enforce(
            validate_relationship(data, person1, person2, self.rules).merge(
                validate_relationship_dates(data.start_date, data.end_date)
            ),
            "relationship",
        )
        parent, child = (person1, person2) if kind is RelationshipType.PARENT else (person2, person1)
        enforce(
            validate_parent_child_age_difference(parent, child, self.rules),
            "parent_child_age",
            self.graph_config.age_gap_policy,
        )

    @staticmethod
    def _mirror_of(relationship: Relationship) -> Relationship:
        return Relationship(
            person1_id=relationship.person2_id,
            person2_id=relationship.person1_id,
            relationship_type=RelationshipType.CHILD,
            relationship_qualifier=relationship.relationship_qualifier,
            notes=relationship.notes,
        )

    def _find_mirror(self, relationship: Relationship, tx: Tx) -> Relationship | None:
        mirror_type = (
            RelationshipType.CHILD if relationship.relationship_type is RelationshipType.PARENT else RelationshipType.PARENT
        )
        mirror = self.storage.relationships.find_one(
            tx,
            person1_id=relationship.person2_id,
            person2_id=relationship.person1_id,
            relationship_type=mirror_type,
        )
        if mirror is None:
            logger.warning(
                "relationship.mirror_missing",
                relationship_id=str(relationship.id),
                expected_type=mirror_type.value,
            )
        return mirror

    def _sync_mirror_qualifier(
        self, relationship: Relationship, qualifier: RelationshipQualifier | None, tx: Tx
    ) -> None:
        mirror = self._find_mirror(relationship, tx)
        if mirror is not None:
            self.storage.relationships.update(mirror.id, {"relationship_qualifier": qualifier}, tx)

    def _delete_mirror(self, relationship: Relationship, tx: Tx) -> None:
        mirror = self._find_mirror(relationship, tx)
        if mirror is not None:
            self.storage.relationships.delete(mirror.id, tx)


