"""Person service: person records, their life events and immediate family."""
from __future__ import annotations

from datetime import date
from typing import Any, Callable
from uuid import UUID

import structlog

from genealogy_casework.config import RULES, RulesConfig, WarningPolicy
from genealogy_casework.exceptions import NotFoundError, PolicyViolation
from genealogy_casework.graph.engine import RelationshipGraph
from genealogy_casework.models import FamilyMembers, Person, PersonEvent, PersonUpdate
from genealogy_casework.storage.base import TransactionalStorage, Tx
from genealogy_casework.validation.chronology import (
    validate_event_against_person,
    validate_historical_consistency,
    validate_person_dates,
    validate_person_events,
)
from genealogy_casework.validation.result import ValidationResult, enforce
from genealogy_casework.validation.rules import validate_age

logger = structlog.get_logger(__name__)


class PersonService:
    """Manage persons and the events recorded against them.

    ``age_policy`` governs the lifespan plausibility warnings on create and
    update; impossible dates (future, death before birth) always block.
    """

    def __init__(
        self,
        storage: TransactionalStorage,
        rules: RulesConfig = RULES,
        age_policy: WarningPolicy = WarningPolicy.BLOCK,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.storage = storage
        self.rules = rules
        self.age_policy = age_policy
        self._today = today

    def _check_person(self, person: Person) -> None:
        enforce(validate_person_dates(person, self._today()), "person_dates")
        enforce(validate_age(person, self._today(), self.rules), "age", self.age_policy)

    def _require(self, person_id: UUID, tx: Tx | None = None) -> Person:
        person = self.storage.persons.find_by_id(person_id, tx)
        if person is None:
            raise NotFoundError("person", person_id)
        return person

    # =========================================================================
    # Persons
    # =========================================================================

    def create_person(self, data: Person | dict[str, Any]) -> Person:
        person = data if isinstance(data, Person) else Person.model_validate(data)
        self._check_person(person)
        created = self.storage.execute_transaction(lambda tx: self.storage.persons.create(person, tx))
        logger.info("person.create", person_id=str(created.id), name=created.full_name)
        return created

    def update_person(self, person_id: UUID, data: PersonUpdate | dict[str, Any]) -> Person:
        data = data if isinstance(data, PersonUpdate) else PersonUpdate.model_validate(data)
        changes = data.model_dump(exclude_unset=True)

        def work(tx: Tx) -> Person:
            current = self._require(person_id, tx)
            self._check_person(current.model_copy(update=changes))
            updated = self.storage.persons.update(person_id, changes, tx)
            if updated is None:
                raise NotFoundError("person", person_id)
            return updated

        updated = self.storage.execute_transaction(work)
        logger.info("person.update", person_id=str(person_id), fields=sorted(changes))
        return updated

    def delete_person(self, person_id: UUID) -> bool:
        """Delete a person who no longer takes part in any relationship."""

        def work(tx: Tx) -> bool:
            self._require(person_id, tx)
            linked = self.storage.relationships.find_by_person(person_id, tx)
            if linked:
                raise PolicyViolation(
                    policy="referenced_person",
                    detail=f"Person {person_id} still has {len(linked)} relationship(s); delete those first",
                )
            return self.storage.persons.delete(person_id, tx)

        deleted = self.storage.execute_transaction(work)
        logger.info("person.delete", person_id=str(person_id))
        return deleted

    def get_person(self, person_id: UUID) -> Person:
        return self._require(person_id)

    def find_by_name(self, term: str, limit: int = 50) -> list[Person]:
        return self.storage.persons.find_by_name(term, limit)

    def list_persons(self, limit: int = 100, offset: int = 0) -> list[Person]:
        return self.storage.persons.list_persons(limit, offset)

    def get_family_members(self, person_id: UUID) -> FamilyMembers:
        """Parents, children and spouses from stored edges; siblings derived."""
        person = self._require(person_id)
        graph = RelationshipGraph.from_edges(self.storage.relationships.find_by_person(person_id))
        parent_ids = graph.parents_of(person_id)

        # Siblings need the parents' own edges as well
        sibling_graph = RelationshipGraph.from_edges(
            edge
            for parent_id in parent_ids
            for edge in self.storage.relationships.find_by_person(parent_id)
        )

        def load(ids: list[UUID]) -> list[Person]:
            return [p for p in (self.storage.persons.find_by_id(i) for i in ids) if p is not None]

        return FamilyMembers(
            person=person,
            parents=load(parent_ids),
            children=load(graph.children_of(person_id)),
            spouses=load(graph.spouses_of(person_id)),
            siblings=load(sibling_graph.siblings_of(person_id)),
        )

    # =========================================================================
    # Events
    # =========================================================================

    def record_event(self, person_id: UUID, data: PersonEvent | dict[str, Any]) -> tuple[PersonEvent, ValidationResult]:
        """Store an event after checking it against the person's lifespan.

        Lifespan violations raise ``ChronologyError``. Historical context
        (census years, wars, immigration waves) never blocks; it is logged
        and returned alongside the stored event.
        """
        if isinstance(data, PersonEvent):
            event = data.model_copy(update={"person_id": person_id})
        else:
            event = PersonEvent.model_validate({**data, "person_id": person_id})

        def work(tx: Tx) -> PersonEvent:
            person = self._require(person_id, tx)
            validate_event_against_person(event, person)
            return self.storage.events.create(event, tx)

        stored = self.storage.execute_transaction(work)
        context = enforce(
            validate_historical_consistency(
                stored.event_date, stored.event_type, stored.event_location, self._today(), self.rules
            ),
            "historical_consistency",
            WarningPolicy.ADVISORY,
        )
        logger.info("person.event_recorded", person_id=str(person_id), event_type=stored.event_type.value)
        return stored, context

    def list_events(self, person_id: UUID) -> list[PersonEvent]:
        self._require(person_id)
        return self.storage.events.find_by_person(person_id)

    def check_events(self, person_id: UUID) -> ValidationResult:
        """Re-check every stored event against the current lifespan."""
        person = self._require(person_id)
        return validate_person_events(person, self.storage.events.find_by_person(person_id))
