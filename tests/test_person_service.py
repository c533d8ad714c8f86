"""Tests for PersonService."""
from __future__ import annotations

from datetime import date
from uuid import UUID

import pytest

from genealogy_casework.config import WarningPolicy
from genealogy_casework.exceptions import ChronologyError, NotFoundError, PolicyViolation, ValidationFailure
from genealogy_casework.models import EventType, Gender
from genealogy_casework.services import PersonService

TODAY = date(2024, 6, 1)


# =============================================================================
# Persons
# =============================================================================


class TestPersons:
    """Tests for person create/update/delete."""

    def test_create_and_get(self, persons, add):
        created = add("Mary", "1920-03-04", "2001-07-08", gender="Female", birth_location="  Cork, Ireland ")
        fetched = persons.get_person(created.id)
        assert fetched.full_name == "Mary Test"
        assert fetched.gender is Gender.FEMALE
        assert fetched.birth_location == "Cork, Ireland"
        assert fetched.death_date == date(2001, 7, 8)

    def test_impossible_dates_block(self, add):
        with pytest.raises(ValidationFailure) as excinfo:
            add("Odd", "1950-01-01", "1940-01-01")
        assert excinfo.value.rule == "person_dates"

    def test_implausible_age_blocks_by_default(self, add):
        with pytest.raises(ValidationFailure) as excinfo:
            add("Old", "1890-01-01")
        assert excinfo.value.rule == "age"

    def test_implausible_age_advisory(self, storage):
        lenient = PersonService(storage, age_policy=WarningPolicy.ADVISORY, today=lambda: TODAY)
        person = lenient.create_person({"first_name": "Old", "last_name": "Test", "birth_date": "1890-01-01"})
        assert lenient.get_person(person.id).birth_date == date(1890, 1, 1)

    def test_update(self, persons, add):
        person = add("Jon", "1950-01-01")
        updated = persons.update_person(person.id, {"death_date": "2020-05-05", "notes": "obituary found"})
        assert updated.death_date == date(2020, 5, 5)
        assert updated.notes == "obituary found"
        assert updated.first_name == "Jon"

    def test_update_rechecks_dates(self, persons, add):
        person = add("Jon", "1950-01-01")
        with pytest.raises(ValidationFailure):
            persons.update_person(person.id, {"death_date": "1949-01-01"})
        assert persons.get_person(person.id).death_date is None

    def test_missing_person(self, persons):
        with pytest.raises(NotFoundError):
            persons.get_person(UUID(int=1))

    def test_delete(self, persons, add):
        person = add("Gone")
        assert persons.delete_person(person.id)
        with pytest.raises(NotFoundError):
            persons.get_person(person.id)

    def test_delete_linked_person_refused(self, persons, relationships, add):
        a, b = add("A"), add("B")
        relationships.create_relationship(
            {"person1_id": a.id, "person2_id": b.id, "relationship_type": "spouse", "start_date": "1980-06-01"}
        )
        with pytest.raises(PolicyViolation) as excinfo:
            persons.delete_person(a.id)
        assert excinfo.value.policy == "referenced_person"

    def test_find_and_list(self, persons, add):
        add("Ann")
        add("Annabel")
        add("Bert")
        assert {p.first_name for p in persons.find_by_name("ann")} == {"Ann", "Annabel"}
        assert len(persons.list_persons(limit=2)) == 2


# =============================================================================
# Family
# =============================================================================


class TestFamilyMembers:
    """Tests for get_family_members."""

    def test_immediate_family(self, persons, relationships, add):
        dad, mom = add("Dad", "1930-01-01", "2000-01-01"), add("Mom", "1932-01-01", "2010-01-01")
        me, sis = add("Me", "1960-01-01"), add("Sis", "1963-01-01")
        wife, kid = add("Wife", "1961-01-01"), add("Kid", "1990-01-01")

        def link(a, b, kind="parent", **extra):
            relationships.create_relationship(
                {"person1_id": a.id, "person2_id": b.id, "relationship_type": kind, **extra}
            )

        link(dad, me)
        link(mom, me)
        link(dad, sis)
        link(me, wife, "spouse", start_date="1985-06-01")
        link(me, kid)

        family = persons.get_family_members(me.id)
        assert {p.id for p in family.parents} == {dad.id, mom.id}
        assert [p.id for p in family.siblings] == [sis.id]
        assert [p.id for p in family.spouses] == [wife.id]
        assert [p.id for p in family.children] == [kid.id]
        assert family.family_size == 6


# =============================================================================
# Events
# =============================================================================


class TestEvents:
    """Tests for record_event and check_events."""

    def test_record_event(self, persons, add):
        person = add("Hans", "1850-02-01", "1920-03-01")
        event, context = persons.record_event(
            person.id, {"event_type": "census", "event_date": "1880-06-01", "event_location": "Ohio, United States"}
        )
        assert event.event_type is EventType.CENSUS
        assert context.is_valid
        assert persons.list_events(person.id) == [event]

    def test_historical_context_returned_not_raised(self, persons, add):
        person = add("Hans", "1850-02-01", "1920-03-01")
        _, context = persons.record_event(
            person.id, {"event_type": "immigration", "event_date": "1882-04-01", "event_location": "New York"}
        )
        assert context.reasons == ("Immigration in 1882 falls within: New Immigration",)

    def test_event_outside_lifespan_raises(self, persons, add):
        person = add("Hans", "1850-02-01", "1920-03-01")
        with pytest.raises(ChronologyError):
            persons.record_event(person.id, {"event_type": "residence", "event_date": "1925-01-01"})
        assert persons.list_events(person.id) == []

    def test_event_for_missing_person(self, persons):
        with pytest.raises(NotFoundError):
            persons.record_event(UUID(int=2), {"event_type": "residence", "event_date": "1900-01-01"})

    def test_check_events_after_date_change(self, persons, add):
        person = add("Hans", "1920-02-01")
        persons.record_event(person.id, {"event_type": "residence", "event_date": "2010-01-01"})
        assert persons.check_events(person.id).is_valid

        persons.update_person(person.id, {"death_date": "2000-03-01"})
        result = persons.check_events(person.id)
        assert len(result.reasons) == 1
        assert "after person's death date" in result.reasons[0]
