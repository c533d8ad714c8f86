"""Tests for RelationshipService write path and read surface."""
from __future__ import annotations

from datetime import date
from uuid import UUID

import pytest

from genealogy_casework.exceptions import (
    CircularRelationship,
    DuplicateRelationship,
    NotFoundError,
    PolicyViolation,
    StorageFailure,
    ValidationFailure,
)
from genealogy_casework.models import Relationship, RelationshipQualifier, RelationshipType
from genealogy_casework.services import RelationshipService


def link(relationships, a, b, kind: str = "parent", **extra) -> Relationship:
    return relationships.create_relationship(
        {"person1_id": a.id, "person2_id": b.id, "relationship_type": kind, **extra}
    )


def stored_types(storage) -> list[tuple[UUID, UUID, str]]:
    return [(e.person1_id, e.person2_id, e.relationship_type.value) for e in storage.relationships.find_all()]


# =============================================================================
# Create
# =============================================================================


class TestCreateRelationship:
    """Tests for create_relationship."""

    def test_parent_creates_mirror(self, relationships, storage, add):
        a, b = add("A", "1950-01-01"), add("B", "1980-01-01")
        edge = link(relationships, a, b, relationship_qualifier="biological", notes="baptism record")

        assert edge.relationship_type is RelationshipType.PARENT
        assert stored_types(storage) == [(a.id, b.id, "parent"), (b.id, a.id, "child")]

        mirror = storage.relationships.find_one(person1_id=b.id, person2_id=a.id, relationship_type="child")
        assert mirror.relationship_qualifier is RelationshipQualifier.BIOLOGICAL
        assert mirror.notes == "baptism record"

    def test_inverse_parent_is_duplicate(self, relationships, add):
        a, b = add("A", "1950-01-01"), add("B", "1980-01-01")
        first = link(relationships, a, b)
        with pytest.raises(DuplicateRelationship) as excinfo:
            link(relationships, b, a)
        assert excinfo.value.existing_id == first.id

    def test_repeat_parent_is_duplicate(self, relationships, add):
        a, b = add("A", "1950-01-01"), add("B", "1980-01-01")
        link(relationships, a, b)
        with pytest.raises(DuplicateRelationship):
            link(relationships, a, b)

    def test_spouse_and_parent_between_same_pair(self, relationships, storage, add):
        # Different types are not duplicates of each other
        a, b = add("A"), add("B")
        link(relationships, a, b, "spouse", start_date="1980-06-01")
        link(relationships, a, b)
        assert len(storage.relationships.find_between_persons(a.id, b.id)) == 3

    @pytest.mark.parametrize("kind", ["sibling", "child", "cousin", "grandparent"])
    def test_derived_types_rejected(self, relationships, add, kind):
        a, b = add("A"), add("B")
        with pytest.raises(PolicyViolation) as excinfo:
            link(relationships, a, b, kind)
        assert excinfo.value.policy == "direct_types"

    def test_self_relationship_rejected(self, relationships, add):
        a = add("A")
        with pytest.raises(ValidationFailure) as excinfo:
            link(relationships, a, a)
        assert excinfo.value.rule == "distinct_persons"

    def test_missing_person(self, relationships, add):
        a = add("A")
        with pytest.raises(NotFoundError):
            relationships.create_relationship(
                {"person1_id": a.id, "person2_id": UUID(int=9), "relationship_type": "parent"}
            )

    def test_cycle_rejected(self, relationships, storage, add):
        a, b, c = add("A"), add("B"), add("C")
        link(relationships, a, b)
        link(relationships, b, c)
        with pytest.raises(CircularRelationship) as excinfo:
            link(relationships, c, a)
        assert f"{a.id} is already an ancestor of {c.id}" in str(excinfo.value)
        assert len(storage.relationships.find_all()) == 4

    def test_parent_born_after_child_rejected(self, relationships, add):
        a, b = add("A", "1980-01-01"), add("B", "1950-01-01")
        with pytest.raises(ValidationFailure) as excinfo:
            link(relationships, a, b)
        assert "Parent must be born before child" in excinfo.value.reasons

    def test_borderline_age_gap_is_advisory(self, relationships, add):
        # 13 years sits in the verify band: logged, not blocked
        a, b = add("A", "1950-01-01"), add("B", "1963-06-01")
        assert link(relationships, a, b).relationship_type is RelationshipType.PARENT

    def test_spouse_marriage_during_life(self, relationships, storage, add):
        x, y = add("X", "1950-01-01", "2000-01-01"), add("Y", "1960-01-01")
        edge = link(relationships, x, y, "spouse", start_date="1985-06-01")
        assert edge.start_date == date(1985, 6, 1)
        assert stored_types(storage) == [(x.id, y.id, "spouse")]

    def test_spouse_marriage_after_death(self, relationships, storage, add):
        x, y = add("X", "1950-01-01", "2000-01-01"), add("Y", "1960-01-01")
        with pytest.raises(ValidationFailure) as excinfo:
            link(relationships, x, y, "spouse", start_date="2005-06-01")
        assert excinfo.value.rule == "marriage"
        assert storage.relationships.find_all() == []

    def test_spouse_requires_marriage_date(self, relationships, storage, add):
        x, y = add("X"), add("Y")
        with pytest.raises(ValidationFailure) as excinfo:
            link(relationships, x, y, "spouse")
        assert excinfo.value.reasons == ["Marriage date (start_date) is required for spouse relationships"]
        assert storage.relationships.find_all() == []

    def test_spouse_same_day_divorce_rejected(self, relationships, storage, add):
        x, y = add("X"), add("Y")
        with pytest.raises(ValidationFailure) as excinfo:
            link(relationships, x, y, "spouse", start_date="1980-01-01", end_date="1980-01-01")
        assert "Start date must be before end date" in excinfo.value.reasons
        assert storage.relationships.find_all() == []

    def test_failed_mirror_rolls_back_primary(self, relationships, storage, add, monkeypatch):
        a, b = add("A"), add("B")

        def broken_mirror(relationship):
            return Relationship(
                person1_id=relationship.person2_id,
                person2_id=UUID(int=404),
                relationship_type=RelationshipType.CHILD,
            )

        monkeypatch.setattr(RelationshipService, "_mirror_of", staticmethod(broken_mirror))
        with pytest.raises(StorageFailure):
            link(relationships, a, b)
        assert storage.relationships.find_all() == []


# =============================================================================
# Update
# =============================================================================


class TestUpdateRelationship:
    """Tests for update_relationship."""

    @pytest.fixture
    def pair(self, relationships, add):
        a, b = add("A", "1950-01-01"), add("B", "1980-01-01")
        return a, b, link(relationships, a, b, relationship_qualifier="biological")

    def test_qualifier_synced_to_mirror(self, relationships, storage, pair):
        a, b, edge = pair
        updated = relationships.update_relationship(edge.id, {"relationship_qualifier": "adoptive"})
        assert updated.relationship_qualifier is RelationshipQualifier.ADOPTIVE

        mirror = storage.relationships.find_one(person1_id=b.id, person2_id=a.id, relationship_type="child")
        assert mirror.relationship_qualifier is RelationshipQualifier.ADOPTIVE

    def test_qualifier_synced_from_mirror(self, relationships, storage, pair):
        a, b, edge = pair
        mirror = storage.relationships.find_one(person1_id=b.id, person2_id=a.id, relationship_type="child")
        relationships.update_relationship(mirror.id, {"relationship_qualifier": "step"})
        assert relationships.get_relationship(edge.id).relationship_qualifier is RelationshipQualifier.STEP

    def test_notes_not_synced(self, relationships, storage, pair):
        a, b, edge = pair
        relationships.update_relationship(edge.id, {"notes": "from probate file"})
        mirror = storage.relationships.find_one(person1_id=b.id, person2_id=a.id, relationship_type="child")
        assert mirror.notes is None

    def test_unchanged_fields_kept(self, relationships, pair):
        _, _, edge = pair
        updated = relationships.update_relationship(edge.id, {"notes": "checked"})
        assert updated.relationship_qualifier is RelationshipQualifier.BIOLOGICAL
        assert updated.relationship_type is RelationshipType.PARENT

    def test_child_edge_cannot_be_retyped(self, relationships, storage, pair):
        a, b, _ = pair
        mirror = storage.relationships.find_one(person1_id=b.id, person2_id=a.id, relationship_type="child")
        with pytest.raises(PolicyViolation) as excinfo:
            relationships.update_relationship(mirror.id, {"relationship_type": "spouse"})
        assert excinfo.value.policy == "derived_edge"

    def test_derived_type_rejected(self, relationships, pair):
        _, _, edge = pair
        with pytest.raises(PolicyViolation):
            relationships.update_relationship(edge.id, {"relationship_type": "sibling"})

    def test_parent_to_spouse_drops_mirror(self, relationships, storage, pair):
        a, b, edge = pair
        relationships.update_relationship(edge.id, {"relationship_type": "spouse", "start_date": "2000-06-01"})
        assert stored_types(storage) == [(a.id, b.id, "spouse")]

    def test_spouse_to_parent_adds_mirror(self, relationships, storage, add):
        a, b = add("A", "1950-01-01"), add("B", "1980-01-01")
        edge = link(relationships, a, b, "spouse", start_date="2000-06-01")
        relationships.update_relationship(edge.id, {"relationship_type": "parent"})
        assert stored_types(storage) == [(a.id, b.id, "parent"), (b.id, a.id, "child")]

    def test_retype_into_cycle_rejected(self, relationships, storage, add):
        a, b, c = add("A"), add("B"), add("C")
        link(relationships, a, b)
        link(relationships, b, c)
        edge = link(relationships, c, a, "spouse", start_date="1980-06-01")
        with pytest.raises(CircularRelationship):
            relationships.update_relationship(edge.id, {"relationship_type": "parent"})
        assert relationships.get_relationship(edge.id).relationship_type is RelationshipType.SPOUSE

    def test_invalid_dates_rejected(self, relationships, pair):
        _, _, edge = pair
        with pytest.raises(ValidationFailure):
            relationships.update_relationship(edge.id, {"start_date": "1990-01-01", "end_date": "1985-01-01"})

    def test_spouse_end_date_must_follow_start(self, relationships, add):
        x, y = add("X"), add("Y")
        edge = link(relationships, x, y, "spouse", start_date="1980-01-01")
        with pytest.raises(ValidationFailure) as excinfo:
            relationships.update_relationship(edge.id, {"end_date": "1980-01-01"})
        assert "Start date must be before end date" in excinfo.value.reasons
        assert relationships.get_relationship(edge.id).end_date is None

    def test_retype_to_spouse_requires_marriage_date(self, relationships, storage, pair):
        a, b, edge = pair
        with pytest.raises(ValidationFailure):
            relationships.update_relationship(edge.id, {"relationship_type": "spouse"})
        assert stored_types(storage) == [(a.id, b.id, "parent"), (b.id, a.id, "child")]

    def test_missing_relationship(self, relationships):
        with pytest.raises(NotFoundError):
            relationships.update_relationship(UUID(int=5), {"notes": "x"})


# =============================================================================
# Delete
# =============================================================================


class TestDeleteRelationship:
    """Tests for delete_relationship."""

    def test_delete_parent_removes_mirror(self, relationships, storage, add):
        a, b = add("A"), add("B")
        edge = link(relationships, a, b)
        assert relationships.delete_relationship(edge.id)
        assert storage.relationships.find_all() == []

    def test_delete_child_removes_parent(self, relationships, storage, add):
        a, b = add("A"), add("B")
        link(relationships, a, b)
        mirror = storage.relationships.find_one(person1_id=b.id, person2_id=a.id, relationship_type="child")
        relationships.delete_relationship(mirror.id)
        assert storage.relationships.find_all() == []

    def test_delete_spouse(self, relationships, storage, add):
        a, b, c = add("A"), add("B"), add("C")
        edge = link(relationships, a, b, "spouse", start_date="1980-06-01")
        link(relationships, a, c)
        relationships.delete_relationship(edge.id)
        assert stored_types(storage) == [(a.id, c.id, "parent"), (c.id, a.id, "child")]

    def test_missing_mirror_is_tolerated(self, relationships, storage, add):
        a, b = add("A"), add("B")
        edge = link(relationships, a, b)
        mirror = storage.relationships.find_one(person1_id=b.id, person2_id=a.id, relationship_type="child")
        storage.relationships.delete(mirror.id)

        assert relationships.delete_relationship(edge.id) is True
        assert storage.relationships.find_all() == []

    def test_delete_missing(self, relationships):
        with pytest.raises(NotFoundError):
            relationships.delete_relationship(UUID(int=3))


# =============================================================================
# Read surface
# =============================================================================


class TestQueries:
    """Tests for the read surface."""

    @pytest.fixture
    def lineage(self, relationships, add):
        a = add("Alice", "1900-01-01", "1980-01-01")
        b = add("Bob", "1930-01-01", "2010-01-01")
        c = add("Carol", "1960-01-01")
        d = add("Dave", "1990-01-01")
        s = add("Sam", "1932-01-01", "2015-01-01")
        link(relationships, a, b)
        link(relationships, b, c)
        link(relationships, c, d)
        link(relationships, b, s, "spouse", start_date="1955-06-01", end_date="1975-01-01")
        return a, b, c, d, s

    def test_ancestors_three_generations(self, relationships, lineage):
        a, b, c, d, _ = lineage
        tree = relationships.get_ancestors(d.id, 3)
        assert a.id in {node.id for node in tree.walk()}

    def test_ancestors_one_generation(self, relationships, lineage):
        _, _, c, d, _ = lineage
        tree = relationships.get_ancestors(d.id, 1)
        assert [p.id for p in tree.parents] == [c.id]
        assert tree.parents[0].parents is None

    def test_descendants(self, relationships, lineage):
        a, _, _, d, _ = lineage
        tree = relationships.get_descendants(a.id)
        assert d.id in {node.id for node in tree.walk()}

    def test_path(self, relationships, lineage):
        a, _, c, _, s = lineage
        assert len(relationships.find_relationship_path(a.id, c.id)) == 2
        assert relationships.find_relationship_path(a.id, c.id, max_depth=1) == []
        assert relationships.find_relationship_path(a.id, a.id) == []
        assert len(relationships.find_relationship_path(s.id, c.id)) == 2

    def test_path_missing_person(self, relationships, lineage):
        a = lineage[0]
        with pytest.raises(NotFoundError):
            relationships.find_relationship_path(a.id, UUID(int=1))

    def test_derived_relationship(self, relationships, lineage):
        a, _, _, d, _ = lineage
        derived = relationships.get_derived_relationship(d.id, a.id)
        assert derived.label == "great-grandparent"

    def test_find_relatives(self, relationships, lineage):
        a, b, c, _, _ = lineage
        assert [p.id for p in relationships.find_relatives(c.id, "grandparent")] == [a.id]
        assert [p.id for p in relationships.find_relatives(a.id, RelationshipType.CHILD)] == [b.id]

    def test_by_person_and_type(self, relationships, lineage):
        _, b, _, _, _ = lineage
        assert len(relationships.get_relationships_by_person_id(b.id)) == 5
        assert len(relationships.get_parent_child_relationships()) == 3
        assert len(relationships.get_relationships_by_type("child")) == 3
        assert len(relationships.get_spouse_relationships()) == 1

    def test_between_persons(self, relationships, lineage):
        a, b, _, _, _ = lineage
        kinds = {e.relationship_type for e in relationships.get_relationships_between_persons(b.id, a.id)}
        assert kinds == {RelationshipType.PARENT, RelationshipType.CHILD}

    def test_active_and_ended(self, relationships, lineage):
        ended = relationships.get_ended_relationships()
        assert [e.relationship_type for e in ended] == [RelationshipType.SPOUSE]
        assert len(relationships.get_active_relationships()) == 6

    def test_date_range(self, relationships, lineage):
        found = relationships.get_relationships_by_date_range(date(1950, 1, 1), date(1960, 1, 1))
        assert [e.relationship_type for e in found] == [RelationshipType.SPOUSE]
        assert relationships.get_relationships_by_date_range(date(1950, 1, 1), date(1960, 1, 1), "end_date") == []
        with pytest.raises(ValidationFailure):
            relationships.get_relationships_by_date_range(date(1950, 1, 1), date(1960, 1, 1), "created_at")

    def test_by_qualifier(self, relationships, add):
        a, b = add("A"), add("B")
        link(relationships, a, b, relationship_qualifier="foster")
        assert len(relationships.get_relationships_by_qualifier("foster")) == 2

    def test_list_paginates_and_searches(self, relationships, lineage):
        page = relationships.list_relationships({"page_size": 4, "sort_order": "asc"})
        assert page.total_count == 7
        assert page.total_pages == 2
        assert len(page.relationships) == 4

        second = relationships.list_relationships({"page": 2, "page_size": 4, "sort_order": "asc"})
        assert len(second.relationships) == 3

        dave = relationships.list_relationships({"search": "Dave"})
        assert dave.total_count == 2

        spouses = relationships.list_relationships({"relationship_type": "spouse"})
        assert spouses.total_count == 1
