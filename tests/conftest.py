"""Shared fixtures: in-memory storage and services pinned to a fixed date."""
from __future__ import annotations

from datetime import date

import pytest

from genealogy_casework.services import PersonService, RelationshipService
from genealogy_casework.storage import SQLiteStorage

TODAY = date(2024, 6, 1)


@pytest.fixture
def storage():
    store = SQLiteStorage(":memory:")
    yield store
    store.close()


@pytest.fixture
def persons(storage) -> PersonService:
    return PersonService(storage, today=lambda: TODAY)


@pytest.fixture
def relationships(storage) -> RelationshipService:
    return RelationshipService(storage, today=lambda: TODAY)


@pytest.fixture
def add(persons):
    """Create a person from a first name and optional ISO dates."""

    def _add(first_name: str, birth: str | None = None, death: str | None = None, **extra):
        return persons.create_person(
            {"first_name": first_name, "last_name": "Test", "birth_date": birth, "death_date": death, **extra}
        )

    return _add
