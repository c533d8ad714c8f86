"""Persistence interfaces and the SQLite implementation."""
from genealogy_casework.storage.base import (
    EventRepository,
    PersonRepository,
    RelationshipRepository,
    TransactionalStorage,
)
from genealogy_casework.storage.sqlite import SQLiteStorage

__all__ = [
    "EventRepository",
    "PersonRepository",
    "RelationshipRepository",
    "SQLiteStorage",
    "TransactionalStorage",
]
