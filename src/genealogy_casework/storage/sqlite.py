"""SQLite storage for persons, relationship edges and life events.

One connection per storage object, opened in autocommit mode so that
``transaction()`` controls ``BEGIN IMMEDIATE``/``COMMIT`` explicitly. The
write lock is therefore taken before the duplicate and cycle checks run, and
those checks see the same rows the writes land next to.
"""
from __future__ import annotations

import json
import math
import sqlite3
from contextlib import contextmanager
from datetime import UTC, date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Generator, TypeVar
from uuid import UUID

import structlog

from genealogy_casework.exceptions import StorageFailure
from genealogy_casework.models import (
    Person,
    PersonEvent,
    Relationship,
    RelationshipPage,
    RelationshipQualifier,
    RelationshipQuery,
    RelationshipType,
)
from genealogy_casework.storage.base import (
    EventRepository,
    PersonRepository,
    RelationshipRepository,
    TransactionalStorage,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")


# =============================================================================
# Schema Definitions
# =============================================================================


SCHEMA_VERSION = 1

SCHEMA_SQL = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);

-- Persons table
CREATE TABLE IF NOT EXISTS persons (
    id TEXT PRIMARY KEY,
    first_name TEXT NOT NULL,
    middle_name TEXT,
    last_name TEXT NOT NULL,
    maiden_name TEXT,
    gender TEXT,
    birth_date TEXT,
    birth_location TEXT,
    death_date TEXT,
    death_location TEXT,
    notes TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_persons_name ON persons(last_name, first_name);

-- Relationships table (flat edge list)
CREATE TABLE IF NOT EXISTS relationships (
    id TEXT PRIMARY KEY,
    person1_id TEXT NOT NULL,
    person2_id TEXT NOT NULL,
    relationship_type TEXT NOT NULL,
    relationship_qualifier TEXT,
    start_date TEXT,
    end_date TEXT,
    notes TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    CHECK (person1_id <> person2_id),
    UNIQUE (person1_id, person2_id, relationship_type),
    FOREIGN KEY (person1_id) REFERENCES persons(id),
    FOREIGN KEY (person2_id) REFERENCES persons(id)
);
CREATE INDEX IF NOT EXISTS idx_relationships_person1 ON relationships(person1_id);
CREATE INDEX IF NOT EXISTS idx_relationships_person2 ON relationships(person2_id);
CREATE INDEX IF NOT EXISTS idx_relationships_type ON relationships(relationship_type);

-- Person events table
CREATE TABLE IF NOT EXISTS person_events (
    id TEXT PRIMARY KEY,
    person_id TEXT NOT NULL,
    event_type TEXT NOT NULL,
    event_date TEXT,
    event_location TEXT,
    description TEXT,
    created_at TEXT NOT NULL,
    FOREIGN KEY (person_id) REFERENCES persons(id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_person_events_person ON person_events(person_id);
"""

PERSON_COLUMNS = frozenset({
    "first_name", "middle_name", "last_name", "maiden_name", "gender",
    "birth_date", "birth_location", "death_date", "death_location", "notes",
})
RELATIONSHIP_COLUMNS = frozenset({
    "person1_id", "person2_id", "relationship_type", "relationship_qualifier",
    "start_date", "end_date", "notes",
})
DATE_FIELDS = frozenset({"start_date", "end_date"})


# =============================================================================
# Serialization Helpers
# =============================================================================


def _serialize(value: Any) -> Any:
    """Convert a model value into something sqlite3 can bind."""
    if value is None:
        return None
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return value


def _date(s: str | None) -> date | None:
    return date.fromisoformat(s) if s else None


def _datetime(s: str | None) -> datetime:
    return datetime.fromisoformat(s) if s else datetime.now(UTC)


def _row_to_person(row: sqlite3.Row) -> Person:
    return Person(
        id=UUID(row["id"]),
        first_name=row["first_name"],
        middle_name=row["middle_name"],
        last_name=row["last_name"],
        maiden_name=row["maiden_name"],
        gender=row["gender"],
        birth_date=_date(row["birth_date"]),
        birth_location=row["birth_location"],
        death_date=_date(row["death_date"]),
        death_location=row["death_location"],
        notes=row["notes"],
        created_at=_datetime(row["created_at"]),
        updated_at=_datetime(row["updated_at"]),
    )


def _row_to_relationship(row: sqlite3.Row) -> Relationship:
    return Relationship(
        id=UUID(row["id"]),
        person1_id=UUID(row["person1_id"]),
        person2_id=UUID(row["person2_id"]),
        relationship_type=row["relationship_type"],
        relationship_qualifier=row["relationship_qualifier"],
        start_date=_date(row["start_date"]),
        end_date=_date(row["end_date"]),
        notes=row["notes"],
        created_at=_datetime(row["created_at"]),
        updated_at=_datetime(row["updated_at"]),
    )


def _row_to_event(row: sqlite3.Row) -> PersonEvent:
    return PersonEvent(
        id=UUID(row["id"]),
        person_id=UUID(row["person_id"]),
        event_type=row["event_type"],
        event_date=_date(row["event_date"]),
        event_location=row["event_location"],
        description=row["description"],
        created_at=_datetime(row["created_at"]),
    )


# =============================================================================
# Storage Class
# =============================================================================


class SQLiteStorage(TransactionalStorage):
    """SQLite-backed transactional storage.

    Example:
        >>> storage = SQLiteStorage("data/casework.db")
        >>> storage.execute_transaction(lambda tx: storage.persons.create(person, tx))
    """

    def __init__(self, db_path: Path | str = ":memory:"):
        """Initialize storage.

        Args:
            db_path: Path to SQLite database file, or ":memory:" for in-memory
        """
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._connection: sqlite3.Connection | None = None

        self.persons = SQLitePersonRepository(self)
        self.relationships = SQLiteRelationshipRepository(self)
        self.events = SQLiteEventRepository(self)

        self._initialize_schema()

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._connection is None:
            try:
                self._connection = sqlite3.connect(self.db_path, isolation_level=None)
            except sqlite3.Error as exc:
                raise StorageFailure("connect", str(exc)) from exc
            self._connection.row_factory = sqlite3.Row
            self._connection.execute("PRAGMA foreign_keys = ON")
        return self._connection

    @contextmanager
    def transaction(self, mode: str = "IMMEDIATE") -> Generator[sqlite3.Cursor, None, None]:
        """Context manager for a transaction, write-locked up front unless ``mode`` is ``DEFERRED``."""
        conn = self._get_connection()
        cursor = conn.cursor()
        try:
            cursor.execute(f"BEGIN {mode}")
        except sqlite3.Error as exc:
            cursor.close()
            raise StorageFailure("begin", str(exc)) from exc

        try:
            yield cursor
            conn.execute("COMMIT")
        except sqlite3.Error as exc:
            self._rollback(conn)
            raise StorageFailure("transaction", str(exc)) from exc
        except Exception:
            self._rollback(conn)
            raise
        finally:
            cursor.close()

    @staticmethod
    def _rollback(conn: sqlite3.Connection) -> None:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
            logger.debug("storage.rollback")

    @contextmanager
    def cursor(self, tx: sqlite3.Cursor | None = None) -> Generator[sqlite3.Cursor, None, None]:
        """Yield ``tx`` when given, otherwise a cursor of its own.

        Calls made while a transaction is already open on this connection
        join it instead of failing on a nested ``BEGIN``. Otherwise the call
        runs in a deferred transaction, so reads take no write lock.
        """
        if tx is not None:
            yield tx
            return

        conn = self._get_connection()
        if conn.in_transaction:
            cursor = conn.cursor()
            try:
                yield cursor
            except sqlite3.Error as exc:
                raise StorageFailure("query", str(exc)) from exc
            finally:
                cursor.close()
            return

        with self.transaction("DEFERRED") as cursor:
            yield cursor

    def execute_transaction(self, fn: Callable[[sqlite3.Cursor], T]) -> T:
        with self.transaction() as tx:
            return fn(tx)

    def _initialize_schema(self) -> None:
        """Initialize database schema."""
        conn = self._get_connection()
        try:
            conn.executescript(SCHEMA_SQL)
        except sqlite3.Error as exc:
            raise StorageFailure("initialize_schema", str(exc)) from exc

        with self.transaction() as cursor:
            cursor.execute("SELECT version FROM schema_version ORDER BY version DESC LIMIT 1")
            row = cursor.fetchone()
            if row is None:
                cursor.execute(
                    "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                    (SCHEMA_VERSION, datetime.now(UTC).isoformat()),
                )

    def schema_version(self) -> int:
        with self.cursor() as cur:
            cur.execute("SELECT MAX(version) AS version FROM schema_version")
            row = cur.fetchone()
            return int(row["version"] or 0)

    def close(self) -> None:
        """Close database connection."""
        if self._connection:
            self._connection.close()
            self._connection = None


# =============================================================================
# Person Repository
# =============================================================================


class SQLitePersonRepository(PersonRepository):
    def __init__(self, storage: SQLiteStorage) -> None:
        self._storage = storage

    def create(self, person: Person, tx: sqlite3.Cursor | None = None) -> Person:
        with self._storage.cursor(tx) as cur:
            cur.execute(
                """
                INSERT INTO persons (
                    id, first_name, middle_name, last_name, maiden_name, gender,
                    birth_date, birth_location, death_date, death_location, notes,
                    created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(person.id),
                    person.first_name,
                    person.middle_name,
                    person.last_name,
                    person.maiden_name,
                    _serialize(person.gender),
                    _serialize(person.birth_date),
                    person.birth_location,
                    _serialize(person.death_date),
                    person.death_location,
                    person.notes,
                    _serialize(person.created_at),
                    _serialize(person.updated_at),
                ),
            )
        return person

    def update(self, person_id: UUID, changes: dict[str, Any], tx: sqlite3.Cursor | None = None) -> Person | None:
        columns = {k: v for k, v in changes.items() if k in PERSON_COLUMNS}
        columns["updated_at"] = datetime.now(UTC)
        assignments = ", ".join(f"{name} = ?" for name in columns)
        with self._storage.cursor(tx) as cur:
            cur.execute(
                f"UPDATE persons SET {assignments} WHERE id = ?",
                (*(_serialize(v) for v in columns.values()), str(person_id)),
            )
            if cur.rowcount == 0:
                return None
            return self.find_by_id(person_id, cur)

    def delete(self, person_id: UUID, tx: sqlite3.Cursor | None = None) -> bool:
        with self._storage.cursor(tx) as cur:
            cur.execute("DELETE FROM persons WHERE id = ?", (str(person_id),))
            return cur.rowcount > 0

    def find_by_id(self, person_id: UUID, tx: sqlite3.Cursor | None = None) -> Person | None:
        with self._storage.cursor(tx) as cur:
            cur.execute("SELECT * FROM persons WHERE id = ?", (str(person_id),))
            row = cur.fetchone()
            return _row_to_person(row) if row else None

    def find_by_name(self, term: str, limit: int = 50, tx: sqlite3.Cursor | None = None) -> list[Person]:
        pattern = f"%{term.strip()}%"
        with self._storage.cursor(tx) as cur:
            cur.execute(
                """
                SELECT * FROM persons
                WHERE first_name LIKE ? OR last_name LIKE ? OR maiden_name LIKE ?
                    OR (first_name || ' ' || last_name) LIKE ?
                ORDER BY last_name, first_name, rowid
                LIMIT ?
                """,
                (pattern, pattern, pattern, pattern, limit),
            )
            return [_row_to_person(r) for r in cur.fetchall()]

    def list_persons(self, limit: int = 100, offset: int = 0, tx: sqlite3.Cursor | None = None) -> list[Person]:
        with self._storage.cursor(tx) as cur:
            cur.execute("SELECT * FROM persons ORDER BY rowid LIMIT ? OFFSET ?", (limit, offset))
            return [_row_to_person(r) for r in cur.fetchall()]


# =============================================================================
# Relationship Repository
# =============================================================================


class SQLiteRelationshipRepository(RelationshipRepository):
    def __init__(self, storage: SQLiteStorage) -> None:
        self._storage = storage

    def _select(self, where: str = "", params: tuple[Any, ...] = (), tx: sqlite3.Cursor | None = None) -> list[Relationship]:
        sql = "SELECT * FROM relationships"
        if where:
            sql += f" WHERE {where}"
        sql += " ORDER BY rowid"
        with self._storage.cursor(tx) as cur:
            cur.execute(sql, params)
            return [_row_to_relationship(r) for r in cur.fetchall()]

    def create(self, relationship: Relationship, tx: sqlite3.Cursor | None = None) -> Relationship:
        with self._storage.cursor(tx) as cur:
            cur.execute(
                """
                INSERT INTO relationships (
                    id, person1_id, person2_id, relationship_type, relationship_qualifier,
                    start_date, end_date, notes, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(relationship.id),
                    str(relationship.person1_id),
                    str(relationship.person2_id),
                    relationship.relationship_type.value,
                    _serialize(relationship.relationship_qualifier),
                    _serialize(relationship.start_date),
                    _serialize(relationship.end_date),
                    relationship.notes,
                    _serialize(relationship.created_at),
                    _serialize(relationship.updated_at),
                ),
            )
        return relationship

    def update(
        self, relationship_id: UUID, changes: dict[str, Any], tx: sqlite3.Cursor | None = None
    ) -> Relationship | None:
        columns = {k: v for k, v in changes.items() if k in RELATIONSHIP_COLUMNS}
        columns["updated_at"] = datetime.now(UTC)
        assignments = ", ".join(f"{name} = ?" for name in columns)
        with self._storage.cursor(tx) as cur:
            cur.execute(
                f"UPDATE relationships SET {assignments} WHERE id = ?",
                (*(_serialize(v) for v in columns.values()), str(relationship_id)),
            )
            if cur.rowcount == 0:
                return None
            return self.find_by_id(relationship_id, cur)

    def delete(self, relationship_id: UUID, tx: sqlite3.Cursor | None = None) -> bool:
        with self._storage.cursor(tx) as cur:
            cur.execute("DELETE FROM relationships WHERE id = ?", (str(relationship_id),))
            return cur.rowcount > 0

    def find_by_id(self, relationship_id: UUID, tx: sqlite3.Cursor | None = None) -> Relationship | None:
        found = self._select("id = ?", (str(relationship_id),), tx)
        return found[0] if found else None

    def find_one(self, tx: sqlite3.Cursor | None = None, **filters: Any) -> Relationship | None:
        unknown = set(filters) - RELATIONSHIP_COLUMNS - {"id"}
        if unknown:
            raise ValueError(f"Unknown relationship filter(s): {', '.join(sorted(unknown))}")
        where = " AND ".join(
            f"{name} IS NULL" if value is None else f"{name} = ?" for name, value in filters.items()
        )
        params = tuple(_serialize(v) for v in filters.values() if v is not None)
        found = self._select(where, params, tx)
        return found[0] if found else None

    def find_all(self, types: list[RelationshipType] | None = None, tx: sqlite3.Cursor | None = None) -> list[Relationship]:
        if not types:
            return self._select(tx=tx)
        placeholders = ", ".join("?" for _ in types)
        return self._select(f"relationship_type IN ({placeholders})", tuple(t.value for t in types), tx)

    def find_between_persons(
        self, person1_id: UUID, person2_id: UUID, tx: sqlite3.Cursor | None = None
    ) -> list[Relationship]:
        a, b = str(person1_id), str(person2_id)
        return self._select(
            "(person1_id = ? AND person2_id = ?) OR (person1_id = ? AND person2_id = ?)", (a, b, b, a), tx
        )

    def find_by_person(self, person_id: UUID, tx: sqlite3.Cursor | None = None) -> list[Relationship]:
        pid = str(person_id)
        return self._select("person1_id = ? OR person2_id = ?", (pid, pid), tx)

    def find_by_type(self, relationship_type: RelationshipType, tx: sqlite3.Cursor | None = None) -> list[Relationship]:
        return self._select("relationship_type = ?", (relationship_type.value,), tx)

    def find_by_qualifier(
        self, qualifier: RelationshipQualifier, tx: sqlite3.Cursor | None = None
    ) -> list[Relationship]:
        return self._select("relationship_qualifier = ?", (qualifier.value,), tx)

    def find_by_date_range(
        self, start: date, end: date, date_field: str = "start_date", tx: sqlite3.Cursor | None = None
    ) -> list[Relationship]:
        if date_field not in DATE_FIELDS:
            raise ValueError(f"date_field must be one of {sorted(DATE_FIELDS)}")
        return self._select(f"{date_field} BETWEEN ? AND ?", (start.isoformat(), end.isoformat()), tx)

    def find_active(self, today: date, tx: sqlite3.Cursor | None = None) -> list[Relationship]:
        return self._select("end_date IS NULL OR end_date > ?", (today.isoformat(),), tx)

    def find_ended(self, today: date, tx: sqlite3.Cursor | None = None) -> list[Relationship]:
        return self._select("end_date IS NOT NULL AND end_date <= ?", (today.isoformat(),), tx)

    def find_relationships(self, query: RelationshipQuery, tx: sqlite3.Cursor | None = None) -> RelationshipPage:
        clauses: list[str] = []
        params: list[Any] = []

        if query.relationship_type:
            clauses.append("r.relationship_type = ?")
            params.append(query.relationship_type.value)
        if query.relationship_qualifier:
            clauses.append("r.relationship_qualifier = ?")
            params.append(query.relationship_qualifier.value)
        if query.person_id:
            clauses.append("(r.person1_id = ? OR r.person2_id = ?)")
            params.extend([str(query.person_id)] * 2)
        for column, op, value in (
            ("start_date", ">=", query.start_date_from),
            ("start_date", "<=", query.start_date_to),
            ("end_date", ">=", query.end_date_from),
            ("end_date", "<=", query.end_date_to),
        ):
            if value is not None:
                clauses.append(f"r.{column} {op} ?")
                params.append(value.isoformat())
        if query.search and query.search.strip():
            pattern = f"%{query.search.strip()}%"
            clauses.append(
                "(r.notes LIKE ? OR p1.first_name LIKE ? OR p1.last_name LIKE ?"
                " OR p2.first_name LIKE ? OR p2.last_name LIKE ?)"
            )
            params.extend([pattern] * 5)

        joins = (
            " FROM relationships r"
            " LEFT JOIN persons p1 ON p1.id = r.person1_id"
            " LEFT JOIN persons p2 ON p2.id = r.person2_id"
        )
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        direction = "ASC" if query.sort_order == "asc" else "DESC"

        with self._storage.cursor(tx) as cur:
            cur.execute(f"SELECT COUNT(*) AS total{joins}{where}", params)
            total = int(cur.fetchone()["total"])
            cur.execute(
                f"SELECT r.*{joins}{where} ORDER BY r.{query.sort_by} {direction}, r.rowid {direction} LIMIT ? OFFSET ?",
                (*params, query.page_size, query.offset),
            )
            rows = [_row_to_relationship(r) for r in cur.fetchall()]

        return RelationshipPage(
            relationships=rows,
            total_count=total,
            total_pages=math.ceil(total / query.page_size) if total else 0,
            current_page=query.page,
            page_size=query.page_size,
        )


# =============================================================================
# Event Repository
# =============================================================================


class SQLiteEventRepository(EventRepository):
    def __init__(self, storage: SQLiteStorage) -> None:
        self._storage = storage

    def create(self, event: PersonEvent, tx: sqlite3.Cursor | None = None) -> PersonEvent:
        with self._storage.cursor(tx) as cur:
            cur.execute(
                """
                INSERT INTO person_events (
                    id, person_id, event_type, event_date, event_location, description, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(event.id),
                    str(event.person_id),
                    event.event_type.value,
                    _serialize(event.event_date),
                    event.event_location,
                    event.description,
                    _serialize(event.created_at),
                ),
            )
        return event

    def find_by_person(self, person_id: UUID, tx: sqlite3.Cursor | None = None) -> list[PersonEvent]:
        with self._storage.cursor(tx) as cur:
            cur.execute(
                "SELECT * FROM person_events WHERE person_id = ? ORDER BY event_date IS NULL, event_date, rowid",
                (str(person_id),),
            )
            return [_row_to_event(r) for r in cur.fetchall()]
