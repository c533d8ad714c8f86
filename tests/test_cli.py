from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from genealogy_casework.cli import app


@pytest.fixture
def db(tmp_path: Path) -> Path:
    return tmp_path / "casework.db"


def run(runner: CliRunner, db: Path, *args: str):
    return runner.invoke(app, [*args, "--db", str(db)], env={"CASEWORK_LOG_LEVEL": "ERROR", "COLUMNS": "200"})


def add_person(runner: CliRunner, db: Path, first: str, last: str, *extra: str) -> str:
    result = run(runner, db, "add-person", first, last, *extra)
    assert result.exit_code == 0, result.output
    return result.output.split()[-1]


def test_cli_init_db(db: Path) -> None:
    runner = CliRunner()
    result = run(runner, db, "init-db")
    assert result.exit_code == 0
    assert "schema v1" in result.output
    assert db.exists()


def test_cli_link_and_query(db: Path) -> None:
    runner = CliRunner()
    alice = add_person(runner, db, "Alice", "Smith", "--birth", "1920-01-01", "--death", "1990-01-01")
    bob = add_person(runner, db, "Bob", "Smith", "--birth", "1950-01-01")
    carol = add_person(runner, db, "Carol", "Smith", "--birth", "1980-01-01")

    result = run(runner, db, "link", alice, bob, "--qualifier", "biological")
    assert result.exit_code == 0, result.output
    assert "Created parent relationship" in result.output

    result = run(runner, db, "link", bob, carol)
    assert result.exit_code == 0, result.output

    # Inverse parent edge is a duplicate
    result = run(runner, db, "link", bob, alice)
    assert result.exit_code == 1
    assert "Error (duplicate_relationship)" in result.output

    result = run(runner, db, "path", alice, carol)
    assert result.exit_code == 0
    assert "Path (2 steps)" in result.output

    result = run(runner, db, "path", alice, carol, "--max-depth", "1")
    assert "No relationship path found" in result.output

    result = run(runner, db, "ancestors", carol, "-n", "2")
    assert result.exit_code == 0
    assert "Alice Smith" in result.output

    result = run(runner, db, "kinship", carol, alice)
    assert result.exit_code == 0
    assert "Alice Smith is Carol Smith's grandparent" in result.output

    result = run(runner, db, "show-person", bob)
    assert result.exit_code == 0
    assert "Alice Smith" in result.output
    assert "Carol Smith" in result.output


def test_cli_rejects_derived_type(db: Path) -> None:
    runner = CliRunner()
    a = add_person(runner, db, "Ann", "Lee")
    b = add_person(runner, db, "Ben", "Lee")

    result = run(runner, db, "link", a, b, "--type", "sibling")
    assert result.exit_code == 1
    assert "Error (policy_violation)" in result.output


def test_cli_rejects_impossible_marriage(db: Path) -> None:
    runner = CliRunner()
    x = add_person(runner, db, "Xavier", "Roe", "--birth", "1950-01-01", "--death", "2000-01-01")
    y = add_person(runner, db, "Yvonne", "Roe", "--birth", "1960-01-01")

    result = run(runner, db, "link", x, y, "--type", "spouse", "--start", "2005-06-01")
    assert result.exit_code == 1
    assert "Error (validation_failure)" in result.output

    result = run(runner, db, "link", x, y, "--type", "spouse", "--start", "1985-06-01")
    assert result.exit_code == 0, result.output


def test_cli_update_and_unlink(db: Path) -> None:
    runner = CliRunner()
    a = add_person(runner, db, "Ann", "Lee", "--birth", "1950-01-01")
    b = add_person(runner, db, "Ben", "Lee", "--birth", "1980-01-01")

    result = run(runner, db, "link", a, b)
    edge = result.output.split()[-1]

    result = run(runner, db, "update-link", edge, "--qualifier", "adoptive")
    assert result.exit_code == 0, result.output
    assert "Updated relationship" in result.output

    result = run(runner, db, "relationships", "--person", a)
    assert result.exit_code == 0
    assert "adoptive" in result.output
    assert "2 total" in result.output

    result = run(runner, db, "unlink", edge)
    assert result.exit_code == 0
    assert "Deleted relationship" in result.output

    result = run(runner, db, "relationships")
    assert "0 total" in result.output


def test_cli_bad_input(db: Path) -> None:
    runner = CliRunner()
    result = run(runner, db, "add-person", "Odd", "Date", "--birth", "not-a-date")
    assert result.exit_code == 1
    assert "Invalid input" in result.output

    result = run(runner, db, "update-link", "00000000-0000-0000-0000-000000000001")
    assert result.exit_code == 1
    assert "Nothing to update" in result.output
