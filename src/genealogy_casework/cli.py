"""CLI interface for Genealogy Casework."""

from contextlib import contextmanager
from pathlib import Path
from typing import Optional
from uuid import UUID

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from .exceptions import CaseworkError

app = typer.Typer(
    name="casework",
    help="Genealogy casework relationship graph",
    add_completion=False,
)
console = Console()


def get_config():
    """Load configuration from environment."""
    from dotenv import load_dotenv

    from .config import default_db_path
    from .logging import level_from_env

    load_dotenv()

    return {
        "db_path": default_db_path(),
        "log_level": level_from_env(),
    }


def get_services(db: Optional[Path] = None):
    """Open storage and build both services."""
    from .logging import configure_logging
    from .services import PersonService, RelationshipService
    from .storage import SQLiteStorage

    config = get_config()
    configure_logging(config["log_level"])
    storage = SQLiteStorage(db or config["db_path"])
    return storage, PersonService(storage), RelationshipService(storage)


@contextmanager
def handle_errors():
    """Turn domain and input errors into a red message and exit code 1."""
    try:
        yield
    except CaseworkError as exc:
        console.print(f"[red]Error ({exc.kind}): {exc}[/red]")
        raise typer.Exit(1)
    except ValidationError as exc:
        problems = "; ".join(f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in exc.errors())
        console.print(f"[red]Invalid input: {problems}[/red]")
        raise typer.Exit(1)
    except ValueError as exc:
        console.print(f"[red]Invalid input: {exc}[/red]")
        raise typer.Exit(1)


DbOption = typer.Option(None, "--db", help="SQLite database path (defaults to CASEWORK_DB_PATH)")


@app.command("init-db")
def init_db(db: Optional[Path] = DbOption):
    """Create the database schema."""
    storage, _, _ = get_services(db)
    version = storage.schema_version()
    storage.close()
    console.print(f"[green]Database ready at {storage.db_path} (schema v{version})[/green]")


@app.command("add-person")
def add_person(
    first_name: str = typer.Argument(..., help="Given name"),
    last_name: str = typer.Argument(..., help="Surname"),
    gender: str = typer.Option(None, "--gender", "-g", help="male, female, other or unknown"),
    birth: str = typer.Option(None, "--birth", "-b", help="Birth date (YYYY-MM-DD)"),
    death: str = typer.Option(None, "--death", "-d", help="Death date (YYYY-MM-DD)"),
    birth_location: str = typer.Option(None, "--birth-location", help="Place of birth"),
    db: Optional[Path] = DbOption,
):
    """Add a person to the database."""
    storage, persons, _ = get_services(db)
    with handle_errors():
        person = persons.create_person(
            {
                "first_name": first_name,
                "last_name": last_name,
                "gender": gender,
                "birth_date": birth,
                "death_date": death,
                "birth_location": birth_location,
            }
        )
    storage.close()
    console.print(f"[green]Added {person.full_name}[/green] {person.id}")


@app.command("show-person")
def show_person(
    person_id: UUID = typer.Argument(..., help="Person ID"),
    db: Optional[Path] = DbOption,
):
    """Show a person with their immediate family."""
    storage, persons, _ = get_services(db)
    with handle_errors():
        family = persons.get_family_members(person_id)
    storage.close()

    person = family.person
    lines = [
        f"[bold]{person.full_name}[/bold]",
        f"Born: {person.birth_date or '?'} {person.birth_location or ''}".rstrip(),
        f"Died: {person.death_date or '-'} {person.death_location or ''}".rstrip(),
    ]
    console.print(Panel("\n".join(lines), title=str(person.id)))

    table = Table(title="Family")
    table.add_column("Relation")
    table.add_column("Name")
    table.add_column("ID", style="dim")
    for label, members in (
        ("parent", family.parents),
        ("spouse", family.spouses),
        ("sibling", family.siblings),
        ("child", family.children),
    ):
        for member in members:
            table.add_row(label, member.full_name, str(member.id))
    console.print(table)


@app.command("link")
def link(
    person1_id: UUID = typer.Argument(..., help="Parent (or first spouse)"),
    person2_id: UUID = typer.Argument(..., help="Child (or second spouse)"),
    relationship_type: str = typer.Option("parent", "--type", "-t", help="parent or spouse"),
    qualifier: str = typer.Option(None, "--qualifier", "-q", help="biological, adoptive, step, foster, in-law"),
    start: str = typer.Option(None, "--start", help="Start date, e.g. marriage (YYYY-MM-DD)"),
    end: str = typer.Option(None, "--end", help="End date, e.g. divorce (YYYY-MM-DD)"),
    notes: str = typer.Option(None, "--notes", help="Free-form notes"),
    db: Optional[Path] = DbOption,
):
    """Create a parent or spouse relationship."""
    storage, _, relationships = get_services(db)
    with handle_errors():
        edge = relationships.create_relationship(
            {
                "person1_id": person1_id,
                "person2_id": person2_id,
                "relationship_type": relationship_type.lower(),
                "relationship_qualifier": qualifier,
                "start_date": start,
                "end_date": end,
                "notes": notes,
            }
        )
    storage.close()
    console.print(f"[green]Created {edge.relationship_type.value} relationship[/green] {edge.id}")


@app.command("update-link")
def update_link(
    relationship_id: UUID = typer.Argument(..., help="Relationship ID"),
    relationship_type: str = typer.Option(None, "--type", "-t", help="parent or spouse"),
    qualifier: str = typer.Option(None, "--qualifier", "-q", help="New qualifier"),
    start: str = typer.Option(None, "--start", help="New start date"),
    end: str = typer.Option(None, "--end", help="New end date"),
    notes: str = typer.Option(None, "--notes", help="New notes"),
    db: Optional[Path] = DbOption,
):
    """Update a relationship; only the given options change."""
    fields = {
        "relationship_type": relationship_type.lower() if relationship_type else None,
        "relationship_qualifier": qualifier,
        "start_date": start,
        "end_date": end,
        "notes": notes,
    }
    changes = {k: v for k, v in fields.items() if v is not None}
    if not changes:
        console.print("[yellow]Nothing to update[/yellow]")
        raise typer.Exit(1)

    storage, _, relationships = get_services(db)
    with handle_errors():
        edge = relationships.update_relationship(relationship_id, changes)
    storage.close()
    console.print(f"[green]Updated relationship[/green] {edge.id}")


@app.command("unlink")
def unlink(
    relationship_id: UUID = typer.Argument(..., help="Relationship ID"),
    db: Optional[Path] = DbOption,
):
    """Delete a relationship (and its mirrored edge)."""
    storage, _, relationships = get_services(db)
    with handle_errors():
        relationships.delete_relationship(relationship_id)
    storage.close()
    console.print(f"[green]Deleted relationship[/green] {relationship_id}")


@app.command("relationships")
def list_relationships(
    person_id: UUID = typer.Option(None, "--person", "-p", help="Only edges touching this person"),
    relationship_type: str = typer.Option(None, "--type", "-t", help="Filter by type"),
    search: str = typer.Option(None, "--search", "-s", help="Match notes or person names"),
    page: int = typer.Option(1, "--page", help="Page number"),
    page_size: int = typer.Option(20, "--page-size", help="Rows per page"),
    db: Optional[Path] = DbOption,
):
    """List relationships."""
    storage, _, relationships = get_services(db)
    with handle_errors():
        result = relationships.list_relationships(
            {
                "person_id": person_id,
                "relationship_type": relationship_type,
                "search": search,
                "page": page,
                "page_size": page_size,
            }
        )

        table = Table(title="Relationships")
        table.add_column("ID", style="dim")
        table.add_column("Person 1")
        table.add_column("Type")
        table.add_column("Person 2")
        table.add_column("Qualifier")
        table.add_column("Start")
        table.add_column("End")

        names = {}
        for edge in result.relationships:
            for pid in (edge.person1_id, edge.person2_id):
                if pid not in names:
                    person = storage.persons.find_by_id(pid)
                    names[pid] = person.full_name if person else str(pid)
            table.add_row(
                str(edge.id)[:8] + "...",
                names[edge.person1_id],
                edge.relationship_type.value,
                names[edge.person2_id],
                edge.relationship_qualifier.value if edge.relationship_qualifier else "",
                str(edge.start_date or ""),
                str(edge.end_date or ""),
            )
    storage.close()

    console.print(table)
    console.print(
        f"[dim]Page {result.current_page} of {max(result.total_pages, 1)}, {result.total_count} total[/dim]"
    )


@app.command("path")
def path(
    person1_id: UUID = typer.Argument(..., help="From person"),
    person2_id: UUID = typer.Argument(..., help="To person"),
    max_depth: int = typer.Option(None, "--max-depth", help="Maximum edges (default CASEWORK_MAX_PATH_DEPTH)"),
    db: Optional[Path] = DbOption,
):
    """Show the shortest relationship path between two people."""
    storage, persons, relationships = get_services(db)
    with handle_errors():
        edges = relationships.find_relationship_path(person1_id, person2_id, max_depth)
        steps = []
        current = person1_id
        for edge in edges:
            nxt = edge.other_person(current)
            a, b = persons.get_person(current), persons.get_person(nxt)
            steps.append((a.full_name, edge.relationship_type.value, b.full_name))
            current = nxt
    storage.close()

    if not edges:
        console.print("[yellow]No relationship path found[/yellow]")
        return

    table = Table(title=f"Path ({len(edges)} steps)")
    table.add_column("From")
    table.add_column("Edge")
    table.add_column("To")
    for row in steps:
        table.add_row(*row)
    console.print(table)


def _render_tree(node, branch: Tree, key: str):
    for relative in getattr(node, key) or []:
        label = f"{relative.name} [dim]({relative.birth_date or '?'} - {relative.death_date or ''})[/dim]"
        _render_tree(relative, branch.add(label), key)


@app.command("ancestors")
def ancestors(
    person_id: UUID = typer.Argument(..., help="Root person"),
    generations: int = typer.Option(3, "--generations", "-n", help="Generations to walk up"),
    db: Optional[Path] = DbOption,
):
    """Print an ancestor tree."""
    storage, _, relationships = get_services(db)
    with handle_errors():
        root = relationships.get_ancestors(person_id, generations)
    storage.close()

    tree = Tree(f"[bold]{root.name}[/bold]")
    _render_tree(root, tree, "parents")
    console.print(tree)


@app.command("descendants")
def descendants(
    person_id: UUID = typer.Argument(..., help="Root person"),
    generations: int = typer.Option(3, "--generations", "-n", help="Generations to walk down"),
    db: Optional[Path] = DbOption,
):
    """Print a descendant tree."""
    storage, _, relationships = get_services(db)
    with handle_errors():
        root = relationships.get_descendants(person_id, generations)
    storage.close()

    tree = Tree(f"[bold]{root.name}[/bold]")
    _render_tree(root, tree, "children")
    console.print(tree)


@app.command("kinship")
def kinship(
    person1_id: UUID = typer.Argument(..., help="Person A"),
    person2_id: UUID = typer.Argument(..., help="Person B"),
    db: Optional[Path] = DbOption,
):
    """Explain how person B is related to person A."""
    storage, persons, relationships = get_services(db)
    with handle_errors():
        derived = relationships.get_derived_relationship(person1_id, person2_id)
        a, b = persons.get_person(person1_id), persons.get_person(person2_id)
    storage.close()

    if derived is None:
        console.print(f"[yellow]No blood or marriage relationship found between {a.full_name} and {b.full_name}[/yellow]")
        return

    console.print(f"{b.full_name} is {a.full_name}'s [bold]{derived.label}[/bold]")


if __name__ == "__main__":
    app()
