"""Genealogy Casework - relationship core for genealogy research case management.

Maintains the kinship graph behind research projects: parent and spouse
edges with automatically mirrored child edges, cycle detection, genealogical
plausibility rules and pedigree / shortest-path queries.
"""

__version__ = "0.1.0"


# Lazy imports to keep the CLI startup light
def __getattr__(name: str):
    if name == "RelationshipService":
        from genealogy_casework.services.relationships import RelationshipService
        return RelationshipService
    if name == "PersonService":
        from genealogy_casework.services.persons import PersonService
        return PersonService
    if name == "SQLiteStorage":
        from genealogy_casework.storage.sqlite import SQLiteStorage
        return SQLiteStorage
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
