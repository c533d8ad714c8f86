"""Services orchestrating validation, graph checks and storage."""
from genealogy_casework.services.persons import PersonService
from genealogy_casework.services.relationships import RelationshipService

__all__ = ["PersonService", "RelationshipService"]
