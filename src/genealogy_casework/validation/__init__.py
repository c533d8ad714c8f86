"""Chronology and plausibility validators."""
from genealogy_casework.validation.chronology import (
    validate_event_against_person,
    validate_historical_consistency,
    validate_person_dates,
    validate_person_events,
    validate_relationship_dates,
)
from genealogy_casework.validation.result import ValidationResult, enforce
from genealogy_casework.validation.rules import (
    validate_age,
    validate_marriage,
    validate_parent_child_age_difference,
    validate_relationship,
    validate_sibling_relationships,
)

__all__ = [
    "ValidationResult",
    "enforce",
    "validate_age",
    "validate_event_against_person",
    "validate_historical_consistency",
    "validate_marriage",
    "validate_parent_child_age_difference",
    "validate_person_dates",
    "validate_person_events",
    "validate_relationship",
    "validate_relationship_dates",
    "validate_sibling_relationships",
]
