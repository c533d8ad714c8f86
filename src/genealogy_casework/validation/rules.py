"""Genealogical plausibility rules.

These flag data that is possible but unlikely (a 13-year-old parent, a
125-year lifespan). Every rule returns a ``ValidationResult`` whose reasons
are warnings; the relationship and person services decide per call site
whether a warning blocks the write.
"""
from __future__ import annotations

from datetime import date
from typing import Sequence

from genealogy_casework.config import RULES, RulesConfig
from genealogy_casework.models import Person, Relationship, RelationshipCreate, RelationshipType
from genealogy_casework.validation.chronology import years_between
from genealogy_casework.validation.result import ValidationResult

RelationshipLike = Relationship | RelationshipCreate


def validate_age(person: Person, today: date | None = None, rules: RulesConfig = RULES) -> ValidationResult:
    today = today or date.today()
    birth, death = person.birth_date, person.death_date
    reasons: list[str] = []

    if birth and birth > today:
        reasons.append("Birth date is in the future")
    if death and death > today:
        reasons.append("Death date is in the future")
    if birth and death and death < birth:
        reasons.append("Death date is before birth date")

    if birth and death:
        age = years_between(birth, death)
        if age > rules.max_lifespan:
            reasons.append(
                f"Age at death ({round(age)} years) exceeds {rules.max_lifespan} years. Please verify dates."
            )
    elif birth:
        age = years_between(birth, today)
        if age > rules.max_living_age:
            reasons.append(
                f"Current age ({round(age)} years) exceeds {rules.max_living_age} years. "
                "Please verify birth date or add death date if applicable."
            )

    return ValidationResult.from_reasons(reasons)


def validate_parent_child_age_difference(
    parent: Person, child: Person, rules: RulesConfig = RULES
) -> ValidationResult:
    """Check the parent's age when the child was born.

    Missing birth dates are not an error. Gaps inside the verify band
    (``min_parent_age``..``parent_age_verify_low`` and
    ``parent_age_verify_high``..``max_parent_age``) are flagged for review.
    """
    if not (parent.birth_date and child.birth_date):
        return ValidationResult.ok()
    if parent.birth_date >= child.birth_date:
        return ValidationResult.invalid("Parent must be born before child")

    gap = years_between(parent.birth_date, child.birth_date)
    shown = round(gap)
    reasons: list[str] = []

    if gap < rules.min_parent_age:
        reasons.append(
            f"Parent-child age difference ({shown} years) is unusually small. "
            f"Parent would have been under {rules.min_parent_age} years old."
        )
    elif gap < rules.parent_age_verify_low:
        reasons.append(f"Parent-child age difference ({shown} years) is unusually small. Please verify dates.")

    if gap > rules.max_parent_age:
        reasons.append(
            f"Parent-child age difference ({shown} years) is unusually large. "
            f"Parent would have been over {rules.max_parent_age} years old."
        )
    elif gap > rules.parent_age_verify_high:
        reasons.append(f"Parent-child age difference ({shown} years) is unusually large. Please verify dates.")

    return ValidationResult.from_reasons(reasons)


def validate_sibling_relationships(siblings: Sequence[Person], rules: RulesConfig = RULES) -> ValidationResult:
    if len(siblings) < 2:
        return ValidationResult.invalid("At least two siblings are required")

    reasons: list[str] = []
    dated = sorted((s for s in siblings if s.birth_date), key=lambda s: s.birth_date)

    for older, younger in zip(dated, dated[1:]):
        days = (younger.birth_date - older.birth_date).days
        if 0 < days < rules.min_sibling_spacing_days:
            reasons.append(
                f"Siblings {older.first_name} and {younger.first_name} were born less than 9 months apart "
                f"({days} days). Please verify dates."
            )
        if days > rules.max_sibling_spacing_days:
            reasons.append(
                f"Siblings {older.first_name} and {younger.first_name} have an unusually large age difference "
                f"({round(days / 365.25)} years). Please verify relationship."
            )

    for i, first in enumerate(siblings):
        for second in siblings[i + 1:]:
            if first.birth_date and first.birth_date == second.birth_date:
                reasons.append(
                    f"Siblings {first.first_name} and {second.first_name} were born on the same day. "
                    "They might be twins."
                )

    return ValidationResult.from_reasons(reasons)


def validate_marriage(
    person1: Person,
    person2: Person,
    relationship: RelationshipLike,
    today: date | None = None,
    rules: RulesConfig = RULES,
) -> ValidationResult:
    today = today or date.today()
    married, divorced = relationship.start_date, relationship.end_date
    reasons: list[str] = []

    if married:
        if married > today:
            reasons.append("Marriage date is in the future")
        for spouse in (person1, person2):
            if spouse.birth_date and married < spouse.birth_date:
                reasons.append(f"Marriage date is before {spouse.first_name}'s birth date")
        for spouse in (person1, person2):
            if spouse.death_date and married > spouse.death_date:
                reasons.append(f"Marriage date is after {spouse.first_name}'s death date")
        for spouse in (person1, person2):
            if spouse.birth_date:
                age = years_between(spouse.birth_date, married)
                if age < rules.min_marriage_age:
                    reasons.append(
                        f"{spouse.first_name}'s age at marriage ({round(age)} years) is unusually young"
                    )

    if divorced:
        if divorced > today:
            reasons.append("Divorce date is in the future")
        if married and divorced < married:
            reasons.append("Divorce date is before marriage date")
        for spouse in (person1, person2):
            if spouse.death_date and divorced > spouse.death_date:
                reasons.append(f"Divorce date is after {spouse.first_name}'s death date")

    return ValidationResult.from_reasons(reasons)


def validate_relationship(
    relationship: RelationshipLike, person1: Person, person2: Person, rules: RulesConfig = RULES
) -> ValidationResult:
    """Type-specific consistency check between the two endpoints.

    ``parent`` and ``child`` edges check birth order and the
    ``min_relationship_gap``/``max_parent_age`` window; ``spouse`` edges check
    the marriage date against both births; ``sibling`` edges check spread.
    """
    kind = relationship.relationship_type
    b1, b2 = person1.birth_date, person2.birth_date
    reasons: list[str] = []

    if kind in (RelationshipType.PARENT, RelationshipType.CHILD):
        if kind is RelationshipType.PARENT:
            older, younger, label = b1, b2, "Parent-child"
            order_error = "Parent must be born before child"
        else:
            older, younger, label = b2, b1, "Child-parent"
            order_error = "Child must be born after parent"
        if older and younger:
            if older >= younger:
                reasons.append(order_error)
            gap = years_between(older, younger)
            if gap < rules.min_relationship_gap:
                reasons.append(f"{label} age difference ({round(gap)} years) is unusually small")
            if gap > rules.max_parent_age:
                reasons.append(f"{label} age difference ({round(gap)} years) is unusually large")

    elif kind is RelationshipType.SPOUSE and relationship.start_date:
        married = relationship.start_date
        for ordinal, birth in (("first", b1), ("second", b2)):
            if birth and married < birth:
                reasons.append(f"Marriage date cannot be before {ordinal} person's birth date")
        for ordinal, birth in (("First", b1), ("Second", b2)):
            if birth:
                age = years_between(birth, married)
                if age < rules.min_marriage_age:
                    reasons.append(f"{ordinal} person's age at marriage ({round(age)} years) is unusually young")

    elif kind is RelationshipType.SIBLING and b1 and b2:
        spread = abs(years_between(b1, b2))
        if spread > rules.max_sibling_gap:
            reasons.append(f"Sibling age difference ({round(spread)} years) is unusually large")

    return ValidationResult.from_reasons(reasons)
