"""Chronology checks for persons, their events and relationship dates.

All functions are pure. ``today`` is injectable so callers (and tests) can
pin the notion of "now".
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable

from genealogy_casework.config import RULES, RulesConfig
from genealogy_casework.exceptions import ChronologyError
from genealogy_casework.models import EventType, Person, PersonEvent
from genealogy_casework.validation.result import ValidationResult

US_CENSUS_YEARS = tuple(range(1790, 2021, 10))


@dataclass(frozen=True)
class HistoricalPeriod:
    name: str
    start: int
    end: int | None  # None means "still ongoing"

    def covers(self, year: int, today: date) -> bool:
        return self.start <= year <= (self.end if self.end is not None else today.year)


US_WARS = (
    HistoricalPeriod("American Revolution", 1775, 1783),
    HistoricalPeriod("War of 1812", 1812, 1815),
    HistoricalPeriod("Mexican-American War", 1846, 1848),
    HistoricalPeriod("American Civil War", 1861, 1865),
    HistoricalPeriod("Spanish-American War", 1898, 1898),
    HistoricalPeriod("World War I", 1917, 1918),
    HistoricalPeriod("World War II", 1941, 1945),
    HistoricalPeriod("Korean War", 1950, 1953),
    HistoricalPeriod("Vietnam War", 1955, 1975),
    HistoricalPeriod("Gulf War", 1990, 1991),
    HistoricalPeriod("War in Afghanistan", 2001, 2021),
    HistoricalPeriod("Iraq War", 2003, 2011),
)

IMMIGRATION_WAVES = (
    HistoricalPeriod("Colonial Period", 1607, 1775),
    HistoricalPeriod("Old Immigration", 1820, 1880),
    HistoricalPeriod("New Immigration", 1880, 1920),
    HistoricalPeriod("Post-WWII", 1945, 1965),
    HistoricalPeriod("Modern Immigration", 1965, None),
)


def years_between(earlier: date, later: date) -> float:
    """Signed distance in years, using the 365.25-day year."""
    return (later - earlier).days / 365.25


def validate_person_dates(person: Person, today: date | None = None) -> ValidationResult:
    today = today or date.today()
    reasons: list[str] = []

    if person.birth_date and person.birth_date > today:
        reasons.append("Birth date cannot be in the future")
    if person.death_date and person.death_date > today:
        reasons.append("Death date cannot be in the future")
    if person.birth_date and person.death_date and person.birth_date >= person.death_date:
        reasons.append("Birth date must be before death date")

    return ValidationResult.from_reasons(reasons)


def validate_event_against_person(event: PersonEvent, person: Person | None) -> None:
    """Raise ``ChronologyError`` when ``event`` falls outside ``person``'s life.

    Undated events and unknown persons pass. A birth (or death) event must
    carry exactly the recorded birth (or death) date.
    """
    if event.event_date is None or person is None:
        return

    when = event.event_date
    if person.birth_date:
        if event.event_type is not EventType.BIRTH and when < person.birth_date:
            raise ChronologyError(
                rule="event_chronology",
                reasons=["Event date cannot be before person's birth date"],
                bound="birth",
            )
        if event.event_type is EventType.BIRTH and when != person.birth_date:
            raise ChronologyError(
                rule="event_chronology",
                reasons=["Birth event date should match person's birth date"],
                bound="birth",
            )

    if person.death_date:
        if event.event_type is not EventType.DEATH and when > person.death_date:
            raise ChronologyError(
                rule="event_chronology",
                reasons=["Event date cannot be after person's death date"],
                bound="death",
            )
        if event.event_type is EventType.DEATH and when != person.death_date:
            raise ChronologyError(
                rule="event_chronology",
                reasons=["Death event date should match person's death date"],
                bound="death",
            )


def validate_person_events(person: Person, events: Iterable[PersonEvent]) -> ValidationResult:
    """Check every dated event of ``person`` against the recorded lifespan.

    Unlike ``validate_event_against_person`` this collects every problem
    instead of stopping at the first one.
    """
    reasons: list[str] = []
    birth, death = person.birth_date, person.death_date

    for event in events:
        if event.event_date is None:
            continue
        when = event.event_date
        kind = event.event_type.value

        if event.event_type is EventType.BIRTH and birth and when != birth:
            reasons.append(
                f"Birth event date ({when.isoformat()}) does not match person's birth date ({birth.isoformat()})"
            )
        if event.event_type is EventType.DEATH and death and when != death:
            reasons.append(
                f"Death event date ({when.isoformat()}) does not match person's death date ({death.isoformat()})"
            )
        if event.event_type is not EventType.BIRTH and birth and when < birth:
            reasons.append(
                f"Event '{kind}' date ({when.isoformat()}) is before person's birth date ({birth.isoformat()})"
            )
        if event.event_type is not EventType.DEATH and death and when > death:
            reasons.append(
                f"Event '{kind}' date ({when.isoformat()}) is after person's death date ({death.isoformat()})"
            )

    return ValidationResult.from_reasons(reasons)


def validate_historical_consistency(
    when: date | None,
    event_type: EventType | str | None,
    location: str | None,
    today: date | None = None,
    rules: RulesConfig = RULES,
) -> ValidationResult:
    """Flag dates that are unlikely given the historical record.

    Every reason is a warning; the US war and immigration matches are
    informational context rather than errors.
    """
    if when is None:
        return ValidationResult.ok()

    today = today or date.today()
    kind = event_type.value if isinstance(event_type, EventType) else (event_type or "")
    year = when.year
    reasons: list[str] = []

    if when > today:
        reasons.append("Date is in the future")

    if year < rules.earliest_record_year:
        reasons.append(
            f"Date ({year}) is before {rules.earliest_record_year}. "
            "Reliable genealogical records are rare before this period."
        )

    if kind == EventType.CENSUS.value and location and "united states" in location.lower():
        if year not in US_CENSUS_YEARS:
            years = ", ".join(str(y) for y in US_CENSUS_YEARS)
            reasons.append(f"{year} is not a US Census year. US Census was conducted in: {years}")

    if kind == EventType.MILITARY_SERVICE.value:
        wars = [w.name for w in US_WARS if w.covers(year, today)]
        if wars:
            reasons.append(f"Military service in {year} coincides with: {', '.join(wars)}")

    if kind == EventType.IMMIGRATION.value and location:
        waves = [w.name for w in IMMIGRATION_WAVES if w.covers(year, today)]
        if waves:
            reasons.append(f"Immigration in {year} falls within: {', '.join(waves)}")

    return ValidationResult.from_reasons(reasons)


def validate_relationship_dates(start_date: date | None, end_date: date | None) -> ValidationResult:
    if start_date and end_date and start_date >= end_date:
        return ValidationResult.invalid("Start date must be before end date")
    return ValidationResult.ok()
