"""Environment-driven thresholds for the plausibility rules and graph queries."""
from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path


def _i(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


def _s(name: str, default: str) -> str:
    value = os.getenv(name)
    return value.strip() if value and value.strip() else default


class WarningPolicy(str, Enum):
    """How a caller treats a validator's warnings."""

    BLOCK = "block"  # warnings abort the operation
    ADVISORY = "advisory"  # warnings are logged and returned


def _policy(name: str, default: WarningPolicy) -> WarningPolicy:
    try:
        return WarningPolicy(_s(name, default.value).lower())
    except ValueError:
        return default


@dataclass(frozen=True)
class RulesConfig:
    # Parent/child age gap
    min_parent_age: int = _i("CASEWORK_MIN_PARENT_AGE", 12)
    max_parent_age: int = _i("CASEWORK_MAX_PARENT_AGE", 70)
    parent_age_verify_low: int = _i("CASEWORK_PARENT_AGE_VERIFY_LOW", 14)
    parent_age_verify_high: int = _i("CASEWORK_PARENT_AGE_VERIFY_HIGH", 60)
    min_relationship_gap: int = _i("CASEWORK_MIN_RELATIONSHIP_GAP", 10)

    # Lifespan
    max_lifespan: int = _i("CASEWORK_MAX_LIFESPAN", 120)
    max_living_age: int = _i("CASEWORK_MAX_LIVING_AGE", 110)

    # Marriage and siblings
    min_marriage_age: int = _i("CASEWORK_MIN_MARRIAGE_AGE", 14)
    max_sibling_gap: int = _i("CASEWORK_MAX_SIBLING_GAP", 30)
    min_sibling_spacing_days: int = _i("CASEWORK_MIN_SIBLING_SPACING_DAYS", 270)
    max_sibling_spacing_days: int = _i("CASEWORK_MAX_SIBLING_SPACING_DAYS", 9125)

    # Records older than this are rare
    earliest_record_year: int = _i("CASEWORK_EARLIEST_RECORD_YEAR", 1400)


@dataclass(frozen=True)
class GraphConfig:
    max_path_depth: int = _i("CASEWORK_MAX_PATH_DEPTH", 5)
    max_generations: int = _i("CASEWORK_MAX_GENERATIONS", 10)
    age_gap_policy: WarningPolicy = _policy("CASEWORK_AGE_GAP_POLICY", WarningPolicy.ADVISORY)


def default_db_path() -> Path:
    return Path(_s("CASEWORK_DB_PATH", "./data/casework.db"))


RULES = RulesConfig()
GRAPH = GraphConfig()
