"""Tagged outcome of a validator and the policy that acts on it."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

import structlog

from genealogy_casework.config import WarningPolicy
from genealogy_casework.exceptions import ValidationFailure

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ValidationResult:
    """``Ok`` when ``reasons`` is empty, ``Invalid(reasons)`` otherwise.

    Validators never raise; they return one of these and leave it to the
    caller to decide whether the reasons block the operation.
    """

    reasons: tuple[str, ...] = ()

    @classmethod
    def ok(cls) -> ValidationResult:
        return cls()

    @classmethod
    def invalid(cls, *reasons: str) -> ValidationResult:
        return cls(tuple(reasons))

    @classmethod
    def from_reasons(cls, reasons: Iterable[str]) -> ValidationResult:
        return cls(tuple(reasons))

    @property
    def is_valid(self) -> bool:
        return not self.reasons

    def __bool__(self) -> bool:
        return self.is_valid

    def merge(self, *others: ValidationResult) -> ValidationResult:
        reasons = list(self.reasons)
        for other in others:
            reasons.extend(other.reasons)
        return ValidationResult(tuple(reasons))


def enforce(result: ValidationResult, rule: str, policy: WarningPolicy = WarningPolicy.BLOCK) -> ValidationResult:
    """Apply ``policy`` to ``result``.

    Under ``BLOCK`` any reason raises ``ValidationFailure``; under
    ``ADVISORY`` the reasons are logged and the result is handed back.
    """
    if result.is_valid:
        return result
    if policy is WarningPolicy.BLOCK:
        raise ValidationFailure(rule=rule, reasons=list(result.reasons))
    logger.warning("validation.advisory", rule=rule, reasons=list(result.reasons))
    return result
