"""
DTOs -- validation data structures shared across the import pipeline.

Validation never raises: it returns ValidationError values, aggregated into a
ValidationResult.  Callers decide whether a failed result becomes an
exception (InvalidDocumentError) or is kept as data (warnings on a record).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(frozen=True)
class ValidationError:
    """
    A single validation finding.

    Used for both hard errors and warnings; the container decides which.
    """

    code: str
    message: str
    field: str | None = None
    details: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ValidationError:
        return cls(
            code=data["code"],
            message=data.get("message", ""),
            field=data.get("field"),
            details=data.get("details"),
        )


@dataclass(frozen=True)
class ValidationResult:
    """
    Result of validation.

    Guarantees:
        - errors and warnings are always tuples (never None)
        - is_valid is True only when there are no errors; warnings never
          invalidate
        - bool(result) == result.is_valid
    """

    is_valid: bool
    errors: tuple[ValidationError, ...] = field(default_factory=tuple)
    warnings: tuple[ValidationError, ...] = field(default_factory=tuple)

    @classmethod
    def success(cls, *warnings: ValidationError) -> ValidationResult:
        return cls(is_valid=True, errors=(), warnings=tuple(warnings))

    @classmethod
    def failure(cls, *errors: ValidationError) -> ValidationResult:
        return cls(is_valid=False, errors=tuple(errors))

    def __bool__(self) -> bool:
        return self.is_valid
