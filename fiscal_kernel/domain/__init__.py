"""
Pure domain layer: clock abstraction and validation DTOs.

No ORM, database or I/O dependencies.
"""

from fiscal_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from fiscal_kernel.domain.dtos import ValidationError, ValidationResult

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "ValidationError",
    "ValidationResult",
]
