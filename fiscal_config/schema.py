"""
Import policy schema.

The YAML set under ``fiscal_config/sets`` is parsed by the loader into the
frozen ``ImportPolicy`` below.  Range checks live in ``__post_init__`` so a
policy object, however constructed, is always usable.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from fiscal_kernel.exceptions import ConfigurationError


class TotalsMismatchPolicy(str, Enum):
    """What to do when line totals disagree with the declared document total."""

    IGNORE = "ignore"
    WARN = "warn"
    REJECT = "reject"


_KNOWN_DOCUMENT_TYPES = frozenset({"nfe", "nfce", "cte", "mdfe"})


@dataclass(frozen=True)
class ImportPolicy:
    """Tunable behavior of the import pipeline."""

    config_id: str = "default"
    version: int = 1

    # Matching
    auto_accept_threshold: float = 0.7
    fuzzy_search_words: int = 3
    fuzzy_candidate_limit: int = 10

    # Lifecycle
    auto_validate_resolved_imports: bool = True

    # Validation
    totals_mismatch: TotalsMismatchPolicy = TotalsMismatchPolicy.WARN
    totals_tolerance: Decimal = Decimal("0.01")

    # Reconciliation
    entry_document_types: frozenset[str] = frozenset({"nfe"})
    payable_due_days: int = 30

    # URL fetch
    fetch_timeout_seconds: float = 30.0

    def __post_init__(self) -> None:
        if not 0.0 <= self.auto_accept_threshold <= 1.0:
            raise ConfigurationError(
                "auto_accept_threshold",
                f"must be within [0, 1], got {self.auto_accept_threshold}",
            )
        if self.fuzzy_search_words < 1:
            raise ConfigurationError(
                "fuzzy_search_words", "must be at least 1"
            )
        if self.fuzzy_candidate_limit < 1:
            raise ConfigurationError(
                "fuzzy_candidate_limit", "must be at least 1"
            )
        if self.totals_tolerance < 0:
            raise ConfigurationError(
                "totals_tolerance", "must not be negative"
            )
        unknown = set(self.entry_document_types) - _KNOWN_DOCUMENT_TYPES
        if unknown:
            raise ConfigurationError(
                "entry_document_types",
                f"unknown document types: {', '.join(sorted(unknown))}",
            )
        if self.payable_due_days < 0:
            raise ConfigurationError(
                "payable_due_days", "must not be negative"
            )
        if self.fetch_timeout_seconds <= 0:
            raise ConfigurationError(
                "fetch_timeout_seconds", "must be positive"
            )

    def is_entry_document(self, document_type: str) -> bool:
        return document_type in self.entry_document_types
