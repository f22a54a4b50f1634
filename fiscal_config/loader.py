"""
Configuration Loader (``fiscal_config.loader``).

Loads a YAML policy file and parses it into a frozen ``ImportPolicy``.
Runtime callers go through ``fiscal_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Out-of-range or mistyped values  -> ``ConfigurationError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from fiscal_config.schema import ImportPolicy, TotalsMismatchPolicy
from fiscal_kernel.exceptions import ConfigurationError


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Returns an empty dict for an empty file.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigurationError(name, "section must be a mapping")
    return value


def _decimal(value: Any, field: str) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ConfigurationError(field, f"not a number: {value!r}") from exc


def parse_import_policy(data: dict[str, Any]) -> ImportPolicy:
    """Parse a policy dict (as loaded from YAML) into an ImportPolicy.

    Absent keys keep the dataclass defaults.
    """
    defaults = ImportPolicy()
    matching = _section(data, "matching")
    lifecycle = _section(data, "lifecycle")
    validation = _section(data, "validation")
    reconciliation = _section(data, "reconciliation")
    fetch = _section(data, "fetch")

    mismatch_raw = validation.get("totals_mismatch", defaults.totals_mismatch.value)
    try:
        totals_mismatch = TotalsMismatchPolicy(str(mismatch_raw).lower())
    except ValueError as exc:
        raise ConfigurationError(
            "totals_mismatch",
            f"expected one of ignore, warn, reject; got {mismatch_raw!r}",
        ) from exc

    entry_types = reconciliation.get(
        "entry_document_types", sorted(defaults.entry_document_types)
    )
    if isinstance(entry_types, str):
        entry_types = [entry_types]

    return ImportPolicy(
        config_id=str(data.get("config_id", defaults.config_id)),
        version=int(data.get("version", defaults.version)),
        auto_accept_threshold=float(
            matching.get("auto_accept_threshold", defaults.auto_accept_threshold)
        ),
        fuzzy_search_words=int(
            matching.get("fuzzy_search_words", defaults.fuzzy_search_words)
        ),
        fuzzy_candidate_limit=int(
            matching.get("fuzzy_candidate_limit", defaults.fuzzy_candidate_limit)
        ),
        auto_validate_resolved_imports=bool(
            lifecycle.get(
                "auto_validate_resolved_imports",
                defaults.auto_validate_resolved_imports,
            )
        ),
        totals_mismatch=totals_mismatch,
        totals_tolerance=_decimal(
            validation.get("totals_tolerance", defaults.totals_tolerance),
            "totals_tolerance",
        ),
        entry_document_types=frozenset(str(t).lower() for t in entry_types),
        payable_due_days=int(
            reconciliation.get("payable_due_days", defaults.payable_due_days)
        ),
        fetch_timeout_seconds=float(
            fetch.get("timeout_seconds", defaults.fetch_timeout_seconds)
        ),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
