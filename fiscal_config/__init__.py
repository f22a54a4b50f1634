"""
fiscal_config -- single public entrypoint for import configuration.

Responsibility:
    ``get_active_config()`` is the only way services obtain their
    ``ImportPolicy``.  YAML loading is internal to this package.

Architecture position:
    Sits above ``fiscal_kernel`` and below ``fiscal_ingestion``.  The kernel
    never imports from ``fiscal_config``.

Failure modes:
    - ``FileNotFoundError`` -- the requested policy file does not exist.
    - ``ConfigurationError`` -- a value is out of range or mistyped.

Every successful load emits a ``FISCAL_CONFIG_TRACE`` log entry with the
config id, version and checksum, so an import can be tied back to the policy
that governed it.
"""

from __future__ import annotations

from pathlib import Path

from fiscal_config.loader import compute_checksum, load_yaml_file, parse_import_policy
from fiscal_config.schema import ImportPolicy, TotalsMismatchPolicy
from fiscal_kernel.logging_config import get_logger

_logger = get_logger("config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | str | None = None) -> ImportPolicy:
    """Load and validate the import policy.

    Args:
        config_path: YAML file to load.  Defaults to
            ``fiscal_config/sets/default.yaml``.
    """
    path = Path(config_path) if config_path is not None else _DEFAULT_CONFIG_PATH
    data = load_yaml_file(path)
    policy = parse_import_policy(data)

    _logger.info(
        "FISCAL_CONFIG_TRACE",
        extra={
            "trace_type": "FISCAL_CONFIG_TRACE",
            "config_id": policy.config_id,
            "config_version": policy.version,
            "checksum": compute_checksum(data),
            "config_path": str(path),
        },
    )
    return policy


__all__ = [
    "ImportPolicy",
    "TotalsMismatchPolicy",
    "get_active_config",
]
