"""
ledger_config -- single public entrypoint for ledger configuration.

Responsibility:
    Provides the way to obtain the chart of accounts, usage mappings and
    posting settings at runtime through ``get_active_config()``.  Returns a
    frozen ``LedgerConfiguration``; ``ledger_config.bridges`` installs it
    into a database.

Architecture position:
    Configuration -- YAML-driven, validated before use.  Sits above
    ``ledger_kernel`` and below ``ledger_modules``.  The kernel MUST NEVER
    import from ``ledger_config``.

Invariants enforced:
    - Validation: a configuration with errors is never returned.
    - Deterministic: the same YAML always yields the same checksum.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` -- structural validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``LEDGER_CONFIG_TRACE`` log entry with the config_id, version, checksum
    and counts.
"""

from __future__ import annotations

from pathlib import Path

from ledger_config.loader import load_configuration
from ledger_config.schema import (
    LedgerConfiguration,
    PostingSettings,
    SubjectDef,
    UsageMappingDef,
)
from ledger_config.validator import validate_configuration
from ledger_kernel.logging_config import get_logger

_logger = get_logger("config")

# Bundled configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
DEFAULT_CONFIG_PATH = _DEFAULT_CONFIG_DIR / "default.yaml"


def get_active_config(path: Path | str | None = None) -> LedgerConfiguration:
    """The public configuration entrypoint.

    Guarantees:
        - The returned configuration has passed ``validate_configuration``.
        - A ``LEDGER_CONFIG_TRACE`` log entry is emitted on every
          successful call.

    Non-goals:
        - Does NOT cache across calls.

    Args:
        path: Override path to a configuration file.  Defaults to the
            bundled ``sets/default.yaml``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If configuration validation fails.
    """
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    config = load_configuration(config_path)

    validation = validate_configuration(config)
    if not validation.is_valid:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in validation.errors)
        )
    for warning in validation.warnings:
        _logger.warning(
            "config_validation_warning",
            extra={"config_id": config.config_id, "warning": warning},
        )

    _logger.info(
        "LEDGER_CONFIG_TRACE",
        extra={
            "trace_type": "LEDGER_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "subject_count": len(config.subjects),
            "usage_mapping_count": len(config.usage_mappings),
            "source_path": str(config_path),
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "LedgerConfiguration",
    "PostingSettings",
    "SubjectDef",
    "UsageMappingDef",
    "get_active_config",
]
