"""
YAML loader for ledger configuration sets.

Reads one YAML file and turns it into a ``LedgerConfiguration``.  Parsing
is strict about required keys and lenient about optional ones; semantic
checks (duplicate codes, dangling mappings) live in ``validator``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import (
    LedgerConfiguration,
    PostingSettings,
    SubjectDef,
    UsageMappingDef,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file.

    Postconditions:
        - Returns a dict; an empty file yields ``{}``.
    Raises:
        FileNotFoundError: if ``path`` does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any) -> Decimal:
    """Parse a Decimal from YAML, going through ``str`` so floats keep their text."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float, str)):
        return Decimal(str(value))
    raise ValueError(f"Cannot parse decimal from {value!r}")


def parse_subject(data: dict[str, Any]) -> SubjectDef:
    """
    Parse a ``SubjectDef`` from a dict.

    Raises:
        KeyError: if ``code``, ``name`` or ``type`` is missing.
    """
    return SubjectDef(
        code=str(data["code"]),
        name=data["name"],
        subject_type=data["type"],
        balance_direction=data.get("balance_direction"),
        parent_code=str(data["parent_code"]) if data.get("parent_code") else None,
        remark=data.get("remark"),
    )


def parse_usage_mapping(data: dict[str, Any]) -> UsageMappingDef:
    """Parse a ``UsageMappingDef`` from a dict."""
    return UsageMappingDef(
        usage_code=data["usage"],
        subject_code=str(data["subject"]),
        description=data.get("description"),
    )


def parse_posting(data: dict[str, Any]) -> PostingSettings:
    """Parse ``PostingSettings``; missing keys keep the defaults."""
    defaults = PostingSettings()
    return PostingSettings(
        balance_epsilon=(
            parse_decimal(data["balance_epsilon"])
            if "balance_epsilon" in data
            else defaults.balance_epsilon
        ),
        voucher_sequence_width=int(
            data.get("voucher_sequence_width", defaults.voucher_sequence_width)
        ),
    )


def parse_configuration(data: dict[str, Any]) -> LedgerConfiguration:
    """
    Parse a whole configuration document.

    Preconditions:
        - ``data`` carries ``config_id``; everything else is optional.
    Postconditions:
        - ``checksum`` is computed over ``data`` as given.
    """
    return LedgerConfiguration(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        subjects=tuple(parse_subject(s) for s in data.get("subjects", [])),
        usage_mappings=tuple(
            parse_usage_mapping(m) for m in data.get("usage_mappings", [])
        ),
        posting=parse_posting(data.get("posting", {}) or {}),
        checksum=compute_checksum(data),
    )


def load_configuration(path: Path) -> LedgerConfiguration:
    """Load and parse a configuration file."""
    return parse_configuration(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Postconditions:
        - Returns a hex-encoded SHA-256 hash string.
        - Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
