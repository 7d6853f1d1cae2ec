"""
Configuration Validator (``ledger_config.validator``).

Responsibility
--------------
Checks a parsed ``LedgerConfiguration`` for structural integrity before it
is installed into a database.

Invariants enforced
-------------------
* Subject codes are unique.
* Subject types are known and an explicit balance direction matches the
  type's convention.
* Parent codes and mapping targets name subjects of the same set.
* Usage codes are unique; every usage the business modules resolve is
  bound (missing ones are warnings, since a database may bind them later).
* Posting settings are positive.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ledger_config.schema import LedgerConfiguration
from ledger_kernel.models.subject import (
    CONVENTIONAL_DIRECTION,
    BalanceDirection,
    SubjectType,
    Usage,
)


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    ``is_valid`` is ``True`` only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_configuration(config: LedgerConfiguration) -> ConfigValidationResult:
    """
    Validate a configuration set.

    Postconditions:
        - A configuration with errors MUST NOT be installed.
    """
    result = ConfigValidationResult()

    _validate_subjects(config, result)
    _validate_usage_mappings(config, result)
    _validate_posting(config, result)

    return result


def _validate_subjects(config: LedgerConfiguration, result: ConfigValidationResult) -> None:
    seen: set[str] = set()
    for subject in config.subjects:
        if subject.code in seen:
            result.add_error(f"Duplicate subject code: {subject.code}")
        seen.add(subject.code)

        try:
            subject_type = SubjectType(subject.subject_type)
        except ValueError:
            result.add_error(
                f"Subject {subject.code}: unknown type '{subject.subject_type}'"
            )
            continue

        if subject.balance_direction is not None:
            try:
                direction = BalanceDirection(subject.balance_direction)
            except ValueError:
                result.add_error(
                    f"Subject {subject.code}: unknown balance direction "
                    f"'{subject.balance_direction}'"
                )
                continue
            if direction != CONVENTIONAL_DIRECTION[subject_type]:
                result.add_error(
                    f"Subject {subject.code}: {subject_type.value} subjects are "
                    f"{CONVENTIONAL_DIRECTION[subject_type].value}-normal, "
                    f"got {direction.value}"
                )

    for subject in config.subjects:
        if subject.parent_code is not None and subject.parent_code not in seen:
            result.add_error(
                f"Subject {subject.code}: parent '{subject.parent_code}' is not defined"
            )


def _validate_usage_mappings(
    config: LedgerConfiguration, result: ConfigValidationResult
) -> None:
    codes = config.subject_codes
    seen: set[str] = set()
    for mapping in config.usage_mappings:
        if mapping.usage_code in seen:
            result.add_error(f"Duplicate usage mapping: {mapping.usage_code}")
        seen.add(mapping.usage_code)
        if mapping.subject_code not in codes:
            result.add_error(
                f"Usage {mapping.usage_code}: subject '{mapping.subject_code}' "
                f"is not defined"
            )

    for usage in Usage:
        if usage.value not in seen:
            result.add_warning(f"Usage {usage.value} has no mapping")


def _validate_posting(config: LedgerConfiguration, result: ConfigValidationResult) -> None:
    if config.posting.balance_epsilon <= 0:
        result.add_error(
            f"posting.balance_epsilon must be positive, got {config.posting.balance_epsilon}"
        )
    if config.posting.voucher_sequence_width < 1:
        result.add_error(
            "posting.voucher_sequence_width must be at least 1, "
            f"got {config.posting.voucher_sequence_width}"
        )
