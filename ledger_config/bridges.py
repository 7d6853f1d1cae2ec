"""
Config -> Kernel Bridges.

Functions that turn a ``LedgerConfiguration`` into kernel state and
kernel-compatible objects.  These live in ledger_config (the producer)
because the kernel must NEVER import ledger_config.

Usage:
    from ledger_config import get_active_config
    from ledger_config.bridges import build_voucher_service, install_configuration

    config = get_active_config()
    install_configuration(session, config, actor_id)
    vouchers = build_voucher_service(session, config, clock)
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_config.schema import LedgerConfiguration
from ledger_kernel.domain.clock import Clock
from ledger_kernel.logging_config import get_logger
from ledger_kernel.services.subject_service import SubjectService
from ledger_kernel.services.voucher_service import VoucherService

logger = get_logger("config.bridges")


@dataclass(frozen=True)
class InstallResult:
    """What ``install_configuration`` changed."""

    subjects_created: int
    subjects_existing: int
    mappings_set: int
    mappings_unchanged: int


def _parents_first(config: LedgerConfiguration):
    """Subjects ordered so that every parent precedes its children."""
    pending = list(config.subjects)
    placed: set[str] = set()
    ordered = []
    while pending:
        remaining = []
        for subject in pending:
            if subject.parent_code is None or subject.parent_code in placed:
                ordered.append(subject)
                placed.add(subject.code)
            else:
                remaining.append(subject)
        if len(remaining) == len(pending):
            # Parents outside the set; let SubjectService report them.
            ordered.extend(remaining)
            break
        pending = remaining
    return ordered


def install_configuration(
    session: Session,
    config: LedgerConfiguration,
    actor_id: UUID,
    clock: Clock | None = None,
) -> InstallResult:
    """
    Create missing subjects and bind usage mappings.

    Idempotent: existing subjects are left as they are and mappings that
    already point at the configured subject are not touched.  Does NOT
    commit; the caller owns the transaction.

    Raises:
        BalanceDirectionMismatchError, SubjectNotFoundError: propagated from
            SubjectService for inconsistent configurations.
    """
    subjects = SubjectService(session, clock)

    created = existing = 0
    for subject_def in _parents_first(config):
        if subjects.find_subject(subject_def.code) is not None:
            existing += 1
            continue
        subjects.create_subject(
            code=subject_def.code,
            name=subject_def.name,
            subject_type=subject_def.subject_type,
            actor_id=actor_id,
            balance_direction=subject_def.balance_direction,
            parent_code=subject_def.parent_code,
            remark=subject_def.remark,
        )
        created += 1

    current = subjects.current_mappings()
    mapped = unchanged = 0
    for mapping in config.usage_mappings:
        if current.get(mapping.usage_code) == mapping.subject_code:
            unchanged += 1
            continue
        subjects.set_usage_mapping(
            mapping.usage_code,
            mapping.subject_code,
            actor_id,
            description=mapping.description,
        )
        mapped += 1

    result = InstallResult(
        subjects_created=created,
        subjects_existing=existing,
        mappings_set=mapped,
        mappings_unchanged=unchanged,
    )
    logger.info(
        "configuration_installed",
        extra={
            "config_id": config.config_id,
            "checksum": config.checksum,
            "subjects_created": created,
            "mappings_set": mapped,
        },
    )
    return result


def build_voucher_service(
    session: Session,
    config: LedgerConfiguration,
    clock: Clock | None = None,
) -> VoucherService:
    """VoucherService using the configuration's posting settings."""
    return VoucherService(
        session,
        clock,
        balance_epsilon=config.posting.balance_epsilon,
        sequence_width=config.posting.voucher_sequence_width,
    )
