"""
SubjectService -- chart of accounts and usage mapping registry.

Responsibility:
    Creates, edits and removes subjects; maintains the usage-to-subject
    mapping table and resolves usage codes for the posting modules.

Architecture position:
    Kernel > Services.  Used by VoucherService (subject validation), by the
    business modules (usage resolution) and by ledger_config.bridges
    (installing the default chart).

Invariants enforced:
    - balance_direction agrees with subject_type by convention; an explicit
      contradicting direction is rejected.
    - A subject that any voucher item or usage mapping references is only
      deactivated; unreferenced subjects are deleted.
    - resolve_usages() returns subject codes for active mappings only.

Failure modes:
    - DuplicateSubjectError, BalanceDirectionMismatchError,
      SubjectNotFoundError, UsageMappingNotFoundError.
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import exists, select

from ledger_kernel.exceptions import (
    BalanceDirectionMismatchError,
    DuplicateSubjectError,
    SubjectNotFoundError,
    SubjectTypeMismatchError,
    UsageMappingNotFoundError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.subject import (
    CONVENTIONAL_DIRECTION,
    BalanceDirection,
    Subject,
    SubjectType,
    Usage,
    UsageMapping,
)
from ledger_kernel.models.voucher import VoucherItem
from ledger_kernel.services.base import BaseService

logger = get_logger("services.subject")


class SubjectRemoval(str, Enum):
    """Outcome of remove_subject."""

    DELETED = "deleted"
    DEACTIVATED = "deactivated"


class SubjectService(BaseService):
    """
    Registry of subjects and usage mappings.

    Non-goals:
        - Does NOT commit; callers own the transaction.
    """

    # -------------------------------------------------------------------------
    # Subjects
    # -------------------------------------------------------------------------

    def get_subject(self, code: str) -> Subject:
        subject = self.find_subject(code)
        if subject is None:
            raise SubjectNotFoundError(code)
        return subject

    def find_subject(self, code: str) -> Subject | None:
        return self.session.execute(
            select(Subject).where(Subject.code == code)
        ).scalar_one_or_none()

    def list_subjects(
        self,
        subject_type: SubjectType | None = None,
        active_only: bool = False,
    ) -> list[Subject]:
        query = select(Subject).order_by(Subject.code)
        if subject_type is not None:
            query = query.where(Subject.subject_type == SubjectType(subject_type).value)
        if active_only:
            query = query.where(Subject.is_active.is_(True))
        return list(self.session.execute(query).scalars())

    def create_subject(
        self,
        code: str,
        name: str,
        subject_type: SubjectType | str,
        actor_id: UUID,
        balance_direction: BalanceDirection | str | None = None,
        parent_code: str | None = None,
        remark: str | None = None,
    ) -> Subject:
        """
        Register a new subject.

        The balance direction defaults to the one implied by the type.  An
        explicit direction must match it.
        """
        subject_type = SubjectType(subject_type)
        expected = CONVENTIONAL_DIRECTION[subject_type]
        if balance_direction is None:
            direction = expected
        else:
            direction = BalanceDirection(balance_direction)
            if direction != expected:
                raise BalanceDirectionMismatchError(
                    code, subject_type.value, direction.value,
                )

        if self.find_subject(code) is not None:
            raise DuplicateSubjectError(code)
        if parent_code is not None:
            self.get_subject(parent_code)

        subject = Subject(
            code=code,
            name=name,
            subject_type=subject_type.value,
            balance_direction=direction.value,
            parent_code=parent_code,
            is_active=True,
            remark=remark,
            created_by_id=actor_id,
        )
        self.session.add(subject)
        self.session.flush()
        logger.info(
            "subject_created",
            extra={
                "subject_code": code,
                "subject_type": subject_type.value,
                "balance_direction": direction.value,
            },
        )
        return subject

    def update_subject(
        self,
        code: str,
        actor_id: UUID,
        name: str | None = None,
        is_active: bool | None = None,
        remark: str | None = None,
    ) -> Subject:
        """Edit descriptive fields.  Type and direction are not editable."""
        subject = self.get_subject(code)
        if name is not None:
            subject.name = name
        if is_active is not None:
            subject.is_active = is_active
        if remark is not None:
            subject.remark = remark
        subject.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "subject_updated",
            extra={"subject_code": code, "is_active": subject.is_active},
        )
        return subject

    def is_referenced(self, code: str) -> bool:
        """True if a voucher item or a usage mapping points at the subject."""
        in_vouchers = self.session.execute(
            select(exists().where(VoucherItem.subject_code == code))
        ).scalar()
        in_mappings = self.session.execute(
            select(exists().where(UsageMapping.subject_code == code))
        ).scalar()
        return bool(in_vouchers or in_mappings)

    def remove_subject(self, code: str, actor_id: UUID) -> SubjectRemoval:
        """Delete an unreferenced subject, otherwise deactivate it."""
        subject = self.get_subject(code)
        if self.is_referenced(code):
            subject.is_active = False
            subject.updated_by_id = actor_id
            self.session.flush()
            logger.info("subject_deactivated", extra={"subject_code": code})
            return SubjectRemoval.DEACTIVATED

        self.session.delete(subject)
        self.session.flush()
        logger.info("subject_deleted", extra={"subject_code": code})
        return SubjectRemoval.DELETED

    def require_type(self, code: str, subject_type: SubjectType) -> Subject:
        """Fetch a subject and check it is of the given type."""
        subject = self.get_subject(code)
        if SubjectType(subject.subject_type) != subject_type:
            raise SubjectTypeMismatchError(
                code, subject_type.value, SubjectType(subject.subject_type).value,
            )
        return subject

    # -------------------------------------------------------------------------
    # Usage mappings
    # -------------------------------------------------------------------------

    def set_usage_mapping(
        self,
        usage_code: Usage | str,
        subject_code: str,
        actor_id: UUID,
        description: str | None = None,
    ) -> UsageMapping:
        """Create or repoint a usage mapping.  Only later vouchers see the change."""
        usage_code = usage_code.value if isinstance(usage_code, Usage) else usage_code
        self.get_subject(subject_code)

        mapping = self.session.execute(
            select(UsageMapping).where(UsageMapping.usage_code == usage_code)
        ).scalar_one_or_none()

        if mapping is None:
            mapping = UsageMapping(
                usage_code=usage_code,
                subject_code=subject_code,
                description=description,
                is_active=True,
                created_by_id=actor_id,
            )
            self.session.add(mapping)
        else:
            mapping.subject_code = subject_code
            mapping.is_active = True
            if description is not None:
                mapping.description = description
            mapping.updated_by_id = actor_id

        self.session.flush()
        logger.info(
            "usage_mapping_set",
            extra={"usage_code": usage_code, "subject_code": subject_code},
        )
        return mapping

    def resolve_usages(self, *usage_codes: Usage | str) -> dict[str, str]:
        """
        Resolve usage codes to subject codes.

        Returns:
            ``{usage_code: subject_code}`` for every requested code.

        Raises:
            UsageMappingNotFoundError: a code has no active mapping.
        """
        codes = [c.value if isinstance(c, Usage) else c for c in usage_codes]
        rows = self.session.execute(
            select(UsageMapping.usage_code, UsageMapping.subject_code).where(
                UsageMapping.usage_code.in_(codes),
                UsageMapping.is_active.is_(True),
            )
        ).all()
        resolved = {usage: subject for usage, subject in rows}
        for code in codes:
            if code not in resolved:
                raise UsageMappingNotFoundError(code)
        return resolved

    def current_mappings(self) -> dict[str, str]:
        """``{usage_code: subject_code}`` of every active mapping."""
        rows = self.session.execute(
            select(UsageMapping.usage_code, UsageMapping.subject_code).where(
                UsageMapping.is_active.is_(True),
            )
        ).all()
        return {usage: subject for usage, subject in rows}

    def resolve_usage(self, usage_code: Usage | str) -> str:
        code = usage_code.value if isinstance(usage_code, Usage) else usage_code
        return self.resolve_usages(code)[code]
