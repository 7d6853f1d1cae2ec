"""
Roster ORM Models (``ledger_modules.roster.orm``).

Responsibility:
    Minimal persistence of the records owned by external collaborators
    (class types, students, coaches, exam results).  The ledger reads them:
    contract prices, coach attribution, enrollment dates and exam passes.
    Profile maintenance happens elsewhere.

Architecture position:
    **Modules layer** -- boundary tables.  Inherit from ``TrackedBase``.

Invariants enforced:
    - ``exam_subject`` is 2 or 3 (ck_exam_result_subject).
    - Contract prices are Decimal, never float.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, Date, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase


class ClassTypeModel(TrackedBase):
    """Training package with its contract price."""

    __tablename__ = "roster_class_types"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    contract_price: Mapped[Decimal] = mapped_column(nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class CoachModel(TrackedBase):
    __tablename__ = "roster_coaches"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (Index("idx_roster_coach_active", "is_active"),)


class StudentModel(TrackedBase):
    """Student enrolled in a class type and assigned to a coach."""

    __tablename__ = "roster_students"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    class_type_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("roster_class_types.id"), nullable=True,
    )
    coach_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("roster_coaches.id"), nullable=True,
    )
    enrollment_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    __table_args__ = (
        Index("idx_roster_student_coach", "coach_id"),
        Index("idx_roster_student_enrollment", "enrollment_date"),
    )


class ExamResultModel(TrackedBase):
    """One exam sitting of subject 2 or 3, attributed to the coach who trained for it."""

    __tablename__ = "roster_exam_results"

    student_id: Mapped[UUID] = mapped_column(
        ForeignKey("roster_students.id"), nullable=False,
    )
    coach_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("roster_coaches.id"), nullable=True,
    )
    exam_subject: Mapped[int] = mapped_column(Integer, nullable=False)
    exam_date: Mapped[date] = mapped_column(Date, nullable=False)
    passed: Mapped[bool] = mapped_column(Boolean, nullable=False)

    __table_args__ = (
        CheckConstraint("exam_subject IN (2, 3)", name="ck_exam_result_subject"),
        Index("idx_roster_exam_coach_date", "coach_id", "exam_date"),
    )
