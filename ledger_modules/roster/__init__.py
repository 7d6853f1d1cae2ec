"""Boundary tables of the student, coach and exam collaborators."""

from ledger_modules.roster.orm import ClassTypeModel, CoachModel, ExamResultModel, StudentModel

__all__ = ["ClassTypeModel", "CoachModel", "ExamResultModel", "StudentModel"]
