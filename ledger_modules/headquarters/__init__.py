"""Headquarters profit-share: config resolution, preview and submission."""

from ledger_modules.headquarters.models import (
    GlobalConfig,
    HeadquarterConfig,
    HeadquarterConfigType,
    NoConfig,
    SpecificConfig,
    SubmissionPreview,
    SubmitAction,
    SubmitRecord,
    SubmitStatus,
)
from ledger_modules.headquarters.service import HeadquarterService

__all__ = [
    "GlobalConfig",
    "HeadquarterConfig",
    "HeadquarterConfigType",
    "HeadquarterService",
    "NoConfig",
    "SpecificConfig",
    "SubmissionPreview",
    "SubmitAction",
    "SubmitRecord",
    "SubmitStatus",
]
