"""Validation - classify mapped rows as transactions or spreadsheet noise."""

from validation.rules import (
    RejectionReason,
    NOISE_NAME_KEYWORDS,
    EXCLUDED_DOCUMENT_TYPES,
    check_record,
    is_valid,
    count_rejections,
)

__all__ = [
    "RejectionReason",
    "NOISE_NAME_KEYWORDS",
    "EXCLUDED_DOCUMENT_TYPES",
    "check_record",
    "is_valid",
    "count_rejections",
]
