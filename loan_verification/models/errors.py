from __future__ import annotations

from enum import Enum
from typing import Any


class DocumentValidationError(Exception):
    """Base class for errors raised while verifying a loan document."""


class ExtractionFailure(DocumentValidationError):
    """A digital-text or OCR collaborator could not produce text boxes."""


class CaseModelError(DocumentValidationError):
    """The case record is malformed."""


class IssueKind(str, Enum):
    MISSING_CASE_FIELD = "missing_case_field"
    LABEL_NOT_FOUND = "label_not_found"
    VALUE_NOT_FOUND = "value_not_found"
    VALIDATION_MISMATCH = "validation_mismatch"


def format_issue(kind: IssueKind, field_name: str, expected: Any = None, found: Any = None) -> str:
    if kind is IssueKind.MISSING_CASE_FIELD:
        return f"Missing required field in case model: {field_name}"
    if kind is IssueKind.VALIDATION_MISMATCH:
        return f"{field_name}: expected {expected}, found {found}"
    # Label and value misses surface identically to reviewers.
    return f"Field not found: {field_name}"
