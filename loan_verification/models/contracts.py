from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from loan_verification.models.errors import CaseModelError


class BoxSource(str, Enum):
    DIGITAL = "digital"
    OCR = "ocr"


class ValueType(str, Enum):
    CURRENCY = "currency"
    PERCENTAGE = "percentage"
    REFERENCE = "reference"
    ACCOUNT = "account"


class MatchType(str, Enum):
    EXACT = "exact"
    PREFIX = "prefix"
    CONTAINS = "contains"
    PARTIAL = "partial"


class CandidateKind(str, Enum):
    EMBEDDED = "embedded"
    SAME_LINE_RIGHT = "same_line_right"
    DIFF_LINE_RIGHT = "diff_line_right"
    BELOW = "below"
    PROXIMITY = "proximity"


class ValidationStatus(str, Enum):
    VALID = "VALID"
    INVALID = "INVALID"
    ERROR = "ERROR"


@dataclass(frozen=True)
class Bounds:
    x: float
    y: float
    width: float
    height: float

    def __post_init__(self) -> None:
        for name in ("x", "y", "width", "height"):
            if getattr(self, name) < 0:
                raise ValueError(f"Bounds.{name} must be non-negative, got {getattr(self, name)}")


@dataclass(frozen=True)
class PositionedTextBox:
    """A text fragment with page-relative coordinates from one extraction pass."""

    text: str
    bounds: Bounds
    page_index: int
    source: BoxSource
    confidence: float = 1.0

    @property
    def x(self) -> float:
        return self.bounds.x

    @property
    def y(self) -> float:
        return self.bounds.y

    @property
    def width(self) -> float:
        return self.bounds.width

    @property
    def height(self) -> float:
        return self.bounds.height

    @property
    def right(self) -> float:
        return self.bounds.x + self.bounds.width

    @property
    def bottom(self) -> float:
        return self.bounds.y + self.bounds.height

    @property
    def center_y(self) -> float:
        return self.bounds.y + self.bounds.height / 2

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "pageIndex": self.page_index,
            "source": self.source.value,
            "confidence": self.confidence,
        }


# Merged boxes share the positioned-box shape; only the box merger creates them.
MergedBox = PositionedTextBox


@dataclass(frozen=True)
class CaseModel:
    values: Mapping[str, Any]
    is_staff: bool = False

    def expected(self, field_name: str) -> Any:
        value = self.values.get(field_name)
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> CaseModel:
        """Build a case model from an upstream record; ``isStaff`` may be a bool or "Yes"/"No"."""
        raw_staff = payload.get("isStaff", False)
        if isinstance(raw_staff, bool):
            is_staff = raw_staff
        elif isinstance(raw_staff, str) and raw_staff.strip().lower() in {"yes", "no", "true", "false"}:
            is_staff = raw_staff.strip().lower() in {"yes", "true"}
        else:
            raise CaseModelError(f"isStaff must be a boolean or Yes/No, got {raw_staff!r}")
        values = {key: value for key, value in payload.items() if key != "isStaff"}
        return cls(values=values, is_staff=is_staff)


@dataclass(frozen=True)
class LabelMatch:
    box: PositionedTextBox
    match_score: float
    match_type: MatchType
    matched_label: str


@dataclass(frozen=True)
class ValueCandidate:
    box: PositionedTextBox
    extracted_value: float | str
    score: float
    source_kind: CandidateKind
    distance: float
    is_same_line: bool
    is_right_of: bool
    table_index: int = 0


@dataclass
class FieldResult:
    found: float | str | None
    expected: Any
    valid: bool
    confidence: float
    method: str
    label_box: PositionedTextBox | None = None
    value_box: PositionedTextBox | None = None
    note: str | None = None
    table_index: int | None = None
    all_values: list[float | str] | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "found": self.found,
            "expected": self.expected,
            "valid": self.valid,
            "confidence": self.confidence,
            "method": self.method,
            "labelBox": self.label_box.to_dict() if self.label_box else None,
            "valueBox": self.value_box.to_dict() if self.value_box else None,
        }
        if self.note is not None:
            payload["note"] = self.note
        if self.table_index is not None:
            payload["tableIndex"] = self.table_index
        if self.all_values is not None:
            payload["allValues"] = list(self.all_values)
        return payload


@dataclass
class ValidationResult:
    status: ValidationStatus
    confidence: float
    fields: dict[str, FieldResult] = field(default_factory=dict)
    issues: list[str] = field(default_factory=list)
    summary: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "confidence": self.confidence,
            "fields": {name: result.to_dict() for name, result in self.fields.items()},
            "issues": list(self.issues),
            "summary": dict(self.summary),
        }


