from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from loan_verification.config import EngineConfig
from loan_verification.models.contracts import BoxSource, CandidateKind, PositionedTextBox, ValueCandidate
from loan_verification.models.fields import FieldDefinition
from loan_verification.normalizers.numeric import extract_value
from loan_verification.validators.value_validator import Comparison, ValueValidator


@dataclass(frozen=True)
class SearchWindow:
    top: float
    bottom: float
    left: float
    right: float

    def contains(self, box: PositionedTextBox) -> bool:
        return self.top <= box.y <= self.bottom and self.left <= box.x <= self.right


@dataclass(frozen=True)
class LinkedValue:
    candidate: ValueCandidate
    comparison: Comparison


def edge_distance(first: PositionedTextBox, second: PositionedTextBox) -> float:
    dx = max(second.x - first.right, first.x - second.right, 0.0)
    dy = max(second.y - first.bottom, first.y - second.bottom, 0.0)
    return math.hypot(dx, dy)


def spatial_rank(candidate: ValueCandidate) -> tuple[bool, float]:
    # Score orders same line, then right-of, then closeness.
    return candidate.source_kind is not CandidateKind.EMBEDDED, -candidate.score


def match_rank(item: tuple[ValueCandidate, Comparison]) -> tuple[bool, bool, bool, float, float]:
    candidate, comparison = item
    return (
        candidate.source_kind is not CandidateKind.EMBEDDED,
        not candidate.is_same_line,
        not candidate.is_right_of,
        -comparison.confidence,
        -candidate.score,
    )


class ValueLinker:
    """Find the value box belonging to a label box on the same page."""

    def __init__(self, config: EngineConfig | None = None, validator: ValueValidator | None = None) -> None:
        self.config = config or EngineConfig()
        self.validator = validator or ValueValidator()

    def line_spacing(self, page_boxes: list[PositionedTextBox]) -> float:
        """Median gap between distinct rounded line positions on a page."""
        cfg = self.config
        if len(page_boxes) < 2:
            return cfg.default_line_spacing
        positions = sorted({round(box.y) for box in page_boxes})
        gaps = sorted(
            later - earlier
            for earlier, later in zip(positions, positions[1:])
            if cfg.min_line_gap < later - earlier < cfg.max_line_gap
        )
        if not gaps:
            return cfg.default_line_spacing
        return float(gaps[len(gaps) // 2])

    def window(self, label_box: PositionedTextBox, spacing: float) -> SearchWindow:
        padding = spacing * self.config.search_padding_lines
        return SearchWindow(
            top=label_box.y - padding,
            bottom=label_box.bottom + padding,
            left=label_box.x - self.config.window_left_margin,
            right=label_box.right + self.config.window_right_margin,
        )

    def is_same_line(self, label_box: PositionedTextBox, box: PositionedTextBox, spacing: float) -> bool:
        return abs(label_box.center_y - box.center_y) <= spacing * self.config.same_line_factor

    def is_right_of(self, label_box: PositionedTextBox, box: PositionedTextBox) -> bool:
        return box.x >= label_box.right - self.config.right_of_tolerance

    def is_below(self, label_box: PositionedTextBox, box: PositionedTextBox) -> bool:
        return box.y > label_box.y + self.config.below_tolerance

    def extract(self, box: PositionedTextBox, field: FieldDefinition) -> float | str | None:
        return extract_value(
            box.text,
            field.value_type,
            min_currency_digits=self.config.min_currency_digits,
            ocr_repair=box.source is BoxSource.OCR,
        )

    def candidates(
        self,
        label_box: PositionedTextBox,
        boxes: list[PositionedTextBox],
        field: FieldDefinition,
        table_index: int = 0,
    ) -> list[ValueCandidate]:
        """Every box in the label's window that yields a value of the field's type.

        The label box itself comes first when it embeds a value.
        """
        page_boxes = [box for box in boxes if box.page_index == label_box.page_index]
        spacing = self.line_spacing(page_boxes)
        window = self.window(label_box, spacing)
        found: list[ValueCandidate] = []

        embedded = self.extract(label_box, field)
        if embedded is not None:
            found.append(
                ValueCandidate(
                    box=label_box,
                    extracted_value=embedded,
                    score=1.0,
                    source_kind=CandidateKind.EMBEDDED,
                    distance=0.0,
                    is_same_line=True,
                    is_right_of=False,
                    table_index=table_index,
                )
            )

        for box in page_boxes:
            if box is label_box or not window.contains(box):
                continue
            value = self.extract(box, field)
            if value is None:
                continue
            same_line = self.is_same_line(label_box, box, spacing)
            right_of = self.is_right_of(label_box, box)
            distance = edge_distance(label_box, box)
            found.append(
                ValueCandidate(
                    box=box,
                    extracted_value=value,
                    score=self._score(same_line, right_of, distance),
                    source_kind=self._kind(label_box, box, same_line, right_of),
                    distance=distance,
                    is_same_line=same_line,
                    is_right_of=right_of,
                    table_index=table_index,
                )
            )
        return found

    def find_value(
        self,
        label_box: PositionedTextBox,
        boxes: list[PositionedTextBox],
        field: FieldDefinition,
        expected: Any = None,
    ) -> LinkedValue | None:
        """Pick the value for a label; candidates matching ``expected`` outrank pure geometry."""
        found = self.candidates(label_box, boxes, field)
        if not found:
            return None

        if expected is not None:
            matching = []
            for candidate in found:
                comparison = self.validator.compare(candidate.extracted_value, expected, field)
                if comparison.valid:
                    matching.append((candidate, comparison))
            if matching:
                best, comparison = min(matching, key=match_rank)
                return LinkedValue(candidate=best, comparison=comparison)

        best = min(found, key=spatial_rank)
        return LinkedValue(candidate=best, comparison=self.validator.compare(best.extracted_value, expected, field))

    def _kind(self, label_box: PositionedTextBox, box: PositionedTextBox, same_line: bool, right_of: bool) -> CandidateKind:
        if right_of:
            return CandidateKind.SAME_LINE_RIGHT if same_line else CandidateKind.DIFF_LINE_RIGHT
        if self.is_below(label_box, box):
            return CandidateKind.BELOW
        return CandidateKind.PROXIMITY

    @staticmethod
    def _score(same_line: bool, right_of: bool, distance: float) -> float:
        # Closeness is at most 0.2, so it only breaks ties within one line/side class.
        return (0.5 if same_line else 0.0) + (0.3 if right_of else 0.0) + 0.2 / (1 + distance / 100)
