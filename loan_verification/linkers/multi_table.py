from __future__ import annotations

from typing import Any

from loan_verification.config import EngineConfig
from loan_verification.linkers.value_linker import ValueLinker, match_rank, spatial_rank
from loan_verification.mappers.label_matcher import LabelMatcher
from loan_verification.models.contracts import CaseModel, FieldResult, ValueCandidate, ValueType
from loan_verification.models.fields import FieldDefinition
from loan_verification.pipelines.context import ValidationContext
from loan_verification.validators.value_validator import ValueValidator

STAFF_NOTE = "Staff application - accepted alternative rate"


class MultiTableResolver:
    """Resolve staff-discount documents that print the same rate table twice.

    Upstream case records hold either the regular or the discounted figure, so
    an exact match against any table wins; failing that, the best-placed
    plausible value is accepted for staff applications.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        matcher: LabelMatcher | None = None,
        linker: ValueLinker | None = None,
        validator: ValueValidator | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.matcher = matcher or LabelMatcher(self.config)
        self.validator = validator or ValueValidator()
        self.linker = linker or ValueLinker(self.config, self.validator)

    @staticmethod
    def applies(field: FieldDefinition, case: CaseModel) -> bool:
        return field.multi_table_eligible and case.is_staff

    def resolve(self, boxes: list, field: FieldDefinition, expected: Any, context: ValidationContext) -> FieldResult:
        labels = self.matcher.collect_all(boxes, field.label_candidates)
        context.log(f"{field.name}: {len(labels)} label instance(s) for multi-table search")
        if not labels:
            return FieldResult(found=None, expected=expected, valid=False, confidence=0.0, method="multi_table_no_labels")

        candidates = self._collect_candidates(boxes, field, labels)
        if not candidates:
            return FieldResult(found=None, expected=expected, valid=False, confidence=0.0, method="multi_table_no_values")

        observed = [candidate.extracted_value for candidate in candidates]
        matching = []
        for candidate in candidates:
            comparison = self.validator.compare(candidate.extracted_value, expected, field)
            context.log(
                f"{field.name}: table {candidate.table_index + 1} value {candidate.extracted_value} "
                f"-> match={comparison.valid}"
            )
            if comparison.valid:
                matching.append((candidate, comparison))

        if matching:
            best, comparison = min(matching, key=match_rank)
            return FieldResult(
                found=best.extracted_value,
                expected=expected,
                valid=True,
                confidence=comparison.confidence,
                method="multi_table_exact_match",
                label_box=labels[best.table_index].box,
                value_box=best.box,
                table_index=best.table_index,
            )

        ranked = sorted(
            candidates,
            key=lambda c: (not c.is_same_line, not c.is_right_of, not self.is_reasonable(c, field), c.distance),
        )
        for candidate in ranked:
            if not self.is_reasonable(candidate, field):
                continue
            context.log(
                f"{field.name}: staff application, accepting table {candidate.table_index + 1} "
                f"value {candidate.extracted_value} (expected {expected})"
            )
            return FieldResult(
                found=candidate.extracted_value,
                expected=expected,
                valid=True,
                confidence=self.config.staff_accept_confidence,
                method="multi_table_staff_accepted",
                label_box=labels[candidate.table_index].box,
                value_box=candidate.box,
                note=STAFF_NOTE,
                table_index=candidate.table_index,
                all_values=observed,
            )

        return FieldResult(
            found=None,
            expected=expected,
            valid=False,
            confidence=0.0,
            method="multi_table_no_reasonable_values",
            all_values=observed,
        )

    def is_reasonable(self, candidate: ValueCandidate, field: FieldDefinition) -> bool:
        value = candidate.extracted_value
        if field.value_type is ValueType.CURRENCY:
            return isinstance(value, float) and value > 0 and "%" not in candidate.box.text
        if field.value_type is ValueType.PERCENTAGE:
            return isinstance(value, float) and 0 <= value <= self.config.max_reasonable_percentage
        return self.config.min_reference_length <= len(str(value)) <= self.config.max_reference_length

    def _collect_candidates(self, boxes: list, field: FieldDefinition, labels: list) -> list[ValueCandidate]:
        # A value box visible from several label windows belongs to the label it sits best against.
        best_by_box: dict[int, ValueCandidate] = {}
        order: list[int] = []
        for table_index, label in enumerate(labels):
            for candidate in self.linker.candidates(label.box, boxes, field, table_index=table_index):
                key = id(candidate.box)
                current = best_by_box.get(key)
                if current is None:
                    order.append(key)
                    best_by_box[key] = candidate
                elif spatial_rank(candidate) < spatial_rank(current):
                    best_by_box[key] = candidate
        return [best_by_box[key] for key in order]
