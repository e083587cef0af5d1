from __future__ import annotations

import logging
from typing import Any

from loan_verification.config import EngineConfig
from loan_verification.linkers.multi_table import MultiTableResolver
from loan_verification.linkers.value_linker import ValueLinker
from loan_verification.mappers.label_matcher import LabelMatcher
from loan_verification.models.contracts import (
    CandidateKind,
    CaseModel,
    FieldResult,
    PositionedTextBox,
    ValidationResult,
    ValidationStatus,
    ValueType,
)
from loan_verification.models.errors import IssueKind, format_issue
from loan_verification.models.fields import CASE_ID_FIELD, FieldDefinition, build_field_registry
from loan_verification.normalizers.numeric import extract_value
from loan_verification.pipelines.context import ValidationContext
from loan_verification.validators.value_validator import ValueValidator


def summarize(fields: dict[str, FieldResult], total: int) -> dict[str, int]:
    valid = sum(1 for result in fields.values() if result.valid)
    return {
        "total": total,
        "found": len(fields),
        "valid": valid,
        "confidencePercent": round(valid / total * 100) if total else 0,
    }


class FieldOrchestrator:
    """Run every registry field against one merged box snapshot."""

    def __init__(self, config: EngineConfig | None = None, registry: tuple[FieldDefinition, ...] | None = None) -> None:
        self.config = config or EngineConfig()
        self.registry = registry or build_field_registry(self.config)
        self.matcher = LabelMatcher(self.config)
        self.validator = ValueValidator()
        self.linker = ValueLinker(self.config, self.validator)
        self.resolver = MultiTableResolver(self.config, self.matcher, self.linker, self.validator)

    def run(self, boxes: list[PositionedTextBox], case: CaseModel, context: ValidationContext) -> ValidationResult:
        fields: dict[str, FieldResult] = {}
        issues: list[str] = []

        for definition in self.registry:
            context.fields_processed += 1
            expected = case.expected(definition.name)
            if expected is None:
                if definition.required:
                    issues.append(format_issue(IssueKind.MISSING_CASE_FIELD, definition.name))
                    context.log(f"{definition.name}: no expected value in case model", logging.WARNING)
                continue

            result = self.process_field(boxes, definition, expected, case, context)
            if result is None or result.found is None:
                issues.append(format_issue(IssueKind.VALUE_NOT_FOUND, definition.name))
                continue

            fields[definition.name] = result
            context.fields_found += 1
            if result.valid:
                context.fields_valid += 1
            else:
                issues.append(
                    format_issue(IssueKind.VALIDATION_MISMATCH, definition.name, expected=expected, found=result.found)
                )
            context.log(
                f"{definition.name}: found={result.found} expected={expected} "
                f"valid={result.valid} method={result.method}"
            )

        total = len(self.registry)
        summary = summarize(fields, total)
        return ValidationResult(
            status=ValidationStatus.VALID if not issues else ValidationStatus.INVALID,
            confidence=summary["valid"] / total if total else 0.0,
            fields=fields,
            issues=issues,
            summary=summary,
        )

    def process_field(
        self,
        boxes: list[PositionedTextBox],
        definition: FieldDefinition,
        expected: Any,
        case: CaseModel,
        context: ValidationContext,
    ) -> FieldResult | None:
        if definition.name == CASE_ID_FIELD:
            direct = self.match_reference_directly(boxes, definition, expected)
            if direct is not None:
                return direct

        if self.resolver.applies(definition, case):
            resolved = self.resolver.resolve(boxes, definition, expected, context)
            if resolved.found is not None:
                return resolved
            context.log(f"{definition.name}: multi-table search gave {resolved.method}, retrying single table")
            fallback = self.single_table(boxes, definition, expected, context)
            if fallback is not None:
                fallback.method = "single_table_fallback"
            return fallback

        return self.single_table(boxes, definition, expected, context)

    def match_reference_directly(
        self, boxes: list[PositionedTextBox], definition: FieldDefinition, expected: Any
    ) -> FieldResult | None:
        """Case references are printed verbatim, often far from their caption."""
        needle = str(expected)
        for box in boxes:
            if needle not in box.text:
                continue
            value = extract_value(box.text, ValueType.REFERENCE)
            comparison = self.validator.compare(value, expected, definition)
            if comparison.valid:
                return FieldResult(
                    found=value,
                    expected=expected,
                    valid=True,
                    confidence=comparison.confidence,
                    method="direct_match",
                    value_box=box,
                )
        return None

    def single_table(
        self,
        boxes: list[PositionedTextBox],
        definition: FieldDefinition,
        expected: Any,
        context: ValidationContext,
    ) -> FieldResult | None:
        label = self.matcher.best_match(boxes, definition.label_candidates)
        if label is None:
            context.log(format_issue(IssueKind.LABEL_NOT_FOUND, definition.name), logging.WARNING)
            return None
        context.log(
            f"{definition.name}: label '{label.box.text}' ({label.match_type.value}, score {label.match_score:.2f})"
        )

        linked = self.linker.find_value(label.box, boxes, definition, expected)
        if linked is None:
            context.log(f"{definition.name}: no value near label", logging.WARNING)
            return None

        candidate, comparison = linked.candidate, linked.comparison
        embedded = candidate.source_kind is CandidateKind.EMBEDDED
        if comparison.valid:
            method = "embedded_value_match" if embedded else "direct_value_match"
        else:
            method = "embedded_value" if embedded else "spatial_nearest"
        return FieldResult(
            found=candidate.extracted_value,
            expected=expected,
            valid=comparison.valid,
            confidence=comparison.confidence,
            method=method,
            label_box=label.box,
            value_box=candidate.box,
        )
