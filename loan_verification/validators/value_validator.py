from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from rapidfuzz.distance import Levenshtein

from loan_verification.models.contracts import ValueType
from loan_verification.models.fields import FieldDefinition


@dataclass(frozen=True)
class Comparison:
    valid: bool
    confidence: float
    difference: float | None


class ValueValidator:
    """Compare an extracted value with the case record value for one field."""

    def compare(self, found: Any, expected: Any, field: FieldDefinition) -> Comparison:
        if found is None or expected is None:
            return Comparison(valid=False, confidence=0.0, difference=None)

        if field.value_type in (ValueType.CURRENCY, ValueType.PERCENTAGE):
            return self._compare_numeric(found, expected, field.tolerance)
        if field.value_type is ValueType.REFERENCE:
            exact = str(found) == str(expected)
            return Comparison(valid=exact, confidence=1.0 if exact else 0.0, difference=0.0 if exact else None)
        if field.value_type is ValueType.ACCOUNT:
            return self._compare_account(str(found), str(expected), field.tolerance)
        raise ValueError(f"Unsupported value type: {field.value_type}")

    @staticmethod
    def _compare_numeric(found: Any, expected: Any, tolerance: float) -> Comparison:
        try:
            found_num = float(found)
            expected_num = float(expected)
        except (TypeError, ValueError):
            return Comparison(valid=False, confidence=0.0, difference=None)

        diff = abs(found_num - expected_num)
        # Round away float noise so a 0.05 deviation on a 0.05 tolerance passes.
        valid = round(diff, 9) <= tolerance
        if not valid:
            return Comparison(valid=False, confidence=0.0, difference=diff)
        if expected_num == 0:
            confidence = 1.0 if diff == 0 else 0.0
        else:
            confidence = max(0.0, 1 - diff / abs(expected_num))
        return Comparison(valid=True, confidence=confidence, difference=diff)

    @staticmethod
    def _compare_account(found: str, expected: str, tolerance: float) -> Comparison:
        distance = Levenshtein.distance(found, expected)
        if distance > tolerance:
            return Comparison(valid=False, confidence=0.0, difference=float(distance))
        if not expected:
            confidence = 1.0 if distance == 0 else 0.0
        else:
            confidence = max(0.0, 1 - distance / len(expected))
        return Comparison(valid=True, confidence=confidence, difference=float(distance))
