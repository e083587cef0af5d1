from __future__ import annotations

from dataclasses import dataclass

from loan_verification.config import EngineConfig
from loan_verification.models.contracts import ValueType


@dataclass(frozen=True)
class FieldDefinition:
    name: str
    label_candidates: tuple[str, ...]
    value_type: ValueType
    tolerance: float
    multi_table_eligible: bool = False
    required: bool = True


CASE_ID_FIELD = "caseId"


def build_field_registry(config: EngineConfig | None = None) -> tuple[FieldDefinition, ...]:
    """Static PAQ field registry in processing order."""
    cfg = config or EngineConfig()
    return (
        FieldDefinition(CASE_ID_FIELD, ("Case reference no",), ValueType.REFERENCE, cfg.reference_tolerance),
        FieldDefinition("loanAmount", ("Payout amount",), ValueType.CURRENCY, cfg.currency_tolerance),
        FieldDefinition(
            "instalment",
            ("Monthly instalment (including interest",),
            ValueType.CURRENCY,
            cfg.currency_tolerance,
            multi_table_eligible=True,
        ),
        FieldDefinition(
            "interestRate", ("Annual interest rate - fixed",), ValueType.PERCENTAGE, cfg.percentage_tolerance
        ),
        FieldDefinition(
            "insurancePremium",
            ("Credit life insurance (included in",),
            ValueType.CURRENCY,
            cfg.currency_tolerance,
            multi_table_eligible=True,
        ),
        FieldDefinition("collectionAccountNo", ("Account number",), ValueType.ACCOUNT, cfg.account_tolerance),
    )


FIELD_REGISTRY: tuple[FieldDefinition, ...] = build_field_registry()
