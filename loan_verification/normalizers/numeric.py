from __future__ import annotations

import re
from dataclasses import dataclass

from loan_verification.models.contracts import ValueType


@dataclass(frozen=True)
class ParsedAmount:
    raw: str
    value: float | None
    parse_status: str
    parse_warnings: list[str]


# Rand amounts, most specific layout first: "R90 640,57", "R1,207.50", then any digit run.
_CURRENCY_PATTERNS = (
    re.compile(r"(?<![A-Za-z])R\s*(\d{1,3}(?:\s\d{3})*(?:[,.]\d{2})?)(?!\d)"),
    re.compile(r"(?<![A-Za-z])R\s*(\d{1,3}(?:[,.]\d{3})*(?:[,.]\d{2})?)(?!\d)"),
    re.compile(r"(?<![A-Za-z])R\s*(\d[\d\s,.']*)"),
)
_PERCENTAGE_RE = re.compile(r"(?<![\d.,])(\d+(?:[.,]\d+)?)\s*%")
_REFERENCE_RE = re.compile(r"(?<!\d)(\d{10,11})(?!\d)")
_ACCOUNT_RE = re.compile(r"(?<!\d)(\d{6,12})(?!\d)")
_TOKEN_RE = re.compile(r"\S+")

_OCR_CONFUSABLE = "|lIOS§BZG"
_OCR_DIGIT_TABLE = str.maketrans(
    {"|": "1", "l": "1", "I": "1", "O": "0", "S": "5", "§": "5", "B": "8", "Z": "2", "G": "6"}
)
_NUMERIC_PUNCTUATION = ",.%'"


def repair_ocr_digits(text: str) -> tuple[str, bool]:
    """Replace letters OCR commonly confuses with digits inside mostly-numeric tokens."""
    changed = False

    def fix(match: re.Match[str]) -> str:
        nonlocal changed
        token = match.group(0)
        prefix = "R" if token.startswith("R") and len(token) > 1 else ""
        body = token[len(prefix):]
        digits = sum(ch.isdigit() for ch in body)
        confusable = sum(ch in _OCR_CONFUSABLE for ch in body)
        other = len(body) - digits - confusable - sum(ch in _NUMERIC_PUNCTUATION for ch in body)
        if digits == 0 or confusable == 0 or other > 0 or confusable > digits:
            return token
        changed = True
        return prefix + body.translate(_OCR_DIGIT_TABLE)

    return _TOKEN_RE.sub(fix, text), changed


def parse_number(number_text: str) -> float | None:
    cleaned = number_text.strip().replace("'", "").rstrip(" ,.")
    if not cleaned:
        return None

    has_space = " " in cleaned
    if has_space and "," in cleaned:
        whole, _, decimals = cleaned.rpartition(",")
        if cleaned.count(",") == 1 and len(decimals) <= 2:
            cleaned = whole.replace(" ", "") + "." + decimals
        else:
            cleaned = cleaned.replace(" ", "").replace(",", "")
    elif has_space and "." in cleaned:
        whole, _, decimals = cleaned.rpartition(".")
        if cleaned.count(".") == 1 and len(decimals) <= 2:
            cleaned = whole.replace(" ", "") + "." + decimals
        else:
            cleaned = cleaned.replace(" ", "")
    elif has_space:
        cleaned = cleaned.replace(" ", "")
    elif "," in cleaned and "." in cleaned:
        cleaned = cleaned.replace(",", "")
    elif "," in cleaned:
        whole, _, decimals = cleaned.rpartition(",")
        if cleaned.count(",") == 1 and len(decimals) <= 2:
            cleaned = whole + "." + decimals
        else:
            cleaned = cleaned.replace(",", "")

    try:
        return float(cleaned)
    except ValueError:
        return None


def parse_amount(raw: str, min_digits: int = 4, ocr_repair: bool = False) -> ParsedAmount:
    text = raw.strip()
    if text == "":
        return ParsedAmount(raw=raw, value=None, parse_status="blank", parse_warnings=[])
    if "%" in text:
        return ParsedAmount(raw=raw, value=None, parse_status="invalid", parse_warnings=["PERCENT_SIGN_PRESENT"])

    warnings: list[str] = []
    if ocr_repair:
        text, changed = repair_ocr_digits(text)
        if changed:
            warnings.append("OCR_CHARACTERS_CORRECTED")

    for pattern in _CURRENCY_PATTERNS:
        for match in pattern.finditer(text):
            number_part = match.group(1).strip()
            if sum(ch.isdigit() for ch in number_part) < min_digits:
                if "TOO_FEW_DIGITS" not in warnings:
                    warnings.append("TOO_FEW_DIGITS")
                continue
            value = parse_number(number_part)
            if value is not None:
                return ParsedAmount(raw=raw, value=value, parse_status="parsed", parse_warnings=warnings)

    return ParsedAmount(raw=raw, value=None, parse_status="invalid", parse_warnings=warnings + ["UNPARSABLE"])


def parse_percentage(text: str) -> float | None:
    match = _PERCENTAGE_RE.search(text)
    if not match:
        return None
    return float(match.group(1).replace(",", "."))


def extract_value(
    text: str, value_type: ValueType, min_currency_digits: int = 4, ocr_repair: bool = False
) -> float | str | None:
    """Parse a typed value out of box text; ``None`` means no candidate, never zero."""
    if value_type is ValueType.CURRENCY:
        return parse_amount(text, min_digits=min_currency_digits, ocr_repair=ocr_repair).value

    if ocr_repair:
        text, _ = repair_ocr_digits(text)

    if value_type is ValueType.PERCENTAGE:
        return parse_percentage(text)
    if value_type is ValueType.REFERENCE:
        match = _REFERENCE_RE.search(text)
        return match.group(1) if match else None
    if value_type is ValueType.ACCOUNT:
        match = _ACCOUNT_RE.search(text)
        return match.group(1) if match else None
    raise ValueError(f"Unsupported value type: {value_type}")
