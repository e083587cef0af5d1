from __future__ import annotations

import json
from pathlib import Path

import pytest

from loan_verification.models.contracts import Bounds, BoxSource, CaseModel, PositionedTextBox, ValidationStatus
from loan_verification.models.errors import CaseModelError, ExtractionFailure
from loan_verification.pipelines.context import ValidationContext
from loan_verification.pipelines.document_validator import DocumentValidator, load_case, main, write_outputs

CASE = {
    "caseId": "10016998899",
    "loanAmount": 90640.57,
    "instalment": 2145.30,
    "interestRate": 21.75,
    "insurancePremium": 321.46,
    "collectionAccountNo": "6200123456",
    "isStaff": "No",
}

# (text, x, y, width) rows of a digital PAQ page, 30pt line pitch.
PAQ_ROWS = [
    ("Pre-agreement quote", 50, 20, 200),
    ("Case reference no", 50, 50, 120),
    ("10016998899", 400, 50, 80),
    ("Payout amount R90 640,57", 50, 80, 220),
    ("Monthly instalment (including interest", 50, 110, 250),
    ("R2 145,30", 450, 110, 60),
    ("Annual interest rate - fixed", 50, 140, 180),
    ("21.75%", 450, 140, 40),
    ("Credit life insurance (included in", 50, 170, 220),
    ("R321,46", 450, 170, 50),
    ("Account number", 50, 200, 100),
    ("6200123456", 450, 200, 70),
]


def _items(rows: list[tuple[str, float, float, float]]) -> list[dict]:
    return [
        {"text": text, "x": x, "y": y, "width": w, "height": 10, "page": 0, "pageWidth": 595, "pageHeight": 842}
        for text, x, y, w in rows
    ]


def _boxes(rows: list[tuple[str, float, float, float]]) -> list[PositionedTextBox]:
    return [PositionedTextBox(text, Bounds(x, y, w, 10), 0, BoxSource.DIGITAL) for text, x, y, w in rows]


class StaticPages:
    def __init__(self, pages: list[list[dict]]) -> None:
        self.pages = pages
        self.calls = 0

    def extract_pages(self, pdf_path: Path) -> list[list[dict]]:
        self.calls += 1
        return self.pages


class FailingPages:
    def extract_pages(self, pdf_path: Path) -> list[list[dict]]:
        raise ExtractionFailure(f"Digital text extraction failed for {pdf_path.name}: broken xref")


class PagesByName:
    def __init__(self, documents: dict[str, list[list[dict]]]) -> None:
        self.documents = documents

    def extract_pages(self, pdf_path: Path) -> list[list[dict]]:
        return self.documents[pdf_path.name]


def _validator(pages: list[list[dict]] | None = None, ocr_pages: list[list[dict]] | None = None) -> DocumentValidator:
    return DocumentValidator(
        digital_extractor=StaticPages(pages if pages is not None else [_items(PAQ_ROWS)]),
        ocr_extractor=StaticPages(ocr_pages or []),
    )


def test_digital_document_all_fields_valid() -> None:
    run = _validator().validate_document(Path("paq.pdf"), CASE)
    result = run.result
    assert result.status is ValidationStatus.VALID
    assert result.issues == []
    assert result.confidence == 1.0
    assert result.summary == {"total": 6, "found": 6, "valid": 6, "confidencePercent": 100}
    assert result.fields["caseId"].method == "direct_match"
    assert result.fields["interestRate"].found == 21.75
    assert result.fields["collectionAccountNo"].found == "6200123456"
    assert run.context.counters()["fieldsValid"] == 6


def test_embedded_payout_amount() -> None:
    result = _validator().validate_document(Path("paq.pdf"), CASE).result
    loan = result.fields["loanAmount"]
    assert loan.found == pytest.approx(90640.57)
    assert loan.valid is True
    assert "embedded" in loan.method


def test_missing_label_reported_as_not_found() -> None:
    rows = [row for row in PAQ_ROWS if row[0] not in ("Account number", "6200123456")]
    result = DocumentValidator().validate_boxes(_boxes(rows), CASE).result
    assert "collectionAccountNo" not in result.fields
    assert "Field not found: collectionAccountNo" in result.issues
    assert result.status is ValidationStatus.INVALID
    assert result.summary["found"] == 5
    assert result.confidence == pytest.approx(5 / 6)


def test_extraction_failure_yields_error_result() -> None:
    validator = DocumentValidator(digital_extractor=FailingPages(), ocr_extractor=StaticPages([]))
    run = validator.validate_document(Path("broken.pdf"), CASE)
    assert run.result.status is ValidationStatus.ERROR
    assert run.result.fields == {}
    assert len(run.result.issues) == 1
    assert "broken xref" in run.result.issues[0]
    assert run.result.summary == {"total": 0, "found": 0, "valid": 0, "confidencePercent": 0}


def test_malformed_case_yields_error_result() -> None:
    run = _validator().validate_document(Path("paq.pdf"), {**CASE, "isStaff": "maybe"})
    assert run.result.status is ValidationStatus.ERROR
    assert len(run.result.issues) == 1


def test_missing_case_value_is_reported_and_skipped() -> None:
    case = {**CASE, "interestRate": "", "insurancePremium": None}
    result = _validator().validate_document(Path("paq.pdf"), case).result
    assert "Missing required field in case model: interestRate" in result.issues
    assert "Missing required field in case model: insurancePremium" in result.issues
    assert "interestRate" not in result.fields
    assert result.summary["valid"] == 4
    assert result.status is ValidationStatus.INVALID


def test_mismatch_reports_expected_and_found() -> None:
    result = _validator().validate_document(Path("paq.pdf"), {**CASE, "instalment": 2200.00}).result
    instalment = result.fields["instalment"]
    assert instalment.valid is False
    assert instalment.found == pytest.approx(2145.30)
    assert instalment.method == "spatial_nearest"
    assert "instalment: expected 2200.0, found 2145.3" in result.issues


def test_staff_fallback_limited_to_financial_fields() -> None:
    case = {**CASE, "isStaff": True, "instalment": 999.99, "loanAmount": 80000.00}
    result = _validator().validate_document(Path("paq.pdf"), case).result
    assert result.fields["instalment"].method == "multi_table_staff_accepted"
    assert result.fields["instalment"].valid is True
    assert result.fields["loanAmount"].valid is False
    assert result.issues == ["loanAmount: expected 80000.0, found 90640.57"]


def test_staff_document_falls_back_to_single_table() -> None:
    rows = [("Monthly instalment (including interest", 50, 110, 250), ("R0 000,00", 450, 110, 60)]
    case = CaseModel(values={"instalment": 500.0}, is_staff=True)
    result = DocumentValidator().validate_boxes(_boxes(rows), case).result
    assert result.fields["instalment"].method == "single_table_fallback"
    assert result.fields["instalment"].valid is False


def test_scanned_document_uses_ocr() -> None:
    words = [
        {"text": "Payout", "bbox": {"x0": 50, "y0": 100, "x1": 100, "y1": 112}, "confidence": 0.93},
        {"text": "amount", "bbox": {"x0": 106, "y0": 100, "x1": 160, "y1": 112}, "confidence": 0.91},
        {"text": "R9O", "bbox": {"x0": 170, "y0": 100, "x1": 195, "y1": 112}, "confidence": 0.62},
        {"text": "640,57", "bbox": {"x0": 200, "y0": 100, "x1": 250, "y1": 112}, "confidence": 0.88},
        {"text": "~", "bbox": {"x0": 300, "y0": 100, "x1": 303, "y1": 103}, "confidence": 0.12},
    ]
    digital = StaticPages([[]])
    ocr = StaticPages([words])
    validator = DocumentValidator(digital_extractor=digital, ocr_extractor=ocr)
    run = validator.validate_document(Path("scan.pdf"), {"loanAmount": 90640.57})
    loan = run.result.fields["loanAmount"]
    assert ocr.calls == 1
    assert loan.valid is True
    assert loan.method == "embedded_value_match"
    assert loan.value_box is not None and loan.value_box.source is BoxSource.OCR
    assert run.context.total_boxes == 4
    assert run.context.merged_boxes == 1


def test_batch_shares_one_validator() -> None:
    mismatched = [row if row[0] != "R2 145,30" else ("R2 245,30", 450, 110, 60) for row in PAQ_ROWS]
    documents = {f"paq_{i}.pdf": [_items(mismatched if i % 2 else PAQ_ROWS)] for i in range(8)}
    validator = DocumentValidator(digital_extractor=PagesByName(documents), ocr_extractor=StaticPages([]))
    runs = validator.validate_batch([(Path(name), CASE) for name in documents], max_workers=4)
    assert [run.context.document for run in runs] == list(documents)
    assert [run.result.status for run in runs] == [
        ValidationStatus.INVALID if i % 2 else ValidationStatus.VALID for i in range(8)
    ]
    assert all(run.context.fields_processed == 6 for run in runs)


def test_outputs_written(tmp_path: Path) -> None:
    run = _validator().validate_document(Path("paq.pdf"), CASE)
    result_path = write_outputs(run, Path("paq.pdf"), tmp_path / "out")
    payload = json.loads(result_path.read_text(encoding="utf-8"))
    assert result_path.name == "paq_validation.json"
    assert payload["status"] == "VALID"
    assert payload["fields"]["loanAmount"]["labelBox"]["text"] == "Payout amount R90 640,57"
    log_text = (tmp_path / "out" / "paq_validation_log.txt").read_text(encoding="utf-8")
    assert "DEBUG LOG SUMMARY" in log_text
    assert "Success rate: 100%" in log_text


def test_load_case_checks_schema(tmp_path: Path) -> None:
    good = tmp_path / "good.json"
    good.write_text(json.dumps({**CASE, "isStaff": "Yes"}), encoding="utf-8")
    assert load_case(good).is_staff is True

    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({**CASE, "loanAmount": "lots"}), encoding="utf-8")
    with pytest.raises(CaseModelError):
        load_case(bad)


def test_cli_rejects_invalid_case(tmp_path: Path) -> None:
    pdf = tmp_path / "paq.pdf"
    pdf.write_bytes(b"%PDF-1.4\n")
    case = tmp_path / "paq.json"
    case.write_text(json.dumps({**CASE, "isStaff": 3}), encoding="utf-8")
    assert main(["--pdf", str(pdf), "--case", str(case)]) == 2


def test_scanned_row_with_vertical_jitter_is_read_as_one_line() -> None:
    words = [
        {"text": "Payout", "bbox": {"x0": 50, "y0": 100, "x1": 100, "y1": 112}, "confidence": 0.93},
        {"text": "amount", "bbox": {"x0": 106, "y0": 99, "x1": 160, "y1": 111}, "confidence": 0.91},
        {"text": "R90", "bbox": {"x0": 170, "y0": 100, "x1": 195, "y1": 112}, "confidence": 0.9},
        {"text": "640,57", "bbox": {"x0": 200, "y0": 99, "x1": 250, "y1": 111}, "confidence": 0.88},
    ]
    validator = DocumentValidator(digital_extractor=StaticPages([[]]), ocr_extractor=StaticPages([words]))
    run = validator.validate_document(Path("scan.pdf"), {"loanAmount": 90640.57})
    loan = run.result.fields["loanAmount"]
    assert loan.valid is True
    assert loan.method == "embedded_value_match"
    assert loan.label_box is not None and loan.label_box.text == "Payout amount R90 640,57"
    assert "Field not found: loanAmount" not in run.result.issues


def test_cli_rejects_invalid_engine_setting(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    pdf = tmp_path / "paq.pdf"
    pdf.write_bytes(b"%PDF-1.4\n")
    case = tmp_path / "paq.json"
    case.write_text(json.dumps(CASE), encoding="utf-8")
    monkeypatch.setenv("LOANDOC_MIN_CURRENCY_DIGITS", "3.5")
    assert main(["--pdf", str(pdf), "--case", str(case)]) == 2


class ScaledPages(StaticPages):
    point_scale = 0.5


def test_ocr_pixels_rescaled_to_points_by_extractor_scale() -> None:
    words = [{"text": "Payout", "bbox": {"x0": 100, "y0": 200, "x1": 200, "y1": 224}, "confidence": 0.9}]
    validator = DocumentValidator(digital_extractor=StaticPages([[]]), ocr_extractor=ScaledPages([words]))
    (box,) = validator.extract_boxes(Path("scan.pdf"), ValidationContext(document="scan.pdf"))
    assert (box.x, box.y, box.width, box.height) == (50, 100, 50, 12)

    unscaled = DocumentValidator(digital_extractor=StaticPages([[]]), ocr_extractor=StaticPages([words]))
    (raw,) = unscaled.extract_boxes(Path("scan.pdf"), ValidationContext(document="scan.pdf"))
    assert (raw.x, raw.y, raw.width, raw.height) == (100, 200, 100, 24)
