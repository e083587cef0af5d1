from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from pydantic import ValidationError

from loan_verification.config import EngineConfig
from loan_verification.extractors.adapters import (
    DigitalTextExtractor,
    OCRExtractor,
    PageTextSource,
    boxes_from_digital_pages,
    boxes_from_ocr_words,
    has_valid_digital_text,
)
from loan_verification.extractors.box_merger import merge_boxes
from loan_verification.models.contracts import CaseModel, PositionedTextBox, ValidationResult, ValidationStatus
from loan_verification.models.errors import CaseModelError
from loan_verification.pipelines.context import ValidationContext
from loan_verification.pipelines.field_orchestrator import FieldOrchestrator
from loan_verification.validators.schema_validator import SchemaValidator

logger = logging.getLogger(__name__)

CASE_SCHEMA = "case_model.schema.json"
RESULT_SCHEMA = "validation_result.schema.json"


@dataclass
class ValidationRun:
    result: ValidationResult
    context: ValidationContext


def failure_result(message: str) -> ValidationResult:
    return ValidationResult(
        status=ValidationStatus.ERROR,
        confidence=0.0,
        fields={},
        issues=[message],
        summary={"total": 0, "found": 0, "valid": 0, "confidencePercent": 0},
    )


class DocumentValidator:
    """Verify one PAQ document against its case record.

    Holds no per-call state, so one instance can serve many threads; each call
    gets its own :class:`ValidationContext`.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        digital_extractor: PageTextSource | None = None,
        ocr_extractor: PageTextSource | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.digital_extractor = digital_extractor or DigitalTextExtractor()
        self.ocr_extractor = ocr_extractor or OCRExtractor(resolution=self.config.ocr_resolution)
        self.orchestrator = FieldOrchestrator(self.config)

    def validate_document(self, pdf_path: Path, case: CaseModel | Mapping[str, Any]) -> ValidationRun:
        pdf_path = Path(pdf_path)
        context = ValidationContext(document=pdf_path.name)
        context.log(f"Starting validation of {pdf_path}")
        try:
            boxes = self.extract_boxes(pdf_path, context)
            result = self._validate(boxes, _as_case(case), context)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Validation of %s failed", pdf_path.name)
            context.log(f"Validation failed: {exc}", logging.ERROR)
            result = failure_result(str(exc))
        return ValidationRun(result=result, context=context)

    def validate_boxes(
        self, boxes: list[PositionedTextBox], case: CaseModel | Mapping[str, Any], document: str = ""
    ) -> ValidationRun:
        context = ValidationContext(document=document)
        try:
            result = self._validate(list(boxes), _as_case(case), context)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Validation of %s failed", document or "<boxes>")
            context.log(f"Validation failed: {exc}", logging.ERROR)
            result = failure_result(str(exc))
        return ValidationRun(result=result, context=context)

    def validate_batch(
        self, jobs: list[tuple[Path, CaseModel | Mapping[str, Any]]], max_workers: int = 4
    ) -> list[ValidationRun]:
        """Validate independent documents concurrently; results keep the order of ``jobs``."""
        if not jobs:
            return []
        with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
            return list(pool.map(lambda job: self.validate_document(job[0], job[1]), jobs))

    def extract_boxes(self, pdf_path: Path, context: ValidationContext) -> list[PositionedTextBox]:
        pages = self.digital_extractor.extract_pages(pdf_path)
        if has_valid_digital_text(pages, self.config):
            context.log(f"Digital text layer found on {len(pages)} page(s)")
            return boxes_from_digital_pages(pages)

        context.log("No usable text layer, falling back to OCR")
        ocr_pages = self.ocr_extractor.extract_pages(pdf_path)
        scale = getattr(self.ocr_extractor, "point_scale", 1.0)
        boxes: list[PositionedTextBox] = []
        for page_index, words in enumerate(ocr_pages):
            boxes.extend(boxes_from_ocr_words(words, page_index, scale=scale, config=self.config))
        return boxes

    def _validate(self, boxes: list[PositionedTextBox], case: CaseModel, context: ValidationContext) -> ValidationResult:
        context.total_boxes = len(boxes)
        merged = merge_boxes(boxes, self.config)
        context.merged_boxes = len(merged)
        context.log(f"Extracted {len(boxes)} text boxes, {len(merged)} after merging")
        result = self.orchestrator.run(merged, case, context)
        context.log(
            f"Validation complete: {result.status.value}, "
            f"{result.summary['valid']}/{result.summary['total']} fields valid"
        )
        return result


def _as_case(case: CaseModel | Mapping[str, Any]) -> CaseModel:
    if isinstance(case, CaseModel):
        return case
    return CaseModel.from_mapping(case)


def _collect_pdfs(input_path: Path) -> list[Path]:
    if input_path.is_file() and input_path.suffix.lower() == ".pdf":
        return [input_path]
    if input_path.is_dir():
        return sorted(input_path.glob("*.pdf"))
    return []


def _case_path(pdf: Path, case_arg: Path) -> Path:
    # A case folder holds one <pdf stem>.json per document.
    return case_arg / f"{pdf.stem}.json" if case_arg.is_dir() else case_arg


def load_case(case_path: Path, schemas: SchemaValidator | None = None) -> CaseModel:
    try:
        payload = json.loads(case_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise CaseModelError(f"Cannot read case model {case_path}: {exc}") from exc
    errors = (schemas or SchemaValidator()).validate(payload, CASE_SCHEMA)
    if errors:
        raise CaseModelError(f"Case model {case_path.name} is invalid: " + "; ".join(errors))
    return CaseModel.from_mapping(payload)


def write_outputs(run: ValidationRun, pdf: Path, out_dir: Path) -> Path:
    out_dir.mkdir(parents=True, exist_ok=True)
    payload = run.result.to_dict()
    for error in SchemaValidator().validate(payload, RESULT_SCHEMA):
        logger.warning("Result for %s does not match schema: %s", pdf.name, error)
    result_path = out_dir / f"{pdf.stem}_validation.json"
    result_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    (out_dir / f"{pdf.stem}_validation_log.txt").write_text(run.context.render_log(), encoding="utf-8")
    return result_path


def main(argv: list[str] | None = None) -> int:
    import argparse

    parser = argparse.ArgumentParser(description="Verify PAQ loan documents against their case records.")
    parser.add_argument("--pdf", required=True, help="PDF file or folder containing PDFs")
    parser.add_argument("--case", required=True, help="Case model JSON, or a folder of <pdf stem>.json files")
    parser.add_argument("--out", help="Folder for <stem>_validation.json and <stem>_validation_log.txt")
    parser.add_argument("--workers", type=int, default=4, help="Documents validated in parallel")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    pdf_arg = Path(args.pdf)
    case_arg = Path(args.case)
    pdfs = _collect_pdfs(pdf_arg)
    if not pdfs:
        raise SystemExit(f"No PDFs found at: {pdf_arg}")

    jobs: list[tuple[Path, CaseModel]] = []
    for pdf in pdfs:
        try:
            jobs.append((pdf, load_case(_case_path(pdf, case_arg))))
        except CaseModelError as exc:
            print(f"ERROR: {pdf.name}: {exc}")
            return 2

    try:
        config = EngineConfig()
    except ValidationError as exc:
        print(f"ERROR: invalid LOANDOC_* setting: {exc}")
        return 2

    validator = DocumentValidator(config)
    runs = validator.validate_batch(jobs, max_workers=args.workers)

    for (pdf, _), run in zip(jobs, runs):
        summary = run.result.summary
        print(f"{run.result.status.value}: {pdf.name} ({summary['valid']}/{summary['total']} fields valid)")
        for issue in run.result.issues:
            print(f"  - {issue}")
        if args.out:
            write_outputs(run, pdf, Path(args.out))

    return 0 if all(run.result.status is ValidationStatus.VALID for run in runs) else 1


if __name__ == "__main__":
    raise SystemExit(main())
