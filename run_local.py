from pathlib import Path

from loan_verification.config import EngineConfig
from loan_verification.pipelines.document_validator import DocumentValidator, load_case, write_outputs

INPUT_PATH = Path("data/pdf")
CASE_PATH = Path("data/cases")
OUTPUT_ROOT = Path("data/output")


def collect_pdfs(p: Path) -> list[Path]:
    if p.is_file() and p.suffix.lower() == ".pdf":
        return [p]
    if p.is_dir():
        return sorted(p.glob("*.pdf"))
    return []


if __name__ == "__main__":
    pdfs = collect_pdfs(INPUT_PATH)
    if not pdfs:
        raise SystemExit(f"No PDFs found at: {INPUT_PATH}")

    validator = DocumentValidator(EngineConfig())

    for pdf in pdfs:
        case = load_case(CASE_PATH / f"{pdf.stem}.json")
        run = validator.validate_document(pdf, case)
        result_path = write_outputs(run, pdf, OUTPUT_ROOT)
        print(f"{run.result.status.value}: {pdf.name} -> {result_path}")
