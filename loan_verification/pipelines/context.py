from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

logger = logging.getLogger("loan_verification.trace")


@dataclass
class ValidationContext:
    """Mutable state for a single validation call: debug trace and counters.

    A fresh context is created per document so one validator instance can be
    shared between threads.
    """

    document: str = ""
    trace: list[str] = field(default_factory=list)
    total_boxes: int = 0
    merged_boxes: int = 0
    fields_processed: int = 0
    fields_found: int = 0
    fields_valid: int = 0

    def log(self, message: str, level: int = logging.DEBUG) -> None:
        stamp = datetime.now(timezone.utc).isoformat()
        self.trace.append(f"[{stamp}] {message}")
        if self.document:
            logger.log(level, "%s: %s", self.document, message)
        else:
            logger.log(level, "%s", message)

    def counters(self) -> dict[str, int]:
        return {
            "totalBoxes": self.total_boxes,
            "mergedBoxes": self.merged_boxes,
            "fieldsProcessed": self.fields_processed,
            "fieldsFound": self.fields_found,
            "fieldsValid": self.fields_valid,
        }

    def render_log(self) -> str:
        success = round(self.fields_valid / self.fields_processed * 100) if self.fields_processed else 0
        footer = [
            "=" * 60,
            "DEBUG LOG SUMMARY",
            "=" * 60,
            f"Total bounding boxes: {self.total_boxes}",
            f"Merged boxes: {self.merged_boxes}",
            f"Fields processed: {self.fields_processed}",
            f"Fields found: {self.fields_found}",
            f"Fields valid: {self.fields_valid}",
            f"Success rate: {success}%",
            "=" * 60,
        ]
        return "\n".join(self.trace + [""] + footer) + "\n"
