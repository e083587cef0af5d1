from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Protocol

import pdfplumber
import pytesseract

from loan_verification.config import EngineConfig
from loan_verification.models.contracts import BoxSource, Bounds, PositionedTextBox
from loan_verification.models.errors import ExtractionFailure

logger = logging.getLogger(__name__)

PageItems = list[dict[str, Any]]


class PageTextSource(Protocol):
    def extract_pages(self, pdf_path: Path) -> list[PageItems]: ...


class DigitalTextExtractor:
    """Native PDF text as positioned items: ``{text, x, y, width, height, page, pageWidth, pageHeight}``."""

    def extract_pages(self, pdf_path: Path) -> list[PageItems]:
        try:
            with pdfplumber.open(str(pdf_path)) as pdf:
                return [self._page_items(page, index) for index, page in enumerate(pdf.pages)]
        except Exception as exc:  # noqa: BLE001
            raise ExtractionFailure(f"Digital text extraction failed for {pdf_path.name}: {exc}") from exc

    @staticmethod
    def _page_items(page: Any, page_index: int) -> PageItems:
        items: PageItems = []
        for word in page.extract_words(use_text_flow=True) or []:
            items.append(
                {
                    "text": word["text"],
                    "x": float(word["x0"]),
                    "y": float(word["top"]),
                    "width": float(word["x1"]) - float(word["x0"]),
                    "height": float(word["bottom"]) - float(word["top"]),
                    "page": page_index,
                    "pageWidth": float(page.width),
                    "pageHeight": float(page.height),
                }
            )
        return items


class OCRExtractor:
    """Tesseract word boxes per rendered page: ``{text, bbox: {x0, y0, x1, y1}, confidence}``.

    Boxes are in pixels of the page rendered at ``resolution`` DPI.
    :class:`DocumentValidator` rescales them to PDF points by :attr:`point_scale`
    (``72 / resolution``) so OCR and digital boxes share the engine's thresholds.
    Callers normalizing the words themselves get raw pixels unless they pass
    that scale to :func:`boxes_from_ocr_words`.
    """


    def __init__(self, resolution: int = 216, tesseract_config: str = "--oem 1 --psm 6") -> None:
        self.resolution = resolution
        self.tesseract_config = tesseract_config

    @property
    def point_scale(self) -> float:
        """Factor mapping rendered pixels back to PDF points."""
        return 72.0 / self.resolution

    def extract_pages(self, pdf_path: Path) -> list[PageItems]:
        try:
            with pdfplumber.open(str(pdf_path)) as pdf:
                pages: list[PageItems] = []
                for page in pdf.pages:
                    image = page.to_image(resolution=self.resolution).original
                    pages.append(self.recognize(image))
                return pages
        except Exception as exc:  # noqa: BLE001
            raise ExtractionFailure(f"OCR extraction failed for {pdf_path.name}: {exc}") from exc

    def recognize(self, image: Any) -> PageItems:
        data = pytesseract.image_to_data(image, output_type=pytesseract.Output.DICT, config=self.tesseract_config)
        words: PageItems = []
        for i in range(len(data["text"])):
            text = (data["text"][i] or "").strip()
            if not text:
                continue
            try:
                conf = float(data["conf"][i])
            except (TypeError, ValueError):
                conf = -1.0
            left, top = int(data["left"][i]), int(data["top"][i])
            words.append(
                {
                    "text": text,
                    "bbox": {
                        "x0": left,
                        "y0": top,
                        "x1": left + int(data["width"][i]),
                        "y1": top + int(data["height"][i]),
                    },
                    "confidence": max(conf, 0.0) / 100.0,
                }
            )
        return words


def has_valid_digital_text(pages: list[PageItems], config: EngineConfig | None = None) -> bool:
    cfg = config or EngineConfig()
    return any(
        len(items) > cfg.min_digital_items
        and any(len(str(item.get("text") or "").strip()) > cfg.min_digital_text_length for item in items)
        for items in pages
    )


def boxes_from_digital_pages(pages: list[PageItems]) -> list[PositionedTextBox]:
    boxes: list[PositionedTextBox] = []
    for page_index, items in enumerate(pages):
        for item in items:
            text = str(item.get("text") or "").strip()
            if not text:
                continue
            boxes.append(
                PositionedTextBox(
                    text=text,
                    bounds=_clamped_bounds(item["x"], item["y"], item["width"], item["height"]),
                    page_index=int(item.get("page", page_index)),
                    source=BoxSource.DIGITAL,
                    confidence=1.0,
                )
            )
    return boxes


def boxes_from_ocr_words(
    words: PageItems,
    page_index: int,
    scale: float = 1.0,
    config: EngineConfig | None = None,
) -> list[PositionedTextBox]:
    """Normalize OCR words (``x=x0, y=y0, width=x1-x0, height=y1-y0``) and drop low-quality ones.

    Every coordinate is multiplied by ``scale``; the default 1.0 keeps the
    bbox units unchanged.
    """
    cfg = config or EngineConfig()
    boxes: list[PositionedTextBox] = []
    dropped = 0
    for word in words:
        text = str(word.get("text") or "").strip()
        bbox = word["bbox"]
        width = bbox["x1"] - bbox["x0"]
        height = bbox["y1"] - bbox["y0"]
        confidence = float(word.get("confidence", 0.0))
        if not text or confidence <= cfg.min_ocr_confidence or width <= cfg.min_ocr_box_size or height <= cfg.min_ocr_box_size:
            dropped += 1
            continue
        boxes.append(
            PositionedTextBox(
                text=text,
                bounds=_clamped_bounds(bbox["x0"] * scale, bbox["y0"] * scale, width * scale, height * scale),
                page_index=page_index,
                source=BoxSource.OCR,
                confidence=confidence,
            )
        )
    if dropped:
        logger.debug("Dropped %d low-quality OCR words on page %d", dropped, page_index)
    return boxes


def _clamped_bounds(x: float, y: float, width: float, height: float) -> Bounds:
    return Bounds(x=max(float(x), 0.0), y=max(float(y), 0.0), width=max(float(width), 0.0), height=max(float(height), 0.0))
