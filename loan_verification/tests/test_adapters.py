from __future__ import annotations

import pytest

from loan_verification.extractors.adapters import (
    OCRExtractor,
    boxes_from_digital_pages,
    boxes_from_ocr_words,
    has_valid_digital_text,
)
from loan_verification.models.contracts import BoxSource


def _item(text: str, x: float = 10, y: float = 10) -> dict:
    return {"text": text, "x": x, "y": y, "width": 40, "height": 10, "page": 0, "pageWidth": 595, "pageHeight": 842}


def _word(text: str, x0: int, y0: int, x1: int, y1: int, confidence: float = 0.9) -> dict:
    return {"text": text, "bbox": {"x0": x0, "y0": y0, "x1": x1, "y1": y1}, "confidence": confidence}


def test_digital_predicate_needs_enough_items_and_real_text() -> None:
    assert has_valid_digital_text([[_item("Payout")] * 11])
    assert not has_valid_digital_text([[_item("Payout")] * 10])
    assert not has_valid_digital_text([[_item("R")] * 20])
    assert not has_valid_digital_text([])
    assert has_valid_digital_text([[], [_item("abc")] * 10 + [_item("amount")]])


def test_digital_items_become_boxes() -> None:
    pages = [[_item("Payout", 50, 100), _item("  ", 90, 100)], [_item("R211.25", 400, 120)]]
    pages[1][0]["page"] = 1
    boxes = boxes_from_digital_pages(pages)
    assert [b.text for b in boxes] == ["Payout", "R211.25"]
    assert boxes[1].page_index == 1
    assert boxes[0].source is BoxSource.DIGITAL
    assert (boxes[0].x, boxes[0].y, boxes[0].width, boxes[0].height) == (50, 100, 40, 10)


def test_ocr_words_normalized_from_corner_coordinates() -> None:
    (box,) = boxes_from_ocr_words([_word("Payout", 150, 300, 240, 330)], page_index=2)
    assert (box.x, box.y, box.width, box.height) == (150, 300, 90, 30)
    assert box.page_index == 2
    assert box.source is BoxSource.OCR
    assert box.confidence == 0.9


def test_ocr_words_scaled_to_points() -> None:
    (box,) = boxes_from_ocr_words([_word("Payout", 300, 600, 480, 636)], page_index=0, scale=72 / 216)
    assert box.x == pytest.approx(100)
    assert box.y == pytest.approx(200)
    assert box.width == pytest.approx(60)
    assert box.height == pytest.approx(12)


def test_low_quality_ocr_words_dropped() -> None:
    words = [
        _word("amount", 10, 10, 80, 30, confidence=0.3),
        _word("R", 10, 10, 14, 30),
        _word("R211.25", 10, 10, 80, 14),
        _word("  ", 10, 10, 80, 30),
        _word("Payout", 10, 10, 80, 30, confidence=0.31),
    ]
    assert [b.text for b in boxes_from_ocr_words(words, page_index=0)] == ["Payout"]


def test_ocr_point_scale() -> None:
    assert OCRExtractor(resolution=144).point_scale == 0.5
