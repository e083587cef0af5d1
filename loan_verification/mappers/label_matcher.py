from __future__ import annotations

import re

from loan_verification.config import EngineConfig
from loan_verification.models.contracts import BoxSource, LabelMatch, MatchType, PositionedTextBox

# Characters OCR tends to swap; each maps to a shared canonical form.
_OCR_CANONICAL = str.maketrans({"1": "l", "i": "l", "|": "l", "0": "o", "5": "s"})


def _normalize(s: str) -> str:
    return re.sub(r"\s+", " ", s.lower()).strip()


def ocr_similar(word: str, other: str) -> bool:
    """Same word once common OCR confusions (l/1/I/|, o/0, s/5) are folded together."""
    if word == other or len(word) != len(other) or len(word) < 3:
        return False
    return word.translate(_OCR_CANONICAL) == other.translate(_OCR_CANONICAL)


class LabelMatcher:
    """Locate the caption text in front of a field value.

    Scores are layered: exact equality, prefix, substring, then partial word
    overlap scaled down so only near-complete overlaps clear the threshold.
    """

    def __init__(self, config: EngineConfig | None = None) -> None:
        self.config = config or EngineConfig()

    def score(self, box: PositionedTextBox, label: str) -> tuple[float, MatchType | None]:
        cfg = self.config
        box_text = _normalize(box.text)
        label_text = _normalize(label)
        if not box_text or not label_text:
            return 0.0, None

        if box_text == label_text:
            return cfg.exact_match_score, MatchType.EXACT
        if box_text.startswith(label_text):
            return cfg.prefix_match_score, MatchType.PREFIX
        if label_text in box_text:
            return cfg.contains_match_score, MatchType.CONTAINS

        words = label_text.split(" ")
        box_words = box_text.split(" ")
        matched = 0.0
        for word in words:
            if word in box_text:
                matched += 1
            elif box.source is BoxSource.OCR and any(ocr_similar(word, candidate) for candidate in box_words):
                matched += cfg.ocr_similar_word_credit
        if matched == 0:
            return 0.0, None
        return (matched / len(words)) * cfg.partial_match_weight, MatchType.PARTIAL

    def best_match(self, boxes: list[PositionedTextBox], labels: tuple[str, ...] | list[str]) -> LabelMatch | None:
        best: LabelMatch | None = None
        for label in labels:
            for box in boxes:
                score, match_type = self.score(box, label)
                if match_type is None or score <= self.config.label_accept_threshold:
                    continue
                if best is None or score > best.match_score:
                    best = LabelMatch(box=box, match_score=score, match_type=match_type, matched_label=label)
        return best

    def collect_all(self, boxes: list[PositionedTextBox], labels: tuple[str, ...] | list[str]) -> list[LabelMatch]:
        """Every qualifying label box, one per position, ordered top to bottom."""
        by_position: dict[tuple[int, float, float, str], LabelMatch] = {}
        for label in labels:
            for box in boxes:
                score, match_type = self.score(box, label)
                if match_type is None or score <= self.config.label_accept_threshold:
                    continue
                key = (box.page_index, box.x, box.y, box.text)
                existing = by_position.get(key)
                if existing is None or score > existing.match_score:
                    by_position[key] = LabelMatch(box=box, match_score=score, match_type=match_type, matched_label=label)
        return sorted(by_position.values(), key=lambda match: (match.box.page_index, match.box.y))
