from __future__ import annotations

import logging
from itertools import groupby

from loan_verification.config import EngineConfig
from loan_verification.models.contracts import Bounds, MergedBox, PositionedTextBox

logger = logging.getLogger(__name__)


def merge_boxes(boxes: list[PositionedTextBox], config: EngineConfig | None = None) -> list[MergedBox]:
    """Reassemble words split across adjacent boxes into logical text runs.

    Boxes are merged only within one page of one extraction pass. Each group is
    merged pass by pass until a pass changes nothing, so the output is a
    fixpoint: merging it again returns it unchanged.
    """
    if len(boxes) <= 1:
        return list(boxes)

    cfg = config or EngineConfig()

    def group_key(box: PositionedTextBox) -> tuple[int, str]:
        return box.page_index, box.source.value

    merged: list[MergedBox] = []
    for _, group in groupby(sorted(boxes, key=group_key), key=group_key):
        current = list(group)
        passes = 0
        while True:
            current, changed = _merge_pass(current, cfg)
            passes += 1
            if not changed:
                break
        merged.extend(current)
        logger.debug("Merged page group in %d pass(es) into %d boxes", passes, len(current))
    return merged


def _reading_order(boxes: list[PositionedTextBox], cfg: EngineConfig) -> list[PositionedTextBox]:
    """Top to bottom by row, left to right within a row.

    Tops within ``merge_vertical_min`` of the row's first box share the row, so
    a fragment jittered a pixel upwards still follows its left neighbour.
    """
    keyed: list[tuple[int, float, PositionedTextBox]] = []
    row = -1
    row_top: float | None = None
    for box in sorted(boxes, key=lambda b: (b.y, b.x)):
        if row_top is None or box.y - row_top > cfg.merge_vertical_min:
            row += 1
            row_top = box.y
        keyed.append((row, box.x, box))
    keyed.sort(key=lambda item: (item[0], item[1]))
    return [box for _, _, box in keyed]


def _merge_pass(boxes: list[PositionedTextBox], cfg: EngineConfig) -> tuple[list[PositionedTextBox], bool]:
    pending = _reading_order(boxes, cfg)
    result: list[PositionedTextBox] = []
    changed = False

    while pending:
        current = pending.pop(0)
        j = 0
        while j < len(pending):
            candidate = pending[j]
            # Either box may be the left fragment.
            if _should_merge(current, candidate, cfg) or _should_merge(candidate, current, cfg):
                current = _combine(current, candidate)
                pending.pop(j)
                changed = True
            else:
                j += 1
        result.append(current)

    return result, changed


def _should_merge(current: PositionedTextBox, candidate: PositionedTextBox, cfg: EngineConfig) -> bool:
    vertical_limit = max(current.height * cfg.merge_vertical_factor, cfg.merge_vertical_min)
    gap_limit = max(current.height * cfg.merge_gap_factor, cfg.merge_gap_min)
    aligned = abs(current.y - candidate.y) <= vertical_limit
    adjacent = abs(candidate.x - current.right) <= gap_limit
    return aligned and adjacent


def _combine(first: PositionedTextBox, second: PositionedTextBox) -> PositionedTextBox:
    if second.x < first.x:
        first, second = second, first
    left = min(first.x, second.x)
    top = min(first.y, second.y)
    right = max(first.right, second.right)
    bottom = max(first.bottom, second.bottom)
    return PositionedTextBox(
        text=f"{first.text} {second.text}",
        bounds=Bounds(x=left, y=top, width=right - left, height=max(first.height, second.height, bottom - top)),
        page_index=first.page_index,
        source=first.source,
        confidence=min(first.confidence, second.confidence),
    )
