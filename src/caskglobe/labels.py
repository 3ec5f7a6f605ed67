"""Greedy label placement around projected point markers."""

from __future__ import annotations

import logging
from typing import Sequence

from .config import LabelsConfig
from .models import LabelCandidate, PlacedLabel, is_finite_pair


_LOGGER = logging.getLogger("caskglobe.labels")

_PixelBBox = tuple[float, float, float, float]


class LabelPlacer:
    """Places labels one at a time in the order given.

    Each candidate takes the offset with the lowest score, where the score is
    the area it overlaps already placed labels plus a small penalty that grows
    with the offset's ring radius. Earlier candidates are never revisited, so
    callers put the labels that matter most first.
    """

    def __init__(self, cfg: LabelsConfig | None = None) -> None:
        self.cfg = cfg if cfg is not None else LabelsConfig()

    def place_labels(
        self,
        candidates: Sequence[LabelCandidate],
        placed: Sequence[_PixelBBox] = (),
    ) -> tuple[list[PlacedLabel], tuple[_PixelBBox, ...]]:
        occupied: list[_PixelBBox] = list(placed)
        out: list[PlacedLabel] = []
        skipped = 0
        for idx, candidate in enumerate(candidates):
            if not is_finite_pair(candidate.anchor):
                skipped += 1
                continue
            placement = self._place_candidate(
                candidate=candidate,
                anchor=(float(candidate.anchor[0]), float(candidate.anchor[1])),
                index=idx,
                occupied=occupied,
            )
            out.append(placement)
            occupied.append(placement.box)
        if skipped:
            _LOGGER.debug("Skipped %d labels without a visible anchor", skipped)
        return (out, tuple(occupied))

    def _place_candidate(
        self,
        *,
        candidate: LabelCandidate,
        anchor: tuple[float, float],
        index: int,
        occupied: Sequence[_PixelBBox],
    ) -> PlacedLabel:
        ax, ay = anchor
        best: tuple[float, float, int, int, _PixelBBox] | None = None
        for dx, dy in self.cfg.offsets_px:
            bbox = _label_bbox(
                x=ax + dx,
                y=ay + dy,
                size=candidate.size,
                padding_px=self.cfg.collision_padding_px,
            )
            overlap = _total_overlap_area(bbox, occupied)
            score = overlap + self._distance_penalty(dx, dy)
            if best is None or score < best[0]:
                best = (score, overlap, dx, dy, bbox)
        if best is None:
            raise ValueError("labels.offsets_px must contain at least one offset")
        _, overlap, dx, dy, bbox = best
        return PlacedLabel(
            key=candidate.key,
            position=(ax + dx, ay + dy),
            offset=(float(dx), float(dy)),
            box=bbox,
            source_index=index,
            overlap=overlap,
        )

    def _distance_penalty(self, dx: float, dy: float) -> float:
        return self.cfg.distance_weight * max(abs(dx), abs(dy))


def _label_bbox(
    *,
    x: float,
    y: float,
    size: tuple[float, float],
    padding_px: int,
) -> _PixelBBox:
    # Labels hang off their position vertically centered, left aligned.
    width, height = float(size[0]), float(size[1])
    top = y - height * 0.5
    return (
        x - padding_px,
        top - padding_px,
        x + width + padding_px,
        top + height + padding_px,
    )


def _total_overlap_area(
    bbox: _PixelBBox,
    occupied: Sequence[_PixelBBox],
) -> float:
    return sum(_intersection_area(bbox, current) for current in occupied)


def _intersection_area(
    left: _PixelBBox,
    right: _PixelBBox,
) -> float:
    x0 = max(left[0], right[0])
    y0 = max(left[1], right[1])
    x1 = min(left[2], right[2])
    y1 = min(left[3], right[3])
    if x1 <= x0 or y1 <= y0:
        return 0.0
    return (x1 - x0) * (y1 - y0)
