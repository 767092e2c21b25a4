"""
Region Capture Model - Tracks watermark rectangles drawn over the video preview.

All coordinates here are viewport-space pixels (relative to the rendered
preview element). Mapping to native video pixels happens in filter_pipeline.

Drawing is modelled as an explicit draft state machine:
- begin_draft: pointer down, opens a zero-size draft at the anchor
- update_draft: pointer move, recomputes the draft from the anchor
- end_draft: pointer up / leave, promotes or discards the draft
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_MIN_REGION_SIZE = 10.0


@dataclass(frozen=True)
class Point:
    """A pointer position in viewport pixels."""

    x: float
    y: float


@dataclass
class Rectangle:
    """An axis-aligned viewport-space rectangle."""

    id: str
    x: float
    y: float
    width: float
    height: float


@dataclass
class _Draft:
    anchor: Point
    x: float
    y: float
    width: float = 0.0
    height: float = 0.0


class RegionCaptureModel:
    """
    Owns the finalized rectangles plus the one rectangle being drawn.

    Finalized rectangles are kept in selection order. That order is used
    for display numbering ("Area 1", "Area 2", ...) and for the order of
    the removal operations in the filter chain.
    """

    def __init__(self, min_region_size: float = DEFAULT_MIN_REGION_SIZE):
        self.min_region_size = min_region_size
        self._regions: list[Rectangle] = []
        self._draft: Optional[_Draft] = None

    @property
    def regions(self) -> list[Rectangle]:
        """Finalized rectangles in selection order (copy)."""
        return list(self._regions)

    @property
    def draft(self) -> Optional[Rectangle]:
        """The open draft as an id-less rectangle, or None."""
        if self._draft is None:
            return None
        return Rectangle(
            id="",
            x=self._draft.x,
            y=self._draft.y,
            width=self._draft.width,
            height=self._draft.height,
        )

    @property
    def is_drawing(self) -> bool:
        return self._draft is not None

    def __len__(self) -> int:
        return len(self._regions)

    def begin_draft(self, anchor: Point) -> None:
        """Open a zero-size draft at anchor. Ignored while a draft is open."""
        if self._draft is not None:
            return
        self._draft = _Draft(anchor=anchor, x=anchor.x, y=anchor.y)

    def update_draft(self, current: Point) -> None:
        """
        Recompute the draft as the bounding box of the anchor and current.

        Always derived from the original anchor so repeated moves never drift,
        and normalized so dragging in any direction gives non-negative size.
        """
        if self._draft is None:
            return
        anchor = self._draft.anchor
        self._draft.x = min(anchor.x, current.x)
        self._draft.y = min(anchor.y, current.y)
        self._draft.width = abs(current.x - anchor.x)
        self._draft.height = abs(current.y - anchor.y)

    def end_draft(self) -> Optional[Rectangle]:
        """
        Close the draft.

        Returns:
            The finalized rectangle, or None if there was no draft or it
            was too small on either axis (accidental clicks).
        """
        draft = self._draft
        self._draft = None
        if draft is None:
            return None

        if draft.width <= self.min_region_size or draft.height <= self.min_region_size:
            logger.debug(
                f"Discarded draft {draft.width:.1f}x{draft.height:.1f} "
                f"(minimum {self.min_region_size})"
            )
            return None

        region = Rectangle(
            id=uuid.uuid4().hex,
            x=draft.x,
            y=draft.y,
            width=draft.width,
            height=draft.height,
        )
        self._regions.append(region)
        logger.debug(f"Region {region.id} finalized as {self.label_for(region.id)}")
        return region

    def remove_region(self, region_id: str) -> None:
        """Remove a finalized rectangle by id. Unknown ids are ignored."""
        self._regions = [r for r in self._regions if r.id != region_id]

    def clear_all(self) -> None:
        self._regions = []
        self._draft = None

    def label_for(self, region_id: str) -> Optional[str]:
        """Display label ("Area N", 1-based selection order) for a region."""
        for index, region in enumerate(self._regions):
            if region.id == region_id:
                return f"Area {index + 1}"
        return None
