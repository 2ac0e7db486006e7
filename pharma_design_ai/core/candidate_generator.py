"""
Candidate position generation for incremental room placement.
"""

from typing import List, Optional, Sequence
import logging

import numpy as np

from pharma_design_ai.core.base_engine import BaseEngine, CanvasConfig
from pharma_design_ai.models.layout import RelationshipIndex
from pharma_design_ai.models.relationship import RelationshipType, SpatialRelationship
from pharma_design_ai.models.room import Room
from pharma_design_ai.utils.geometry import Point2D, centroid, ring_positions

logger = logging.getLogger(__name__)


class CandidateGenerator(BaseEngine):
    """
    Proposes a bounded, deduplicated set of grid-snapped positions for a room:
    rings around related rooms, a ring around the same-class centroid, then
    empty cells of a coarse grid scan.
    """

    def __init__(
        self,
        canvas: Optional[CanvasConfig] = None,
        max_related: int = 3,
        ring_size: int = 8,
        max_empty_cells: int = 10,
        scan_step_cells: int = 4,
    ):
        """
        Args:
            canvas: Canvas configuration
            max_related: Number of related rooms to ring
            ring_size: Positions per ring (45 degree steps for 8)
            max_empty_cells: Cap on empty grid cells from the scan
            scan_step_cells: Scan stride in grid cells
        """
        super().__init__(canvas)
        self.max_related = max_related
        self.ring_size = ring_size
        self.max_empty_cells = max_empty_cells
        self.scan_step_cells = scan_step_cells

    def generate(
        self,
        room: Room,
        other_rooms: Sequence[Room],
        relationships: Sequence[SpatialRelationship],
        index: Optional[RelationshipIndex] = None,
    ) -> List[Point2D]:
        """
        Generate candidate positions for room.

        Args:
            room: Room being placed
            other_rooms: Rooms already in the layout; unplaced ones are ignored
            relationships: All relationships of the layout
            index: Prebuilt relationship index

        Returns:
            List of unique candidate centers; the canvas center alone when no
            other room is placed, possibly empty when nothing fits
        """
        placed = [r for r in other_rooms if r.is_placed and r.id != room.id]
        if not placed:
            return [self.snap(self.canvas.center)]

        index = index or RelationshipIndex(relationships)
        candidates: List[Point2D] = []

        # Strategy 1: rings around related rooms
        for related in self._related_rooms(room, placed, index)[: self.max_related]:
            candidates.extend(self._ring(related.position, room, placed))

        # Strategy 2: ring around the same-class centroid
        if room.cleanroom_class is not None:
            same_class = [r for r in placed if r.cleanroom_class == room.cleanroom_class]
            if same_class:
                center = centroid([r.position for r in same_class])
                candidates.extend(self._ring(center, room, placed))

        # Strategy 3: empty cells on a coarse grid
        candidates.extend(self._empty_cells(room, placed))

        unique = list(dict.fromkeys(candidates))
        logger.debug(f"{len(unique)} candidate positions for {room.id}")
        return unique

    def _related_rooms(
        self, room: Room, placed: List[Room], index: RelationshipIndex
    ) -> List[Room]:
        """Placed rooms joined to room, most important relationship first."""
        by_id = {r.id: r for r in placed}
        rels = [
            rel for rel in index.incident(room.id)
            if rel.type != RelationshipType.PROHIBITED_NEAR
            and rel.other_end(room.id) in by_id
        ]
        rels.sort(key=lambda rel: rel.priority)

        related: List[Room] = []
        for rel in rels:
            other = by_id[rel.other_end(room.id)]
            if other not in related:
                related.append(other)
        return related

    def _ring(self, center: Point2D, room: Room, placed: List[Room]) -> List[Point2D]:
        positions = []
        for point in ring_positions(center, self.canvas.node_spacing, self.ring_size):
            snapped = self.snap(point)
            if self.fits_canvas(snapped, room) and not self.overlaps_any(snapped, room, placed):
                positions.append(snapped)
        return positions

    def _empty_cells(self, room: Room, placed: List[Room]) -> List[Point2D]:
        step = self.canvas.grid_size * self.scan_step_cells
        x_lo, y_lo, x_hi, y_hi = self.aligned_range(room.width / 2.0, room.height / 2.0)

        cells: List[Point2D] = []
        for x in np.arange(x_lo, x_hi + 1e-9, step):
            for y in np.arange(y_lo, y_hi + 1e-9, step):
                point = (float(x), float(y))
                if not self.overlaps_any(point, room, placed):
                    cells.append(point)
                    if len(cells) >= self.max_empty_cells:
                        return cells
        return cells
