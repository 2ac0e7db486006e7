"""
Base engine for layout generation with common functionality used by both
the incremental placement engine and the force-directed simulator.
"""

from dataclasses import dataclass, replace
from typing import Dict, Tuple, Any, Optional, Sequence
import math

from pharma_design_ai.config.config_loader import get_settings
from pharma_design_ai.models.room import Room
from pharma_design_ai.utils.geometry import (
    BoundingBox,
    Point2D,
    box_inside,
    boxes_overlap,
    room_box,
    snap_to_grid,
)


@dataclass(frozen=True)
class CanvasConfig:
    """Drawing area the layout engines work in (canvas units)."""

    width: float = 3000.0
    height: float = 2000.0
    padding: float = 100.0
    grid_size: float = 50.0
    node_spacing: float = 200.0
    min_clearance: float = 20.0
    units_per_meter: float = 10.0

    @property
    def center(self) -> Point2D:
        return (self.width / 2.0, self.height / 2.0)

    @property
    def bounds(self) -> BoundingBox:
        """Padded rectangle every room footprint must stay inside."""
        return (self.padding, self.padding, self.width - self.padding, self.height - self.padding)

    @property
    def diagonal(self) -> float:
        return math.hypot(self.width, self.height)

    def widened(self, factor: float) -> "CanvasConfig":
        """Copy of this canvas with both dimensions scaled by factor."""
        return replace(self, width=self.width * factor, height=self.height * factor)

    @classmethod
    def from_settings(cls, settings: Optional[Dict[str, Any]] = None) -> "CanvasConfig":
        section = (settings or get_settings())["canvas"]
        return cls(**{k: float(v) for k, v in section.items() if k in cls.__dataclass_fields__})


class BaseEngine:
    """
    Base class for layout engines with the canvas geometry shared between
    the placement engine and the simulator.
    """

    def __init__(self, canvas: Optional[CanvasConfig] = None):
        """
        Initialize the base engine.

        Args:
            canvas: Canvas configuration, loaded from settings when omitted
        """
        self.canvas = canvas or CanvasConfig.from_settings()

    @property
    def grid_size(self) -> float:
        return self.canvas.grid_size

    def snap(self, point: Point2D) -> Point2D:
        return snap_to_grid(point, self.canvas.grid_size)

    def aligned_range(self, half_width: float, half_height: float) -> BoundingBox:
        """
        Range of grid-aligned center positions that keep a room of the given
        half size inside the padded canvas.

        When a room is too large for the canvas on an axis the range collapses
        to the snapped canvas center on that axis.
        """
        g = self.canvas.grid_size
        min_x, min_y, max_x, max_y = self.canvas.bounds

        def _axis(lo: float, hi: float, half: float) -> Tuple[float, float]:
            low, high = lo + half, hi - half
            if g > 0:
                low, high = math.ceil(low / g - 1e-9) * g, math.floor(high / g + 1e-9) * g
            if low > high:
                mid = (lo + hi) / 2.0
                mid = round(mid / g) * g if g > 0 else mid
                return (mid, mid)
            return (low, high)

        x_lo, x_hi = _axis(min_x, max_x, half_width)
        y_lo, y_hi = _axis(min_y, max_y, half_height)
        return (x_lo, y_lo, x_hi, y_hi)

    def constrain(self, point: Point2D, room: Room) -> Point2D:
        """Snap a room center to the grid and clamp it inside the canvas."""
        x_lo, y_lo, x_hi, y_hi = self.aligned_range(room.width / 2.0, room.height / 2.0)
        x, y = self.snap(point)
        return (float(min(max(x, x_lo), x_hi)), float(min(max(y, y_lo), y_hi)))

    def fits_canvas(self, position: Point2D, room: Room) -> bool:
        """Check that the room footprint at position lies inside the padded canvas."""
        return box_inside(room_box(position, room.width, room.height), self.canvas.bounds)

    def overlaps_any(
        self,
        position: Point2D,
        room: Room,
        others: Sequence[Room],
        clearance: Optional[float] = None,
    ) -> bool:
        """
        Check whether the room footprint at position collides with any placed room.

        Args:
            position: Candidate center
            room: Room being placed
            others: Rooms to test against (unplaced rooms and room itself are skipped)
            clearance: Minimum gap, defaults to the canvas min_clearance

        Returns:
            bool: True if any footprint comes closer than clearance
        """
        gap = self.canvas.min_clearance if clearance is None else clearance
        box = room_box(position, room.width, room.height)
        return any(
            boxes_overlap(box, other.bounding_box(), gap)
            for other in others
            if other.is_placed and other.id != room.id
        )
