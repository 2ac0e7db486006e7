"""
Geometric utility functions for cleanroom layout design.

All positions are room centers on a 2D canvas. Bounding boxes are
axis-aligned and stored as (min_x, min_y, max_x, max_y).
"""

from typing import Iterable, List, Optional, Sequence, Tuple
import math

import numpy as np


# Type aliases
Point2D = Tuple[float, float]
BoundingBox = Tuple[float, float, float, float]  # (min_x, min_y, max_x, max_y)


def distance(p1: Point2D, p2: Point2D) -> float:
    """
    Calculate Euclidean distance between two points.

    Args:
        p1: First point (x, y)
        p2: Second point (x, y)

    Returns:
        float: Euclidean distance
    """
    return float(math.hypot(p2[0] - p1[0], p2[1] - p1[1]))


def manhattan_distance(p1: Point2D, p2: Point2D) -> float:
    """Calculate Manhattan distance between two points."""
    return abs(p2[0] - p1[0]) + abs(p2[1] - p1[1])


def centroid(points: Sequence[Point2D]) -> Point2D:
    """
    Calculate the centroid of a set of points.

    Args:
        points: List of points (x, y)

    Returns:
        Point2D: Centroid

    Raises:
        ValueError: If points is empty
    """
    if not points:
        raise ValueError("Cannot calculate centroid of empty list")

    arr = np.asarray(points, dtype=float)
    cx, cy = arr.mean(axis=0)
    return (float(cx), float(cy))


def room_box(position: Point2D, width: float, height: float) -> BoundingBox:
    """
    Create the bounding box of a room centered on position.

    Args:
        position: Room center (x, y)
        width: Room width
        height: Room height

    Returns:
        BoundingBox: (min_x, min_y, max_x, max_y)
    """
    x, y = position
    hw, hh = width / 2.0, height / 2.0
    return (x - hw, y - hh, x + hw, y + hh)


def expand_box(box: BoundingBox, margin: float) -> BoundingBox:
    """Grow a box by margin on every side."""
    return (box[0] - margin, box[1] - margin, box[2] + margin, box[3] + margin)


def boxes_overlap(box1: BoundingBox, box2: BoundingBox, clearance: float = 0.0) -> bool:
    """
    Check whether two boxes intersect or come closer than clearance.

    Boxes that merely touch (or sit exactly clearance apart) do not overlap.

    Args:
        box1: First bounding box
        box2: Second bounding box
        clearance: Minimum gap required between the boxes

    Returns:
        bool: True if the boxes overlap
    """
    return not (
        box1[2] + clearance <= box2[0]
        or box2[2] + clearance <= box1[0]
        or box1[3] + clearance <= box2[1]
        or box2[3] + clearance <= box1[1]
    )


def overlap_area(box1: BoundingBox, box2: BoundingBox) -> float:
    """Area of the intersection of two boxes (0 when disjoint)."""
    dx = min(box1[2], box2[2]) - max(box1[0], box2[0])
    dy = min(box1[3], box2[3]) - max(box1[1], box2[1])
    if dx <= 0 or dy <= 0:
        return 0.0
    return dx * dy


def penetration(box1: BoundingBox, box2: BoundingBox) -> Tuple[float, float]:
    """
    Overlap depth of two boxes along each axis.

    Returns:
        Tuple of (depth_x, depth_y); both positive only when the boxes overlap
    """
    dx = min(box1[2], box2[2]) - max(box1[0], box2[0])
    dy = min(box1[3], box2[3]) - max(box1[1], box2[1])
    return (dx, dy)


def point_to_segment_distance(point: Point2D, a: Point2D, b: Point2D) -> float:
    """
    Shortest distance from a point to the segment a-b.

    Args:
        point: Query point
        a: Segment start
        b: Segment end

    Returns:
        float: Distance to the closest point on the segment
    """
    p = np.asarray(point, dtype=float)
    start = np.asarray(a, dtype=float)
    end = np.asarray(b, dtype=float)
    seg = end - start
    seg_len_sq = float(np.dot(seg, seg))

    if seg_len_sq == 0.0:
        return float(np.linalg.norm(p - start))

    t = float(np.clip(np.dot(p - start, seg) / seg_len_sq, 0.0, 1.0))
    closest = start + t * seg
    return float(np.linalg.norm(p - closest))


def point_to_box_distance(point: Point2D, box: BoundingBox) -> float:
    """Distance from a point to the nearest edge of a box (0 if inside)."""
    dx = max(box[0] - point[0], 0.0, point[0] - box[2])
    dy = max(box[1] - point[1], 0.0, point[1] - box[3])
    return float(math.hypot(dx, dy))


def box_gap(box1: BoundingBox, box2: BoundingBox) -> float:
    """Edge-to-edge distance between two boxes (0 if they touch or overlap)."""
    dx = max(box1[0] - box2[2], 0.0, box2[0] - box1[2])
    dy = max(box1[1] - box2[3], 0.0, box2[1] - box1[3])
    return float(math.hypot(dx, dy))


def snap_to_grid(point: Point2D, grid_size: float) -> Point2D:
    """
    Snap a point to the nearest grid intersection.

    Args:
        point: Point to snap
        grid_size: Grid spacing (no snapping if <= 0)

    Returns:
        Point2D: Snapped point
    """
    if grid_size <= 0:
        return (float(point[0]), float(point[1]))
    return (
        float(round(point[0] / grid_size) * grid_size),
        float(round(point[1] / grid_size) * grid_size),
    )


def ring_positions(
    center: Point2D, radius: float, count: int = 8, start_angle: float = 0.0
) -> List[Point2D]:
    """
    Evenly spaced positions on a circle around center.

    Args:
        center: Circle center
        radius: Circle radius
        count: Number of positions
        start_angle: Angle of the first position in radians

    Returns:
        List of positions, counter-clockwise from start_angle
    """
    angles = start_angle + np.arange(count) * (2.0 * math.pi / count)
    return [
        (float(center[0] + radius * math.cos(a)), float(center[1] + radius * math.sin(a)))
        for a in angles
    ]


def clamp_center(
    point: Point2D,
    half_width: float,
    half_height: float,
    bounds: BoundingBox,
) -> Point2D:
    """
    Clamp a room center so the whole footprint stays inside bounds.

    If the room is larger than the bounds along an axis it is centered on
    that axis.
    """
    min_x, min_y, max_x, max_y = bounds
    lo_x, hi_x = min_x + half_width, max_x - half_width
    lo_y, hi_y = min_y + half_height, max_y - half_height

    x = (min_x + max_x) / 2.0 if lo_x > hi_x else min(max(point[0], lo_x), hi_x)
    y = (min_y + max_y) / 2.0 if lo_y > hi_y else min(max(point[1], lo_y), hi_y)
    return (float(x), float(y))


def box_inside(box: BoundingBox, bounds: BoundingBox, tolerance: float = 1e-6) -> bool:
    """Check that box lies fully inside bounds."""
    return (
        box[0] >= bounds[0] - tolerance
        and box[1] >= bounds[1] - tolerance
        and box[2] <= bounds[2] + tolerance
        and box[3] <= bounds[3] + tolerance
    )


def enclosing_box(boxes: Iterable[BoundingBox]) -> Optional[BoundingBox]:
    """Smallest box containing all boxes, or None for an empty input."""
    boxes = list(boxes)
    if not boxes:
        return None
    arr = np.asarray(boxes, dtype=float)
    return (
        float(arr[:, 0].min()),
        float(arr[:, 1].min()),
        float(arr[:, 2].max()),
        float(arr[:, 3].max()),
    )
