"""
Multi-objective scoring of a candidate position for a single room.
"""

from dataclasses import dataclass, asdict
from typing import Dict, List, Any, Optional, Sequence

import numpy as np

from pharma_design_ai.config.config_loader import get_settings
from pharma_design_ai.core.base_engine import BaseEngine, CanvasConfig
from pharma_design_ai.models.layout import RelationshipIndex
from pharma_design_ai.models.relationship import (
    FLOW_TYPES,
    RelationshipType,
    SpatialRelationship,
)
from pharma_design_ai.models.room import Room
from pharma_design_ai.utils.geometry import Point2D, centroid, distance


@dataclass(frozen=True)
class ScoringWeights:
    """Weight of each placement objective."""

    overlap: float = 1.0
    adjacency: float = 0.8
    similarity: float = 0.6
    flow: float = 0.5
    cohesion: float = 0.7

    def as_array(self) -> np.ndarray:
        return np.array(
            [self.overlap, self.adjacency, self.similarity, self.flow, self.cohesion]
        )

    @classmethod
    def from_settings(cls, settings: Optional[Dict[str, Any]] = None) -> "ScoringWeights":
        section = (settings or get_settings())["scoring"]
        return cls(**{k: float(v) for k, v in section.items() if k in cls.__dataclass_fields__})


@dataclass
class ScoreBreakdown:
    """Sub-scores of one candidate position, each in [0, 1]."""

    overlap: float
    adjacency: float
    similarity: float
    flow: float
    cohesion: float
    total: float

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


class PlacementScorer(BaseEngine):
    """
    Scores a candidate position for a room against the rooms already placed.

    The total is the weighted sum of five objectives divided by the number
    of objectives, so it stays in [0, 1] while every weight is <= 1.
    """

    NUM_OBJECTIVES = 5

    def __init__(
        self,
        canvas: Optional[CanvasConfig] = None,
        weights: Optional[ScoringWeights] = None,
    ):
        super().__init__(canvas)
        self.weights = weights or ScoringWeights.from_settings()

    def score(
        self,
        position: Point2D,
        room: Room,
        other_rooms: Sequence[Room],
        relationships: Sequence[SpatialRelationship],
        index: Optional[RelationshipIndex] = None,
    ) -> float:
        """
        Score a candidate position.

        Args:
            position: Candidate center for room
            room: Room being placed
            other_rooms: Rooms already in the layout; unplaced ones are ignored
            relationships: All relationships of the layout
            index: Prebuilt relationship index, built on demand when omitted

        Returns:
            float: Weighted score in [0, 1]
        """
        return self.breakdown(position, room, other_rooms, relationships, index).total

    def breakdown(
        self,
        position: Point2D,
        room: Room,
        other_rooms: Sequence[Room],
        relationships: Sequence[SpatialRelationship],
        index: Optional[RelationshipIndex] = None,
    ) -> ScoreBreakdown:
        """Score a candidate position and keep every sub-score."""
        index = index or RelationshipIndex(relationships)
        placed = {r.id: r for r in other_rooms if r.is_placed and r.id != room.id}

        parts = np.array(
            [
                self.overlap_score(position, room, placed),
                self.adjacency_score(position, room, placed, index),
                self.similarity_score(position, room, placed),
                self.flow_score(position, room, placed, index),
                self.cohesion_score(position, room, placed),
            ]
        )
        total = float(np.dot(parts, self.weights.as_array()) / self.NUM_OBJECTIVES)

        return ScoreBreakdown(*(float(p) for p in parts), total=total)

    # Objectives
    def overlap_score(self, position: Point2D, room: Room, placed: Dict[str, Room]) -> float:
        """1.0 if the footprint clears every placed room, else 0.0."""
        return 0.0 if self.overlaps_any(position, room, list(placed.values())) else 1.0

    def adjacency_score(
        self,
        position: Point2D,
        room: Room,
        placed: Dict[str, Room],
        index: RelationshipIndex,
    ) -> float:
        """
        Average fit of the distance to every placed ADJACENT_TO partner.

        Each partner contributes max(0, 1 - |d - spacing| / spacing).
        """
        ideal = self.canvas.node_spacing
        fits = []
        for rel in index.incident(room.id, RelationshipType.ADJACENT_TO):
            partner = placed.get(rel.other_end(room.id))
            if partner is None:
                continue
            d = distance(position, partner.position)
            fits.append(max(0.0, 1.0 - abs(d - ideal) / ideal))

        if not fits:
            return 1.0
        return float(np.mean(fits))

    def similarity_score(self, position: Point2D, room: Room, placed: Dict[str, Room]) -> float:
        """Closeness to the centroid of rooms sharing the category or the class."""
        similar = [
            other for other in placed.values()
            if other.category == room.category
            or (room.cleanroom_class is not None and other.cleanroom_class == room.cleanroom_class)
        ]
        if not similar:
            return 0.5
        return self._closeness(position, similar)

    def flow_score(
        self,
        position: Point2D,
        room: Room,
        placed: Dict[str, Room],
        index: RelationshipIndex,
    ) -> float:
        """
        Average ratio of direct flow distance to the detour through position,
        over flows whose endpoints are both placed.
        """
        ratios = []
        for rel in index.of_type(*FLOW_TYPES):
            source, target = placed.get(rel.from_id), placed.get(rel.to_id)
            if source is None or target is None:
                continue
            direct = distance(source.position, target.position)
            detour = distance(source.position, position) + distance(position, target.position)
            ratios.append(1.0 if detour == 0 else direct / detour)

        if not ratios:
            return 0.5
        return float(np.mean(ratios))

    def cohesion_score(self, position: Point2D, room: Room, placed: Dict[str, Room]) -> float:
        """Closeness to the centroid of rooms with the same cleanroom class."""
        if room.cleanroom_class is None:
            return 1.0
        same_class = [
            other for other in placed.values() if other.cleanroom_class == room.cleanroom_class
        ]
        if not same_class:
            return 0.5
        return self._closeness(position, same_class)

    def _closeness(self, position: Point2D, rooms: List[Room]) -> float:
        center = centroid([r.position for r in rooms])
        return max(0.0, 1.0 - distance(position, center) / self.canvas.diagonal)
