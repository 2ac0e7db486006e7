"""
Incremental placement engine: picks the best position for one room at a
time from generated candidates, explaining the choice.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional, Sequence
import logging

from pharma_design_ai.core.base_engine import BaseEngine, CanvasConfig
from pharma_design_ai.core.candidate_generator import CandidateGenerator
from pharma_design_ai.core.errors import UnsatisfiableLayoutError
from pharma_design_ai.core.placement_scorer import PlacementScorer
from pharma_design_ai.models.layout import RelationshipIndex
from pharma_design_ai.models.relationship import (
    FLOW_TYPES,
    RelationshipType,
    SpatialRelationship,
)
from pharma_design_ai.models.room import Room
from pharma_design_ai.utils.geometry import Point2D

logger = logging.getLogger(__name__)


@dataclass
class PlacementConstraint:
    """A constraint derived from the relationships of the room being placed."""

    type: str
    priority: str
    description: str
    target_room_id: Optional[str] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "priority": self.priority,
            "description": self.description,
            "target_room_id": self.target_room_id,
            "min_value": self.min_value,
            "max_value": self.max_value,
        }


@dataclass
class SpatialPlacement:
    """Result of placing a single room."""

    room_id: str
    position: Point2D
    score: Optional[float]
    reasoning: str
    alternatives: List[Point2D] = field(default_factory=list)
    constraints: List[PlacementConstraint] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "room_id": self.room_id,
            "position": {"x": self.position[0], "y": self.position[1]},
            "score": self.score,
            "reasoning": self.reasoning,
            "alternatives": [{"x": x, "y": y} for x, y in self.alternatives],
            "constraints": [c.to_dict() for c in self.constraints],
        }


class PlacementEngine(BaseEngine):
    """
    Places rooms one by one using the candidate generator and the scorer.
    """

    def __init__(
        self,
        canvas: Optional[CanvasConfig] = None,
        scorer: Optional[PlacementScorer] = None,
        generator: Optional[CandidateGenerator] = None,
        max_alternatives: int = 3,
        max_workers: Optional[int] = None,
    ):
        """
        Initialize the placement engine.

        Args:
            canvas: Canvas configuration
            scorer: Placement scorer (built from canvas when omitted)
            generator: Candidate generator (built from canvas when omitted)
            max_alternatives: Number of runner-up positions to report
            max_workers: Score candidates on a thread pool of this size;
                sequential when None or 1
        """
        super().__init__(canvas)
        self.scorer = scorer or PlacementScorer(self.canvas)
        self.generator = generator or CandidateGenerator(self.canvas)
        self.max_alternatives = max_alternatives
        self.max_workers = max_workers

    def calculate_optimal_position(
        self,
        room: Room,
        rooms: Sequence[Room],
        relationships: Sequence[SpatialRelationship],
    ) -> SpatialPlacement:
        """
        Find the best position for room given the rooms already placed.

        Args:
            room: Room to place (its current position is ignored)
            rooms: Rooms in the layout
            relationships: Relationships of the layout

        Returns:
            SpatialPlacement with position, score, reasoning and alternatives

        Raises:
            UnsatisfiableLayoutError: If no candidate position exists
        """
        index = RelationshipIndex(relationships)
        placed = [r for r in rooms if r.is_placed and r.id != room.id]
        constraints = self.build_constraints(room, placed, index)

        if not placed:
            center = self.snap(self.canvas.center)
            return SpatialPlacement(
                room_id=room.id,
                position=center,
                score=None,
                reasoning="First room placed at the canvas center",
                constraints=constraints,
            )

        candidates = self.generator.generate(room, placed, relationships, index)
        if not candidates:
            raise UnsatisfiableLayoutError(
                f"No valid position for room {room.name}", room_ids=[room.id]
            )

        scores = self._score_all(candidates, room, placed, relationships, index)
        ranked = sorted(range(len(candidates)), key=lambda i: -scores[i])
        best = ranked[0]

        alternatives = [candidates[i] for i in ranked[1 : 1 + self.max_alternatives]]

        return SpatialPlacement(
            room_id=room.id,
            position=candidates[best],
            score=scores[best],
            reasoning=self.explain(room, placed, index),
            alternatives=alternatives,
            constraints=constraints,
        )

    def place_rooms(
        self,
        rooms: Sequence[Room],
        relationships: Sequence[SpatialRelationship],
    ) -> Dict[str, Point2D]:
        """
        Place every unplaced room in sequence, writing positions onto the rooms.

        Rooms that already have a position are kept where they are.

        Returns:
            Dictionary mapping room id to its position
        """
        for room in rooms:
            if room.is_placed:
                continue
            placement = self.calculate_optimal_position(room, rooms, relationships)
            room.position = placement.position
            logger.debug(f"Placed {room.id} at {placement.position} (score={placement.score})")

        return {room.id: room.position for room in rooms}

    def _score_all(
        self,
        candidates: List[Point2D],
        room: Room,
        placed: List[Room],
        relationships: Sequence[SpatialRelationship],
        index: RelationshipIndex,
    ) -> List[float]:
        def _score(position: Point2D) -> float:
            return self.scorer.score(position, room, placed, relationships, index)

        if self.max_workers and self.max_workers > 1 and len(candidates) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                return list(pool.map(_score, candidates))
        return [_score(position) for position in candidates]

    def build_constraints(
        self, room: Room, placed: List[Room], index: RelationshipIndex
    ) -> List[PlacementConstraint]:
        """Derive placement constraints from the relationships touching room."""
        spacing = self.canvas.node_spacing
        constraints: List[PlacementConstraint] = []

        for rel in index.incident(room.id):
            other = rel.other_end(room.id)
            if rel.type == RelationshipType.ADJACENT_TO:
                constraints.append(
                    PlacementConstraint(
                        type="adjacency",
                        priority="high",
                        description=f"Should be adjacent to {other}",
                        target_room_id=other,
                        max_value=spacing * 1.5,
                    )
                )
            elif rel.type == RelationshipType.PROHIBITED_NEAR:
                constraints.append(
                    PlacementConstraint(
                        type="separation",
                        priority="required",
                        description=f"Must be separated from {other}",
                        target_room_id=other,
                        min_value=spacing * 3,
                    )
                )
            elif rel.type in FLOW_TYPES:
                constraints.append(
                    PlacementConstraint(
                        type="flow-path",
                        priority="medium",
                        description=f"Optimize for {rel.type.value} to {other}",
                        target_room_id=other,
                    )
                )

        if room.cleanroom_class is not None and any(
            r.cleanroom_class == room.cleanroom_class for r in placed
        ):
            constraints.append(
                PlacementConstraint(
                    type="cleanroom-zone",
                    priority="high",
                    description=f"Should cluster with other Class {room.cleanroom_class.value} rooms",
                )
            )

        return constraints

    def explain(self, room: Room, placed: List[Room], index: RelationshipIndex) -> str:
        """Human-readable reasoning for a placement."""
        placed_ids = {r.id for r in placed}
        reasons = []

        adjacent = [
            rel for rel in index.incident(room.id, RelationshipType.ADJACENT_TO)
            if rel.other_end(room.id) in placed_ids
        ]
        if adjacent:
            reasons.append(f"Positioned to be adjacent to {len(adjacent)} connected room(s)")

        if room.cleanroom_class is not None:
            same_class = [r for r in placed if r.cleanroom_class == room.cleanroom_class]
            if same_class:
                reasons.append(
                    f"Clustered with {len(same_class)} other Class "
                    f"{room.cleanroom_class.value} room(s)"
                )

        flows = index.incident(room.id, *FLOW_TYPES)
        if flows:
            reasons.append(f"Optimized for {len(flows)} flow path(s)")

        if not reasons:
            reasons.append("Positioned in available space with minimal overlap")

        return ". ".join(reasons)
