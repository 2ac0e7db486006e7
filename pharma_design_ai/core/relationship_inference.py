"""
Heuristic relationship inference for room sets assembled without a template.
"""

from typing import List, Optional, Sequence, Set, Tuple
import logging

from pharma_design_ai.models.relationship import RelationshipType, SpatialRelationship
from pharma_design_ai.models.room import Room, RoomCategory

logger = logging.getLogger(__name__)

# Known production sequence, matched against room names
PRODUCTION_ORDER = (
    "dispensing",
    "granulation",
    "blending",
    "compression",
    "filling",
    "coating",
    "packaging",
)


def production_stage(room: Room) -> Optional[int]:
    """Position of the room in the production sequence, None if it is not a stage."""
    for stage, keyword in enumerate(PRODUCTION_ORDER):
        if room.name_contains(keyword):
            return stage
    return None


class RelationshipInference:
    """
    Derives spatial relationships from room names, categories and classes:
    sequential production flow, airlock protection of sterile rooms, gowning
    access to sterile rooms and warehouse -> production -> QC material flow.
    """

    def __init__(self, rooms: Sequence[Room]):
        self.rooms = list(rooms)
        self.relationships: List[SpatialRelationship] = []
        self._seen: Set[Tuple[RelationshipType, str, str]] = set()

    def infer(self) -> List[SpatialRelationship]:
        """Run every inference heuristic and return the relationships found."""
        self._production_flow()
        self._airlock_protection()
        self._gowning_access()
        self._warehouse_to_production()
        self._production_to_qc()

        logger.info(f"Inferred {len(self.relationships)} relationships for {len(self.rooms)} rooms")
        return self.relationships

    def _add(self, rel_type: RelationshipType, source: Room, target: Room, priority: int, reason: str):
        key = (rel_type, source.id, target.id)
        if source.id == target.id or key in self._seen:
            return
        self._seen.add(key)
        self.relationships.append(
            SpatialRelationship(
                type=rel_type,
                from_id=source.id,
                to_id=target.id,
                priority=priority,
                reason=reason,
                id=f"inferred-{len(self.relationships) + 1}",
            )
        )

    def _production_flow(self):
        staged = [(production_stage(room), i, room) for i, room in enumerate(self.rooms)]
        staged = sorted((s, i, room) for s, i, room in staged if s is not None)
        ordered = [room for _, _, room in staged]

        for source, target in zip(ordered, ordered[1:]):
            self._add(RelationshipType.MATERIAL_FLOW, source, target, 1, "Sequential production flow")

    def _airlock_protection(self):
        airlocks = [room for room in self.rooms if room.name_contains("airlock")]
        sterile = [room for room in self.rooms if room.is_sterile]
        for airlock in airlocks:
            for room in sterile:
                self._add(
                    RelationshipType.ADJACENT_TO,
                    airlock,
                    room,
                    2,
                    "Airlock protection for sterile area",
                )

    def _gowning_access(self):
        gowning = [room for room in self.rooms if room.name_contains("gowning")]
        sterile = [room for room in self.rooms if room.is_sterile]
        for gown in gowning:
            for room in sterile:
                self._add(
                    RelationshipType.PERSONNEL_FLOW,
                    gown,
                    room,
                    2,
                    "Personnel gowning before sterile area entry",
                )

    def _first(self, category: RoomCategory) -> Optional[Room]:
        return next((room for room in self.rooms if room.category == category), None)

    def _production_rooms(self) -> List[Room]:
        return [room for room in self.rooms if room.category == RoomCategory.PRODUCTION]

    def _warehouse_to_production(self):
        warehouse = self._first(RoomCategory.WAREHOUSE)
        production = self._production_rooms()
        if warehouse is not None and production:
            self._add(
                RelationshipType.MATERIAL_FLOW,
                warehouse,
                production[0],
                1,
                "Raw material supply from warehouse",
            )

    def _production_to_qc(self):
        qc = self._first(RoomCategory.QUALITY_CONTROL)
        production = self._production_rooms()
        if qc is not None and production:
            self._add(
                RelationshipType.MATERIAL_FLOW,
                production[-1],
                qc,
                3,
                "Sample transfer for quality testing",
            )


def infer_relationships(rooms: Sequence[Room]) -> List[SpatialRelationship]:
    """Infer relationships for a room set (see RelationshipInference)."""
    return RelationshipInference(rooms).infer()
