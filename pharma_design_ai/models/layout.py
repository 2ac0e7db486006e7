"""
Layout model for pharmaceutical facility design.
A layout (diagram) owns the full room list and relationship list of one
facility and keeps both consistent.
"""

from typing import Dict, List, Tuple, Any, Optional, Iterable, Sequence
from collections import defaultdict
from datetime import datetime, timezone
import json
import uuid
import logging

from pharma_design_ai.core.errors import InvalidInputError
from pharma_design_ai.models.room import Room
from pharma_design_ai.models.relationship import RelationshipType, SpatialRelationship
from pharma_design_ai.utils.geometry import boxes_overlap

logger = logging.getLogger(__name__)


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class RelationshipIndex:
    """
    Room id -> incident relationships, built once per relationship list.
    """

    def __init__(self, relationships: Iterable[SpatialRelationship]):
        self.relationships = list(relationships)
        self._incident: Dict[str, List[SpatialRelationship]] = defaultdict(list)
        self._by_type: Dict[RelationshipType, List[SpatialRelationship]] = defaultdict(list)

        for rel in self.relationships:
            self._incident[rel.from_id].append(rel)
            self._incident[rel.to_id].append(rel)
            self._by_type[rel.type].append(rel)

    def incident(
        self, room_id: str, *types: RelationshipType
    ) -> List[SpatialRelationship]:
        """Relationships touching room_id, optionally filtered by type."""
        rels = self._incident.get(room_id, [])
        if not types:
            return list(rels)
        return [rel for rel in rels if rel.type in types]

    def of_type(self, *types: RelationshipType) -> List[SpatialRelationship]:
        """All relationships of the given types, in input order."""
        if len(types) == 1:
            return list(self._by_type.get(types[0], []))
        return [rel for rel in self.relationships if rel.type in types]

    def neighbors(self, room_id: str, *types: RelationshipType) -> List[str]:
        """Ids of rooms joined to room_id, without duplicates, in first-seen order."""
        seen: Dict[str, None] = {}
        for rel in self.incident(room_id, *types):
            seen.setdefault(rel.other_end(room_id), None)
        return list(seen)

    def __len__(self) -> int:
        return len(self.relationships)


class Layout:
    """
    A class representing a facility layout: rooms, relationships and
    bookkeeping metadata.
    """

    def __init__(
        self,
        rooms: Optional[Sequence[Room]] = None,
        relationships: Optional[Sequence[SpatialRelationship]] = None,
        name: Optional[str] = None,
        id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        created_at: Optional[str] = None,
        updated_at: Optional[str] = None,
    ):
        """
        Initialize a layout.

        Args:
            rooms: Room list
            relationships: Relationship list
            name: Optional name for the layout
            id: Optional layout id
            metadata: Optional metadata
            created_at: Creation timestamp (ISO 8601)
            updated_at: Last update timestamp (ISO 8601)
        """
        self.id = id or str(uuid.uuid4())
        self.name = name or f"Layout_{self.id[:8]}"
        self.rooms: List[Room] = list(rooms or [])
        self.relationships: List[SpatialRelationship] = list(relationships or [])
        self.metadata = metadata or {}
        self.created_at = created_at or _utcnow()
        self.updated_at = updated_at or self.created_at

    # Lookups
    @property
    def room_map(self) -> Dict[str, Room]:
        return {room.id: room for room in self.rooms}

    def get_room(self, room_id: str) -> Optional[Room]:
        """
        Get a room by ID.

        Returns:
            Optional[Room]: Room or None if not found
        """
        for room in self.rooms:
            if room.id == room_id:
                return room
        return None

    def index(self) -> RelationshipIndex:
        """Build the relationship index for the current relationship list."""
        return RelationshipIndex(self.relationships)

    def relationships_of_type(self, *types: RelationshipType) -> List[SpatialRelationship]:
        return [rel for rel in self.relationships if rel.type in types]

    def placed_rooms(self) -> List[Room]:
        return [room for room in self.rooms if room.is_placed]

    def positions(self) -> Dict[str, Tuple[float, float]]:
        return {room.id: room.position for room in self.rooms if room.is_placed}

    # Mutation
    def add_room(self, room: Room) -> Room:
        """
        Add a room to the layout.

        Raises:
            InvalidInputError: If a room with the same id already exists
        """
        if self.get_room(room.id) is not None:
            raise InvalidInputError(f"Duplicate room id: {room.id}", room_ids=[room.id])
        self.rooms.append(room)
        self.touch()
        return room

    def add_relationship(self, relationship: SpatialRelationship) -> SpatialRelationship:
        """
        Add a relationship whose endpoints must already exist.

        Raises:
            InvalidInputError: If an endpoint does not resolve to a room
        """
        missing = [
            rid for rid in (relationship.from_id, relationship.to_id)
            if self.get_room(rid) is None
        ]
        if missing:
            raise InvalidInputError(
                f"Relationship {relationship.id} references unknown rooms",
                room_ids=missing,
            )
        self.relationships.append(relationship)
        self.touch()
        return relationship

    def apply_positions(self, positions: Dict[str, Tuple[float, float]]):
        """Write simulated positions back onto the rooms."""
        for room in self.rooms:
            if room.id in positions:
                x, y = positions[room.id]
                room.position = (float(x), float(y))
        self.touch()

    def touch(self):
        self.updated_at = _utcnow()

    # Validation
    def duplicate_room_ids(self) -> List[str]:
        seen = set()
        duplicates = []
        for room in self.rooms:
            if room.id in seen and room.id not in duplicates:
                duplicates.append(room.id)
            seen.add(room.id)
        return duplicates

    def dangling_relationships(self) -> List[SpatialRelationship]:
        """Relationships with an endpoint outside the room list."""
        ids = {room.id for room in self.rooms}
        return [
            rel for rel in self.relationships
            if rel.from_id not in ids or rel.to_id not in ids
        ]

    def validate(self):
        """
        Check the layout invariants.

        Raises:
            InvalidInputError: On duplicate room ids or dangling relationships
        """
        duplicates = self.duplicate_room_ids()
        if duplicates:
            raise InvalidInputError("Duplicate room ids in layout", room_ids=duplicates)

        dangling = self.dangling_relationships()
        if dangling:
            ids = {room.id for room in self.rooms}
            missing = sorted(
                {rid for rel in dangling for rid in (rel.from_id, rel.to_id) if rid not in ids}
            )
            raise InvalidInputError(
                f"{len(dangling)} relationship(s) reference unknown rooms",
                room_ids=missing,
                details={"relationship_ids": [rel.id for rel in dangling]},
            )

    def prune_dangling_relationships(self) -> List[SpatialRelationship]:
        """
        Drop relationships whose endpoints do not resolve.

        Returns:
            The removed relationships
        """
        dangling = self.dangling_relationships()
        if dangling:
            dropped = {id(rel) for rel in dangling}
            self.relationships = [rel for rel in self.relationships if id(rel) not in dropped]
            logger.warning(f"Dropped {len(dangling)} relationship(s) with unknown endpoints")
            self.touch()
        return dangling

    def overlapping_pairs(self, clearance: float = 0.0) -> List[Tuple[str, str]]:
        """Pairs of placed rooms whose footprints overlap."""
        placed = self.placed_rooms()
        boxes = [room.bounding_box() for room in placed]
        pairs = []
        for i in range(len(placed)):
            for j in range(i + 1, len(placed)):
                if boxes_overlap(boxes[i], boxes[j], clearance):
                    pairs.append((placed[i].id, placed[j].id))
        return pairs

    # Serialization
    def clone(self) -> "Layout":
        return Layout.from_dict(self.to_dict())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "rooms": [room.to_dict() for room in self.rooms],
            "relationships": [rel.to_dict() for rel in self.relationships],
            "metadata": self.metadata,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Layout":
        return cls(
            rooms=[Room.from_dict(r) for r in data.get("rooms", [])],
            relationships=[
                SpatialRelationship.from_dict(r) for r in data.get("relationships", [])
            ],
            name=data.get("name"),
            id=data.get("id"),
            metadata=data.get("metadata"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )

    def to_json(self, filepath: str):
        """Save the layout to a JSON file."""
        with open(filepath, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def from_json(cls, filepath: str) -> "Layout":
        """Load a layout from a JSON file."""
        with open(filepath, "r", encoding="utf-8") as f:
            return cls.from_dict(json.load(f))

    def __str__(self) -> str:
        return (
            f"Layout(name={self.name}, rooms={len(self.rooms)}, "
            f"relationships={len(self.relationships)})"
        )
