"""
Spatial relationships between rooms.
"""

from enum import Enum
from typing import Dict, Any, Optional
import uuid

from pharma_design_ai.core.errors import InvalidInputError


class RelationshipType(Enum):
    ADJACENT_TO = "ADJACENT_TO"
    REQUIRES_ACCESS = "REQUIRES_ACCESS"
    PROHIBITED_NEAR = "PROHIBITED_NEAR"
    SHARES_UTILITY = "SHARES_UTILITY"
    MATERIAL_FLOW = "MATERIAL_FLOW"
    PERSONNEL_FLOW = "PERSONNEL_FLOW"
    WORKFLOW_SUGGESTION = "WORKFLOW_SUGGESTION"

    @classmethod
    def parse(cls, value: Any) -> "RelationshipType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise InvalidInputError(f"Unknown relationship type: {value!r}")


FLOW_TYPES = (RelationshipType.MATERIAL_FLOW, RelationshipType.PERSONNEL_FLOW)


class FlowDirection(Enum):
    BIDIRECTIONAL = "bidirectional"
    UNIDIRECTIONAL = "unidirectional"


class FlowType(Enum):
    RAW_MATERIAL = "raw_material"
    FINISHED_PRODUCT = "finished_product"
    WASTE = "waste"
    PERSONNEL = "personnel"
    EQUIPMENT = "equipment"


class SpatialRelationship:
    """
    A directed relationship between two rooms.

    Consumers treat ADJACENT_TO symmetrically; every other type keeps the
    from -> to direction.
    """

    def __init__(
        self,
        type: RelationshipType,
        from_id: str,
        to_id: str,
        priority: int = 1,
        reason: str = "",
        flow_direction: Optional[FlowDirection] = None,
        flow_type: Optional[FlowType] = None,
        min_distance: Optional[float] = None,
        max_distance: Optional[float] = None,
        door_type: Optional[str] = None,
        id: Optional[str] = None,
    ):
        """
        Initialize a relationship.

        Args:
            type: Relationship type
            from_id: Source room id
            to_id: Target room id
            priority: Importance, lower is more important
            reason: Human-readable justification
            flow_direction: Optional flow direction for flow relationships
            flow_type: Optional kind of flow
            min_distance: Optional minimum separation in canvas units
            max_distance: Optional maximum separation in canvas units
            door_type: Optional door type between the rooms
            id: Optional relationship ID (will be auto-generated if not provided)
        """
        if from_id == to_id:
            raise InvalidInputError(
                f"Relationship cannot connect room {from_id} to itself", room_ids=[from_id]
            )

        self.type = RelationshipType.parse(type)
        self.from_id = from_id
        self.to_id = to_id
        self.priority = int(priority)
        self.reason = reason
        self.flow_direction = FlowDirection(flow_direction) if flow_direction else None
        self.flow_type = FlowType(flow_type) if flow_type else None
        self.min_distance = min_distance
        self.max_distance = max_distance
        self.door_type = door_type
        self.id = id or f"rel-{uuid.uuid4().hex[:12]}"

    @property
    def is_flow(self) -> bool:
        return self.type in FLOW_TYPES

    def involves(self, room_id: str) -> bool:
        return room_id in (self.from_id, self.to_id)

    def other_end(self, room_id: str) -> str:
        """Get the endpoint opposite to room_id."""
        if room_id == self.from_id:
            return self.to_id
        if room_id == self.to_id:
            return self.from_id
        raise ValueError(f"Room {room_id} is not an endpoint of {self.id}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation"""
        return {
            "id": self.id,
            "type": self.type.value,
            "from_id": self.from_id,
            "to_id": self.to_id,
            "priority": self.priority,
            "reason": self.reason,
            "flow_direction": self.flow_direction.value if self.flow_direction else None,
            "flow_type": self.flow_type.value if self.flow_type else None,
            "min_distance": self.min_distance,
            "max_distance": self.max_distance,
            "door_type": self.door_type,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SpatialRelationship":
        """Create a SpatialRelationship from dictionary representation"""
        return cls(
            type=data["type"],
            from_id=data["from_id"],
            to_id=data["to_id"],
            priority=data.get("priority", 1),
            reason=data.get("reason", ""),
            flow_direction=data.get("flow_direction"),
            flow_type=data.get("flow_type"),
            min_distance=data.get("min_distance"),
            max_distance=data.get("max_distance"),
            door_type=data.get("door_type"),
            id=data.get("id"),
        )

    def __repr__(self) -> str:
        return f"SpatialRelationship({self.from_id} -{self.type.value}-> {self.to_id})"
