from enum import Enum
from typing import Dict, Any, List, Optional, Tuple
import uuid

from pharma_design_ai.config.config_loader import get_room_type
from pharma_design_ai.core.errors import InvalidInputError
from pharma_design_ai.utils.geometry import BoundingBox, room_box


class RoomCategory(Enum):
    """Functional category of a room."""

    PRODUCTION = "Production"
    QUALITY_CONTROL = "Quality Control"
    WAREHOUSE = "Warehouse"
    UTILITIES = "Utilities"
    PERSONNEL = "Personnel"
    SUPPORT = "Support"

    @classmethod
    def parse(cls, value: Any) -> "RoomCategory":
        """Accept an enum member, its value or its name (case-insensitive)."""
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        for member in cls:
            if text.lower() in (member.value.lower(), member.name.lower()):
                return member
        raise InvalidInputError(f"Unknown room category: {value!r}")


class CleanroomClass(Enum):
    """Air-cleanliness grade, A strictest, CNC controlled but not classified."""

    A = "A"
    B = "B"
    C = "C"
    D = "D"
    CNC = "CNC"

    @property
    def rank(self) -> int:
        return _CLASS_RANKS[self]

    @property
    def is_classified(self) -> bool:
        return self is not CleanroomClass.CNC

    @classmethod
    def parse(cls, value: Any) -> Optional["CleanroomClass"]:
        """Parse a class label, returning None for empty values."""
        if value is None or isinstance(value, cls):
            return value
        text = str(value).strip().upper()
        if not text:
            return None
        if text.startswith("GRADE "):
            text = text[len("GRADE "):]
        if text in ("CONTROLLED-NOT-CLASSIFIED", "CONTROLLED NOT CLASSIFIED", "UNCLASSIFIED"):
            return cls.CNC
        try:
            return cls(text)
        except ValueError:
            raise InvalidInputError(f"Unknown cleanroom class: {value!r}")


_CLASS_RANKS = {
    CleanroomClass.A: 1,
    CleanroomClass.B: 2,
    CleanroomClass.C: 3,
    CleanroomClass.D: 4,
    CleanroomClass.CNC: 5,
}


class Room:
    """
    Represents a functional area in a pharmaceutical facility.
    """

    def __init__(
        self,
        name: str,
        category: RoomCategory,
        width: float,
        height: float,
        cleanroom_class: Optional[CleanroomClass] = None,
        position: Optional[Tuple[float, float]] = None,
        equipment: Optional[List[str]] = None,
        room_type: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        id: Optional[str] = None,
    ):
        """
        Initialize a room.

        Args:
            name: Display name of the room (e.g., "Filling Room")
            category: Functional category
            width: Width of the footprint in canvas units
            height: Height of the footprint in canvas units
            cleanroom_class: Optional cleanroom grade
            position: Center of the footprint, None until placed
            equipment: Optional equipment list
            room_type: Catalog room-type id the room was created from
            metadata: Additional room information
            id: Optional room ID (will be auto-generated if not provided)
        """
        if width <= 0 or height <= 0:
            raise InvalidInputError(
                f"Room {name!r} must have a positive size, got {width}x{height}",
                room_ids=[id] if id else None,
            )

        self.name = name
        self.category = RoomCategory.parse(category)
        self.width = float(width)
        self.height = float(height)
        self.cleanroom_class = CleanroomClass.parse(cleanroom_class)
        self.equipment = list(equipment or [])
        self.room_type = room_type
        self.metadata = metadata or {}
        self.id = id or f"{room_type or 'room'}-{uuid.uuid4().hex[:8]}"

        # Position is set when placed by the simulator or the placement engine
        self.position: Optional[Tuple[float, float]] = (
            (float(position[0]), float(position[1])) if position is not None else None
        )

    @property
    def area(self) -> float:
        """Footprint area in square canvas units"""
        return self.width * self.height

    @property
    def is_placed(self) -> bool:
        return self.position is not None

    @property
    def is_sterile(self) -> bool:
        """True for Grade A and Grade B rooms"""
        return self.cleanroom_class in (CleanroomClass.A, CleanroomClass.B)

    @property
    def class_rank(self) -> Optional[int]:
        return self.cleanroom_class.rank if self.cleanroom_class else None

    def name_contains(self, *keywords: str) -> bool:
        """Case-insensitive check whether the display name mentions any keyword."""
        lowered = self.name.lower()
        return any(keyword.lower() in lowered for keyword in keywords)

    def bounding_box(self, position: Optional[Tuple[float, float]] = None) -> BoundingBox:
        """
        Get the footprint box at position (defaults to the current position).

        Raises:
            ValueError: If the room is not placed and no position is given
        """
        center = position if position is not None else self.position
        if center is None:
            raise ValueError(f"Room {self.id} has no position")
        return room_box(center, self.width, self.height)

    def copy(self) -> "Room":
        return Room.from_dict(self.to_dict())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation"""
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category.value,
            "cleanroom_class": self.cleanroom_class.value if self.cleanroom_class else None,
            "x": self.position[0] if self.position else None,
            "y": self.position[1] if self.position else None,
            "width": self.width,
            "height": self.height,
            "equipment": list(self.equipment),
            "room_type": self.room_type,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Room":
        """
        Create a Room from dictionary representation.

        Width and height fall back to the room-type catalog when omitted.
        """
        width = data.get("width")
        height = data.get("height")
        room_type = data.get("room_type")

        if width is None or height is None:
            entry = get_room_type(room_type) if room_type else None
            if entry is None:
                raise InvalidInputError(
                    "Room size is required when no catalog room type is given",
                    room_ids=[data["id"]] if data.get("id") else None,
                )
            width = width if width is not None else entry["width"]
            height = height if height is not None else entry["height"]

        position = data.get("position")
        if position is None and data.get("x") is not None and data.get("y") is not None:
            position = (data["x"], data["y"])

        return cls(
            name=data["name"],
            category=data["category"],
            width=width,
            height=height,
            cleanroom_class=data.get("cleanroom_class"),
            position=position,
            equipment=data.get("equipment"),
            room_type=room_type,
            metadata=data.get("metadata"),
            id=data.get("id"),
        )

    def __repr__(self) -> str:
        cls_label = self.cleanroom_class.value if self.cleanroom_class else "-"
        return f"Room(id={self.id}, name={self.name}, class={cls_label}, dim={self.width}x{self.height})"


class RoomFactory:
    """
    Factory class for creating rooms from the room-type catalog.
    """

    @staticmethod
    def from_catalog(
        room_type: str,
        room_id: Optional[str] = None,
        cleanroom_class: Optional[Any] = None,
        scale: float = 1.0,
        name: Optional[str] = None,
    ) -> Room:
        """
        Create a room with catalog defaults.

        Args:
            room_type: Catalog room-type id (aliases are resolved)
            room_id: Optional room id
            cleanroom_class: Optional override of the catalog class
            scale: Multiplier applied to both catalog dimensions
            name: Optional override of the catalog display name

        Returns:
            Room: The new, unplaced room

        Raises:
            InvalidInputError: If the room type is not in the catalog
        """
        entry = get_room_type(room_type)
        if entry is None:
            raise InvalidInputError(f"Unknown room type: {room_type}")

        return Room(
            name=name or entry["name"],
            category=entry["category"],
            width=round(entry["width"] * scale),
            height=round(entry["height"] * scale),
            cleanroom_class=(
                cleanroom_class if cleanroom_class is not None else entry.get("cleanroom_class")
            ),
            equipment=entry.get("equipment"),
            room_type=entry["id"],
            id=room_id,
        )
