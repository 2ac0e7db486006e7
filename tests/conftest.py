"""
Shared fixtures for the layout engine tests.
"""

import pytest

from pharma_design_ai.core.base_engine import CanvasConfig
from pharma_design_ai.core.force_layout import SimulationConfig
from pharma_design_ai.models.layout import Layout
from pharma_design_ai.models.relationship import RelationshipType, SpatialRelationship
from pharma_design_ai.models.room import Room, RoomCategory


def make_room(
    room_id,
    name=None,
    category=RoomCategory.PRODUCTION,
    cleanroom_class=None,
    width=100,
    height=100,
    position=None,
):
    """Room with sensible test defaults; the name defaults to the id."""
    return Room(
        name=name or room_id,
        category=category,
        width=width,
        height=height,
        cleanroom_class=cleanroom_class,
        position=position,
        id=room_id,
    )


def rel(rel_type, from_id, to_id, priority=1):
    return SpatialRelationship(
        type=rel_type,
        from_id=from_id,
        to_id=to_id,
        priority=priority,
        id=f"{from_id}-{rel_type.value.lower()}-{to_id}",
    )


@pytest.fixture
def canvas():
    """Default canvas: 3000x2000, 50-unit grid, 200-unit node spacing."""
    return CanvasConfig()


@pytest.fixture
def sim_config():
    return SimulationConfig()


@pytest.fixture
def sterile_layout():
    """
    Small compliant sterile suite: airlock protecting a Grade A filling room,
    gowning room feeding it with personnel.
    """
    rooms = [
        make_room("warehouse", "Warehouse", RoomCategory.WAREHOUSE, "CNC"),
        make_room("airlock", "Material Airlock", RoomCategory.PERSONNEL, "C"),
        make_room("filling", "Filling Room", RoomCategory.PRODUCTION, "A"),
        make_room("gowning", "Sterile Gowning Room", RoomCategory.PERSONNEL, "C"),
    ]
    relationships = [
        rel(RelationshipType.MATERIAL_FLOW, "warehouse", "airlock"),
        rel(RelationshipType.MATERIAL_FLOW, "airlock", "filling"),
        rel(RelationshipType.ADJACENT_TO, "airlock", "filling", priority=2),
        rel(RelationshipType.PERSONNEL_FLOW, "gowning", "filling", priority=2),
    ]
    return Layout(rooms=rooms, relationships=relationships, name="Sterile suite", id="sterile")
