"""
Tests for heuristic relationship inference.
"""

from conftest import make_room
from pharma_design_ai.core.relationship_inference import (
    RelationshipInference,
    infer_relationships,
    production_stage,
)
from pharma_design_ai.models.relationship import RelationshipType
from pharma_design_ai.models.room import RoomCategory


def _edges(relationships):
    return [(r.type, r.from_id, r.to_id) for r in relationships]


class TestProductionStage:
    def test_known_stages(self):
        assert production_stage(make_room("d", "Dispensing Room")) == 0
        assert production_stage(make_room("p", "Packaging Hall")) == 6
        assert production_stage(make_room("o", "Offices")) is None


class TestInference:
    """Relationships inferred from names, categories and classes."""

    def test_oral_solid_chain(self):
        rooms = [
            make_room("wh", "Warehouse", RoomCategory.WAREHOUSE),
            make_room("blend", "Blending Room"),
            make_room("disp", "Dispensing Room"),
            make_room("gran", "Granulation Room"),
            make_room("qc", "QC Laboratory", RoomCategory.QUALITY_CONTROL),
        ]
        rels = infer_relationships(rooms)

        assert _edges(rels) == [
            (RelationshipType.MATERIAL_FLOW, "disp", "gran"),
            (RelationshipType.MATERIAL_FLOW, "gran", "blend"),
            (RelationshipType.MATERIAL_FLOW, "wh", "blend"),
            (RelationshipType.MATERIAL_FLOW, "gran", "qc"),
        ]
        assert [r.id for r in rels] == ["inferred-1", "inferred-2", "inferred-3", "inferred-4"]
        assert rels[0].reason == "Sequential production flow"
        assert rels[3].priority == 3

    def test_sterile_protection(self):
        rooms = [
            make_room("lock", "Material Airlock", RoomCategory.PERSONNEL, "C"),
            make_room("fill", "Filling Room", cleanroom_class="A"),
            make_room("lyo", "Lyophilization Room", cleanroom_class="A"),
            make_room("gown", "Gowning Room", RoomCategory.PERSONNEL, "C"),
        ]
        rels = infer_relationships(rooms)

        assert _edges(rels) == [
            (RelationshipType.ADJACENT_TO, "lock", "fill"),
            (RelationshipType.ADJACENT_TO, "lock", "lyo"),
            (RelationshipType.PERSONNEL_FLOW, "gown", "fill"),
            (RelationshipType.PERSONNEL_FLOW, "gown", "lyo"),
        ]
        assert all(r.priority == 2 for r in rels)

    def test_duplicate_edges_are_skipped(self):
        rooms = [
            make_room("store", "Dispensing Store", RoomCategory.WAREHOUSE),
            make_room("gran", "Granulation Room"),
        ]
        rels = RelationshipInference(rooms).infer()
        assert _edges(rels) == [(RelationshipType.MATERIAL_FLOW, "store", "gran")]

    def test_nothing_to_infer(self):
        rooms = [make_room("office", "Offices", RoomCategory.SUPPORT)]
        assert infer_relationships(rooms) == []

    def test_inferred_graph_resolves(self):
        rooms = [
            make_room("wh", "Warehouse", RoomCategory.WAREHOUSE),
            make_room("disp", "Dispensing Room"),
            make_room("comp", "Compression Room"),
            make_room("qc", "QC Laboratory", RoomCategory.QUALITY_CONTROL),
        ]
        ids = {room.id for room in rooms}
        for rel in infer_relationships(rooms):
            assert rel.from_id in ids and rel.to_id in ids
            assert rel.from_id != rel.to_id
