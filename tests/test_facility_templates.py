"""
Tests for parametric facility templates.
"""

import pytest

from pharma_design_ai.core.compliance_engine import ComplianceEngine
from pharma_design_ai.core.errors import InvalidInputError
from pharma_design_ai.core.facility_templates import (
    FacilityTemplateLibrary,
    batch_size_factor,
    throughput_factor,
)
from pharma_design_ai.models.room import CleanroomClass

STERILE = "sterile-injectable-facility"
ORAL = "oral-solid-dosage-facility"


@pytest.fixture(scope="module")
def library():
    return FacilityTemplateLibrary()


class TestScaleFactors:
    """Batch size and throughput scaling."""

    @pytest.mark.parametrize(
        "batch_size, factor",
        [("50L", 0.8), ("100L", 0.9), ("500L", 1.0), ("1000L", 1.2), ("2000L", 1.4), ("7L", 1.0), (None, 1.0)],
    )
    def test_batch_size_factor(self, batch_size, factor):
        assert batch_size_factor(batch_size) == factor

    @pytest.mark.parametrize(
        "throughput, factor",
        [(None, 1.0), (3, 1.0), (5, 1.1), (1, 0.9), (-20, 0.8), (100, 1.5)],
    )
    def test_throughput_factor(self, throughput, factor):
        assert throughput_factor(throughput) == pytest.approx(factor)


class TestLibrary:
    """Template lookup."""

    def test_list_templates(self, library):
        summaries = library.list_templates()
        ids = [t["id"] for t in summaries]
        assert STERILE in ids and ORAL in ids
        sterile = next(t for t in summaries if t["id"] == STERILE)
        assert sterile["room_count"] == 13
        assert "rooms" not in sterile

    def test_unknown_template_raises(self, library):
        with pytest.raises(InvalidInputError):
            library.get("moon-base")

    def test_for_facility_type(self, library):
        assert library.for_facility_type("sterile-injectable")["id"] == STERILE
        assert library.for_facility_type("chocolate") is None


class TestParameters:
    """Parameter resolution and validation."""

    def test_defaults(self, library):
        params, warnings = library.resolve_parameters(library.get(STERILE))
        assert params == {
            "batch_size": "500L",
            "fill_speed": 300,
            "include_freeze_dryer": True,
            "throughput": 3,
        }
        assert warnings == []

    def test_invalid_values_fall_back_with_warning(self, library):
        params, warnings = library.resolve_parameters(
            library.get(STERILE), {"batch_size": "9000L", "fill_speed": 5000}
        )
        assert params["batch_size"] == "500L"
        assert params["fill_speed"] == 300
        assert len(warnings) == 2
        assert "batch_size" in warnings[0]

    def test_undeclared_parameter_is_ignored_with_warning(self, library):
        params, warnings = library.resolve_parameters(library.get(STERILE), {"colour": "blue"})
        assert "colour" not in params
        assert warnings == [f"Parameter 'colour' is not used by template {STERILE}"]

    def test_coercion(self, library):
        params, warnings = library.resolve_parameters(
            library.get(STERILE), {"include_freeze_dryer": "false", "fill_speed": "450"}
        )
        assert params["include_freeze_dryer"] is False
        assert params["fill_speed"] == 450.0
        assert warnings == []


# =============================================================================
# INSTANTIATION
# =============================================================================

class TestInstantiate:
    """Rooms and relationships built from templates."""

    def test_default_sterile_suite(self, library):
        instance = library.instantiate(STERILE)
        ids = [room.id for room in instance.rooms]
        assert len(ids) == 13
        assert "lyophilizer" in ids
        assert instance.layout_style == "linear"
        assert len(instance.relationships) == 18
        assert all(room.position is None for room in instance.rooms)
        assert instance.rooms[ids.index("filling")].cleanroom_class == CleanroomClass.A

    def test_relationship_ids_are_stable(self, library):
        instance = library.instantiate(STERILE)
        assert instance.relationships[0].id == "warehouse-material_flow-material-airlock"

    def test_boolean_include_if_drops_room_and_edges(self, library):
        instance = library.instantiate(STERILE, {"include_freeze_dryer": False})
        ids = {room.id for room in instance.rooms}
        assert "lyophilizer" not in ids
        assert len(instance.relationships) == 16
        assert all(rel.from_id in ids and rel.to_id in ids for rel in instance.relationships)

    def test_select_include_if(self, library):
        instance = library.instantiate(ORAL, {"dosage_form": "capsules"})
        ids = {room.id for room in instance.rooms}
        assert "encapsulation" in ids
        assert "compression" not in ids

        both = {room.id for room in library.instantiate(ORAL, {"dosage_form": "both"}).rooms}
        assert {"encapsulation", "compression"} <= both

    def test_batch_size_scales_rooms(self, library):
        large = library.instantiate(STERILE, {"batch_size": "1000L"})
        filling = next(room for room in large.rooms if room.id == "filling")
        assert (filling.width, filling.height) == (192.0, 132.0)

    def test_throughput_scales_warehouse_rooms_only(self, library):
        busy = library.instantiate(STERILE, {"throughput": 5})
        rooms = {room.id: room for room in busy.rooms}
        assert (rooms["warehouse"].width, rooms["warehouse"].height) == (220.0, 165.0)
        assert (rooms["filling"].width, rooms["filling"].height) == (160.0, 110.0)

    def test_invalid_parameter_reported_on_instance(self, library):
        instance = library.instantiate(STERILE, {"batch_size": "huge"})
        assert len(instance.warnings) == 1
        assert instance.parameters["batch_size"] == "500L"

    def test_unknown_template_raises(self, library):
        with pytest.raises(InvalidInputError):
            library.instantiate("moon-base")

    def test_to_layout_is_valid(self, library):
        layout = library.instantiate(STERILE).to_layout()
        layout.validate()
        assert layout.metadata["template_id"] == STERILE

    @pytest.mark.parametrize("jurisdiction", ["FDA", "EMA", "ICH", "WHO", "PIC/S"])
    def test_sterile_suite_is_compliant(self, library, jurisdiction):
        layout = library.instantiate(STERILE).to_layout()
        report = ComplianceEngine().check(layout, jurisdiction)
        assert report.failed == 0, [r.message for r in report.failures]

    @pytest.mark.parametrize("template_id", [t["id"] for t in FacilityTemplateLibrary().templates])
    def test_every_template_instantiates(self, library, template_id):
        instance = library.instantiate(template_id)
        assert instance.rooms
        instance.to_layout().validate()
