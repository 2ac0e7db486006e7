"""
Tests for the layout generation orchestrator.
"""

import json
from unittest.mock import Mock

import pytest

from conftest import make_room
from pharma_design_ai.config.config_loader import get_settings
from pharma_design_ai.core.base_engine import CanvasConfig
from pharma_design_ai.core.errors import (
    ExternalServiceError,
    InvalidInputError,
    LayoutGenerationError,
    UnsatisfiableLayoutError,
)
from pharma_design_ai.core.layout_generator import (
    GenerationStage,
    InMemoryLayoutRepository,
    LayoutGenerator,
)
from pharma_design_ai.models.request import (
    LayoutConstraints,
    LayoutGenerationRequest,
    LayoutPreferences,
)
from pharma_design_ai.models.room import CleanroomClass, RoomCategory

STERILE = "sterile-injectable-facility"
ALL_STAGES = [stage.value for stage in GenerationStage]


@pytest.fixture(scope="module")
def generator():
    return LayoutGenerator()


def _request(style="grid", description="", **constraints):
    return LayoutGenerationRequest(
        description=description,
        constraints=LayoutConstraints(**constraints),
        preferences=LayoutPreferences(style=style),
    )


def _settings(**generation):
    settings = get_settings()
    settings["generation"].update(generation)
    return settings


# =============================================================================
# HAPPY PATHS
# =============================================================================

class TestGenerate:
    """Complete generation runs."""

    def test_template_run(self, generator):
        result = generator.generate(
            _request(
                style="linear",
                description="Sterile vial filling",
                template_id=STERILE,
                jurisdiction="EMA",
            )
        )

        assert result.stages == ALL_STAGES
        assert len(result.layout.rooms) == 13
        assert all(room.is_placed for room in result.layout.rooms)
        assert result.layout.overlapping_pairs(generator.canvas.min_clearance) == []
        assert result.compliance.jurisdiction == "EMA"
        assert result.compliance.failed == 0
        assert result.warnings == []
        assert result.layout.metadata["template_id"] == STERILE
        assert result.simulation.style == "linear"
        assert 'based on: "Sterile vial filling"' in result.rationale
        assert "Compliance score: 100/100 (EMA standards)." in result.rationale

    def test_template_style_used_without_preference(self, generator):
        result = generator.generate(_request(style=None, template_id=STERILE))
        assert result.simulation.style == "linear"

    def test_room_type_run_infers_relationships(self, generator):
        result = generator.generate(
            _request(room_types=["warehouse", "dispensing-room", "granulation-room", "qc"])
        )
        ids = [room.id for room in result.layout.rooms]
        assert ids == ["warehouse", "dispensing-room", "granulation-room", "qc-lab"]
        assert result.layout.relationships
        assert all(rel.id.startswith("inferred-") for rel in result.layout.relationships)
        assert result.layout.name == "custom layout"

    def test_duplicate_room_types_get_suffixed_ids(self, generator):
        result = generator.generate(_request(room_types=["dispensing-room", "dispensing-room"]))
        assert [room.id for room in result.layout.rooms] == ["dispensing-room", "dispensing-room-2"]

    def test_facility_type_selects_template(self, generator):
        result = generator.generate(_request(facility_type="oral-solid-dosage"))
        assert result.layout.metadata["template_id"] == "oral-solid-dosage-facility"

    def test_batch_size_reaches_template_scale(self, generator):
        result = generator.generate(_request(template_id=STERILE, batch_size="1000L"))
        filling = result.layout.get_room("filling")
        assert filling.width == 192.0

    def test_batch_size_scales_room_types(self, generator):
        result = generator.generate(_request(room_types=["filling-room"], batch_size="50L"))
        assert result.layout.rooms[0].width == 128.0

    def test_extra_relationships_are_added(self, generator):
        result = generator.generate(
            _request(
                room_types=["warehouse", "qc-lab"],
                relationships=[{"type": "ADJACENT_TO", "from_id": "warehouse", "to_id": "qc-lab"}],
            )
        )
        extra = [rel for rel in result.layout.relationships if rel.id == "requested-1"]
        assert len(extra) == 1

    def test_result_is_json_serializable(self, generator):
        result = generator.generate(_request(template_id=STERILE))
        data = json.loads(json.dumps(result.to_dict()))
        assert data["stages"][-1] == "done"
        assert set(data["metrics"]) >= {"total_area", "flow_efficiency", "cleanroom_utilization"}
        assert data["layout"]["metadata"]["canvas"] == {"width": 3000.0, "height": 2000.0}

    def test_suggestions_and_critical_warnings(self, generator):
        result = generator.generate(
            _request(room_types=["filling-room", "lyophilizer"], jurisdiction="EMA")
        )
        assert "Consider adding more airlocks for sterile area protection" in result.suggestions
        assert result.warnings[0].startswith("Grade A/B areas (2 room(s)) lack required airlocks")


# =============================================================================
# RECOVERY PATHS
# =============================================================================

class TestRecovery:
    """Problems the orchestrator works around with a warning."""

    def test_unknown_room_type_skipped(self, generator):
        result = generator.generate(_request(room_types=["dispensing-room", "unicorn-stable"]))
        assert [room.id for room in result.layout.rooms] == ["dispensing-room"]
        assert "Skipping unknown room type: unicorn-stable" in result.warnings

    def test_unknown_jurisdiction_falls_back(self, generator):
        result = generator.generate(_request(room_types=["qc-lab"], jurisdiction="MARS"))
        assert result.compliance.jurisdiction == "FDA"
        assert any("Unknown jurisdiction 'MARS'" in w for w in result.warnings)

    def test_unknown_style_falls_back(self, generator):
        result = generator.generate(_request(style="spiral", room_types=["qc-lab"]))
        assert result.simulation.style == "clustered"
        assert any("Unknown layout style 'spiral'" in w for w in result.warnings)

    def test_cleanroom_ceiling_relaxes_rooms(self, generator):
        result = generator.generate(
            _request(room_types=["filling-room", "qc-lab"], cleanroom_ceiling="C")
        )
        filling = result.layout.get_room("filling-room")
        assert filling.cleanroom_class == CleanroomClass.C
        assert result.layout.get_room("qc-lab").cleanroom_class == CleanroomClass.CNC
        assert any("relaxed from Class A" in w for w in result.warnings)

    def test_unknown_cleanroom_ceiling_is_ignored(self, generator):
        result = generator.generate(
            _request(room_types=["filling-room", "qc-lab"], cleanroom_ceiling="Z")
        )
        assert result.stages[-1] == "done"
        assert result.layout.get_room("filling-room").cleanroom_class == CleanroomClass.A
        assert any("Unknown cleanroom ceiling 'Z'" in w for w in result.warnings)

    def test_dangling_relationship_dropped(self, generator):
        result = generator.generate(
            _request(
                room_types=["qc-lab"],
                relationships=[{"type": "ADJACENT_TO", "from_id": "qc-lab", "to_id": "ghost"}],
            )
        )
        assert result.layout.relationships == []
        assert any("Dropped relationship requested-1" in w for w in result.warnings)

    def test_invalid_template_parameter_warns(self, generator):
        result = generator.generate(
            _request(template_id=STERILE, template_parameters={"batch_size": "huge"})
        )
        assert any("batch_size" in w for w in result.warnings)

    def test_canvas_widened_when_rooms_do_not_fit(self):
        generator = LayoutGenerator(
            canvas=CanvasConfig(width=300, height=300, padding=0),
            settings=_settings(max_canvas_expansions=1, canvas_expansion_factor=3.0),
        )
        result = generator.generate(_request(room_types=["warehouse", "warehouse"]))
        assert result.layout.metadata["canvas"] == {"width": 900.0, "height": 900.0}
        assert any("canvas widened to 900x900" in w for w in result.warnings)


# =============================================================================
# FAILURES
# =============================================================================

class TestFailures:
    """Errors carry the stage that failed."""

    def test_no_room_source(self, generator):
        with pytest.raises(InvalidInputError) as excinfo:
            generator.generate(_request())
        assert excinfo.value.stage == "requirements_resolved"

    def test_no_constraints_and_no_interpreter(self, generator):
        with pytest.raises(InvalidInputError):
            generator.generate(LayoutGenerationRequest(description="A sterile plant"))

    def test_all_room_types_unknown(self, generator):
        with pytest.raises(InvalidInputError) as excinfo:
            generator.generate(_request(room_types=["unicorn-stable"]))
        assert excinfo.value.stage == "rooms_assembled"

    def test_unknown_facility_type_without_rooms(self, generator):
        with pytest.raises(InvalidInputError) as excinfo:
            generator.generate(_request(facility_type="chocolate"))
        assert excinfo.value.stage == "rooms_assembled"

    def test_unknown_template(self, generator):
        with pytest.raises(InvalidInputError):
            generator.generate(_request(template_id="moon-base"))

    def test_malformed_extra_relationship(self, generator):
        with pytest.raises(InvalidInputError) as excinfo:
            generator.generate(_request(room_types=["qc-lab"], relationships=[{"type": "ADJACENT_TO"}]))
        assert excinfo.value.stage == "relationships_inferred"

    def test_unsatisfiable_layout(self):
        generator = LayoutGenerator(
            canvas=CanvasConfig(width=300, height=300, padding=0),
            settings=_settings(max_canvas_expansions=0),
        )
        with pytest.raises(UnsatisfiableLayoutError) as excinfo:
            generator.generate(_request(room_types=["warehouse", "warehouse"]))
        assert excinfo.value.stage == "positions_simulated"
        assert excinfo.value.room_ids == ["warehouse-2"]

    def test_unexpected_stage_failure_is_wrapped(self):
        engine = Mock()
        engine.rulebook.has_jurisdiction.return_value = True
        engine.check.side_effect = RuntimeError("boom")
        generator = LayoutGenerator(compliance_engine=engine)

        with pytest.raises(LayoutGenerationError) as excinfo:
            generator.generate(_request(room_types=["qc-lab"]))
        assert excinfo.value.stage == "compliance_checked"
        assert isinstance(excinfo.value.__cause__, RuntimeError)


# =============================================================================
# COLLABORATORS
# =============================================================================

class TestInterpreter:
    """Free-text requests go through the requirements interpreter."""

    def test_interpreter_result_is_used(self):
        interpreter = Mock()
        interpreter.interpret.return_value = {"room_types": ["qc-lab"], "jurisdiction": "WHO"}
        generator = LayoutGenerator(interpreter=interpreter)

        result = generator.generate(LayoutGenerationRequest(description="A QC lab"))

        interpreter.interpret.assert_called_once_with("A QC lab")
        assert result.compliance.jurisdiction == "WHO"
        assert [room.id for room in result.layout.rooms] == ["qc-lab"]

    def test_interpreter_failure_is_external(self):
        interpreter = Mock()
        interpreter.interpret.side_effect = ConnectionError("service down")
        generator = LayoutGenerator(interpreter=interpreter)

        with pytest.raises(ExternalServiceError) as excinfo:
            generator.generate(LayoutGenerationRequest(description="anything"))
        assert excinfo.value.stage == "requirements_resolved"

    def test_malformed_interpreter_output(self):
        interpreter = Mock()
        interpreter.interpret.return_value = {"room_types": ["qc-lab"], "throughput": -1}
        generator = LayoutGenerator(interpreter=interpreter)

        with pytest.raises(InvalidInputError):
            generator.generate(LayoutGenerationRequest(description="anything"))


class TestRepository:
    """Saving generated layouts and re-running stored ones."""

    def test_generated_layout_is_saved(self):
        repository = InMemoryLayoutRepository()
        generator = LayoutGenerator(repository=repository)
        result = generator.generate(_request(room_types=["warehouse", "qc-lab"]))

        assert repository.list_ids() == [result.layout.id]
        stored = repository.load(result.layout.id)
        assert stored.positions() == result.layout.positions()

    def test_relayout(self):
        repository = InMemoryLayoutRepository()
        generator = LayoutGenerator(repository=repository)
        first = generator.generate(_request(template_id=STERILE))

        result = generator.relayout(first.layout.id, LayoutPreferences(style="circular"), "EMA")

        assert result.stages == ALL_STAGES
        assert result.simulation.style == "circular"
        assert result.compliance.jurisdiction == "EMA"
        assert [r.id for r in result.layout.rooms] == [r.id for r in first.layout.rooms]
        assert all(room.is_placed for room in result.layout.rooms)

    def test_relayout_missing_layout(self):
        generator = LayoutGenerator(repository=InMemoryLayoutRepository())
        with pytest.raises(InvalidInputError):
            generator.relayout("missing")

    def test_relayout_without_repository(self, generator):
        with pytest.raises(ExternalServiceError):
            generator.relayout("anything")

    def test_save_failure_is_external(self):
        repository = Mock()
        repository.save.side_effect = IOError("disk full")
        generator = LayoutGenerator(repository=repository)

        with pytest.raises(ExternalServiceError) as excinfo:
            generator.generate(_request(room_types=["qc-lab"]))
        assert excinfo.value.stage == "done"

    def test_in_memory_repository_returns_copies(self):
        from pharma_design_ai.models.layout import Layout

        repository = InMemoryLayoutRepository()
        layout = Layout(rooms=[make_room("a")], id="l1")
        repository.save(layout)
        layout.rooms.append(make_room("b"))

        assert [r.id for r in repository.load("l1").rooms] == ["a"]
        assert repository.delete("l1")
        assert repository.load("l1") is None


class TestZones:
    """Zones by category and cleanroom class."""

    def test_build_zones(self):
        rooms = [
            make_room("fill", category=RoomCategory.PRODUCTION, cleanroom_class="A"),
            make_room("lyo", category=RoomCategory.PRODUCTION, cleanroom_class="A"),
            make_room("gown", category=RoomCategory.PERSONNEL, cleanroom_class="B"),
            make_room("qc", category=RoomCategory.QUALITY_CONTROL),
        ]
        zones = {zone.id: zone for zone in LayoutGenerator.build_zones(rooms)}

        assert set(zones) == {
            "zone-production-production",
            "zone-support-personnel",
            "zone-quality-control-quality_control",
            "zone-class-a",
        }
        assert zones["zone-production-production"].room_ids == ["fill", "lyo"]
        assert zones["zone-class-a"].category == "cleanroom"
