"""
Layout generation orchestrator.

Runs one generation request through a fixed sequence of stages:
requirements resolution, room assembly, relationship inference, position
simulation, compliance checking and metric computation. Each stage is
logged; a failing stage aborts the request with a typed error naming it.
"""

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol
import logging

from pydantic import ValidationError

from pharma_design_ai.config.config_loader import get_room_type, get_settings
from pharma_design_ai.core.base_engine import CanvasConfig
from pharma_design_ai.core.compliance_engine import ComplianceEngine, ComplianceReport
from pharma_design_ai.core.errors import (
    ExternalServiceError,
    InvalidInputError,
    LayoutError,
    LayoutGenerationError,
    UnsatisfiableLayoutError,
)
from pharma_design_ai.core.facility_templates import (
    FacilityTemplateLibrary,
    batch_size_factor,
)
from pharma_design_ai.core.force_layout import (
    ForceDirectedSimulator,
    LayoutStyle,
    SimulationConfig,
    SimulationResult,
)
from pharma_design_ai.core.relationship_inference import infer_relationships
from pharma_design_ai.models.layout import Layout
from pharma_design_ai.models.request import (
    LayoutConstraints,
    LayoutGenerationRequest,
    LayoutPreferences,
    StructuredRequirements,
)
from pharma_design_ai.models.relationship import SpatialRelationship
from pharma_design_ai.models.room import CleanroomClass, Room, RoomCategory, RoomFactory
from pharma_design_ai.utils.metrics import LayoutMetrics

logger = logging.getLogger(__name__)


class GenerationStage(Enum):
    IDLE = "idle"
    REQUIREMENTS_RESOLVED = "requirements_resolved"
    ROOMS_ASSEMBLED = "rooms_assembled"
    RELATIONSHIPS_INFERRED = "relationships_inferred"
    POSITIONS_SIMULATED = "positions_simulated"
    COMPLIANCE_CHECKED = "compliance_checked"
    METRICS_COMPUTED = "metrics_computed"
    DONE = "done"


class RequirementsInterpreter(Protocol):
    """Turns a free-text description into structured requirements."""

    def interpret(self, description: str) -> StructuredRequirements:
        ...


class LayoutRepository(Protocol):
    """Graph store the orchestrator reads initial layouts from and saves results to."""

    def load(self, layout_id: str) -> Optional[Layout]:
        ...

    def save(self, layout: Layout) -> str:
        ...


class InMemoryLayoutRepository:
    """
    Dictionary-backed layout repository; stores and returns copies.
    """

    def __init__(self):
        self._layouts: Dict[str, Dict[str, Any]] = {}

    def load(self, layout_id: str) -> Optional[Layout]:
        data = self._layouts.get(layout_id)
        return Layout.from_dict(data) if data is not None else None

    def save(self, layout: Layout) -> str:
        self._layouts[layout.id] = layout.to_dict()
        return layout.id

    def delete(self, layout_id: str) -> bool:
        return self._layouts.pop(layout_id, None) is not None

    def list_ids(self) -> List[str]:
        return list(self._layouts)


CATEGORY_ZONE_COLORS = {
    RoomCategory.PRODUCTION: "#4A90E2",
    RoomCategory.QUALITY_CONTROL: "#F5A623",
    RoomCategory.WAREHOUSE: "#7ED321",
    RoomCategory.UTILITIES: "#9013FE",
    RoomCategory.PERSONNEL: "#50E3C2",
    RoomCategory.SUPPORT: "#B8E986",
}

CATEGORY_ZONE_TYPES = {
    RoomCategory.PRODUCTION: "production",
    RoomCategory.QUALITY_CONTROL: "quality-control",
    RoomCategory.WAREHOUSE: "warehouse",
    RoomCategory.UTILITIES: "utilities",
    RoomCategory.PERSONNEL: "support",
    RoomCategory.SUPPORT: "support",
}

CLASS_ZONE_COLORS = {
    CleanroomClass.A: "#DC143C",
    CleanroomClass.B: "#FFA500",
    CleanroomClass.C: "#4A90E2",
    CleanroomClass.D: "#90EE90",
    CleanroomClass.CNC: "#D3D3D3",
}

DEFAULT_ZONE_COLOR = "#D3D3D3"


@dataclass
class Zone:
    """Named grouping of rooms by category or cleanroom class."""

    id: str
    name: str
    category: str
    room_ids: List[str]
    color: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "room_ids": list(self.room_ids),
            "color": self.color,
        }


@dataclass
class GeneratedLayout:
    """Everything one generation request produces."""

    layout: Layout
    zones: List[Zone]
    compliance: ComplianceReport
    metrics: Dict[str, Any]
    rationale: str
    warnings: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)
    stages: List[str] = field(default_factory=list)
    simulation: Optional[SimulationResult] = None
    generated_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "layout": self.layout.to_dict(),
            "zones": [zone.to_dict() for zone in self.zones],
            "compliance": self.compliance.to_dict(),
            "metrics": dict(self.metrics),
            "rationale": self.rationale,
            "warnings": list(self.warnings),
            "suggestions": list(self.suggestions),
            "stages": list(self.stages),
            "simulation": self.simulation.to_dict() if self.simulation else None,
            "generated_at": self.generated_at,
        }


@dataclass
class _Run:
    """Mutable state of one generation request."""

    request: LayoutGenerationRequest
    stages: List[str] = field(default_factory=lambda: [GenerationStage.IDLE.value])
    warnings: List[str] = field(default_factory=list)
    constraints: Optional[LayoutConstraints] = None
    jurisdiction: str = "FDA"
    style: Optional[LayoutStyle] = None
    template_id: Optional[str] = None
    layout: Optional[Layout] = None
    simulation: Optional[SimulationResult] = None
    compliance: Optional[ComplianceReport] = None
    metrics: Dict[str, Any] = field(default_factory=dict)

    def warn(self, message: str):
        logger.warning(message)
        self.warnings.append(message)


class LayoutGenerator:
    """
    Orchestrates layout generation from a request to a GeneratedLayout.
    """

    def __init__(
        self,
        interpreter: Optional[RequirementsInterpreter] = None,
        repository: Optional[LayoutRepository] = None,
        canvas: Optional[CanvasConfig] = None,
        simulation_config: Optional[SimulationConfig] = None,
        compliance_engine: Optional[ComplianceEngine] = None,
        templates: Optional[FacilityTemplateLibrary] = None,
        settings: Optional[Dict[str, Dict[str, Any]]] = None,
    ):
        """
        Initialize the generator.

        Args:
            interpreter: Text -> structured requirements collaborator
            repository: Optional layout store; generated layouts are saved to it
            canvas: Canvas configuration
            simulation_config: Force simulation parameters
            compliance_engine: Compliance engine
            templates: Facility template library
            settings: Engine settings (loaded from the settings file when omitted)
        """
        self.settings = settings or get_settings()
        self.interpreter = interpreter
        self.repository = repository
        self.canvas = canvas or CanvasConfig.from_settings(self.settings)
        self.simulation_config = simulation_config or SimulationConfig.from_settings(self.settings)
        self.compliance_engine = compliance_engine or ComplianceEngine()
        self.templates = templates or FacilityTemplateLibrary()

        generation = self.settings["generation"]
        self.default_style = LayoutStyle.parse(generation.get("default_style", "clustered"))
        self.default_jurisdiction = generation.get("default_jurisdiction", "FDA")
        self.max_canvas_expansions = int(generation.get("max_canvas_expansions", 2))
        self.canvas_expansion_factor = float(generation.get("canvas_expansion_factor", 1.5))
        self.max_flow_distance = float(generation.get("max_flow_distance", 5000.0))

    # Public API
    def generate(self, request: LayoutGenerationRequest) -> GeneratedLayout:
        """
        Generate a layout for a request.

        Raises:
            InvalidInputError: Malformed or unusable requirements
            UnsatisfiableLayoutError: A room cannot be placed even on a widened canvas
            ExternalServiceError: The interpreter or the repository failed
            LayoutGenerationError: Unexpected failure inside a stage
        """
        run = _Run(request=request)
        logger.info(f"Generating layout: {request.description[:80]!r}")

        with self._stage(run, GenerationStage.REQUIREMENTS_RESOLVED):
            self._resolve_requirements(run)

        with self._stage(run, GenerationStage.ROOMS_ASSEMBLED):
            rooms, template_relationships = self._assemble_rooms(run)

        with self._stage(run, GenerationStage.RELATIONSHIPS_INFERRED):
            relationships = (
                template_relationships
                if template_relationships is not None
                else infer_relationships(rooms)
            )
            relationships = relationships + self._extra_relationships(run)
            run.layout = Layout(
                rooms=rooms,
                relationships=relationships,
                name=request.name or self._layout_name(run),
                metadata={
                    "description": request.description,
                    "jurisdiction": run.jurisdiction,
                    "template_id": run.template_id,
                },
            )
            self._check_graph(run)

        return self._finish(run)

    def relayout(
        self,
        layout_id: str,
        preferences: Optional[LayoutPreferences] = None,
        jurisdiction: Optional[str] = None,
    ) -> GeneratedLayout:
        """
        Re-run simulation, compliance and metrics on a stored layout.

        Raises:
            ExternalServiceError: If no repository is configured or it fails
            InvalidInputError: If the layout does not exist
        """
        request = LayoutGenerationRequest(preferences=preferences or LayoutPreferences())
        run = _Run(request=request)

        with self._stage(run, GenerationStage.REQUIREMENTS_RESOLVED):
            run.jurisdiction = self._resolve_jurisdiction(run, jurisdiction)
            run.style = self._resolve_style(run, request.preferences.style)

        with self._stage(run, GenerationStage.ROOMS_ASSEMBLED):
            layout = self._load(layout_id)
            for room in layout.rooms:
                room.position = None

        with self._stage(run, GenerationStage.RELATIONSHIPS_INFERRED):
            run.layout = layout
            self._check_graph(run)

        return self._finish(run)

    # Stage plumbing
    @contextmanager
    def _stage(self, run: _Run, stage: GenerationStage):
        logger.info(f"Stage {run.stages[-1]} -> {stage.value}")
        try:
            yield
        except LayoutError as e:
            e.with_stage(stage.value)
            logger.error(f"Stage {stage.value} failed: {e}")
            raise
        except Exception as e:
            logger.error(f"Stage {stage.value} failed unexpectedly: {e}")
            raise LayoutGenerationError(
                f"Unexpected failure: {e}", stage=stage.value
            ) from e
        run.stages.append(stage.value)

    def _finish(self, run: _Run) -> GeneratedLayout:
        with self._stage(run, GenerationStage.POSITIONS_SIMULATED):
            self._simulate(run)

        with self._stage(run, GenerationStage.COMPLIANCE_CHECKED):
            run.compliance = self.compliance_engine.check(run.layout, run.jurisdiction)

        with self._stage(run, GenerationStage.METRICS_COMPUTED):
            run.metrics = LayoutMetrics(
                run.layout,
                units_per_meter=self.canvas.units_per_meter,
                max_flow_distance=self.max_flow_distance,
                adjacency_tolerance=self.canvas.node_spacing * 1.5,
            ).evaluate_all()
            zones = self.build_zones(run.layout.rooms)

        with self._stage(run, GenerationStage.DONE):
            result = GeneratedLayout(
                layout=run.layout,
                zones=zones,
                compliance=run.compliance,
                metrics=run.metrics,
                rationale=self._rationale(run),
                warnings=self._warnings(run),
                suggestions=self._suggestions(run),
                stages=list(run.stages),
                simulation=run.simulation,
            )
            self._save(run.layout)

        result.stages.append(GenerationStage.DONE.value)
        logger.info(
            f"Generated layout {run.layout.name}: {len(run.layout.rooms)} rooms, "
            f"compliance {run.compliance.overall_score}/100"
        )
        return result

    # Collaborators
    def _interpret(self, description: str) -> LayoutConstraints:
        if self.interpreter is None:
            raise InvalidInputError(
                "Request has no constraints and no requirements interpreter is configured"
            )
        try:
            result = self.interpreter.interpret(description)
        except LayoutError:
            raise
        except Exception as e:
            raise ExternalServiceError(f"Requirements interpreter failed: {e}") from e

        if isinstance(result, LayoutConstraints):
            return result
        try:
            return LayoutConstraints.model_validate(result)
        except ValidationError as e:
            raise InvalidInputError(
                "Requirements interpreter returned malformed constraints",
                details={"errors": e.errors()},
            ) from e

    def _load(self, layout_id: str) -> Layout:
        if self.repository is None:
            raise ExternalServiceError("No layout repository configured")
        try:
            layout = self.repository.load(layout_id)
        except Exception as e:
            raise ExternalServiceError(f"Layout repository failed to load {layout_id}: {e}") from e
        if layout is None:
            raise InvalidInputError(f"Layout not found: {layout_id}")
        return layout

    def _save(self, layout: Layout):
        if self.repository is None:
            return
        try:
            self.repository.save(layout)
        except Exception as e:
            raise ExternalServiceError(f"Layout repository failed to save {layout.id}: {e}") from e

    # Stage: requirements
    def _resolve_requirements(self, run: _Run):
        request = run.request
        constraints = request.constraints or self._interpret(request.description)
        if not constraints.has_room_source():
            raise InvalidInputError(
                "Requirements name no template, facility type or room types"
            )

        run.constraints = constraints
        run.jurisdiction = self._resolve_jurisdiction(run, constraints.jurisdiction)
        if request.preferences.style is not None:
            run.style = self._resolve_style(run, request.preferences.style)

    def _resolve_jurisdiction(self, run: _Run, jurisdiction: Optional[str]) -> str:
        if not jurisdiction:
            return self.default_jurisdiction
        if not self.compliance_engine.rulebook.has_jurisdiction(jurisdiction):
            run.warn(
                f"Unknown jurisdiction {jurisdiction!r}; checking against "
                f"{self.default_jurisdiction} instead"
            )
            return self.default_jurisdiction
        return jurisdiction

    def _resolve_style(self, run: _Run, style: Optional[str]) -> LayoutStyle:
        if style is None:
            return self.default_style
        try:
            return LayoutStyle.parse(style)
        except InvalidInputError:
            run.warn(f"Unknown layout style {style!r}; using {LayoutStyle.CLUSTERED.value}")
            return LayoutStyle.CLUSTERED

    # Stage: rooms
    def _assemble_rooms(self, run: _Run):
        """
        Build the room set from a template or from room-type ids.

        Returns:
            (rooms, template relationships or None when they must be inferred)
        """
        constraints = run.constraints
        template = None
        if constraints.template_id:
            template = self.templates.get(constraints.template_id)
        elif constraints.facility_type and not constraints.room_types:
            template = self.templates.for_facility_type(constraints.facility_type)
            if template is None:
                raise InvalidInputError(
                    f"No template for facility type {constraints.facility_type!r} "
                    "and no room types given"
                )

        if template is not None:
            rooms, relationships = self._rooms_from_template(run, template)
        else:
            rooms, relationships = self._rooms_from_types(run), None

        if run.style is None:
            run.style = self._resolve_style(
                run, template.get("layout_style") if template else None
            )

        self._apply_ceiling(run, rooms)
        return rooms, relationships

    def _rooms_from_template(self, run: _Run, template: Dict[str, Any]):
        constraints = run.constraints
        declared = {p["id"] for p in template.get("parameters", [])}
        parameters = dict(constraints.template_parameters)

        scale_param = template.get("scale_parameter")
        if constraints.batch_size and scale_param and scale_param not in parameters:
            parameters[scale_param] = constraints.batch_size
        if constraints.throughput is not None and "throughput" in declared:
            parameters.setdefault("throughput", constraints.throughput)

        instance = self.templates.instantiate(template["id"], parameters)
        for message in instance.warnings:
            run.warnings.append(message)
        run.template_id = instance.template_id
        return instance.rooms, instance.relationships

    def _rooms_from_types(self, run: _Run) -> List[Room]:
        constraints = run.constraints
        scale = batch_size_factor(constraints.batch_size)
        counts: Dict[str, int] = {}
        rooms: List[Room] = []

        for room_type in constraints.room_types:
            entry = get_room_type(room_type)
            if entry is None:
                run.warn(f"Skipping unknown room type: {room_type}")
                continue
            counts[entry["id"]] = counts.get(entry["id"], 0) + 1
            n = counts[entry["id"]]
            room_id = entry["id"] if n == 1 else f"{entry['id']}-{n}"
            rooms.append(RoomFactory.from_catalog(entry["id"], room_id=room_id, scale=scale))

        if not rooms:
            raise InvalidInputError(
                "None of the requested room types is known",
                details={"room_types": list(constraints.room_types)},
            )
        return rooms

    def _apply_ceiling(self, run: _Run, rooms: List[Room]):
        try:
            ceiling = CleanroomClass.parse(run.constraints.cleanroom_ceiling)
        except InvalidInputError:
            run.warn(
                f"Unknown cleanroom ceiling {run.constraints.cleanroom_ceiling!r}; "
                "keeping catalog classes"
            )
            return
        if ceiling is None:
            return
        for room in rooms:
            if room.cleanroom_class is not None and room.class_rank < ceiling.rank:
                run.warn(
                    f"Room {room.id} relaxed from Class {room.cleanroom_class.value} "
                    f"to the Class {ceiling.value} ceiling"
                )
                room.cleanroom_class = ceiling

    # Stage: relationships
    def _extra_relationships(self, run: _Run) -> List[SpatialRelationship]:
        extra = []
        for i, data in enumerate(run.constraints.relationships):
            try:
                extra.append(
                    SpatialRelationship.from_dict({"id": f"requested-{i + 1}", **data})
                )
            except KeyError as e:
                raise InvalidInputError(
                    f"Requested relationship {i + 1} is missing field {e}",
                    details={"relationship": data},
                ) from e
        return extra

    def _check_graph(self, run: _Run):
        layout = run.layout
        duplicates = layout.duplicate_room_ids()
        if duplicates:
            raise InvalidInputError("Duplicate room ids in layout", room_ids=duplicates)

        for rel in layout.prune_dangling_relationships():
            run.warnings.append(
                f"Dropped relationship {rel.id} ({rel.from_id} -> {rel.to_id}): unknown room"
            )

    # Stage: positions
    def _simulate(self, run: _Run):
        layout = run.layout
        canvas = self.canvas
        style = run.style or self.default_style
        seed = run.request.preferences.seed

        for attempt in range(self.max_canvas_expansions + 1):
            simulator = ForceDirectedSimulator(canvas, self.simulation_config)
            result = simulator.run(layout.rooms, layout.relationships, style=style, seed=seed)
            if not result.unresolved:
                break
            if attempt == self.max_canvas_expansions:
                raise UnsatisfiableLayoutError(
                    f"Rooms could not be placed without overlap on a "
                    f"{canvas.width:.0f}x{canvas.height:.0f} canvas",
                    room_ids=result.unresolved,
                )
            canvas = canvas.widened(self.canvas_expansion_factor)
            run.warn(
                f"{len(result.unresolved)} room(s) overlapped; canvas widened to "
                f"{canvas.width:.0f}x{canvas.height:.0f}"
            )

        layout.apply_positions(result.positions)
        layout.metadata["canvas"] = {"width": canvas.width, "height": canvas.height}
        run.simulation = result

    # Outputs
    @staticmethod
    def build_zones(rooms: List[Room]) -> List[Zone]:
        """One zone per category, one per cleanroom class holding more than one room."""
        zones: List[Zone] = []

        for category in RoomCategory:
            members = [room.id for room in rooms if room.category == category]
            if members:
                zones.append(
                    Zone(
                        id=f"zone-{CATEGORY_ZONE_TYPES[category]}-{category.name.lower()}",
                        name=f"{category.value} Zone",
                        category=CATEGORY_ZONE_TYPES[category],
                        room_ids=members,
                        color=CATEGORY_ZONE_COLORS.get(category, DEFAULT_ZONE_COLOR),
                    )
                )

        for cls in CleanroomClass:
            members = [room.id for room in rooms if room.cleanroom_class == cls]
            if len(members) > 1:
                zones.append(
                    Zone(
                        id=f"zone-class-{cls.value.lower()}",
                        name=f"Cleanroom Class {cls.value} Zone",
                        category="cleanroom",
                        room_ids=members,
                        color=CLASS_ZONE_COLORS.get(cls, DEFAULT_ZONE_COLOR),
                    )
                )

        return zones

    def _layout_name(self, run: _Run) -> str:
        constraints = run.constraints
        label = run.template_id or constraints.facility_type or "custom"
        return f"{label} layout"

    def _rationale(self, run: _Run) -> str:
        layout = run.layout
        classes = [room.cleanroom_class for room in layout.rooms if room.cleanroom_class]
        parts = []

        if run.request.description:
            parts.append(
                f'Generated pharmaceutical facility layout based on: "{run.request.description}".'
            )
        parts.append(
            f"The design includes {len(layout.rooms)} functional areas organized into "
            "logical flow sequences."
        )
        if classes:
            highest = min(classes, key=lambda c: c.rank)
            parts.append(
                f"Cleanroom classifications range from Class {highest.value} (highest) "
                "to CNC (unclassified support areas)."
            )
        parts.append(
            f"Layout optimized for {run.request.preferences.prioritize_flow or 'balanced'} "
            "flow patterns."
        )
        parts.append(
            f"Compliance score: {run.compliance.overall_score}/100 "
            f"({run.jurisdiction} standards)."
        )
        return " ".join(parts)

    def _warnings(self, run: _Run) -> List[str]:
        critical = [result.message for result in run.compliance.critical_failures]
        return critical + run.warnings

    def _suggestions(self, run: _Run) -> List[str]:
        rooms = run.layout.rooms
        suggestions = []

        sterile = sum(1 for room in rooms if room.is_sterile)
        airlocks = sum(1 for room in rooms if room.name_contains("airlock"))
        if sterile > airlocks:
            suggestions.append("Consider adding more airlocks for sterile area protection")

        if run.metrics.get("flow_efficiency", 1.0) < 0.6:
            suggestions.append(
                "Flow paths could be optimized to reduce material transfer distances"
            )

        if run.metrics.get("cleanroom_utilization", 0.0) > 70:
            suggestions.append(
                "High cleanroom utilization - consider if all areas require controlled classification"
            )

        return suggestions
