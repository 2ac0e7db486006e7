"""
Routes for generative layout design: generation, templates, compliance
checks and placement.
"""

import logging
from functools import lru_cache
from typing import Dict, Any, Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel, Field

from pharma_design_ai.core.base_engine import CanvasConfig
from pharma_design_ai.core.compliance_engine import ComplianceEngine
from pharma_design_ai.core.errors import ErrorCategory, InvalidInputError, LayoutError
from pharma_design_ai.core.facility_templates import FacilityTemplateLibrary
from pharma_design_ai.core.force_layout import ForceDirectedSimulator
from pharma_design_ai.core.layout_generator import InMemoryLayoutRepository, LayoutGenerator
from pharma_design_ai.core.placement_engine import PlacementEngine
from pharma_design_ai.models.layout import Layout
from pharma_design_ai.models.request import LayoutGenerationRequest, LayoutPreferences
from pharma_design_ai.models.room import Room

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix="/generative", tags=["Generative Layout"])

ERROR_STATUS = {
    ErrorCategory.INVALID_INPUT: 400,
    ErrorCategory.UNSATISFIABLE: 422,
    ErrorCategory.EXTERNAL: 502,
    ErrorCategory.INTERNAL: 500,
}


# Models
class LayoutPayload(BaseModel):
    layout: Dict[str, Any] = Field(..., description="Serialized layout (rooms, relationships)")


class ComplianceCheckRequest(LayoutPayload):
    jurisdiction: str = Field("FDA", description="Regulatory zone")


class SimulationRequest(LayoutPayload):
    style: str = Field("clustered", description="Initialization style")
    seed: Optional[int] = None


class OptimalPositionRequest(LayoutPayload):
    room: Dict[str, Any] = Field(..., description="Room to place")


class RelayoutRequest(BaseModel):
    preferences: LayoutPreferences = Field(default_factory=LayoutPreferences)
    jurisdiction: Optional[str] = None


# Dependencies
@lru_cache(maxsize=None)
def get_repository() -> InMemoryLayoutRepository:
    return InMemoryLayoutRepository()


@lru_cache(maxsize=None)
def get_generator() -> LayoutGenerator:
    return LayoutGenerator(repository=get_repository())


@lru_cache(maxsize=None)
def get_compliance_engine() -> ComplianceEngine:
    return ComplianceEngine()


@lru_cache(maxsize=None)
def get_template_library() -> FacilityTemplateLibrary:
    return FacilityTemplateLibrary()


# Helper functions
def success_response(message: str, **kwargs) -> Dict[str, Any]:
    """Create a standardized success response."""
    return {"success": True, "message": message, **kwargs}


def http_error(e: LayoutError) -> HTTPException:
    """Map a layout error to an HTTP error carrying its context."""
    status = ERROR_STATUS.get(e.category, 500)
    logger.error(f"Request failed ({status}): {e}")
    return HTTPException(status_code=status, detail=e.to_dict())


def parse_layout(data: Dict[str, Any], pending: Optional[Room] = None) -> Layout:
    """Deserialize and validate a layout; relationships may also reference pending."""
    try:
        layout = Layout.from_dict(data)
    except KeyError as e:
        raise InvalidInputError(f"Layout is missing field {e}") from e
    rooms = layout.rooms + ([pending] if pending is not None else [])
    Layout(rooms=rooms, relationships=layout.relationships, id=layout.id).validate()
    return layout


@router.post("/generate")
def generate_layout(
    request: LayoutGenerationRequest,
    generator: LayoutGenerator = Depends(get_generator),
):
    """Generate a complete layout from structured requirements."""
    try:
        result = generator.generate(request)
    except LayoutError as e:
        raise http_error(e)
    return success_response("Layout generated", result=result.to_dict())


@router.get("/layouts/{layout_id}")
async def get_layout(
    layout_id: str, repository: InMemoryLayoutRepository = Depends(get_repository)
):
    layout = repository.load(layout_id)
    if layout is None:
        raise HTTPException(status_code=404, detail=f"Layout not found: {layout_id}")
    return success_response("Layout found", layout=layout.to_dict())


@router.post("/layouts/{layout_id}/relayout")
def relayout(
    layout_id: str,
    request: Optional[RelayoutRequest] = None,
    generator: LayoutGenerator = Depends(get_generator),
):
    """Re-position a stored layout and re-check it."""
    request = request or RelayoutRequest()
    try:
        result = generator.relayout(layout_id, request.preferences, request.jurisdiction)
    except LayoutError as e:
        raise http_error(e)
    return success_response("Layout regenerated", result=result.to_dict())


@router.get("/templates")
async def list_templates(library: FacilityTemplateLibrary = Depends(get_template_library)):
    templates = library.list_templates()
    return success_response(f"{len(templates)} templates", templates=templates)


@router.get("/templates/{template_id}")
async def get_template(
    template_id: str, library: FacilityTemplateLibrary = Depends(get_template_library)
):
    try:
        template = library.get(template_id)
    except LayoutError as e:
        raise http_error(e)
    return success_response("Template found", template=template)


@router.post("/templates/{template_id}/instantiate")
def instantiate_template(
    template_id: str,
    parameters: Optional[Dict[str, Any]] = Body(None),
    library: FacilityTemplateLibrary = Depends(get_template_library),
):
    """Build the rooms and relationships of a template without placing them."""
    try:
        instance = library.instantiate(template_id, parameters)
    except LayoutError as e:
        raise http_error(e)
    return success_response("Template instantiated", instance=instance.to_dict())


@router.post("/compliance/check")
def check_compliance(
    request: ComplianceCheckRequest,
    engine: ComplianceEngine = Depends(get_compliance_engine),
):
    try:
        layout = parse_layout(request.layout)
        report = engine.check(layout, request.jurisdiction)
    except LayoutError as e:
        raise http_error(e)
    return success_response(report.summary, report=report.to_dict())


@router.get("/rules")
async def list_rules(
    jurisdiction: Optional[str] = None,
    engine: ComplianceEngine = Depends(get_compliance_engine),
):
    """List the rulebook, optionally restricted to one jurisdiction."""
    rulebook = engine.rulebook
    try:
        rules = rulebook.for_jurisdiction(jurisdiction) if jurisdiction else list(rulebook)
    except LayoutError as e:
        raise http_error(e)
    return success_response(
        f"{len(rules)} rules",
        rules=[rule.to_dict() for rule in rules],
        jurisdictions=rulebook.jurisdictions,
    )


@router.post("/placement/optimal")
def optimal_position(request: OptimalPositionRequest):
    """Best position for one room given the rooms already placed."""
    try:
        room = Room.from_dict(request.room)
        layout = parse_layout(request.layout, pending=room)
        engine = PlacementEngine(CanvasConfig.from_settings())
        placement = engine.calculate_optimal_position(room, layout.rooms, layout.relationships)
    except KeyError as e:
        raise http_error(InvalidInputError(f"Room is missing field {e}"))
    except LayoutError as e:
        raise http_error(e)
    return success_response("Position calculated", placement=placement.to_dict())


@router.post("/layout/simulate")
def simulate_layout(request: SimulationRequest):
    """Whole-layout positions from the force-directed simulator."""
    try:
        layout = parse_layout(request.layout)
        simulator = ForceDirectedSimulator(CanvasConfig.from_settings())
        result = simulator.run(
            layout.rooms, layout.relationships, style=request.style, seed=request.seed
        )
    except LayoutError as e:
        raise http_error(e)
    return success_response("Simulation complete", simulation=result.to_dict())
