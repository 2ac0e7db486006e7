"""
Request models for layout generation.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class LayoutConstraints(BaseModel):
    """Structured requirements resolved from a free-text description."""

    facility_type: Optional[str] = Field(
        None, description="Facility type (e.g. sterile-injectable, oral-solid-dosage)"
    )
    template_id: Optional[str] = Field(None, description="Facility template to instantiate")
    template_parameters: Dict[str, Any] = Field(
        default_factory=dict, description="Template parameter values"
    )
    room_types: List[str] = Field(
        default_factory=list, description="Room-type ids when no template is used"
    )
    relationships: List[Dict[str, Any]] = Field(
        default_factory=list,
        description="Extra relationships (type, from_id, to_id, ...) added to the inferred ones",
    )
    batch_size: Optional[str] = Field(None, description="Batch size such as 500L")
    throughput: Optional[float] = Field(None, ge=0, description="Batches per day")
    cleanroom_ceiling: Optional[str] = Field(
        None, description="Strictest cleanroom class allowed (A, B, C, D or CNC)"
    )
    jurisdiction: str = Field("FDA", description="Regulatory zone (FDA, EMA, ICH, WHO, PIC/S)")

    def has_room_source(self) -> bool:
        return bool(self.template_id or self.facility_type or self.room_types)


# Output of a requirements interpreter
StructuredRequirements = LayoutConstraints


class LayoutPreferences(BaseModel):
    style: Optional[str] = Field(
        None, description="Layout style: grid, circular, linear, random or clustered"
    )
    prioritize_flow: Optional[str] = Field(
        None, description="Flow to optimize for (material or personnel)"
    )
    seed: Optional[int] = Field(None, description="Seed for random initialization")


class LayoutGenerationRequest(BaseModel):
    description: str = Field("", description="Free-text facility description")
    constraints: Optional[LayoutConstraints] = Field(
        None, description="Already-resolved requirements; skips the interpreter when given"
    )
    preferences: LayoutPreferences = Field(default_factory=LayoutPreferences)
    name: Optional[str] = Field(None, description="Name of the generated layout")
