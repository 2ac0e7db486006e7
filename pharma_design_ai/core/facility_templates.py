"""
Parametric facility templates: parameter validation, conditional rooms and
scaling by batch size and throughput.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
import copy
import logging

import numpy as np

from pharma_design_ai.config.config_loader import get_facility_templates
from pharma_design_ai.core.errors import InvalidInputError
from pharma_design_ai.models.layout import Layout
from pharma_design_ai.models.relationship import SpatialRelationship
from pharma_design_ai.models.room import Room, RoomCategory, RoomFactory

logger = logging.getLogger(__name__)

BATCH_SIZE_FACTORS = {
    "50L": 0.8,
    "100L": 0.9,
    "500L": 1.0,
    "1000L": 1.2,
    "2000L": 1.4,
}

BASE_THROUGHPUT = 3


def batch_size_factor(batch_size: Optional[str]) -> float:
    return BATCH_SIZE_FACTORS.get(batch_size, 1.0)


def throughput_factor(throughput: Optional[float]) -> float:
    """Warehouse scale factor, 1.0 at three batches per day."""
    if throughput is None:
        return 1.0
    return float(np.clip(1.0 + 0.05 * (throughput - BASE_THROUGHPUT), 0.8, 1.5))


@dataclass
class TemplateInstance:
    """Rooms and relationships produced from a template."""

    template_id: str
    name: str
    layout_style: str
    parameters: Dict[str, Any]
    rooms: List[Room]
    relationships: List[SpatialRelationship]
    regulatory_compliance: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_layout(self, name: Optional[str] = None) -> Layout:
        return Layout(
            rooms=self.rooms,
            relationships=self.relationships,
            name=name or self.name,
            metadata={"template_id": self.template_id, "parameters": dict(self.parameters)},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "template_id": self.template_id,
            "name": self.name,
            "layout_style": self.layout_style,
            "parameters": dict(self.parameters),
            "rooms": [room.to_dict() for room in self.rooms],
            "relationships": [rel.to_dict() for rel in self.relationships],
            "regulatory_compliance": list(self.regulatory_compliance),
            "warnings": list(self.warnings),
        }


class FacilityTemplateLibrary:
    """
    Lookup and instantiation of facility templates.
    """

    def __init__(self, templates: Optional[List[Dict[str, Any]]] = None):
        """
        Args:
            templates: Template definitions (loaded from the data directory when omitted)
        """
        self.templates = templates if templates is not None else get_facility_templates()
        self._by_id = {t["id"]: t for t in self.templates}

    def list_templates(self) -> List[Dict[str, Any]]:
        """Template summaries without room and relationship lists."""
        return [
            {
                "id": t["id"],
                "name": t["name"],
                "description": t.get("description", ""),
                "facility_type": t.get("facility_type"),
                "layout_style": t.get("layout_style", "clustered"),
                "complexity": t.get("complexity"),
                "estimated_area": t.get("estimated_area"),
                "regulatory_compliance": list(t.get("regulatory_compliance", [])),
                "parameters": copy.deepcopy(t.get("parameters", [])),
                "room_count": len(t.get("rooms", [])),
            }
            for t in self.templates
        ]

    def get(self, template_id: str) -> Dict[str, Any]:
        """
        Get a template definition.

        Raises:
            InvalidInputError: If the template does not exist
        """
        template = self._by_id.get(template_id)
        if template is None:
            raise InvalidInputError(
                f"Unknown facility template: {template_id}",
                details={"known": list(self._by_id)},
            )
        return template

    def for_facility_type(self, facility_type: str) -> Optional[Dict[str, Any]]:
        for template in self.templates:
            if template.get("facility_type") == facility_type:
                return template
        return None

    def resolve_parameters(
        self, template: Dict[str, Any], supplied: Optional[Dict[str, Any]] = None
    ) -> Tuple[Dict[str, Any], List[str]]:
        """
        Merge supplied values over parameter defaults.

        Invalid values fall back to the default with a warning; parameters the
        template does not declare are ignored with a warning.

        Returns:
            Tuple of (resolved parameters, warnings)
        """
        supplied = dict(supplied or {})
        resolved: Dict[str, Any] = {}
        warnings: List[str] = []

        for param in template.get("parameters", []):
            pid = param["id"]
            default = param.get("default")
            if pid not in supplied or supplied[pid] is None:
                resolved[pid] = default
                continue

            value = self._coerce(param, supplied.pop(pid))
            if value is None:
                warnings.append(
                    f"Invalid value for parameter '{pid}' in template {template['id']}; "
                    f"using default {default!r}"
                )
                resolved[pid] = default
            else:
                resolved[pid] = value

        for pid in supplied:
            warnings.append(f"Parameter '{pid}' is not used by template {template['id']}")

        for message in warnings:
            logger.warning(message)
        return resolved, warnings

    @staticmethod
    def _coerce(param: Dict[str, Any], value: Any) -> Any:
        """Validated value, or None when the value is not acceptable."""
        ptype = param.get("type")
        if ptype == "select":
            return value if value in param.get("options", []) else None
        if ptype == "boolean":
            if isinstance(value, bool):
                return value
            if isinstance(value, str) and value.lower() in ("true", "false"):
                return value.lower() == "true"
            return None
        if ptype == "number":
            if isinstance(value, bool):
                return None
            try:
                number = float(value)
            except (TypeError, ValueError):
                return None
            if "min" in param and number < param["min"]:
                return None
            if "max" in param and number > param["max"]:
                return None
            return number
        return value

    @staticmethod
    def _included(entry: Dict[str, Any], params: Dict[str, Any]) -> bool:
        condition = entry.get("include_if")
        if condition is None:
            return True
        if isinstance(condition, str):
            return bool(params.get(condition))
        return all(params.get(pid) in values for pid, values in condition.items())

    def instantiate(
        self, template_id: str, parameters: Optional[Dict[str, Any]] = None
    ) -> TemplateInstance:
        """
        Build the rooms and relationships of a template.

        Args:
            template_id: Template id
            parameters: Parameter values; missing ones take their default

        Returns:
            TemplateInstance with unplaced rooms keyed by template room key

        Raises:
            InvalidInputError: If the template or one of its room types is unknown
        """
        template = self.get(template_id)
        params, warnings = self.resolve_parameters(template, parameters)

        scale_param = template.get("scale_parameter")
        scale = batch_size_factor(params.get(scale_param)) if scale_param else 1.0
        warehouse_scale = throughput_factor(params.get("throughput"))

        rooms: List[Room] = []
        for entry in template["rooms"]:
            if not self._included(entry, params):
                continue
            room = RoomFactory.from_catalog(
                entry["room_type"],
                room_id=entry["key"],
                cleanroom_class=entry.get("cleanroom_class"),
                scale=scale,
            )
            if room.category == RoomCategory.WAREHOUSE and warehouse_scale != 1.0:
                room.width = float(round(room.width * warehouse_scale))
                room.height = float(round(room.height * warehouse_scale))
            rooms.append(room)

        ids = {room.id for room in rooms}
        relationships = [
            SpatialRelationship(
                type=rel["type"],
                from_id=rel["from"],
                to_id=rel["to"],
                priority=rel.get("priority", 1),
                reason=rel.get("reason", ""),
                id=f"{rel['from']}-{rel['type'].lower()}-{rel['to']}",
            )
            for rel in template.get("relationships", [])
            if rel["from"] in ids and rel["to"] in ids
        ]

        logger.info(
            f"Instantiated template {template_id}: {len(rooms)} rooms, "
            f"{len(relationships)} relationships (scale={scale})"
        )

        return TemplateInstance(
            template_id=template_id,
            name=template["name"],
            layout_style=template.get("layout_style", "clustered"),
            parameters=params,
            rooms=rooms,
            relationships=relationships,
            regulatory_compliance=list(template.get("regulatory_compliance", [])),
            warnings=warnings,
        )
