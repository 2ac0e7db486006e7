"""
Configuration loader for Pharma Design AI.
This module loads all reference data (room-type catalog, facility templates,
regulatory rulebook) and engine settings from data files, and provides
a clean API for accessing configuration throughout the project.
"""

import os
import json
import copy
import logging
from functools import lru_cache
from typing import Dict, List, Any, Optional

logger = logging.getLogger(__name__)

# Define paths to data directories
PACKAGE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DATA_DIR = os.path.join(PACKAGE_DIR, "data")
SETTINGS_DIR = os.path.join(DATA_DIR, "settings")

ROOM_TYPES_FILE = os.path.join(DATA_DIR, "room_types.json")
TEMPLATES_FILE = os.path.join(DATA_DIR, "facility_templates.json")
RULES_FILE = os.path.join(DATA_DIR, "regulatory_rules.json")

# Environment variable pointing at an alternative settings file
SETTINGS_ENV_VAR = "PHARMA_DESIGN_SETTINGS"

DEFAULT_SETTINGS: Dict[str, Dict[str, Any]] = {
    "canvas": {
        "width": 3000.0,
        "height": 2000.0,
        "padding": 100.0,
        "grid_size": 50.0,
        "node_spacing": 200.0,
        "min_clearance": 20.0,
        "units_per_meter": 10.0,
    },
    "scoring": {
        "overlap": 1.0,
        "adjacency": 0.8,
        "similarity": 0.6,
        "flow": 0.5,
        "cohesion": 0.7,
    },
    "simulation": {
        "max_iterations": 100,
        "convergence_threshold": 0.01,
        "damping": 0.8,
        "attraction_strength": 0.05,
        "repulsion_strength": 20000.0,
        "collision_strength": 0.5,
        "max_step": 40.0,
    },
    "generation": {
        "default_style": "clustered",
        "default_jurisdiction": "FDA",
        "max_canvas_expansions": 2,
        "canvas_expansion_factor": 1.5,
        "max_flow_distance": 5000.0,
    },
}


def _load_json_file(filepath: str, default: Any = None) -> Any:
    """
    Load a JSON file with error handling.

    Args:
        filepath: Path to the JSON file
        default: Default value to return if the file doesn't exist

    Returns:
        Loaded JSON data or default value
    """
    if not os.path.exists(filepath):
        logger.debug(f"Config file not found, using defaults: {filepath}")
        return default

    try:
        with open(filepath, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        logger.warning(f"Could not parse {filepath}: {e}")
        return default


def get_settings(name: str = "default") -> Dict[str, Dict[str, Any]]:
    """
    Get engine settings merged over the built-in defaults.

    The file named by the PHARMA_DESIGN_SETTINGS environment variable takes
    precedence over data/settings/<name>.json.

    Args:
        name: Name of the settings configuration

    Returns:
        Dictionary of settings sections (canvas, scoring, simulation, generation)
    """
    filepath = os.environ.get(SETTINGS_ENV_VAR) or os.path.join(
        SETTINGS_DIR, f"{name}.json"
    )
    loaded = _load_json_file(filepath, {}) or {}

    result = copy.deepcopy(DEFAULT_SETTINGS)

    # Ensure essential parameters exist, overriding only known keys per section
    for section, values in loaded.items():
        if section not in result or not isinstance(values, dict):
            logger.warning(f"Ignoring unknown settings section: {section}")
            continue
        result[section].update(values)

    return result


@lru_cache(maxsize=None)
def _room_catalog() -> Dict[str, Any]:
    data = _load_json_file(ROOM_TYPES_FILE, {"room_types": {}, "aliases": {}})
    logger.info(f"Loaded {len(data.get('room_types', {}))} room types")
    return data


def get_room_types() -> Dict[str, Dict[str, Any]]:
    """
    Get the room-type catalog.

    Returns:
        Dictionary mapping room-type id to its catalog entry
        (name, category, cleanroom_class, width, height, equipment)
    """
    return copy.deepcopy(_room_catalog().get("room_types", {}))


def get_room_type(room_type_id: str) -> Optional[Dict[str, Any]]:
    """
    Look up a single room type, resolving aliases.

    Args:
        room_type_id: Room-type identifier or alias

    Returns:
        Catalog entry, or None if the identifier is unknown
    """
    catalog = _room_catalog()
    key = catalog.get("aliases", {}).get(room_type_id, room_type_id)
    entry = catalog.get("room_types", {}).get(key)
    if entry is None:
        return None

    result = copy.deepcopy(entry)
    result["id"] = key
    return result


@lru_cache(maxsize=None)
def _templates() -> List[Dict[str, Any]]:
    data = _load_json_file(TEMPLATES_FILE, {"templates": []})
    logger.info(f"Loaded {len(data.get('templates', []))} facility templates")
    return data.get("templates", [])


def get_facility_templates() -> List[Dict[str, Any]]:
    """Get all facility template definitions."""
    return copy.deepcopy(_templates())


def get_facility_template(template_id: str) -> Optional[Dict[str, Any]]:
    """Get a facility template by id, or None if unknown."""
    for template in _templates():
        if template["id"] == template_id:
            return copy.deepcopy(template)
    return None


def get_template_for_facility_type(facility_type: str) -> Optional[Dict[str, Any]]:
    """Get the first facility template declared for a facility type."""
    for template in _templates():
        if template.get("facility_type") == facility_type:
            return copy.deepcopy(template)
    return None


@lru_cache(maxsize=None)
def _rulebook_data() -> Dict[str, Any]:
    data = _load_json_file(RULES_FILE, {"rules": [], "jurisdictions": {}})
    logger.info(f"Loaded {len(data.get('rules', []))} GMP regulatory rules")
    return data


def get_regulatory_rules() -> List[Dict[str, Any]]:
    """Get the raw regulatory rule definitions."""
    return copy.deepcopy(_rulebook_data().get("rules", []))


def get_jurisdiction_sources() -> Dict[str, List[str]]:
    """
    Get the mapping from jurisdiction code to the rule sources it covers.

    Returns:
        Dictionary such as {"EMA": ["EMA Annex 1"], ...}
    """
    return copy.deepcopy(_rulebook_data().get("jurisdictions", {}))
