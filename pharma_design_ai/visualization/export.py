import json
import os
from typing import Dict, Any

from pharma_design_ai.models.layout import Layout


def _ensure_parent(filepath: str):
    output_dir = os.path.dirname(filepath)
    if output_dir:
        os.makedirs(output_dir, exist_ok=True)


def export_to_json(data: Dict[str, Any], filename: str):
    """
    Export a generated layout (or any serialized result) to JSON format.

    Args:
        data: Dictionary to export, e.g. GeneratedLayout.to_dict()
        filename: Output JSON filename
    """
    _ensure_parent(filename)
    with open(filename, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def export_metrics_to_json(metrics: Dict[str, Any], filepath: str) -> None:
    """
    Export layout metrics to a JSON file.

    Args:
        metrics: Dictionary of metrics
        filepath: Path to save the JSON file
    """
    _ensure_parent(filepath)
    with open(filepath, "w", encoding="utf-8") as f:
        json.dump(metrics, f, indent=2)


def export_to_csv(layout: Layout, filename: str, units_per_meter: float = 10.0):
    """
    Export the room data to CSV format.

    Args:
        layout: The layout to export
        filename: Output CSV filename
        units_per_meter: Canvas units per metre for the area column
    """
    columns = [
        "room_id",
        "room_type",
        "name",
        "category",
        "cleanroom_class",
        "x",
        "y",
        "width",
        "height",
        "area_m2",
    ]

    _ensure_parent(filename)
    with open(filename, "w", encoding="utf-8") as f:
        # Write header
        f.write(",".join(columns) + "\n")

        for room in layout.rooms:
            x, y = room.position if room.position is not None else ("", "")
            area = (room.width / units_per_meter) * (room.height / units_per_meter)
            row = [
                room.id,
                room.room_type or "",
                room.name,
                room.category.value,
                room.cleanroom_class.value if room.cleanroom_class else "",
                x,
                y,
                room.width,
                room.height,
                round(area, 2),
            ]
            f.write(",".join(_csv_field(value) for value in row) + "\n")


def _csv_field(value: Any) -> str:
    text = str(value)
    if any(ch in text for ch in ',"\n'):
        return '"' + text.replace('"', '""') + '"'
    return text
