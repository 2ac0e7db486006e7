# python main.py --template sterile-injectable-facility --jurisdiction EMA
# python main.py --rooms dispensing-room,granulation-room,blending-room,warehouse,qc-lab --style linear
"""
Main application for Pharma Design AI.
This integrates all components (templates, relationship inference, force
simulation, compliance engine, metrics) and provides a command-line
interface for generating and evaluating cleanroom facility layouts.
"""

import os
import sys
import json
import argparse
import logging
from datetime import datetime
from typing import Dict, Any

from pharma_design_ai.core.errors import LayoutError
from pharma_design_ai.core.facility_templates import FacilityTemplateLibrary
from pharma_design_ai.core.layout_generator import GeneratedLayout, LayoutGenerator
from pharma_design_ai.models.request import (
    LayoutConstraints,
    LayoutGenerationRequest,
    LayoutPreferences,
)
from pharma_design_ai.visualization.export import (
    export_to_json,
    export_to_csv,
    export_metrics_to_json,
)

logger = logging.getLogger(__name__)


def parse_arguments(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(description="Pharma Design AI - Layout Generator")

    # Room source
    parser.add_argument(
        "--template",
        type=str,
        default=None,
        help="Facility template id (see --list-templates)",
    )
    parser.add_argument(
        "--rooms",
        type=str,
        default=None,
        help="Comma-separated room-type ids when no template is used",
    )
    parser.add_argument(
        "--param",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Template parameter (repeatable), e.g. --param batch_size=1000L",
    )
    parser.add_argument(
        "--list-templates",
        action="store_true",
        help="List the available facility templates and exit",
    )

    # Requirements
    parser.add_argument("--description", type=str, default="", help="Facility description")
    parser.add_argument("--batch-size", type=str, default=None, help="Batch size, e.g. 500L")
    parser.add_argument("--throughput", type=float, default=None, help="Batches per day")
    parser.add_argument(
        "--cleanroom-ceiling",
        type=str,
        default=None,
        help="Strictest cleanroom class allowed (A, B, C, D, CNC)",
    )
    parser.add_argument(
        "--jurisdiction",
        type=str,
        default="FDA",
        help="Regulatory zone (FDA, EMA, ICH, WHO, PIC/S)",
    )

    # Layout options
    parser.add_argument(
        "--style",
        type=str,
        choices=["grid", "circular", "linear", "random", "clustered"],
        default=None,
        help="Initialization style for the force simulation",
    )
    parser.add_argument(
        "--seed", type=int, default=None, help="Random seed for reproducibility"
    )

    # Export options
    parser.add_argument(
        "--output",
        type=str,
        default="output",
        help="Output directory for generated files",
    )
    parser.add_argument(
        "--export-formats",
        type=str,
        default="json,csv",
        help="Comma-separated list of export formats (json,csv)",
    )

    return parser.parse_args(argv)


def parse_parameters(pairs) -> Dict[str, Any]:
    """Turn KEY=VALUE strings into template parameters (JSON values when parseable)."""
    parameters = {}
    for pair in pairs:
        if "=" not in pair:
            raise ValueError(f"Template parameter must be KEY=VALUE, got {pair!r}")
        key, value = pair.split("=", 1)
        try:
            parameters[key.strip()] = json.loads(value)
        except json.JSONDecodeError:
            parameters[key.strip()] = value
    return parameters


def build_request(args) -> LayoutGenerationRequest:
    room_types = [r.strip() for r in args.rooms.split(",") if r.strip()] if args.rooms else []
    constraints = LayoutConstraints(
        template_id=args.template,
        template_parameters=parse_parameters(args.param),
        room_types=room_types,
        batch_size=args.batch_size,
        throughput=args.throughput,
        cleanroom_ceiling=args.cleanroom_ceiling,
        jurisdiction=args.jurisdiction,
    )
    return LayoutGenerationRequest(
        description=args.description,
        constraints=constraints,
        preferences=LayoutPreferences(style=args.style, seed=args.seed),
    )


def print_summary(result: GeneratedLayout):
    report = result.compliance
    print(f"\nLayout: {result.layout.name} ({len(result.layout.rooms)} rooms)")
    for room in result.layout.rooms:
        x, y = room.position
        cls_label = room.cleanroom_class.value if room.cleanroom_class else "-"
        print(f"  {room.id:<24} class {cls_label:<4} at ({x:.0f}, {y:.0f})")

    print(f"\nCompliance ({report.jurisdiction}): {report.overall_score}/100")
    print(f"  {report.summary}")
    for check in report.failures:
        print(f"  [{check.severity.value}] {check.rule_id}: {check.message}")

    print("\nMetrics:")
    for key, value in result.metrics.items():
        print(f"  {key}: {value}")

    for warning in result.warnings:
        print(f"Warning: {warning}")
    for suggestion in result.suggestions:
        print(f"Suggestion: {suggestion}")


def save_outputs(result: GeneratedLayout, args) -> str:
    """Save the generated layout to the requested formats"""
    print("\nSaving outputs...")

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    output_subfolder = os.path.join(args.output, timestamp)
    os.makedirs(output_subfolder, exist_ok=True)

    prefix = "facility_layout"
    export_formats = [f.strip().lower() for f in args.export_formats.split(",")]

    for export_format in export_formats:
        if export_format == "json":
            json_file = os.path.join(output_subfolder, f"{prefix}.json")
            export_to_json(result.to_dict(), json_file)
            print(f"  Saved JSON to {json_file}")

        elif export_format == "csv":
            csv_file = os.path.join(output_subfolder, f"{prefix}.csv")
            export_to_csv(result.layout, csv_file)
            print(f"  Saved CSV to {csv_file}")

        else:
            logger.warning(f"Unknown export format: {export_format}")

    metrics_file = os.path.join(output_subfolder, f"{prefix}_metrics.json")
    export_metrics_to_json(result.metrics, metrics_file)
    print(f"  Saved metrics to {metrics_file}")

    print(f"\nOutputs saved to: {output_subfolder}")
    return output_subfolder


def main(argv=None) -> int:
    """Main entry point for the application"""
    logging.basicConfig(level=logging.INFO)
    args = parse_arguments(argv)

    print("Pharma Design AI - Layout Generator")
    print("===================================")

    if args.list_templates:
        for template in FacilityTemplateLibrary().list_templates():
            print(f"  {template['id']:<32} {template['name']}")
        return 0

    if not args.template and not args.rooms:
        print("Error: pass --template or --rooms")
        return 2

    try:
        request = build_request(args)
        result = LayoutGenerator().generate(request)
    except (LayoutError, ValueError) as e:
        logger.error(f"Layout generation failed: {e}")
        print(f"Error: {e}")
        return 1

    print_summary(result)
    save_outputs(result, args)

    print("\nDone!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
