"""
Evaluator functions for checkable regulatory rules.

Each evaluator is a pure function ``(rule, layout, index) -> ComplianceCheckResult``
over the room/relationship graph. ``RULE_CHECKS`` maps a rule id to its
evaluator; ``register_check`` adds entries at import time.
"""

from typing import Callable, Dict, Iterable, List, Optional, Sequence
import logging

import networkx as nx

from pharma_design_ai.core.rulebook import ComplianceCheckResult, RegulatoryRule
from pharma_design_ai.models.layout import Layout, RelationshipIndex
from pharma_design_ai.models.relationship import RelationshipType
from pharma_design_ai.models.room import CleanroomClass, Room, RoomCategory

logger = logging.getLogger(__name__)

RuleCheck = Callable[[RegulatoryRule, Layout, RelationshipIndex], ComplianceCheckResult]

RULE_CHECKS: Dict[str, RuleCheck] = {}

# Room-name keywords
AIRLOCK_KEYWORDS = ("airlock",)
TRANSFER_KEYWORDS = ("airlock", "pass-through", "pass through", "hatch", "steriliz", "autoclave")
GOWNING_KEYWORDS = ("gowning",)
CHANGING_KEYWORDS = ("gowning", "change", "changing")
WASHING_KEYWORDS = ("washing", "gowning")
WASTE_KEYWORDS = ("waste",)
BETA_LACTAM_KEYWORDS = ("penicillin", "beta-lactam")
SENSITIZING_KEYWORDS = (
    "penicillin",
    "beta-lactam",
    "cephalosporin",
    "steroid",
    "hormone",
    "cytotoxic",
)

MAX_CLASS_GAP = 2
CLEAN_CLASSES = (CleanroomClass.A, CleanroomClass.B, CleanroomClass.C)
LOW_AIR_CLASSES = (CleanroomClass.D, CleanroomClass.CNC, None)


def register_check(*rule_ids: str) -> Callable[[RuleCheck], RuleCheck]:
    """Decorator registering an evaluator under one or more rule ids."""

    def decorator(func: RuleCheck) -> RuleCheck:
        for rule_id in rule_ids:
            RULE_CHECKS[rule_id] = func
        return func

    return decorator


def _unique(ids: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(ids))


def _result(
    rule: RegulatoryRule,
    passed: bool,
    message: str,
    affected: Iterable[str] = (),
    recommendation: Optional[str] = None,
    auto_fix: Optional[Dict[str, str]] = None,
) -> ComplianceCheckResult:
    return ComplianceCheckResult(
        rule_id=rule.id,
        passed=passed,
        severity=rule.severity,
        message=message,
        affected_room_ids=_unique(affected),
        recommendation=None if passed else recommendation,
        auto_fix_available=bool(auto_fix) and not passed,
        auto_fix=None if passed else auto_fix,
    )


def _edge_rooms(layout: Layout, index: RelationshipIndex, *types: RelationshipType):
    """Yield (relationship, source room, target room) for resolvable edges."""
    rooms = layout.room_map
    for rel in index.of_type(*types):
        source, target = rooms.get(rel.from_id), rooms.get(rel.to_id)
        if source is not None and target is not None:
            yield rel, source, target


@register_check("ema-annex1-4.14", "pics-pe009-airlocks")
def check_airlock_adequacy(
    rule: RegulatoryRule, layout: Layout, index: RelationshipIndex
) -> ComplianceCheckResult:
    """Every Grade A/B room needs an ADJACENT_TO link to an airlock."""
    rooms = layout.room_map
    sterile = [room for room in layout.rooms if room.is_sterile]

    unprotected = []
    for room in sterile:
        partners = (rooms.get(rid) for rid in index.neighbors(room.id, RelationshipType.ADJACENT_TO))
        if not any(p is not None and p.name_contains(*AIRLOCK_KEYWORDS) for p in partners):
            unprotected.append(room.id)

    if unprotected:
        message = (
            f"Grade A/B areas ({len(unprotected)} room(s)) lack required airlocks. "
            "EMA Annex 1 requires airlocks to protect sterile areas."
        )
    else:
        message = f"All Grade A/B areas are properly protected with airlocks ({len(sterile)} checked)."

    return _result(
        rule,
        passed=not unprotected,
        message=message,
        affected=unprotected,
        recommendation="Add airlocks adjacent to all Grade A and Grade B rooms.",
        auto_fix={
            "type": "add-airlock",
            "rationale": "Insert an airlock room adjacent to each unprotected Grade A/B room.",
        },
    )


@register_check("ema-annex1-cleanroom-progression")
def check_cleanroom_progression(
    rule: RegulatoryRule, layout: Layout, index: RelationshipIndex
) -> ComplianceCheckResult:
    """Adjacent rooms may differ by at most two cleanroom grades."""
    violations = []
    for _, source, target in _edge_rooms(layout, index, RelationshipType.ADJACENT_TO):
        if source.class_rank is None or target.class_rank is None:
            continue
        if abs(source.class_rank - target.class_rank) > MAX_CLASS_GAP:
            violations.append((source.id, target.id))

    if violations:
        message = (
            f"Invalid cleanroom transitions detected ({len(violations)} violations). "
            "Direct Class A↔D transitions require intermediate buffer zones."
        )
    else:
        message = "Cleanroom classification progression is compliant."

    return _result(
        rule,
        passed=not violations,
        message=message,
        affected=(rid for pair in violations for rid in pair),
        recommendation=(
            "Add intermediate cleanroom classes (e.g., Grade B or C airlocks) "
            "between distant classifications."
        ),
    )


def make_flow_separation_check(include_reversed: bool = False) -> RuleCheck:
    """
    Build the material/personnel flow separation evaluator.

    Args:
        include_reversed: Also flag personnel flows running opposite to a
            material flow between the same rooms
    """

    def check_flow_separation(
        rule: RegulatoryRule, layout: Layout, index: RelationshipIndex
    ) -> ComplianceCheckResult:
        personnel = {(rel.from_id, rel.to_id) for rel in index.of_type(RelationshipType.PERSONNEL_FLOW)}

        overlapping = []
        for rel in index.of_type(RelationshipType.MATERIAL_FLOW):
            if (rel.from_id, rel.to_id) in personnel or (
                include_reversed and (rel.to_id, rel.from_id) in personnel
            ):
                overlapping.append(rel)

        if overlapping:
            message = f"{len(overlapping)} instances of overlapping material/personnel flows detected."
        else:
            message = "Material and personnel flows are properly separated."

        return _result(
            rule,
            passed=not overlapping,
            message=message,
            affected=(rid for rel in overlapping for rid in (rel.from_id, rel.to_id)),
            recommendation="Implement separate corridors for material and personnel movement.",
        )

    return check_flow_separation


def make_segregation_check(
    keywords: Sequence[str], material_label: str, recommendation: str
) -> RuleCheck:
    """
    Build a hazardous-material segregation evaluator.

    Rooms whose name mentions one of keywords must not be ADJACENT_TO any
    other production room.
    """

    def check_segregation(
        rule: RegulatoryRule, layout: Layout, index: RelationshipIndex
    ) -> ComplianceCheckResult:
        def _hazardous(room: Room) -> bool:
            return room.name_contains(*keywords)

        violations = []
        for _, source, target in _edge_rooms(layout, index, RelationshipType.ADJACENT_TO):
            for hazardous, other in ((source, target), (target, source)):
                if (
                    _hazardous(hazardous)
                    and not _hazardous(other)
                    and other.category == RoomCategory.PRODUCTION
                ):
                    violations.append((hazardous.id, other.id))
                    break

        if violations:
            message = (
                f"{material_label} production is not properly separated from other manufacturing."
            )
        else:
            message = "High-risk materials are properly segregated."

        return _result(
            rule,
            passed=not violations,
            message=message,
            affected=(rid for pair in violations for rid in pair),
            recommendation=recommendation,
        )

    return check_segregation


@register_check("fda-211.48")
def check_washing_separation(
    rule: RegulatoryRule, layout: Layout, index: RelationshipIndex
) -> ComplianceCheckResult:
    """Washing and gowning facilities must not be production rooms."""
    misplaced = [
        room.id for room in layout.rooms
        if room.name_contains(*WASHING_KEYWORDS) and room.category == RoomCategory.PRODUCTION
    ]

    return _result(
        rule,
        passed=not misplaced,
        message=(
            "Washing facilities should be separate from direct production areas."
            if misplaced
            else "Washing facilities are properly separated from production areas."
        ),
        affected=misplaced,
        recommendation="Recategorize washing facilities as Personnel areas, not Production.",
    )


@register_check("who-gmp-waste-disposal")
def check_waste_separation(
    rule: RegulatoryRule, layout: Layout, index: RelationshipIndex
) -> ComplianceCheckResult:
    """Waste rooms must not be ADJACENT_TO Grade A, B or C rooms."""
    violations = []
    for _, source, target in _edge_rooms(layout, index, RelationshipType.ADJACENT_TO):
        for waste, other in ((source, target), (target, source)):
            if waste.name_contains(*WASTE_KEYWORDS) and other.cleanroom_class in CLEAN_CLASSES:
                violations.append((waste.id, other.id))
                break

    return _result(
        rule,
        passed=not violations,
        message=(
            "Waste disposal rooms should not be directly adjacent to clean production areas."
            if violations
            else "Waste disposal areas are properly separated from clean zones."
        ),
        affected=(rid for pair in violations for rid in pair),
        recommendation="Add buffer zones or corridors between waste disposal and clean areas.",
    )


@register_check("bp-sterile-gowning")
def check_gowning_presence(
    rule: RegulatoryRule, layout: Layout, index: RelationshipIndex
) -> ComplianceCheckResult:
    """A layout with Grade A/B rooms needs at least one gowning room."""
    sterile = [room.id for room in layout.rooms if room.is_sterile]
    has_gowning = any(room.name_contains(*GOWNING_KEYWORDS) for room in layout.rooms)
    passed = not sterile or has_gowning

    return _result(
        rule,
        passed=passed,
        message=(
            "Gowning facilities are present for sterile manufacturing."
            if passed
            else "Sterile areas (Grade A/B) require dedicated gowning rooms."
        ),
        affected=[] if passed else sterile,
        recommendation="Add gowning room(s) before Grade A/B areas with multiple gowning stages.",
        auto_fix={
            "type": "add-gowning-room",
            "rationale": "Insert a gowning room with personnel flow into the sterile core.",
        },
    )


@register_check("ema-annex1-4.21")
def check_pass_through_transfer(
    rule: RegulatoryRule, layout: Layout, index: RelationshipIndex
) -> ComplianceCheckResult:
    """Material entering a Grade A/B room from a lower grade goes through a transfer room."""
    violations = []
    for _, source, target in _edge_rooms(layout, index, RelationshipType.MATERIAL_FLOW):
        if not target.is_sterile:
            continue
        from_lower_grade = source.class_rank is None or source.class_rank > target.class_rank
        via_transfer = source.name_contains(*TRANSFER_KEYWORDS) or target.name_contains(
            *TRANSFER_KEYWORDS
        )
        if from_lower_grade and not via_transfer:
            violations.append((source.id, target.id))

    return _result(
        rule,
        passed=not violations,
        message=(
            f"{len(violations)} material transfer(s) into Grade A/B areas bypass "
            "airlocks or pass-through hatches."
            if violations
            else "Material transfers into Grade A/B areas use airlocks or pass-through hatches."
        ),
        affected=(rid for pair in violations for rid in pair),
        recommendation="Route materials into sterile areas through a pass-through hatch or sterilizer.",
    )


@register_check("ema-annex1-4.28")
def check_separate_air_handling(
    rule: RegulatoryRule, layout: Layout, index: RelationshipIndex
) -> ComplianceCheckResult:
    """Grade A/B rooms must not share utilities with Grade D or unclassified rooms."""
    violations = []
    for _, source, target in _edge_rooms(layout, index, RelationshipType.SHARES_UTILITY):
        for sterile, other in ((source, target), (target, source)):
            if sterile.is_sterile and other.cleanroom_class in LOW_AIR_CLASSES:
                violations.append((sterile.id, other.id))
                break

    return _result(
        rule,
        passed=not violations,
        message=(
            f"{len(violations)} utility connection(s) join Grade A/B areas to low-grade rooms."
            if violations
            else "Grade A/B areas have air handling separate from low-grade rooms."
        ),
        affected=(rid for pair in violations for rid in pair),
        recommendation="Provide dedicated air handling units for Grade A/B areas.",
    )


@register_check("who-gmp-material-flow")
def check_unidirectional_material_flow(
    rule: RegulatoryRule, layout: Layout, index: RelationshipIndex
) -> ComplianceCheckResult:
    """The material flow graph must not contain cycles."""
    graph = nx.DiGraph()
    graph.add_edges_from((rel.from_id, rel.to_id) for rel in index.of_type(RelationshipType.MATERIAL_FLOW))

    in_cycle = set()
    for component in nx.strongly_connected_components(graph):
        if len(component) > 1:
            in_cycle.update(component)

    order = [room.id for room in layout.rooms if room.id in in_cycle]

    return _result(
        rule,
        passed=not order,
        message=(
            f"Material flow loops back through {len(order)} room(s)."
            if order
            else "Material flows are unidirectional."
        ),
        affected=order,
        recommendation="Re-route material flow so that materials never return to an earlier stage.",
    )


@register_check("pics-pe009-changing-rooms")
def check_changing_rooms(
    rule: RegulatoryRule, layout: Layout, index: RelationshipIndex
) -> ComplianceCheckResult:
    """Every changing room must connect to a classified room."""
    rooms = layout.room_map
    changing = [room for room in layout.rooms if room.name_contains(*CHANGING_KEYWORDS)]

    isolated = []
    for room in changing:
        partners = (
            rooms.get(rid)
            for rid in index.neighbors(
                room.id, RelationshipType.ADJACENT_TO, RelationshipType.PERSONNEL_FLOW
            )
        )
        if not any(
            p is not None and p.cleanroom_class is not None and p.cleanroom_class.is_classified
            for p in partners
        ):
            isolated.append(room.id)

    return _result(
        rule,
        passed=not isolated,
        message=(
            f"{len(isolated)} changing room(s) do not lead into a classified area."
            if isolated
            else f"Changing rooms lead into classified areas ({len(changing)} checked)."
        ),
        affected=isolated,
        recommendation="Connect each changing room directly to the classified area it serves.",
    )


register_check("ema-annex1-5.19")(make_flow_separation_check())

register_check("fda-211.42-separation", "fda-211.176")(
    make_segregation_check(
        BETA_LACTAM_KEYWORDS,
        "Penicillin/beta-lactam",
        "Penicillin production must be in dedicated facilities separated from other drug manufacturing.",
    )
)

register_check("ich-q7-3.14")(
    make_segregation_check(
        SENSITIZING_KEYWORDS,
        "Sensitizing material",
        "Produce highly sensitizing materials in dedicated, self-contained areas.",
    )
)
