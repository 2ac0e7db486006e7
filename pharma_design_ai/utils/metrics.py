"""
Evaluation metrics for pharmaceutical facility layouts.
"""

from typing import Dict, List, Any
import numpy as np

from pharma_design_ai.models.layout import Layout
from pharma_design_ai.models.relationship import RelationshipType
from pharma_design_ai.utils.geometry import distance


class LayoutMetrics:
    """
    Class for evaluating layout metrics.
    """

    def __init__(
        self,
        layout: Layout,
        units_per_meter: float = 10.0,
        max_flow_distance: float = 5000.0,
        adjacency_tolerance: float = 300.0,
    ):
        """
        Initialize with a layout.

        Args:
            layout: The layout to evaluate
            units_per_meter: Canvas units per metre
            max_flow_distance: Average material flow distance (canvas units)
                at which flow efficiency reaches zero
            adjacency_tolerance: Largest center distance (canvas units) that
                still counts as a satisfied adjacency
        """
        self.layout = layout
        self.units_per_meter = units_per_meter
        self.max_flow_distance = max_flow_distance
        self.adjacency_tolerance = adjacency_tolerance

    def _area_m2(self, width: float, height: float) -> float:
        return (width / self.units_per_meter) * (height / self.units_per_meter)

    def _edge_distances(self, rel_type: RelationshipType) -> List[float]:
        rooms = self.layout.room_map
        distances = []
        for rel in self.layout.relationships_of_type(rel_type):
            source, target = rooms.get(rel.from_id), rooms.get(rel.to_id)
            if source is None or target is None or not (source.is_placed and target.is_placed):
                continue
            distances.append(distance(source.position, target.position))
        return distances

    def total_area(self) -> float:
        """Total room footprint in square metres."""
        return float(sum(self._area_m2(room.width, room.height) for room in self.layout.rooms))

    def average_flow_distance(self, rel_type: RelationshipType) -> float:
        """Mean center distance (canvas units) over placed flows of one type."""
        distances = self._edge_distances(rel_type)
        return float(np.mean(distances)) if distances else 0.0

    def flow_efficiency(self) -> float:
        """1.0 for zero material transfer distance, falling linearly to 0."""
        avg = self.average_flow_distance(RelationshipType.MATERIAL_FLOW)
        return max(0.0, 1.0 - avg / self.max_flow_distance)

    def cross_contamination_risk(self) -> float:
        prohibited = len(self.layout.relationships_of_type(RelationshipType.PROHIBITED_NEAR))
        return min(1.0, 0.1 * prohibited)

    def cleanroom_utilization(self) -> float:
        """Percentage of footprint in classified (Grade A-D) rooms."""
        total = sum(room.area for room in self.layout.rooms)
        if total <= 0:
            return 0.0
        classified = sum(
            room.area for room in self.layout.rooms
            if room.cleanroom_class is not None and room.cleanroom_class.is_classified
        )
        return float(round(100.0 * classified / total))

    def adjacency_satisfaction(self) -> float:
        """Fraction of ADJACENT_TO requirements whose rooms ended up close together."""
        distances = self._edge_distances(RelationshipType.ADJACENT_TO)
        if not distances:
            return 1.0
        return sum(1 for d in distances if d <= self.adjacency_tolerance) / len(distances)

    def evaluate_all(self) -> Dict[str, Any]:
        """
        Calculate all metrics.

        Returns:
            Dict: Metric name -> value
        """
        return {
            "total_area": round(self.total_area(), 2),
            "avg_material_flow_distance": round(
                self.average_flow_distance(RelationshipType.MATERIAL_FLOW), 2
            ),
            "avg_personnel_flow_distance": round(
                self.average_flow_distance(RelationshipType.PERSONNEL_FLOW), 2
            ),
            "flow_efficiency": round(self.flow_efficiency(), 4),
            "cross_contamination_risk": round(self.cross_contamination_risk(), 4),
            "cleanroom_utilization": self.cleanroom_utilization(),
            "adjacency_satisfaction": round(self.adjacency_satisfaction(), 4),
        }
