"""
Force-directed layout simulator.

Positions a whole room set at once: pairwise repulsion, spring attraction
along relationships and a collision push between footprints, integrated
with damped velocities on a bounded, grid-snapped canvas. A deterministic
legalization pass then moves any room still overlapping another to the
nearest free grid position.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Tuple, Any, Optional, Sequence
import hashlib
import logging
import math

import networkx as nx
import numpy as np

from pharma_design_ai.config.config_loader import get_settings
from pharma_design_ai.core.base_engine import BaseEngine, CanvasConfig
from pharma_design_ai.core.errors import InvalidInputError
from pharma_design_ai.models.relationship import RelationshipType, SpatialRelationship
from pharma_design_ai.models.room import Room
from pharma_design_ai.utils.geometry import Point2D

logger = logging.getLogger(__name__)


class LayoutStyle(Enum):
    GRID = "grid"
    CIRCULAR = "circular"
    LINEAR = "linear"
    RANDOM = "random"
    CLUSTERED = "clustered"

    @classmethod
    def parse(cls, value: Any) -> "LayoutStyle":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidInputError(f"Unknown layout style: {value!r}")

    @property
    def is_deterministic(self) -> bool:
        return self not in (LayoutStyle.RANDOM, LayoutStyle.CLUSTERED)


@dataclass(frozen=True)
class SimulationConfig:
    """Configuration for the force-directed simulation."""

    # Force strengths
    repulsion_strength: float = 20000.0
    attraction_strength: float = 0.05
    collision_strength: float = 0.5

    # Physics parameters
    damping: float = 0.8
    max_step: float = 40.0  # canvas units per iteration
    max_iterations: int = 100
    convergence_threshold: float = 0.01

    # Initialization
    init_spacing: float = 300.0
    separation_factor: float = 3.0  # PROHIBITED_NEAR distance in node spacings

    @classmethod
    def from_settings(cls, settings: Optional[Dict[str, Any]] = None) -> "SimulationConfig":
        section = (settings or get_settings())["simulation"]
        values = {k: v for k, v in section.items() if k in cls.__dataclass_fields__}
        if "max_iterations" in values:
            values["max_iterations"] = int(values["max_iterations"])
        return cls(**values)


@dataclass
class SimulationResult:
    """Final positions and diagnostics of one simulation run."""

    positions: Dict[str, Point2D]
    iterations: int
    converged: bool
    style: str
    unresolved: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "positions": {rid: {"x": x, "y": y} for rid, (x, y) in self.positions.items()},
            "iterations": self.iterations,
            "converged": self.converged,
            "style": self.style,
            "unresolved": list(self.unresolved),
        }


def _deterministic_jitter(key: str) -> Tuple[float, float]:
    """Unit direction derived from an MD5 hash of key."""
    h = hashlib.md5(key.encode()).hexdigest()
    angle = int(h[:8], 16) / 0xFFFFFFFF * 2.0 * math.pi
    return (math.cos(angle), math.sin(angle))


class ForceDirectedSimulator(BaseEngine):
    """
    Iterative physics simulation over a room set.
    """

    def __init__(
        self,
        canvas: Optional[CanvasConfig] = None,
        config: Optional[SimulationConfig] = None,
    ):
        """
        Initialize the simulator.

        Args:
            canvas: Canvas configuration
            config: Simulation parameters, loaded from settings when omitted
        """
        super().__init__(canvas)
        self.config = config or SimulationConfig.from_settings()

    def simulate(
        self,
        rooms: Sequence[Room],
        relationships: Sequence[SpatialRelationship],
        initial_positions: Optional[Dict[str, Point2D]] = None,
        style: Any = LayoutStyle.CLUSTERED,
        seed: Optional[int] = None,
    ) -> Dict[str, Point2D]:
        """
        Compute final positions for rooms.

        Returns:
            Dictionary mapping room id to its final center
        """
        return self.run(rooms, relationships, initial_positions, style, seed).positions

    def run(
        self,
        rooms: Sequence[Room],
        relationships: Sequence[SpatialRelationship],
        initial_positions: Optional[Dict[str, Point2D]] = None,
        style: Any = LayoutStyle.CLUSTERED,
        seed: Optional[int] = None,
    ) -> SimulationResult:
        """
        Run the simulation and the legalization pass.

        Args:
            rooms: Rooms to position (not mutated)
            relationships: Relationships between the rooms; edges to rooms
                outside the set are ignored
            initial_positions: Optional starting centers overriding the
                style initialization for the rooms they name
            style: Initialization style (grid, circular, linear, random, clustered)
            seed: Seed for the random and clustered styles

        Returns:
            SimulationResult
        """
        style = LayoutStyle.parse(style)
        rooms = list(rooms)
        if not rooms:
            return SimulationResult(positions={}, iterations=0, converged=True, style=style.value)

        ids = [room.id for room in rooms]
        if len(set(ids)) != len(ids):
            raise InvalidInputError("Duplicate room ids passed to the simulator")

        start = self.initial_layout(rooms, relationships, style, seed)
        for rid, pos in (initial_positions or {}).items():
            if rid in start:
                start[rid] = (float(pos[0]), float(pos[1]))

        positions, iterations, converged = self._relax(rooms, relationships, start)
        positions, unresolved = self.legalize(rooms, positions)

        if unresolved:
            logger.warning(f"Could not resolve overlaps for {len(unresolved)} room(s): {unresolved}")
        logger.info(
            f"Force simulation ({style.value}) finished after {iterations} iterations, "
            f"converged={converged}"
        )

        return SimulationResult(
            positions=positions,
            iterations=iterations,
            converged=converged,
            style=style.value,
            unresolved=unresolved,
        )

    # Initialization
    def initial_layout(
        self,
        rooms: List[Room],
        relationships: Sequence[SpatialRelationship],
        style: LayoutStyle,
        seed: Optional[int] = None,
    ) -> Dict[str, Point2D]:
        """Starting centers for each room according to style."""
        if style == LayoutStyle.GRID:
            raw = self._init_grid(rooms)
        elif style == LayoutStyle.CIRCULAR:
            raw = self._init_circular(rooms)
        elif style == LayoutStyle.LINEAR:
            raw = self._init_linear(rooms, relationships)
        else:
            raw = self._init_random(rooms, seed)

        by_id = {room.id: room for room in rooms}
        return {rid: self.constrain(pos, by_id[rid]) for rid, pos in raw.items()}

    def _init_grid(self, rooms: List[Room]) -> Dict[str, Point2D]:
        cols = math.ceil(math.sqrt(len(rooms)))
        spacing = self.config.init_spacing
        x0 = self.canvas.padding + spacing / 2.0
        y0 = self.canvas.padding + spacing / 2.0
        return {
            room.id: (x0 + (i % cols) * spacing, y0 + (i // cols) * spacing)
            for i, room in enumerate(rooms)
        }

    def _init_circular(self, rooms: List[Room]) -> Dict[str, Point2D]:
        cx, cy = self.canvas.center
        largest = max(max(r.width, r.height) for r in rooms) / 2.0
        radius = max(min(cx, cy) - self.canvas.padding - largest, 0.0)
        n = len(rooms)
        return {
            room.id: (
                cx + radius * math.cos(2.0 * math.pi * i / n),
                cy + radius * math.sin(2.0 * math.pi * i / n),
            )
            for i, room in enumerate(rooms)
        }

    def _init_linear(
        self, rooms: List[Room], relationships: Sequence[SpatialRelationship]
    ) -> Dict[str, Point2D]:
        ordered = self.flow_order(rooms, relationships)
        min_x, _, max_x, _ = self.canvas.bounds
        first_half = ordered[0].width / 2.0
        last_half = ordered[-1].width / 2.0

        spacing = self.config.init_spacing
        if len(ordered) > 1:
            usable = max_x - min_x - first_half - last_half
            spacing = min(spacing, usable / (len(ordered) - 1))

        y = self.canvas.center[1]
        return {
            room.id: (min_x + first_half + i * spacing, y) for i, room in enumerate(ordered)
        }

    def _init_random(self, rooms: List[Room], seed: Optional[int]) -> Dict[str, Point2D]:
        rng = np.random.default_rng(seed)
        result = {}
        for room in rooms:
            x_lo, y_lo, x_hi, y_hi = self.aligned_range(room.width / 2.0, room.height / 2.0)
            result[room.id] = (float(rng.uniform(x_lo, x_hi)), float(rng.uniform(y_lo, y_hi)))
        return result

    @staticmethod
    def flow_order(
        rooms: Sequence[Room], relationships: Sequence[SpatialRelationship]
    ) -> List[Room]:
        """
        Order rooms along MATERIAL_FLOW edges.

        Rooms in a flow cycle are kept together in input order; ties between
        independent rooms are broken by input order.
        """
        position = {room.id: i for i, room in enumerate(rooms)}
        graph = nx.DiGraph()
        graph.add_nodes_from(position)
        graph.add_edges_from(
            (rel.from_id, rel.to_id)
            for rel in relationships
            if rel.type == RelationshipType.MATERIAL_FLOW
            and rel.from_id in position
            and rel.to_id in position
        )

        condensed = nx.condensation(graph)
        first_member = {
            node: min(position[m] for m in data["members"])
            for node, data in condensed.nodes(data=True)
        }

        ordered: List[Room] = []
        for node in nx.lexicographical_topological_sort(condensed, key=first_member.get):
            members = sorted(condensed.nodes[node]["members"], key=position.get)
            ordered.extend(rooms[position[m]] for m in members)
        return ordered

    # Simulation
    def _relax(
        self,
        rooms: List[Room],
        relationships: Sequence[SpatialRelationship],
        start: Dict[str, Point2D],
    ) -> Tuple[Dict[str, Point2D], int, bool]:
        cfg = self.config
        n = len(rooms)
        ids = [room.id for room in rooms]
        index = {rid: i for i, rid in enumerate(ids)}

        pos = np.array([start[rid] for rid in ids], dtype=float)
        vel = np.zeros_like(pos)
        half = np.array([[r.width / 2.0, r.height / 2.0] for r in rooms])
        ranges = np.array(
            [self.aligned_range(r.width / 2.0, r.height / 2.0) for r in rooms], dtype=float
        ).reshape(-1, 4)
        lo, hi = ranges[:, :2], ranges[:, 2:]
        g = self.canvas.grid_size

        springs, separations = self._edges(relationships, index, half)
        jitter = self._pair_jitter(ids)

        iterations, converged = 0, False
        for iteration in range(cfg.max_iterations):
            iterations = iteration + 1
            forces = self._forces(pos, half, springs, separations, jitter)

            vel = (vel + forces) * cfg.damping
            speed = np.linalg.norm(vel, axis=1)
            too_fast = speed > cfg.max_step
            vel[too_fast] *= (cfg.max_step / speed[too_fast])[:, None]

            new_pos = np.clip(pos + vel, lo, hi)
            # Measured before snapping; sub-cell moves still count as motion
            displacement = float(np.max(np.linalg.norm(new_pos - pos, axis=1))) if n else 0.0
            pos = np.clip(np.round(new_pos / g) * g, lo, hi) if g > 0 else new_pos

            if displacement < cfg.convergence_threshold:
                converged = True
                logger.debug(f"Force simulation converged after {iterations} iterations")
                break

        by_id = {room.id: room for room in rooms}
        final = {
            rid: self.constrain((float(pos[i, 0]), float(pos[i, 1])), by_id[rid])
            for i, rid in enumerate(ids)
        }
        return final, iterations, converged

    def _edges(
        self,
        relationships: Sequence[SpatialRelationship],
        index: Dict[str, int],
        half: np.ndarray,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Spring and separation edges as arrays of (i, j, length).

        Springs pull when stretched beyond their rest length; separations
        push while the rooms are closer than their minimum distance.
        """
        spacing = self.canvas.node_spacing
        springs, separations = [], []
        for rel in relationships:
            i, j = index.get(rel.from_id), index.get(rel.to_id)
            if i is None or j is None:
                continue
            if rel.type == RelationshipType.PROHIBITED_NEAR:
                separations.append(
                    (i, j, rel.min_distance or spacing * self.config.separation_factor)
                )
            else:
                reach = half[i].max() + half[j].max() + self.canvas.min_clearance
                springs.append((i, j, max(spacing, reach)))

        return np.array(springs, dtype=float).reshape(-1, 3), np.array(
            separations, dtype=float
        ).reshape(-1, 3)

    @staticmethod
    def _pair_jitter(ids: List[str]) -> np.ndarray:
        """Antisymmetric unit directions used to split coincident rooms."""
        n = len(ids)
        jitter = np.zeros((n, n, 2))
        for i in range(n):
            for j in range(i + 1, n):
                direction = _deterministic_jitter(f"{ids[i]}|{ids[j]}")
                jitter[i, j] = direction
                jitter[j, i] = (-direction[0], -direction[1])
        return jitter

    def _forces(
        self,
        pos: np.ndarray,
        half: np.ndarray,
        springs: np.ndarray,
        separations: np.ndarray,
        jitter: np.ndarray,
    ) -> np.ndarray:
        cfg = self.config
        n = len(pos)
        forces = np.zeros_like(pos)

        # diff[i, j] points from room i to room j
        diff = pos[None, :, :] - pos[:, None, :]
        dist = np.linalg.norm(diff, axis=2)
        coincident = dist < 1e-6
        np.fill_diagonal(coincident, False)

        unit = np.where(
            coincident[:, :, None], jitter, diff / np.where(dist > 1e-6, dist, 1.0)[:, :, None]
        )

        # Repulsion (Coulomb-like)
        safe = np.maximum(dist, 1.0)
        magnitude = cfg.repulsion_strength / safe**2
        np.fill_diagonal(magnitude, 0.0)
        forces -= np.einsum("ij,ijk->ik", magnitude, unit)

        # Collision between clearance envelopes, along the shallower axis
        reach = half[:, None, :] + half[None, :, :] + self.canvas.min_clearance
        depth = reach - np.abs(diff)
        colliding = (depth[:, :, 0] > 0) & (depth[:, :, 1] > 0)
        np.fill_diagonal(colliding, False)
        if colliding.any():
            sign = np.where(np.abs(diff) > 1e-6, np.sign(diff), np.sign(jitter))
            use_x = depth[:, :, 0] <= depth[:, :, 1]
            push = np.zeros((n, n, 2))
            push[:, :, 0] = np.where(colliding & use_x, depth[:, :, 0] * sign[:, :, 0], 0.0)
            push[:, :, 1] = np.where(colliding & ~use_x, depth[:, :, 1] * sign[:, :, 1], 0.0)
            forces -= 0.5 * cfg.collision_strength * push.sum(axis=1)

        # Springs along relationships
        if len(springs):
            i, j = springs[:, 0].astype(int), springs[:, 1].astype(int)
            stretch = np.maximum(dist[i, j] - springs[:, 2], 0.0)
            pull = (cfg.attraction_strength * stretch)[:, None] * unit[i, j]
            np.add.at(forces, i, pull)
            np.add.at(forces, j, -pull)

        # Keep PROHIBITED_NEAR rooms apart
        if len(separations):
            i, j = separations[:, 0].astype(int), separations[:, 1].astype(int)
            shortfall = np.maximum(separations[:, 2] - dist[i, j], 0.0)
            push = (cfg.attraction_strength * shortfall)[:, None] * unit[i, j]
            np.add.at(forces, i, -push)
            np.add.at(forces, j, push)

        return forces

    # Legalization
    def legalize(
        self, rooms: Sequence[Room], positions: Dict[str, Point2D]
    ) -> Tuple[Dict[str, Point2D], List[str]]:
        """
        Move rooms that still overlap an earlier room to the nearest free,
        grid-aligned position inside the canvas.

        Rooms are processed in input order, so earlier rooms keep their place.

        Returns:
            (positions, ids of rooms that could not be placed without overlap)
        """
        g = self.canvas.grid_size
        clearance = self.canvas.min_clearance
        reach = int(math.ceil(max(self.canvas.width, self.canvas.height) / g))
        offsets = self._search_offsets(reach) * g

        result: Dict[str, Point2D] = {}
        accepted = np.empty((0, 4))
        unresolved: List[str] = []

        for room in rooms:
            hw, hh = room.width / 2.0, room.height / 2.0
            x, y = positions[room.id]

            if self._collides(np.array([[x, y]]), hw, hh, accepted, clearance)[0]:
                x_lo, y_lo, x_hi, y_hi = self.aligned_range(hw, hh)
                candidates = np.array([x, y]) + offsets
                inside = (
                    (candidates[:, 0] >= x_lo - 1e-9)
                    & (candidates[:, 0] <= x_hi + 1e-9)
                    & (candidates[:, 1] >= y_lo - 1e-9)
                    & (candidates[:, 1] <= y_hi + 1e-9)
                )
                candidates = candidates[inside]
                free = ~self._collides(candidates, hw, hh, accepted, clearance)

                if free.any():
                    x, y = (float(v) for v in candidates[np.argmax(free)])
                else:
                    unresolved.append(room.id)

            result[room.id] = (float(x), float(y))
            accepted = np.vstack([accepted, [x - hw, y - hh, x + hw, y + hh]])

        return result, unresolved

    @staticmethod
    def _search_offsets(reach: int) -> np.ndarray:
        """Grid offsets within reach cells, nearest first, ties by angle."""
        span = np.arange(-reach, reach + 1)
        gx, gy = np.meshgrid(span, span, indexing="ij")
        offsets = np.stack([gx.ravel(), gy.ravel()], axis=1)
        offsets = offsets[(offsets[:, 0] != 0) | (offsets[:, 1] != 0)]
        order = np.lexsort(
            (np.arctan2(offsets[:, 1], offsets[:, 0]), (offsets**2).sum(axis=1))
        )
        return offsets[order].astype(float)

    @staticmethod
    def _collides(
        centers: np.ndarray, hw: float, hh: float, boxes: np.ndarray, clearance: float
    ) -> np.ndarray:
        """For each center, whether the room box there overlaps any of boxes."""
        if len(boxes) == 0 or len(centers) == 0:
            return np.zeros(len(centers), dtype=bool)
        min_x = centers[:, 0:1] - hw
        max_x = centers[:, 0:1] + hw
        min_y = centers[:, 1:2] - hh
        max_y = centers[:, 1:2] + hh
        separated = (
            (max_x + clearance <= boxes[None, :, 0])
            | (boxes[None, :, 2] + clearance <= min_x)
            | (max_y + clearance <= boxes[None, :, 1])
            | (boxes[None, :, 3] + clearance <= min_y)
        )
        return ~separated.all(axis=1)
