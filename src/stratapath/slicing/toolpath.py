"""
Toolpath data structures for representing emitted machine motion.

This module provides the closed move/path categories, the annotated move
record produced by the emission state machine, the per-layer container handed
to the external command formatter, and travel-minimising path ordering.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

import numpy as np
from compas.geometry import Point

from stratapath.core.geometry import Path, Point2D, distance


class MoveKind(Enum):
    """Whether a move deposits material."""

    TRAVEL = "travel"  # Non-printing move (also retract/prime)
    EXTRUDE = "extrude"  # Printing move


class PathRole(Enum):
    """Category of a path and of the moves emitted for it."""

    ADHESION = "adhesion"  # Skirt, brim, raft lines
    PERIMETER_OUTER = "perimeter-outer"  # Outermost wall of an outline or hole
    PERIMETER_INNER = "perimeter-inner"  # Remaining walls
    SKIN = "skin"  # Dense fill of exposed area
    INFILL = "infill"  # Sparse interior fill


# Fixed per-layer print sequence.
EMISSION_ORDER = (
    PathRole.ADHESION,
    PathRole.PERIMETER_OUTER,
    PathRole.PERIMETER_INNER,
    PathRole.SKIN,
    PathRole.INFILL,
)


@dataclass(frozen=True)
class RolePath:
    """A geometric path tagged with the role it is printed as."""

    path: Path
    role: PathRole


@dataclass(frozen=True)
class ToolpathMove:
    """
    A single annotated machine move.

    Attributes:
        kind: Travel or extrude.
        role: Category of the path this move belongs to (or leads to);
              None for the layer-change travel.
        target: Target position (mm); for retract/prime it equals the current position.
        feed_rate: Feed rate (mm/min).
        extrusion_delta: Filament length fed by this move (mm); negative for retraction.
    """

    kind: MoveKind
    role: Optional[PathRole]
    target: Point
    feed_rate: float
    extrusion_delta: float = 0.0

    @property
    def is_retract(self) -> bool:
        return self.kind == MoveKind.TRAVEL and self.extrusion_delta < 0

    @property
    def is_prime(self) -> bool:
        return self.kind == MoveKind.TRAVEL and self.extrusion_delta > 0


@dataclass
class LayerToolpath:
    """
    Ordered moves of one layer plus metadata for the command formatter.

    Attributes:
        layer_index: Index of the layer.
        z: Layer height (mm).
        moves: Moves in execution order.
        settings: Machine settings changed at the start of this layer
                  (``nozzle_temperature``, ``fan_speed``).
    """

    layer_index: int
    z: float
    moves: List[ToolpathMove] = field(default_factory=list)
    settings: Dict[str, float] = field(default_factory=dict)

    def get_moves_by_role(self, role: PathRole) -> List[ToolpathMove]:
        """Get all moves of a specific role."""
        return [m for m in self.moves if m.role == role]

    def get_moves_by_kind(self, kind: MoveKind) -> List[ToolpathMove]:
        return [m for m in self.moves if m.kind == kind]

    def get_extrusion_total(self) -> float:
        """Net filament fed in this layer (retractions and primes cancel)."""
        return sum(m.extrusion_delta for m in self.moves)

    def get_extruded_length(self, start: Optional[Point] = None) -> float:
        """XY length of extruding moves, given the position before the layer."""
        total = 0.0
        previous = start
        for move in self.moves:
            if move.kind == MoveKind.EXTRUDE and previous is not None:
                total += float(np.hypot(move.target.x - previous.x, move.target.y - previous.y))
            previous = move.target
        return total

    def get_build_time_estimate(self, start: Optional[Point] = None) -> float:
        """
        Estimate layer time in seconds.

        Assumes constant feed rate for each move.
        """
        total_time = 0.0
        previous = start
        for move in self.moves:
            if previous is not None and move.feed_rate > 0:
                length = float(np.sqrt(
                    (move.target.x - previous.x) ** 2
                    + (move.target.y - previous.y) ** 2
                    + (move.target.z - previous.z) ** 2
                ))
                total_time += length / (move.feed_rate / 60.0)
            previous = move.target
        return total_time


def _rotate_to_nearest(path: Path, point: Point2D) -> Path:
    """Start a closed path at its vertex nearest to ``point``."""
    best_idx = min(range(len(path.points)), key=lambda i: distance(path.points[i], point))
    if best_idx == 0:
        return path
    pts = path.points
    return Path(points=pts[best_idx:] + pts[:best_idx], closed=True)


def order_paths(paths: Sequence[RolePath], start: Optional[Point2D] = None) -> List[RolePath]:
    """
    Order paths of one role to minimise travel moves.

    Uses a greedy nearest-neighbour approach: open paths may be reversed,
    closed paths are rotated to start at their vertex nearest the current
    position.
    """
    remaining = [rp for rp in paths if rp.path.points]
    if not remaining:
        return []

    ordered: List[RolePath] = []
    current = start if start is not None else remaining[0].path.points[0]

    while remaining:
        best_idx = 0
        best_dist = float("inf")
        use_reversed = False
        for idx, candidate in enumerate(remaining):
            path = candidate.path
            if path.closed:
                d = min(distance(p, current) for p in path.points)
                if d < best_dist:
                    best_dist, best_idx, use_reversed = d, idx, False
                continue
            d_start = distance(path.points[0], current)
            if d_start < best_dist:
                best_dist, best_idx, use_reversed = d_start, idx, False
            d_end = distance(path.points[-1], current)
            if d_end < best_dist:
                best_dist, best_idx, use_reversed = d_end, idx, True

        chosen = remaining.pop(best_idx)
        path = chosen.path
        if path.closed:
            path = _rotate_to_nearest(path, current)
            current = path.points[0]
        else:
            if use_reversed:
                path = path.reversed()
            current = path.points[-1]
        ordered.append(RolePath(path=path, role=chosen.role))

    return ordered
