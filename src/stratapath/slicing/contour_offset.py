"""
Contour Offset: Polygon offset for shell wall and skin/infill boundary generation.

Provides polygon offset operations for generating:
- Outer wall (outline inset by half a bead, so the bead edge sits on the model)
- Inner walls (successive insets by one bead width)
- Hole walls (the same, offset outward)
- Skin/infill boundary (one more bead width inside the innermost wall)

The offset is a per-vertex angle-bisector shrink: every vertex moves along
the bisector of its two edge normals, scaled by ``1/cos(θ/2)`` so the offset
edges stay parallel to the originals at exactly the requested distance.
Where offset edges diverge and the miter would exceed ``max_miter_ratio``,
the corner is beveled instead.

A shrink larger than the local feature size folds the polygon over itself.
Results are therefore validated (orientation, bounding-box shrinkage, area,
and an exact simplicity check with **shapely**) and rejected as ``None``
rather than returned malformed. ``None`` means "degenerated below printable
size" and is an expected outcome, not an error.

References:
- shapely LinearRing.is_simple: https://shapely.readthedocs.io/
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from shapely.geometry import LinearRing

from stratapath.core.config import Tolerances
from stratapath.core.geometry import (
    Path,
    Point2D,
    dedupe_points,
    make_path,
    minimum_distance_between_paths,
    polygon_bounds,
    signed_area,
)
from stratapath.core.logging import get_logger
from stratapath.slicing.clipper_ops import subtract_regions
from stratapath.slicing.containment import Region

logger = get_logger(__name__)

_DEFAULT_TOLERANCES = Tolerances()


def _unit_normal(a: Point2D, b: Point2D) -> Tuple[float, float]:
    """Outward (right-hand) unit normal of edge a->b for a CCW polygon."""
    dx = b[0] - a[0]
    dy = b[1] - a[1]
    length = math.hypot(dx, dy)
    return (dy / length, -dx / length)


def _offset_vertices(
    points: Sequence[Point2D],
    distance: float,
    max_miter_ratio: float,
) -> List[Point2D]:
    """Move every vertex of a CCW polygon; positive distance = outward."""
    n = len(points)
    out: List[Point2D] = []
    for i in range(n):
        prev_pt = points[i - 1]
        pt = points[i]
        next_pt = points[(i + 1) % n]

        n_prev = _unit_normal(prev_pt, pt)
        n_next = _unit_normal(pt, next_pt)

        bx = n_prev[0] + n_next[0]
        by = n_prev[1] + n_next[1]
        b_len = math.hypot(bx, by)

        # cos(θ/2) between the bisector and either edge normal
        cos_half = b_len / 2.0
        turn = (pt[0] - prev_pt[0]) * (next_pt[1] - pt[1]) - (pt[1] - prev_pt[1]) * (next_pt[0] - pt[0])
        diverging = turn * distance > 0

        if cos_half < 1e-9 or (diverging and 1.0 / cos_half > max_miter_ratio):
            # Bevel: end each offset edge at its own normal.
            out.append(Point2D(pt[0] + distance * n_prev[0], pt[1] + distance * n_prev[1]))
            out.append(Point2D(pt[0] + distance * n_next[0], pt[1] + distance * n_next[1]))
            continue

        scale = distance / (cos_half * b_len)
        out.append(Point2D(pt[0] + bx * scale, pt[1] + by * scale))
    return out


def _is_valid_offset(
    source: Sequence[Point2D],
    result: Sequence[Point2D],
    distance: float,
    tolerances: Tolerances,
) -> bool:
    if len(result) < 3:
        return False

    area_before = signed_area(source)
    area_after = signed_area(result)
    if area_after <= tolerances.epsilon ** 2:
        return False
    if distance < 0 and area_after >= area_before:
        return False

    bx0 = polygon_bounds(source)
    bx1 = polygon_bounds(result)
    width0, height0 = bx0[2] - bx0[0], bx0[3] - bx0[1]
    width1, height1 = bx1[2] - bx1[0], bx1[3] - bx1[1]
    required = tolerances.offset_min_shrink_fraction * 2.0 * abs(distance)
    if distance < 0:
        if width1 <= 0 or height1 <= 0:
            return False
        if width0 - width1 < required or height0 - height1 < required:
            return False
    else:
        if width1 - width0 < required or height1 - height0 < required:
            return False

    return LinearRing(result).is_simple


def offset_polygon(
    path: Path,
    distance: float,
    tolerances: Tolerances = _DEFAULT_TOLERANCES,
) -> Optional[Path]:
    """
    Offset a closed path by a signed distance.

    Parameters:
        path: Closed path (any winding).
        distance: Offset in mm; negative = inward, positive = outward.
        tolerances: Run tolerances (epsilon, shrink fraction, miter cap).

    Returns:
        Offset path in the input's winding, or None if the polygon degenerated.
    """
    if not path.closed or len(path.points) < 3:
        return None
    if abs(distance) <= tolerances.epsilon:
        return path

    source = dedupe_points(path.points, tolerances.epsilon)
    if len(source) > 1 and math.dist(source[0], source[-1]) <= tolerances.epsilon:
        source.pop()
    if len(source) < 3:
        return None

    was_clockwise = signed_area(source) < 0
    if was_clockwise:
        source.reverse()

    moved = _offset_vertices(source, distance, tolerances.max_miter_ratio)
    candidate = make_path(moved, closed=True, epsilon=tolerances.epsilon)

    if not candidate.closed or not _is_valid_offset(
        source, candidate.points, distance, tolerances
    ):
        logger.debug(
            "offset_collapsed",
            distance=round(distance, 4),
            vertices=len(source),
        )
        return None

    return candidate.reversed() if was_clockwise else candidate


def compute_inner_walls(
    contour: Path,
    wall_count: int,
    wall_width: float,
    tolerances: Tolerances = _DEFAULT_TOLERANCES,
    outward: bool = False,
) -> List[Path]:
    """
    Compute wall centrelines by repeated offset.

    The first wall is inset by half a bead from the contour; each further wall
    by one full bead. If the polygon collapses, remaining walls are skipped.

    Parameters:
        contour: Solid outline (or hole, with ``outward=True``).
        wall_count: Number of walls to generate (minimum 1).
        wall_width: Bead width (mm).
        tolerances: Run tolerances.
        outward: Offset away from the enclosed area (hole walls).

    Returns:
        Wall paths, outermost first. May be empty.
    """
    sign = 1.0 if outward else -1.0
    walls: List[Path] = []
    current = contour
    for i in range(max(1, wall_count)):
        step = wall_width / 2.0 if i == 0 else wall_width
        offset = offset_polygon(current, sign * step, tolerances)
        if offset is None:
            break
        walls.append(offset)
        current = offset
    return walls


def infill_boundary_from_wall(
    wall: Path,
    wall_width: float,
    overlap: float = 0.0,
    tolerances: Tolerances = _DEFAULT_TOLERANCES,
    outward: bool = False,
) -> Optional[Path]:
    """Boundary one bead inside the given wall centreline, less the overlap."""
    sign = 1.0 if outward else -1.0
    return offset_polygon(wall, sign * max(0.0, wall_width - overlap), tolerances)


def get_infill_boundary(
    contour: Path,
    wall_count: int,
    wall_width: float,
    tolerances: Tolerances = _DEFAULT_TOLERANCES,
    overlap: float = 0.0,
) -> Optional[Path]:
    """
    Get the innermost boundary to use for skin and infill.

    Parameters:
        contour: Solid outline.
        wall_count: Number of walls.
        wall_width: Bead width (mm).
        tolerances: Run tolerances.
        overlap: How far fill may reach into the innermost wall (mm).

    Returns:
        The boundary path, or None if the walls already filled the shape.
    """
    walls = compute_inner_walls(contour, wall_count, wall_width, tolerances)
    if len(walls) < max(1, wall_count):
        return None
    return infill_boundary_from_wall(walls[-1], wall_width, overlap, tolerances)


def subtract_boundaries(
    outline: Path,
    holes: Sequence[Path],
    tolerances: Tolerances = _DEFAULT_TOLERANCES,
) -> List[Region]:
    """
    Fill area between an inset outline and grown holes.

    Grown holes may cross the outline or each other, so the area is computed
    with a pyclipper difference rather than by nesting the paths.
    """
    if not holes:
        return [Region(outline=outline)]
    return subtract_regions(
        Region(outline=outline),
        [Region(outline=hole) for hole in holes],
        tolerances.epsilon,
    )


@dataclass
class RegionShell:
    """
    Walls of one Region plus the area left inside them.

    Attributes:
        outline_walls: Wall centrelines of the outline, outermost first.
        hole_walls: Per surviving hole, wall centrelines, outermost first.
        inner_regions: Boundaries for skin and infill; empty if nothing is left.
            Holes that reach the outline's inset cut into it, so one Region
            can leave several.
        collapsed: Offsets that degenerated while building this shell.
    """

    outline_walls: List[Path] = field(default_factory=list)
    hole_walls: List[List[Path]] = field(default_factory=list)
    inner_regions: List[Region] = field(default_factory=list)
    collapsed: int = 0


def build_region_shell(
    region: Region,
    wall_count: int,
    wall_width: float,
    overlap: float = 0.0,
    tolerances: Tolerances = _DEFAULT_TOLERANCES,
) -> RegionShell:
    """
    Build shell walls for a Region (outline inward, holes outward).

    Wall levels stop early when a hole wall would come closer than one bead
    to the outline wall of the same level; there is then no room for fill.
    """
    shell = RegionShell()
    wall_count = max(1, wall_count)

    outline_walls = compute_inner_walls(region.outline, wall_count, wall_width, tolerances)
    shell.collapsed += wall_count - len(outline_walls)
    hole_walls = [
        compute_inner_walls(hole, wall_count, wall_width, tolerances, outward=True)
        for hole in region.holes
    ]
    for walls in hole_walls:
        shell.collapsed += wall_count - len(walls)

    levels = len(outline_walls)
    crowded = False
    for level in range(len(outline_walls)):
        too_close = any(
            level < len(walls)
            and minimum_distance_between_paths(walls[level], outline_walls[level])
            < wall_width - tolerances.epsilon
            for walls in hole_walls
        )
        if too_close:
            levels = level + 1
            crowded = True
            break

    shell.outline_walls = outline_walls[:levels]
    shell.hole_walls = [walls[:levels] for walls in hole_walls if walls]

    if not shell.outline_walls or crowded or len(shell.outline_walls) < wall_count:
        return shell

    inner_outline = infill_boundary_from_wall(
        shell.outline_walls[-1], wall_width, overlap, tolerances
    )
    if inner_outline is None:
        shell.collapsed += 1
        return shell

    inner_holes: List[Path] = []
    for hole, walls in zip(region.holes, hole_walls):
        if not walls:
            grown = hole
        else:
            grown = infill_boundary_from_wall(
                walls[:levels][-1], wall_width, overlap, tolerances, outward=True
            )
            if grown is None:
                # Fall back to the wall itself so the hole is still excluded.
                grown = walls[:levels][-1]
                shell.collapsed += 1
        inner_holes.append(grown)
    shell.inner_regions = subtract_boundaries(inner_outline, inner_holes, tolerances)
    return shell
