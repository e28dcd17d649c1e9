"""
Infill Pattern Generators: line families clipped against a Region.

Patterns:
1. lines      -- One set of parallel lines, rotated 90 degrees every other layer
2. grid       -- Two perpendicular sets in every layer
3. triangles  -- Three sets 60 degrees apart, all meeting at common points
4. hexagons   -- Three sets 60 degrees apart with the third set shifted half a
                spacing, which opens the triangles into a trihexagonal lattice
5. cubic      -- Two diagonal sets on every third layer, one of them alone on
                each layer in between, stacking into a 3D lattice
6. gyroid     -- Wavy polylines tracing the gyroid surface
                sin x cos y + sin y cos z + sin z cos x = 0 at the layer height
7. concentric -- Inward offsets of the boundary (closed loops)

Clipping is exact line/polygon intersection with even-odd parity: every
candidate infinite line is intersected with all outline and hole edges, the
crossing parameters are sorted, and alternate intervals are inside. Holes
need no special handling because each hole edge toggles parity like any
other edge.

Multi-set families widen the per-set spacing by the number of sets so the
deposited material matches the requested density. Gyroid curves are clipped
with **shapely** since they are polylines rather than straight lines.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
from shapely.geometry import LineString, Polygon
from shapely.ops import linemerge

from stratapath.core.config import InfillFamily, Tolerances
from stratapath.core.geometry import Bounds, Path, Point2D, Segment
from stratapath.core.logging import get_logger
from stratapath.slicing.containment import Region
from stratapath.slicing.contour_offset import offset_polygon, subtract_boundaries

logger = get_logger(__name__)

_DEFAULT_TOLERANCES = Tolerances()


@dataclass(frozen=True)
class LinePattern:
    """
    Line-family descriptor.

    Attributes:
        angle: Base line angle in degrees (0 = +X).
        spacing: Distance between neighbouring lines of one set (mm).
        family: Pattern family.
        layer_height: Layer thickness (mm); Z-dependent families use it to
            place each layer in the 3D pattern.
    """

    angle: float
    spacing: float
    family: InfillFamily = InfillFamily.LINES
    layer_height: float = 0.2


# ---------------------------------------------------------------------------
# Core clipping
# ---------------------------------------------------------------------------


def _crossings(
    origin: Point2D,
    direction: Tuple[float, float],
    polygon: Sequence[Point2D],
) -> List[float]:
    """Line parameters where the infinite line crosses the polygon's edges."""
    params: List[float] = []
    n = len(polygon)
    if n < 3:
        return params
    dx, dy = direction
    ox, oy = origin
    prev = polygon[-1]
    s_prev = dx * (prev[1] - oy) - dy * (prev[0] - ox)
    for pt in polygon:
        s_cur = dx * (pt[1] - oy) - dy * (pt[0] - ox)
        # Half-open rule: a vertex on the line counts as the non-positive side,
        # so a crossing through a vertex is counted once.
        if (s_prev > 0) != (s_cur > 0):
            ratio = s_prev / (s_prev - s_cur)
            cx = prev[0] + (pt[0] - prev[0]) * ratio
            cy = prev[1] + (pt[1] - prev[1]) * ratio
            params.append((cx - ox) * dx + (cy - oy) * dy)
        prev = pt
        s_prev = s_cur
    return params


def clip_line_to_region(
    origin: Point2D,
    direction: Tuple[float, float],
    region: Region,
    epsilon: float = 1e-3,
) -> List[Segment]:
    """
    Clip the infinite line ``origin + t * direction`` against a Region.

    ``direction`` must be a unit vector. Returns one Segment per inside
    interval, ordered along the line. A line that misses or only touches the
    outline yields nothing.
    """
    outline_hits = _crossings(origin, direction, region.outline.points)
    if len(outline_hits) < 2:
        return []

    params = list(outline_hits)
    for hole in region.holes:
        params.extend(_crossings(origin, direction, hole.points))
    params.sort()
    if len(params) % 2:
        # Numerically inconsistent crossing; drop the unmatched tail.
        params.pop()

    segments: List[Segment] = []
    for t0, t1 in zip(params[0::2], params[1::2]):
        if t1 - t0 <= epsilon:
            continue
        start = Point2D(origin[0] + direction[0] * t0, origin[1] + direction[1] * t0)
        end = Point2D(origin[0] + direction[0] * t1, origin[1] + direction[1] * t1)
        segments.append(Segment(start, end))
    return segments


def parallel_segments(
    region: Region,
    angle_deg: float,
    spacing: float,
    anchor: Point2D = Point2D(0.0, 0.0),
    phase: float = 0.0,
    epsilon: float = 1e-3,
) -> List[Segment]:
    """
    One set of parallel lines at ``angle_deg`` clipped against the Region.

    Line offsets are multiples of ``spacing`` measured from ``anchor`` (plus
    ``phase`` spacings), so the same anchor gives the same lines on every
    layer. Offsets cover the projection of the whole bounding box, i.e. its
    full diagonal at any rotation. Every other line is reversed so the set
    can be printed back and forth.
    """
    bounds = region.bounds()
    if spacing <= 0 or bounds is None:
        return []

    angle = math.radians(angle_deg)
    direction = (math.cos(angle), math.sin(angle))
    normal = (-direction[1], direction[0])

    min_x, min_y, max_x, max_y = bounds
    projections = [
        x * normal[0] + y * normal[1]
        for x, y in ((min_x, min_y), (max_x, min_y), (max_x, max_y), (min_x, max_y))
    ]
    base = anchor[0] * normal[0] + anchor[1] * normal[1] + phase * spacing
    first = math.floor((min(projections) - base) / spacing)
    last = math.ceil((max(projections) - base) / spacing)

    segments: List[Segment] = []
    for k in range(first, last + 1):
        offset = base + k * spacing
        origin = Point2D(normal[0] * offset, normal[1] * offset)
        line = clip_line_to_region(origin, direction, region, epsilon)
        if k % 2:
            line = [Segment(s.end, s.start) for s in reversed(line)]
        segments.extend(line)
    return segments


# ---------------------------------------------------------------------------
# Pattern generators
# ---------------------------------------------------------------------------


def _set_angles(pattern: LinePattern, layer: int) -> List[Tuple[float, float]]:
    """(angle, phase) per line set for the pattern family."""
    a = pattern.angle
    if pattern.family == InfillFamily.LINES:
        return [(a + (90.0 if layer % 2 else 0.0), 0.0)]
    if pattern.family == InfillFamily.GRID:
        return [(a, 0.0), (a + 90.0, 0.0)]
    if pattern.family == InfillFamily.TRIANGLES:
        return [(a, 0.0), (a + 60.0, 0.0), (a + 120.0, 0.0)]
    if pattern.family == InfillFamily.HEXAGONS:
        return [(a, 0.0), (a + 60.0, 0.0), (a + 120.0, 0.5)]
    if pattern.family == InfillFamily.CUBIC:
        return [[(a, 0.0), (a + 90.0, 0.0)], [(a, 0.0)], [(a + 90.0, 0.0)]][layer % 3]
    return []


# Average sets per layer where it differs from the current layer's count.
_MEAN_SET_COUNT = {InfillFamily.CUBIC: 4.0 / 3.0}


def clip_pattern(
    region: Region,
    pattern: LinePattern,
    layer: int = 0,
    anchor: Point2D = Point2D(0.0, 0.0),
    epsilon: float = 1e-3,
) -> List[Segment]:
    """
    Generate a line-family pattern clipped to the Region.

    ``pattern.spacing`` is the spacing of a single set; multi-set families
    space each set ``len(sets)`` times wider. Cubic uses its mean set count
    over the three-layer cycle so every layer has the same line spacing.
    """
    sets = _set_angles(pattern, layer)
    if not sets or pattern.spacing <= 0:
        return []
    set_spacing = pattern.spacing * _MEAN_SET_COUNT.get(pattern.family, len(sets))
    segments: List[Segment] = []
    for angle, phase in sets:
        segments.extend(
            parallel_segments(region, angle, set_spacing, anchor=anchor, phase=phase, epsilon=epsilon)
        )
    return segments


def generate_concentric(
    region: Region,
    spacing: float,
    tolerances: Tolerances = _DEFAULT_TOLERANCES,
    max_loops: int = 500,
) -> List[Path]:
    """
    Concentric infill: repeated inward offsets of the outline, holes outward.

    Each ring is rebuilt with :func:`subtract_boundaries`, so a grown hole
    that reaches the shrinking outline merges into it instead of crossing it,
    and a Region pinched apart continues as several Regions.
    """
    if spacing <= 0:
        return []

    loops: List[Path] = []
    current = [region]
    for _ in range(max_loops):
        rings: List[Region] = []
        for ring in current:
            rings.extend(_inset_region(ring, spacing, tolerances))
        for ring in rings:
            loops.append(ring.outline)
            loops.extend(ring.holes)
        current = [ring for ring in rings if ring.area() > spacing * spacing]
        if not current:
            break
    return loops


def _inset_region(region: Region, spacing: float, tolerances: Tolerances) -> List[Region]:
    outline = offset_polygon(region.outline, -spacing, tolerances)
    if outline is None:
        return []
    holes = []
    for hole in region.holes:
        grown = offset_polygon(hole, spacing, tolerances)
        holes.append(hole if grown is None else grown)
    return subtract_boundaries(outline, holes, tolerances)


def gyroid_curves(
    bounds: Bounds,
    spacing: float,
    z: float,
    anchor: Point2D = Point2D(0.0, 0.0),
    samples_per_period: int = 32,
) -> List[List[Point2D]]:
    """
    Unclipped gyroid cross-section curves covering ``bounds`` at height ``z``.

    The gyroid has period ``2 * spacing``, so neighbouring curves are about
    ``spacing`` apart. Where ``|cos z| >= |sin z|`` the surface equation is
    solved for y along X, otherwise for x along Y; either way each curve is
    continuous across the whole bounding box.
    """
    if spacing <= 0:
        return []
    omega = math.pi / spacing
    sin_z = math.sin(z * omega)
    cos_z = math.cos(z * omega)
    along_x = abs(cos_z) >= abs(sin_z)

    min_x, min_y, max_x, max_y = bounds
    if along_x:
        run_min, run_max, run_anchor = min_x, max_x, anchor[0]
        cross_min, cross_max, cross_anchor = min_y, max_y, anchor[1]
    else:
        run_min, run_max, run_anchor = min_y, max_y, anchor[1]
        cross_min, cross_max, cross_anchor = min_x, max_x, anchor[0]

    step = 2.0 * spacing / samples_per_period
    run = np.arange(run_min - step, run_max + 2.0 * step, step)
    u = (run - run_anchor) * omega

    # p*sin(w) + q*cos(w) = c, with w the cross coordinate
    if along_x:
        p, q, c = np.full_like(u, cos_z), np.sin(u), -sin_z * np.cos(u)
    else:
        p, q, c = np.cos(u), np.full_like(u, sin_z), -cos_z * np.sin(u)
    phase = np.arctan2(q, p)
    base = np.arcsin(np.clip(c / np.hypot(p, q), -1.0, 1.0))

    k_min = math.floor(((cross_min - cross_anchor) * omega - 2.5 * math.pi) / (2.0 * math.pi))
    k_max = math.ceil(((cross_max - cross_anchor) * omega + 1.5 * math.pi) / (2.0 * math.pi))

    curves: List[List[Point2D]] = []
    for k in range(k_min, k_max + 1):
        for w in (base - phase, math.pi - base - phase):
            cross = cross_anchor + (w + 2.0 * math.pi * k) / omega
            if along_x:
                curves.append([Point2D(float(x), float(y)) for x, y in zip(run, cross)])
            else:
                curves.append([Point2D(float(x), float(y)) for x, y in zip(cross, run)])
    return curves


def _region_polygon(region: Region) -> Polygon:
    polygon = Polygon(
        [(p[0], p[1]) for p in region.outline.points],
        [[(p[0], p[1]) for p in hole.points] for hole in region.holes],
    )
    if not polygon.is_valid:
        polygon = polygon.buffer(0)
    return polygon


def _line_parts(geometry) -> List[LineString]:
    if geometry.is_empty:
        return []
    if geometry.geom_type == "MultiLineString":
        geometry = linemerge(geometry)
    if geometry.geom_type == "LineString":
        return [geometry]
    return [line for part in getattr(geometry, "geoms", ()) for line in _line_parts(part)]


def clip_polyline_to_region(
    points: Sequence[Point2D],
    region: Region,
    epsilon: float = 1e-3,
) -> List[Path]:
    """Inside pieces of an open polyline, one open Path per interval."""
    if len(points) < 2 or region.bounds() is None:
        return []
    clipped = _region_polygon(region).intersection(LineString([(p[0], p[1]) for p in points]))
    return [
        Path(points=tuple(Point2D(x, y) for x, y in line.coords), closed=False)
        for line in _line_parts(clipped)
        if line.length > epsilon
    ]


def generate_gyroid(
    region: Region,
    spacing: float,
    z: float,
    anchor: Point2D = Point2D(0.0, 0.0),
    epsilon: float = 1e-3,
) -> List[Path]:
    """Gyroid infill for one layer: gyroid curves clipped to the Region."""
    bounds = region.bounds()
    if spacing <= 0 or bounds is None:
        return []
    paths: List[Path] = []
    for index, curve in enumerate(gyroid_curves(bounds, spacing, z, anchor)):
        pieces = clip_polyline_to_region(curve, region, epsilon)
        if index % 2:
            pieces = [piece.reversed() for piece in reversed(pieces)]
        paths.extend(pieces)
    return paths


def order_segments(
    segments: Sequence[Segment],
    start: Optional[Point2D] = None,
) -> List[Segment]:
    """
    Chain segments by nearest endpoint, flipping them as needed.

    Starting from ``start`` (or the first segment's start), repeatedly pick
    the unvisited segment with the closest endpoint and orient it so that
    endpoint comes first.
    """
    remaining = list(segments)
    if not remaining:
        return []
    current = start if start is not None else remaining[0].start
    ordered: List[Segment] = []
    while remaining:
        best_idx = 0
        best_dist = math.inf
        flip = False
        for idx, seg in enumerate(remaining):
            d_start = math.dist(seg.start, current)
            d_end = math.dist(seg.end, current)
            if d_start < best_dist:
                best_idx, best_dist, flip = idx, d_start, False
            if d_end < best_dist:
                best_idx, best_dist, flip = idx, d_end, True
        seg = remaining.pop(best_idx)
        if flip:
            seg = Segment(seg.end, seg.start)
        ordered.append(seg)
        current = seg.end
    return ordered


def _segments_to_paths(segments: Sequence[Segment]) -> List[Path]:
    return [Path(points=(s.start, s.end), closed=False) for s in segments]


PatternGenerator = Callable[..., List[Path]]


def _generate_line_family(
    region: Region,
    pattern: LinePattern,
    layer: int,
    anchor: Point2D,
    tolerances: Tolerances,
) -> List[Path]:
    segments = clip_pattern(region, pattern, layer, anchor, tolerances.epsilon)
    return _segments_to_paths(order_segments(segments))


def _generate_concentric_family(
    region: Region,
    pattern: LinePattern,
    layer: int,
    anchor: Point2D,
    tolerances: Tolerances,
) -> List[Path]:
    return generate_concentric(region, pattern.spacing, tolerances)


def _generate_gyroid_family(
    region: Region,
    pattern: LinePattern,
    layer: int,
    anchor: Point2D,
    tolerances: Tolerances,
) -> List[Path]:
    z = layer * pattern.layer_height
    return generate_gyroid(region, pattern.spacing, z, anchor, tolerances.epsilon)


# --- Pattern Registry ---

INFILL_PATTERNS: Dict[InfillFamily, PatternGenerator] = {
    InfillFamily.LINES: _generate_line_family,
    InfillFamily.GRID: _generate_line_family,
    InfillFamily.TRIANGLES: _generate_line_family,
    InfillFamily.HEXAGONS: _generate_line_family,
    InfillFamily.CUBIC: _generate_line_family,
    InfillFamily.GYROID: _generate_gyroid_family,
    InfillFamily.CONCENTRIC: _generate_concentric_family,
}


def generate_infill(
    region: Region,
    pattern: LinePattern,
    layer: int = 0,
    anchor: Point2D = Point2D(0.0, 0.0),
    tolerances: Tolerances = _DEFAULT_TOLERANCES,
) -> List[Path]:
    """
    Generate infill paths for a Region using the pattern's family.

    Parameters:
        region: Boundary (solid minus holes) to fill.
        pattern: Angle, single-set spacing and family.
        layer: Current layer index (used by alternating families).
        anchor: Phase origin for line offsets.
        tolerances: Run tolerances.

    Returns:
        Open two-point paths for line families, open polylines for gyroid,
        closed loops for concentric.
    """
    generator = INFILL_PATTERNS[pattern.family]
    paths = generator(region, pattern, layer, anchor, tolerances)
    if not paths:
        logger.debug("infill_empty", family=pattern.family.value, spacing=pattern.spacing)
    return paths


def generate_skin(
    region: Region,
    bead_width: float,
    layer: int = 0,
    anchor: Point2D = Point2D(0.0, 0.0),
    tolerances: Tolerances = _DEFAULT_TOLERANCES,
) -> List[Path]:
    """Solid skin: lines one bead apart at 45/135 degrees alternating per layer."""
    angle = 45.0 if layer % 2 == 0 else 135.0
    segments = parallel_segments(
        region, angle, bead_width, anchor=anchor, epsilon=tolerances.epsilon
    )
    return _segments_to_paths(segments)
