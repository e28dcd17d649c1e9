"""
First-layer adhesion structures: skirt, brim and raft.

All three are built around the union of the first layer's solid outlines:

- skirt (shape)    -- loops following the outline at ``distance`` away
- skirt (circular) -- circles around the outline's bounding-box centre
- brim             -- loops touching the part, one bead apart, growing outward
- raft             -- dense parallel lines filling the outline grown by
                      ``raft_margin``, plus its border loop

Outward growth uses pyclipper round-joined offsets so loops around separate
islands merge instead of crossing.
"""

import math
from typing import List, Sequence

from stratapath.core.config import AdhesionConfig, AdhesionType, SkirtType, Tolerances
from stratapath.core.geometry import Path, Point2D, polygon_bounds
from stratapath.core.logging import get_logger
from stratapath.slicing.clipper_ops import offset_outward
from stratapath.slicing.containment import Region
from stratapath.slicing.infill_patterns import parallel_segments

logger = get_logger(__name__)

_CIRCLE_SEGMENTS = 64


def _outlines(regions: Sequence[Region]) -> List[Sequence[Point2D]]:
    return [r.outline.points for r in regions if r.outline.closed]


def _grown_loops(regions: Sequence[Region], distance: float, epsilon: float) -> List[Path]:
    grown = offset_outward(_outlines(regions), distance, epsilon)
    return [r.outline for r in grown]


def circle_path(center: Point2D, radius: float, segments: int = _CIRCLE_SEGMENTS) -> Path:
    """Closed CCW polygon approximating a circle."""
    points = tuple(
        Point2D(
            center[0] + radius * math.cos(2.0 * math.pi * i / segments),
            center[1] + radius * math.sin(2.0 * math.pi * i / segments),
        )
        for i in range(segments)
    )
    return Path(points=points, closed=True)


def generate_skirt(
    regions: Sequence[Region],
    config: AdhesionConfig,
    bead_width: float,
    tolerances: Tolerances,
) -> List[Path]:
    """Skirt loops ``config.distance`` away from the part, one bead apart."""
    loops: List[Path] = []
    if config.skirt_type == SkirtType.CIRCULAR:
        points = [p for outline in _outlines(regions) for p in outline]
        bounds = polygon_bounds(points)
        if bounds is None:
            return loops
        center = Point2D((bounds[0] + bounds[2]) / 2.0, (bounds[1] + bounds[3]) / 2.0)
        reach = max(math.hypot(p[0] - center[0], p[1] - center[1]) for p in points)
        for i in range(config.line_count):
            loops.append(circle_path(center, reach + config.distance + i * bead_width))
        return loops

    for i in range(config.line_count):
        loops.extend(_grown_loops(regions, config.distance + i * bead_width, tolerances.epsilon))
    return loops


def generate_brim(
    regions: Sequence[Region],
    config: AdhesionConfig,
    bead_width: float,
    tolerances: Tolerances,
) -> List[Path]:
    """Brim loops attached to the part: the first bead touches the outline."""
    loops: List[Path] = []
    for i in range(config.line_count):
        loops.extend(_grown_loops(regions, bead_width / 2.0 + i * bead_width, tolerances.epsilon))
    return loops


def generate_raft(
    regions: Sequence[Region],
    config: AdhesionConfig,
    bead_width: float,
    tolerances: Tolerances,
) -> List[Path]:
    """Raft base: border loop plus lines one bead apart inside the grown outline."""
    paths: List[Path] = []
    for base in offset_outward(_outlines(regions), config.raft_margin, tolerances.epsilon):
        paths.append(base.outline)
        fill = Region(outline=base.outline)
        for segment in parallel_segments(fill, 0.0, bead_width, epsilon=tolerances.epsilon):
            paths.append(Path(points=(segment.start, segment.end), closed=False))
    return paths


def generate_adhesion(
    regions: Sequence[Region],
    config: AdhesionConfig,
    bead_width: float,
    tolerances: Tolerances,
) -> List[Path]:
    """
    Build adhesion paths for the first layer's solid Regions.

    Returns an empty list when adhesion is disabled or the layer is empty.
    """
    if not config.enabled or not regions:
        return []

    if config.type == AdhesionType.BRIM:
        paths = generate_brim(regions, config, bead_width, tolerances)
    elif config.type == AdhesionType.RAFT:
        paths = generate_raft(regions, config, bead_width, tolerances)
    else:
        paths = generate_skirt(regions, config, bead_width, tolerances)

    logger.debug("adhesion_generated", type=config.type.value, paths=len(paths))
    return paths
