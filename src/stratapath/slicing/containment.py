"""
Containment classification: which assembled loops are solid and which are holes.

Each path's first vertex is tested against every other closed path. The
number of containing paths is the nesting depth; odd depth means hole.
Only closed paths can contain anything, and open paths are always reported
as solid. Solids are then grouped with their direct-child holes into
Regions, the unit consumed by offsetting, exposure analysis and infill
clipping.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from stratapath.core.geometry import (
    Bounds,
    Path,
    point_in_polygon,
    points_in_polygon,
    signed_area,
)


@dataclass(frozen=True)
class ClassifiedPath:
    """
    A path tagged with its nesting.

    Attributes:
        path: The assembled path.
        depth: Number of closed paths containing it.
        parent: Index of the innermost containing path, or None at top level.
    """

    path: Path
    depth: int
    parent: Optional[int] = None

    @property
    def hole(self) -> bool:
        return self.path.closed and self.depth % 2 == 1


@dataclass(frozen=True)
class Region:
    """A solid outline with its direct-child holes."""

    outline: Path
    holes: Tuple[Path, ...] = ()

    def contains(self, point: Sequence[float]) -> bool:
        """True if the point is inside the outline and outside every hole."""
        if not point_in_polygon(point, self.outline.points):
            return False
        return not any(point_in_polygon(point, h.points) for h in self.holes)

    def contains_points(self, points: np.ndarray) -> np.ndarray:
        """Vectorised :meth:`contains` for an (N, 2) array."""
        mask = points_in_polygon(points, self.outline.points)
        for hole in self.holes:
            if not mask.any():
                break
            mask &= ~points_in_polygon(points, hole.points)
        return mask

    def area(self) -> float:
        """Solid area: outline minus holes."""
        solid = abs(signed_area(self.outline.points))
        return solid - sum(abs(signed_area(h.points)) for h in self.holes)

    def bounds(self) -> Optional[Bounds]:
        return self.outline.bounds()


def classify_paths(paths: Sequence[Path]) -> List[ClassifiedPath]:
    """
    Tag every path with its containment depth and innermost container.

    Parameters:
        paths: Assembled paths for one layer.

    Returns:
        One ClassifiedPath per input path, in input order.
    """
    containers: List[List[int]] = []
    for i, candidate in enumerate(paths):
        if not candidate.points:
            containers.append([])
            continue
        sample = candidate.points[0]
        inside = [
            j
            for j, other in enumerate(paths)
            if j != i and other.closed and len(other.points) >= 3
            and point_in_polygon(sample, other.points)
        ]
        containers.append(inside)

    depths = [len(c) for c in containers]
    classified: List[ClassifiedPath] = []
    for i, path in enumerate(paths):
        parent = max(containers[i], key=lambda j: depths[j]) if containers[i] else None
        classified.append(ClassifiedPath(path=path, depth=depths[i], parent=parent))
    return classified


def build_regions(classified: Sequence[ClassifiedPath]) -> List[Region]:
    """
    Group each closed solid with the holes directly inside it.

    Open paths never form regions. A hole whose innermost container is not a
    closed solid (which cannot happen for laminar nesting) is ignored.
    """
    regions: List[Region] = []
    for index, item in enumerate(classified):
        if item.hole or not item.path.closed:
            continue
        holes = tuple(
            other.path
            for other in classified
            if other.hole and other.path.closed and other.parent == index
        )
        regions.append(Region(outline=item.path, holes=holes))
    return regions
