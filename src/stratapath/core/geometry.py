"""
Planar geometry primitives shared by the slicing pipeline.

Everything here is layer-local 2D geometry in millimetres. Z is implicit
from the layer index and only reappears when moves are emitted.

The helpers are deliberately small and free of tolerance defaults: callers
pass the run's epsilon from ``Tolerances`` so no module invents its own.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Iterator, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np

Bounds = Tuple[float, float, float, float]


class Point2D(NamedTuple):
    """A layer-local point (mm)."""

    x: float
    y: float


class Segment(NamedTuple):
    """An undirected line between two points."""

    start: Point2D
    end: Point2D

    def length(self) -> float:
        return distance(self.start, self.end)


@dataclass(frozen=True)
class Path:
    """
    Ordered polyline, optionally closed.

    A closed path stores each vertex once; the closing edge from the last
    point back to the first is implicit.

    Attributes:
        points: Vertices in traversal order.
        closed: True when the polyline returns to its first vertex.
    """

    points: Tuple[Point2D, ...]
    closed: bool = False

    def __len__(self) -> int:
        return len(self.points)

    def edges(self) -> Iterator[Segment]:
        """Yield every edge, including the closing edge of a closed path."""
        pts = self.points
        for i in range(len(pts) - 1):
            yield Segment(pts[i], pts[i + 1])
        if self.closed and len(pts) > 2:
            yield Segment(pts[-1], pts[0])

    def length(self) -> float:
        """Total traversed length."""
        return sum(edge.length() for edge in self.edges())

    def signed_area(self) -> float:
        """Shoelace area (positive = CCW). Zero for open paths."""
        if not self.closed:
            return 0.0
        return signed_area(self.points)

    def bounds(self) -> Optional[Bounds]:
        return polygon_bounds(self.points)

    def reversed(self) -> "Path":
        return Path(points=tuple(reversed(self.points)), closed=self.closed)


def distance(a: Sequence[float], b: Sequence[float]) -> float:
    return math.hypot(b[0] - a[0], b[1] - a[1])


def points_coincide(a: Sequence[float], b: Sequence[float], epsilon: float) -> bool:
    return distance(a, b) <= epsilon


def signed_area(points: Sequence[Sequence[float]]) -> float:
    """Compute signed area (positive = CCW, negative = CW)."""
    area = 0.0
    n = len(points)
    for i in range(n):
        j = (i + 1) % n
        area += points[i][0] * points[j][1]
        area -= points[j][0] * points[i][1]
    return area / 2.0


def polygon_bounds(points: Sequence[Sequence[float]]) -> Optional[Bounds]:
    """Get bounding box of points: (min_x, min_y, max_x, max_y), or None if empty."""
    if not points:
        return None
    xs = [p[0] for p in points]
    ys = [p[1] for p in points]
    return (min(xs), min(ys), max(xs), max(ys))


def polygon_centroid(points: Sequence[Sequence[float]]) -> Point2D:
    """Area centroid, falling back to the vertex mean for degenerate polygons."""
    n = len(points)
    if n == 0:
        return Point2D(0.0, 0.0)
    area = signed_area(points)
    if abs(area) < 1e-12:
        return Point2D(sum(p[0] for p in points) / n, sum(p[1] for p in points) / n)
    cx = cy = 0.0
    for i in range(n):
        x0, y0 = points[i][0], points[i][1]
        x1, y1 = points[(i + 1) % n][0], points[(i + 1) % n][1]
        cross = x0 * y1 - x1 * y0
        cx += (x0 + x1) * cross
        cy += (y0 + y1) * cross
    return Point2D(cx / (6.0 * area), cy / (6.0 * area))


def point_in_polygon(point: Sequence[float], polygon: Sequence[Sequence[float]]) -> bool:
    """
    Even-odd ray casting test.

    Points exactly on an edge may land on either side; callers that care
    about boundary points test with an epsilon-sized margin instead.
    """
    x, y = point[0], point[1]
    inside = False
    n = len(polygon)
    if n < 3:
        return False
    j = n - 1
    for i in range(n):
        xi, yi = polygon[i][0], polygon[i][1]
        xj, yj = polygon[j][0], polygon[j][1]
        if (yi > y) != (yj > y):
            x_cross = xi + (y - yi) * (xj - xi) / (yj - yi)
            if x < x_cross:
                inside = not inside
        j = i
    return inside


def point_segment_distance(
    point: Sequence[float], a: Sequence[float], b: Sequence[float]
) -> float:
    """Shortest distance from a point to the segment a-b."""
    dx = b[0] - a[0]
    dy = b[1] - a[1]
    length_sq = dx * dx + dy * dy
    if length_sq == 0.0:
        return distance(point, a)
    t = ((point[0] - a[0]) * dx + (point[1] - a[1]) * dy) / length_sq
    t = max(0.0, min(1.0, t))
    return math.hypot(point[0] - (a[0] + t * dx), point[1] - (a[1] + t * dy))


def minimum_distance_between_paths(first: Path, second: Path) -> float:
    """
    Minimum vertex-to-edge distance between two paths, checked both ways.

    Returns ``math.inf`` when either path is empty.
    """
    if not first.points or not second.points:
        return math.inf

    best = math.inf
    for source, target in ((first, second), (second, first)):
        edges = list(target.edges()) or [Segment(target.points[0], target.points[0])]
        for point in source.points:
            for edge in edges:
                d = point_segment_distance(point, edge.start, edge.end)
                if d < best:
                    best = d
    return best


def dedupe_points(points: Iterable[Sequence[float]], epsilon: float) -> List[Point2D]:
    """Drop consecutive points closer than epsilon."""
    out: List[Point2D] = []
    for p in points:
        pt = Point2D(float(p[0]), float(p[1]))
        if out and points_coincide(out[-1], pt, epsilon):
            continue
        out.append(pt)
    return out


def make_path(points: Iterable[Sequence[float]], closed: bool, epsilon: float) -> Path:
    """
    Build a Path that satisfies the path invariants.

    Consecutive duplicates are removed, a repeated closing vertex is dropped,
    and a "closed" input with fewer than three distinct points is demoted
    to an open path.
    """
    pts = dedupe_points(points, epsilon)
    if closed and len(pts) > 1 and points_coincide(pts[0], pts[-1], epsilon):
        pts.pop()
    if closed and len(pts) < 3:
        closed = False
    return Path(points=tuple(pts), closed=closed)


def points_in_polygon(points: np.ndarray, polygon: Sequence[Sequence[float]]) -> np.ndarray:
    """
    Vectorised even-odd test for an (N, 2) array of points.

    Returns a boolean array of shape (N,).
    """
    pts = np.asarray(points, dtype=float).reshape(-1, 2)
    inside = np.zeros(len(pts), dtype=bool)
    if len(polygon) < 3 or len(pts) == 0:
        return inside

    poly = np.asarray(polygon, dtype=float)
    x = pts[:, 0]
    y = pts[:, 1]
    xj, yj = poly[-1]
    for xi, yi in poly:
        straddles = (yi > y) != (yj > y)
        if straddles.any():
            with np.errstate(divide="ignore", invalid="ignore"):
                x_cross = xi + (y - yi) * (xj - xi) / (yj - yi)
            inside ^= straddles & (x < x_cross)
        xj, yj = xi, yi
    return inside
