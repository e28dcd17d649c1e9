"""
Path assembly: turn a layer's unordered segment soup into polylines.

The mesh-slicing collaborator hands over segments with no ordering or
connectivity guarantee. Endpoints are interned into a vertex arena through
a spatial hash at the run's epsilon, segments become index pairs, and the
adjacency graph is walked into closed loops or open chains.

Non-manifold input (vertices shared by more than two segments) is tolerated:
such branch points are counted and the walk continues with the first unused
segment in input order, so the result is deterministic and always a
partition of the non-degenerate input.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from stratapath.core.geometry import (
    Path,
    Point2D,
    Segment,
    distance,
    make_path,
    signed_area,
)
from stratapath.core.logging import get_logger

logger = get_logger(__name__)


class VertexArena:
    """
    Interned endpoint storage with a uniform-grid spatial hash.

    Points within ``epsilon`` of an existing vertex resolve to that vertex.
    Lookups scan the 3x3 neighbourhood of the point's cell so two points on
    either side of a cell boundary still merge.
    """

    def __init__(self, epsilon: float) -> None:
        self.epsilon = epsilon
        self.points: List[Point2D] = []
        self._cells: Dict[Tuple[int, int], List[int]] = {}

    def __len__(self) -> int:
        return len(self.points)

    def _cell(self, point: Sequence[float]) -> Tuple[int, int]:
        return (int(round(point[0] / self.epsilon)), int(round(point[1] / self.epsilon)))

    def find(self, point: Sequence[float]) -> Optional[int]:
        cx, cy = self._cell(point)
        best: Optional[int] = None
        for dx in (-1, 0, 1):
            for dy in (-1, 0, 1):
                for index in self._cells.get((cx + dx, cy + dy), ()):
                    if distance(self.points[index], point) <= self.epsilon:
                        if best is None or index < best:
                            best = index
        return best

    def intern(self, point: Sequence[float]) -> int:
        """Return the vertex index for ``point``, adding it if new."""
        existing = self.find(point)
        if existing is not None:
            return existing
        index = len(self.points)
        self.points.append(Point2D(float(point[0]), float(point[1])))
        self._cells.setdefault(self._cell(point), []).append(index)
        return index


@dataclass
class AssemblyResult:
    """
    Output of :func:`connect_segments_to_paths`.

    Attributes:
        paths: Assembled paths in discovery order.
        segment_count: Number of input segments.
        degenerate_segments: Segments whose endpoints merged (dropped).
        branch_vertices: Vertices with more than two incident segments.
    """

    paths: List[Path] = field(default_factory=list)
    segment_count: int = 0
    degenerate_segments: int = 0
    branch_vertices: List[Point2D] = field(default_factory=list)

    @property
    def branch_points(self) -> int:
        return len(self.branch_vertices)

    @property
    def closed_paths(self) -> List[Path]:
        return [p for p in self.paths if p.closed]

    @property
    def open_paths(self) -> List[Path]:
        return [p for p in self.paths if not p.closed]


class _SegmentGraph:
    """Index-based adjacency over interned vertices."""

    def __init__(self, segments: Sequence[Segment], epsilon: float) -> None:
        self.arena = VertexArena(epsilon)
        self.edges: List[Tuple[int, int]] = []
        self.degenerate = 0
        for seg in segments:
            a = self.arena.intern(seg[0])
            b = self.arena.intern(seg[1])
            if a == b:
                self.degenerate += 1
                continue
            self.edges.append((a, b))

        self.adjacency: List[List[int]] = [[] for _ in range(len(self.arena))]
        for edge_index, (a, b) in enumerate(self.edges):
            self.adjacency[a].append(edge_index)
            self.adjacency[b].append(edge_index)
        self.visited = [False] * len(self.edges)

    def branch_vertices(self) -> List[int]:
        return [v for v, incident in enumerate(self.adjacency) if len(incident) > 2]

    def take_next(self, vertex: int) -> Optional[int]:
        """Consume the first unvisited edge at ``vertex`` and return its far end."""
        for edge_index in self.adjacency[vertex]:
            if not self.visited[edge_index]:
                self.visited[edge_index] = True
                a, b = self.edges[edge_index]
                return b if a == vertex else a
        return None

    def walk_from(self, edge_index: int) -> Tuple[List[int], bool]:
        """Walk a chain starting with ``edge_index``; return vertex ids and closure."""
        self.visited[edge_index] = True
        start, current = self.edges[edge_index]
        chain = [start, current]

        while True:
            nxt = self.take_next(current)
            if nxt is None:
                break
            if nxt == start:
                return chain, True
            chain.append(nxt)
            current = nxt

        # Dangling end reached: grow the chain backwards from the start.
        backward: List[int] = []
        current = start
        while True:
            nxt = self.take_next(current)
            if nxt is None:
                break
            if nxt == chain[-1]:
                return list(reversed(backward)) + chain, True
            backward.append(nxt)
            current = nxt
        return list(reversed(backward)) + chain, False


def connect_segments_to_paths(
    segments: Sequence[Segment],
    epsilon: float = 1e-3,
) -> AssemblyResult:
    """
    Assemble unordered segments into ordered paths.

    Closed paths are returned counter-clockwise so the winding of a loop does
    not depend on the order its segments arrived in. Open chains keep their
    walk order.

    Parameters:
        segments: Unordered segments for one layer.
        epsilon: Endpoint matching tolerance (mm).

    Returns:
        AssemblyResult with the paths and data-quality counters. Never raises
        for malformed topology.
    """
    result = AssemblyResult(segment_count=len(segments))
    if not segments:
        return result

    graph = _SegmentGraph(segments, epsilon)
    result.degenerate_segments = graph.degenerate
    result.branch_vertices = [graph.arena.points[v] for v in graph.branch_vertices()]

    for edge_index in range(len(graph.edges)):
        if graph.visited[edge_index]:
            continue
        vertex_ids, closed = graph.walk_from(edge_index)
        points = [graph.arena.points[v] for v in vertex_ids]
        path = make_path(points, closed=closed, epsilon=epsilon)
        if path.closed and signed_area(path.points) < 0:
            path = path.reversed()
        if len(path.points) < 2:
            result.degenerate_segments += 1
            continue
        result.paths.append(path)

    if result.branch_points or result.degenerate_segments:
        logger.debug(
            "segment_topology_anomalies",
            branch_points=result.branch_points,
            degenerate_segments=result.degenerate_segments,
        )
    open_count = len(result.open_paths)
    if open_count:
        logger.debug("open_paths_assembled", open_paths=open_count)

    return result
