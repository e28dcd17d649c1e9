"""
Polygon boolean helpers backed by **pyclipper**.

Used where exact unions are needed on well-formed, pipeline-generated
polygons: merging exposure sample cells into skin patches, and building
outward adhesion outlines around every first-layer island. Assembled layer
loops never go through here.

pyclipper works on integer coordinates; millimetres are scaled by
``_CLIPPER_SCALE`` (0.001 mm resolution).

References:
- pyclipper: https://github.com/fonttools/pyclipper
"""

from __future__ import annotations

from typing import Iterable, List, Sequence, Tuple

import pyclipper

from stratapath.core.geometry import Path, Point2D, make_path, signed_area
from stratapath.slicing.containment import Region

_CLIPPER_SCALE = 1000  # 1 mm -> 1000 clipper units
_ARC_TOLERANCE_MM = 0.02

ClipperPath = List[Tuple[int, int]]


def to_clipper(points: Sequence[Sequence[float]]) -> ClipperPath:
    """Scale floating-point points to pyclipper integer coordinates."""
    return [(int(round(p[0] * _CLIPPER_SCALE)), int(round(p[1] * _CLIPPER_SCALE)))
            for p in points]


def from_clipper(path: Iterable[Sequence[int]]) -> List[Point2D]:
    """Scale pyclipper integer coordinates back to floating-point mm."""
    return [Point2D(x / _CLIPPER_SCALE, y / _CLIPPER_SCALE) for x, y in path]


def _add_paths(clipper: pyclipper.Pyclipper, paths: Iterable[ClipperPath], kind: int) -> int:
    added = 0
    for path in paths:
        if len(path) < 3:
            continue
        try:
            clipper.AddPath(path, kind, True)
            added += 1
        except pyclipper.ClipperException:
            # Zero-area paths are rejected by Clipper; they contribute nothing.
            continue
    return added


def _regions_from_tree(node: pyclipper.PyPolyNode, epsilon: float) -> List[Region]:
    regions: List[Region] = []
    for outer in node.Childs:
        outline = make_path(from_clipper(outer.Contour), closed=True, epsilon=epsilon)
        holes = []
        for hole in outer.Childs:
            hole_path = make_path(from_clipper(hole.Contour), closed=True, epsilon=epsilon)
            if hole_path.closed:
                holes.append(_ccw(hole_path))
            regions.extend(_regions_from_tree(hole, epsilon))
        if outline.closed:
            regions.append(Region(outline=_ccw(outline), holes=tuple(holes)))
    return regions


def _ccw(path: Path) -> Path:
    return path.reversed() if signed_area(path.points) < 0 else path


def _region_paths(region: Region) -> List[ClipperPath]:
    return [to_clipper(region.outline.points)] + [to_clipper(h.points) for h in region.holes]


def _oriented(path: ClipperPath, positive: bool) -> ClipperPath:
    if bool(pyclipper.Orientation(path)) != positive:
        return path[::-1]
    return path


def _winding_paths(region: Region) -> List[ClipperPath]:
    """Outline counter-clockwise, holes clockwise, for non-zero filling."""
    return [_oriented(to_clipper(region.outline.points), True)] + [
        _oriented(to_clipper(h.points), False) for h in region.holes
    ]


def clip_to_region(
    polygons: Iterable[Sequence[Sequence[float]]],
    region: Region,
    epsilon: float,
) -> List[Region]:
    """
    Union the polygons and keep only the part inside ``region``.

    Returns the result as Regions, so a clipped patch keeps any of the
    region's holes that fall inside it.
    """
    merged = pyclipper.Pyclipper()
    if not _add_paths(merged, (to_clipper(p) for p in polygons), pyclipper.PT_SUBJECT):
        return []
    union = merged.Execute(pyclipper.CT_UNION, pyclipper.PFT_NONZERO, pyclipper.PFT_NONZERO)

    clipper = pyclipper.Pyclipper()
    if not _add_paths(clipper, union, pyclipper.PT_SUBJECT):
        return []
    if not _add_paths(clipper, _region_paths(region), pyclipper.PT_CLIP):
        return []
    tree = clipper.Execute2(pyclipper.CT_INTERSECTION, pyclipper.PFT_NONZERO, pyclipper.PFT_EVENODD)
    return _regions_from_tree(tree, epsilon)


def intersect_regions(
    regions: Iterable[Region],
    boundary: Region,
    epsilon: float,
) -> List[Region]:
    """Keep the parts of disjoint ``regions`` that lie inside ``boundary``."""
    clipper = pyclipper.Pyclipper()
    subject = [path for region in regions for path in _region_paths(region)]
    if not _add_paths(clipper, subject, pyclipper.PT_SUBJECT):
        return []
    if not _add_paths(clipper, _region_paths(boundary), pyclipper.PT_CLIP):
        return []
    tree = clipper.Execute2(pyclipper.CT_INTERSECTION, pyclipper.PFT_EVENODD, pyclipper.PFT_EVENODD)
    return _regions_from_tree(tree, epsilon)


def subtract_regions(
    region: Region,
    cutters: Iterable[Region],
    epsilon: float,
) -> List[Region]:
    """
    Remove ``cutters`` from ``region``; returns what is left.

    Cutters may overlap each other and the region's outline; the result can
    split into several Regions.
    """
    clipper = pyclipper.Pyclipper()
    if not _add_paths(clipper, _region_paths(region), pyclipper.PT_SUBJECT):
        return []
    cutter_paths = [path for cutter in cutters for path in _winding_paths(cutter)]
    if not _add_paths(clipper, cutter_paths, pyclipper.PT_CLIP):
        return [region]
    tree = clipper.Execute2(pyclipper.CT_DIFFERENCE, pyclipper.PFT_EVENODD, pyclipper.PFT_NONZERO)
    return _regions_from_tree(tree, epsilon)


def offset_outward(
    polygons: Iterable[Sequence[Sequence[float]]],
    distance: float,
    epsilon: float,
    round_joins: bool = True,
) -> List[Region]:
    """
    Union the polygons and grow them outward by ``distance`` (mm).

    Round joins keep adhesion lines smooth around sharp corners.
    """
    pco = pyclipper.PyclipperOffset()
    pco.ArcTolerance = _ARC_TOLERANCE_MM * _CLIPPER_SCALE
    join = pyclipper.JT_ROUND if round_joins else pyclipper.JT_MITER
    added = 0
    for polygon in polygons:
        scaled = to_clipper(polygon)
        if len(scaled) < 3:
            continue
        # Positive deltas grow paths with positive orientation only.
        if not pyclipper.Orientation(scaled):
            scaled.reverse()
        pco.AddPath(scaled, join, pyclipper.ET_CLOSEDPOLYGON)
        added += 1
    if not added:
        return []
    tree = pco.Execute2(int(round(distance * _CLIPPER_SCALE)))
    return _regions_from_tree(tree, epsilon)
