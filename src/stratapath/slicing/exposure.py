"""
Cross-layer exposure analysis: where does a layer need dense skin?

A solid Region needs skin wherever it is not covered on the top side by all
``k`` layers above it, or on the bottom side by all ``k`` layers below it.
Coverage is decided by sampling: a grid of points over the Region's bounding
box is classified in/out against the Region and against every neighbouring
layer's solid Regions. Sampling is used instead of exact polygon booleans so
the analysis tolerates the approximate, possibly self-touching loops the
path assembler produces.

Exposed samples are turned back into polygons by unioning their grid cells
and clipping the result to the Region. Neighbouring layers are read from an
immutable :class:`LayerSnapshot`; nothing here mutates another layer.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

import numpy as np

from stratapath.core.config import Tolerances
from stratapath.core.geometry import Bounds
from stratapath.core.logging import get_logger
from stratapath.slicing.clipper_ops import clip_to_region
from stratapath.slicing.containment import Region

logger = get_logger(__name__)

_DEFAULT_TOLERANCES = Tolerances()


class ExposureSide(str, Enum):
    TOP = "top"
    BOTTOM = "bottom"


@dataclass(frozen=True)
class LayerSnapshot:
    """Read-only per-layer solid Regions, indexed by layer."""

    regions: Tuple[Tuple[Region, ...], ...]

    @classmethod
    def from_layers(cls, layers: Sequence[Sequence[Region]]) -> "LayerSnapshot":
        return cls(regions=tuple(tuple(r) for r in layers))

    def __len__(self) -> int:
        return len(self.regions)

    def regions_at(self, layer_index: int) -> Tuple[Region, ...]:
        if 0 <= layer_index < len(self.regions):
            return self.regions[layer_index]
        return ()


@dataclass(frozen=True)
class ExposedArea:
    """
    A patch of a Region's solid area that needs skin.

    Attributes:
        region: The patch (outline plus any holes of the source Region inside it).
        sides: Which sides the patch is exposed on.
        area: Patch area in mm².
    """

    region: Region
    sides: Tuple[ExposureSide, ...]
    area: float


@dataclass
class ExposureResult:
    """Outcome of :func:`calculate_exposed_areas` for one Region."""

    exposed_areas: List[ExposedArea] = field(default_factory=list)
    covering_regions_above: List[Region] = field(default_factory=list)
    covering_regions_below: List[Region] = field(default_factory=list)
    fully_exposed_top: bool = False
    fully_exposed_bottom: bool = False
    exposed_fraction: float = 0.0

    @property
    def needs_skin(self) -> bool:
        return bool(self.exposed_areas)

    @property
    def fully_exposed(self) -> bool:
        return self.fully_exposed_top or self.fully_exposed_bottom


def _bounds_overlap(a: Optional[Bounds], b: Optional[Bounds]) -> bool:
    if a is None or b is None:
        return False
    return not (a[2] < b[0] or b[2] < a[0] or a[3] < b[1] or b[3] < a[1])


def _sample_grid(bounds: Bounds, resolution: int) -> Tuple[np.ndarray, float, float, int]:
    """Cell-centred sample points over the bounds; returns points, cell size, side."""
    side = max(2, int(math.ceil(math.sqrt(resolution))))
    min_x, min_y, max_x, max_y = bounds
    cell_w = (max_x - min_x) / side
    cell_h = (max_y - min_y) / side
    xs = min_x + (np.arange(side) + 0.5) * cell_w
    ys = min_y + (np.arange(side) + 0.5) * cell_h
    gx, gy = np.meshgrid(xs, ys)
    points = np.column_stack([gx.ravel(), gy.ravel()])
    return points, cell_w, cell_h, side


def _covered_by_all(
    points: np.ndarray,
    layers: Sequence[Tuple[Region, ...]],
) -> np.ndarray:
    """True where a point lies inside some Region on every one of the layers."""
    covered = np.ones(len(points), dtype=bool)
    for regions in layers:
        on_layer = np.zeros(len(points), dtype=bool)
        for region in regions:
            pending = ~on_layer & covered
            if not pending.any():
                break
            on_layer[pending] |= region.contains_points(points[pending])
        covered &= on_layer
        if not covered.any():
            break
    return covered


def _whole_region(region: Region, sides: Tuple[ExposureSide, ...]) -> ExposedArea:
    return ExposedArea(region=region, sides=sides, area=region.area())


def _patch_sides(
    patch: Region,
    points: np.ndarray,
    top: np.ndarray,
    bottom: np.ndarray,
) -> Tuple[ExposureSide, ...]:
    """Sides on which the exposed samples falling inside ``patch`` are open."""
    inside = patch.contains_points(points)
    if not inside.any():
        # Patch narrower than the sample grid; fall back to every exposed sample.
        inside = np.ones(len(points), dtype=bool)
    sides = []
    if top[inside].any():
        sides.append(ExposureSide.TOP)
    if bottom[inside].any():
        sides.append(ExposureSide.BOTTOM)
    return tuple(sides)


def calculate_exposed_areas(
    region: Region,
    layer_index: int,
    window: int,
    snapshot: LayerSnapshot,
    resolution: int = 961,
    tolerances: Tolerances = _DEFAULT_TOLERANCES,
) -> ExposureResult:
    """
    Compute the part of ``region`` exposed on its top or bottom side.

    Parameters:
        region: Solid Region on ``layer_index``.
        layer_index: Index of the Region's layer in ``snapshot``.
        window: Number of layers k checked above and below.
        snapshot: Solid Regions of every layer.
        resolution: Number of grid samples over the Region's bounding box.
        tolerances: Run tolerances (noise floor for exposed fractions).

    Returns:
        ExposureResult. An empty ``exposed_areas`` list means no skin is needed.
    """
    window = max(1, window)
    layer_count = len(snapshot)
    bounds = region.bounds()
    result = ExposureResult()
    if bounds is None:
        return result

    above = [snapshot.regions_at(j) for j in range(layer_index + 1, layer_index + window + 1)]
    below = [snapshot.regions_at(j) for j in range(layer_index - window, layer_index)]
    result.covering_regions_above = [
        r for regions in above for r in regions if _bounds_overlap(bounds, r.bounds())
    ]
    result.covering_regions_below = [
        r for regions in below for r in regions if _bounds_overlap(bounds, r.bounds())
    ]

    # Within k layers of the model's top or bottom there is no full neighbour
    # window on that side, so the whole Region is exposed there.
    result.fully_exposed_top = layer_index + window >= layer_count
    result.fully_exposed_bottom = layer_index < window
    if result.fully_exposed:
        sides = tuple(
            side for side, flag in (
                (ExposureSide.TOP, result.fully_exposed_top),
                (ExposureSide.BOTTOM, result.fully_exposed_bottom),
            ) if flag
        )
        result.exposed_areas = [_whole_region(region, sides)]
        result.exposed_fraction = 1.0
        return result

    points, cell_w, cell_h, _ = _sample_grid(bounds, resolution)
    if cell_w <= 0 or cell_h <= 0:
        return result
    inside = region.contains_points(points)
    total = int(inside.sum())
    if total == 0:
        return result

    samples = points[inside]
    exposed_top = ~_covered_by_all(samples, above)
    exposed_bottom = ~_covered_by_all(samples, below)
    exposed = exposed_top | exposed_bottom
    result.exposed_fraction = float(exposed.sum()) / total

    if result.exposed_fraction < tolerances.exposure_min_fraction:
        return result

    exposed_points = samples[exposed]
    top_mask = exposed_top[exposed]
    bottom_mask = exposed_bottom[exposed]
    half_w = cell_w / 2.0
    half_h = cell_h / 2.0
    cells = [
        [(x - half_w, y - half_h), (x + half_w, y - half_h),
         (x + half_w, y + half_h), (x - half_w, y + half_h)]
        for x, y in exposed_points
    ]
    patches = clip_to_region(cells, region, tolerances.epsilon)
    result.exposed_areas = [
        ExposedArea(
            region=patch,
            sides=_patch_sides(patch, exposed_points, top_mask, bottom_mask),
            area=patch.area(),
        )
        for patch in patches
        if patch.area() > tolerances.epsilon
    ]

    logger.debug(
        "exposure_sampled",
        layer_index=layer_index,
        samples=total,
        exposed_fraction=round(result.exposed_fraction, 4),
        patches=len(result.exposed_areas),
    )
    return result


def within_skin_window(layer_index: int, window: int, layer_count: int) -> bool:
    """
    Skin decision used when exposure detection is disabled.

    True for the bottom ``window`` and top ``window`` layers of the model.
    """
    window = max(1, window)
    return layer_index < window or layer_index + window >= layer_count
