"""
Mesh source adapter: per-layer segment soup from a triangle mesh.

The plane/triangle intersection itself is delegated to trimesh
(``trimesh.intersections.mesh_multiplane``, one call for all layers);
this module only chooses the slice heights and converts the 3D line segments into layer-local 2D Segments.
COMPAS meshes are converted to trimesh first.
"""

import math
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

import numpy as np
import trimesh
from compas.datastructures import Mesh as CompasMesh

from stratapath.core.exceptions import SlicingError
from stratapath.core.geometry import Point2D, Segment
from stratapath.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class LayerInput:
    """
    Unordered cross-section segments of one layer.

    Attributes:
        index: Layer index, 0 at the bottom.
        z: Print height of the layer (top of the bead).
        segments: Segment soup in the layer plane.
    """

    index: int
    z: float
    segments: Tuple[Segment, ...]


def to_trimesh(mesh: Any) -> trimesh.Trimesh:
    """
    Accept a trimesh or COMPAS mesh.

    Raises:
        SlicingError: If ``mesh`` is not a triangle mesh.
    """
    if isinstance(mesh, trimesh.Trimesh):
        return mesh
    if isinstance(mesh, CompasMesh):
        vertices, faces = mesh.to_vertices_and_faces()
        return trimesh.Trimesh(vertices=vertices, faces=faces, process=False)
    raise SlicingError(
        "Mesh source expects a trimesh.Trimesh or compas Mesh",
        details={"type": type(mesh).__name__},
    )


def slice_heights(
    z_min: float,
    z_max: float,
    layer_height: float,
) -> List[Tuple[float, float]]:
    """``(print_z, cut_z)`` per layer; cuts are taken at mid-layer."""
    if layer_height <= 0:
        raise SlicingError("Layer height must be positive", details={"layer_height": layer_height})
    count = int(math.ceil((z_max - z_min) / layer_height - 1e-9))
    return [
        (z_min + (i + 1) * layer_height, z_min + (i + 0.5) * layer_height)
        for i in range(max(0, count))
    ]


def _segments_from_section(lines: Any, transform: np.ndarray) -> Tuple[Segment, ...]:
    """Plane-local 2D section lines back to world XY Segments."""
    flat = np.asarray(lines, dtype=float).reshape(-1, 2)
    if len(flat) == 0:
        return ()
    planar = np.column_stack([flat, np.zeros(len(flat))])
    world = trimesh.transformations.transform_points(planar, transform).reshape(-1, 2, 3)
    return tuple(
        Segment(Point2D(float(a[0]), float(a[1])), Point2D(float(b[0]), float(b[1])))
        for a, b in world
    )


def layer_inputs_from_mesh(
    mesh: Any,
    layer_height: float,
    start_height: Optional[float] = None,
    end_height: Optional[float] = None,
) -> List[LayerInput]:
    """
    Cut a mesh into per-layer segment soups.

    Args:
        mesh: trimesh or COMPAS triangle mesh.
        layer_height: Layer thickness (mm).
        start_height: Bottom of the sliced range (default: mesh min Z).
        end_height: Top of the sliced range (default: mesh max Z).

    Returns:
        One LayerInput per layer, bottom first. Layers that miss the mesh
        carry an empty segment tuple.
    """
    tmesh = to_trimesh(mesh)
    bounds = tmesh.bounds
    z_min = float(bounds[0][2]) if start_height is None else start_height
    z_max = float(bounds[1][2]) if end_height is None else end_height

    heights = slice_heights(z_min, z_max, layer_height)
    sections: List[Tuple[np.ndarray, np.ndarray]] = []
    if heights:
        lines_2d, to_3d, _ = trimesh.intersections.mesh_multiplane(
            tmesh,
            plane_origin=[0.0, 0.0, 0.0],
            plane_normal=[0.0, 0.0, 1.0],
            heights=[cut_z for _, cut_z in heights],
        )
        sections = list(zip(lines_2d, to_3d))

    layers: List[LayerInput] = []
    for index, ((print_z, _), (lines, transform)) in enumerate(zip(heights, sections)):
        segments = _segments_from_section(lines, transform)
        layers.append(LayerInput(index=index, z=print_z, segments=segments))

    logger.info(
        "mesh_sectioned",
        layers=len(layers),
        layer_height=layer_height,
        z_min=round(z_min, 4),
        z_max=round(z_max, 4),
    )
    return layers
