"""
Slicing module - From segment soup to annotated per-layer toolpaths.

Pipeline stages, leaves first:
- path_assembly:   chain unordered segments into closed/open paths
- containment:     tag solids and holes, group them into Regions
- contour_offset:  shell walls and skin/infill boundaries
- exposure:        which solid areas need top/bottom skin
- infill_patterns: line families clipped against Regions
- emission:        travel/extrude moves with filament accounting

Plus adhesion (skirt, brim, raft), the trimesh mesh source and the
two-pass PlanarSlicer that ties them together.
"""

from stratapath.slicing.planar_slicer import LayerSlice, PlanarSlicer, SliceResult
from stratapath.slicing.path_assembly import AssemblyResult, connect_segments_to_paths
from stratapath.slicing.containment import ClassifiedPath, Region, build_regions, classify_paths
from stratapath.slicing.contour_offset import (
    build_region_shell,
    compute_inner_walls,
    get_infill_boundary,
    offset_polygon,
)
from stratapath.slicing.exposure import (
    ExposedArea,
    ExposureResult,
    ExposureSide,
    LayerSnapshot,
    calculate_exposed_areas,
)
from stratapath.slicing.infill_patterns import LinePattern, clip_line_to_region, generate_infill
from stratapath.slicing.emission import EmitterState, PrinterState, ToolpathEmitter
from stratapath.slicing.toolpath import LayerToolpath, MoveKind, PathRole, RolePath, ToolpathMove
from stratapath.slicing.adhesion import generate_adhesion
from stratapath.slicing.diagnostics import LayerDiagnostics
from stratapath.slicing.mesh_source import LayerInput, layer_inputs_from_mesh

__all__ = [
    # Pipeline
    "PlanarSlicer",
    "SliceResult",
    "LayerSlice",
    "LayerInput",
    "layer_inputs_from_mesh",
    "LayerDiagnostics",
    # Stages
    "AssemblyResult",
    "connect_segments_to_paths",
    "ClassifiedPath",
    "Region",
    "classify_paths",
    "build_regions",
    "offset_polygon",
    "compute_inner_walls",
    "get_infill_boundary",
    "build_region_shell",
    "ExposedArea",
    "ExposureResult",
    "ExposureSide",
    "LayerSnapshot",
    "calculate_exposed_areas",
    "LinePattern",
    "clip_line_to_region",
    "generate_infill",
    "generate_adhesion",
    # Emission
    "EmitterState",
    "PrinterState",
    "ToolpathEmitter",
    "LayerToolpath",
    "MoveKind",
    "PathRole",
    "RolePath",
    "ToolpathMove",
]
