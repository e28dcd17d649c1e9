"""
Planar slicing pipeline: per-layer segment soup to annotated toolpaths.

Two passes over the layers:

1. Assembly and classification. Each layer's segments are chained into
   paths, tagged solid/hole and grouped into Regions. This is a pure
   function of the layer's own segments.
2. Toolpath planning and emission. The pass-1 Regions of all layers are
   frozen into a :class:`LayerSnapshot`, then each layer builds shell walls,
   asks the exposure analyzer which areas need skin, fills the rest with
   sparse infill, adds first-layer adhesion, and hands everything to the
   single :class:`ToolpathEmitter` of the run.

Integrates with:
- path_assembly  -- segment chaining
- containment    -- hole/solid classification
- contour_offset -- shell walls and fill boundaries
- exposure       -- top/bottom skin detection
- infill_patterns -- skin and sparse infill lines
- adhesion       -- skirt, brim, raft
- emission       -- moves and filament accounting
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from stratapath.core.config import InfillCentering, SlicerConfig
from stratapath.core.geometry import Point2D
from stratapath.core.logging import bind_layer_context, clear_layer_context, get_logger
from stratapath.slicing.adhesion import generate_adhesion
from stratapath.slicing.clipper_ops import intersect_regions, subtract_regions
from stratapath.slicing.containment import ClassifiedPath, Region, build_regions, classify_paths
from stratapath.slicing.contour_offset import RegionShell, build_region_shell
from stratapath.slicing.diagnostics import LayerDiagnostics, summarize
from stratapath.slicing.emission import EmissionTotals, ToolpathEmitter
from stratapath.slicing.exposure import LayerSnapshot, calculate_exposed_areas, within_skin_window
from stratapath.slicing.infill_patterns import LinePattern, generate_infill, generate_skin
from stratapath.slicing.mesh_source import LayerInput, layer_inputs_from_mesh
from stratapath.slicing.path_assembly import connect_segments_to_paths
from stratapath.slicing.toolpath import LayerToolpath, PathRole, RolePath

logger = get_logger(__name__)


@dataclass(frozen=True)
class LayerSlice:
    """
    Pass-1 result for one layer.

    Attributes:
        index: Layer index.
        z: Print height (mm).
        classified: Assembled paths with nesting depth.
        regions: Solid outlines with their direct holes.
    """

    index: int
    z: float
    classified: Tuple[ClassifiedPath, ...]
    regions: Tuple[Region, ...]


@dataclass
class SliceResult:
    """Toolpaths, diagnostics and run totals of one slicing run."""

    layers: List[LayerToolpath] = field(default_factory=list)
    diagnostics: List[LayerDiagnostics] = field(default_factory=list)
    totals: EmissionTotals = field(default_factory=EmissionTotals)

    @property
    def layer_count(self) -> int:
        return len(self.layers)

    @property
    def total_extrusion(self) -> float:
        return self.totals.extrusion

    def summary(self) -> Dict[str, Any]:
        """Run totals plus summed diagnostic counters."""
        data: Dict[str, Any] = {
            "layers": self.layer_count,
            "moves": self.totals.move_count,
            "extrusion_mm": round(self.totals.extrusion, 4),
            "extruded_length_mm": round(self.totals.extruded_length, 4),
            "retractions": self.totals.retraction_count,
        }
        data.update(summarize(self.diagnostics))
        return data


class PlanarSlicer:
    """
    Layer pipeline from segment soup to annotated toolpaths.

    Example:
        >>> slicer = PlanarSlicer(SlicerConfig(layer_height=0.2))
        >>> result = slicer.slice_mesh(trimesh.creation.box((10, 10, 2)))
        >>> result.layers[0].moves[:3]
    """

    def __init__(self, config: Optional[SlicerConfig] = None):
        self.config = config or SlicerConfig()

    def slice_mesh(
        self,
        mesh: Any,
        start_height: Optional[float] = None,
        end_height: Optional[float] = None,
    ) -> SliceResult:
        """Section a trimesh/COMPAS mesh and slice the resulting layers."""
        layers = layer_inputs_from_mesh(
            mesh, self.config.layer_height, start_height=start_height, end_height=end_height
        )
        return self.slice(layers)

    def slice(self, layers: Sequence[LayerInput]) -> SliceResult:
        """
        Run both passes over the given layers (bottom first).

        Args:
            layers: Per-layer segment soups.

        Returns:
            SliceResult with one LayerToolpath and one LayerDiagnostics per layer.
        """
        cfg = self.config
        logger.info(
            "slicing_started",
            layers=len(layers),
            walls=cfg.wall_count,
            skin_layers=cfg.skin_layer_count,
            infill=cfg.infill_pattern.value,
            density=cfg.effective_infill_density,
        )

        # Pass 1
        slices: List[LayerSlice] = []
        diagnostics: List[LayerDiagnostics] = []
        for layer in layers:
            layer_slice, diag = self.assemble_layer(layer)
            slices.append(layer_slice)
            diagnostics.append(diag)

        snapshot = LayerSnapshot.from_layers([s.regions for s in slices])
        anchor = self._infill_anchor(slices)

        # Pass 2
        emitter = ToolpathEmitter(cfg)
        result = SliceResult(diagnostics=diagnostics)
        for layer_slice, diag in zip(slices, diagnostics):
            bind_layer_context(layer_slice.index, layer_slice.z)
            try:
                role_paths = self.plan_layer(layer_slice, snapshot, anchor, diag)
                toolpath = emitter.emit_layer(layer_slice.index, layer_slice.z, role_paths)
                diag.skipped_paths = emitter.skipped_in_layer
                result.layers.append(toolpath)
                logger.debug(
                    "layer_sliced",
                    regions=diag.region_count,
                    holes=diag.hole_count,
                    paths=len(role_paths),
                    moves=len(toolpath.moves),
                )
            finally:
                clear_layer_context()

        result.totals = emitter.finish()
        logger.info("slicing_finished", **result.summary())
        return result

    # ------------------------------------------------------------------
    # Pass 1
    # ------------------------------------------------------------------

    def assemble_layer(self, layer: LayerInput) -> Tuple[LayerSlice, LayerDiagnostics]:
        """Chain, classify and group one layer's segments."""
        eps = self.config.tolerances.epsilon
        assembly = connect_segments_to_paths(layer.segments, epsilon=eps)
        classified = classify_paths(assembly.paths)
        regions = build_regions(classified)

        diag = LayerDiagnostics(
            layer_index=layer.index,
            z=layer.z,
            segment_count=assembly.segment_count,
            path_count=len(assembly.paths),
            open_path_count=len(assembly.open_paths),
            hole_count=sum(1 for c in classified if c.hole),
            region_count=len(regions),
            branch_points=assembly.branch_points,
            degenerate_segments=assembly.degenerate_segments,
        )
        if diag.open_path_count:
            logger.warning(
                "open_paths_in_layer",
                layer_index=layer.index,
                open_paths=diag.open_path_count,
            )
        layer_slice = LayerSlice(
            index=layer.index,
            z=layer.z,
            classified=tuple(classified),
            regions=tuple(regions),
        )
        return layer_slice, diag

    def _infill_anchor(self, slices: Sequence[LayerSlice]) -> Point2D:
        if self.config.infill_centering == InfillCentering.GLOBAL:
            return Point2D(0.0, 0.0)
        boxes = [r.bounds() for s in slices for r in s.regions]
        boxes = [b for b in boxes if b is not None]
        if not boxes:
            return Point2D(0.0, 0.0)
        min_x = min(b[0] for b in boxes)
        min_y = min(b[1] for b in boxes)
        max_x = max(b[2] for b in boxes)
        max_y = max(b[3] for b in boxes)
        return Point2D((min_x + max_x) / 2.0, (min_y + max_y) / 2.0)

    # ------------------------------------------------------------------
    # Pass 2
    # ------------------------------------------------------------------

    def plan_layer(
        self,
        layer_slice: LayerSlice,
        snapshot: LayerSnapshot,
        anchor: Point2D,
        diag: LayerDiagnostics,
    ) -> List[RolePath]:
        """Role-tagged paths for one layer, in no particular order."""
        cfg = self.config
        paths: List[RolePath] = []

        if layer_slice.index == 0:
            for path in generate_adhesion(
                layer_slice.regions, cfg.adhesion, cfg.bead_width, cfg.tolerances
            ):
                paths.append(RolePath(path, PathRole.ADHESION))

        for region in layer_slice.regions:
            shell = build_region_shell(
                region,
                cfg.wall_count,
                cfg.bead_width,
                overlap=cfg.infill_overlap,
                tolerances=cfg.tolerances,
            )
            diag.collapsed_offsets += shell.collapsed
            paths.extend(self._wall_paths(shell))
            if not shell.inner_regions:
                continue

            exposed = self._exposed_regions(region, layer_slice.index, snapshot, diag)
            for inner in shell.inner_regions:
                skin_regions = self._skin_regions(inner, exposed)
                for skin in skin_regions:
                    for path in generate_skin(skin, cfg.bead_width, layer_slice.index,
                                              anchor, cfg.tolerances):
                        paths.append(RolePath(path, PathRole.SKIN))

                for sparse in self._sparse_regions(inner, skin_regions):
                    paths.extend(self._infill_paths(sparse, layer_slice.index, anchor))

        return paths

    def _wall_paths(self, shell: RegionShell) -> List[RolePath]:
        paths: List[RolePath] = []
        for walls in [shell.outline_walls, *shell.hole_walls]:
            for level, wall in enumerate(walls):
                role = PathRole.PERIMETER_OUTER if level == 0 else PathRole.PERIMETER_INNER
                paths.append(RolePath(wall, role))
        return paths

    def _exposed_regions(
        self,
        region: Region,
        layer_index: int,
        snapshot: LayerSnapshot,
        diag: LayerDiagnostics,
    ) -> Optional[List[Region]]:
        """Exposed patches of a Region; None when the whole Region is exposed."""
        cfg = self.config
        window = cfg.skin_layer_count
        if not cfg.exposure_detection:
            return None if within_skin_window(layer_index, window, len(snapshot)) else []

        exposure = calculate_exposed_areas(
            region,
            layer_index,
            window,
            snapshot,
            resolution=cfg.exposure_resolution,
            tolerances=cfg.tolerances,
        )
        diag.exposed_area_count += len(exposure.exposed_areas)
        if exposure.fully_exposed:
            return None
        return [area.region for area in exposure.exposed_areas]

    def _skin_regions(self, inner: Region, exposed: Optional[List[Region]]) -> List[Region]:
        if exposed is None:
            return [inner]
        if not exposed:
            return []
        return intersect_regions(exposed, inner, self.config.tolerances.epsilon)

    def _sparse_regions(self, inner: Region, skin_regions: Sequence[Region]) -> List[Region]:
        if not skin_regions:
            return [inner]
        if len(skin_regions) == 1 and skin_regions[0] is inner:
            return []
        return subtract_regions(inner, skin_regions, self.config.tolerances.epsilon)

    def _infill_paths(self, region: Region, layer_index: int, anchor: Point2D) -> List[RolePath]:
        cfg = self.config
        spacing = cfg.infill_spacing
        if spacing is None:
            return []
        if cfg.effective_infill_density >= 1.0:
            # Solid infill is printed like skin.
            return [
                RolePath(path, PathRole.INFILL)
                for path in generate_skin(region, cfg.bead_width, layer_index, anchor, cfg.tolerances)
            ]
        pattern = LinePattern(
            angle=cfg.infill_angle,
            spacing=spacing,
            family=cfg.infill_pattern,
            layer_height=cfg.layer_height,
        )
        return [
            RolePath(path, PathRole.INFILL)
            for path in generate_infill(region, pattern, layer_index, anchor, cfg.tolerances)
        ]
