"""
End-to-end tests for the two-pass PlanarSlicer.
"""

import pytest
import trimesh

from stratapath.core.config import AdhesionConfig, InfillCentering, InfillFamily, SlicerConfig
from stratapath.core.geometry import Point2D, Segment
from stratapath.slicing.mesh_source import LayerInput
from stratapath.slicing.planar_slicer import PlanarSlicer
from stratapath.slicing.toolpath import MoveKind, PathRole


def _roles(layer):
    return {m.role for m in layer.moves if m.kind == MoveKind.EXTRUDE}


@pytest.mark.unit
@pytest.mark.slicing
class TestPlanarSlicerDefaults:
    """Verify constructor defaults."""

    def test_default_config(self):
        slicer = PlanarSlicer()
        assert slicer.config == SlicerConfig()

    def test_custom_config(self):
        config = SlicerConfig(layer_height=0.3)
        assert PlanarSlicer(config).config is config


@pytest.mark.unit
@pytest.mark.slicing
class TestPrism:
    """Slicing a stack of identical squares."""

    @pytest.fixture
    def result(self, stacked_squares):
        return PlanarSlicer(SlicerConfig()).slice(stacked_squares(layers=10))

    def test_one_toolpath_per_layer(self, result):
        assert result.layer_count == 10
        assert len(result.diagnostics) == 10
        assert [layer.layer_index for layer in result.layers] == list(range(10))

    def test_layer_diagnostics(self, result):
        for diag in result.diagnostics:
            assert diag.segment_count == 4
            assert diag.path_count == 1
            assert diag.region_count == 1
            assert diag.hole_count == 0
            assert not diag.has_anomalies

    def test_walls_on_every_layer(self, result):
        for layer in result.layers:
            roles = _roles(layer)
            assert PathRole.PERIMETER_OUTER in roles
            assert PathRole.PERIMETER_INNER in roles

    def test_bottom_and_top_get_skin(self, result):
        for index in (0, 3, 6, 9):
            roles = _roles(result.layers[index])
            assert PathRole.SKIN in roles
            assert PathRole.INFILL not in roles

    def test_middle_layers_get_infill(self, result):
        for index in (4, 5):
            roles = _roles(result.layers[index])
            assert PathRole.INFILL in roles
            assert PathRole.SKIN not in roles

    def test_walls_before_fill(self, result):
        layer = result.layers[5]
        extrudes = layer.get_moves_by_kind(MoveKind.EXTRUDE)
        first_infill = next(i for i, m in enumerate(extrudes) if m.role == PathRole.INFILL)
        assert all(m.role != PathRole.INFILL for m in extrudes[:first_infill])
        assert all(m.role == PathRole.INFILL for m in extrudes[first_infill:])

    def test_totals_match_layers(self, result):
        assert result.total_extrusion == pytest.approx(
            sum(layer.get_extrusion_total() for layer in result.layers)
        )
        assert result.totals.move_count == sum(len(layer.moves) for layer in result.layers)

    def test_moves_at_layer_height(self, result):
        for layer in result.layers:
            assert all(m.target.z == pytest.approx(layer.z) for m in layer.moves)

    def test_fill_stays_inside_walls(self, result):
        for layer in result.layers:
            for move in layer.moves:
                if move.role in (PathRole.SKIN, PathRole.INFILL) and move.kind == MoveKind.EXTRUDE:
                    assert 0.99 <= move.target.x <= 9.01
                    assert 0.99 <= move.target.y <= 9.01

    def test_summary(self, result):
        summary = result.summary()
        assert summary["layers"] == 10
        assert summary["segment_count"] == 40
        assert summary["extrusion_mm"] > 0


@pytest.mark.unit
@pytest.mark.slicing
class TestSlicerOptions:
    """Configuration-driven behaviour."""

    def test_adhesion_only_on_first_layer(self, stacked_squares):
        config = SlicerConfig(adhesion=AdhesionConfig(enabled=True, line_count=2))
        result = PlanarSlicer(config).slice(stacked_squares(layers=3))
        assert PathRole.ADHESION in _roles(result.layers[0])
        assert all(PathRole.ADHESION not in _roles(layer) for layer in result.layers[1:])

    def test_adhesion_printed_first(self, stacked_squares):
        config = SlicerConfig(adhesion=AdhesionConfig(enabled=True, line_count=1))
        layer = PlanarSlicer(config).slice(stacked_squares(layers=2)).layers[0]
        extrudes = layer.get_moves_by_kind(MoveKind.EXTRUDE)
        assert extrudes[0].role == PathRole.ADHESION

    def test_exposure_detection_disabled(self, stacked_squares):
        config = SlicerConfig(exposure_detection=False)
        result = PlanarSlicer(config).slice(stacked_squares(layers=10))
        assert PathRole.SKIN in _roles(result.layers[0])
        assert PathRole.SKIN in _roles(result.layers[9])
        assert PathRole.INFILL in _roles(result.layers[5])

    def test_zero_density(self, stacked_squares):
        config = SlicerConfig(infill_density=0.0)
        result = PlanarSlicer(config).slice(stacked_squares(layers=10))
        assert PathRole.INFILL not in _roles(result.layers[5])

    def test_global_centering(self, stacked_squares):
        config = SlicerConfig(infill_centering=InfillCentering.GLOBAL)
        result = PlanarSlicer(config).slice(stacked_squares(layers=10))
        assert PathRole.INFILL in _roles(result.layers[5])

    @pytest.mark.parametrize("family", [InfillFamily.CUBIC, InfillFamily.GYROID])
    def test_volumetric_infill_families(self, stacked_squares, family):
        config = SlicerConfig(infill_pattern=family)
        result = PlanarSlicer(config).slice(stacked_squares(layers=10))
        for index in (4, 5):
            moves = [m for m in result.layers[index].moves if m.role == PathRole.INFILL]
            assert any(m.kind == MoveKind.EXTRUDE for m in moves)

    def test_first_layer_fan_off(self, stacked_squares):
        result = PlanarSlicer().slice(stacked_squares(layers=3))
        assert result.layers[0].settings["fan_speed"] == 0.0
        assert result.layers[1].settings["fan_speed"] == 100.0


@pytest.mark.unit
@pytest.mark.slicing
class TestTopologyHandling:
    """Holes, empty layers and broken input."""

    def test_hole_gets_its_own_walls(self, square, segments_of):
        outline = square(20.0)
        hole = square(6.0, 7.0, 7.0)
        segs = tuple(segments_of(outline) + segments_of(hole))
        layers = [LayerInput(index=i, z=0.2 * (i + 1), segments=segs) for i in range(3)]

        result = PlanarSlicer().slice(layers)

        assert result.diagnostics[0].hole_count == 1
        assert result.diagnostics[0].region_count == 1
        outer_moves = result.layers[1].get_moves_by_role(PathRole.PERIMETER_OUTER)
        xs = [m.target.x for m in outer_moves if m.kind == MoveKind.EXTRUDE]
        assert min(xs) == pytest.approx(0.2)
        assert any(x == pytest.approx(6.8) for x in xs)

    def test_empty_layer(self, stacked_squares):
        layers = stacked_squares(layers=3)
        layers[1] = LayerInput(index=1, z=layers[1].z, segments=())
        result = PlanarSlicer().slice(layers)
        assert len(result.layers[1].moves) == 1
        assert result.diagnostics[1].path_count == 0

    def test_open_path_reported(self, square, segments_of):
        segs = tuple(segments_of(square(10.0))[:3])
        result = PlanarSlicer().slice([LayerInput(index=0, z=0.2, segments=segs)])
        diag = result.diagnostics[0]
        assert diag.open_path_count == 1
        assert diag.region_count == 0
        assert diag.has_anomalies

    def test_degenerate_segments_counted(self, stacked_squares):
        layers = stacked_squares(layers=1)
        noisy = layers[0].segments + (Segment(Point2D(3, 3), Point2D(3, 3)),)
        result = PlanarSlicer().slice([LayerInput(index=0, z=0.2, segments=noisy)])
        assert result.diagnostics[0].degenerate_segments == 1

    def test_tiny_island_collapses(self, square, segments_of):
        segs = tuple(segments_of(square(0.5)))
        result = PlanarSlicer().slice([LayerInput(index=0, z=0.2, segments=segs)])
        assert result.diagnostics[0].collapsed_offsets > 0
        assert PathRole.INFILL not in _roles(result.layers[0])


@pytest.mark.unit
@pytest.mark.slicing
class TestSliceMesh:
    """Slicing straight from a trimesh mesh."""

    def test_box(self):
        box = trimesh.creation.box(extents=(10.0, 10.0, 2.0))
        result = PlanarSlicer(SlicerConfig(layer_height=0.25)).slice_mesh(box)
        assert result.layer_count == 8
        assert all(d.region_count == 1 for d in result.diagnostics)
        assert result.total_extrusion > 0
