"""
Tests for cross-layer exposure analysis.
"""

import pytest

from stratapath.core.geometry import Path, Point2D
from stratapath.slicing.containment import Region
from stratapath.slicing.exposure import (
    ExposureSide,
    LayerSnapshot,
    calculate_exposed_areas,
    within_skin_window,
)


@pytest.fixture
def prism(square):
    """Ten layers of the same 10 mm square."""
    region = Region(outline=square(10.0))
    return region, LayerSnapshot.from_layers([[region]] * 10)


@pytest.mark.unit
@pytest.mark.slicing
class TestTerminalLayers:
    """The top and bottom k layers are fully exposed on their open side."""

    def test_bottom_layer_fully_exposed(self, prism):
        region, snapshot = prism
        result = calculate_exposed_areas(region, 0, 2, snapshot)
        assert result.fully_exposed_bottom
        assert not result.fully_exposed_top
        assert result.exposed_fraction == 1.0
        assert len(result.exposed_areas) == 1
        assert result.exposed_areas[0].area == pytest.approx(region.area())
        assert result.exposed_areas[0].sides == (ExposureSide.BOTTOM,)

    def test_top_layer_fully_exposed(self, prism):
        region, snapshot = prism
        result = calculate_exposed_areas(region, 9, 2, snapshot)
        assert result.fully_exposed_top
        assert result.exposed_areas[0].area == pytest.approx(100.0)
        assert result.exposed_areas[0].sides == (ExposureSide.TOP,)

    def test_within_window_of_top(self, prism):
        region, snapshot = prism
        assert calculate_exposed_areas(region, 8, 2, snapshot).fully_exposed_top
        assert not calculate_exposed_areas(region, 7, 2, snapshot).fully_exposed_top

    def test_single_layer_both_sides(self, square):
        region = Region(outline=square(10.0))
        result = calculate_exposed_areas(region, 0, 1, LayerSnapshot.from_layers([[region]]))
        assert result.exposed_areas[0].sides == (ExposureSide.TOP, ExposureSide.BOTTOM)


@pytest.mark.unit
@pytest.mark.slicing
class TestSampledExposure:
    """Tests for layers with a full neighbour window."""

    def test_covered_middle_layer(self, prism):
        region, snapshot = prism
        result = calculate_exposed_areas(region, 5, 2, snapshot)
        assert not result.needs_skin
        assert result.exposed_fraction == 0.0
        assert len(result.covering_regions_above) == 2
        assert len(result.covering_regions_below) == 2

    def test_overhang_exposed_below(self, square):
        small = Region(outline=square(10.0))
        large = Region(outline=square(20.0))
        snapshot = LayerSnapshot.from_layers([[small]] * 6 + [[large]] * 4)

        result = calculate_exposed_areas(large, 6, 2, snapshot)

        assert result.needs_skin
        assert result.exposed_fraction == pytest.approx(0.75, abs=0.03)
        assert all(area.sides == (ExposureSide.BOTTOM,) for area in result.exposed_areas)
        total = sum(area.area for area in result.exposed_areas)
        assert total == pytest.approx(300.0, abs=10.0)

    def test_hole_above_exposes_top(self, square):
        solid = Region(outline=square(20.0))
        holed = Region(outline=square(20.0), holes=(square(6.0, 7.0, 7.0).reversed(),))
        layers = [[solid]] * 5 + [[holed]] * 2 + [[solid]] * 3
        snapshot = LayerSnapshot.from_layers(layers)

        result = calculate_exposed_areas(solid, 4, 2, snapshot)

        assert len(result.exposed_areas) == 1
        patch = result.exposed_areas[0]
        assert patch.sides == (ExposureSide.TOP,)
        assert patch.area == pytest.approx(36.0, abs=5.0)
        assert patch.region.contains((10.0, 10.0))

    def test_neighbour_on_one_layer_only_is_not_enough(self, square):
        """Coverage requires every layer of the window, not just one."""
        small = Region(outline=square(10.0))
        large = Region(outline=square(20.0))
        snapshot = LayerSnapshot.from_layers([[large]] * 5 + [[small]] + [[large]] * 4)

        result = calculate_exposed_areas(large, 4, 2, snapshot)
        assert result.needs_skin
        assert result.exposed_areas[0].sides == (ExposureSide.TOP,)

    def test_sides_tracked_per_patch(self, square):
        """A patch open only below is not tagged TOP by another patch open above."""

        def strip(x0, x1):
            points = (Point2D(x0, 0.0), Point2D(x1, 0.0), Point2D(x1, 20.0), Point2D(x0, 20.0))
            return Region(outline=Path(points=points, closed=True))

        full = Region(outline=square(20.0))
        # Layer 1 leaves x 15..20 uncovered below, layer 3 leaves x 0..5 uncovered above.
        snapshot = LayerSnapshot.from_layers(
            [[full], [strip(0.0, 15.0)], [full], [strip(5.0, 20.0)], [full]]
        )

        result = calculate_exposed_areas(full, 2, 1, snapshot)

        assert len(result.exposed_areas) == 2
        by_side = {area.sides: area for area in result.exposed_areas}
        assert set(by_side) == {(ExposureSide.TOP,), (ExposureSide.BOTTOM,)}
        assert by_side[(ExposureSide.TOP,)].region.contains((2.0, 10.0))
        assert by_side[(ExposureSide.BOTTOM,)].region.contains((18.0, 10.0))

    def test_noise_floor(self, square):
        """A sliver below the minimum exposed fraction needs no skin."""
        base = Region(outline=square(20.0))
        nearly = Region(outline=square(19.9))
        snapshot = LayerSnapshot.from_layers([[base]] * 3 + [[nearly]] * 2 + [[base]] * 3)

        result = calculate_exposed_areas(base, 2, 2, snapshot)
        assert not result.needs_skin


@pytest.mark.unit
class TestSkinWindowFallback:
    """Tests for within_skin_window (exposure detection disabled)."""

    def test_window_edges(self):
        assert within_skin_window(0, 2, 10)
        assert within_skin_window(1, 2, 10)
        assert not within_skin_window(2, 2, 10)
        assert not within_skin_window(7, 2, 10)
        assert within_skin_window(8, 2, 10)
        assert within_skin_window(9, 2, 10)
