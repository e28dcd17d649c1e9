"""
Tests for the bisector polygon offset and shell construction.
"""

import math

import pytest
from shapely.geometry import LinearRing

from stratapath.core.config import Tolerances
from stratapath.core.geometry import Path, Point2D
from stratapath.slicing.containment import Region
from stratapath.slicing.contour_offset import (
    build_region_shell,
    compute_inner_walls,
    get_infill_boundary,
    offset_polygon,
)
from stratapath.slicing.infill_patterns import clip_line_to_region


def _radii(path):
    return [math.hypot(p.x, p.y) for p in path.points]


@pytest.mark.unit
@pytest.mark.slicing
class TestOffsetPolygon:
    """Tests for offset_polygon."""

    def test_circle_inward(self, circle):
        result = offset_polygon(circle(5.0, 32), -0.4)
        assert result is not None
        for r in _radii(result):
            assert r == pytest.approx(4.6, abs=0.05)

    def test_repeated_inward_until_empty(self, circle):
        """Area and bbox shrink strictly every step, then the result is empty."""
        current = circle(5.0, 32)
        steps = 0
        while True:
            nxt = offset_polygon(current, -0.4)
            if nxt is None:
                break
            assert abs(nxt.signed_area()) < abs(current.signed_area())
            before, after = current.bounds(), nxt.bounds()
            assert after[2] - after[0] < before[2] - before[0]
            assert after[3] - after[1] < before[3] - before[1]
            current = nxt
            steps += 1
            assert steps < 20
        assert 10 <= steps <= 13

    def test_rectangle_inward_bbox(self):
        rect = Path(points=(Point2D(0, 0), Point2D(20, 0), Point2D(20, 10), Point2D(0, 10)),
                    closed=True)
        result = offset_polygon(rect, -1.0)
        assert result.bounds() == pytest.approx((1.0, 1.0, 19.0, 9.0))

    def test_square_outward_miters(self, square):
        result = offset_polygon(square(10.0), 1.0)
        assert result.bounds() == pytest.approx((-1.0, -1.0, 11.0, 11.0))

    def test_preserves_winding(self, square):
        cw = square(10.0).reversed()
        result = offset_polygon(cw, -1.0)
        assert result.signed_area() < 0
        assert abs(result.signed_area()) == pytest.approx(64.0)

    def test_thin_shape_collapses(self):
        sliver = Path(points=(Point2D(0, 0), Point2D(10, 0), Point2D(10, 0.5), Point2D(0, 0.5)),
                      closed=True)
        assert offset_polygon(sliver, -0.4) is None

    def test_open_path_rejected(self):
        path = Path(points=(Point2D(0, 0), Point2D(1, 0), Point2D(1, 1)), closed=False)
        assert offset_polygon(path, -0.1) is None

    def test_zero_distance_returns_input(self, square):
        path = square(10.0)
        assert offset_polygon(path, 0.0) is path

    def test_sharp_spike_does_not_self_intersect(self):
        """A needle-like notch must be rejected or offset cleanly, never crossed."""
        notch = Path(points=(
            Point2D(0, 0), Point2D(10, 0), Point2D(10, 10),
            Point2D(5.05, 10), Point2D(5, 1), Point2D(4.95, 10), Point2D(0, 10),
        ), closed=True)
        result = offset_polygon(notch, -0.4, Tolerances())
        if result is not None:
            assert LinearRing(result.points).is_simple


@pytest.mark.unit
@pytest.mark.slicing
class TestWalls:
    """Tests for wall and boundary helpers."""

    def test_inner_walls_spacing(self, square):
        walls = compute_inner_walls(square(10.0), 3, 0.4)
        assert len(walls) == 3
        assert walls[0].bounds() == pytest.approx((0.2, 0.2, 9.8, 9.8))
        assert walls[2].bounds() == pytest.approx((1.0, 1.0, 9.0, 9.0))

    def test_inner_walls_stop_when_collapsed(self, square):
        walls = compute_inner_walls(square(1.0), 5, 0.4)
        assert 0 < len(walls) < 5

    def test_hole_walls_grow(self, square):
        hole = square(6.0, 7.0, 7.0).reversed()
        walls = compute_inner_walls(hole, 2, 0.4, outward=True)
        assert walls[1].bounds() == pytest.approx((6.4, 6.4, 13.6, 13.6))

    def test_infill_boundary(self, square):
        boundary = get_infill_boundary(square(10.0), 2, 0.4)
        assert boundary.bounds() == pytest.approx((1.0, 1.0, 9.0, 9.0))

    def test_infill_boundary_with_overlap(self, square):
        boundary = get_infill_boundary(square(10.0), 2, 0.4, overlap=0.1)
        assert boundary.bounds() == pytest.approx((0.9, 0.9, 9.1, 9.1))

    def test_infill_boundary_none_for_small_shape(self, square):
        assert get_infill_boundary(square(1.0), 3, 0.4) is None


@pytest.mark.unit
@pytest.mark.slicing
class TestBuildRegionShell:
    """Tests for build_region_shell."""

    def test_annulus_shell(self, annulus):
        shell = build_region_shell(annulus, 2, 0.4)
        assert len(shell.outline_walls) == 2
        assert len(shell.hole_walls) == 1
        assert len(shell.hole_walls[0]) == 2
        assert len(shell.inner_regions) == 1
        inner = shell.inner_regions[0]
        assert inner.outline.bounds() == pytest.approx((1.0, 1.0, 19.0, 19.0))
        assert len(inner.holes) == 1
        assert inner.holes[0].bounds() == pytest.approx((6.0, 6.0, 14.0, 14.0))
        assert shell.collapsed == 0

    def test_hole_near_outline_cuts_fill_area(self, near_edge_hole):
        """A grown hole that crosses the outline inset opens it into a notch."""
        shell = build_region_shell(near_edge_hole, 1, 0.4)
        assert len(shell.hole_walls) == 1
        assert len(shell.inner_regions) == 1
        inner = shell.inner_regions[0]
        assert inner.holes == ()
        assert not inner.contains(Point2D(5.0, 10.0))
        assert not inner.contains(Point2D(0.5, 10.0))
        assert inner.contains(Point2D(15.0, 10.0))
        assert inner.contains(Point2D(5.0, 2.0))

    def test_fill_lines_skip_hole_near_outline(self, near_edge_hole):
        inner = build_region_shell(near_edge_hole, 1, 0.4).inner_regions[0]
        segments = clip_line_to_region(Point2D(0.0, 10.0), (1.0, 0.0), inner)
        assert len(segments) == 1
        assert segments[0].start.x == pytest.approx(10.6, abs=2e-3)
        assert segments[0].end.x == pytest.approx(19.4, abs=2e-3)

    def test_inner_area_matches_subtraction(self, near_edge_hole):
        inner = build_region_shell(near_edge_hole, 1, 0.4).inner_regions[0]
        # 18.8 mm square minus the part of the grown hole (x 0.4..10.6,
        # y 4.4..15.6) that lies inside it (x 0.6..10.6).
        expected = 18.8 * 18.8 - 10.0 * 11.2
        assert inner.area() == pytest.approx(expected, abs=0.05)

    def test_crowded_hole_leaves_no_fill(self, square):
        region = Region(outline=square(10.0), holes=(square(8.0, 1.0, 1.0).reversed(),))
        shell = build_region_shell(region, 2, 0.4)
        assert shell.outline_walls
        assert shell.inner_regions == []

    def test_tiny_region_counts_collapse(self, square):
        shell = build_region_shell(Region(outline=square(0.5)), 3, 0.4)
        assert shell.inner_regions == []
        assert shell.collapsed > 0
