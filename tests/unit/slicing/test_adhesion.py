"""
Tests for skirt, brim and raft generation.
"""

import math

import pytest

from stratapath.core.config import AdhesionConfig, AdhesionType, SkirtType, Tolerances
from stratapath.slicing.adhesion import circle_path, generate_adhesion
from stratapath.slicing.containment import Region

TOL = Tolerances()


@pytest.fixture
def block(square):
    return [Region(outline=square(10.0))]


@pytest.mark.unit
@pytest.mark.slicing
class TestAdhesion:
    """Tests for generate_adhesion."""

    def test_disabled(self, block):
        assert generate_adhesion(block, AdhesionConfig(enabled=False), 0.4, TOL) == []

    def test_no_regions(self):
        assert generate_adhesion([], AdhesionConfig(enabled=True), 0.4, TOL) == []

    def test_shape_skirt(self, block):
        config = AdhesionConfig(enabled=True, type=AdhesionType.SKIRT,
                                skirt_type=SkirtType.SHAPE, distance=5.0, line_count=2)
        loops = generate_adhesion(block, config, 0.4, TOL)
        assert len(loops) == 2
        assert all(loop.closed for loop in loops)
        assert loops[0].bounds() == pytest.approx((-5.0, -5.0, 15.0, 15.0), abs=0.01)
        assert loops[1].bounds() == pytest.approx((-5.4, -5.4, 15.4, 15.4), abs=0.01)

    def test_circular_skirt(self, block):
        config = AdhesionConfig(enabled=True, skirt_type=SkirtType.CIRCULAR,
                                distance=5.0, line_count=3)
        loops = generate_adhesion(block, config, 0.4, TOL)
        assert len(loops) == 3
        expected = math.hypot(5.0, 5.0) + 5.0
        for point in loops[0].points:
            assert math.hypot(point.x - 5.0, point.y - 5.0) == pytest.approx(expected)

    def test_brim_touches_part(self, block):
        config = AdhesionConfig(enabled=True, type=AdhesionType.BRIM, line_count=3)
        loops = generate_adhesion(block, config, 0.4, TOL)
        assert len(loops) == 3
        assert loops[0].bounds() == pytest.approx((-0.2, -0.2, 10.2, 10.2), abs=0.01)
        assert loops[2].bounds() == pytest.approx((-1.0, -1.0, 11.0, 11.0), abs=0.01)

    def test_skirt_merges_nearby_islands(self, square):
        regions = [Region(outline=square(10.0)), Region(outline=square(10.0, 11.0, 0.0))]
        config = AdhesionConfig(enabled=True, distance=5.0, line_count=1)
        loops = generate_adhesion(regions, config, 0.4, TOL)
        assert len(loops) == 1

    def test_brim_per_island(self, square):
        regions = [Region(outline=square(10.0)), Region(outline=square(10.0, 50.0, 0.0))]
        config = AdhesionConfig(enabled=True, type=AdhesionType.BRIM, line_count=2)
        loops = generate_adhesion(regions, config, 0.4, TOL)
        assert len(loops) == 4

    def test_raft(self, block):
        config = AdhesionConfig(enabled=True, type=AdhesionType.RAFT, raft_margin=3.0)
        paths = generate_adhesion(block, config, 0.4, TOL)
        border = [p for p in paths if p.closed]
        lines = [p for p in paths if not p.closed]
        assert len(border) == 1
        assert border[0].bounds() == pytest.approx((-3.0, -3.0, 13.0, 13.0), abs=0.01)
        assert len(lines) == pytest.approx(16.0 / 0.4, abs=2)


@pytest.mark.unit
def test_circle_path():
    path = circle_path((0.0, 0.0), 2.0, segments=16)
    assert path.closed
    assert len(path) == 16
    assert path.signed_area() > 0
