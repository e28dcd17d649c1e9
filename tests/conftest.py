"""
Pytest configuration and shared fixtures.
"""

import math
import tempfile
from pathlib import Path as FsPath

import pytest

from stratapath.core.config import SlicerConfig
from stratapath.core.geometry import Path, Point2D, Segment
from stratapath.slicing.containment import Region


def _square_points(size=10.0, x0=0.0, y0=0.0):
    """CCW axis-aligned square with its lower-left corner at (x0, y0)."""
    return [
        Point2D(x0, y0),
        Point2D(x0 + size, y0),
        Point2D(x0 + size, y0 + size),
        Point2D(x0, y0 + size),
    ]


def _circle_points(radius=5.0, segments=32, cx=0.0, cy=0.0):
    """CCW regular polygon inscribed in a circle."""
    return [
        Point2D(
            cx + radius * math.cos(2.0 * math.pi * i / segments),
            cy + radius * math.sin(2.0 * math.pi * i / segments),
        )
        for i in range(segments)
    ]


def _polygon_segments(points):
    """Closing segment soup for a polygon, in traversal order."""
    n = len(points)
    return [Segment(points[i], points[(i + 1) % n]) for i in range(n)]


@pytest.fixture
def temp_dir():
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield FsPath(tmpdir)


@pytest.fixture
def sample_config_dir(temp_dir):
    """Create a sample configuration directory with one slicer profile."""
    config_dir = temp_dir / "config"
    (config_dir / "profiles").mkdir(parents=True)

    profile = """
slicer:
  layer_height: 0.3
  nozzle_diameter: 0.6
  infill_density: 0.15
  infill_pattern: triangles
  fan_speed: 80

adhesion:
  enabled: true
  type: brim
  line_count: 5

tolerances:
  epsilon: 0.0005
"""
    (config_dir / "profiles" / "petg_0.3mm.yaml").write_text(profile)
    return config_dir


@pytest.fixture
def default_config():
    """Default slicer configuration."""
    return SlicerConfig()


@pytest.fixture
def square():
    """Factory for closed square paths."""
    def _make(size=10.0, x0=0.0, y0=0.0):
        return Path(points=tuple(_square_points(size, x0, y0)), closed=True)
    return _make


@pytest.fixture
def circle():
    """Factory for closed regular-polygon paths."""
    def _make(radius=5.0, segments=32, cx=0.0, cy=0.0):
        return Path(points=tuple(_circle_points(radius, segments, cx, cy)), closed=True)
    return _make


@pytest.fixture
def annulus():
    """Square 20 mm region with a centred 6 mm square hole."""
    outline = Path(points=tuple(_square_points(20.0)), closed=True)
    hole = Path(points=tuple(reversed(_square_points(6.0, 7.0, 7.0))), closed=True)
    return Region(outline=outline, holes=(hole,))


@pytest.fixture
def near_edge_hole():
    """Square 20 mm region with a hole whose left edge is 1 mm from the outline."""
    outline = Path(points=tuple(_square_points(20.0)), closed=True)
    hole = Path(
        points=(Point2D(1.0, 5.0), Point2D(1.0, 15.0), Point2D(10.0, 15.0), Point2D(10.0, 5.0)),
        closed=True,
    )
    return Region(outline=outline, holes=(hole,))


@pytest.fixture
def segments_of():
    """Factory turning a point list (or closed Path) into closing segments."""
    def _make(shape):
        points = shape.points if isinstance(shape, Path) else list(shape)
        return _polygon_segments(points)
    return _make


@pytest.fixture
def stacked_squares(segments_of):
    """Factory for a prism of square layers as LayerInputs."""
    from stratapath.slicing.mesh_source import LayerInput

    def _make(layers=6, size=10.0, layer_height=0.2):
        segs = tuple(segments_of(_square_points(size)))
        return [
            LayerInput(index=i, z=round((i + 1) * layer_height, 6), segments=segs)
            for i in range(layers)
        ]
    return _make
