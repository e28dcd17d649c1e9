"""
Stratapath - Layer toolpath engine for fused-filament printing.

Turns per-layer cross-section segments of a mesh into annotated travel and
extrusion moves: shell walls, top/bottom skin, sparse infill and first-layer
adhesion, with consistent filament accounting.
"""

__version__ = "0.1.0"
__author__ = "Stratapath Contributors"

from stratapath.core.config import ConfigManager, SlicerConfig
from stratapath.slicing.planar_slicer import PlanarSlicer, SliceResult

__all__ = [
    "__version__",
    "ConfigManager",
    "SlicerConfig",
    "PlanarSlicer",
    "SliceResult",
]
