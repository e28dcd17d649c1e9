"""
Core module - Configuration, exceptions, logging and planar geometry.
"""

from stratapath.core.config import (
    AdhesionConfig,
    ConfigManager,
    SlicerConfig,
    Tolerances,
    load_profile,
)
from stratapath.core.exceptions import (
    StratapathError,
    ConfigurationError,
    SlicingError,
)
from stratapath.core.geometry import Path, Point2D, Segment
from stratapath.core.logging import configure_logging, get_logger

__all__ = [
    # Config
    "AdhesionConfig",
    "ConfigManager",
    "SlicerConfig",
    "Tolerances",
    "load_profile",
    # Exceptions
    "StratapathError",
    "ConfigurationError",
    "SlicingError",
    # Geometry
    "Path",
    "Point2D",
    "Segment",
    # Logging
    "configure_logging",
    "get_logger",
]
