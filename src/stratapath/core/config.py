"""
Configuration management for Stratapath.

Handles loading, validation, and access to slicer profiles. All tolerance
constants used by the geometry modules live in :class:`Tolerances` so that
no component invents its own epsilon.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from stratapath.core.exceptions import ConfigurationError
from stratapath.core.logging import get_logger

logger = get_logger(__name__)


class InfillFamily(str, Enum):
    """Infill line families."""

    LINES = "lines"  # One set of parallel lines
    GRID = "grid"  # Two perpendicular sets
    TRIANGLES = "triangles"  # Three sets 60 degrees apart
    HEXAGONS = "hexagons"  # Three staggered sets
    CUBIC = "cubic"  # Diagonal sets cycling over three layers
    GYROID = "gyroid"  # Wavy gyroid cross-section, shifting with Z
    CONCENTRIC = "concentric"  # Repeated inward offsets


class InfillCentering(str, Enum):
    """Where infill line offsets are phase-aligned."""

    OBJECT = "object"  # Centre of the region's bounding box
    GLOBAL = "global"  # Build-plate origin


class AdhesionType(str, Enum):
    SKIRT = "skirt"
    BRIM = "brim"
    RAFT = "raft"


class SkirtType(str, Enum):
    CIRCULAR = "circular"
    SHAPE = "shape"


def wall_count_for(thickness: float, width: float, epsilon: float = 1e-3) -> int:
    """Number of shell walls: thickness / width rounded down, minimum 1."""
    if width <= 0:
        return 1
    return max(1, int(math.floor(thickness / width + epsilon)))


def skin_layer_count(skin_thickness: float, layer_height: float) -> int:
    """Skin window k in layers: thickness / layer height rounded, minimum 1."""
    if layer_height <= 0:
        return 1
    return max(1, int(round(skin_thickness / layer_height)))


class Tolerances(BaseModel):
    """Approximate-equality constants for the whole run."""

    epsilon: float = Field(default=1e-3, gt=0)
    offset_min_shrink_fraction: float = Field(default=0.15, gt=0, lt=1)
    max_miter_ratio: float = Field(default=4.0, ge=1)
    exposure_min_fraction: float = Field(default=0.01, ge=0, lt=1)


class AdhesionConfig(BaseModel):
    """First-layer adhesion structure parameters."""

    enabled: bool = False
    type: AdhesionType = AdhesionType.SKIRT
    skirt_type: SkirtType = SkirtType.SHAPE
    distance: float = Field(default=5.0, ge=0)
    line_count: int = Field(default=3, ge=0)
    raft_margin: float = Field(default=3.0, ge=0)


class SlicerConfig(BaseModel):
    """
    Read-only slicing parameters for one run.

    Lengths are millimetres, speeds mm/s, temperatures Celsius, fan 0-100 %.
    Quantities derived from these values (wall count, skin window, infill
    spacing) are clamped to safe minimums instead of failing.
    """

    layer_height: float = Field(default=0.2, gt=0)
    nozzle_diameter: float = Field(default=0.4, gt=0)
    extrusion_width: Optional[float] = Field(default=None, gt=0)
    filament_diameter: float = Field(default=1.75, gt=0)

    shell_wall_thickness: float = Field(default=0.8, ge=0)
    shell_skin_thickness: float = Field(default=0.8, ge=0)

    infill_density: float = Field(default=0.2, ge=0)
    infill_pattern: InfillFamily = InfillFamily.GRID
    infill_angle: float = 45.0
    infill_centering: InfillCentering = InfillCentering.OBJECT
    infill_overlap: float = Field(default=0.0, ge=0)

    exposure_detection: bool = True
    exposure_resolution: int = Field(default=961, ge=4)

    retraction_enabled: bool = True
    retraction_length: float = Field(default=1.0, ge=0)
    retraction_min_travel: float = Field(default=1.5, ge=0)
    retraction_speed: float = Field(default=40.0, gt=0)

    travel_speed: float = Field(default=120.0, gt=0)
    perimeter_speed: float = Field(default=30.0, gt=0)
    infill_speed: float = Field(default=60.0, gt=0)
    skin_speed: float = Field(default=30.0, gt=0)
    first_layer_speed: float = Field(default=20.0, gt=0)

    nozzle_temperature: float = 200.0
    fan_speed: float = Field(default=100.0, ge=0, le=100)

    adhesion: AdhesionConfig = Field(default_factory=AdhesionConfig)
    tolerances: Tolerances = Field(default_factory=Tolerances)

    @model_validator(mode="after")
    def _report_clamped_values(self) -> "SlicerConfig":
        if self.shell_wall_thickness < self.bead_width:
            logger.warning(
                "wall_count_clamped",
                shell_wall_thickness=self.shell_wall_thickness,
                bead_width=self.bead_width,
                wall_count=1,
            )
        if self.infill_density > 1.0:
            logger.warning("infill_density_clamped", requested=self.infill_density, used=1.0)
        return self

    @property
    def bead_width(self) -> float:
        """Extrusion width, defaulting to the nozzle diameter."""
        return self.extrusion_width or self.nozzle_diameter

    @property
    def wall_count(self) -> int:
        return wall_count_for(self.shell_wall_thickness, self.bead_width, self.tolerances.epsilon)

    @property
    def skin_layer_count(self) -> int:
        """Exposure window k."""
        return skin_layer_count(self.shell_skin_thickness, self.layer_height)

    @property
    def effective_infill_density(self) -> float:
        return min(1.0, max(0.0, self.infill_density))

    @property
    def infill_spacing(self) -> Optional[float]:
        """Single-set line spacing, or None when infill is disabled."""
        density = self.effective_infill_density
        if density <= 0.0:
            return None
        return self.bead_width / density

    def speed_mm_per_min(self, speed_mm_per_s: float) -> float:
        return speed_mm_per_s * 60.0


@dataclass
class ConfigManager:
    """
    Loads slicer profiles from YAML files.

    Profiles live in ``<config_dir>/profiles/*.yaml`` with a top-level
    ``slicer:`` mapping; optional ``adhesion:`` and ``tolerances:`` sections
    are merged in.

    Example:
        >>> config = ConfigManager(config_dir=Path("config"))
        >>> profile = config.get_profile("pla_0.2mm")
    """

    config_dir: Path
    _profiles: dict[str, SlicerConfig] = field(default_factory=dict, init=False)
    _loaded: bool = field(default=False, init=False)

    def __post_init__(self) -> None:
        self.config_dir = Path(self.config_dir)
        if not self.config_dir.exists():
            raise ConfigurationError(
                f"Configuration directory not found: {self.config_dir}"
            )

    def load(self) -> None:
        """Load all profiles from disk."""
        profiles_dir = self.config_dir / "profiles"
        if profiles_dir.exists():
            for config_file in sorted(profiles_dir.glob("*.yaml")):
                self._profiles[config_file.stem] = load_profile(config_file)
        self._loaded = True

    def get_profile(self, name: str) -> SlicerConfig:
        """
        Get a slicer profile by name.

        Args:
            name: Profile name (without .yaml extension)

        Returns:
            SlicerConfig instance

        Raises:
            ConfigurationError: If the profile is not found
        """
        if not self._loaded:
            self.load()

        if name not in self._profiles:
            raise ConfigurationError(
                f"Slicer profile not found: {name}",
                details={"available": list(self._profiles.keys())},
            )
        return self._profiles[name]

    def list_profiles(self) -> list[str]:
        """List available profile names."""
        if not self._loaded:
            self.load()
        return list(self._profiles.keys())


def load_profile(config_file: Path) -> SlicerConfig:
    """
    Load one YAML profile file.

    Raises:
        ConfigurationError: If the file is unreadable, malformed or invalid.
    """
    try:
        with open(config_file) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(
            f"Failed to read slicer profile: {config_file}",
            details={"error": str(e)},
        )

    if not data or "slicer" not in data:
        raise ConfigurationError(
            f"Slicer profile has no 'slicer' section: {config_file}"
        )
    return config_from_dict(data["slicer"], adhesion=data.get("adhesion"),
                            tolerances=data.get("tolerances"))


def config_from_dict(
    values: dict[str, Any],
    adhesion: Optional[dict[str, Any]] = None,
    tolerances: Optional[dict[str, Any]] = None,
) -> SlicerConfig:
    """Build a SlicerConfig, re-raising validation failures as ConfigurationError."""
    merged = dict(values or {})
    if adhesion:
        merged["adhesion"] = adhesion
    if tolerances:
        merged["tolerances"] = tolerances
    try:
        return SlicerConfig(**merged)
    except ValidationError as e:
        raise ConfigurationError(
            "Invalid slicer configuration",
            details={"errors": e.errors(include_url=False)},
        )
