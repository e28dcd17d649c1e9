"""
Toolpath emission: turns role-tagged geometric paths into annotated moves.

One :class:`ToolpathEmitter` drives one slicing run. It owns the single
:class:`PrinterState` (position, cumulative filament E, retraction flag, last
temperature and fan values) and walks through the states::

    IDLE -> TRAVEL -> EXTRUDING -> (RETRACTED) -> TRAVEL -> ... -> FINISHED

Filament accounting: an extrusion of XY length ``L`` feeds
``L * width * layer_height / (pi * (F / 2) ** 2)`` mm of filament of
diameter ``F``. Travel moves never change E; a retraction subtracts
``retraction_length`` and the following prime adds it back, so E is
monotone except across a retract/prime pair.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Sequence

from compas.geometry import Point

from stratapath.core.config import SlicerConfig
from stratapath.core.exceptions import SlicingError
from stratapath.core.geometry import Path, Point2D, make_path
from stratapath.core.logging import get_logger
from stratapath.slicing.toolpath import (
    EMISSION_ORDER,
    LayerToolpath,
    MoveKind,
    PathRole,
    RolePath,
    ToolpathMove,
    order_paths,
)

logger = get_logger(__name__)


class EmitterState(Enum):
    IDLE = "idle"
    TRAVEL = "travel"
    EXTRUDING = "extruding"
    RETRACTED = "retracted"
    FINISHED = "finished"


@dataclass
class PrinterState:
    """Machine state carried across the whole run."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    e: float = 0.0
    retracted: bool = False
    nozzle_temperature: Optional[float] = None
    fan_speed: Optional[float] = None

    @property
    def position(self) -> Point:
        return Point(self.x, self.y, self.z)

    @property
    def xy(self) -> Point2D:
        return Point2D(self.x, self.y)


@dataclass
class EmissionTotals:
    """Run totals returned by :meth:`ToolpathEmitter.finish`."""

    extrusion: float = 0.0
    extruded_length: float = 0.0
    travel_length: float = 0.0
    move_count: int = 0
    layer_count: int = 0
    retraction_count: int = 0
    skipped_paths: int = 0


@dataclass
class _LayerCounters:
    skipped_paths: int = 0
    extrusion: float = 0.0


class ToolpathEmitter:
    """
    Emission state machine for one slicing run.

    Example:
        >>> emitter = ToolpathEmitter(SlicerConfig())
        >>> layer = emitter.emit_layer(0, 0.2, [RolePath(path, PathRole.PERIMETER_OUTER)])
        >>> totals = emitter.finish()
    """

    def __init__(self, config: SlicerConfig):
        self.config = config
        self.printer = PrinterState()
        self.state = EmitterState.IDLE
        self.totals = EmissionTotals()
        self._layer: Optional[LayerToolpath] = None
        self._counters = _LayerCounters()
        self._filament_area = math.pi * (config.filament_diameter / 2.0) ** 2

    # ------------------------------------------------------------------
    # Layer lifecycle
    # ------------------------------------------------------------------

    def begin_layer(self, layer_index: int, z: float) -> LayerToolpath:
        """Start a layer: Z travel plus temperature/fan changes."""
        self._check_open()
        if self._layer is not None:
            self.end_layer()

        layer = LayerToolpath(layer_index=layer_index, z=z)
        self._layer = layer
        self._counters = _LayerCounters()

        settings: Dict[str, float] = {
            "nozzle_temperature": self.config.nozzle_temperature,
            "fan_speed": 0.0 if layer_index == 0 else self.config.fan_speed,
        }
        if settings["nozzle_temperature"] != self.printer.nozzle_temperature:
            layer.settings["nozzle_temperature"] = settings["nozzle_temperature"]
            self.printer.nozzle_temperature = settings["nozzle_temperature"]
        if settings["fan_speed"] != self.printer.fan_speed:
            layer.settings["fan_speed"] = settings["fan_speed"]
            self.printer.fan_speed = settings["fan_speed"]

        self.printer.z = z
        self._append(ToolpathMove(
            kind=MoveKind.TRAVEL,
            role=None,
            target=self.printer.position,
            feed_rate=self.config.speed_mm_per_min(self.config.travel_speed),
        ))
        self.state = EmitterState.IDLE
        return layer

    def end_layer(self) -> LayerToolpath:
        """Close the current layer and return it."""
        layer = self._require_layer()
        logger.debug(
            "layer_emitted",
            layer_index=layer.layer_index,
            moves=len(layer.moves),
            extrusion=round(self._counters.extrusion, 5),
            skipped_paths=self._counters.skipped_paths,
        )
        self.totals.layer_count += 1
        self._layer = None
        self.state = EmitterState.IDLE
        return layer

    @property
    def skipped_in_layer(self) -> int:
        return self._counters.skipped_paths

    def emit_layer(
        self,
        layer_index: int,
        z: float,
        paths: Sequence[RolePath],
    ) -> LayerToolpath:
        """
        Emit one full layer.

        Paths are grouped by role in the fixed print order (adhesion, outer
        wall, inner walls, skin, infill); within a role they are ordered to
        minimise travel from the current position.
        """
        self.begin_layer(layer_index, z)
        for role in EMISSION_ORDER:
            group = [rp for rp in paths if rp.role == role]
            for role_path in order_paths(group, start=self.printer.xy):
                self.emit_path(role_path.path, role_path.role)
        return self.end_layer()

    def finish(self) -> EmissionTotals:
        """End the run. The emitter cannot be used afterwards."""
        self._check_open()
        if self._layer is not None:
            self.end_layer()
        self.state = EmitterState.FINISHED
        logger.info(
            "emission_finished",
            layers=self.totals.layer_count,
            moves=self.totals.move_count,
            extrusion=round(self.totals.extrusion, 4),
            skipped_paths=self.totals.skipped_paths,
        )
        return self.totals

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def emit_path(self, path: Path, role: PathRole) -> bool:
        """
        Emit travel (with optional retraction) and extrusion for one path.

        Returns:
            False if the path was degenerate and skipped.
        """
        layer = self._require_layer()
        eps = self.config.tolerances.epsilon
        clean = make_path(path.points, closed=path.closed, epsilon=eps)
        if len(clean.points) < 2 or clean.length() <= eps:
            self._counters.skipped_paths += 1
            self.totals.skipped_paths += 1
            logger.debug(
                "degenerate_path_skipped",
                layer_index=layer.layer_index,
                role=role.value,
                points=len(path.points),
            )
            return False

        self._travel_to(clean.points[0], role)

        feed = self._print_feed_rate(role, layer.layer_index)
        targets = list(clean.points[1:])
        if clean.closed:
            targets.append(clean.points[0])
        for point in targets:
            self._extrude_to(point, role, feed)
        return True

    def _travel_to(self, point: Point2D, role: PathRole) -> None:
        cfg = self.config
        dist = math.hypot(point[0] - self.printer.x, point[1] - self.printer.y)
        if dist <= cfg.tolerances.epsilon:
            return

        retract = cfg.retraction_enabled and cfg.retraction_length > 0 and dist > cfg.retraction_min_travel
        if retract:
            self._retract(role)

        self.printer.x, self.printer.y = point[0], point[1]
        self._append(ToolpathMove(
            kind=MoveKind.TRAVEL,
            role=role,
            target=self.printer.position,
            feed_rate=cfg.speed_mm_per_min(cfg.travel_speed),
        ))
        self.totals.travel_length += dist
        self.state = EmitterState.TRAVEL

        if retract:
            self._prime(role)

    def _retract(self, role: PathRole) -> None:
        length = self.config.retraction_length
        self.printer.e -= length
        self.printer.retracted = True
        self._append(ToolpathMove(
            kind=MoveKind.TRAVEL,
            role=role,
            target=self.printer.position,
            feed_rate=self.config.speed_mm_per_min(self.config.retraction_speed),
            extrusion_delta=-length,
        ))
        self.totals.retraction_count += 1
        self.state = EmitterState.RETRACTED

    def _prime(self, role: PathRole) -> None:
        length = self.config.retraction_length
        self.printer.e += length
        self.printer.retracted = False
        self._append(ToolpathMove(
            kind=MoveKind.TRAVEL,
            role=role,
            target=self.printer.position,
            feed_rate=self.config.speed_mm_per_min(self.config.retraction_speed),
            extrusion_delta=length,
        ))
        self.state = EmitterState.TRAVEL

    def _extrude_to(self, point: Point2D, role: PathRole, feed: float) -> None:
        seg_len = math.hypot(point[0] - self.printer.x, point[1] - self.printer.y)
        delta = self.extrusion_for_length(seg_len)
        self.printer.x, self.printer.y = point[0], point[1]
        self.printer.e += delta
        self._append(ToolpathMove(
            kind=MoveKind.EXTRUDE,
            role=role,
            target=self.printer.position,
            feed_rate=feed,
            extrusion_delta=delta,
        ))
        self._counters.extrusion += delta
        self.totals.extrusion += delta
        self.totals.extruded_length += seg_len
        self.state = EmitterState.EXTRUDING

    def extrusion_for_length(self, length: float) -> float:
        """Filament length fed for an extruded bead of the given XY length."""
        cfg = self.config
        return length * cfg.bead_width * cfg.layer_height / self._filament_area

    def _print_feed_rate(self, role: PathRole, layer_index: int) -> float:
        cfg = self.config
        if layer_index == 0 or role == PathRole.ADHESION:
            speed = cfg.first_layer_speed
        elif role in (PathRole.PERIMETER_OUTER, PathRole.PERIMETER_INNER):
            speed = cfg.perimeter_speed
        elif role == PathRole.SKIN:
            speed = cfg.skin_speed
        else:
            speed = cfg.infill_speed
        return cfg.speed_mm_per_min(speed)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _append(self, move: ToolpathMove) -> None:
        self._require_layer().moves.append(move)
        self.totals.move_count += 1

    def _require_layer(self) -> LayerToolpath:
        self._check_open()
        if self._layer is None:
            raise SlicingError("No layer in progress; call begin_layer() first")
        return self._layer

    def _check_open(self) -> None:
        if self.state == EmitterState.FINISHED:
            raise SlicingError("Emitter already finished; start a new run")
