"""
Per-layer diagnostic counters.

Anomalies never abort slicing; they are counted here so callers can decide
whether a model is trustworthy.
"""

from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Sequence


@dataclass
class LayerDiagnostics:
    """Counters collected while slicing one layer."""

    layer_index: int
    z: float
    segment_count: int = 0
    path_count: int = 0
    open_path_count: int = 0
    hole_count: int = 0
    region_count: int = 0
    branch_points: int = 0
    degenerate_segments: int = 0
    exposed_area_count: int = 0
    skipped_paths: int = 0
    collapsed_offsets: int = 0

    @property
    def has_anomalies(self) -> bool:
        """True when the layer's input was not a clean set of closed loops."""
        return bool(self.open_path_count or self.branch_points or self.degenerate_segments)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def summarize(diagnostics: Sequence[LayerDiagnostics]) -> Dict[str, int]:
    """Sum every integer counter over all layers."""
    totals: Dict[str, int] = {}
    for f in fields(LayerDiagnostics):
        if f.name in ("layer_index", "z"):
            continue
        totals[f.name] = sum(getattr(d, f.name) for d in diagnostics)
    totals["layers_with_anomalies"] = sum(1 for d in diagnostics if d.has_anomalies)
    return totals
