from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple

from road_harmonizer.config import (
    DEFAULT_HALF_WIDTH,
    DEFAULT_ROAD_BLEND,
    DEFAULT_SHOULDER_SLOPE_DEGREES,
    MAX_SLOPE_DEGREES,
)


Point = Tuple[float, float]


@dataclass(frozen=True)
class RoadDefinition:
    """
    One road: a centerline (ControlCurve) plus its static parameters.

    Coordinates are meters in the heightmap frame, where a cell at
    (row, col) sits at x = col * cell_size, y = row * cell_size.

    Fields:
      • control_points          ordered centerline points
      • half_width              protected core, each side of the centerline
      • blend_distance          footprint beyond the core that fades to terrain
      • max_slope_deg           longitudinal surface limit
      • max_shoulder_slope_deg  lateral limit inside the blend footprint
      • priority                higher wins every conflict
      • is_ring                 closed loop (roundabout)
      • force_uniform_ring      level the whole ring to one elevation
      • junction_blend_distance per-road override of DEFAULT_BLEND_DISTANCE
    """

    control_points: Tuple[Point, ...]
    half_width: float = DEFAULT_HALF_WIDTH
    blend_distance: float = DEFAULT_ROAD_BLEND
    max_slope_deg: float = MAX_SLOPE_DEGREES
    max_shoulder_slope_deg: float = DEFAULT_SHOULDER_SLOPE_DEGREES
    priority: int = 0
    name: str = ""
    is_ring: bool = False
    force_uniform_ring: bool = False
    junction_blend_distance: Optional[float] = None

    @classmethod
    def create(cls, points: Iterable[Sequence[float]], **kwargs) -> "RoadDefinition":
        """
        Build a road from any iterable of (x, y) pairs, e.g. a list of lists
        from JSON or an (N, 2) numpy array.
        """
        pts = tuple((float(p[0]), float(p[1])) for p in points)
        return cls(control_points=pts, **kwargs)

    @property
    def footprint(self) -> float:
        return self.half_width + self.blend_distance

    def label(self, road_id: int) -> str:
        return self.name or f"road#{road_id}"

    def __repr__(self):
        return (f"RoadDefinition(name={self.name!r}, points={len(self.control_points)}, "
                f"hw={self.half_width}, blend={self.blend_distance}, prio={self.priority})")
