import math
from dataclasses import dataclass
from typing import Tuple


@dataclass
class CrossSection:
    """
    One sampled slice of a road centerline.

    `index` is the handle of the section inside RoadNetwork.sections;
    `local_index` is its position along its own road. Only the elevation
    harmonizer writes `target_elevation`, and only for sections of the road
    it is currently processing.
    """

    index: int
    road_id: int
    local_index: int
    distance: float
    position: Tuple[float, float]
    tangent: Tuple[float, float]
    normal: Tuple[float, float]
    target_elevation: float = math.nan
    raw_elevation: float = math.nan
    excluded: bool = False
    is_start: bool = False
    is_end: bool = False

    @property
    def is_endpoint(self) -> bool:
        return self.is_start or self.is_end

    @property
    def has_elevation(self) -> bool:
        return not self.excluded and math.isfinite(self.target_elevation)

    def __repr__(self):
        return (f"CrossSection(road={self.road_id}, i={self.local_index}, "
                f"d={self.distance:.2f}, z={self.target_elevation:.3f})")
