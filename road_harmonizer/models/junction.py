import math
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple


class JunctionType(Enum):
    """
    Closed taxonomy of meeting points. The harmonizer matches on it
    exhaustively, so adding a member means adding a branch there.
    """

    ENDPOINT = "e"       # dead end, one road
    T_JUNCTION = "t"     # endpoint meets another road's interior
    Y_JUNCTION = "y"     # two roads share an endpoint
    CROSSROADS = "x"     # three or four roads share an endpoint
    COMPLEX = "c"        # five or more roads share an endpoint
    CROSSING = "m"       # two interiors cross, no endpoints involved
    RING = "r"           # endpoint attached to a ring road

    @property
    def label(self) -> str:
        return self.name.lower()


@dataclass
class Contributor:
    """
    One road taking part in a junction.

    `section` is a handle into RoadNetwork.sections. The remaining fields
    are filled by the elevation harmonizer:

      • contact_distance  running distance of the exact contact point
      • local_slope       slope the road leaves the junction with
                          (per unit distance away from the junction)
      • blend_distance    length of the quintic profile on this road
      • adapts            True when the road's profile is rewritten
    """

    road_id: int
    section: int
    is_endpoint: bool
    on_ring: bool = False
    contact_distance: float = math.nan
    local_slope: float = math.nan
    blend_distance: float = math.nan
    adapts: bool = False

    @property
    def is_continuous(self) -> bool:
        return not self.is_endpoint


@dataclass
class Junction:
    """
    A detected meeting point between roads.

    Holds handles only (road ids and section indices), never the road or
    section objects themselves.
    """

    junction_id: int
    position: Tuple[float, float]
    type: JunctionType
    contributors: List[Contributor] = field(default_factory=list)
    harmonized_elevation: float = math.nan
    blend_distance: float = math.nan
    ring_road_id: Optional[int] = None
    attachment_angle: Optional[float] = None
    excluded: bool = False
    exclusion_reason: Optional[str] = None

    # ------------------------------------------------------------------
    # Contributor queries
    # ------------------------------------------------------------------

    @property
    def road_ids(self) -> List[int]:
        """Distinct road ids in contributor order."""
        seen = []
        for c in self.contributors:
            if c.road_id not in seen:
                seen.append(c.road_id)
        return seen

    def endpoints(self) -> List[Contributor]:
        return [c for c in self.contributors if c.is_endpoint]

    def continuous(self) -> List[Contributor]:
        return [c for c in self.contributors if c.is_continuous]

    def involves(self, road_id: int) -> bool:
        return any(c.road_id == road_id for c in self.contributors)

    def adapting(self) -> List[Contributor]:
        return [c for c in self.contributors if c.adapts]

    @property
    def is_resolved(self) -> bool:
        return math.isfinite(self.harmonized_elevation)

    # ------------------------------------------------------------------
    # Convenience / debugging
    # ------------------------------------------------------------------

    def __repr__(self):
        return (f"Junction(id={self.junction_id}, type={self.type.label}, "
                f"pos=({self.position[0]:.1f}, {self.position[1]:.1f}), "
                f"roads={self.road_ids}, z={self.harmonized_elevation:.3f})")
