import logging
import math
from typing import Dict, List, Optional, Set, Tuple

import numpy as np

from road_harmonizer.errors import RecordedWarning, RoadHarmonizerError
from road_harmonizer.models.cross_section import CrossSection
from road_harmonizer.models.junction import Junction
from road_harmonizer.models.road import RoadDefinition


logger = logging.getLogger(__name__)


class RoadNetwork:
    """
    Arena holding every road, every cross-section and every junction of a run.

    Roads are addressed by their input order (road id), sections by their
    index in `sections`. Junctions and contributors store these integer
    handles only. Roads rejected during sampling or elevation estimation keep
    their id but are listed in `excluded_roads` and own no sections.
    """

    def __init__(self, roads: List[RoadDefinition]):
        self.roads: List[RoadDefinition] = list(roads)
        self.sections: List[CrossSection] = []
        self.road_sections: List[List[int]] = [[] for _ in self.roads]
        self.closed_roads: Set[int] = set()
        self.excluded_roads: Set[int] = set()
        self.junctions: List[Junction] = []
        self.warnings: List[RecordedWarning] = []

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def replace_road(self, road_id: int, road: RoadDefinition):
        self.roads[road_id] = road

    def attach_sections(self, road_id: int, sections: List[CrossSection], closed: bool = False):
        """
        Move freshly sampled sections into the arena, assigning their handles.
        """
        handles = []
        for cs in sections:
            cs.index = len(self.sections)
            cs.road_id = road_id
            self.sections.append(cs)
            handles.append(cs.index)
        self.road_sections[road_id] = handles
        if closed:
            self.closed_roads.add(road_id)

    def exclude_road(self, road_id: int, error: RoadHarmonizerError):
        self.excluded_roads.add(road_id)
        for cs in self.sections_of(road_id):
            cs.excluded = True
        self.record(error, road_id)

    def record(self, error: RoadHarmonizerError, road_id: Optional[int] = None):
        """
        Store a recovered error as a warning and log it.
        """
        self._store(RecordedWarning.from_error(error, road_id))

    def warn(self, kind: str, message: str, road_id: Optional[int] = None):
        self._store(RecordedWarning(kind, message, road_id))

    def _store(self, warning: RecordedWarning):
        road_id = warning.road_id
        self.warnings.append(warning)
        if road_id is not None:
            logger.warning("%s (%s): %s", warning.kind, self.roads[road_id].label(road_id), warning.message)
        else:
            logger.warning("%s: %s", warning.kind, warning.message)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def active_road_ids(self) -> List[int]:
        return [rid for rid in range(len(self.roads))
                if rid not in self.excluded_roads and self.road_sections[rid]]

    def is_closed(self, road_id: int) -> bool:
        return road_id in self.closed_roads

    def section(self, handle: int) -> CrossSection:
        return self.sections[handle]

    def sections_of(self, road_id: int) -> List[CrossSection]:
        return [self.sections[h] for h in self.road_sections[road_id]]

    def priority(self, road_id: int) -> int:
        return self.roads[road_id].priority

    def priority_key(self, road_id: int) -> Tuple[int, int]:
        """
        Total order over roads: higher priority first, then lower input order.
        Larger keys win.
        """
        return self.roads[road_id].priority, -road_id

    def priority_rank(self, road_id: int) -> int:
        """
        0-based position of the road's priority among the distinct priorities
        present in the network (lowest priority -> 0).
        """
        levels = sorted({self.roads[r].priority for r in self.active_road_ids()})
        return levels.index(self.roads[road_id].priority) if self.roads[road_id].priority in levels else 0

    def road_length(self, road_id: int) -> float:
        handles = self.road_sections[road_id]
        return self.sections[handles[-1]].distance if handles else 0.0

    # ------------------------------------------------------------------
    # Array views (copies) for vectorized stages
    # ------------------------------------------------------------------

    def positions(self, road_id: int) -> np.ndarray:
        return np.array([cs.position for cs in self.sections_of(road_id)], dtype=float).reshape(-1, 2)

    def distances(self, road_id: int) -> np.ndarray:
        return np.array([cs.distance for cs in self.sections_of(road_id)], dtype=float)

    def tangents(self, road_id: int) -> np.ndarray:
        return np.array([cs.tangent for cs in self.sections_of(road_id)], dtype=float).reshape(-1, 2)

    def elevations(self, road_id: int) -> np.ndarray:
        """
        Current target elevations with excluded sections reported as NaN.
        """
        return np.array([cs.target_elevation if not cs.excluded else math.nan
                         for cs in self.sections_of(road_id)], dtype=float)

    def write_elevations(self, road_id: int, values: np.ndarray):
        """
        Write a road's profile back onto its sections. Excluded sections and
        non-finite values are left alone.
        """
        for cs, z in zip(self.sections_of(road_id), values):
            if cs.excluded or not math.isfinite(z):
                continue
            cs.target_elevation = float(z)

    # ------------------------------------------------------------------
    # Summaries
    # ------------------------------------------------------------------

    def junction_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for j in self.junctions:
            if j.excluded:
                continue
            counts[j.type.label] = counts.get(j.type.label, 0) + 1
        return counts

    def __repr__(self):
        return (f"RoadNetwork(roads={len(self.roads)}, sections={len(self.sections)}, "
                f"junctions={len(self.junctions)}, warnings={len(self.warnings)})")
