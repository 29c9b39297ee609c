"""
Ownership & distance builder.

Rasterizes an oriented rectangle per cross-section into shared grids at
heightmap resolution. A cell keeps the best claim by the key

    core beats blend footprint > higher priority > closer > lower road id

plus the best claim of any *other* road, so the blender can combine two
overlapping blend footprints.

This module provides:
    • OwnershipGrids
    • RoadTable
    • build_ownership_grids(network, shape, cell_size, params, executor, cancel)
"""

import logging
from dataclasses import dataclass
from typing import List, Tuple

import cv2
import numpy as np

from road_harmonizer.blending.distance_field import centerline_mask, edge_distance_field
from road_harmonizer.config import get_active_params
from road_harmonizer.models.network import RoadNetwork
from road_harmonizer.processing.profiles import ReferenceProfile
from road_harmonizer.utils.workers import check_cancel, iter_ordered


logger = logging.getLogger(__name__)

FILL_SHIFT = 4                 # cv2 fixed-point bits for sub-pixel corners
LONGITUDINAL_OVERLAP = 0.75    # of the local sample spacing, each side

_NO_PRIORITY = np.iinfo(np.int64).min


# ----------------------------------------------------------------------
# 1. CONTAINERS
# ----------------------------------------------------------------------

@dataclass
class OwnershipGrids:
    owner: np.ndarray
    core: np.ndarray
    elevation: np.ndarray
    distance: np.ndarray
    second_owner: np.ndarray
    second_core: np.ndarray
    second_elevation: np.ndarray
    second_distance: np.ndarray
    edge_distance: np.ndarray
    cell_size: float

    @classmethod
    def empty(cls, shape: Tuple[int, int], cell_size: float) -> "OwnershipGrids":
        return cls(
            owner=np.full(shape, -1, dtype=np.int32),
            core=np.zeros(shape, dtype=bool),
            elevation=np.full(shape, np.nan),
            distance=np.full(shape, np.inf),
            second_owner=np.full(shape, -1, dtype=np.int32),
            second_core=np.zeros(shape, dtype=bool),
            second_elevation=np.full(shape, np.nan),
            second_distance=np.full(shape, np.inf),
            edge_distance=np.full(shape, np.inf),
            cell_size=float(cell_size),
        )

    @property
    def shape(self) -> Tuple[int, int]:
        return self.owner.shape

    @property
    def claimed(self) -> np.ndarray:
        return self.owner >= 0

    def core_of(self, road_id: int) -> np.ndarray:
        return (self.owner == road_id) & self.core


@dataclass(frozen=True)
class RoadTable:
    """Per-road constants indexed by road id, for vectorized lookups."""

    half_width: np.ndarray
    blend: np.ndarray
    priority: np.ndarray
    shoulder_tan: np.ndarray

    @classmethod
    def from_network(cls, network: RoadNetwork) -> "RoadTable":
        roads = network.roads
        return cls(
            half_width=np.array([r.half_width for r in roads], dtype=float),
            blend=np.array([r.blend_distance for r in roads], dtype=float),
            priority=np.array([r.priority for r in roads], dtype=np.int64),
            shoulder_tan=np.tan(np.radians([r.max_shoulder_slope_deg for r in roads])).astype(float),
        )


@dataclass
class _Stamps:
    """Flattened per-section rasterization data, in road / section order."""

    road: np.ndarray
    center: np.ndarray
    tangent: np.ndarray
    normal: np.ndarray
    elevation: np.ndarray
    gradient: np.ndarray
    half_length: np.ndarray
    reach: np.ndarray
    core_width: np.ndarray
    rows: np.ndarray       # (k, 2) first/last row touched
    cols: np.ndarray       # (k, 2) first/last col touched

    def __len__(self):
        return len(self.road)


# ----------------------------------------------------------------------
# 2. SECTION STAMPS
# ----------------------------------------------------------------------

def _collect_stamps(network: RoadNetwork, shape: Tuple[int, int], cell_size: float) -> _Stamps:
    rows, cols = shape
    parts = {k: [] for k in ("road", "center", "tangent", "normal", "elevation", "gradient",
                             "half_length", "reach", "core_width")}

    for rid in network.active_road_ids():
        road = network.roads[rid]
        sections = network.sections_of(rid)
        d = network.distances(rid)
        z = network.elevations(rid)
        grad = ReferenceProfile(d, z).slope(d)

        gaps = np.diff(d)
        local = np.maximum(np.concatenate([gaps[:1], gaps]), np.concatenate([gaps, gaps[-1:]]))

        for i, cs in enumerate(sections):
            if not cs.has_elevation:
                continue
            parts["road"].append(rid)
            parts["center"].append(cs.position)
            parts["tangent"].append(cs.tangent)
            parts["normal"].append(cs.normal)
            parts["elevation"].append(cs.target_elevation)
            parts["gradient"].append(grad[i])
            parts["half_length"].append(LONGITUDINAL_OVERLAP * local[i] + 0.5 * cell_size)
            parts["reach"].append(road.half_width + road.blend_distance)
            parts["core_width"].append(max(road.half_width, 0.5 * cell_size))

    road_ids = np.array(parts["road"], dtype=np.int32)
    center = np.array(parts["center"], dtype=float).reshape(-1, 2)
    tangent = np.array(parts["tangent"], dtype=float).reshape(-1, 2)
    normal = np.array(parts["normal"], dtype=float).reshape(-1, 2)
    half_length = np.array(parts["half_length"], dtype=float)
    reach = np.array(parts["reach"], dtype=float)

    # Axis-aligned extent of each oriented rectangle, in cells
    ext = np.abs(tangent) * half_length[:, None] + np.abs(normal) * reach[:, None]
    lo = np.floor((center - ext) / cell_size).astype(np.int64)
    hi = np.ceil((center + ext) / cell_size).astype(np.int64)

    return _Stamps(
        road=road_ids,
        center=center,
        tangent=tangent,
        normal=normal,
        elevation=np.array(parts["elevation"], dtype=float),
        gradient=np.array(parts["gradient"], dtype=float),
        half_length=half_length,
        reach=reach,
        core_width=np.array(parts["core_width"], dtype=float),
        rows=np.column_stack([np.clip(lo[:, 1], 0, rows), np.clip(hi[:, 1], -1, rows - 1)]) if len(lo) else np.zeros((0, 2), np.int64),
        cols=np.column_stack([np.clip(lo[:, 0], 0, cols), np.clip(hi[:, 0], -1, cols - 1)]) if len(lo) else np.zeros((0, 2), np.int64),
    )


# ----------------------------------------------------------------------
# 3. CLAIM RESOLUTION
# ----------------------------------------------------------------------

def _beats(core, prio, dist, rid, old_owner, old_core, old_prio, old_dist):
    """
    True where the new claim outranks the existing one.
    """
    same_core = core == old_core
    same_prio = prio == old_prio
    return (
        (old_owner < 0)
        | (core & ~old_core)
        | (same_core & (prio > old_prio))
        | (same_core & same_prio & (dist < old_dist))
        | (same_core & same_prio & (dist == old_dist) & (rid < old_owner))
    )


def _apply_claim(grids: OwnershipGrids, table: RoadTable, rr, cc, rid: int,
                 core: np.ndarray, dist: np.ndarray, elev: np.ndarray):
    prio = table.priority[rid]

    own = grids.owner[rr, cc]
    own_core = grids.core[rr, cc]
    own_dist = grids.distance[rr, cc]
    own_prio = np.where(own >= 0, table.priority[np.maximum(own, 0)], _NO_PRIORITY)

    take = _beats(core, prio, dist, rid, own, own_core, own_prio, own_dist)
    same = own == rid

    # The displaced primary of another road becomes the secondary claim
    demote = take & ~same & (own >= 0)
    if demote.any():
        r, c = rr[demote], cc[demote]
        grids.second_owner[r, c] = own[demote]
        grids.second_core[r, c] = own_core[demote]
        grids.second_distance[r, c] = own_dist[demote]
        grids.second_elevation[r, c] = grids.elevation[r, c]

    if take.any():
        r, c = rr[take], cc[take]
        grids.owner[r, c] = rid
        grids.core[r, c] = core[take]
        grids.distance[r, c] = dist[take]
        grids.elevation[r, c] = elev[take]

    rest = ~take & ~same
    if rest.any():
        r, c = rr[rest], cc[rest]
        s_own = grids.second_owner[r, c]
        s_prio = np.where(s_own >= 0, table.priority[np.maximum(s_own, 0)], _NO_PRIORITY)
        better = _beats(core[rest], prio, dist[rest], rid, s_own,
                        grids.second_core[r, c], s_prio, grids.second_distance[r, c])
        if better.any():
            r, c = r[better], c[better]
            grids.second_owner[r, c] = rid
            grids.second_core[r, c] = core[rest][better]
            grids.second_distance[r, c] = dist[rest][better]
            grids.second_elevation[r, c] = elev[rest][better]


# ----------------------------------------------------------------------
# 4. BAND RASTERIZATION
# ----------------------------------------------------------------------

def _stamp_band(grids: OwnershipGrids, table: RoadTable, stamps: _Stamps, r0: int, r1: int) -> int:
    """
    Rasterize every stamp overlapping rows [r0, r1). Writes only those rows.
    """
    cell = grids.cell_size
    hits = np.flatnonzero((stamps.rows[:, 0] < r1) & (stamps.rows[:, 1] >= r0)
                          & (stamps.rows[:, 1] >= stamps.rows[:, 0]) & (stamps.cols[:, 1] >= stamps.cols[:, 0]))
    touched = 0

    for k in hits:
        br0 = int(stamps.rows[k, 0])
        br1 = int(stamps.rows[k, 1]) + 1
        wr0 = max(r0, br0)
        wr1 = min(r1, br1)
        wc0 = int(stamps.cols[k, 0])
        wc1 = int(stamps.cols[k, 1]) + 1
        if wr1 <= wr0 or wc1 <= wc0:
            continue

        c, t, n = stamps.center[k], stamps.tangent[k], stamps.normal[k]
        hl, reach = stamps.half_length[k], stamps.reach[k]
        corners = np.array([
            c + t * hl + n * reach,
            c + t * hl - n * reach,
            c - t * hl - n * reach,
            c - t * hl + n * reach,
        ])
        # Filled in the frame of the whole stamp box, never the band window.
        px = (corners / cell - np.array([wc0, br0])) * (1 << FILL_SHIFT)

        mask = np.zeros((br1 - br0, wc1 - wc0), dtype=np.uint8)
        cv2.fillConvexPoly(mask, np.round(px).astype(np.int32), 1, lineType=cv2.LINE_8, shift=FILL_SHIFT)
        ys, xs = np.nonzero(mask[wr0 - br0:wr1 - br0])
        if ys.size == 0:
            continue

        rr = ys + wr0
        cc = xs + wc0
        dx = cc * cell - c[0]
        dy = rr * cell - c[1]
        along = dx * t[0] + dy * t[1]
        lateral = np.abs(dx * n[0] + dy * n[1])

        inside = (lateral <= reach) & (np.abs(along) <= hl)
        if not inside.any():
            continue
        rr, cc, along, lateral = rr[inside], cc[inside], along[inside], lateral[inside]

        core = lateral <= stamps.core_width[k]
        elev = stamps.elevation[k] + stamps.gradient[k] * along
        _apply_claim(grids, table, rr, cc, int(stamps.road[k]), core, lateral, elev)
        touched += rr.size

    return touched


def row_bands(rows: int, batch: int) -> List[Tuple[int, int]]:
    return [(r0, min(r0 + batch, rows)) for r0 in range(0, rows, batch)]


# ----------------------------------------------------------------------
# 5. FULL BUILD
# ----------------------------------------------------------------------

def build_ownership_grids(
    network: RoadNetwork,
    shape: Tuple[int, int],
    cell_size: float,
    params=None,
    executor=None,
    cancel=None,
) -> OwnershipGrids:
    """
    Rasterize every road's core and blend footprint.

    Parameters
    ----------
    network : RoadNetwork
        Harmonized network; excluded sections are skipped.
    shape : (rows, cols)
        Heightmap shape.
    cell_size : float
        Meters per cell.
    params : dict, optional
        ROW_BATCH_SIZE.
    executor : Executor, optional
        Bands are rasterized in parallel; each band owns its rows.
    cancel : object with is_set(), optional
        Checked between bands.

    Returns
    -------
    OwnershipGrids
    """
    if params is None:
        params = get_active_params()

    grids = OwnershipGrids.empty(shape, cell_size)
    table = RoadTable.from_network(network)
    stamps = _collect_stamps(network, shape, cell_size)

    if len(stamps):
        def work(band):
            check_cancel(cancel, "ownership")
            return _stamp_band(grids, table, stamps, band[0], band[1])

        for _ in iter_ordered(executor, work, row_bands(shape[0], int(params["ROW_BATCH_SIZE"]))):
            check_cancel(cancel, "ownership")

    core_mask = (grids.core & grids.claimed) | centerline_mask(network, shape, cell_size).astype(bool)
    grids.edge_distance = edge_distance_field(core_mask, cell_size)

    logger.info("Ownership grids built: %d sections stamped, %d cells claimed (%d core)",
                len(stamps), int(grids.claimed.sum()), int((grids.core & grids.claimed).sum()))
    return grids
