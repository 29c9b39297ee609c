"""
Protected blender: one pass over the heightmap driven by the ownership grids.

This module provides:
    • blend_band(original, grids, table, r0, r1, falloff, shoulder_limit)
    • blend_heightmap(heightmap, grids, network, params, executor, cancel, progress)

The heightmap given to blend_heightmap is only read. The result is a new
buffer; committing it is left to the caller.
"""

import logging
from typing import Callable, Optional

import numpy as np

from road_harmonizer.blending.blend_functions import get_blend_function
from road_harmonizer.blending.ownership import OwnershipGrids, RoadTable, row_bands
from road_harmonizer.config import get_active_params
from road_harmonizer.models.network import RoadNetwork
from road_harmonizer.utils.workers import check_cancel, iter_ordered


logger = logging.getLogger(__name__)

_TINY = 1e-12


def _weight(distance, half_width, blend, falloff):
    """
    Road influence at a lateral distance: 1 at the core edge, 0 at the
    footprint edge.
    """
    t = np.where(blend > 0, (distance - half_width) / np.maximum(blend, _TINY), 1.0)
    return 1.0 - falloff(np.clip(t, 0.0, 1.0))


def blend_band(
    original: np.ndarray,
    grids: OwnershipGrids,
    table: RoadTable,
    r0: int,
    r1: int,
    falloff: Callable,
    shoulder_limit: bool = True,
) -> np.ndarray:
    """
    Blended values for rows [r0, r1).

    Parameters
    ----------
    original : np.ndarray
        Unmodified heightmap.
    grids : OwnershipGrids
        Ownership, elevation and distance, read only.
    table : RoadTable
        Per-road half width, blend distance and shoulder slope.
    falloff : callable
        Monotonic easing curve on [0, 1].
    shoulder_limit : bool
        Keep blend cells within the owner's shoulder slope of its surface.

    Returns
    -------
    np.ndarray
        (r1 - r0, cols) block.
    """
    rows = slice(r0, r1)
    orig = original[rows]
    out = np.array(orig, dtype=float, copy=True)

    owner = grids.owner[rows]
    claimed = owner >= 0
    if not claimed.any():
        return out

    o = np.maximum(owner, 0)
    e1 = grids.elevation[rows]
    d1 = grids.distance[rows]
    hw1 = table.half_width[o]
    bd1 = table.blend[o]

    core = claimed & grids.core[rows]
    out[core] = e1[core]

    zone = claimed & ~core & (d1 <= hw1 + bd1)
    if not zone.any():
        return out

    base = np.where(np.isfinite(orig), orig, e1)
    w1 = _weight(d1, hw1, bd1, falloff)

    s_own = grids.second_owner[rows]
    s = np.maximum(s_own, 0)
    d2 = grids.second_distance[rows]
    hw2 = table.half_width[s]
    bd2 = table.blend[s]
    has2 = (s_own >= 0) & (d2 <= hw2 + bd2)
    w2 = np.where(has2, _weight(np.where(has2, d2, 0.0), hw2, bd2, falloff), 0.0)
    e2 = np.where(has2, grids.second_elevation[rows], 0.0)

    total = w1 + w2
    mixed = np.where(total > 0, (w1 * e1 + w2 * e2) / np.maximum(total, _TINY), e1)
    influence = np.minimum(total, 1.0)
    blended = mixed * influence + base * (1.0 - influence)

    if shoulder_limit:
        limit = table.shoulder_tan[o] * np.maximum(d1 - hw1, 0.0)
        blended = np.clip(blended, e1 - limit, e1 + limit)

    out[zone] = blended[zone]
    return out


def blend_heightmap(
    heightmap: np.ndarray,
    grids: OwnershipGrids,
    network: RoadNetwork,
    params=None,
    executor=None,
    cancel=None,
    progress: Optional[Callable[[str, float], None]] = None,
) -> np.ndarray:
    """
    Blend every row band into a new buffer.

    Bands run on the executor when one is given; each band writes only its
    own rows of the result. The cancellation token is checked before every
    band and after each band completes.

    Returns:
        blended copy of `heightmap` (float64)
    """
    if params is None:
        params = get_active_params()

    falloff = get_blend_function(params["BLEND_FUNCTION"])
    shoulder = bool(params["SHOULDER_SLOPE_LIMIT"])
    table = RoadTable.from_network(network)
    original = np.asarray(heightmap, dtype=float)
    result = np.empty(original.shape, dtype=float)

    bands = row_bands(original.shape[0], int(params["ROW_BATCH_SIZE"]))

    def work(band):
        check_cancel(cancel, "blending")
        r0, r1 = band
        result[r0:r1] = blend_band(original, grids, table, r0, r1, falloff, shoulder)
        return r1 - r0

    for k, _ in enumerate(iter_ordered(executor, work, bands)):
        check_cancel(cancel, "blending")
        if progress is not None:
            progress("blending", (k + 1) / len(bands))

    logger.info("Blended %d row bands", len(bands))
    return result
