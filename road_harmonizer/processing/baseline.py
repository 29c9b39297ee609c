"""
Raw (terrain-following) elevation pass.

This module provides:
    • TerrainFollowingEstimator  - default baseline estimator
    • assign_raw_elevations(network, estimator)

Any callable mapping a CrossSection to a float can stand in for the
default estimator. If it also has a `prepare(network)` method, that is
called once before the per-section lookups.
"""

import logging
import math
from typing import Callable, Dict

import numpy as np
from scipy.ndimage import uniform_filter1d
from scipy.signal import savgol_filter

from road_harmonizer.errors import UnresolvedElevation
from road_harmonizer.models.cross_section import CrossSection
from road_harmonizer.models.network import RoadNetwork
from road_harmonizer.utils.terrain import sample_heightmap


logger = logging.getLogger(__name__)

Estimator = Callable[[CrossSection], float]


# -------------------------------------------------------------------------
#  NaN-aware 1D smoothing
# -------------------------------------------------------------------------

def smooth_profile(values: np.ndarray, spacing: float, window_meters: float, method: str = "box") -> np.ndarray:
    """
    Smooth a longitudinal elevation profile over `window_meters`.

    NaN gaps are bridged by linear interpolation for the filter only and
    come back as NaN in the result.
    """
    values = np.asarray(values, dtype=float)
    valid = np.isfinite(values)
    if valid.sum() < 2:
        return values.copy()

    idx = np.arange(len(values))
    filled = np.interp(idx, idx[valid], values[valid])

    window = int(round(window_meters / max(spacing, 1e-9)))
    window = min(window, len(values))

    if method == "savgol":
        if window % 2 == 0:
            window -= 1
        if window > 2:
            smoothed = savgol_filter(filled, window, polyorder=2, mode="interp")
        else:
            smoothed = filled
    else:
        smoothed = uniform_filter1d(filled, size=max(window, 1), mode="nearest")

    smoothed[~valid] = np.nan
    return smoothed


# -------------------------------------------------------------------------
#  Default estimator
# -------------------------------------------------------------------------

class TerrainFollowingEstimator:
    """
    Samples the heightmap under every cross-section and smooths each road's
    profile along its length.
    """

    def __init__(self, heightmap: np.ndarray, cell_size: float,
                 window_meters: float = 20.0, method: str = "box"):
        self.heightmap = heightmap
        self.cell_size = float(cell_size)
        self.window_meters = float(window_meters)
        self.method = method
        self._values: Dict[int, float] = {}

    def prepare(self, network: RoadNetwork):
        self._values = {}
        for rid in network.active_road_ids():
            sections = network.sections_of(rid)
            raw = sample_heightmap(self.heightmap, self.cell_size, network.positions(rid))
            if len(sections) > 1:
                spacing = sections[-1].distance / (len(sections) - 1)
                raw = smooth_profile(raw, spacing, self.window_meters, self.method)
            for cs, z in zip(sections, raw):
                self._values[cs.index] = float(z)

    def __call__(self, section: CrossSection) -> float:
        if section.index in self._values:
            return self._values[section.index]
        return float(sample_heightmap(self.heightmap, self.cell_size, [section.position])[0])


# -------------------------------------------------------------------------
#  First elevation pass
# -------------------------------------------------------------------------

def assign_raw_elevations(network: RoadNetwork, estimator: Estimator) -> int:
    """
    Evaluate the estimator for every section of every active road and store
    the result as both raw and target elevation.

    Sections with a NaN baseline are excluded; a road left without any
    usable section is removed from the network.

    Returns:
        number of excluded sections
    """
    prepare = getattr(estimator, "prepare", None)
    if callable(prepare):
        prepare(network)

    excluded_total = 0
    for rid in network.active_road_ids():
        sections = network.sections_of(rid)
        missing = 0
        for cs in sections:
            z = float(estimator(cs))
            if math.isfinite(z):
                cs.raw_elevation = z
                cs.target_elevation = z
            else:
                cs.excluded = True
                missing += 1

        if missing == len(sections):
            network.exclude_road(rid, UnresolvedElevation("baseline is NaN for every cross-section"))
        elif missing:
            network.record(UnresolvedElevation(f"{missing} of {len(sections)} cross-sections have no baseline"), rid)
        excluded_total += missing

    logger.info("Raw elevations assigned (%d sections excluded)", excluded_total)
    return excluded_total
