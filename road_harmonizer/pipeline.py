"""
End-to-end harmonization of a road network against a heightmap.

This module provides:
    • HarmonizationSummary
    • HarmonizationResult
    • harmonize_terrain(heightmap, cell_size, roads, estimator, params, progress, cancel,
                        excluded_junctions)

Stages run in order, each one finishing before the next starts:

    sampling -> raw elevations -> junctions -> harmonization
             -> ownership -> blending -> [smoothing] -> commit

The smoothing stage only runs when POST_SMOOTHING is set.

The caller's heightmap is written only at the commit, so a cancelled run
leaves it untouched.
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from typing import Callable, Dict, Optional, Sequence, Tuple

import numpy as np

from road_harmonizer.blending.ownership import OwnershipGrids, build_ownership_grids
from road_harmonizer.blending.protected_blender import blend_heightmap
from road_harmonizer.blending.smoothing import smooth_road_surface
from road_harmonizer.config import get_active_params, validate_params
from road_harmonizer.detectors.junction_detector import detect_junctions, exclude_junctions
from road_harmonizer.models.network import RoadNetwork
from road_harmonizer.models.road import RoadDefinition
from road_harmonizer.processing.baseline import TerrainFollowingEstimator, assign_raw_elevations
from road_harmonizer.processing.elevation_harmonizer import harmonize_network
from road_harmonizer.processing.spline_sampler import build_network
from road_harmonizer.utils.workers import check_cancel


logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, float], None]


@dataclass
class HarmonizationSummary:
    roads_total: int = 0
    roads_skipped: int = 0
    sections: int = 0
    sections_excluded: int = 0
    junctions: Dict[str, int] = field(default_factory=dict)
    junctions_excluded: int = 0
    sections_modified: int = 0
    max_elevation_change: float = 0.0
    cells_modified: int = 0
    warnings: int = 0

    def as_dict(self) -> Dict:
        return asdict(self)


@dataclass
class HarmonizationResult:
    network: RoadNetwork
    grids: OwnershipGrids
    summary: HarmonizationSummary


def _check_arguments(heightmap, cell_size, roads):
    if not isinstance(heightmap, np.ndarray):
        raise ValueError("heightmap must be a numpy array")
    if heightmap.ndim != 2:
        raise ValueError(f"heightmap must be 2-D (got {heightmap.ndim} dimensions)")
    if not np.issubdtype(heightmap.dtype, np.floating):
        raise ValueError(f"heightmap must have a floating dtype (got {heightmap.dtype})")
    if heightmap.size == 0:
        raise ValueError("heightmap is empty")
    if not (isinstance(cell_size, (int, float)) and math.isfinite(cell_size) and cell_size > 0):
        raise ValueError(f"cell_size must be a finite number > 0 (got {cell_size!r})")
    for k, road in enumerate(roads):
        if not isinstance(road, RoadDefinition):
            raise ValueError(f"roads[{k}] is not a RoadDefinition")


def harmonize_terrain(
    heightmap: np.ndarray,
    cell_size: float,
    roads: Sequence[RoadDefinition],
    estimator=None,
    params: Optional[Dict] = None,
    progress: Optional[ProgressCallback] = None,
    cancel=None,
    excluded_junctions: Optional[Sequence[Tuple[float, float]]] = None,
) -> HarmonizationResult:
    """
    Harmonize road elevations and blend them into the heightmap.

    Parameters
    ----------
    heightmap : np.ndarray
        2-D floating array in meters, row-major. Modified in place once all
        stages have completed.
    cell_size : float
        Meters per heightmap cell. Road coordinates use x = col * cell_size,
        y = row * cell_size.
    roads : sequence of RoadDefinition
        Centerlines in the heightmap's meter space. The road id is the
        index in this sequence.
    estimator : callable, optional
        Maps a CrossSection to its raw elevation. Defaults to a
        TerrainFollowingEstimator over `heightmap`.
    params : dict, optional
        Overrides merged into get_active_params().
    progress : callable(stage, fraction), optional
    cancel : object with is_set(), optional
        Cooperative cancellation token, e.g. threading.Event.
    excluded_junctions : sequence of (x, y), optional
        Junctions detected within DETECTION_RADIUS of these points are
        left out of harmonization; the roads keep their raw elevations
        there.

    Returns
    -------
    HarmonizationResult

    Raises
    ------
    ValueError
        Invalid arguments or parameters.
    CancellationRequested
        The token was set; the heightmap is unchanged.
    """
    roads = list(roads)
    _check_arguments(heightmap, cell_size, roads)
    cell_size = float(cell_size)

    params = get_active_params(params)
    problems = validate_params(params)
    if problems:
        raise ValueError("invalid parameters: " + "; ".join(problems))

    def report(stage: str, fraction: float):
        if progress is not None:
            progress(stage, fraction)

    if estimator is None:
        estimator = TerrainFollowingEstimator(heightmap, cell_size,
                                              params["BASELINE_WINDOW_METERS"],
                                              params["BASELINE_METHOD"])

    summary = HarmonizationSummary(roads_total=len(roads))
    logger.info("Harmonizing %d roads over a %dx%d heightmap (cell %.3g m)",
                len(roads), heightmap.shape[0], heightmap.shape[1], cell_size)

    workers = params["MAX_WORKERS"]
    with ThreadPoolExecutor(max_workers=None if workers is None else int(workers)) as executor:

        check_cancel(cancel, "sampling")
        report("sampling", 0.0)
        network = build_network(roads, params, executor)
        report("sampling", 1.0)

        check_cancel(cancel, "raw elevations")
        report("raw elevations", 0.0)
        summary.sections_excluded = assign_raw_elevations(network, estimator)
        report("raw elevations", 1.0)

        check_cancel(cancel, "junctions")
        report("junctions", 0.0)
        detect_junctions(network, params)
        if excluded_junctions is not None:
            summary.junctions_excluded = len(exclude_junctions(network, excluded_junctions, params=params))
        report("junctions", 1.0)

        check_cancel(cancel, "harmonization")
        report("harmonization", 0.0)
        stats = harmonize_network(network, heightmap, cell_size, params, executor, cancel)
        report("harmonization", 1.0)

        check_cancel(cancel, "ownership")
        report("ownership", 0.0)
        grids = build_ownership_grids(network, heightmap.shape, cell_size, params, executor, cancel)
        report("ownership", 1.0)

        check_cancel(cancel, "blending")
        report("blending", 0.0)
        blended = blend_heightmap(heightmap, grids, network, params, executor, cancel, progress)

        if params["POST_SMOOTHING"]:
            check_cancel(cancel, "smoothing")
            report("smoothing", 0.0)
            blended = smooth_road_surface(blended, grids, params, cancel)
            report("smoothing", 1.0)

    check_cancel(cancel, "commit")

    original = np.asarray(heightmap, dtype=float)
    changed = ~((blended == original) | (np.isnan(blended) & np.isnan(original)))
    heightmap[...] = blended
    report("commit", 1.0)

    summary.roads_skipped = len(network.excluded_roads)
    summary.sections = len(network.sections)
    summary.junctions = network.junction_counts()
    summary.sections_modified = stats.sections_modified
    summary.max_elevation_change = stats.max_change
    summary.cells_modified = int(np.count_nonzero(changed))
    summary.warnings = len(network.warnings)

    logger.info("Harmonization finished: %d cells modified, %d warnings",
                summary.cells_modified, summary.warnings)
    return HarmonizationResult(network=network, grids=grids, summary=summary)
