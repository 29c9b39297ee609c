"""
Processing Package

Per-road elevation work:
- Spline sampling into cross-sections
- Raw elevation estimation
- Junction profiles & slope clamping
- Elevation harmonization
"""

from .spline_sampler import sample_road, build_network
from .baseline import TerrainFollowingEstimator, assign_raw_elevations
from .elevation_harmonizer import harmonize_network, approach_adjusted_slope

__all__ = [
    "sample_road",
    "build_network",
    "TerrainFollowingEstimator",
    "assign_raw_elevations",
    "harmonize_network",
    "approach_adjusted_slope",
]
