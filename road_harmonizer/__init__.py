"""
Road Harmonizer Package

Harmonizes road elevations at junctions and blends the roads into a
heightmap without disturbing their protected cores:

- Spline sampling of road centerlines
- Raw (terrain-following) elevation estimation
- Junction detection & classification
- Priority-ordered elevation harmonization
- Ownership & distance grids
- Protected terrain blending
- Output visualization utilities
"""

from .models import RoadDefinition, RoadNetwork, Junction, JunctionType
from .pipeline import harmonize_terrain, HarmonizationResult, HarmonizationSummary

__all__ = [
    "harmonize_terrain",
    "HarmonizationResult",
    "HarmonizationSummary",
    "RoadDefinition",
    "RoadNetwork",
    "Junction",
    "JunctionType",
    "config",
    "errors",
    "main",
    "detectors",
    "models",
    "processing",
    "blending",
    "utils",
    "visualization",
]
