"""
Blending Package

Rasterizes road footprints and writes them into the heightmap:
- Blend (falloff) functions
- Distance fields
- Ownership grids
- Protected blender
- Optional shoulder smoothing
"""

from .blend_functions import get_blend_function
from .ownership import OwnershipGrids, build_ownership_grids
from .protected_blender import blend_heightmap
from .smoothing import smooth_road_surface

__all__ = [
    "get_blend_function",
    "OwnershipGrids",
    "build_ownership_grids",
    "blend_heightmap",
    "smooth_road_surface",
]
