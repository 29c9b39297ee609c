"""
Visualization Tools

Provides drawing utilities for:
- Heightmap previews
- Roads & junctions
- Ownership and elevation-change maps
"""

from .draw_roads import heightmap_preview, draw_roads, colorize_ownership, colorize_delta
from .draw_junctions import draw_junctions, JUNCTION_COLORS
from .save_outputs import (
    save_all_outputs,
    save_heightmap_preview,
    save_junctions,
    save_ownership,
    save_delta,
)

__all__ = [
    "heightmap_preview",
    "draw_roads",
    "colorize_ownership",
    "colorize_delta",
    "draw_junctions",
    "JUNCTION_COLORS",
    "save_all_outputs",
    "save_heightmap_preview",
    "save_junctions",
    "save_ownership",
    "save_delta",
]
