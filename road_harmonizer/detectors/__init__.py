"""
Detectors Package

Contains the junction detection modules:
- Endpoint matching, grouping & classification
- Mid-curve crossing detection
- Ring-road attachment
- Caller-supplied junction exclusions
"""

from .junction_detector import (
    detect_junctions,
    detect_crossings,
    classify_contributors,
    primary_continuous,
    exclude_junctions,
)
from .ring_detector import ring_geometry, ring_road_ids, attach_to_ring

__all__ = [
    "detect_junctions",
    "detect_crossings",
    "classify_contributors",
    "primary_continuous",
    "exclude_junctions",
    "ring_geometry",
    "ring_road_ids",
    "attach_to_ring",
]
