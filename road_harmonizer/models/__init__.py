"""
Data Models

Defines the core data structures:
- RoadDefinition
- CrossSection
- Junction / Contributor / JunctionType
- RoadNetwork
"""

from .road import RoadDefinition
from .cross_section import CrossSection
from .junction import Junction, Contributor, JunctionType
from .network import RoadNetwork

__all__ = ["RoadDefinition", "CrossSection", "Junction", "Contributor", "JunctionType", "RoadNetwork"]
