"""
Error kinds raised inside the harmonization pipeline.

Only CancellationRequested is meant to reach the caller. The other kinds
are raised by a stage, caught at the stage boundary, logged, and stored
on the network as RecordedWarning entries.
"""

from dataclasses import dataclass
from typing import Optional


class RoadHarmonizerError(Exception):
    """Base class for every error raised by the package."""


class InvalidCurve(RoadHarmonizerError):
    """Centerline with fewer than two distinct points or zero length."""


class DegenerateJunction(RoadHarmonizerError):
    """Meeting point whose geometry cannot be harmonized (coincident or collinear)."""


class UnresolvedElevation(RoadHarmonizerError):
    """The baseline estimator returned NaN for one or more cross-sections."""


class CancellationRequested(RoadHarmonizerError):
    """The caller's cancellation token was set; the heightmap was not modified."""


@dataclass(frozen=True)
class RecordedWarning:
    kind: str
    message: str
    road_id: Optional[int] = None

    @classmethod
    def from_error(cls, error: RoadHarmonizerError, road_id: Optional[int] = None):
        return cls(type(error).__name__, str(error), road_id)
