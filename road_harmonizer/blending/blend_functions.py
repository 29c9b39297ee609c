"""
Monotonic easing curves on [0, 1].

All functions accept scalars or numpy arrays, clamp the input to [0, 1],
and map 0 -> 0 and 1 -> 1.
"""

from typing import Callable, Dict

import numpy as np


def linear(t):
    return np.clip(t, 0.0, 1.0)


def cosine(t):
    t = np.clip(t, 0.0, 1.0)
    return 0.5 - 0.5 * np.cos(np.pi * t)


def smoothstep(t):
    """Cubic Hermite ease, zero slope at both ends."""
    t = np.clip(t, 0.0, 1.0)
    return t * t * (3.0 - 2.0 * t)


def quintic(t):
    """Perlin smootherstep: zero slope and curvature at both ends."""
    t = np.clip(t, 0.0, 1.0)
    return t * t * t * (t * (t * 6.0 - 15.0) + 10.0)


BLEND_FUNCTIONS: Dict[str, Callable] = {
    "linear": linear,
    "cosine": cosine,
    "cubic": smoothstep,
    "quintic": quintic,
}


def get_blend_function(name: str) -> Callable:
    try:
        return BLEND_FUNCTIONS[name]
    except KeyError:
        raise ValueError(f"unknown blend function {name!r}; expected one of {sorted(BLEND_FUNCTIONS)}") from None
