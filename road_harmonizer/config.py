"""
Configuration file for the road elevation harmonization system.

Contains both GEOGRAPHIC and AUTHORED parameter sets, one per source of
road centerlines. Modules should read values using the get_active_params()
function and never import the mode dictionaries directly.
"""

from typing import Dict, List, Optional


# ---------------------------------------------------------------
# MODE SELECTION
# ---------------------------------------------------------------

# Set to True when centerlines come from geographic line data
# (sparse vertices, some noise). False for hand-authored splines.
GEOGRAPHIC_MODE = True


# ---------------------------------------------------------------
# I/O PATHS
# ---------------------------------------------------------------

SCENE_PATTERN = "scenes/*.json"
OUTPUT_FOLDER = "output"


# ===============================================================
# GEOGRAPHIC-MODE PARAMETERS
# ===============================================================

GEOGRAPHIC = {
    "DETECTION_RADIUS": 10.0,
    "SAMPLE_SPACING": 2.0,
    "INTERPOLATION": "spline",
}


# ===============================================================
# AUTHORED-MODE PARAMETERS
# ===============================================================

AUTHORED = {
    "DETECTION_RADIUS": 5.0,
    "SAMPLE_SPACING": 1.0,
    "INTERPOLATION": "spline",
}


# ---------------------------------------------------------------
# SHARED PARAMETERS (used in both modes)
# ---------------------------------------------------------------

DEFAULT_BLEND_DISTANCE = 30.0        # junction profile length (m)
MAX_SLOPE_DEGREES = 8.0              # fallback surface slope limit
EASE_ZONE_FRACTION = 0.15            # of the blend distance
RING_ELEVATION_MODE = "terrain"      # "terrain" or "uniform"

ENDPOINT_TAPER_DISTANCE = 30.0       # dead-end fade length (m)
ENDPOINT_TERRAIN_BLEND = 0.3         # 0 = keep road, 1 = snap to terrain

BASELINE_WINDOW_METERS = 20.0
BASELINE_METHOD = "box"              # "box" or "savgol"

BLEND_FUNCTION = "cosine"
SHOULDER_SLOPE_LIMIT = True

AUTO_DETECT_RINGS = True
RING_CLOSURE_TOLERANCE = 1.0         # m between first and last point

SLOPE_CLAMP_ITERATIONS = 10

# Post-blend surface smoothing, off by default. Protected cores are
# never rewritten by it, only the blend cells around them.
POST_SMOOTHING = False
SMOOTHING_TYPE = "gaussian"          # "gaussian", "box" or "bilateral"
SMOOTHING_KERNEL_SIZE = 7            # cells, odd
SMOOTHING_SIGMA = 1.5                # cells (bilateral: range sigma in m is half of it)
SMOOTHING_MASK_EXTENSION = 6.0       # m past the core edge
SMOOTHING_ITERATIONS = 1

ROW_BATCH_SIZE = 64
MAX_WORKERS = None                   # None -> executor default


# ---------------------------------------------------------------
# ROAD DEFAULTS (used by the scene loader)
# ---------------------------------------------------------------

DEFAULT_HALF_WIDTH = 4.0
DEFAULT_ROAD_BLEND = 15.0
DEFAULT_SHOULDER_SLOPE_DEGREES = 30.0


# ---------------------------------------------------------------
# ACCEPTED VALUES
# ---------------------------------------------------------------

INTERPOLATION_MODES = ("spline", "linear")
RING_MODES = ("terrain", "uniform")
BASELINE_METHODS = ("box", "savgol")
BLEND_FUNCTIONS = ("linear", "cosine", "cubic", "quintic")
SMOOTHING_TYPES = ("gaussian", "box", "bilateral")


# ---------------------------------------------------------------
# PARAMETER ACCESS LOGIC
# ---------------------------------------------------------------

def get_active_params(overrides: Optional[Dict] = None) -> Dict:
    """
    Returns the active set of parameters:
    - A combination of SHARED + mode-specific constants.
    - Caller overrides (e.g. from harmonize_terrain) are applied last.
    """

    base = {
        "DEFAULT_BLEND_DISTANCE": DEFAULT_BLEND_DISTANCE,
        "MAX_SLOPE_DEGREES": MAX_SLOPE_DEGREES,
        "EASE_ZONE_FRACTION": EASE_ZONE_FRACTION,
        "RING_ELEVATION_MODE": RING_ELEVATION_MODE,
        "ENDPOINT_TAPER_DISTANCE": ENDPOINT_TAPER_DISTANCE,
        "ENDPOINT_TERRAIN_BLEND": ENDPOINT_TERRAIN_BLEND,
        "BASELINE_WINDOW_METERS": BASELINE_WINDOW_METERS,
        "BASELINE_METHOD": BASELINE_METHOD,
        "BLEND_FUNCTION": BLEND_FUNCTION,
        "SHOULDER_SLOPE_LIMIT": SHOULDER_SLOPE_LIMIT,
        "AUTO_DETECT_RINGS": AUTO_DETECT_RINGS,
        "RING_CLOSURE_TOLERANCE": RING_CLOSURE_TOLERANCE,
        "SLOPE_CLAMP_ITERATIONS": SLOPE_CLAMP_ITERATIONS,
        "POST_SMOOTHING": POST_SMOOTHING,
        "SMOOTHING_TYPE": SMOOTHING_TYPE,
        "SMOOTHING_KERNEL_SIZE": SMOOTHING_KERNEL_SIZE,
        "SMOOTHING_SIGMA": SMOOTHING_SIGMA,
        "SMOOTHING_MASK_EXTENSION": SMOOTHING_MASK_EXTENSION,
        "SMOOTHING_ITERATIONS": SMOOTHING_ITERATIONS,
        "ROW_BATCH_SIZE": ROW_BATCH_SIZE,
        "MAX_WORKERS": MAX_WORKERS,
    }

    # Merge in geographic or authored mode values
    if GEOGRAPHIC_MODE:
        base.update(GEOGRAPHIC)
    else:
        base.update(AUTHORED)

    if overrides:
        base.update(overrides)

    return base


def validate_params(params: Dict) -> List[str]:
    """
    Check a parameter dictionary and return a list of human-readable
    problems (empty when the set is usable).
    """
    errors = []

    for key in ("DETECTION_RADIUS", "SAMPLE_SPACING", "DEFAULT_BLEND_DISTANCE",
                "ENDPOINT_TAPER_DISTANCE", "BASELINE_WINDOW_METERS"):
        if not params.get(key, 0) > 0:
            errors.append(f"{key} must be > 0 (got {params.get(key)!r})")

    if not 0 < params.get("MAX_SLOPE_DEGREES", 0) < 90:
        errors.append("MAX_SLOPE_DEGREES must be in (0, 90)")

    if not 0 <= params.get("EASE_ZONE_FRACTION", -1) <= 1:
        errors.append("EASE_ZONE_FRACTION must be in [0, 1]")

    if not 0 <= params.get("ENDPOINT_TERRAIN_BLEND", -1) <= 1:
        errors.append("ENDPOINT_TERRAIN_BLEND must be in [0, 1]")

    if params.get("INTERPOLATION") not in INTERPOLATION_MODES:
        errors.append(f"INTERPOLATION must be one of {INTERPOLATION_MODES}")

    if params.get("RING_ELEVATION_MODE") not in RING_MODES:
        errors.append(f"RING_ELEVATION_MODE must be one of {RING_MODES}")

    if params.get("BASELINE_METHOD") not in BASELINE_METHODS:
        errors.append(f"BASELINE_METHOD must be one of {BASELINE_METHODS}")

    if params.get("BLEND_FUNCTION") not in BLEND_FUNCTIONS:
        errors.append(f"BLEND_FUNCTION must be one of {BLEND_FUNCTIONS}")

    if params.get("RING_CLOSURE_TOLERANCE", -1) < 0:
        errors.append("RING_CLOSURE_TOLERANCE must be >= 0")

    if int(params.get("SLOPE_CLAMP_ITERATIONS", -1)) < 0:
        errors.append("SLOPE_CLAMP_ITERATIONS must be >= 0")

    if params.get("SMOOTHING_TYPE") not in SMOOTHING_TYPES:
        errors.append(f"SMOOTHING_TYPE must be one of {SMOOTHING_TYPES}")

    kernel = int(params.get("SMOOTHING_KERNEL_SIZE", 0))
    if kernel < 3 or kernel % 2 == 0:
        errors.append("SMOOTHING_KERNEL_SIZE must be an odd number >= 3")

    if not params.get("SMOOTHING_SIGMA", 0) > 0:
        errors.append("SMOOTHING_SIGMA must be > 0")

    if params.get("SMOOTHING_MASK_EXTENSION", -1) < 0:
        errors.append("SMOOTHING_MASK_EXTENSION must be >= 0")

    if int(params.get("SMOOTHING_ITERATIONS", 0)) < 1:
        errors.append("SMOOTHING_ITERATIONS must be >= 1")

    if int(params.get("ROW_BATCH_SIZE", 0)) < 1:
        errors.append("ROW_BATCH_SIZE must be >= 1")

    workers = params.get("MAX_WORKERS")
    if workers is not None and int(workers) < 1:
        errors.append("MAX_WORKERS must be None or >= 1")

    return errors
