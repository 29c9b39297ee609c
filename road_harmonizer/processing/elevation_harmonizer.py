"""
Elevation harmonizer: junction-aware override of the raw road profiles.

This module provides:
    • approach_adjusted_slope(slope, tangent, approach)
    • assign_roles(network)
    • resolve_junction(network, junction, profiles, ...)
    • harmonize_network(network, heightmap, cell_size, params, executor, cancel)

Roads are processed in descending priority tiers. A junction's elevation is
computed once, when the highest tier among its adapting roads is reached.
Inside a tier the work runs in rounds: a junction is resolved once the road
holding its elevation is final, and a road is rewritten once every junction
it adapts to is resolved. Each road only touches its own sections.
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np

from road_harmonizer.config import get_active_params
from road_harmonizer.detectors.junction_detector import primary_continuous
from road_harmonizer.detectors.ring_detector import ring_road_ids
from road_harmonizer.models.junction import Contributor, Junction, JunctionType
from road_harmonizer.models.network import RoadNetwork
from road_harmonizer.processing.profiles import (
    Influence,
    ReferenceProfile,
    clamp_slopes,
    combine_influences,
    dead_end_profile,
    junction_profile,
)
from road_harmonizer.utils.geometry import centroid, finite_difference_slope, unit
from road_harmonizer.utils.terrain import sample_heightmap
from road_harmonizer.utils.workers import check_cancel, map_ordered


logger = logging.getLogger(__name__)

APPROACH_LOOKBACK = 3


@dataclass
class HarmonizationStats:
    junctions_resolved: int = 0
    sections_modified: int = 0
    max_change: float = 0.0


# ----------------------------------------------------------------------
# 1. SLOPE HELPERS
# ----------------------------------------------------------------------

def approach_adjusted_slope(slope: float, tangent, approach) -> float:
    """
    Slope of the continuous road as read from the terminating road.

    `approach` points from the contact point back along the terminating
    road. When it runs against the continuous road's tangent, the uphill
    direction of the continuous road is downhill for the terminating road,
    so the sign flips.
    """
    if float(np.dot(tangent, approach)) < 0.0:
        return -slope
    return slope


def _approach_vector(network: RoadNetwork, contributor: Contributor) -> np.ndarray:
    """
    From an endpoint back into its own road, a few samples deep.
    """
    handles = network.road_sections[contributor.road_id]
    endpoint = network.section(contributor.section)
    step = min(APPROACH_LOOKBACK, len(handles) - 1)
    inner = handles[step] if endpoint.is_start else handles[-1 - step]
    inner_pos = network.section(inner).position
    return np.array([inner_pos[0] - endpoint.position[0], inner_pos[1] - endpoint.position[1]])


def _inward_direction(network: RoadNetwork, contributor: Contributor) -> int:
    return 1 if network.section(contributor.section).is_start else -1


# ----------------------------------------------------------------------
# 2. ROLES (who holds the junction elevation, who adapts)
# ----------------------------------------------------------------------

def assign_roles(network: RoadNetwork) -> Dict[int, Optional[Contributor]]:
    """
    Mark adapting contributors on every junction.

    Returns:
        junction id -> dominant contributor (None when every road adapts)
    """
    dominant: Dict[int, Optional[Contributor]] = {}

    for j in network.junctions:
        if j.excluded:
            continue
        for c in j.contributors:
            c.adapts = False

        top: Optional[Contributor] = None
        match j.type:
            case JunctionType.ENDPOINT:
                pass

            case JunctionType.T_JUNCTION | JunctionType.RING:
                top = primary_continuous(network, j)
                if j.type is JunctionType.T_JUNCTION:
                    strongest = max(j.endpoints(), key=lambda c: network.priority_key(c.road_id))
                    if network.priority(strongest.road_id) > network.priority(top.road_id):
                        top = strongest

            case JunctionType.Y_JUNCTION | JunctionType.CROSSROADS | JunctionType.COMPLEX:
                best = max(network.priority(c.road_id) for c in j.contributors)
                leaders = [c for c in j.contributors if network.priority(c.road_id) == best]
                if len({c.road_id for c in leaders}) == 1:
                    top = leaders[0]

            case JunctionType.CROSSING:
                pass

            case _:
                raise ValueError(f"unhandled junction type {j.type}")

        for c in j.contributors:
            c.adapts = top is None or c.road_id != top.road_id
        dominant[j.junction_id] = top

    return dominant


def junction_tier(network: RoadNetwork, junction: Junction) -> int:
    adapting = junction.adapting() or junction.contributors
    return max(network.priority(c.road_id) for c in adapting)


# ----------------------------------------------------------------------
# 3. JUNCTION ELEVATIONS
# ----------------------------------------------------------------------

class _Profiles:
    """
    Current per-road elevation arrays plus cached running distances.
    Read-only while junctions of a tier are resolved.
    """

    def __init__(self, network: RoadNetwork):
        self.network = network
        self.values: Dict[int, np.ndarray] = {}
        self.distances: Dict[int, np.ndarray] = {}
        for rid in network.active_road_ids():
            self.values[rid] = network.elevations(rid)
            self.distances[rid] = network.distances(rid)

    def reference(self, rid: int) -> ReferenceProfile:
        return ReferenceProfile(self.distances[rid], self.values[rid])

    def value_at(self, rid: int, d: float) -> float:
        return float(self.reference(rid).value(d))

    def slope_at(self, rid: int, d: float) -> float:
        return float(self.reference(rid).slope(d))


def _surface_elevation(network: RoadNetwork, profiles: _Profiles, continuous: Contributor, point) -> Tuple[float, float]:
    """
    Elevation of the continuous road's surface at `point`, extrapolated from
    its nearest section with the local finite-difference slope.

    Returns:
        (elevation, slope along increasing running distance)
    """
    cs = network.section(continuous.section)
    values = profiles.values[continuous.road_id]
    slope = finite_difference_slope(profiles.distances[continuous.road_id], values, cs.local_index)

    base = values[cs.local_index]
    if not math.isfinite(base):
        base = profiles.value_at(continuous.road_id, cs.distance)

    offset = (point[0] - cs.position[0]) * cs.tangent[0] + (point[1] - cs.position[1]) * cs.tangent[1]
    return float(base + slope * offset), slope


def _blend_distance(network: RoadNetwork, rid: int, difference: float, params) -> float:
    """
    |difference| / tan(max slope), never below the road's default.
    """
    road = network.roads[rid]
    default = road.junction_blend_distance or params["DEFAULT_BLEND_DISTANCE"]
    needed = abs(difference) / math.tan(math.radians(road.max_slope_deg))
    return max(default, needed)


def _natural_slopes(network: RoadNetwork, profiles: _Profiles, j: Junction):
    """
    Local slope for adapting contributors that follow their own gradient:
    outward for endpoints, along running distance for pass-through roads.
    """
    for c in j.contributors:
        if not c.adapts or math.isfinite(c.local_slope):
            continue
        g = profiles.slope_at(c.road_id, c.contact_distance)
        c.local_slope = _inward_direction(network, c) * g if c.is_endpoint else g


def _weighted_average(network: RoadNetwork, values: List[float], roads: List[int], power: int) -> float:
    weights = np.array([(1.0 + network.priority_rank(r)) ** power for r in roads])
    return float(np.dot(weights, values) / weights.sum())


def resolve_junction(
    network: RoadNetwork,
    junction: Junction,
    dominant: Optional[Contributor],
    profiles: _Profiles,
    heightmap: np.ndarray,
    cell_size: float,
    params,
    ring_levels: Dict[int, float],
) -> Junction:
    """
    Compute the harmonized elevation of one junction and annotate its
    adapting contributors with start slope and blend distance.
    """
    j = junction
    for c in j.contributors:
        if not math.isfinite(c.contact_distance):
            c.contact_distance = network.section(c.section).distance
        c.local_slope = math.nan

    match j.type:
        case JunctionType.ENDPOINT:
            c = j.contributors[0]
            terminal = profiles.value_at(c.road_id, c.contact_distance)
            terrain = float(sample_heightmap(heightmap, cell_size, [j.position])[0])
            k = params["ENDPOINT_TERRAIN_BLEND"]
            j.harmonized_elevation = terminal * (1.0 - k) + terrain * k if math.isfinite(terrain) else terminal
            c.blend_distance = params["ENDPOINT_TAPER_DISTANCE"]
            c.local_slope = _inward_direction(network, c) * profiles.slope_at(c.road_id, c.contact_distance)
            j.blend_distance = c.blend_distance
            return j

        case JunctionType.T_JUNCTION | JunctionType.RING:
            if dominant is not None and dominant.is_continuous:
                point = centroid([network.section(c.section).position for c in j.endpoints()])
                if j.ring_road_id is not None and j.ring_road_id in ring_levels:
                    height, slope = ring_levels[j.ring_road_id], 0.0
                else:
                    height, slope = _surface_elevation(network, profiles, dominant, point)
                j.harmonized_elevation = height
                dominant.local_slope = slope

                tangent = np.array(network.section(dominant.section).tangent)
                for c in j.endpoints():
                    approach = _approach_vector(network, c)
                    adjusted = approach_adjusted_slope(slope, tangent, approach)
                    alignment = abs(float(np.dot(tangent, unit(approach))))
                    c.local_slope = adjusted * alignment
            else:
                j.harmonized_elevation = profiles.value_at(dominant.road_id, dominant.contact_distance)

        case JunctionType.Y_JUNCTION | JunctionType.CROSSROADS | JunctionType.COMPLEX:
            if dominant is not None:
                j.harmonized_elevation = profiles.value_at(dominant.road_id, dominant.contact_distance)
            else:
                best = max(network.priority(c.road_id) for c in j.contributors)
                leaders = [c for c in j.contributors if network.priority(c.road_id) == best]
                values = [profiles.value_at(c.road_id, c.contact_distance) for c in leaders]
                j.harmonized_elevation = _weighted_average(network, values, [c.road_id for c in leaders], 1)

        case JunctionType.CROSSING:
            values = [profiles.value_at(c.road_id, c.contact_distance) for c in j.contributors]
            j.harmonized_elevation = _weighted_average(network, values, [c.road_id for c in j.contributors], 2)

        case _:
            raise ValueError(f"unhandled junction type {j.type}")

    _natural_slopes(network, profiles, j)

    for c in j.adapting():
        own = profiles.value_at(c.road_id, c.contact_distance)
        c.blend_distance = _blend_distance(network, c.road_id, j.harmonized_elevation - own, params)

    adapting = [c.blend_distance for c in j.adapting()]
    j.blend_distance = max(adapting) if adapting else params["DEFAULT_BLEND_DISTANCE"]
    return j


# ----------------------------------------------------------------------
# 4. RINGS
# ----------------------------------------------------------------------

def level_rings(network: RoadNetwork, profiles: _Profiles, heightmap: np.ndarray,
                cell_size: float, params) -> Dict[int, float]:
    """
    Level every ring that holds one uniform elevation: the mean terrain
    under the ring (weight 1) averaged with its connectors' endpoint
    elevations (weight sqrt(1 + priority rank)).

    Returns:
        ring road id -> uniform elevation
    """
    levels: Dict[int, float] = {}
    uniform_mode = params["RING_ELEVATION_MODE"] == "uniform"

    for rid in ring_road_ids(network):
        if not (uniform_mode or network.roads[rid].force_uniform_ring):
            continue

        terrain = sample_heightmap(heightmap, cell_size, network.positions(rid))
        terrain = terrain[np.isfinite(terrain)]
        total, weight = (float(terrain.mean()), 1.0) if terrain.size else (0.0, 0.0)

        for j in network.junctions:
            if j.type is not JunctionType.RING or j.ring_road_id != rid or j.excluded:
                continue
            for c in j.endpoints():
                w = math.sqrt(1.0 + network.priority_rank(c.road_id))
                total += w * profiles.value_at(c.road_id, c.contact_distance)
                weight += w

        if weight == 0.0:
            finite = profiles.values[rid][np.isfinite(profiles.values[rid])]
            level = float(finite.mean())
        else:
            level = total / weight

        values = profiles.values[rid]
        values[np.isfinite(values)] = level
        network.write_elevations(rid, values)
        levels[rid] = level
        logger.debug("Ring %s leveled to %.3f m", network.roads[rid].label(rid), level)

    return levels


# ----------------------------------------------------------------------
# 5. PROPAGATION
# ----------------------------------------------------------------------

def road_influences(network: RoadNetwork, rid: int, links: List[Tuple[Junction, Contributor]],
                    profiles: _Profiles, params) -> List[Influence]:
    """
    Every junction profile that rewrites part of road `rid`.
    """
    distances = profiles.distances[rid]
    ref = profiles.reference(rid)
    ease = params["EASE_ZONE_FRACTION"]
    found = []

    for j, c in links:
        if not c.adapts or not j.is_resolved:
            continue

        if j.type is JunctionType.ENDPOINT:
            inf = dead_end_profile(ref, distances, c.contact_distance, _inward_direction(network, c),
                                   j.harmonized_elevation, c.blend_distance)
            if inf is not None:
                found.append(inf)
            continue

        if c.is_endpoint:
            runs = [(_inward_direction(network, c), c.local_slope)]
        else:
            runs = [(1, c.local_slope), (-1, -c.local_slope)]

        for direction, start_slope in runs:
            inf = junction_profile(ref, distances, c.contact_distance, direction,
                                   j.harmonized_elevation, start_slope, c.blend_distance, ease)
            if inf is not None:
                found.append(inf)

    return found


def propagate_road(network: RoadNetwork, rid: int, links, profiles: _Profiles, params) -> np.ndarray:
    """
    New elevation profile for one road: combined junction influences,
    then the per-step slope clamp on the rewritten samples.
    """
    base = profiles.values[rid]
    influences = road_influences(network, rid, links, profiles, params)
    if not influences:
        return base.copy()

    values, touched = combine_influences(base, influences)
    values[~np.isfinite(base)] = np.nan

    free = touched.copy()
    for inf in influences:
        if inf.anchor is not None:
            free[inf.anchor] = False

    max_slope = math.tan(math.radians(network.roads[rid].max_slope_deg))
    return clamp_slopes(profiles.distances[rid], values, max_slope, free, int(params["SLOPE_CLAMP_ITERATIONS"]))


# ----------------------------------------------------------------------
# 6. FULL PASS
# ----------------------------------------------------------------------

def harmonize_network(
    network: RoadNetwork,
    heightmap: np.ndarray,
    cell_size: float,
    params=None,
    executor=None,
    cancel=None,
) -> HarmonizationStats:
    """
    Resolve every junction elevation and rewrite the affected road profiles.

    Parameters
    ----------
    network : RoadNetwork
        Network with raw elevations and detected junctions.
    heightmap : np.ndarray
        Terrain, read only (dead-end fades and ring leveling).
    cell_size : float
        Meters per heightmap cell.
    params : dict, optional
    executor : concurrent.futures.Executor, optional
        Pool for per-junction and per-road work inside a tier.
    cancel : object with is_set(), optional
        Checked between priority tiers.

    Returns
    -------
    HarmonizationStats
    """
    if params is None:
        params = get_active_params()

    stats = HarmonizationStats()
    profiles = _Profiles(network)
    raw = {rid: values.copy() for rid, values in profiles.values.items()}

    dominant = assign_roles(network)
    ring_levels = level_rings(network, profiles, heightmap, cell_size, params)

    junctions = [j for j in network.junctions if not j.excluded]
    links: Dict[int, List[Tuple[Junction, Contributor]]] = {rid: [] for rid in profiles.values}
    for j in junctions:
        for c in j.contributors:
            if c.road_id in links:
                links[c.road_id].append((j, c))

    tiers = sorted({network.priority(rid) for rid in profiles.values}, reverse=True)
    tier_of = {j.junction_id: junction_tier(network, j) for j in junctions}

    for tier in tiers:
        check_cancel(cancel, "harmonization")

        due = [j for j in junctions if tier_of[j.junction_id] == tier]
        pending = [rid for rid in profiles.values if network.priority(rid) == tier]
        rounds = 0

        while due or pending:
            waiting = set(pending)
            unresolved = {j.junction_id for j in due}

            ready = [j for j in due
                     if dominant[j.junction_id] is None or dominant[j.junction_id].road_id not in waiting]
            roads = [rid for rid in pending
                     if not any(c.adapts and j.junction_id in unresolved for j, c in links[rid])]

            if not ready and not roads:
                # cyclic dependency inside the tier: resolve from current profiles
                logger.debug("Priority tier %d: %d junctions resolved without final holders", tier, len(due))
                ready = due

            if ready:
                map_ordered(executor,
                            lambda j: resolve_junction(network, j, dominant[j.junction_id], profiles,
                                                       heightmap, cell_size, params, ring_levels),
                            ready)
                stats.junctions_resolved += len(ready)
                done = {j.junction_id for j in ready}
                due = [j for j in due if j.junction_id not in done]
                unresolved -= done
                roads = [rid for rid in pending
                         if not any(c.adapts and j.junction_id in unresolved for j, c in links[rid])]

            results = map_ordered(executor,
                                  lambda rid: propagate_road(network, rid, links[rid], profiles, params),
                                  roads)
            for rid, values in zip(roads, results):
                profiles.values[rid] = values
                network.write_elevations(rid, values)

            finished = set(roads)
            pending = [rid for rid in pending if rid not in finished]
            rounds += 1

        logger.debug("Priority tier %d: settled in %d rounds", tier, rounds)

    for rid, values in profiles.values.items():
        delta = np.abs(values - raw[rid])
        delta = delta[np.isfinite(delta)]
        changed = delta > 1e-9
        stats.sections_modified += int(np.count_nonzero(changed))
        if changed.any():
            stats.max_change = max(stats.max_change, float(delta.max()))

    logger.info("Harmonized %d junctions, %d sections modified (max change %.2f m)",
                stats.junctions_resolved, stats.sections_modified, stats.max_change)
    return stats
