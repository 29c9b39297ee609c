import logging
from typing import Dict, List, NamedTuple, Optional, Sequence, Set, Tuple

import numpy as np
from scipy.spatial import cKDTree

from road_harmonizer.config import get_active_params
from road_harmonizer.detectors.ring_detector import attach_to_ring
from road_harmonizer.errors import DegenerateJunction
from road_harmonizer.models.cross_section import CrossSection
from road_harmonizer.models.junction import Contributor, Junction, JunctionType
from road_harmonizer.models.network import RoadNetwork
from road_harmonizer.utils.clustering import deduplicate_close_points, group_by_links
from road_harmonizer.utils.geometry import centroid, polyline_intersections, project_onto_polyline


logger = logging.getLogger(__name__)


# ----------------------------------------------------------------------
# 1. SPATIAL INDEX & ENDPOINTS
# ----------------------------------------------------------------------

class SectionIndex(NamedTuple):
    tree: cKDTree
    handles: np.ndarray


def build_section_index(network: RoadNetwork) -> Optional[SectionIndex]:
    """
    KD-tree over every cross-section center of every active road; row k of
    the tree is section handle `handles[k]`. None for an empty network.
    """
    handles = [cs.index for rid in network.active_road_ids() for cs in network.sections_of(rid)]
    if not handles:
        return None
    points = np.array([network.section(h).position for h in handles], dtype=float)
    return SectionIndex(cKDTree(points), np.array(handles, dtype=np.int64))


def collect_endpoints(network: RoadNetwork) -> List[int]:
    """
    Handles of the first and last section of every open road, in road order.
    Rings have no endpoints.
    """
    handles = []
    for rid in network.active_road_ids():
        if network.is_closed(rid):
            continue
        ids = network.road_sections[rid]
        handles.append(ids[0])
        handles.append(ids[-1])
    return handles


# ----------------------------------------------------------------------
# 2. ENDPOINT MATCHING (Y / X / T / ring attachment candidates)
# ----------------------------------------------------------------------

def nearest_other_road_section(
    network: RoadNetwork,
    index: Optional[SectionIndex],
    endpoint: CrossSection,
    radius: float,
) -> Optional[CrossSection]:
    """
    Closest section of any *other* road within `radius` of an endpoint.

    Equidistant candidates resolve to the higher-priority road, then to the
    lower road id, then to the lower section index.
    """
    if index is None:
        return None

    best = None
    best_key = None
    x, y = endpoint.position
    for k in index.tree.query_ball_point((x, y), radius):
        cs = network.section(int(index.handles[k]))
        if cs.road_id == endpoint.road_id:
            continue
        dist = float(np.hypot(cs.position[0] - x, cs.position[1] - y))
        key = (round(dist, 9), -network.priority(cs.road_id), cs.road_id, cs.local_index)
        if best_key is None or key < best_key:
            best, best_key = cs, key
    return best


def match_endpoints(network: RoadNetwork, index: Optional[SectionIndex], endpoints: List[int], radius: float):
    """
    Decide, for each endpoint, what its nearest match on another road is.

    Returns
    -------
    links : list[(int, int)]
        Pairs of positions in `endpoints` whose nearest match is the other's
        endpoint (simple joins).
    candidates : dict[int, (int, bool)]
        endpoint position -> (matched interior section handle, on_ring).
    """
    position_of: Dict[int, int] = {h: k for k, h in enumerate(endpoints)}
    links: List[Tuple[int, int]] = []
    candidates: Dict[int, Tuple[int, bool]] = {}

    for k, handle in enumerate(endpoints):
        endpoint = network.section(handle)
        match = nearest_other_road_section(network, index, endpoint, radius)
        if match is None:
            continue

        if network.is_closed(match.road_id):
            candidates[k] = (match.index, True)
        elif match.is_endpoint:
            links.append((k, position_of[match.index]))
        else:
            candidates[k] = (match.index, False)

    return links, candidates


# ----------------------------------------------------------------------
# 3. CLASSIFICATION
# ----------------------------------------------------------------------

def classify_contributors(contributors: List[Contributor]) -> JunctionType:
    """
    Topological class of a set of contributors.

        1 contributor            -> ENDPOINT
        any ring contributor     -> RING
        any continuous road      -> T_JUNCTION
        all endpoints, 2 roads   -> Y_JUNCTION
        all endpoints, 3-4 roads -> CROSSROADS
        all endpoints, 5+ roads  -> COMPLEX
    """
    if len(contributors) == 1:
        return JunctionType.ENDPOINT
    if any(c.on_ring for c in contributors):
        return JunctionType.RING
    if any(c.is_continuous for c in contributors):
        return JunctionType.T_JUNCTION

    roads = len({c.road_id for c in contributors})
    if roads <= 2:
        return JunctionType.Y_JUNCTION
    if roads <= 4:
        return JunctionType.CROSSROADS
    return JunctionType.COMPLEX


def _closest_section(network: RoadNetwork, road_id: int, point) -> int:
    pts = network.positions(road_id)
    k = int(np.argmin(np.hypot(pts[:, 0] - point[0], pts[:, 1] - point[1])))
    return network.road_sections[road_id][k]


def _foot_point(network: RoadNetwork, road_id: int, point) -> Tuple[Tuple[float, float], float]:
    pts = network.positions(road_id)
    dist = network.distances(road_id)
    along, _, _ = project_onto_polyline(pts, dist, point)
    foot = (float(np.interp(along, dist, pts[:, 0])), float(np.interp(along, dist, pts[:, 1])))
    return foot, along


def _dead_end(network: RoadNetwork, handle: int) -> Junction:
    cs = network.section(handle)
    return Junction(
        junction_id=-1,
        position=cs.position,
        type=JunctionType.ENDPOINT,
        contributors=[Contributor(cs.road_id, handle, True, contact_distance=cs.distance)],
    )


def resolve_endpoint_group(
    network: RoadNetwork,
    endpoints: List[int],
    group: List[int],
    candidates: Dict[int, Tuple[int, bool]],
) -> List[Junction]:
    """
    Turn one group of linked endpoints into junction(s).

    Parameters
    ----------
    endpoints : list[int]
        All endpoint handles (positions in `group` index into it).
    group : list[int]
        Positions of the endpoints linked together.
    candidates : dict
        Interior matches found during endpoint matching.

    Returns
    -------
    list[Junction]
        Normally one junction. A group in which one road contributes both of
        its ends is degenerate: it is dropped and each endpoint becomes an
        independent dead end.
    """
    handles = [endpoints[k] for k in group]
    sections = [network.section(h) for h in handles]
    roads = [cs.road_id for cs in sections]

    if len(group) > 1 and len(set(roads)) < len(roads):
        looped = sorted({r for r in roads if roads.count(r) > 1})
        network.record(DegenerateJunction(
            f"road(s) {looped} meet themselves at {sections[0].position}; "
            f"contributors treated independently"))
        return [_dead_end(network, h) for h in handles]

    center = centroid([cs.position for cs in sections])

    contributors = [Contributor(cs.road_id, cs.index, True, contact_distance=cs.distance) for cs in sections]

    # continuous roads, one contributor per road, closest section to the group
    continuous_roads: List[Tuple[int, bool]] = []
    for k in group:
        if k not in candidates:
            continue
        handle, on_ring = candidates[k]
        rid = network.section(handle).road_id
        if rid in roads or any(rid == r for r, _ in continuous_roads):
            continue
        continuous_roads.append((rid, on_ring))

    for rid, on_ring in continuous_roads:
        contributors.append(Contributor(rid, _closest_section(network, rid, center), False, on_ring=on_ring))

    jtype = classify_contributors(contributors)
    junction = Junction(junction_id=-1, position=center, type=jtype, contributors=contributors)

    if jtype in (JunctionType.T_JUNCTION, JunctionType.RING):
        primary = primary_continuous(network, junction)
        junction.position, _ = _foot_point(network, primary.road_id, center)
        for c in junction.continuous():
            foot, c.contact_distance = _foot_point(network, c.road_id, center)
            c.section = _closest_section(network, c.road_id, foot)
        if jtype is JunctionType.RING:
            ring = next(c for c in junction.continuous() if c.on_ring)
            attach_to_ring(junction, network, ring.road_id)

    return [junction]


def primary_continuous(network: RoadNetwork, junction: Junction) -> Contributor:
    """
    The continuous contributor that defines the junction surface: a ring
    first, then the highest priority, then the lowest road id.
    """
    return max(junction.continuous(),
               key=lambda c: (c.on_ring,) + network.priority_key(c.road_id))


# ----------------------------------------------------------------------
# 4. MID-CURVE CROSSINGS
# ----------------------------------------------------------------------

SHARED_ENDPOINT_TYPES = (JunctionType.Y_JUNCTION, JunctionType.CROSSROADS, JunctionType.COMPLEX)


def _road_pairs(junction: Junction):
    ids = sorted(junction.road_ids)
    for a in range(len(ids)):
        for b in range(a + 1, len(ids)):
            yield ids[a], ids[b]


def connected_pairs(junctions: List[Junction]) -> Set[Tuple[int, int]]:
    """
    Road pairs joined end to end (Y, crossroads, complex). Such pairs never
    get an extra crossing.
    """
    pairs = set()
    for j in junctions:
        if j.type in SHARED_ENDPOINT_TYPES:
            pairs.update(_road_pairs(j))
    return pairs


def contact_points(junctions: List[Junction]) -> Dict[Tuple[int, int], List[Tuple[float, float]]]:
    """
    Positions of the T and ring junctions joining each road pair. Only
    intersections near these points belong to the existing junction.
    """
    points: Dict[Tuple[int, int], List[Tuple[float, float]]] = {}
    for j in junctions:
        if j.type in (JunctionType.T_JUNCTION, JunctionType.RING):
            for pair in _road_pairs(j):
                points.setdefault(pair, []).append(j.position)
    return points


def detect_crossings(network: RoadNetwork, existing: List[Junction], radius: float) -> List[Junction]:
    """
    Crossing junctions between roads that do not already meet there.

    Every intersection of two sampled polylines becomes a CROSSING with both
    roads pass-through. Intersections within half the detection radius of
    an earlier crossing are merged into it. Pairs that run collinear over
    each other are degenerate and skipped. Roads sharing an endpoint
    junction are skipped entirely; roads meeting at a T or ring junction
    only lose the intersections within `radius` of that junction.
    """
    skip = connected_pairs(existing)
    near = contact_points(existing)
    active = network.active_road_ids()

    polylines = {rid: network.positions(rid) for rid in active}
    distances = {rid: network.distances(rid) for rid in active}
    boxes = {rid: (polylines[rid].min(axis=0), polylines[rid].max(axis=0)) for rid in active}

    crossings: List[Junction] = []
    recorded: List[Tuple[float, float]] = []
    merge_tolerance = 0.5 * radius

    for ai, a in enumerate(active):
        for b in active[ai + 1:]:
            if (a, b) in skip:
                continue
            (amin, amax), (bmin, bmax) = boxes[a], boxes[b]
            if np.any(amax < bmin) or np.any(bmax < amin):
                continue

            hits, overlaps = polyline_intersections(polylines[a], polylines[b])
            if overlaps:
                network.record(DegenerateJunction(
                    f"roads {a} and {b} overlap along {overlaps} segment pair(s); no crossing recorded"))
                continue
            if not hits:
                continue

            for k in deduplicate_close_points([(h[0], h[1]) for h in hits], merge_tolerance):
                x, y, i, ta, j, tb = hits[k]
                if any(np.hypot(x - px, y - py) <= radius for px, py in near.get((a, b), ())):
                    continue
                if any(np.hypot(x - px, y - py) <= merge_tolerance for px, py in recorded):
                    continue
                recorded.append((x, y))

                da, db = distances[a], distances[b]
                contributors = [
                    Contributor(a, network.road_sections[a][i if ta < 0.5 else i + 1], False,
                                contact_distance=float(da[i] + ta * (da[i + 1] - da[i]))),
                    Contributor(b, network.road_sections[b][j if tb < 0.5 else j + 1], False,
                                contact_distance=float(db[j] + tb * (db[j + 1] - db[j]))),
                ]
                crossings.append(Junction(
                    junction_id=-1,
                    position=(x, y),
                    type=JunctionType.CROSSING,
                    contributors=contributors,
                ))

    return crossings


# ----------------------------------------------------------------------
# 5. FULL DETECTION PASS
# ----------------------------------------------------------------------

def detect_junctions(network: RoadNetwork, params=None) -> List[Junction]:
    """
    Find and classify every meeting point of the network.

    Pass 1 matches road endpoints against other roads' sections within the
    detection radius (dead ends, T, Y, crossroads, complex meets and ring
    attachments). Pass 2 finds mid-curve crossings between roads that do not
    already meet. The junction list is stored on the network and returned;
    no elevation is assigned here.

    Parameters
    ----------
    network : RoadNetwork
        Sampled network.
    params : dict, optional
        Active parameters (DETECTION_RADIUS).

    Returns
    -------
    list[Junction]
        Junctions with ids 0..n-1 in detection order.
    """
    if params is None:
        params = get_active_params()
    radius = params["DETECTION_RADIUS"]

    index = build_section_index(network)
    endpoints = collect_endpoints(network)
    links, candidates = match_endpoints(network, index, endpoints, radius)

    junctions: List[Junction] = []
    for group in group_by_links(len(endpoints), links):
        junctions.extend(resolve_endpoint_group(network, endpoints, group, candidates))

    junctions.extend(detect_crossings(network, junctions, radius))

    for jid, junction in enumerate(junctions):
        junction.junction_id = jid

    network.junctions = junctions

    logger.info("Detected %d junctions: %s", len(junctions),
                ", ".join(f"{k}={v}" for k, v in sorted(network.junction_counts().items())) or "none")
    return junctions


# ----------------------------------------------------------------------
# 6. CALLER EXCLUSIONS
# ----------------------------------------------------------------------

def exclude_junctions(
    network: RoadNetwork,
    points: Sequence[Tuple[float, float]],
    radius: Optional[float] = None,
    reason: str = "excluded by caller",
    params=None,
) -> List[Junction]:
    """
    Mark every detected junction lying within `radius` of one of `points`
    as excluded. The harmonizer skips excluded junctions, so the roads
    meeting there keep their raw elevations at that location.

    Parameters
    ----------
    points : sequence of (x, y)
        World positions supplied by the caller.
    radius : float, optional
        Match distance; DETECTION_RADIUS when omitted.
    reason : str
        Stored on each excluded junction.

    Returns
    -------
    list[Junction]
        The newly excluded junctions, in id order.
    """
    if params is None:
        params = get_active_params()
    if radius is None:
        radius = params["DETECTION_RADIUS"]

    points = np.asarray(points, dtype=float).reshape(-1, 2)
    if len(points) == 0 or not network.junctions:
        return []

    tree = cKDTree(points)
    excluded = []
    for j in network.junctions:
        if j.excluded or not tree.query_ball_point(j.position, radius):
            continue
        j.excluded = True
        j.exclusion_reason = reason
        excluded.append(j)

    logger.info("Excluded %d of %d junctions near %d caller point(s)",
                len(excluded), len(network.junctions), len(points))
    return excluded
