"""
This module provides:
    • cluster_points_radius()
    • group_by_links()
    • deduplicate_close_points()
"""

from typing import List, Iterable, Tuple
from collections import deque

import numpy as np
from scipy.spatial import cKDTree


# -------------------------------------------------------------------------
#  RADIUS CLUSTERING (point-based)
# -------------------------------------------------------------------------

def cluster_points_radius(points: List[Tuple[float, float]], radius: float) -> List[List[int]]:
    """
    Groups points that lie within a given Euclidean radius of each other,
    transitively. Returns index clusters; each cluster is sorted and
    clusters are ordered by their first index.
    """
    if len(points) == 0:
        return []

    tree = cKDTree(np.asarray(points, dtype=float).reshape(-1, 2))
    links = sorted(tree.query_pairs(radius))

    return group_by_links(len(points), links)


# -------------------------------------------------------------------------
#  CONNECTED COMPONENT GROUPING (BFS over explicit links)
# -------------------------------------------------------------------------

def group_by_links(count: int, links: Iterable[Tuple[int, int]]) -> List[List[int]]:
    """
    Connected components of the graph with nodes 0..count-1 and the given
    undirected links. Singletons are returned as one-element groups.

    Used for:
        - grouping road endpoints that matched each other into one junction
        - merging near-duplicate crossing points
    """
    adjacency = [[] for _ in range(count)]
    for a, b in links:
        adjacency[a].append(b)
        adjacency[b].append(a)

    visited = set()
    groups = []

    for i in range(count):
        if i in visited:
            continue

        queue = deque([i])
        comp = []

        while queue:
            idx = queue.popleft()
            if idx in visited:
                continue
            visited.add(idx)
            comp.append(idx)

            for j in adjacency[idx]:
                if j not in visited:
                    queue.append(j)

        groups.append(sorted(comp))

    return groups


# -------------------------------------------------------------------------
#  POINT DEDUPLICATION
# -------------------------------------------------------------------------

def deduplicate_close_points(points: List[Tuple[float, float]], tolerance: float) -> List[int]:
    """
    Indices of the points to keep when points closer than `tolerance`
    are merged; the first point (lowest index) of each cluster survives.
    """
    return [cluster[0] for cluster in cluster_points_radius(points, tolerance)]
