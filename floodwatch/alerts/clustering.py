"""
clustering.py — Greedy seed-based proximity grouping of reports.

Algorithm
=========
Walk the reports in input order. Each report not yet assigned seeds a new
group, which then absorbs every *later* unassigned report lying within
``radius_m`` of the **seed** (not of a running centroid):

    for i, seed in enumerate(reports):
        if assigned[i]: continue
        group = [seed]
        for j > i, not assigned[j]:
            if haversine(seed, reports[j]) ≤ radius_m: group.append(reports[j])

Properties:
    • Deterministic for a given input order.
    • Order-dependent and NOT transitive: A–B and B–C may be close while
      A–C is not, and which groups form depends on which report seeds first.
"""

from __future__ import annotations

from typing import List, Sequence

from floodwatch.alerts.models import Report
from floodwatch.spatial.geo_math import is_within_radius

DEFAULT_CLUSTER_RADIUS_M = 500.0


def cluster(
    reports: Sequence[Report],
    radius_m: float = DEFAULT_CLUSTER_RADIUS_M,
) -> List[List[Report]]:
    """
    Group reports around seed reports.

    Parameters
    ----------
    reports : sequence of Report
        Candidate reports, already filtered for freshness.
    radius_m : float
        Maximum distance from a group's seed report.

    Returns
    -------
    list of list of Report
        Groups in seed order; every input report appears exactly once.

    Examples
    --------
    >>> cluster([])
    []
    """
    groups: List[List[Report]] = []
    assigned = [False] * len(reports)

    for i, seed in enumerate(reports):
        if assigned[i]:
            continue

        group = [seed]
        assigned[i] = True

        for j in range(i + 1, len(reports)):
            if assigned[j]:
                continue
            if is_within_radius(seed.location, reports[j].location, radius_m):
                group.append(reports[j])
                assigned[j] = True

        groups.append(group)

    return groups
