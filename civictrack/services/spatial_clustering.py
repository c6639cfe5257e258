"""
Spatial clustering of open issues for hotspot survey targeting.

Seed/star grouping, not transitive density clustering:
- issues are visited in input order
- each unvisited issue seeds a group and claims every unvisited issue
  within `radius` meters of the seed (haversine distance)
- groups of at least two issues become clusters centred on the mean of
  their members' coordinates; singletons are dropped

Membership depends on input order: the same issues in a different order can
produce different clusters. Output is deterministic for a fixed order.
Issues without coordinates are skipped. O(n^2); no shared state.
"""

from typing import List, Optional

from civictrack.core.settings import settings
from civictrack.models.issue import Cluster, Coordinates, Issue
from civictrack.utils.geo import haversine_meters

MIN_CLUSTER_SIZE = 2


def find_issue_clusters(issues: List[Issue], radius: Optional[float] = None) -> List[Cluster]:
    """
    Group issues lying within `radius` meters of a seed issue.

    Args:
        issues: Open issues, in the order seeds should be tried
        radius: Grouping radius in meters (defaults to CLUSTER_RADIUS_METERS)

    Returns:
        Transient list of clusters (never persisted)
    """
    radius = settings.CLUSTER_RADIUS_METERS if radius is None else radius
    located = [issue for issue in issues if issue.coordinates is not None]

    clusters: List[Cluster] = []
    visited = set()

    for seed_index, seed in enumerate(located):
        if seed_index in visited:
            continue
        visited.add(seed_index)
        members = [seed]

        for index, neighbor in enumerate(located):
            if index in visited:
                continue
            distance = haversine_meters(
                seed.coordinates.lat, seed.coordinates.lng,
                neighbor.coordinates.lat, neighbor.coordinates.lng,
            )
            if distance <= radius:
                members.append(neighbor)
                visited.add(index)

        if len(members) < MIN_CLUSTER_SIZE:
            continue

        clusters.append(Cluster(
            id=f"cluster-{seed.id if seed.id is not None else seed_index}",
            center=Coordinates(
                lat=sum(member.coordinates.lat for member in members) / len(members),
                lng=sum(member.coordinates.lng for member in members) / len(members),
            ),
            radius=radius,
            issues=members,
            target_user_ids=_distinct_reporters(members),
        ))

    return clusters


def _distinct_reporters(members: List[Issue]) -> List[str]:
    seen = []
    for member in members:
        if member.uid and member.uid not in seen:
            seen.append(member.uid)
    return seen
