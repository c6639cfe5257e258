import pytest

from civictrack.models.issue import Issue
from civictrack.services.spatial_clustering import find_issue_clusters
from civictrack.utils.geo import haversine_meters

BASE_LAT, BASE_LNG = 18.5204, 73.8567


def located(issue_id, lat_offset=0.0, lng_offset=0.0, uid=None):
    return Issue(
        id=issue_id,
        uid=uid or f"user-{issue_id}",
        coordinates={"lat": BASE_LAT + lat_offset, "lng": BASE_LNG + lng_offset},
    )


def test_haversine_one_degree_of_latitude():
    assert haversine_meters(0, 0, 1, 0) == pytest.approx(111195, rel=1e-3)
    assert haversine_meters(BASE_LAT, BASE_LNG, BASE_LAT, BASE_LNG) == 0


def test_nearby_issues_form_one_cluster():
    a = located("a")
    b = located("b", lat_offset=0.0009)  # ~100 m north

    clusters = find_issue_clusters([a, b], radius=500)

    assert len(clusters) == 1
    cluster = clusters[0]
    assert cluster.id == "cluster-a"
    assert cluster.radius == 500
    assert [issue.id for issue in cluster.issues] == ["a", "b"]
    assert cluster.center.lat == pytest.approx(BASE_LAT + 0.00045)
    assert cluster.center.lng == pytest.approx(BASE_LNG)
    assert cluster.target_user_ids == ["user-a", "user-b"]


def test_distant_issues_do_not_cluster():
    a = located("a")
    b = located("b", lat_offset=0.09)  # ~10 km

    assert find_issue_clusters([a, b], radius=500) == []


def test_radius_is_inclusive():
    a = located("a")
    b = located("b", lat_offset=0.0009)
    distance = haversine_meters(BASE_LAT, BASE_LNG, BASE_LAT + 0.0009, BASE_LNG)

    assert len(find_issue_clusters([a, b], radius=distance)) == 1


def test_issues_without_coordinates_are_skipped():
    a = located("a")
    b = located("b", lat_offset=0.0009)
    nowhere = Issue(id="c", uid="user-c")
    partial = Issue.from_document("d", {"coordinates": {"lat": BASE_LAT}})

    clusters = find_issue_clusters([nowhere, a, partial, b], radius=500)

    assert len(clusters) == 1
    assert [issue.id for issue in clusters[0].issues] == ["a", "b"]


def test_membership_depends_on_input_order():
    a = located("a")
    b = located("b", lat_offset=0.0036)  # ~400 m from a
    c = located("c", lat_offset=0.0072)  # ~400 m from b, ~800 m from a

    first = find_issue_clusters([a, b, c], radius=500)
    assert [[issue.id for issue in cluster.issues] for cluster in first] == [["a", "b"]]

    second = find_issue_clusters([b, a, c], radius=500)
    assert [[issue.id for issue in cluster.issues] for cluster in second] == [["b", "a", "c"]]
    assert second[0].id == "cluster-b"


def test_each_issue_belongs_to_at_most_one_cluster():
    issues = [located(str(i), lat_offset=0.0004 * i) for i in range(12)]

    clusters = find_issue_clusters(issues, radius=300)

    ids = [issue.id for cluster in clusters for issue in cluster.issues]
    assert len(ids) == len(set(ids))
    assert all(len(cluster.issues) >= 2 for cluster in clusters)


def test_target_users_are_distinct():
    issues = [
        located("a", uid="citizen-1"),
        located("b", lat_offset=0.0001, uid="citizen-1"),
        located("c", lng_offset=0.0001, uid="citizen-2"),
    ]

    clusters = find_issue_clusters(issues, radius=500)

    assert clusters[0].target_user_ids == ["citizen-1", "citizen-2"]


def test_empty_input():
    assert find_issue_clusters([], radius=500) == []
