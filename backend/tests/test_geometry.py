import json
import math

import pytest

from roi_core.errors import GeometryError
from roi_core.geometry import (
    centroid,
    decode_feature_geometries,
    encode_feature_geometries,
    outer_ring,
    points_are_valid,
    points_to_ring,
    polygon_points,
    ring_to_points,
)

SQUARE = [[0, 0], [0, 2], [2, 2], [2, 0]]


def test_polygon_outer_ring_is_first_ring():
    geom = {"type": "Polygon", "coordinates": [SQUARE, [[0.5, 0.5], [1, 1], [0.5, 1]]]}
    assert outer_ring(geom) == SQUARE


def test_multipolygon_outer_ring_is_first_ring_of_first_polygon():
    other = [[5, 5], [6, 5], [6, 6]]
    geom = {"type": "MultiPolygon", "coordinates": [[SQUARE], [other]]}
    assert outer_ring(geom) == SQUARE


@pytest.mark.parametrize(
    "geom, fragment",
    [
        (None, "coordinates"),
        ({"type": "Polygon"}, "coordinates"),
        ({"type": "Polygon", "coordinates": "nope"}, "coordinates"),
        ({"type": "Polygon", "coordinates": []}, "Polygon"),
        ({"type": "MultiPolygon", "coordinates": [[]]}, "MultiPolygon"),
        ({"type": "Point", "coordinates": [1, 2]}, "unsupported geometry type 'Point'"),
    ],
)
def test_outer_ring_rejects_bad_geometry(geom, fragment):
    with pytest.raises(GeometryError) as exc:
        outer_ring(geom)
    assert fragment in str(exc.value)


def test_ring_to_points_swaps_lng_lat():
    pts = ring_to_points([[13.4, 52.5], [9.19, 45.46]])
    assert pts == [{"lat": 52.5, "lng": 13.4}, {"lat": 45.46, "lng": 9.19}]


def test_points_validation():
    assert points_are_valid([{"lat": 1, "lng": 2.5}])
    assert not points_are_valid([])
    assert not points_are_valid([{"lat": "1", "lng": 2}])
    assert not points_are_valid([{"lat": True, "lng": 2}])
    assert not points_are_valid([{"lat": math.nan, "lng": 2}])
    assert not points_are_valid([{"lat": 1, "lng": math.inf}])
    assert not points_are_valid(ring_to_points([[1, 2], [3]]))


def test_centroid_of_square():
    assert centroid(ring_to_points(SQUARE)) == {"lat": 1, "lng": 1}


def test_centroid_of_empty_ring():
    assert centroid([]) == {"lat": 0, "lng": 0}


def test_centroid_survives_inverse_mapping():
    ring = [[13.37, 52.51], [13.42, 52.51], [13.42, 52.54], [13.37, 52.54], [13.37, 52.51]]
    pts = ring_to_points(ring)
    again = ring_to_points(points_to_ring(pts))
    c1, c2 = centroid(pts), centroid(again)
    assert c1["lat"] == pytest.approx(c2["lat"])
    assert c1["lng"] == pytest.approx(c2["lng"])


def test_polygon_points_decodes_string_geometry():
    raw = json.dumps({"type": "Polygon", "coordinates": [SQUARE]})
    assert polygon_points(raw)[1] == {"lat": 2, "lng": 0}


def test_polygon_points_bad_json_string():
    with pytest.raises(GeometryError) as exc:
        polygon_points("{not json")
    assert "not valid JSON" in str(exc.value)


def test_encode_then_decode_feature_geometries_does_not_mutate():
    doc = {
        "type": "FeatureCollection",
        "features": [{"type": "Feature", "properties": {"id": "a"}, "geometry": {"type": "Polygon", "coordinates": [SQUARE]}}],
    }
    encoded = encode_feature_geometries(doc)
    assert isinstance(encoded["features"][0]["geometry"], str)
    assert isinstance(doc["features"][0]["geometry"], dict)
    assert decode_feature_geometries(encoded) == doc


def test_decode_feature_geometries_keeps_undecodable_strings():
    doc = {"features": [{"properties": {"id": "a"}, "geometry": "{broken"}]}
    assert decode_feature_geometries(doc)["features"][0]["geometry"] == "{broken"


def test_single_feature_codec():
    feat = {"type": "Feature", "properties": {}, "geometry": {"type": "Polygon", "coordinates": [SQUARE]}}
    encoded = encode_feature_geometries(feat)
    assert json.loads(encoded["geometry"]) == feat["geometry"]
    assert decode_feature_geometries(encoded) == feat
