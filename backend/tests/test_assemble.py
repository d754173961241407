"""Tests for joining GeoJSON features with the opportunity report."""
import json

import pytest

from roi_core.assemble import (
    KIND_PARSING,
    KIND_UNMATCHED,
    assemble_report,
    find_opportunity,
    format_currency,
    resolve_region_id,
)
from roi_core.errors import MalformedGeometryDocument, MalformedReportDocument, NoRegionsAssembled
from roi_core.geometry import centroid, points_to_ring, ring_to_points
from roi_core.sections import NOT_AVAILABLE

SQUARE = [[0, 0], [0, 2], [2, 2], [2, 0]]


def _feature(props, ring=SQUARE, gtype="Polygon"):
    coords = [ring] if gtype == "Polygon" else [[ring]]
    return {"type": "Feature", "properties": props, "geometry": {"type": gtype, "coordinates": coords}}


def _collection(*features):
    return {"type": "FeatureCollection", "features": list(features)}


def _opportunity(name, roi=10, report="### Market Size & Density\nFoo\n---\n### ESG Impact Score\nBar", **fin):
    financials = {"estimated_roi_percentage": roi}
    financials.update(fin)
    return {"sub_area_name": name, "financials": financials, "detailed_report": report}


def _report(*opps, summary="City summary"):
    return {"executive_summary": summary, "ranked_opportunities": list(opps)}


def _assemble(geo, rep, city="Berlin", key="berlin"):
    return assemble_report(geo, rep, city, key, city_pack={})


# --- happy path ---
def test_region_shape_and_values():
    geo = _collection(_feature({"id": "mitte"}))
    rep = _report(
        _opportunity(
            "Mitte",
            roi=12.5,
            total_projected_revenue_usd=1250000,
            total_projected_cost_usd=900000,
            net_profit=350000,
        )
    )
    result = _assemble(geo, rep)
    assert result.warnings == []

    report = result.report
    assert report["city"] == "Berlin"
    assert report["executive_summary"] == "City summary"
    assert report["mapCenter"] == {"lat": 52.52, "lng": 13.405}
    assert report["mapZoom"] == 10

    (region,) = report["regions"]
    assert region["id"] == "mitte"
    assert region["name"] == "Mitte"  # from the opportunity, not the geometry
    assert region["coordinates"] == {"lat": 1, "lng": 1}
    assert region["polygonCoordinates"][1] == {"lat": 2, "lng": 0}
    assert region["roiPercentage"] == 12.5
    assert region["projectedRevenue"] == "€1,250,000"
    assert region["projectedCost"] == 900000
    assert region["netProfit"] == 350000
    assert region["marketSizeAndDensity"] == "Foo"
    assert region["esgImpactScore"] == "Bar"
    assert region["details"] == NOT_AVAILABLE
    assert region["timeline"] == "24 Months"
    assert region["executiveSummary"] == "City summary"
    assert region["detailed_report"].startswith("### Market Size")
    assert region["deepResearchReportUrl"] == ""


@pytest.mark.parametrize("gtype", ["Polygon", "MultiPolygon"])
def test_first_vertex_is_swapped(gtype):
    ring = [[13.37, 52.51], [13.42, 52.51], [13.42, 52.54]]
    result = _assemble(_collection(_feature({"id": "a"}, ring, gtype)), _report(_opportunity("A")))
    assert result.regions[0]["polygonCoordinates"][0] == {"lat": 52.51, "lng": 13.37}


def test_single_feature_document_is_wrapped():
    result = _assemble(_feature({"name": "Solo"}), _report(_opportunity("solo")))
    assert [r["id"] for r in result.regions] == ["Solo"]


def test_any_object_with_features_sequence():
    result = _assemble({"features": [_feature({"id": "a"})]}, _report(_opportunity("a")))
    assert len(result.regions) == 1


def test_string_encoded_geometry_is_decoded():
    feat = _feature({"id": "a"})
    feat["geometry"] = json.dumps(feat["geometry"])
    result = _assemble(_collection(feat), _report(_opportunity("a")))
    assert result.regions[0]["coordinates"] == {"lat": 1, "lng": 1}


# --- identifier / matching ---
def test_identifier_priority():
    assert resolve_region_id({"id": "x", "name": "y", "sub_area_name": "z"}) == "x"
    assert resolve_region_id({"name": "y", "sub_area_name": "z"}) == "y"
    assert resolve_region_id({"id": "", "sub_area_name": "z"}) == "z"
    assert resolve_region_id({}) is None
    assert resolve_region_id(None) is None
    assert resolve_region_id({"id": 7}) == "7"


def test_matching_is_case_insensitive_and_skips_bad_entries():
    opps = ["junk", {"sub_area_name": None}, {"sub_area_name": "Prenzlauer Berg"}]
    assert find_opportunity(opps, "prenzlauer BERG") is opps[2]
    assert find_opportunity(opps, "Prenzlauer-Berg") is None


def test_feature_without_identifier_is_dropped():
    geo = _collection(_feature({"kind": "park"}), _feature({"id": "a"}))
    result = _assemble(geo, _report(_opportunity("a")))
    assert [r["id"] for r in result.regions] == ["a"]
    (w,) = result.warnings
    assert w.kind == KIND_PARSING
    assert w.index == 0
    assert "index 0" in w.message


def test_unmatched_feature_is_dropped_without_error():
    geo = _collection(_feature({"id": "a"}), _feature({"id": "nowhere"}))
    result = _assemble(geo, _report(_opportunity("a")))
    assert [r["id"] for r in result.regions] == ["a"]
    assert [w.kind for w in result.warnings] == [KIND_UNMATCHED]
    assert result.parsing_errors == []


# --- per-feature geometry failures ---
@pytest.mark.parametrize(
    "geometry, fragment",
    [
        ("{broken json", "not valid JSON"),
        (None, "coordinates"),
        ({"type": "Polygon", "coordinates": None}, "coordinates"),
        ({"type": "LineString", "coordinates": [[0, 0], [1, 1]]}, "unsupported geometry type"),
        ({"type": "Polygon", "coordinates": [[[0, "x"], [1, 1]]]}, "non-numeric"),
        ({"type": "Polygon", "coordinates": [[[0, float("nan")], [1, 1]]]}, "non-numeric"),
        ({"type": "Polygon", "coordinates": [[]]}, "non-numeric"),
    ],
)
def test_bad_geometry_drops_only_that_feature(geometry, fragment):
    bad = {"type": "Feature", "properties": {"id": "bad"}, "geometry": geometry}
    geo = _collection(bad, _feature({"id": "good"}))
    result = _assemble(geo, _report(_opportunity("bad"), _opportunity("good")))
    assert [r["id"] for r in result.regions] == ["good"]
    (w,) = result.parsing_errors
    assert w.region_id == "bad"
    assert fragment in w.message


# --- financials ---
def test_missing_financials_default_to_zero():
    opp = {"sub_area_name": "a", "detailed_report": ""}
    result = _assemble(_collection(_feature({"id": "a"})), _report(opp))
    region = result.regions[0]
    assert region["roiPercentage"] == 0
    assert region["projectedCost"] == 0
    assert region["netProfit"] == 0
    assert region["projectedRevenue"] == "€0"


def test_non_numeric_financials_default_to_zero():
    opp = _opportunity("a", roi="high", net_profit=None, total_projected_cost_usd=True)
    region = _assemble(_collection(_feature({"id": "a"})), _report(opp)).regions[0]
    assert region["roiPercentage"] == 0
    assert region["netProfit"] == 0
    assert region["projectedCost"] == 0


def test_format_currency():
    assert format_currency(1250000) == "€1,250,000"
    assert format_currency(1234.5) == "€1,234.5"
    assert format_currency(1234.5678) == "€1,234.568"
    assert format_currency(None) == "€0"
    assert format_currency(5000, "$") == "$5,000"


# --- ordering ---
def test_sorted_by_roi_descending_and_stable():
    geo = _collection(_feature({"id": "a"}), _feature({"id": "b"}), _feature({"id": "c"}), _feature({"id": "d"}))
    rep = _report(_opportunity("a", roi=10), _opportunity("b", roi=20), _opportunity("c", roi=10), _opportunity("d", roi=5))
    assert [r["id"] for r in _assemble(geo, rep).regions] == ["b", "a", "c", "d"]


# --- fatal conditions ---
@pytest.mark.parametrize("rep", [{}, {"ranked_opportunities": {"a": 1}}, None, {"ranked_opportunities": "x"}])
def test_report_without_ranked_opportunities_fails(rep):
    with pytest.raises(MalformedReportDocument) as exc:
        _assemble(_collection(_feature({"id": "a"})), rep, city="Milan", key="milan")
    assert "Milan" in str(exc.value)
    assert "ranked_opportunities" in str(exc.value)


@pytest.mark.parametrize("geo", [[], "text", {"type": "Point", "coordinates": [0, 0]}, {"features": "x"}])
def test_unrecognized_geometry_document_fails(geo):
    with pytest.raises(MalformedGeometryDocument) as exc:
        _assemble(geo, _report(_opportunity("a")), city="Milan")
    assert "Milan" in str(exc.value)


def test_all_features_failing_is_fatal():
    geo = _collection(_feature({}), _feature({"id": "unmatched"}))
    with pytest.raises(NoRegionsAssembled) as exc:
        _assemble(geo, _report(_opportunity("a")))
    assert "Could not display any regions for Berlin" in str(exc.value)


def test_empty_feature_collection_is_not_an_error():
    result = _assemble(_collection(), _report())
    assert result.regions == []


# --- map config ---
def test_map_center_for_known_and_unknown_cities():
    geo, rep = _collection(_feature({"id": "a"})), _report(_opportunity("a"))
    milan = assemble_report(geo, rep, "Milan", "milan", city_pack={}).report
    assert milan["mapCenter"] == {"lat": 45.4642, "lng": 9.19}
    assert milan["mapZoom"] == 11
    other = assemble_report(geo, rep, "Atlantis", "atlantis", city_pack={}).report
    assert other["mapCenter"] == {"lat": 52.52, "lng": 13.405}
    assert other["mapZoom"] == 10


def test_city_pack_display_options():
    pack = {"currency_symbol": "$", "timeline": "18 Months", "map_center": {"lat": 1, "lng": 2}, "map_zoom": 12}
    geo = _collection(_feature({"id": "a"}))
    rep = _report(_opportunity("a", total_projected_revenue_usd=2000))
    report = assemble_report(geo, rep, "Test", "test", city_pack=pack).report
    assert report["regions"][0]["projectedRevenue"] == "$2,000"
    assert report["regions"][0]["timeline"] == "18 Months"
    assert report["mapCenter"] == {"lat": 1.0, "lng": 2.0}
    assert report["mapZoom"] == 12


def test_centroid_round_trip_through_output():
    ring = [[9.15, 45.45], [9.22, 45.44], [9.24, 45.49], [9.16, 45.50]]
    region = _assemble(_collection(_feature({"id": "a"}, ring)), _report(_opportunity("a"))).regions[0]
    again = centroid(ring_to_points(points_to_ring(region["polygonCoordinates"])))
    assert again["lat"] == pytest.approx(region["coordinates"]["lat"])
    assert again["lng"] == pytest.approx(region["coordinates"]["lng"])
