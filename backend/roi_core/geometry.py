"""GeoJSON helpers for region polygons.

Source coordinates follow GeoJSON order (`[lng, lat]`); everything handed to
the map uses `{"lat": ..., "lng": ...}` dicts.
"""

from __future__ import annotations

import copy
import json
import math
from numbers import Real
from typing import Any, Dict, List, Optional

from .errors import GeometryError

Point = Dict[str, float]

# Storage backends that cannot hold deeply nested arrays get the geometry as a JSON string.
ENCODING_JSON_STRING = "json-string"
ENCODING_NATIVE = "native"
GEOMETRY_ENCODINGS = (ENCODING_JSON_STRING, ENCODING_NATIVE)


def decode_geometry(raw: Any) -> Any:
    """Return the geometry mapping, decoding it first when stored as a string.

    Raises ValueError (json.JSONDecodeError) when the string is not JSON.
    """
    if isinstance(raw, str):
        return json.loads(raw)
    return raw


def _is_sequence(x: Any) -> bool:
    return isinstance(x, (list, tuple))


def outer_ring(geometry: Any) -> List[Any]:
    """Pick the exterior ring of a Polygon, or of the first polygon of a MultiPolygon."""
    if not isinstance(geometry, dict) or not _is_sequence(geometry.get("coordinates")):
        raise GeometryError("The 'geometry' object is missing or has an invalid 'coordinates' property.")

    coords = geometry["coordinates"]
    gtype = geometry.get("type")
    if gtype == "MultiPolygon":
        first = coords[0] if coords else None
        ring = first[0] if _is_sequence(first) and first else None
        if not _is_sequence(ring):
            raise GeometryError("The 'MultiPolygon' geometry data is structured incorrectly.")
        return list(ring)
    if gtype == "Polygon":
        ring = coords[0] if coords else None
        if not _is_sequence(ring):
            raise GeometryError("The 'Polygon' geometry data is structured incorrectly.")
        return list(ring)
    raise GeometryError(
        f"Has an unsupported geometry type '{gtype}'. Expected 'Polygon' or 'MultiPolygon'."
    )


def ring_to_points(ring: List[Any]) -> List[Dict[str, Any]]:
    """`[[lng, lat], ...]` -> `[{"lat": lat, "lng": lng}, ...]`.

    Malformed positions come out as `None` values so validation can reject them.
    """
    points = []
    for pos in ring:
        if _is_sequence(pos) and len(pos) >= 2:
            points.append({"lat": pos[1], "lng": pos[0]})
        else:
            points.append({"lat": None, "lng": None})
    return points


def _finite_number(v: Any) -> bool:
    return isinstance(v, Real) and not isinstance(v, bool) and math.isfinite(v)


def points_are_valid(points: List[Dict[str, Any]]) -> bool:
    if not points:
        return False
    return all(_finite_number(p.get("lat")) and _finite_number(p.get("lng")) for p in points)


def centroid(points: List[Point]) -> Point:
    """Arithmetic mean of the vertices. Good enough for marker placement."""
    if not points:
        return {"lat": 0, "lng": 0}
    lat_sum = sum(p["lat"] for p in points)
    lng_sum = sum(p["lng"] for p in points)
    return {"lat": lat_sum / len(points), "lng": lng_sum / len(points)}


def points_to_ring(points: List[Point]) -> List[List[float]]:
    return [[p["lng"], p["lat"]] for p in points]


def polygon_points(geometry: Any) -> List[Point]:
    """Decode + ring extraction + validation in one go. Raises GeometryError."""
    try:
        geometry = decode_geometry(geometry)
    except ValueError:
        raise GeometryError("The 'geometry' field is a string but is not valid JSON.")
    points = ring_to_points(outer_ring(geometry))
    if not points_are_valid(points):
        raise GeometryError("Contains invalid or non-numeric coordinate values.")
    return points


# ---------- storage codec ----------

def _features(doc: Any) -> Optional[List[Any]]:
    if not isinstance(doc, dict):
        return None
    if doc.get("type") == "Feature":
        return None
    feats = doc.get("features")
    return feats if isinstance(feats, list) else None


def encode_feature_geometries(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of `doc` with every feature geometry stored as a JSON string."""
    out = copy.deepcopy(doc)
    if isinstance(out, dict) and out.get("type") == "Feature":
        if out.get("geometry") is not None and not isinstance(out["geometry"], str):
            out["geometry"] = json.dumps(out["geometry"])
        return out
    for feat in _features(out) or []:
        if isinstance(feat, dict) and feat.get("geometry") is not None and not isinstance(feat["geometry"], str):
            feat["geometry"] = json.dumps(feat["geometry"])
    return out


def decode_feature_geometries(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Inverse of `encode_feature_geometries`.

    Strings that are not valid JSON are left as they are; the assembler reports
    them per feature instead of failing the whole document.
    """
    out = copy.deepcopy(doc)

    def _decode(feat: Dict[str, Any]) -> None:
        raw = feat.get("geometry")
        if not isinstance(raw, str):
            return
        try:
            feat["geometry"] = json.loads(raw)
        except ValueError:
            pass

    if isinstance(out, dict) and out.get("type") == "Feature":
        _decode(out)
        return out
    for feat in _features(out) or []:
        if isinstance(feat, dict):
            _decode(feat)
    return out
