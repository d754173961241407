#!/usr/bin/env python3
"""Upload local city data to Firestore.

Inputs (per city key, from --data-dir):
- <key>.geojson or <key>.json   -> collection `geojson`, document <key>
- <key>.report.json             -> collection `report`, document <key>

Firestore rejects deeply nested arrays, so polygon geometries are stored as
JSON strings (`--geometry-encoding json-string`, the default). The API's
Firestore source decodes them again on read.

Polygons are checked with shapely before upload; invalid rings are reported
but still uploaded, the API drops them per feature.
"""

from __future__ import annotations

import argparse
import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from shapely.geometry import shape
from shapely.validation import explain_validity

from roi_core.geometry import ENCODING_JSON_STRING, GEOMETRY_ENCODINGS, decode_geometry, encode_feature_geometries
from roi_core.sources import GEOJSON, REPORT, make_firestore_client


def _read_json(path: Path) -> Optional[Dict[str, Any]]:
    if not path.exists():
        return None
    text = path.read_text(encoding="utf-8")
    return {} if not text.strip() else json.loads(text)


def _geojson_path(data_dir: Path, key: str) -> Path:
    for name in (f"{key}.geojson", f"{key}.json"):
        p = data_dir / name
        if p.exists():
            return p
    return data_dir / f"{key}.json"


def geometry_issues(doc: Dict[str, Any]) -> List[str]:
    if not isinstance(doc, dict):
        return ["document is not a JSON object"]
    issues: List[str] = []
    feats = doc.get("features") if doc.get("type") != "Feature" else [doc]
    for i, feat in enumerate(feats or []):
        if not isinstance(feat, dict):
            issues.append(f"feature {i}: not an object")
            continue
        props = feat.get("properties") or {}
        label = props.get("id") or props.get("name") or props.get("sub_area_name") or f"#{i}"
        try:
            geom = shape(decode_geometry(feat.get("geometry")))
        except Exception as e:
            issues.append(f"{label}: unreadable geometry ({e})")
            continue
        if geom.geom_type not in ("Polygon", "MultiPolygon"):
            issues.append(f"{label}: unsupported geometry type {geom.geom_type}")
        elif not geom.is_valid:
            issues.append(f"{label}: {explain_validity(geom)}")
    return issues


def _discover_keys(data_dir: Path) -> List[str]:
    keys = set()
    for p in data_dir.glob("*.report.json"):
        keys.add(p.name[: -len(".report.json")])
    return sorted(keys)


def main(argv: Optional[List[str]] = None) -> None:
    load_dotenv()
    ap = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    ap.add_argument("--data-dir", default=os.environ.get("DATA_DIR", "data"))
    ap.add_argument("--cities", nargs="*", default=None, help="City keys (default: every <key>.report.json)")
    ap.add_argument("--geometry-encoding", default=ENCODING_JSON_STRING, choices=GEOMETRY_ENCODINGS)
    ap.add_argument("--out-dir", default=None, help="Write prepared documents here instead of uploading")
    ap.add_argument("--dry-run", action="store_true", help="Validate only")
    args = ap.parse_args(argv)

    data_dir = Path(args.data_dir)
    keys = args.cities or _discover_keys(data_dir)
    if not keys:
        print(f"No city data found in {data_dir}")
        return

    db = None
    if not args.dry_run and not args.out_dir:
        db = make_firestore_client()
        print(f"Connected to Firestore project '{os.environ.get('PROJECT_ID')}' database '{os.environ.get('FIRESTORE_ID') or '(default)'}'")

    for key in keys:
        docs = {
            GEOJSON: _geojson_path(data_dir, key),
            REPORT: data_dir / f"{key}.report.json",
        }
        for collection, path in docs.items():
            try:
                data = _read_json(path)
            except ValueError as e:
                print(f"ERROR parsing JSON from {path}: {e}")
                continue
            if data is None:
                print(f"Optional file not found, skipping: {path}")
                continue

            if collection == GEOJSON:
                for issue in geometry_issues(data):
                    print(f"WARN {key}: {issue}")
                if args.geometry_encoding == ENCODING_JSON_STRING:
                    data = encode_feature_geometries(data)
            elif not isinstance(data, dict) or not isinstance(data.get("ranked_opportunities"), list):
                print(f"WARN {key}: report has no 'ranked_opportunities' array")

            if args.dry_run:
                print(f"[dry-run] {path.name} -> {collection}/{key}")
            elif args.out_dir:
                out = Path(args.out_dir) / collection / f"{key}.json"
                out.parent.mkdir(parents=True, exist_ok=True)
                out.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
                print(f"[write] {out}")
            else:
                db.collection(collection).document(key).set(data)
                print(f"Uploaded {path.name} to collection '{collection}' as document '{key}'")

    print("Data upload finished.")


if __name__ == "__main__":
    main()
