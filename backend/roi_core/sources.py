"""Where the two per-city documents come from.

Local files in the data directory win; Firestore (collections `geojson` and
`report`, document id = city key) is the fallback. Sources signal a missing
document with `DocumentNotFound` and an unparsable one with the Malformed*
errors, so the caller can tell "no data" apart from "bad data".
"""

from __future__ import annotations

import json
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from .errors import (
    DocumentNotFound,
    MalformedGeometryDocument,
    MalformedReportDocument,
    UpstreamNotFound,
)
from .geometry import ENCODING_JSON_STRING, ENCODING_NATIVE, GEOMETRY_ENCODINGS, decode_feature_geometries

GEOJSON = "geojson"
REPORT = "report"


@dataclass
class CityDocuments:
    geometry: Dict[str, Any]
    report: Dict[str, Any]
    origin: str


class LocalDocumentSource:
    name = "local"

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)

    def _candidates(self, collection: str, city_key: str) -> List[Path]:
        if collection == GEOJSON:
            return [self.data_dir / f"{city_key}.geojson", self.data_dir / f"{city_key}.json"]
        return [self.data_dir / f"{city_key}.report.json"]

    def fetch(self, collection: str, city_key: str) -> Dict[str, Any]:
        for path in self._candidates(collection, city_key):
            if not path.is_file():
                continue
            text = path.read_text(encoding="utf-8")
            if not text.strip():
                return {}
            try:
                return json.loads(text)
            except ValueError as e:
                err = MalformedGeometryDocument if collection == GEOJSON else MalformedReportDocument
                raise err(f"Could not parse {path.name} for '{city_key}': {e}", city=city_key)
        raise DocumentNotFound(
            f"Could not find {collection} data for {city_key} in {self.data_dir}.",
            city=city_key,
            collection=collection,
        )


class FirestoreDocumentSource:
    name = "firestore"

    def __init__(self, client: Any, *, geometry_encoding: str = ENCODING_JSON_STRING):
        if geometry_encoding not in GEOMETRY_ENCODINGS:
            raise ValueError(f"geometry_encoding must be one of {GEOMETRY_ENCODINGS}")
        self.client = client
        self.geometry_encoding = geometry_encoding

    def fetch(self, collection: str, city_key: str) -> Dict[str, Any]:
        snap = self.client.collection(collection).document(city_key).get()
        if not snap.exists:
            raise DocumentNotFound(
                f"Could not find {collection} data for {city_key} in Firestore.",
                city=city_key,
                collection=collection,
            )
        data = snap.to_dict() or {}
        if collection == GEOJSON and self.geometry_encoding == ENCODING_JSON_STRING:
            data = decode_feature_geometries(data)
        return data


class FallbackDocumentSource:
    """Try each source in order; a source must provide both documents."""

    def __init__(self, sources: Sequence[Any]):
        self.sources = list(sources)

    def _fetch_pair(self, source: Any, city_key: str) -> CityDocuments:
        with ThreadPoolExecutor(max_workers=2) as pool:
            geo_f = pool.submit(source.fetch, GEOJSON, city_key)
            rep_f = pool.submit(source.fetch, REPORT, city_key)
            errors = [f.exception() for f in (geo_f, rep_f)]

        # a missing document sends us to the next source even if the other one is malformed
        for err in errors:
            if isinstance(err, DocumentNotFound):
                raise err
        for err in errors:
            if err is not None:
                raise err
        return CityDocuments(geometry=geo_f.result(), report=rep_f.result(), origin=source.name)

    def fetch_city(self, city_key: str, city_label: str = "") -> CityDocuments:
        label = city_label or city_key
        last: Optional[DocumentNotFound] = None
        for source in self.sources:
            try:
                docs = self._fetch_pair(source, city_key)
            except DocumentNotFound as e:
                logger.info(f"[sources] {source.name}: {e.message} Trying next source.")
                last = e
                continue
            logger.info(f"Fetching the data for {label} from {source.name}")
            return docs
        detail = f" ({last.message})" if last else ""
        raise UpstreamNotFound(f"No data for this city: {label}{detail}", city=label)


def make_firestore_client(project_id: Optional[str] = None, database_id: Optional[str] = None):
    project_id = project_id or os.environ.get("PROJECT_ID")
    database_id = database_id or os.environ.get("FIRESTORE_ID")
    # Lazy import: local-only deployments don't need the Google SDK configured.
    from google.cloud import firestore

    kwargs: Dict[str, Any] = {"project": project_id}
    if database_id:
        kwargs["database"] = database_id
    return firestore.Client(**kwargs)


def default_data_dir() -> Path:
    env = os.environ.get("DATA_DIR")
    if env:
        return Path(env)
    return Path(__file__).resolve().parent.parent / "data"


def build_document_source(
    *,
    data_dir: Optional[Path] = None,
    firestore_client: Any = None,
    geometry_encoding: Optional[str] = None,
) -> FallbackDocumentSource:
    sources: List[Any] = [LocalDocumentSource(data_dir or default_data_dir())]

    if firestore_client is None and os.environ.get("PROJECT_ID"):
        try:
            firestore_client = make_firestore_client()
        except Exception as e:
            logger.warning(f"[sources] Firestore disabled: {e}")
            firestore_client = None

    if firestore_client is not None:
        enc = (geometry_encoding or os.environ.get("GEOMETRY_ENCODING") or ENCODING_JSON_STRING).strip().lower()
        if enc not in GEOMETRY_ENCODINGS:
            logger.warning(f"[sources] unknown GEOMETRY_ENCODING '{enc}', using '{ENCODING_NATIVE}'")
            enc = ENCODING_NATIVE
        sources.append(FirestoreDocumentSource(firestore_client, geometry_encoding=enc))
    return FallbackDocumentSource(sources)
