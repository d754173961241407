"""Join a city's GeoJSON polygons with its analyst report.

The geometry document and the opportunity report are produced independently,
so either may be partly broken. A feature that cannot be parsed, or has no
matching opportunity, is dropped and recorded as a warning; only problems with
the documents as a whole (or a join that produced nothing at all) are fatal.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from numbers import Real
from typing import Any, Dict, List, Optional

from loguru import logger

from .city_packs import display_options, load_city_pack, map_config
from .errors import GeometryError, MalformedGeometryDocument, MalformedReportDocument, NoRegionsAssembled
from .geometry import centroid, polygon_points
from .sections import extract_narrative_fields

KIND_PARSING = "parsing"
KIND_UNMATCHED = "unmatched"


@dataclass
class ParsingWarning:
    index: int
    region_id: Optional[str]
    kind: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class AssemblyResult:
    report: Dict[str, Any]
    warnings: List[ParsingWarning] = field(default_factory=list)

    @property
    def regions(self) -> List[Dict[str, Any]]:
        return self.report.get("regions", [])

    @property
    def parsing_errors(self) -> List[ParsingWarning]:
        return [w for w in self.warnings if w.kind == KIND_PARSING]


def _num(v: Any) -> float:
    """Financial value or 0 when absent / not a finite number."""
    if isinstance(v, bool):
        return 0
    if isinstance(v, Real):
        return v if math.isfinite(v) else 0
    return 0


def format_currency(value: Any, symbol: str = "€") -> str:
    """1250000 -> '€1,250,000'; 1234.5 -> '€1,234.5'."""
    v = _num(value)
    if float(v).is_integer():
        return f"{symbol}{int(v):,}"
    txt = f"{v:,.3f}".rstrip("0").rstrip(".")
    return f"{symbol}{txt}"


def _features(geometry_doc: Any, city_label: str) -> List[Any]:
    if isinstance(geometry_doc, dict):
        feats = geometry_doc.get("features")
        if geometry_doc.get("type") == "FeatureCollection" and isinstance(feats, list):
            return feats
        if geometry_doc.get("type") == "Feature":
            return [geometry_doc]
        if isinstance(feats, list):
            return feats
    raise MalformedGeometryDocument(
        f"The GeoJSON data for '{city_label}' is malformed. The document does not appear "
        "to be a valid GeoJSON Feature or FeatureCollection object.",
        city=city_label,
    )


def _opportunities(report_doc: Any, city_label: str) -> List[Any]:
    ranked = report_doc.get("ranked_opportunities") if isinstance(report_doc, dict) else None
    if not isinstance(ranked, list):
        raise MalformedReportDocument(
            f"The report data for '{city_label}' is malformed. The document is missing the "
            "required 'ranked_opportunities' array.",
            city=city_label,
        )
    return ranked


def resolve_region_id(properties: Any) -> Optional[str]:
    """`id`, else `name`, else `sub_area_name`."""
    props = properties if isinstance(properties, dict) else {}
    region_id = props.get("id") or props.get("name") or props.get("sub_area_name")
    if not region_id:
        return None
    return str(region_id)


def find_opportunity(opportunities: List[Any], region_id: str) -> Optional[Dict[str, Any]]:
    key = region_id.lower()
    for opp in opportunities:
        if not isinstance(opp, dict):
            continue
        name = opp.get("sub_area_name")
        if isinstance(name, str) and name.lower() == key:
            return opp
    return None


def build_region(
    region_id: str,
    opportunity: Dict[str, Any],
    points: List[Dict[str, float]],
    *,
    executive_summary: str,
    currency_symbol: str,
    timeline: str,
) -> Dict[str, Any]:
    financials = opportunity.get("financials")
    if not isinstance(financials, dict):
        financials = {}
    detailed_report = opportunity.get("detailed_report")

    region: Dict[str, Any] = {
        "id": region_id,
        "name": opportunity.get("sub_area_name"),
        "coordinates": centroid(points),
        "polygonCoordinates": points,
        "roiPercentage": _num(financials.get("estimated_roi_percentage")),
        "projectedRevenue": format_currency(financials.get("total_projected_revenue_usd"), currency_symbol),
        "projectedCost": _num(financials.get("total_projected_cost_usd")),
        "netProfit": _num(financials.get("net_profit")),
        "timeline": timeline,
        "executiveSummary": executive_summary,
    }
    region.update(extract_narrative_fields(detailed_report))
    region["detailed_report"] = detailed_report if isinstance(detailed_report, str) else ""
    region["deepResearchReportUrl"] = ""
    return region


def assemble_report(
    geometry_doc: Any,
    report_doc: Any,
    city_label: str,
    city_key: str,
    *,
    city_pack: Optional[Dict[str, Any]] = None,
) -> AssemblyResult:
    """Build the `{city, mapCenter, mapZoom, executive_summary, regions}` report.

    Raises MalformedReportDocument / MalformedGeometryDocument for unusable
    documents and NoRegionsAssembled when a non-empty geometry document
    yields no region at all.
    """
    opportunities = _opportunities(report_doc, city_label)
    features = _features(geometry_doc, city_label)

    if city_pack is None:
        city_pack = load_city_pack(city_key)
    opts = display_options(city_pack)
    executive_summary = report_doc.get("executive_summary")

    warnings: List[ParsingWarning] = []
    regions: List[Dict[str, Any]] = []

    for index, feature in enumerate(features):
        feat = feature if isinstance(feature, dict) else {}
        region_id = resolve_region_id(feat.get("properties"))
        if region_id is None:
            warnings.append(
                ParsingWarning(
                    index,
                    None,
                    KIND_PARSING,
                    f"Polygon at index {index} is missing a usable identifier in its properties "
                    "(checked for 'id', 'name', 'sub_area_name').",
                )
            )
            continue

        opportunity = find_opportunity(opportunities, region_id)
        if opportunity is None:
            logger.info(f"No report found for region ID: '{region_id}'. This polygon will not be displayed.")
            warnings.append(
                ParsingWarning(index, region_id, KIND_UNMATCHED, f"No report found for region ID: '{region_id}'.")
            )
            continue

        try:
            points = polygon_points(feat.get("geometry"))
        except GeometryError as e:
            warnings.append(ParsingWarning(index, region_id, KIND_PARSING, f"Region '{region_id}': {e}"))
            continue

        regions.append(
            build_region(
                region_id,
                opportunity,
                points,
                executive_summary=executive_summary,
                currency_symbol=opts["currency_symbol"],
                timeline=opts["timeline"],
            )
        )

    parsing = [w.message for w in warnings if w.kind == KIND_PARSING]
    if parsing:
        logger.warning(f"Some regions could not be parsed for {city_label}: {parsing}")

    if features and not regions:
        raise NoRegionsAssembled(
            f"Could not display any regions for {city_label}. All polygon data was malformed "
            "or could not be matched with a report. Check server console for details.",
            city=city_label,
        )

    # sorted() is stable, also with reverse=True
    regions = sorted(regions, key=lambda r: r["roiPercentage"], reverse=True)

    cfg = map_config(city_key, city_pack)
    report = {
        "city": city_label,
        "mapCenter": cfg["center"],
        "mapZoom": cfg["zoom"],
        "executive_summary": executive_summary,
        "regions": regions,
    }
    return AssemblyResult(report=report, warnings=warnings)
