from typing import Any, Dict, List

from .sections import NOT_AVAILABLE, SECTION_FIELDS


def _clean(s: Any) -> str:
    if s is None:
        return ""
    return (
        str(s)
        .replace(" ", " ")
        .replace(" ", " ")
        .replace(" ", " ")
        .replace("⁠", "")
        .replace("​", "")
        .replace("﻿", "")
        .replace("’", "'")
        .replace("“", '"')
        .replace("”", '"')
    )


def _fmt_money(v: Any) -> str:
    try:
        return f"${float(v):,.0f}"
    except (TypeError, ValueError):
        return "—"


def _fmt_pct(v: Any) -> str:
    try:
        return f"{float(v):.1f}%"
    except (TypeError, ValueError):
        return "—"


def _kpi_table(region: Dict[str, Any]) -> str:
    rows = [
        ("ROI", _fmt_pct(region.get("roiPercentage"))),
        ("Projected revenue", _clean(region.get("projectedRevenue")) or "—"),
        ("Projected cost", _fmt_money(region.get("projectedCost"))),
        ("Net profit", _fmt_money(region.get("netProfit"))),
        ("Timeline", _clean(region.get("timeline")) or "—"),
    ]
    lines = ["| Metric | Value |", "|---|---|"]
    lines += [f"| {k} | {v} |" for k, v in rows]
    return "\n".join(lines)


def _narrative(region: Dict[str, Any]) -> List[str]:
    blocks = []
    for field, title in SECTION_FIELDS:
        text = _clean(region.get(field)) or NOT_AVAILABLE
        blocks.append(f"### {title}\n{text}")
    return blocks


def render_region_md(region: Dict[str, Any], city: str) -> str:
    name = _clean(region.get("name") or region.get("id") or "Region")
    center = region.get("coordinates") or {}
    loc = ""
    if isinstance(center, dict) and "lat" in center and "lng" in center:
        loc = f"\n_Center: {center['lat']:.5f}, {center['lng']:.5f}_\n"

    full = _clean(region.get("detailed_report")).strip()

    return f"""# {name} — {_clean(city)}
{loc}
## Executive summary
{_clean(region.get('executiveSummary')) or '—'}

## Key figures
{_kpi_table(region)}

## Analysis
{chr(10).join(_narrative(region))}

## Full report
{full or NOT_AVAILABLE}
"""
