from __future__ import annotations

import re
from typing import Any, Dict, List, Tuple

NOT_AVAILABLE = "Not available"

# Region field -> `### <title>` subsection of the analyst's detailed_report.
SECTION_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("details", "Investment Summary & ROI"),
    ("marketSizeAndDensity", "Market Size & Density"),
    ("demographicProfile", "Demographic Profile"),
    ("projectedDemand", "Projected Demand & Remote Work"),
    ("deploymentComplexity", "Deployment Complexity"),
    ("laborAndResourceCosts", "Labor & Resource Costs"),
    ("incumbentAnalysis", "Incumbent Provider Analysis"),
    ("competitivePricing", "Competitive Pricing"),
    ("permittingAndRegulation", "Permitting & Regulation"),
    ("esgImpactScore", "ESG Impact Score"),
)

_SEPARATOR = "---"


def split_report_sections(markdown: str) -> List[str]:
    """Split a detailed report on its `---` horizontal rules."""
    return (markdown or "").split(_SEPARATOR)


def section_content(sections: List[str], title: str) -> str:
    """Text after the `### <title>` heading line, up to the next separator.

    Only the first section mentioning the heading is used.
    """
    heading = f"### {title}"
    for section in sections:
        idx = section.find(heading)
        if idx < 0:
            continue
        eol = section.find("\n", idx)
        if eol < 0:
            return ""
        return section[eol + 1 :].strip()
    return NOT_AVAILABLE


def extract_narrative_fields(markdown: Any) -> Dict[str, str]:
    if not isinstance(markdown, str):
        return {field: NOT_AVAILABLE for field, _ in SECTION_FIELDS}
    sections = split_report_sections(markdown)
    return {field: section_content(sections, title) for field, title in SECTION_FIELDS}


_heading_re = re.compile(r"^#{1,6}\s+")


def strip_heading_marks(line: str) -> str:
    """'### Market Size' -> 'Market Size' (used by the renderers)."""
    return _heading_re.sub("", line or "").strip()
