from __future__ import annotations

import json
import os
from typing import Any, Dict, List, Optional

from loguru import logger
from openai import OpenAI
from pydantic import BaseModel, Field

from .errors import ReportGenerationError

EMPTY_ANSWER = "I'm sorry, I couldn't generate a response. The AI returned an empty message."
ERROR_ANSWER = (
    "I'm sorry, I couldn't generate a response due to a server error. "
    "Please check the server console for details."
)

# Large fields kept out of the chat prompt.
_CHAT_EXCLUDED_FIELDS = ("detailed_report", "polygonCoordinates")


def make_openai_client() -> OpenAI:
    api_key = os.environ.get("OPENAI_API_KEY")
    if not api_key:
        raise RuntimeError("OPENAI_API_KEY is not set.")
    return OpenAI(api_key=api_key)


def _chat_model() -> str:
    return os.environ.get("OPENAI_CHAT_MODEL", os.environ.get("OPENAI_MODEL", "gpt-4o-mini"))


def _report_model() -> str:
    return os.environ.get("OPENAI_REPORT_MODEL", os.environ.get("OPENAI_MODEL", "gpt-4o"))


def _extract_resp_text(resp: Any) -> str:
    """Text of an OpenAI Responses API object, '' when there is none."""
    if resp is None:
        return ""
    v = getattr(resp, "output_text", None)
    if isinstance(v, str) and v.strip():
        return v.strip()
    out: List[str] = []
    for item in getattr(resp, "output", None) or []:
        for c in getattr(item, "content", None) or []:
            t = getattr(c, "text", None)
            if isinstance(t, str) and t.strip():
                out.append(t.strip())
    return "\n".join(out)


# ---------- Chat with a region report ----------

CHAT_SYSTEM = """You are a helpful investment analyst assistant. A user is asking a question about a specific investment region report.
Answer the user's question based ONLY on the data provided in the JSON report for that region.
Be concise and clear in your answer. If the report does not contain the answer, say so.
Do not make up information."""


def region_summary(region: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in (region or {}).items() if k not in _CHAT_EXCLUDED_FIELDS}


def chat_with_region(
    client: Optional[OpenAI],
    question: str,
    region: Dict[str, Any],
    *,
    model: Optional[str] = None,
) -> str:
    """Answer a question about one region. Never raises; returns a fallback message instead."""
    if client is None:
        logger.error("Chatbot Error: no LLM client configured.")
        return ERROR_ANSWER

    prompt = (
        f"USER QUESTION:\n{question}\n\n"
        f"REGION REPORT DATA:\n{json.dumps(region_summary(region), ensure_ascii=False, indent=2)}"
    )
    try:
        resp = client.responses.create(
            model=model or _chat_model(),
            input=[
                {"role": "system", "content": CHAT_SYSTEM},
                {"role": "user", "content": prompt},
            ],
            temperature=float(os.environ.get("CHAT_TEMPERATURE", "0.2")),
        )
    except Exception:
        logger.exception("Chatbot Error: An error occurred during AI generation.")
        return ERROR_ANSWER

    text = _extract_resp_text(resp)
    if not text:
        logger.error(f"Chatbot Error: AI response was empty. Response: {resp!r}")
        return EMPTY_ANSWER
    return text


# ---------- Offline city report generation ----------

class LatLng(BaseModel):
    lat: float
    lng: float


class GeneratedRegion(BaseModel):
    id: str = Field(description="Unique slug-like identifier, e.g. 'tech-park'.")
    name: str = Field(description="Common name of the investment region.")
    coordinates: LatLng = Field(description="Center point of the region.")
    polygonCoordinates: List[LatLng] = Field(description="4 to 6 vertices of a simple, non-self-intersecting polygon.")
    roiPercentage: float = Field(description="Projected ROI percentage, e.g. 12.5.")
    projectedRevenue: str = Field(description="Projected revenue range in the local currency, e.g. '€3M - €5M'.")
    projectedCost: float = Field(description="Total projected cost in USD.")
    netProfit: float = Field(description="Projected net profit in USD.")
    timeline: str = Field(description="Estimated project timeline, e.g. '18-24 months'.")
    executiveSummary: str
    details: str
    marketSizeAndDensity: str
    demographicProfile: str
    projectedDemand: str
    deploymentComplexity: str
    laborAndResourceCosts: str
    incumbentAnalysis: str
    competitivePricing: str
    permittingAndRegulation: str
    esgImpactScore: str
    detailed_report: str = Field(description="Full Markdown report with '##' sections and '###' subsections.")
    deepResearchReportUrl: str


class GeneratedCityReport(BaseModel):
    city: str
    mapCenter: LatLng
    mapZoom: int = Field(description="Map zoom level, typically 10-13.")
    regions: List[GeneratedRegion] = Field(description="3 to 5 distinct investment regions.")


def _report_prompt(city_name: str) -> str:
    return f"""You are an expert financial analyst and urban planner creating a fictional investment ROI report for {city_name}.
The report must be comprehensive, detailed, and adhere strictly to the output JSON schema.

- city: '{city_name}'.
- mapCenter: plausible coordinates for the center of {city_name}; mapZoom: an integer 10-13.
- regions: 3 to 5 distinct, fictional but plausible investment regions. For each region:
  - id: a slug-like id; name: a descriptive name; coordinates: the region center.
  - polygonCoordinates: 4 to 6 {{lat, lng}} vertices of a simple polygon.
  - roiPercentage, projectedRevenue (local currency range), projectedCost and netProfit (USD), timeline.
  - executiveSummary (1-2 sentences) and details (2-4 sentences on opportunities and risks).
  - 1-2 sentence analyses for marketSizeAndDensity, demographicProfile, projectedDemand,
    deploymentComplexity, laborAndResourceCosts, incumbentAnalysis, competitivePricing,
    permittingAndRegulation, esgImpactScore.
  - deepResearchReportUrl: https://example.com/report/{{city-slug}}/{{region-id}}.
  - detailed_report: a full markdown report using '##' for main sections and '###' for
    subsections such as '### Market Size & Density'.

Do not use placeholder text."""


def generate_city_report(client: OpenAI, city_name: str, *, model: Optional[str] = None) -> Dict[str, Any]:
    """Schema-constrained report generation for the offline/batch path.

    Raises ReportGenerationError when the model returns nothing usable.
    """
    resp = client.responses.parse(
        model=model or _report_model(),
        input=[{"role": "user", "content": _report_prompt(city_name)}],
        text_format=GeneratedCityReport,
    )
    parsed = getattr(resp, "output_parsed", None)
    if parsed is None:
        raise ReportGenerationError("AI failed to generate a report for the city.")

    report = parsed.model_dump()
    # city always follows the input name
    report["city"] = city_name
    return report
