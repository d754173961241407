from __future__ import annotations

import os
import sys
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from loguru import logger

from roi_core.assemble import AssemblyResult, assemble_report
from roi_core.city_packs import available_cities, resolve_city
from roi_core.errors import CityDataError, ReportGenerationError, UnknownCity
from roi_core.llm import chat_with_region, generate_city_report, make_openai_client
from roi_core.render_md import render_region_md
from roi_core.render_pdf import render_region_pdf
from roi_core.sources import build_document_source

load_dotenv()


def configure_logging() -> None:
    logger.remove()
    logger.add(sys.stderr, level=os.environ.get("LOG_LEVEL", "INFO").upper())


def _cors_origins():
    raw = os.environ.get("CORS_ORIGINS", "*")
    return [o.strip() for o in raw.split(",") if o.strip()] or ["*"]


def _load_city_report(app: FastAPI, city_id: str) -> AssemblyResult:
    city = resolve_city(city_id)
    if not city:
        raise UnknownCity("Invalid city", city=city_id)

    t0 = time.perf_counter()
    docs = app.state.source.fetch_city(city["id"], city["name"])
    result = assemble_report(docs.geometry, docs.report, city["name"], city["id"])
    ms = int((time.perf_counter() - t0) * 1000)
    logger.info(
        f"[city-data] {city['id']}: {len(result.regions)} regions from {docs.origin} "
        f"({len(result.parsing_errors)} parsing errors, {ms} ms)"
    )
    return result


def create_app(*, source: Any = None, llm_client: Any = None) -> FastAPI:
    """Build the API. Clients passed in are used as-is; missing ones are built at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging()
        if app.state.source is None:
            app.state.source = build_document_source()
        if app.state.llm_client is None:
            try:
                app.state.llm_client = make_openai_client()
            except RuntimeError as e:
                logger.warning(f"LLM features disabled: {e}")
        yield

    app = FastAPI(title="City ROI Report API", lifespan=lifespan)
    app.state.source = source
    app.state.llm_client = llm_client

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CityDataError)
    async def _city_data_error(request: Request, exc: CityDataError):
        if exc.status_code >= 500:
            logger.error(f"Failed to get data for {exc.city or request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.get("/health")
    def health():
        return {"ok": True}

    @app.get("/cities")
    def cities():
        return {"cities": available_cities()}

    @app.get("/city-data/{city_id}")
    def city_data(city_id: str, request: Request, include_warnings: bool = False):
        try:
            result = _load_city_report(request.app, city_id)
        except CityDataError:
            raise
        except Exception as e:
            logger.exception(f"Failed to get data for {city_id}")
            return JSONResponse(status_code=500, content={"error": str(e) or "An internal server error occurred"})

        body: Dict[str, Any] = dict(result.report)
        if include_warnings:
            body["warnings"] = [w.to_dict() for w in result.warnings]
        return body

    @app.get("/city-data/{city_id}/regions/{region_id}/download")
    def region_download(city_id: str, region_id: str, request: Request, format: str = "pdf"):
        fmt = (format or "pdf").lower()
        if fmt not in ("pdf", "md"):
            raise HTTPException(status_code=400, detail="format must be pdf or md")

        result = _load_city_report(request.app, city_id)
        region = next((r for r in result.regions if r["id"] == region_id), None)
        if region is None:
            region = next((r for r in result.regions if r["id"].lower() == region_id.lower()), None)
        if region is None:
            raise HTTPException(status_code=404, detail="region not found")

        city = result.report["city"]
        filename = f"roi-report-{city_id}-{region['id']}.{fmt}".replace(" ", "-").lower()
        headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
        if fmt == "md":
            return Response(render_region_md(region, city), media_type="text/markdown", headers=headers)
        return Response(render_region_pdf(region, city), media_type="application/pdf", headers=headers)

    @app.post("/chat")
    def chat(payload: Dict[str, Any], request: Request):
        question = str(payload.get("question") or "").strip()
        region = payload.get("region") or payload.get("report")
        if not question:
            raise HTTPException(status_code=400, detail="question is required")
        if not isinstance(region, dict):
            raise HTTPException(status_code=400, detail="region is required")

        t0 = time.perf_counter()
        answer = chat_with_region(request.app.state.llm_client, question, region)
        llm_ms = int((time.perf_counter() - t0) * 1000)
        return {"answer": answer, "llm_ms": llm_ms}

    @app.post("/reports/generate")
    def reports_generate(payload: Dict[str, Any], request: Request):
        city_name = str(payload.get("city_name") or payload.get("cityName") or "").strip()
        if not city_name:
            raise HTTPException(status_code=400, detail="city_name is required")
        client: Optional[Any] = request.app.state.llm_client
        if client is None:
            raise HTTPException(status_code=503, detail="LLM client is not configured")
        try:
            return generate_city_report(client, city_name)
        except ReportGenerationError as e:
            raise HTTPException(status_code=502, detail=str(e))
        except Exception as e:
            logger.exception(f"report generation failed for {city_name}")
            raise HTTPException(status_code=502, detail=str(e))

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app:app", host=os.environ.get("HOST", "0.0.0.0"), port=int(os.environ.get("PORT", "8000")))
