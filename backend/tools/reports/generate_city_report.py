#!/usr/bin/env python3
"""Generate a fictional ROI report for a city with the LLM (offline path).

The output is a Report-shaped JSON (`city`, `mapCenter`, `mapZoom`, `regions`)
that the UI can load directly.
"""

from __future__ import annotations

import argparse
import json
import time
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from roi_core.city_packs import normalize_city_key
from roi_core.llm import generate_city_report, make_openai_client


def main(argv: Optional[List[str]] = None) -> None:
    load_dotenv()
    ap = argparse.ArgumentParser(description=__doc__)
    ap.add_argument("--city", required=True, help="City name, e.g. 'Lisbon'")
    ap.add_argument("--out", default=None, help="Output path (default: outputs/<city-key>.generated.json)")
    ap.add_argument("--model", default=None)
    args = ap.parse_args(argv)

    client = make_openai_client()
    t0 = time.perf_counter()
    report = generate_city_report(client, args.city, model=args.model)
    print(f"Generated {len(report.get('regions') or [])} regions in {time.perf_counter() - t0:.1f}s", flush=True)

    key = normalize_city_key(args.city).replace(" ", "-") or "city"
    out = Path(args.out or f"outputs/{key}.generated.json")
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(report, ensure_ascii=False, indent=2), encoding="utf-8")
    print(f"✅ Saved: {out}", flush=True)


if __name__ == "__main__":
    main()
