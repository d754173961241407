from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger

# Built-in map defaults, used when a city has no pack file (or the pack omits them).
MAP_DEFAULTS: Dict[str, Dict[str, Any]] = {
    "berlin": {"center": {"lat": 52.5200, "lng": 13.4050}, "zoom": 10},
    "milan": {"center": {"lat": 45.4642, "lng": 9.1900}, "zoom": 11},
}
DEFAULT_MAP: Dict[str, Any] = {"center": {"lat": 52.5200, "lng": 13.4050}, "zoom": 10}

DEFAULT_CURRENCY_SYMBOL = "€"
DEFAULT_TIMELINE = "24 Months"

_COUNTRIES = {
    "germany", "de", "deutschland", "italy", "it", "italia",
    "france", "fr", "spain", "es", "netherlands", "nl", "belgium", "be",
}

_ALIASES = {
    "milano": "milan",
    "mailand": "milan",
    "berlino": "berlin",
}


def city_packs_dir() -> Path:
    env = os.environ.get("CITY_PACKS_DIR")
    if env:
        return Path(env)
    return Path(__file__).resolve().parent.parent / "city_packs"


def normalize_city_key(city: str) -> str:
    """Normalize UI/route city strings into a stable city-pack key.

    Accepts "Berlin", "berlin", "Berlin, Germany", "Italy/Milan", "Milano".
    """
    s = (city or "").strip().lower()
    if not s:
        return ""

    parts = re.split(r"[,/|\\]+", s)
    parts = [p.strip() for p in parts if p and p.strip()]
    # "Milan, Italy" -> first part, "Italy/Milan" -> last part
    if not parts:
        s0 = s
    elif parts[-1] in _COUNTRIES and len(parts) >= 2:
        s0 = parts[0]
    else:
        s0 = parts[-1]

    s0 = re.sub(r"\s+", " ", s0).strip()
    return _ALIASES.get(s0, s0)


def _read_pack(path: Path) -> Optional[Dict[str, Any]]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning(f"[city_packs] unreadable pack {path.name}: {e}")
        return None
    return data if isinstance(data, dict) else None


def load_city_pack(city: str) -> Optional[Dict[str, Any]]:
    key = normalize_city_key(city)
    if not key:
        return None

    pack_path = city_packs_dir() / f"{key}.json"
    if pack_path.exists():
        pack = _read_pack(pack_path)
        if pack is not None:
            return pack

    # Aliases declared inside the packs themselves
    for pack in _all_packs():
        aliases = [normalize_city_key(a) for a in (pack.get("aliases") or []) if isinstance(a, str)]
        if key in aliases:
            return pack
    return None


def _all_packs() -> List[Dict[str, Any]]:
    d = city_packs_dir()
    if not d.is_dir():
        return []
    packs = []
    for path in sorted(d.glob("*.json")):
        pack = _read_pack(path)
        if pack is None:
            continue
        pack.setdefault("id", path.stem)
        packs.append(pack)
    return packs


def available_cities() -> List[Dict[str, str]]:
    out = []
    for pack in _all_packs():
        cid = str(pack.get("id") or "").strip()
        if not cid:
            continue
        out.append({"id": cid, "name": str(pack.get("name") or cid.title())})
    return sorted(out, key=lambda c: c["id"])


def resolve_city(city_id: str) -> Optional[Dict[str, str]]:
    """Registry lookup used by the API: `{"id", "name"}` or None for unknown cities."""
    pack = load_city_pack(city_id)
    if not pack:
        return None
    cid = str(pack.get("id") or normalize_city_key(city_id))
    return {"id": cid, "name": str(pack.get("name") or cid.title())}


def _valid_center(c: Any) -> bool:
    if not isinstance(c, dict):
        return False
    try:
        float(c.get("lat"))
        float(c.get("lng"))
    except (TypeError, ValueError):
        return False
    return True


def map_config(city_key: str, pack: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Map center/zoom for a city: pack file, then built-in table, then DEFAULT_MAP."""
    key = normalize_city_key(city_key)
    if pack is None:
        pack = load_city_pack(key)

    base = MAP_DEFAULTS.get(key)
    if base is None and not pack:
        logger.warning(f"[city_packs] no map config for '{city_key}', using default center")
    base = base or DEFAULT_MAP

    center = dict(base["center"])
    zoom = base["zoom"]
    if pack:
        if _valid_center(pack.get("map_center")):
            center = {"lat": float(pack["map_center"]["lat"]), "lng": float(pack["map_center"]["lng"])}
        if isinstance(pack.get("map_zoom"), (int, float)):
            zoom = pack["map_zoom"]
    return {"center": center, "zoom": zoom}


def display_options(pack: Optional[Dict[str, Any]]) -> Dict[str, str]:
    pack = pack or {}
    return {
        "currency_symbol": str(pack.get("currency_symbol") or DEFAULT_CURRENCY_SYMBOL),
        "timeline": str(pack.get("timeline") or DEFAULT_TIMELINE),
    }
