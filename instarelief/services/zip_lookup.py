"""ZIP fan-out: map NWS alert areas and coordinates to covered ZIP codes.

NWS alerts describe their area as free text, e.g.
``"Tangipahoa, LA; St. Tammany, LA; Washington, LA"``. A ZIP is affected
when a segment names its county/parish as a whole word and, when the
segment carries a state, that state matches too.

The table ships with the package. In production this would be a full
HUD/USPS crosswalk; the demo covers the Gulf Coast service area.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

import h3

from instarelief.core.config import settings

logger = logging.getLogger(__name__)

ZIP_TABLE_PATH = Path(__file__).resolve().parent.parent / "data" / "zip_codes.json"

_ZIP_RE = re.compile(r"^\d{5}$")
_STATE_RE = re.compile(r"^[A-Z]{2}$")


@dataclass(frozen=True)
class ZipInfo:
    zip: str
    city: str
    county: str
    state: str
    lat: float
    lon: float

    @property
    def area_desc(self) -> str:
        """NWS-style area description for this ZIP's county."""
        return f"{self.county}, {self.state}"


@lru_cache(maxsize=1)
def load_zip_table() -> dict[str, ZipInfo]:
    raw = json.loads(ZIP_TABLE_PATH.read_text(encoding="utf-8"))
    table = {zip_code: ZipInfo(zip=zip_code, **entry) for zip_code, entry in raw.items()}
    logger.debug("Loaded %d ZIP codes from %s", len(table), ZIP_TABLE_PATH.name)
    return table


def is_valid_zip(zip_code: str) -> bool:
    return bool(_ZIP_RE.match(zip_code or ""))


def get_zip(zip_code: str) -> ZipInfo | None:
    return load_zip_table().get(zip_code)


def county_for_zip(zip_code: str) -> str | None:
    """Return the NWS-style ``"County, ST"`` description for a ZIP, if known."""
    info = get_zip(zip_code)
    return info.area_desc if info else None


@lru_cache(maxsize=256)
def _county_pattern(county: str) -> re.Pattern[str]:
    # Whole-word match so "Harris" does not hit "Harrison".
    return re.compile(rf"(?<!\w){re.escape(county.lower())}(?!\w)")


def _parse_area(area_desc: str) -> list[tuple[str, str | None]]:
    """Split ``"Jefferson, TX; Orange, TX"`` into ``[("jefferson", "TX"), ...]``.

    Segments without a trailing two-letter state keep ``None`` as the state.
    """
    parts = []
    for segment in area_desc.split(";"):
        segment = " ".join(segment.split())
        if not segment:
            continue
        name, sep, state = segment.rpartition(",")
        state = state.strip().upper()
        if sep and _STATE_RE.match(state):
            parts.append((name.strip().lower(), state))
        else:
            parts.append((segment.lower(), None))
    return parts


def map_area_to_zips(area_desc: str | None) -> list[str]:
    """Return every known ZIP whose county is named in ``area_desc``.

    A segment carrying a state only matches counties in that state, so
    "Jefferson, TX" never reaches Jefferson Parish, LA. Segments without a
    state fall back to a whole-word county match.
    """
    if not area_desc:
        return []

    matches = set()
    for name, state in _parse_area(area_desc):
        for info in load_zip_table().values():
            if state is not None and info.state != state:
                continue
            if _county_pattern(info.county).search(name):
                matches.add(info.zip)
    return sorted(matches)


def zips_near(lat: float, lon: float, rings: int | None = None) -> list[str]:
    """Return ZIPs whose centroid falls within ``rings`` H3 rings of a point."""
    resolution = settings.h3_resolution
    k = settings.scenario_ring_size if rings is None else rings

    origin = h3.latlng_to_cell(lat, lon, resolution)
    neighbourhood = set(h3.grid_disk(origin, k))

    return sorted(
        info.zip
        for info in load_zip_table().values()
        if h3.latlng_to_cell(info.lat, info.lon, resolution) in neighbourhood
    )
