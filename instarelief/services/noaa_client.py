"""Client for the National Weather Service alerts API (api.weather.gov).

Active alerts are published as a GeoJSON FeatureCollection; each feature's
``properties`` carry the id, event name, severity and a free-text
``areaDesc`` that the ZIP fan-out matches against.

Docs: https://www.weather.gov/documentation/services-web-api
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from instarelief.core.config import settings
from instarelief.core.errors import ReliefError

logger = logging.getLogger(__name__)


class NOAAError(ReliefError):
    status_code = 502
    code = "NOAA_UNAVAILABLE"


@dataclass
class WeatherAlert:
    """The subset of an NWS alert feature used for fan-out and email."""

    id: str
    event: str
    severity: str
    headline: str
    description: str
    area_desc: str

    @classmethod
    def from_feature(cls, feature: dict[str, Any]) -> "WeatherAlert | None":
        props = feature.get("properties") or {}
        alert_id = props.get("id") or feature.get("id")
        if not alert_id:
            return None
        return cls(
            id=alert_id,
            event=props.get("event") or "Weather Alert",
            severity=props.get("severity") or "Unknown",
            headline=props.get("headline") or props.get("event") or "",
            description=props.get("description") or "",
            area_desc=props.get("areaDesc") or "",
        )


@dataclass(frozen=True)
class PointLocation:
    city: str
    state: str

    def __str__(self) -> str:
        return f"{self.city}, {self.state}"


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=settings.nws_request_timeout,
        headers={"User-Agent": settings.nws_user_agent, "Accept": "application/geo+json"},
    )


def parse_alerts(payload: dict[str, Any]) -> list[WeatherAlert]:
    alerts = []
    for feature in payload.get("features") or []:
        alert = WeatherAlert.from_feature(feature)
        if alert is not None:
            alerts.append(alert)
    return alerts


async def fetch_active_alerts() -> list[WeatherAlert]:
    """Fetch every active alert nationwide.

    Raises:
        NOAAError: If the API cannot be reached or returns a non-2xx status.
    """
    url = f"{settings.nws_api_base}/alerts/active"
    try:
        async with _client() as client:
            resp = await client.get(url)
    except httpx.HTTPError as exc:
        raise NOAAError(f"Cannot reach NWS alerts API: {exc}") from exc

    if resp.status_code >= 400:
        raise NOAAError(f"NOAA API returned {resp.status_code}: {resp.reason_phrase}")

    alerts = parse_alerts(resp.json())
    logger.info("Fetched %d active NOAA alerts", len(alerts))
    return alerts


async def fetch_alerts_for_point(lat: float, lon: float) -> list[WeatherAlert]:
    """Active alerts covering a point. Best-effort: returns [] on failure."""
    try:
        async with _client() as client:
            resp = await client.get(
                f"{settings.nws_api_base}/alerts/active",
                params={"point": f"{lat:.4f},{lon:.4f}"},
            )
        if resp.status_code != 200:
            return []
        return parse_alerts(resp.json())
    except httpx.HTTPError:
        logger.warning("NWS point alerts failed for (%s, %s)", lat, lon, exc_info=True)
        return []


async def fetch_point_location(lat: float, lon: float) -> PointLocation | None:
    """Nearest city/state for a point via ``/points``. Best-effort."""
    try:
        async with _client() as client:
            resp = await client.get(f"{settings.nws_api_base}/points/{lat:.4f},{lon:.4f}")
    except httpx.HTTPError:
        logger.warning("NWS points lookup failed for (%s, %s)", lat, lon, exc_info=True)
        return None

    if resp.status_code != 200:
        return None

    relative = (
        resp.json().get("properties", {}).get("relativeLocation", {}).get("properties", {})
    )
    city, state = relative.get("city"), relative.get("state")
    if not city or not state:
        return None
    return PointLocation(city=city, state=state)
