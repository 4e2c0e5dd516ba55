"""
NASA NeoWs client and feed enrichment.
Bridge to external knowledge.
"""

import asyncio
import csv
import io
import logging
import re
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

import httpx

from staroracle.config import Settings, get_settings
from staroracle.errors import NotFound, UpstreamFailure, ValidationError
from staroracle.risk import calculate_risk_score, mean_diameter_km, rank_by_risk

logger = logging.getLogger("star_oracle.neo")

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

EXPORT_COLUMNS = [
    "id",
    "name",
    "is_hazardous",
    "diameter_min_km",
    "diameter_max_km",
    "close_approach_date",
    "velocity_km_h",
    "velocity_km_s",
    "miss_distance_km",
    "miss_distance_lunar",
    "miss_distance_au",
    "orbiting_body",
    "nasa_jpl_url",
]


class NASANeoClient:
    """Client for NASA's Near Earth Object Web Service.
    Respectful consumer of public data."""

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings or get_settings()
        self.base_url = self.settings.nasa_base_url
        self.api_key = self.settings.nasa_api_key
        self.transport = transport
        self._cache: Dict[str, Any] = {}
        self._cache_timestamps: Dict[str, datetime] = {}

    def _is_cache_valid(self, key: str) -> bool:
        """Check if cached data is still fresh."""
        if key not in self._cache_timestamps:
            return False

        age = (datetime.utcnow() - self._cache_timestamps[key]).total_seconds()
        return age < self.settings.cache_ttl

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.settings.request_timeout, transport=self.transport)

    async def _get(self, endpoint: str, params: dict = None, not_found: Optional[str] = None) -> dict:
        """GET from NeoWs. Any failure ends the request; there is no retry."""
        if params is None:
            params = {}

        url = f"{self.base_url}/{endpoint}"
        cache_key = f"{endpoint}:{sorted(params.items())}"
        if self._is_cache_valid(cache_key):
            logger.info(f"Cache hit for {endpoint}")
            return self._cache[cache_key]

        params = dict(params, api_key=self.api_key)

        # Courtesy delay - we are patient observers
        if self.settings.request_delay > 0:
            await asyncio.sleep(self.settings.request_delay)

        async with self._client() as client:
            try:
                response = await client.get(url, params=params)
            except httpx.HTTPError as e:
                logger.error(f"NASA API unreachable: {e!r}")
                raise UpstreamFailure(f"Failed to fetch data from NASA API: {type(e).__name__}")

        if response.status_code == 404 and not_found:
            raise NotFound(not_found)
        if response.status_code != 200:
            logger.error(f"NASA API error: {response.status_code} - {response.text[:200]}")
            raise UpstreamFailure(f"NASA API returned error code: {response.status_code}")

        try:
            data = response.json()
        except ValueError:
            logger.error(f"NASA API returned unparseable body for {endpoint}")
            raise UpstreamFailure("Failed to parse NASA API response")
        if not isinstance(data, dict):
            raise UpstreamFailure("Failed to parse NASA API response")

        self._cache[cache_key] = data
        self._cache_timestamps[cache_key] = datetime.utcnow()
        return data

    async def get_feed(self, start_date: str, end_date: str) -> dict:
        """Retrieve NEO feed for date range."""
        return await self._get("feed", {"start_date": start_date, "end_date": end_date})

    async def get_neo_lookup(self, neo_id: str) -> dict:
        """Lookup specific NEO by ID."""
        return await self._get(
            f"neo/{neo_id}",
            not_found=f"Object {neo_id} not found in catalog. Verify designation.",
        )

    async def check_api_key(self, api_key: str) -> bool:
        """True when NeoWs accepts ``api_key`` for today's feed."""
        today = datetime.utcnow().strftime("%Y-%m-%d")
        params = {"start_date": today, "end_date": today, "api_key": api_key}
        async with httpx.AsyncClient(timeout=10.0, transport=self.transport) as client:
            try:
                response = await client.get(f"{self.base_url}/feed", params=params)
            except httpx.HTTPError as e:
                logger.warning(f"API key check could not reach NASA: {e!r}")
                return False
        return response.status_code == 200


_client: Optional[NASANeoClient] = None


def get_neo_client() -> NASANeoClient:
    """FastAPI dependency; one client (and cache) per process."""
    global _client
    if _client is None:
        _client = NASANeoClient()
    return _client


def resolve_date_range(start_date: Optional[str], end_date: Optional[str], max_days: int) -> Tuple[str, str]:
    """Default both ends to today and enforce YYYY-MM-DD within ``max_days``."""
    today = datetime.utcnow().strftime("%Y-%m-%d")
    start_date = start_date or today
    end_date = end_date or today

    if not DATE_PATTERN.match(start_date) or not DATE_PATTERN.match(end_date):
        raise ValidationError("Invalid date format. Use YYYY-MM-DD")
    try:
        start = datetime.strptime(start_date, "%Y-%m-%d")
        end = datetime.strptime(end_date, "%Y-%m-%d")
    except ValueError:
        raise ValidationError("Invalid date format. Use YYYY-MM-DD")

    if end < start:
        raise ValidationError("end_date must not be before start_date")
    if end - start > timedelta(days=max_days):
        raise ValidationError(f"Date range cannot exceed {max_days} days.")
    return start_date, end_date


def _process_approach(approach: Dict[str, Any]) -> Dict[str, Any]:
    velocity = approach["relative_velocity"]
    distance = approach["miss_distance"]
    return {
        "date": approach.get("close_approach_date"),
        "date_full": approach.get("close_approach_date_full"),
        "velocity_kmh": float(velocity["kilometers_per_hour"]),
        "velocity_kms": float(velocity["kilometers_per_second"]),
        "distance_km": float(distance["kilometers"]),
        "distance_lunar": float(distance["lunar"]),
        "distance_au": float(distance["astronomical"]),
        "orbiting_body": approach.get("orbiting_body"),
    }


def process_asteroid(neo: Dict[str, Any], include_all_approaches: bool = False) -> Dict[str, Any]:
    """Transform a raw NeoWs object into the API shape, scored."""
    diameter = neo.get("estimated_diameter", {})
    kilometers = diameter.get("kilometers", {})
    meters = diameter.get("meters", {})
    approaches = neo.get("close_approach_data") or []

    asteroid = {
        "id": neo["id"],
        "name": neo.get("name"),
        "nasa_jpl_url": neo.get("nasa_jpl_url"),
        "is_hazardous": bool(neo.get("is_potentially_hazardous_asteroid", False)),
        "diameter": {
            "min_km": kilometers.get("estimated_diameter_min"),
            "max_km": kilometers.get("estimated_diameter_max"),
            "min_m": meters.get("estimated_diameter_min"),
            "max_m": meters.get("estimated_diameter_max"),
        },
        "close_approach": _process_approach(approaches[0]) if approaches else None,
    }
    if include_all_approaches:
        asteroid["all_close_approaches"] = [_process_approach(a) for a in approaches]

    asteroid["risk_score"] = calculate_risk_score(asteroid)
    return asteroid


def iter_feed_objects(data: Dict[str, Any]):
    """Raw objects in feed order: dates as NeoWs lists them, then position."""
    for _date, neos in (data.get("near_earth_objects") or {}).items():
        for neo in neos:
            yield neo


def process_feed(data: Dict[str, Any]) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
    """Processed asteroids ranked by risk, and summary statistics."""
    try:
        asteroids = [process_asteroid(neo) for neo in iter_feed_objects(data)]
    except (KeyError, TypeError, ValueError) as e:
        logger.error(f"Malformed NeoWs feed: {e!r}")
        raise UpstreamFailure("Failed to parse NASA API response")

    stats = {
        "total_count": data.get("element_count", len(asteroids)),
        "hazardous_count": sum(1 for a in asteroids if a["is_hazardous"]),
        "closest_asteroid": None,
        "fastest_asteroid": None,
        "largest_asteroid": None,
    }

    approaching = [a for a in asteroids if a["close_approach"]]
    if approaching:
        closest = min(approaching, key=lambda a: a["close_approach"]["distance_km"])
        stats["closest_asteroid"] = {
            "id": closest["id"],
            "name": closest["name"],
            "distance_km": closest["close_approach"]["distance_km"],
            "distance_lunar": closest["close_approach"]["distance_lunar"],
        }
        fastest = max(approaching, key=lambda a: a["close_approach"]["velocity_kmh"])
        stats["fastest_asteroid"] = {
            "id": fastest["id"],
            "name": fastest["name"],
            "velocity_kmh": fastest["close_approach"]["velocity_kmh"],
            "velocity_kms": fastest["close_approach"]["velocity_kms"],
        }
    if asteroids:
        largest = max(asteroids, key=mean_diameter_km)
        stats["largest_asteroid"] = {
            "id": largest["id"],
            "name": largest["name"],
            "diameter_km": mean_diameter_km(largest),
        }

    return rank_by_risk(asteroids), stats


def _rounded(value: Any, digits: int):
    if value is None:
        return ""
    return round(float(value), digits)


def export_rows(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Flat rows for researcher export, feed order preserved."""
    rows = []
    try:
        for neo in iter_feed_objects(data):
            kilometers = neo.get("estimated_diameter", {}).get("kilometers", {})
            approaches = neo.get("close_approach_data") or []
            approach = approaches[0] if approaches else {}
            velocity = approach.get("relative_velocity", {})
            distance = approach.get("miss_distance", {})
            rows.append({
                "id": neo["id"],
                "name": neo.get("name"),
                "is_hazardous": "Yes" if neo.get("is_potentially_hazardous_asteroid") else "No",
                "diameter_min_km": _rounded(kilometers.get("estimated_diameter_min"), 4),
                "diameter_max_km": _rounded(kilometers.get("estimated_diameter_max"), 4),
                "close_approach_date": approach.get("close_approach_date", ""),
                "velocity_km_h": _rounded(velocity.get("kilometers_per_hour"), 2),
                "velocity_km_s": _rounded(velocity.get("kilometers_per_second"), 4),
                "miss_distance_km": _rounded(distance.get("kilometers"), 2),
                "miss_distance_lunar": _rounded(distance.get("lunar"), 4),
                "miss_distance_au": _rounded(distance.get("astronomical"), 8),
                "orbiting_body": approach.get("orbiting_body", ""),
                "nasa_jpl_url": neo.get("nasa_jpl_url"),
            })
    except (KeyError, TypeError, ValueError) as e:
        logger.error(f"Malformed NeoWs feed during export: {e!r}")
        raise UpstreamFailure("Failed to parse NASA API response")
    return rows


def rows_to_csv(rows: List[Dict[str, Any]]) -> str:
    """CSV text; the header row is written even for an empty feed."""
    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=EXPORT_COLUMNS)
    writer.writeheader()
    writer.writerows(rows)
    return output.getvalue()
