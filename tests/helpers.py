"""
Test data builders and a programmable NeoWs.
"""

import httpx

from staroracle.database import RESEARCHERS, SESSIONS, USER_PREFERENCES, USERS

TEST_PASSWORD = "Observer42"


async def collection_counts(db):
    return {
        name: await db[name].count_documents({})
        for name in (USERS, RESEARCHERS, USER_PREFERENCES, SESSIONS)
    }


def make_neo(
    neo_id,
    name=None,
    hazardous=False,
    min_km=0.01,
    max_km=0.02,
    distance_km=20_000_000.0,
    velocity_kmh=20_000.0,
    approach=True,
):
    """A NeoWs object shaped like the live feed returns it."""
    neo = {
        "id": neo_id,
        "name": name or f"({neo_id})",
        "nasa_jpl_url": f"https://ssd.jpl.nasa.gov/tools/sbdb_lookup.html#/?sstr={neo_id}",
        "is_potentially_hazardous_asteroid": hazardous,
        "estimated_diameter": {
            "kilometers": {"estimated_diameter_min": min_km, "estimated_diameter_max": max_km},
            "meters": {"estimated_diameter_min": min_km * 1000, "estimated_diameter_max": max_km * 1000},
        },
        "close_approach_data": [],
    }
    if approach:
        neo["close_approach_data"].append({
            "close_approach_date": "2024-03-01",
            "close_approach_date_full": "2024-Mar-01 12:00",
            "relative_velocity": {
                "kilometers_per_second": str(velocity_kmh / 3600),
                "kilometers_per_hour": str(velocity_kmh),
            },
            "miss_distance": {
                "astronomical": str(distance_km / 149_597_870.7),
                "lunar": str(distance_km / 384_400),
                "kilometers": str(distance_km),
            },
            "orbiting_body": "Earth",
        })
    return neo


def make_feed(*neos, date="2024-03-01"):
    return {"element_count": len(neos), "near_earth_objects": {date: list(neos)}}


class FakeNeoWs:
    """Serves ``feed`` and ``objects`` behind an ``httpx.MockTransport``."""

    def __init__(self):
        self.feed = make_feed()
        self.objects = {}
        self.status_code = 200
        self.raw_body = None
        self.error = None
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if self.status_code != 200:
            return httpx.Response(self.status_code, json={"error": "upstream"})
        if self.raw_body is not None:
            return httpx.Response(200, content=self.raw_body)
        if request.url.path.endswith("/feed"):
            return httpx.Response(200, json=self.feed)
        neo_id = request.url.path.rsplit("/", 1)[-1]
        if neo_id in self.objects:
            return httpx.Response(200, json=self.objects[neo_id])
        return httpx.Response(404, json={"code": 404, "error_message": "not found"})
