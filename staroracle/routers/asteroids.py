"""
Near-Earth object endpoints: the feed, enriched and ranked.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from staroracle.config import Settings, get_settings
from staroracle.errors import UpstreamFailure
from staroracle.neo import NASANeoClient, get_neo_client, process_asteroid, process_feed, resolve_date_range
from staroracle.schemas import FeedResponse

logger = logging.getLogger("star_oracle.routers.asteroids")

router = APIRouter(prefix="/api/asteroids", tags=["Near-Earth Objects"])


@router.get("", response_model=FeedResponse)
async def get_asteroids(
    start_date: Optional[str] = Query(None, description="Start date (YYYY-MM-DD)"),
    end_date: Optional[str] = Query(None, description="End date (YYYY-MM-DD)"),
    neo_client: NASANeoClient = Depends(get_neo_client),
    settings: Settings = Depends(get_settings),
):
    """Retrieve the NEO feed for a date range, highest risk first.

    Both dates default to today. The range may not exceed the configured
    maximum (7 days, the NeoWs limit).
    """
    start_date, end_date = resolve_date_range(start_date, end_date, settings.max_feed_days)

    data = await neo_client.get_feed(start_date, end_date)
    asteroids, stats = process_feed(data)

    logger.info(f"Feed retrieved: {len(asteroids)} objects for {start_date} to {end_date}")
    return {
        "success": True,
        "date_range": {"start": start_date, "end": end_date},
        "stats": stats,
        "asteroids": asteroids,
    }


@router.get("/{neo_id}")
async def get_asteroid(
    neo_id: str,
    neo_client: NASANeoClient = Depends(get_neo_client),
):
    """One object with every recorded close approach."""
    data = await neo_client.get_neo_lookup(neo_id)
    try:
        asteroid = process_asteroid(data, include_all_approaches=True)
    except (KeyError, TypeError, ValueError) as e:
        logger.error(f"Malformed NeoWs object {neo_id}: {e!r}")
        raise UpstreamFailure("Failed to parse NASA API response")

    orbital = data.get("orbital_data") or {}
    asteroid["absolute_magnitude"] = data.get("absolute_magnitude_h")
    asteroid["orbital_elements"] = {
        key: orbital.get(key)
        for key in (
            "orbit_id",
            "first_observation_date",
            "last_observation_date",
            "orbit_uncertainty",
            "minimum_orbit_intersection",
            "eccentricity",
            "semi_major_axis",
            "inclination",
            "orbital_period",
            "perihelion_distance",
            "aphelion_distance",
        )
    }
    asteroid["orbit_class"] = orbital.get("orbit_class")

    logger.info(f"Details retrieved for object: {neo_id}")
    return {"success": True, "data": asteroid}
