"""
Heuristic hazard score for near-Earth objects.

The score is additive and capped at 100. Within each factor only the
highest matching tier counts:

    hazard flag                      +40
    miss distance  < 1e6 / 5e6 / 1e7 km          +30 / +20 / +10
    mean diameter  > 1 / 0.5 / 0.1 / 0.05 km     +20 / +15 / +10 / +5
    velocity       > 100,000 / 50,000 km/h       +10 / +5

Missing approach data scores 0 for that factor.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

MAX_SCORE = 100
HAZARD_POINTS = 40

# (threshold, points), highest threshold first
DISTANCE_TIERS_KM: Sequence[Tuple[float, int]] = (
    (1_000_000, 30),
    (5_000_000, 20),
    (10_000_000, 10),
)
DIAMETER_TIERS_KM: Sequence[Tuple[float, int]] = (
    (1.0, 20),
    (0.5, 15),
    (0.1, 10),
    (0.05, 5),
)
VELOCITY_TIERS_KMH: Sequence[Tuple[float, int]] = (
    (100_000, 10),
    (50_000, 5),
)


def _below(value: Optional[float], tiers) -> int:
    if value is None:
        return 0
    for threshold, points in tiers:
        if value < threshold:
            return points
    return 0


def _above(value: Optional[float], tiers) -> int:
    if value is None:
        return 0
    for threshold, points in tiers:
        if value > threshold:
            return points
    return 0


def mean_diameter_km(asteroid: Dict[str, Any]) -> float:
    diameter = asteroid.get("diameter") or {}
    return ((diameter.get("min_km") or 0.0) + (diameter.get("max_km") or 0.0)) / 2


def calculate_risk_score(asteroid: Dict[str, Any]) -> int:
    """Score a processed asteroid (see ``staroracle.neo.process_asteroid``)."""
    score = HAZARD_POINTS if asteroid.get("is_hazardous") else 0

    approach = asteroid.get("close_approach") or {}
    score += _below(approach.get("distance_km"), DISTANCE_TIERS_KM)
    score += _above(mean_diameter_km(asteroid), DIAMETER_TIERS_KM)
    score += _above(approach.get("velocity_kmh"), VELOCITY_TIERS_KMH)

    return min(score, MAX_SCORE)


def rank_by_risk(asteroids: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Highest score first; ties keep feed order."""
    return sorted(asteroids, key=lambda a: a["risk_score"], reverse=True)
