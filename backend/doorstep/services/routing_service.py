# Overview: Route optimizer; greedy nearest-neighbour visiting order for one agent's day.

"""
Route ordering for a single agent and day.

ALGORITHM (heuristic, not optimal):
1. Partition stops into geocoded (valid lat/lon) and non-geocoded
2. Nearest-neighbour tour over the geocoded stops, starting at the first
   geocoded stop in input order; ties keep input order
3. Append non-geocoded stops in their original relative order

DISTANCE: sum over consecutive stops of the final order; haversine when both
ends have coordinates, FALLBACK_LEG_KM otherwise.

ESTIMATE: HANDLING_MINUTES_PER_STOP per stop plus travel at
AVERAGE_SPEED_KMH; minutes rounded to an integer, distance to 2 decimals.

optimize_route does no I/O and is deterministic for a given input, so it can
be called concurrently without coordination.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Sequence

from flask import current_app

from doorstep.models import Delivery

EARTH_RADIUS_KM = 6371.0
HANDLING_MINUTES_PER_STOP = 5.0
AVERAGE_SPEED_KMH = 30.0
FALLBACK_LEG_KM = 1.0


@dataclass(frozen=True)
class RouteStop:
    key: Any
    latitude: float | None = None
    longitude: float | None = None
    item: Any = field(default=None, compare=False, repr=False)

    @property
    def has_coordinates(self) -> bool:
        if self.latitude is None or self.longitude is None:
            return False
        return -90.0 <= self.latitude <= 90.0 and -180.0 <= self.longitude <= 180.0


@dataclass
class RoutePlan:
    stops: list[RouteStop]
    total_distance_km: float
    estimated_minutes: int

    def to_dict(self) -> dict:
        return {
            "stops": [
                stop.item.to_dict() if hasattr(stop.item, "to_dict") else {"key": stop.key}
                for stop in self.stops
            ],
            "total_distance_km": self.total_distance_km,
            "estimated_minutes": self.estimated_minutes,
        }


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def _round_half_up(value: float, digits: int = 0) -> float:
    scale = 10 ** digits
    return math.floor(value * scale + 0.5) / scale


def leg_distance_km(a: RouteStop, b: RouteStop, *, fallback_km: float = FALLBACK_LEG_KM) -> float:
    if a.has_coordinates and b.has_coordinates:
        return haversine_km(a.latitude, a.longitude, b.latitude, b.longitude)
    return fallback_km


def route_distance_km(stops: Sequence[RouteStop], *, fallback_km: float = FALLBACK_LEG_KM) -> float:
    """Unrounded length of stops visited in the given order."""
    return sum(
        leg_distance_km(stops[i - 1], stops[i], fallback_km=fallback_km)
        for i in range(1, len(stops))
    )


def estimate_minutes(
    stop_count: int,
    distance_km: float,
    *,
    handling_minutes: float = HANDLING_MINUTES_PER_STOP,
    speed_kmh: float = AVERAGE_SPEED_KMH,
) -> int:
    travel = (distance_km / speed_kmh) * 60 if speed_kmh > 0 else 0.0
    return int(_round_half_up(stop_count * handling_minutes + travel))


def nearest_neighbour_order(stops: Sequence[RouteStop]) -> list[RouteStop]:
    """Greedy tour over geocoded stops, starting at the first one given."""
    remaining = list(stops)
    if len(remaining) <= 1:
        return remaining

    tour = [remaining.pop(0)]
    while remaining:
        last = tour[-1]
        nearest_idx = 0
        nearest_dist = math.inf
        for idx, candidate in enumerate(remaining):
            dist = haversine_km(last.latitude, last.longitude, candidate.latitude, candidate.longitude)
            if dist < nearest_dist:
                nearest_dist = dist
                nearest_idx = idx
        tour.append(remaining.pop(nearest_idx))
    return tour


def optimize_route(
    stops: Sequence[RouteStop],
    *,
    handling_minutes: float = HANDLING_MINUTES_PER_STOP,
    speed_kmh: float = AVERAGE_SPEED_KMH,
    fallback_km: float = FALLBACK_LEG_KM,
) -> RoutePlan:
    """
    Order stops into a low-travel sequence.

    Returns a permutation of exactly the input stops. Zero or one stop comes
    back as-is with distance 0.
    """
    stops = list(stops)
    if len(stops) <= 1:
        return RoutePlan(
            stops=stops,
            total_distance_km=0.0,
            estimated_minutes=estimate_minutes(
                len(stops), 0.0, handling_minutes=handling_minutes, speed_kmh=speed_kmh
            ),
        )

    geocoded = [s for s in stops if s.has_coordinates]
    missing = [s for s in stops if not s.has_coordinates]

    ordered = nearest_neighbour_order(geocoded) + missing
    distance = route_distance_km(ordered, fallback_km=fallback_km)

    return RoutePlan(
        stops=ordered,
        total_distance_km=_round_half_up(distance, 2),
        estimated_minutes=estimate_minutes(
            len(ordered), distance, handling_minutes=handling_minutes, speed_kmh=speed_kmh
        ),
    )


def stop_for_delivery(delivery: Delivery) -> RouteStop:
    address = delivery.address
    return RouteStop(
        key=delivery.id,
        latitude=address.latitude if address else None,
        longitude=address.longitude if address else None,
        item=delivery,
    )


def get_optimized_route(agent_id: int, day: date | None = None) -> RoutePlan:
    """
    Optimized route over the agent's PENDING and IN_PROGRESS deliveries for day
    (default: today). Constants come from app config.
    """
    from doorstep.services import delivery_service
    from doorstep.services.lifecycle_service import ACTIVE_STATUSES

    deliveries = [
        d for d in delivery_service.get_daily_deliveries(agent_id, day)
        if d.status in ACTIVE_STATUSES
    ]

    cfg = current_app.config
    return optimize_route(
        [stop_for_delivery(d) for d in deliveries],
        handling_minutes=float(cfg.get("ROUTE_HANDLING_MINUTES_PER_STOP", HANDLING_MINUTES_PER_STOP)),
        speed_kmh=float(cfg.get("ROUTE_AVERAGE_SPEED_KMH", AVERAGE_SPEED_KMH)),
        fallback_km=float(cfg.get("ROUTE_FALLBACK_LEG_KM", FALLBACK_LEG_KM)),
    )
