# Overview: Pytest coverage for the nearest-neighbour route optimizer.

import random
from datetime import date

import pytest

from doorstep.services import lifecycle_service
from doorstep.services.generation_service import generate_for_date
from doorstep.services.routing_service import (
    RouteStop,
    get_optimized_route,
    haversine_km,
    optimize_route,
    route_distance_km,
)


def _stop(key, lat=None, lng=None):
    return RouteStop(key=key, latitude=lat, longitude=lng)


class TestHaversine:
    def test_zero_distance(self):
        assert haversine_km(28.6, 77.2, 28.6, 77.2) == 0.0

    def test_one_degree_latitude(self):
        assert haversine_km(0.0, 0.0, 1.0, 0.0) == pytest.approx(111.19, abs=0.01)

    def test_symmetric(self):
        assert haversine_km(28.6, 77.2, 19.0, 72.8) == pytest.approx(haversine_km(19.0, 72.8, 28.6, 77.2))


class TestOptimizeRoute:
    def test_empty(self):
        plan = optimize_route([])
        assert plan.stops == []
        assert plan.total_distance_km == 0.0
        assert plan.estimated_minutes == 0

    def test_single_stop_unchanged(self):
        stop = _stop("a", 28.6, 77.2)
        plan = optimize_route([stop])
        assert plan.stops == [stop]
        assert plan.total_distance_km == 0.0
        assert plan.estimated_minutes == 5

    def test_result_is_permutation_of_input(self):
        rng = random.Random(7)
        stops = [_stop(i, rng.uniform(28.4, 28.8), rng.uniform(77.0, 77.4)) for i in range(12)]
        stops += [_stop("no-geo-1"), _stop("no-geo-2")]

        plan = optimize_route(stops)

        assert len(plan.stops) == len(stops)
        assert sorted(map(str, (s.key for s in plan.stops))) == sorted(map(str, (s.key for s in stops)))

    def test_non_geocoded_last_in_original_order(self):
        stops = [
            _stop("x"),
            _stop("a", 28.60, 77.20),
            _stop("y", None, 77.2),
            _stop("b", 28.61, 77.21),
            _stop("z"),
        ]

        plan = optimize_route(stops)

        assert [s.key for s in plan.stops][-3:] == ["x", "y", "z"]

    def test_out_of_range_coordinates_treated_as_missing(self):
        stops = [_stop("bad", 123.0, 77.2), _stop("a", 28.60, 77.20), _stop("b", 28.61, 77.21)]
        plan = optimize_route(stops)
        assert plan.stops[-1].key == "bad"

    def test_zero_coordinates_are_valid(self):
        stops = [_stop("origin", 0.0, 0.0), _stop("near", 0.01, 0.01), _stop("missing")]
        plan = optimize_route(stops)
        assert [s.key for s in plan.stops] == ["origin", "near", "missing"]

    def test_starts_at_first_geocoded_and_visits_nearest(self):
        """Points on a line given out of order come back in line order."""
        stops = [
            _stop(0, 28.600, 77.2),
            _stop(3, 28.630, 77.2),
            _stop(1, 28.610, 77.2),
            _stop(2, 28.620, 77.2),
        ]

        plan = optimize_route(stops)

        assert [s.key for s in plan.stops] == [0, 1, 2, 3]

    def test_ties_keep_input_order(self):
        stops = [_stop("start", 0.0, 0.0), _stop("east", 0.0, 0.01), _stop("west", 0.0, -0.01)]
        plan = optimize_route(stops)
        assert [s.key for s in plan.stops][:2] == ["start", "east"]

    def test_fallback_leg_for_missing_coordinates(self):
        stops = [_stop("a", 28.6, 77.2), _stop("b"), _stop("c")]
        plan = optimize_route(stops)
        assert plan.total_distance_km == 2.0
        # 3 stops * 5 min + 2 km at 30 km/h
        assert plan.estimated_minutes == 19

    def test_estimate_formula(self):
        stops = [_stop("a", 0.0, 0.0), _stop("b", 0.0, 0.1)]
        plan = optimize_route(stops)
        distance = haversine_km(0.0, 0.0, 0.0, 0.1)
        assert plan.total_distance_km == pytest.approx(round(distance, 2), abs=0.005)
        assert plan.estimated_minutes == round(2 * 5 + distance / 30 * 60)

    def test_custom_constants(self):
        stops = [_stop("a"), _stop("b")]
        plan = optimize_route(stops, handling_minutes=2, speed_kmh=60, fallback_km=3)
        assert plan.total_distance_km == 3.0
        assert plan.estimated_minutes == 7

    def test_deterministic(self):
        rng = random.Random(3)
        stops = [_stop(i, rng.uniform(10, 11), rng.uniform(10, 11)) for i in range(15)]
        assert [s.key for s in optimize_route(stops).stops] == [s.key for s in optimize_route(stops).stops]

    @pytest.mark.parametrize("seed", [1, 2, 3, 4, 5])
    def test_not_worse_than_input_order_by_bounded_factor(self, seed):
        """Greedy is not optimal, but on scattered points it beats visiting in input order."""
        rng = random.Random(seed)
        stops = [_stop(i, rng.uniform(28.4, 28.8), rng.uniform(77.0, 77.4)) for i in range(20)]

        plan = optimize_route(stops)

        naive = route_distance_km(stops)
        assert route_distance_km(plan.stops) <= naive * 1.25


class TestGetOptimizedRoute:
    def test_only_open_deliveries_for_agent_and_day(self, db_session, make_area, make_agent, make_subscription):
        area = make_area("North", ["110001"])
        agent = make_agent(area)
        make_subscription("110001", "DAILY", latitude=28.60, longitude=77.20)
        make_subscription("110001", "DAILY", latitude=28.62, longitude=77.20)
        make_subscription("110001", "DAILY", latitude=28.61, longitude=77.20)
        generate_for_date(date(2024, 1, 1))
        generate_for_date(date(2024, 1, 2))

        plan = get_optimized_route(agent.id, date(2024, 1, 1))
        assert len(plan.stops) == 3

        done = plan.stops[0].item
        lifecycle_service.complete_delivery(done.id, agent.id, {"type": "signature", "url": "https://x/s.png"})

        plan = get_optimized_route(agent.id, date(2024, 1, 1))
        assert len(plan.stops) == 2
        assert all(s.item.status in lifecycle_service.ACTIVE_STATUSES for s in plan.stops)
        assert all(s.item.delivery_date == date(2024, 1, 1) for s in plan.stops)

    def test_other_agents_deliveries_excluded(self, db_session, make_area, make_agent, make_subscription):
        north = make_agent(make_area("North", ["110001"]))
        south = make_agent(make_area("South", ["220001"]))
        make_subscription("110001", "DAILY", latitude=28.6, longitude=77.2)
        make_subscription("220001", "DAILY", latitude=19.0, longitude=72.8)
        generate_for_date(date(2024, 1, 1))

        plan = get_optimized_route(north.id, date(2024, 1, 1))
        assert [s.item.agent_id for s in plan.stops] == [north.id]
        assert get_optimized_route(south.id, date(2024, 1, 1)).stops[0].item.agent_id == south.id

    def test_uses_configured_constants(self, app, db_session, make_area, make_agent, make_subscription):
        agent = make_agent(make_area("North", ["110001"]))
        make_subscription("110001", "DAILY")
        generate_for_date(date(2024, 1, 1))

        original = app.config["ROUTE_HANDLING_MINUTES_PER_STOP"]
        app.config["ROUTE_HANDLING_MINUTES_PER_STOP"] = 12
        try:
            plan = get_optimized_route(agent.id, date(2024, 1, 1))
        finally:
            app.config["ROUTE_HANDLING_MINUTES_PER_STOP"] = original

        assert plan.estimated_minutes == 12
