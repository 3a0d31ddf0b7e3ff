# Overview: Pytest coverage for the reassignment cascade.

"""
Reassignment Cascade Tests

INVARIANT under test: after any coverage change, no PENDING delivery is
assigned to an agent whose area excludes its postal code, and nothing other
than PENDING deliveries moves.
"""

from datetime import date
from unittest import mock

import pytest

from doorstep.errors import InvalidAreaError, NotFoundError
from doorstep.models import Agent, CoverageArea, Delivery, DeliveryEvent
from doorstep.services import ledger_service, lifecycle_service
from doorstep.services.generation_service import generate_for_date
from doorstep.services.reassignment_service import (
    deactivate_agent,
    reassign_agent_area,
    update_area_postal_codes,
)

DAY = date(2024, 1, 1)


def _assign(db_session, delivery_id, agent_id):
    delivery = db_session.get(Delivery, delivery_id)
    delivery.agent_id = agent_id
    db_session.commit()


class TestReassignAgentArea:
    def test_moves_uncovered_delivery_to_covering_agent(self, db_session, make_area, make_agent, make_subscription):
        """A covers {110001}, B covers {110003}; O(110003) on A; A -> {110005} hands O to B."""
        area_a = make_area("A", ["110001"])
        area_b = make_area("B", ["110003"])
        area_new = make_area("New", ["110005"])
        agent_a = make_agent(area_a)
        agent_b = make_agent(area_b)

        make_subscription("110003", "DAILY")
        generate_for_date(DAY)
        delivery = db_session.query(Delivery).one()
        _assign(db_session, delivery.id, agent_a.id)

        result = reassign_agent_area(agent_a.id, area_new.id)

        assert result.reassigned_count == 1
        assert result.agent.area_id == area_new.id
        assert db_session.get(Delivery, delivery.id).agent_id == agent_b.id

    def test_uncovered_everywhere_becomes_unassigned(self, db_session, make_area, make_agent, make_subscription):
        north = make_area("North", ["110001"])
        south = make_area("South", ["220001"])
        agent = make_agent(north)
        make_subscription("110001", "DAILY")
        generate_for_date(DAY)

        result = reassign_agent_area(agent.id, south.id)

        assert result.reassigned_count == 1
        delivery = db_session.query(Delivery).one()
        assert delivery.agent_id is None
        assert delivery.status == lifecycle_service.STATUS_PENDING

    def test_still_covered_delivery_stays(self, db_session, make_area, make_agent, make_subscription):
        north = make_area("North", ["110001"])
        wider = make_area("Wider", ["110001", "110002"])
        agent = make_agent(north)
        make_subscription("110001", "DAILY")
        generate_for_date(DAY)

        result = reassign_agent_area(agent.id, wider.id)

        assert result.reassigned_count == 0
        assert db_session.query(Delivery).one().agent_id == agent.id

    def test_never_reassigns_back_to_moving_agent(self, db_session, make_area, make_agent, make_subscription):
        """The moving agent is excluded even though the snapshot predates the move."""
        north = make_area("North", ["110001"])
        south = make_area("South", ["220001"])
        mover = make_agent(north)
        make_subscription("110001", "DAILY")
        generate_for_date(DAY)

        reassign_agent_area(mover.id, south.id)
        assert db_session.query(Delivery).one().agent_id != mover.id

    def test_non_pending_deliveries_untouched(self, db_session, make_area, make_agent, make_subscription):
        north = make_area("North", ["110001"])
        south = make_area("South", ["220001"])
        agent = make_agent(north)
        make_agent(north)
        for _ in range(3):
            make_subscription("110001", "DAILY")
        generate_for_date(DAY)

        started, delivered, pending = db_session.query(Delivery).order_by(Delivery.id).all()
        lifecycle_service.start_delivery(started.id, agent.id)
        lifecycle_service.complete_delivery(delivered.id, agent.id, {"type": "photo", "url": "https://x/p.jpg"})

        result = reassign_agent_area(agent.id, south.id)

        assert result.reassigned_count == 1
        assert db_session.get(Delivery, started.id).agent_id == agent.id
        assert db_session.get(Delivery, delivered.id).agent_id == agent.id
        assert db_session.get(Delivery, pending.id).agent_id != agent.id

    def test_same_area_is_noop(self, db_session, make_area, make_agent, make_subscription):
        north = make_area("North", ["110001"])
        agent = make_agent(north)
        make_subscription("110001", "DAILY")
        generate_for_date(DAY)
        before = db_session.query(DeliveryEvent).count()

        result = reassign_agent_area(agent.id, north.id)

        assert result.reassigned_count == 0
        assert db_session.query(DeliveryEvent).count() == before

    def test_unknown_agent(self, db_session, make_area):
        area = make_area("North", ["110001"])
        with pytest.raises(NotFoundError):
            reassign_agent_area(424242, area.id)

    def test_unknown_area_changes_nothing(self, db_session, make_area, make_agent):
        north = make_area("North", ["110001"])
        agent = make_agent(north)

        with pytest.raises(InvalidAreaError):
            reassign_agent_area(agent.id, 424242)

        assert db_session.get(Agent, agent.id).area_id == north.id

    def test_moves_are_recorded_in_ledger(self, db_session, make_area, make_agent, make_subscription):
        north = make_area("North", ["110001"])
        south = make_area("South", ["220001"])
        agent = make_agent(north)
        make_subscription("110001", "DAILY")
        generate_for_date(DAY)
        delivery = db_session.query(Delivery).one()

        reassign_agent_area(agent.id, south.id)

        events = ledger_service.list_delivery_events(delivery.id)
        assert events[-1].event_type == ledger_service.EVENT_UNASSIGNED
        assert events[-1].from_agent_id == agent.id
        assert events[-1].to_agent_id is None

    def test_failure_mid_cascade_rolls_back_everything(self, db_session, make_area, make_agent, make_subscription):
        north = make_area("North", ["110001"])
        south = make_area("South", ["220001"])
        agent = make_agent(north)
        make_subscription("110001", "DAILY")
        make_subscription("110001", "DAILY")
        generate_for_date(DAY)
        events_before = db_session.query(DeliveryEvent).count()

        original = ledger_service.append_delivery_event
        calls = {"n": 0}

        def flaky_append(**kwargs):
            calls["n"] += 1
            if calls["n"] == 2:
                raise RuntimeError("ledger write failed")
            return original(**kwargs)

        with mock.patch.object(ledger_service, "append_delivery_event", side_effect=flaky_append):
            with pytest.raises(RuntimeError):
                reassign_agent_area(agent.id, south.id)

        assert db_session.get(Agent, agent.id).area_id == north.id
        assert all(d.agent_id == agent.id for d in db_session.query(Delivery).all())
        assert db_session.query(DeliveryEvent).count() == events_before


class TestDeactivateAgent:
    def test_pending_deliveries_become_unassigned(self, db_session, make_area, make_agent, make_subscription):
        north = make_area("North", ["110001"])
        agent = make_agent(north)
        make_subscription("110001", "DAILY")
        make_subscription("110001", "DAILY")
        generate_for_date(DAY)

        result = deactivate_agent(agent.id)

        assert result.reassigned_count == 2
        assert result.agent.is_active is False
        assert result.agent.deactivated_at is not None
        assert db_session.query(Delivery).filter(Delivery.agent_id.is_(None)).count() == 2

    def test_in_progress_delivery_stays_with_agent(self, db_session, make_area, make_agent, make_subscription):
        north = make_area("North", ["110001"])
        agent = make_agent(north)
        make_subscription("110001", "DAILY")
        generate_for_date(DAY)
        delivery = db_session.query(Delivery).one()
        lifecycle_service.start_delivery(delivery.id, agent.id)

        result = deactivate_agent(agent.id)

        assert result.reassigned_count == 0
        assert db_session.get(Delivery, delivery.id).agent_id == agent.id

    def test_deactivating_twice_is_harmless(self, db_session, make_area, make_agent):
        agent = make_agent(make_area("North", ["110001"]))
        deactivate_agent(agent.id)
        assert deactivate_agent(agent.id).reassigned_count == 0

    def test_unknown_agent(self, db_session):
        with pytest.raises(NotFoundError):
            deactivate_agent(424242)


class TestUpdateAreaPostalCodes:
    def test_removed_code_reresolves_to_other_area(self, db_session, make_area, make_agent, make_subscription):
        north = make_area("North", ["110001", "110002"])
        south = make_area("South", ["110002"])
        north_agent = make_agent(north)
        south_agent = make_agent(south)
        make_subscription("110001", "DAILY")
        make_subscription("110002", "DAILY")
        generate_for_date(DAY)

        result = update_area_postal_codes(north.id, ["110001"])

        assert result.reassigned_count == 1
        assert sorted(result.area.postal_codes) == ["110001"]
        by_code = {d.postal_code: d.agent_id for d in db_session.query(Delivery).all()}
        assert by_code == {"110001": north_agent.id, "110002": south_agent.id}

    def test_added_codes_do_not_move_anything(self, db_session, make_area, make_agent, make_subscription):
        north = make_area("North", ["110001"])
        make_agent(north)
        make_subscription("110001", "DAILY")
        generate_for_date(DAY)

        result = update_area_postal_codes(north.id, "110001,110009")

        assert result.reassigned_count == 0
        assert sorted(db_session.get(CoverageArea, north.id).postal_codes) == ["110001", "110009"]

    def test_empty_code_set_rejected(self, db_session, make_area):
        north = make_area("North", ["110001"])
        with pytest.raises(InvalidAreaError):
            update_area_postal_codes(north.id, [])
        assert db_session.get(CoverageArea, north.id).postal_codes == ["110001"]

    def test_unknown_area(self, db_session):
        with pytest.raises(NotFoundError):
            update_area_postal_codes(424242, ["110001"])
