# Overview: Reassignment cascade; keeps pending deliveries on agents that still cover them.

"""
Doorstep Reassignment Cascade

================================================================================
INVARIANT: no PENDING delivery is ever left assigned to an agent whose current
coverage area excludes its delivery address.
================================================================================

Three coverage changes can break the invariant, and each one re-resolves the
affected PENDING deliveries inside a single transaction:

1. reassign_agent_area   agent moves to another area
2. deactivate_agent      agent stops working (deliveries become unassigned)
3. update_area_postal_codes  an area's postal-code set is edited

RULES:
- Only PENDING deliveries move. IN_PROGRESS / DELIVERED / FAILED rows are
  never touched; work already underway is not disturbed.
- Re-resolution excludes the agent losing coverage and otherwise follows the
  assignment rule (lowest-id active covering agent). No covering agent means
  the delivery becomes unassigned, never left on a non-covering agent.
- Coverage is read once, through a CoverageSnapshot, at cascade start.
- Every move appends a delivery ledger event in the same transaction; a
  failure anywhere rolls back all deliveries, events and the agent/area edit.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from flask import current_app

from doorstep.extensions import db
from doorstep.errors import InvalidAreaError, NotFoundError
from doorstep.models import Agent, CoverageArea, CoverageAreaPostalCode, Delivery
from doorstep.services import ledger_service
from doorstep.services.assignment_service import CoverageSnapshot
from doorstep.services.concurrency import lock_for_update, run_in_transaction
from doorstep.services.coverage_service import normalize_postal_codes
from doorstep.services.lifecycle_service import STATUS_PENDING
from doorstep.time_utils import utcnow


@dataclass
class ReassignmentResult:
    agent: Agent
    reassigned_count: int

    def to_dict(self) -> dict:
        return {"agent": self.agent.to_dict(), "reassigned_count": self.reassigned_count}


@dataclass
class AreaUpdateResult:
    area: CoverageArea
    reassigned_count: int

    def to_dict(self) -> dict:
        return {"area": self.area.to_dict(), "reassigned_count": self.reassigned_count}


def _pending_deliveries_for_agent(agent_id: int) -> list[Delivery]:
    return lock_for_update(
        db.session.query(Delivery)
        .filter(Delivery.agent_id == agent_id, Delivery.status == STATUS_PENDING)
        .order_by(Delivery.delivery_date.asc(), Delivery.id.asc())
    ).all()


def _move_delivery(delivery: Delivery, to_agent_id: int | None, *, note: str) -> None:
    from_agent_id = delivery.agent_id
    delivery.agent_id = to_agent_id
    ledger_service.append_delivery_event(
        delivery_id=delivery.id,
        event_type=(
            ledger_service.EVENT_REASSIGNED if to_agent_id is not None
            else ledger_service.EVENT_UNASSIGNED
        ),
        from_agent_id=from_agent_id,
        to_agent_id=to_agent_id,
        from_status=delivery.status,
        to_status=delivery.status,
        note=note,
    )


def _reresolve_uncovered(
    agent_id: int,
    covering_area_id: int,
    snapshot: CoverageSnapshot,
    *,
    note: str,
) -> int:
    """
    Move the agent's PENDING deliveries that covering_area_id no longer covers.

    Returns the number of deliveries reassigned or unassigned.
    """
    moved = 0
    for delivery in _pending_deliveries_for_agent(agent_id):
        postal_code = delivery.postal_code
        if snapshot.area_covers(covering_area_id, postal_code):
            continue

        target = snapshot.resolve(postal_code, exclude_agent_ids={agent_id})
        _move_delivery(delivery, target, note=note)
        moved += 1
    return moved


def reassign_agent_area(agent_id: int, new_area_id: int) -> ReassignmentResult:
    """
    Move an agent to a new coverage area and cascade delivery reassignments.

    Steps (single transaction):
    1. Validate agent and new area exist
    2. Same area -> no-op, count 0
    3. Collect the agent's PENDING deliveries
    4. Keep those the new area covers; re-resolve the rest excluding this
       agent (covering agent found -> reassign, else unassign)
    5. Update the agent's area

    Raises:
        NotFoundError: agent missing
        InvalidAreaError: new area missing
    """
    def _op():
        agent = lock_for_update(db.session.query(Agent).filter_by(id=agent_id)).first()
        if agent is None:
            raise NotFoundError(f"Agent {agent_id} not found")

        new_area = db.session.get(CoverageArea, new_area_id) if new_area_id is not None else None
        if new_area is None:
            raise InvalidAreaError(f"Invalid area ID {new_area_id}")

        if agent.area_id == new_area.id:
            return ReassignmentResult(agent=agent, reassigned_count=0)

        snapshot = CoverageSnapshot.capture()
        moved = _reresolve_uncovered(
            agent.id,
            new_area.id,
            snapshot,
            note=f"agent {agent.id} moved from area {agent.area_id} to area {new_area.id}",
        )

        agent.area_id = new_area.id
        db.session.flush()
        return ReassignmentResult(agent=agent, reassigned_count=moved)

    result = run_in_transaction(_op)
    current_app.logger.info(
        "Agent %s reassigned to area %s; %s pending deliveries moved",
        result.agent.id, result.agent.area_id, result.reassigned_count,
    )
    return result


def deactivate_agent(agent_id: int) -> ReassignmentResult:
    """
    Deactivate an agent and unassign (never delete) its PENDING deliveries.

    Idempotent: deactivating an inactive agent returns count 0.
    """
    def _op():
        agent = lock_for_update(db.session.query(Agent).filter_by(id=agent_id)).first()
        if agent is None:
            raise NotFoundError(f"Agent {agent_id} not found")

        moved = 0
        for delivery in _pending_deliveries_for_agent(agent.id):
            _move_delivery(delivery, None, note=f"agent {agent.id} deactivated")
            moved += 1

        if agent.is_active:
            agent.is_active = False
            agent.deactivated_at = utcnow()
        db.session.flush()
        return ReassignmentResult(agent=agent, reassigned_count=moved)

    result = run_in_transaction(_op)
    current_app.logger.info(
        "Agent %s deactivated; %s pending deliveries unassigned",
        result.agent.id, result.reassigned_count,
    )
    return result


def update_area_postal_codes(area_id: int, postal_codes: Iterable[str] | str) -> AreaUpdateResult:
    """
    Replace an area's postal-code set and cascade for every agent in it.

    Codes that stay keep their rows; removed codes are deleted and new ones
    inserted. Coverage is snapshotted after the edit, so deliveries whose code
    left the area resolve against the new state.
    """
    def _op():
        area = lock_for_update(db.session.query(CoverageArea).filter_by(id=area_id)).first()
        if area is None:
            raise NotFoundError(f"Area {area_id} not found")

        codes = normalize_postal_codes(postal_codes)
        wanted = set(codes)
        current = {row.postal_code: row for row in area.postal_code_rows}

        for code, row in current.items():
            if code not in wanted:
                area.postal_code_rows.remove(row)
        for code in codes:
            if code not in current:
                area.postal_code_rows.append(CoverageAreaPostalCode(postal_code=code))
        db.session.flush()

        snapshot = CoverageSnapshot.capture()
        agent_ids = [
            row[0]
            for row in db.session.query(Agent.id)
            .filter(Agent.area_id == area.id)
            .order_by(Agent.id.asc())
            .all()
        ]

        moved = 0
        for agent_id in agent_ids:
            moved += _reresolve_uncovered(
                agent_id,
                area.id,
                snapshot,
                note=f"area {area.id} postal codes edited",
            )

        db.session.flush()
        return AreaUpdateResult(area=area, reassigned_count=moved)

    result = run_in_transaction(_op)
    current_app.logger.info(
        "Area %s postal codes updated; %s pending deliveries moved",
        result.area.id, result.reassigned_count,
    )
    return result
