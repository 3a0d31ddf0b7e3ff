# Overview: Coverage registry; areas, their postal-code sets and the agents assigned to them.

from __future__ import annotations

from typing import Iterable

from doorstep.extensions import db
from doorstep.errors import ConflictError, InvalidAreaError, NotFoundError, ValidationError
from doorstep.models import Agent, CoverageArea, CoverageAreaPostalCode
from doorstep.services.concurrency import lock_for_update, run_in_transaction


def normalize_postal_codes(codes: Iterable[str] | str | None) -> list[str]:
    """
    Strip, de-duplicate (order preserving) and validate a postal-code set.

    Accepts a list or a comma-separated string.

    Raises:
        InvalidAreaError: the resulting set is empty
    """
    if codes is None:
        codes = []
    if isinstance(codes, str):
        codes = codes.split(",")

    seen: list[str] = []
    for code in codes:
        cleaned = str(code).strip()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)

    if not seen:
        raise InvalidAreaError("Coverage area must contain at least one postal code")
    return seen


def create_area(name: str, postal_codes: Iterable[str] | str) -> CoverageArea:
    def _op():
        clean_name = (name or "").strip()
        if not clean_name:
            raise ValidationError("Area name is required")

        codes = normalize_postal_codes(postal_codes)

        if db.session.query(CoverageArea).filter_by(name=clean_name).first():
            raise ConflictError(f"Area '{clean_name}' already exists")

        area = CoverageArea(name=clean_name)
        area.postal_code_rows = [CoverageAreaPostalCode(postal_code=code) for code in codes]
        db.session.add(area)
        db.session.flush()
        return area

    return run_in_transaction(_op)


def get_area(area_id: int) -> CoverageArea:
    area = db.session.get(CoverageArea, area_id)
    if area is None:
        raise NotFoundError(f"Area {area_id} not found")
    return area


def list_areas() -> list[CoverageArea]:
    return db.session.query(CoverageArea).order_by(CoverageArea.name.asc()).all()


def create_agent(name: str, phone: str, area_id: int) -> Agent:
    """
    Create an active agent bound to exactly one coverage area.

    Raises:
        InvalidAreaError: area_id does not reference an existing area
        ConflictError: phone already registered
    """
    def _op():
        clean_name = (name or "").strip()
        clean_phone = (phone or "").strip()
        if not clean_name or not clean_phone:
            raise ValidationError("Agent name and phone are required")

        if area_id is None or db.session.get(CoverageArea, area_id) is None:
            raise InvalidAreaError(f"Invalid area ID {area_id}")

        if db.session.query(Agent).filter_by(phone=clean_phone).first():
            raise ConflictError("Phone number already registered")

        agent = Agent(name=clean_name, phone=clean_phone, area_id=area_id, is_active=True)
        db.session.add(agent)
        db.session.flush()
        return agent

    return run_in_transaction(_op)


def update_agent(agent_id: int, *, name: str | None = None, phone: str | None = None) -> Agent:
    """
    Update agent profile fields.

    Area changes go through reassignment_service.reassign_agent_area and
    deactivation through reassignment_service.deactivate_agent, so the
    pending-delivery invariants are kept.
    """
    def _op():
        agent = lock_for_update(db.session.query(Agent).filter_by(id=agent_id)).first()
        if agent is None:
            raise NotFoundError(f"Agent {agent_id} not found")

        if phone is not None and phone.strip() != agent.phone:
            clean_phone = phone.strip()
            if db.session.query(Agent).filter_by(phone=clean_phone).first():
                raise ConflictError("Phone number already registered")
            agent.phone = clean_phone
        if name is not None and name.strip():
            agent.name = name.strip()

        db.session.flush()
        return agent

    return run_in_transaction(_op)


def get_agent(agent_id: int) -> Agent:
    agent = db.session.get(Agent, agent_id)
    if agent is None:
        raise NotFoundError(f"Agent {agent_id} not found")
    return agent


def list_agents(*, active_only: bool = False) -> list[Agent]:
    q = db.session.query(Agent)
    if active_only:
        q = q.filter(Agent.is_active.is_(True))
    return q.order_by(Agent.name.asc(), Agent.id.asc()).all()


def get_agents_by_area(area_id: int) -> list[Agent]:
    return (
        db.session.query(Agent)
        .filter(Agent.area_id == area_id, Agent.is_active.is_(True))
        .order_by(Agent.name.asc(), Agent.id.asc())
        .all()
    )


def validate_agent_area_assignment(agent_id: int) -> bool:
    """True when the agent exists and references an existing area."""
    agent = db.session.get(Agent, agent_id)
    if agent is None or agent.area_id is None:
        return False
    return db.session.get(CoverageArea, agent.area_id) is not None
