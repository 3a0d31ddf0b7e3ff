# Overview: Assignment resolver; maps a postal code to the active agent that covers it.

"""
Assignment resolution.

RULE: the authoritative agent for a postal code is the ACTIVE agent with the
lowest id whose coverage area contains the code. Inactive agents are never
returned. Resolution is a pure query with no side effects.

Two entry points answer the same question:
- find_agent_for_postal_code: live query against the database
- CoverageSnapshot: immutable in-memory view captured once, used by the
  reassignment cascade so coverage cannot shift under it mid-cascade
"""

from __future__ import annotations

from dataclasses import dataclass, field

from doorstep.extensions import db
from doorstep.models import Agent, CoverageAreaPostalCode


def _normalize_code(postal_code: str | None) -> str:
    return (postal_code or "").strip()


def find_agent_for_postal_code(
    postal_code: str | None,
    *,
    exclude_agent_id: int | None = None,
) -> Agent | None:
    """
    Return the lowest-id active agent whose area covers postal_code.

    Args:
        postal_code: delivery address postal code (whitespace ignored)
        exclude_agent_id: agent never to return (the one being reassigned)

    Returns:
        The covering Agent, or None when the code is a coverage gap.
    """
    code = _normalize_code(postal_code)
    if not code:
        return None

    q = (
        db.session.query(Agent)
        .join(CoverageAreaPostalCode, CoverageAreaPostalCode.area_id == Agent.area_id)
        .filter(
            CoverageAreaPostalCode.postal_code == code,
            Agent.is_active.is_(True),
        )
    )
    if exclude_agent_id is not None:
        q = q.filter(Agent.id != exclude_agent_id)

    return q.order_by(Agent.id.asc()).first()


@dataclass(frozen=True)
class CoverageSnapshot:
    """
    Read-only view of active coverage at one instant.

    agents_by_postal_code maps each postal code to the ids of the active
    agents covering it, ascending. area_codes maps each area id to its
    postal-code set.
    """
    agents_by_postal_code: dict[str, tuple[int, ...]] = field(default_factory=dict)
    area_codes: dict[int, frozenset[str]] = field(default_factory=dict)

    @classmethod
    def capture(cls) -> "CoverageSnapshot":
        rows = (
            db.session.query(CoverageAreaPostalCode.area_id, CoverageAreaPostalCode.postal_code)
            .all()
        )
        area_codes: dict[int, set[str]] = {}
        for area_id, code in rows:
            area_codes.setdefault(area_id, set()).add(code)

        agents = (
            db.session.query(Agent.id, Agent.area_id)
            .filter(Agent.is_active.is_(True))
            .order_by(Agent.id.asc())
            .all()
        )
        by_code: dict[str, list[int]] = {}
        for agent_id, area_id in agents:
            for code in area_codes.get(area_id, ()):
                by_code.setdefault(code, []).append(agent_id)

        return cls(
            agents_by_postal_code={code: tuple(ids) for code, ids in by_code.items()},
            area_codes={area_id: frozenset(codes) for area_id, codes in area_codes.items()},
        )

    def area_covers(self, area_id: int, postal_code: str | None) -> bool:
        return _normalize_code(postal_code) in self.area_codes.get(area_id, frozenset())

    def resolve(
        self,
        postal_code: str | None,
        *,
        exclude_agent_ids: set[int] | frozenset[int] = frozenset(),
    ) -> int | None:
        """Lowest-id covering agent not in exclude_agent_ids, or None."""
        for agent_id in self.agents_by_postal_code.get(_normalize_code(postal_code), ()):
            if agent_id not in exclude_agent_ids:
                return agent_id
        return None
