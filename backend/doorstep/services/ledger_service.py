# Overview: Service-layer operations for the delivery audit ledger.

from __future__ import annotations

from typing import Optional
from datetime import datetime

from ..extensions import db
from ..models import DeliveryEvent
"""
Delivery Ledger Invariants (authoritative)

- Append-only audit log for assignment and lifecycle changes.
- No domain/business logic in the ledger itself.
- Events are written inside the same DB transaction as the change they record,
  so a rolled-back cascade leaves no orphan events behind.
- occurred_at is business time; created_at is system time (DB default).
"""


EVENT_CREATED = "delivery.created"
EVENT_REASSIGNED = "delivery.reassigned"
EVENT_UNASSIGNED = "delivery.unassigned"
EVENT_STARTED = "delivery.started"
EVENT_DELIVERED = "delivery.delivered"
EVENT_FAILED = "delivery.failed"


def append_delivery_event(
    *,
    delivery_id: int,
    event_type: str,
    from_agent_id: int | None = None,
    to_agent_id: int | None = None,
    from_status: str | None = None,
    to_status: str | None = None,
    actor_agent_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
) -> DeliveryEvent:
    """
    Append-only delivery ledger event.

    - No domain logic here.
    - No deletes/updates of existing events.
    - Caller owns the transaction (flush only, never commit).
    """
    ev = DeliveryEvent(
        delivery_id=delivery_id,
        event_type=event_type,
        from_agent_id=from_agent_id,
        to_agent_id=to_agent_id,
        from_status=from_status,
        to_status=to_status,
        actor_agent_id=actor_agent_id,
        note=note,
    )
    if occurred_at is not None:
        ev.occurred_at = occurred_at

    db.session.add(ev)
    db.session.flush()
    return ev


def list_delivery_events(delivery_id: int) -> list[DeliveryEvent]:
    return (
        db.session.query(DeliveryEvent)
        .filter_by(delivery_id=delivery_id)
        .order_by(DeliveryEvent.occurred_at.asc(), DeliveryEvent.id.asc())
        .all()
    )
