# Overview: Read-side delivery queries; daily lists, history and status summaries.

from __future__ import annotations

from datetime import date

from sqlalchemy import func

from doorstep.extensions import db
from doorstep.errors import NotFoundError, ValidationError
from doorstep.models import Delivery
from doorstep.services.lifecycle_service import VALID_STATUSES
from doorstep.time_utils import to_calendar_date, today

DEFAULT_HISTORY_LIMIT = 50
MAX_HISTORY_LIMIT = 200


def get_delivery(delivery_id: int) -> Delivery:
    delivery = db.session.get(Delivery, delivery_id)
    if delivery is None:
        raise NotFoundError(f"Delivery {delivery_id} not found")
    return delivery


def get_daily_deliveries(agent_id: int, day: date | None = None) -> list[Delivery]:
    """All of an agent's deliveries for day (default: today), in creation order."""
    target = to_calendar_date(day) if day is not None else today()
    return (
        db.session.query(Delivery)
        .filter(Delivery.agent_id == agent_id, Delivery.delivery_date == target)
        .order_by(Delivery.created_at.asc(), Delivery.id.asc())
        .all()
    )


def get_unassigned_deliveries(day: date | None = None) -> list[Delivery]:
    """Deliveries left without an agent (coverage gaps) for day."""
    target = to_calendar_date(day) if day is not None else today()
    return (
        db.session.query(Delivery)
        .filter(Delivery.agent_id.is_(None), Delivery.delivery_date == target)
        .order_by(Delivery.id.asc())
        .all()
    )


def get_delivery_history(
    agent_id: int,
    *,
    status: str | None = None,
    start: date | None = None,
    end: date | None = None,
    limit: int = DEFAULT_HISTORY_LIMIT,
    offset: int = 0,
) -> tuple[list[Delivery], int]:
    """
    Paged history for one agent, newest delivery date first.

    Returns:
        (page of deliveries, total matching rows)
    """
    if status is not None and status not in VALID_STATUSES:
        raise ValidationError(f"Unknown delivery status '{status}'")
    if limit <= 0 or limit > MAX_HISTORY_LIMIT:
        raise ValidationError(f"limit must be between 1 and {MAX_HISTORY_LIMIT}")
    if offset < 0:
        raise ValidationError("offset must not be negative")
    if start is not None and end is not None and end < start:
        raise ValidationError("end date must not be before start date")

    query = db.session.query(Delivery).filter(Delivery.agent_id == agent_id)
    if status is not None:
        query = query.filter(Delivery.status == status)
    if start is not None:
        query = query.filter(Delivery.delivery_date >= start)
    if end is not None:
        query = query.filter(Delivery.delivery_date <= end)

    total = query.count()
    rows = (
        query.order_by(Delivery.delivery_date.desc(), Delivery.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )
    return rows, total


def delivery_status_summary(
    start: date,
    end: date,
    *,
    agent_id: int | None = None,
) -> dict:
    """Counts per status over the inclusive date range; every status is present."""
    if end < start:
        raise ValidationError("end date must not be before start date")

    query = (
        db.session.query(Delivery.status, func.count(Delivery.id))
        .filter(Delivery.delivery_date >= start, Delivery.delivery_date <= end)
    )
    if agent_id is not None:
        query = query.filter(Delivery.agent_id == agent_id)

    counts = {status: 0 for status in sorted(VALID_STATUSES)}
    for status, count in query.group_by(Delivery.status).all():
        counts[status] = int(count)

    unassigned = (
        db.session.query(func.count(Delivery.id))
        .filter(
            Delivery.delivery_date >= start,
            Delivery.delivery_date <= end,
            Delivery.agent_id.is_(None),
        )
        .scalar()
    )

    return {
        "start": start.isoformat(),
        "end": end.isoformat(),
        "agent_id": agent_id,
        "total": sum(counts.values()),
        "by_status": counts,
        "unassigned": int(unassigned or 0) if agent_id is None else 0,
    }
