# Overview: Delivery generator; expands subscriptions into dated, assigned deliveries.

"""
Delivery generation.

generate_for_date is driven externally once per day (CLI or admin endpoint)
and is safe to re-run for the same date: a (subscription, date) pair that
already has a delivery is skipped, and the unique constraint on that pair
turns a race with a concurrent generator into a skip as well.

Each delivery is created and assigned in its own transaction together with
its ledger event. A missing covering agent is a coverage gap, not an error:
the delivery is created unassigned.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError

from doorstep.extensions import db
from doorstep.errors import ScheduleError
from doorstep.models import Address, Delivery, Subscription
from doorstep.services import ledger_service
from doorstep.services.assignment_service import find_agent_for_postal_code
from doorstep.services.concurrency import run_in_transaction
from doorstep.services.lifecycle_service import STATUS_PENDING
from doorstep.services.schedule import is_delivery_day
from doorstep.services.subscription_service import SUBSCRIPTION_ACTIVE
from doorstep.time_utils import to_calendar_date


def _candidate_rows(day: date) -> list[tuple]:
    """Subscriptions that may owe a delivery on day, with their postal code."""
    return (
        db.session.query(
            Subscription.id,
            Subscription.recurrence,
            Subscription.start_date,
            Subscription.pause_start,
            Subscription.pause_end,
            Address.postal_code,
        )
        .join(Address, Address.id == Subscription.address_id)
        .filter(
            Subscription.status == SUBSCRIPTION_ACTIVE,
            Subscription.start_date <= day,
        )
        .order_by(Subscription.id.asc())
        .all()
    )


def _create_delivery(subscription_id: int, day: date, postal_code: str) -> bool:
    def _op():
        exists = (
            db.session.query(Delivery.id)
            .filter_by(subscription_id=subscription_id, delivery_date=day)
            .first()
        )
        if exists:
            return False

        agent = find_agent_for_postal_code(postal_code)
        delivery = Delivery(
            subscription_id=subscription_id,
            delivery_date=day,
            agent_id=agent.id if agent else None,
            status=STATUS_PENDING,
        )
        db.session.add(delivery)
        db.session.flush()

        ledger_service.append_delivery_event(
            delivery_id=delivery.id,
            event_type=ledger_service.EVENT_CREATED,
            to_agent_id=delivery.agent_id,
            to_status=STATUS_PENDING,
            note=None if agent else f"no active agent covers postal code {postal_code}",
        )
        return True

    return run_in_transaction(_op)


def generate_for_date(target: date | datetime) -> int:
    """
    Create the deliveries owed on target for every qualifying subscription.

    Qualifying: ACTIVE, started on or before target, target is a recurrence
    day and outside any pause window still recorded on the subscription,
    and no delivery exists yet for (subscription, target).

    Returns:
        Number of deliveries created by this call (0 on a re-run).
    """
    day = to_calendar_date(target)

    already = {
        row[0]
        for row in db.session.query(Delivery.subscription_id).filter_by(delivery_date=day).all()
    }

    created = 0
    for sub_id, recurrence, start_date, pause_start, pause_end, postal_code in _candidate_rows(day):
        if sub_id in already:
            continue
        if not is_delivery_day(start_date, day, recurrence, pause_start, pause_end):
            continue

        try:
            if _create_delivery(sub_id, day, postal_code):
                created += 1
        except IntegrityError:
            current_app.logger.info(
                "Delivery for subscription %s on %s created concurrently; skipping", sub_id, day
            )

    current_app.logger.info("Generated %s deliveries for %s", created, day.isoformat())
    return created


def backfill_range(start: date | datetime, end: date | datetime) -> dict[date, int]:
    """
    Run generate_for_date for each day of the inclusive range [start, end].

    Raises:
        ScheduleError: end before start, or range longer than MAX_BACKFILL_DAYS
    """
    first = to_calendar_date(start)
    last = to_calendar_date(end)
    if last < first:
        raise ScheduleError("Backfill end date must not be before start date")

    max_days = int(current_app.config.get("MAX_BACKFILL_DAYS", 31))
    span = (last - first).days + 1
    if span > max_days:
        raise ScheduleError(f"Backfill range of {span} days exceeds the {max_days}-day limit")

    return {
        first + timedelta(days=offset): generate_for_date(first + timedelta(days=offset))
        for offset in range(span)
    }
