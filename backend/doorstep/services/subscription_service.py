# Overview: Subscription schedule operations; create, pause, resume, cancel and preview.

from __future__ import annotations

from datetime import date
from typing import Any, Iterable, Mapping

from doorstep.extensions import db
from doorstep.errors import NotFoundError, ScheduleError
from doorstep.models import Address, Subscription, SubscriptionProduct
from doorstep.services.concurrency import lock_for_update, run_in_transaction
from doorstep.services.schedule import normalize_recurrence, upcoming_delivery_dates
from doorstep.time_utils import to_calendar_date, today as business_today, utcnow


SUBSCRIPTION_ACTIVE = "ACTIVE"
SUBSCRIPTION_PAUSED = "PAUSED"
SUBSCRIPTION_CANCELLED = "CANCELLED"


def create_address(
    customer_id: int,
    *,
    line1: str,
    city: str,
    postal_code: str,
    line2: str | None = None,
    landmark: str | None = None,
    state: str | None = None,
    latitude: float | None = None,
    longitude: float | None = None,
) -> Address:
    def _op():
        clean_code = (postal_code or "").strip()
        if not clean_code:
            raise ScheduleError("Address postal code is required")
        if not (line1 or "").strip() or not (city or "").strip():
            raise ScheduleError("Address line1 and city are required")
        if (latitude is None) != (longitude is None):
            raise ScheduleError("Latitude and longitude must be provided together")

        address = Address(
            customer_id=customer_id,
            line1=line1.strip(),
            line2=line2,
            landmark=landmark,
            city=city.strip(),
            state=state,
            postal_code=clean_code,
            latitude=latitude,
            longitude=longitude,
        )
        db.session.add(address)
        db.session.flush()
        return address

    return run_in_transaction(_op)


def _build_product_lines(products: Iterable[Mapping[str, Any]]) -> list[SubscriptionProduct]:
    lines: list[SubscriptionProduct] = []
    seen: set[int] = set()
    for item in products or []:
        try:
            product_id = int(item["product_id"])
            quantity = int(item["quantity"])
            unit_price_cents = int(item["unit_price_cents"])
        except (KeyError, TypeError, ValueError):
            raise ScheduleError("Each product needs integer product_id, quantity and unit_price_cents")

        if quantity <= 0:
            raise ScheduleError(f"Quantity for product {product_id} must be positive")
        if unit_price_cents < 0:
            raise ScheduleError(f"Price for product {product_id} cannot be negative")
        if product_id in seen:
            raise ScheduleError(f"Product {product_id} listed twice")
        seen.add(product_id)

        lines.append(
            SubscriptionProduct(
                product_id=product_id,
                product_name=str(item.get("product_name") or f"Product {product_id}"),
                unit=item.get("unit"),
                quantity=quantity,
                unit_price_cents=unit_price_cents,
            )
        )

    if not lines:
        raise ScheduleError("Subscription must include at least one product")
    return lines


def create_subscription(
    customer_id: int,
    address_id: int,
    recurrence: str,
    start_date: date,
    products: Iterable[Mapping[str, Any]],
) -> Subscription:
    """
    Create an ACTIVE subscription.

    Product prices are captured here and never updated afterwards.
    """
    def _op():
        try:
            canonical = normalize_recurrence(recurrence)
        except ValueError as exc:
            raise ScheduleError(str(exc))

        if start_date is None:
            raise ScheduleError("Start date is required")

        address = db.session.get(Address, address_id)
        if address is None or address.customer_id != customer_id:
            raise NotFoundError(f"Address {address_id} not found for customer {customer_id}")

        subscription = Subscription(
            customer_id=customer_id,
            address_id=address.id,
            recurrence=canonical,
            start_date=to_calendar_date(start_date),
            status=SUBSCRIPTION_ACTIVE,
        )
        subscription.products = _build_product_lines(products)
        db.session.add(subscription)
        db.session.flush()
        return subscription

    return run_in_transaction(_op)


def get_subscription(subscription_id: int) -> Subscription:
    subscription = db.session.get(Subscription, subscription_id)
    if subscription is None:
        raise NotFoundError(f"Subscription {subscription_id} not found")
    return subscription


def _load_locked(subscription_id: int) -> Subscription:
    subscription = lock_for_update(
        db.session.query(Subscription).filter_by(id=subscription_id)
    ).first()
    if subscription is None:
        raise NotFoundError(f"Subscription {subscription_id} not found")
    return subscription


def pause_subscription(
    subscription_id: int,
    pause_start: date,
    pause_end: date,
    *,
    as_of: date | None = None,
) -> Subscription:
    """
    ACTIVE -> PAUSED with an inclusive window [pause_start, pause_end].

    Raises:
        ScheduleError: not ACTIVE, end not after start, or start in the past
    """
    def _op():
        subscription = _load_locked(subscription_id)

        if subscription.status == SUBSCRIPTION_CANCELLED:
            raise ScheduleError("Cannot pause a cancelled subscription")
        if subscription.status == SUBSCRIPTION_PAUSED:
            raise ScheduleError("Subscription is already paused")

        if pause_start is None or pause_end is None:
            raise ScheduleError("Pause start and end dates are required")
        start = to_calendar_date(pause_start)
        end = to_calendar_date(pause_end)
        if end <= start:
            raise ScheduleError("Pause end date must be after start date")
        if start < (as_of or business_today()):
            raise ScheduleError("Pause start date cannot be in the past")

        subscription.status = SUBSCRIPTION_PAUSED
        subscription.pause_start = start
        subscription.pause_end = end
        db.session.flush()
        return subscription

    return run_in_transaction(_op)


def resume_subscription(subscription_id: int) -> Subscription:
    """PAUSED -> ACTIVE; clears the pause window."""
    def _op():
        subscription = _load_locked(subscription_id)
        if subscription.status != SUBSCRIPTION_PAUSED:
            raise ScheduleError("Subscription is not paused")

        subscription.status = SUBSCRIPTION_ACTIVE
        subscription.pause_start = None
        subscription.pause_end = None
        db.session.flush()
        return subscription

    return run_in_transaction(_op)


def cancel_subscription(subscription_id: int) -> Subscription:
    """Soft-cancel. The row and its deliveries are kept."""
    def _op():
        subscription = _load_locked(subscription_id)
        if subscription.status == SUBSCRIPTION_CANCELLED:
            raise ScheduleError("Subscription is already cancelled")

        subscription.status = SUBSCRIPTION_CANCELLED
        subscription.pause_start = None
        subscription.pause_end = None
        subscription.cancelled_at = utcnow()
        db.session.flush()
        return subscription

    return run_in_transaction(_op)


def upcoming_deliveries(
    subscription: Subscription,
    count: int = 7,
    *,
    from_date: date | None = None,
) -> list[date]:
    """
    Preview the next delivery days; empty for cancelled subscriptions.

    A pause window is skipped as if the subscription resumes when it ends.
    """
    if subscription.status == SUBSCRIPTION_CANCELLED:
        return []
    return upcoming_delivery_dates(
        subscription.start_date,
        subscription.recurrence,
        count,
        from_date=from_date or business_today(),
        pause_start=subscription.pause_start,
        pause_end=subscription.pause_end,
    )
