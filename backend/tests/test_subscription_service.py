# Overview: Pytest coverage for subscription schedule operations.

from datetime import date

import pytest

from doorstep.errors import NotFoundError, ScheduleError
from doorstep.services import subscription_service
from doorstep.services.subscription_service import (
    SUBSCRIPTION_ACTIVE,
    SUBSCRIPTION_CANCELLED,
    SUBSCRIPTION_PAUSED,
)

AS_OF = date(2024, 1, 1)


class TestCreateSubscription:
    def test_create_captures_prices(self, db_session, make_subscription):
        sub = make_subscription("110001", "every-other-day")

        assert sub.status == SUBSCRIPTION_ACTIVE
        assert sub.recurrence == "ALTERNATE"
        assert sub.products[0].unit_price_cents == 6400
        assert sub.products[0].quantity == 2

    def test_unknown_recurrence(self, db_session):
        address = subscription_service.create_address(1, line1="1 Road", city="X", postal_code="110001")
        with pytest.raises(ScheduleError):
            subscription_service.create_subscription(
                1, address.id, "MONTHLY", AS_OF,
                [{"product_id": 1, "quantity": 1, "unit_price_cents": 100}],
            )

    def test_requires_products(self, db_session):
        address = subscription_service.create_address(1, line1="1 Road", city="X", postal_code="110001")
        with pytest.raises(ScheduleError):
            subscription_service.create_subscription(1, address.id, "DAILY", AS_OF, [])

    def test_rejects_non_positive_quantity(self, db_session):
        address = subscription_service.create_address(1, line1="1 Road", city="X", postal_code="110001")
        with pytest.raises(ScheduleError):
            subscription_service.create_subscription(
                1, address.id, "DAILY", AS_OF,
                [{"product_id": 1, "quantity": 0, "unit_price_cents": 100}],
            )

    def test_address_must_belong_to_customer(self, db_session):
        address = subscription_service.create_address(1, line1="1 Road", city="X", postal_code="110001")
        with pytest.raises(NotFoundError):
            subscription_service.create_subscription(
                2, address.id, "DAILY", AS_OF,
                [{"product_id": 1, "quantity": 1, "unit_price_cents": 100}],
            )

    def test_address_requires_both_coordinates(self, db_session):
        with pytest.raises(ScheduleError):
            subscription_service.create_address(1, line1="1 Road", city="X", postal_code="110001", latitude=28.6)

    def test_address_requires_postal_code(self, db_session):
        with pytest.raises(ScheduleError):
            subscription_service.create_address(1, line1="1 Road", city="X", postal_code="  ")


class TestPauseResumeCancel:
    def test_pause_sets_window(self, db_session, make_subscription):
        sub = make_subscription("110001")
        paused = subscription_service.pause_subscription(
            sub.id, date(2024, 1, 5), date(2024, 1, 9), as_of=AS_OF
        )
        assert paused.status == SUBSCRIPTION_PAUSED
        assert (paused.pause_start, paused.pause_end) == (date(2024, 1, 5), date(2024, 1, 9))

    def test_pause_end_must_follow_start(self, db_session, make_subscription):
        sub = make_subscription("110001")
        with pytest.raises(ScheduleError):
            subscription_service.pause_subscription(sub.id, date(2024, 1, 5), date(2024, 1, 5), as_of=AS_OF)

    def test_pause_cannot_start_in_past(self, db_session, make_subscription):
        sub = make_subscription("110001")
        with pytest.raises(ScheduleError):
            subscription_service.pause_subscription(
                sub.id, date(2023, 12, 30), date(2024, 1, 5), as_of=AS_OF
            )

    def test_pause_twice_rejected(self, db_session, make_subscription):
        sub = make_subscription("110001")
        subscription_service.pause_subscription(sub.id, date(2024, 1, 5), date(2024, 1, 9), as_of=AS_OF)
        with pytest.raises(ScheduleError):
            subscription_service.pause_subscription(sub.id, date(2024, 1, 10), date(2024, 1, 12), as_of=AS_OF)

    def test_resume_clears_window(self, db_session, make_subscription):
        sub = make_subscription("110001")
        subscription_service.pause_subscription(sub.id, date(2024, 1, 5), date(2024, 1, 9), as_of=AS_OF)

        resumed = subscription_service.resume_subscription(sub.id)

        assert resumed.status == SUBSCRIPTION_ACTIVE
        assert resumed.pause_start is None
        assert resumed.pause_end is None

    def test_resume_requires_paused(self, db_session, make_subscription):
        sub = make_subscription("110001")
        with pytest.raises(ScheduleError):
            subscription_service.resume_subscription(sub.id)

    def test_cancel_is_soft_and_final(self, db_session, make_subscription):
        sub = make_subscription("110001")
        cancelled = subscription_service.cancel_subscription(sub.id)

        assert cancelled.status == SUBSCRIPTION_CANCELLED
        assert cancelled.cancelled_at is not None
        assert subscription_service.get_subscription(sub.id) is not None

        with pytest.raises(ScheduleError):
            subscription_service.cancel_subscription(sub.id)
        with pytest.raises(ScheduleError):
            subscription_service.pause_subscription(sub.id, date(2024, 1, 5), date(2024, 1, 9), as_of=AS_OF)

    def test_unknown_subscription(self, db_session):
        with pytest.raises(NotFoundError):
            subscription_service.resume_subscription(424242)


class TestUpcomingDeliveries:
    def test_weekly_preview(self, db_session, make_subscription):
        sub = make_subscription("110001", "WEEKLY", start=date(2024, 1, 1))
        dates = subscription_service.upcoming_deliveries(sub, 3, from_date=date(2024, 1, 2))
        assert dates == [date(2024, 1, 8), date(2024, 1, 15), date(2024, 1, 22)]

    def test_preview_skips_pause(self, db_session, make_subscription):
        sub = make_subscription("110001", "DAILY", start=date(2024, 1, 1))
        subscription_service.pause_subscription(sub.id, date(2024, 1, 2), date(2024, 1, 3), as_of=AS_OF)

        dates = subscription_service.upcoming_deliveries(sub, 3, from_date=AS_OF)
        assert dates == [date(2024, 1, 1), date(2024, 1, 4), date(2024, 1, 5)]

    def test_cancelled_has_no_upcoming(self, db_session, make_subscription):
        sub = make_subscription("110001")
        subscription_service.cancel_subscription(sub.id)
        assert subscription_service.upcoming_deliveries(sub, 5, from_date=AS_OF) == []
