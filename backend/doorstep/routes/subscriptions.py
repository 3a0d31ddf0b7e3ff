# backend/doorstep/routes/subscriptions.py
"""
Subscription schedule API Routes

- POST /api/subscriptions/addresses            - Register a delivery address
- POST /api/subscriptions                      - Create an ACTIVE subscription
- GET  /api/subscriptions/:id                  - Subscription with upcoming delivery dates
- POST /api/subscriptions/:id/pause            - ACTIVE -> PAUSED with window
- POST /api/subscriptions/:id/resume           - PAUSED -> ACTIVE
- POST /api/subscriptions/:id/cancel           - Soft cancel

Customer-facing apps call these through the admin gateway, which holds the
admin token.
"""

from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..errors import DeliveryCoreError, ValidationError
from ..decorators import require_admin
from doorstep import error_response
from doorstep.services import subscription_service
from doorstep.time_utils import parse_iso_date, to_iso_date


subscriptions_bp = Blueprint("subscriptions", __name__, url_prefix="/api/subscriptions")


def _date_field(data: dict, field: str):
    value = data.get(field)
    if value is None:
        return None
    try:
        return parse_iso_date(str(value))
    except ValueError:
        raise ValidationError(f"{field} must be an ISO date (YYYY-MM-DD)")


def _int_field(data: dict, field: str) -> int:
    try:
        return int(data.get(field))
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer")


def _float_or_none(data: dict, field: str):
    value = data.get(field)
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number")


def _internal_error(action: str):
    db.session.rollback()
    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error"}}), 500


@subscriptions_bp.post("/addresses")
@require_admin
def create_address_route():
    data = request.get_json(silent=True) or {}
    try:
        address = subscription_service.create_address(
            _int_field(data, "customer_id"),
            line1=data.get("line1"),
            line2=data.get("line2"),
            landmark=data.get("landmark"),
            city=data.get("city"),
            state=data.get("state"),
            postal_code=data.get("postal_code"),
            latitude=_float_or_none(data, "latitude"),
            longitude=_float_or_none(data, "longitude"),
        )
        return jsonify({"address": address.to_dict()}), 201
    except DeliveryCoreError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _internal_error("create address")


@subscriptions_bp.post("")
@require_admin
def create_subscription_route():
    """
    Request body:
        {
            "customer_id": 7,
            "address_id": 3,
            "recurrence": "ALTERNATE",
            "start_date": "2024-01-01",
            "products": [{"product_id": 1, "product_name": "Milk 1L", "quantity": 2, "unit_price_cents": 6400}]
        }
    """
    data = request.get_json(silent=True) or {}
    try:
        subscription = subscription_service.create_subscription(
            _int_field(data, "customer_id"),
            _int_field(data, "address_id"),
            data.get("recurrence"),
            _date_field(data, "start_date"),
            data.get("products") or [],
        )
        return jsonify({"subscription": subscription.to_dict()}), 201
    except DeliveryCoreError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _internal_error("create subscription")


@subscriptions_bp.get("/<int:subscription_id>")
@require_admin
def get_subscription_route(subscription_id: int):
    count = request.args.get("upcoming", default=7, type=int)
    try:
        subscription = subscription_service.get_subscription(subscription_id)
        upcoming = subscription_service.upcoming_deliveries(subscription, max(0, min(count, 60)))
        return jsonify({
            "subscription": subscription.to_dict(),
            "upcoming_delivery_dates": [to_iso_date(d) for d in upcoming],
        }), 200
    except DeliveryCoreError as e:
        return error_response(e)


@subscriptions_bp.post("/<int:subscription_id>/pause")
@require_admin
def pause_subscription_route(subscription_id: int):
    """
    Request body:
        {"pause_start": "2024-02-01", "pause_end": "2024-02-10"}
    """
    data = request.get_json(silent=True) or {}
    try:
        subscription = subscription_service.pause_subscription(
            subscription_id,
            _date_field(data, "pause_start"),
            _date_field(data, "pause_end"),
        )
        return jsonify({"subscription": subscription.to_dict()}), 200
    except DeliveryCoreError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _internal_error("pause subscription")


@subscriptions_bp.post("/<int:subscription_id>/resume")
@require_admin
def resume_subscription_route(subscription_id: int):
    try:
        subscription = subscription_service.resume_subscription(subscription_id)
        return jsonify({"subscription": subscription.to_dict()}), 200
    except DeliveryCoreError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _internal_error("resume subscription")


@subscriptions_bp.post("/<int:subscription_id>/cancel")
@require_admin
def cancel_subscription_route(subscription_id: int):
    try:
        subscription = subscription_service.cancel_subscription(subscription_id)
        return jsonify({"subscription": subscription.to_dict()}), 200
    except DeliveryCoreError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _internal_error("cancel subscription")
