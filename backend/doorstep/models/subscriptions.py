from __future__ import annotations

from ..extensions import db
from doorstep.time_utils import to_utc_z, to_iso_date


class Address(db.Model):
    """
    Delivery address. Only postal_code and the optional coordinates matter to
    assignment and routing; the remaining fields are carried for the agent.
    """
    __tablename__ = "addresses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, nullable=False, index=True)

    line1 = db.Column(db.String(255), nullable=False)
    line2 = db.Column(db.String(255), nullable=True)
    landmark = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(120), nullable=False)
    state = db.Column(db.String(120), nullable=True)
    postal_code = db.Column(db.String(16), nullable=False, index=True)

    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def has_coordinates(self) -> bool:
        if self.latitude is None or self.longitude is None:
            return False
        return -90.0 <= self.latitude <= 90.0 and -180.0 <= self.longitude <= 180.0

    def __repr__(self) -> str:
        return f"<Address id={self.id} postal_code={self.postal_code!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "line1": self.line1,
            "line2": self.line2,
            "landmark": self.landmark,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
            "coordinates": (
                {"lat": self.latitude, "lng": self.longitude} if self.has_coordinates else None
            ),
        }


class Subscription(db.Model):
    """
    Recurring delivery agreement.

    LIFECYCLE:
        ACTIVE <-> PAUSED -> CANCELLED (ACTIVE -> CANCELLED also allowed)

    RULES:
    - pause_start/pause_end are only set while PAUSED; resuming clears both
    - Never physically deleted; cancellation is a soft state with cancelled_at
    - Product prices are captured on the SubscriptionProduct rows at creation
    """
    __tablename__ = "subscriptions"
    __table_args__ = (
        db.Index("ix_subscriptions_status_start", "status", "start_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, nullable=False, index=True)
    address_id = db.Column(db.Integer, db.ForeignKey("addresses.id"), nullable=False, index=True)

    # DAILY | ALTERNATE | WEEKLY
    recurrence = db.Column(db.String(16), nullable=False)
    start_date = db.Column(db.Date, nullable=False)

    # ACTIVE | PAUSED | CANCELLED
    status = db.Column(db.String(16), nullable=False, default="ACTIVE", index=True)

    # Inclusive pause window
    pause_start = db.Column(db.Date, nullable=True)
    pause_end = db.Column(db.Date, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    address = db.relationship("Address", backref=db.backref("subscriptions", lazy=True))
    products = db.relationship(
        "SubscriptionProduct",
        backref="subscription",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="SubscriptionProduct.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Subscription id={self.id} status={self.status} recurrence={self.recurrence}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "address_id": self.address_id,
            "recurrence": self.recurrence,
            "start_date": to_iso_date(self.start_date),
            "status": self.status,
            "pause_start": to_iso_date(self.pause_start),
            "pause_end": to_iso_date(self.pause_end),
            "products": [p.to_dict() for p in self.products],
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
        }


class SubscriptionProduct(db.Model):
    """
    Product line on a subscription.

    unit_price_cents is a snapshot taken when the subscription was created;
    later catalog price changes do not touch it.
    """
    __tablename__ = "subscription_products"
    __table_args__ = (
        db.UniqueConstraint("subscription_id", "product_id", name="uq_subscription_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    subscription_id = db.Column(db.Integer, db.ForeignKey("subscriptions.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, nullable=False)
    product_name = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(32), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "unit": self.unit,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
        }
