from __future__ import annotations

from ..extensions import db
from doorstep.time_utils import to_utc_z, to_iso_date


class Delivery(db.Model):
    """
    One concrete delivery owed on one date for one subscription.

    LIFECYCLE (see lifecycle_service.py):
        PENDING -> IN_PROGRESS -> DELIVERED | FAILED
        PENDING -> DELIVERED | FAILED

    INVARIANTS:
    - At most one row per (subscription_id, delivery_date)
    - proof_* present iff DELIVERED; failure_* present iff FAILED
    - completed_at present iff DELIVERED or FAILED
    - DELIVERED and FAILED are terminal
    - agent_id may be NULL (coverage gap); only PENDING rows are ever
      reassigned after creation
    """
    __tablename__ = "deliveries"
    __table_args__ = (
        db.UniqueConstraint("subscription_id", "delivery_date", name="uq_deliveries_subscription_date"),
        db.Index("ix_deliveries_agent_date", "agent_id", "delivery_date"),
        db.Index("ix_deliveries_agent_status", "agent_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    subscription_id = db.Column(db.Integer, db.ForeignKey("subscriptions.id"), nullable=False, index=True)
    delivery_date = db.Column(db.Date, nullable=False, index=True)
    agent_id = db.Column(db.Integer, db.ForeignKey("agents.id"), nullable=True)

    # PENDING | IN_PROGRESS | DELIVERED | FAILED
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    # Completion proof (DELIVERED only)
    proof_type = db.Column(db.String(16), nullable=True)  # photo | signature
    proof_url = db.Column(db.String(1024), nullable=True)
    proof_captured_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Failure reason (FAILED only)
    failure_code = db.Column(db.String(32), nullable=True)
    failure_note = db.Column(db.String(500), nullable=True)

    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    subscription = db.relationship("Subscription", backref=db.backref("deliveries", lazy=True))
    agent = db.relationship("Agent", backref=db.backref("deliveries", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def address(self):
        return self.subscription.address if self.subscription else None

    @property
    def postal_code(self) -> str | None:
        address = self.address
        return address.postal_code if address else None

    def __repr__(self) -> str:
        return (
            f"<Delivery id={self.id} subscription_id={self.subscription_id} "
            f"date={self.delivery_date} status={self.status} agent_id={self.agent_id}>"
        )

    def to_dict(self) -> dict:
        from doorstep.services.lifecycle_service import failure_description

        subscription = self.subscription
        address = self.address
        return {
            "id": self.id,
            "subscription_id": self.subscription_id,
            "customer_id": subscription.customer_id if subscription else None,
            "delivery_date": to_iso_date(self.delivery_date),
            "agent_id": self.agent_id,
            "status": self.status,
            "address": address.to_dict() if address else None,
            "products": [p.to_dict() for p in subscription.products] if subscription else [],
            "proof": (
                {
                    "type": self.proof_type,
                    "url": self.proof_url,
                    "captured_at": to_utc_z(self.proof_captured_at),
                }
                if self.proof_url
                else None
            ),
            "failure_reason": (
                {
                    "code": self.failure_code,
                    "description": failure_description(self.failure_code),
                    "note": self.failure_note,
                }
                if self.failure_code
                else None
            ),
            "started_at": to_utc_z(self.started_at) if self.started_at else None,
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class DeliveryEvent(db.Model):
    """
    Append-only audit trail for deliveries.

    Written inside the same transaction as the change it records. Rows are
    never updated or deleted.

    event_type values:
        delivery.created, delivery.reassigned, delivery.unassigned,
        delivery.started, delivery.delivered, delivery.failed
    """
    __tablename__ = "delivery_events"
    __table_args__ = (
        db.Index("ix_delivery_events_delivery_occurred", "delivery_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    delivery_id = db.Column(db.Integer, db.ForeignKey("deliveries.id"), nullable=False, index=True)
    event_type = db.Column(db.String(64), nullable=False, index=True)

    from_agent_id = db.Column(db.Integer, db.ForeignKey("agents.id"), nullable=True)
    to_agent_id = db.Column(db.Integer, db.ForeignKey("agents.id"), nullable=True)
    from_status = db.Column(db.String(16), nullable=True)
    to_status = db.Column(db.String(16), nullable=True)
    actor_agent_id = db.Column(db.Integer, db.ForeignKey("agents.id"), nullable=True)

    note = db.Column(db.String(500), nullable=True)

    # Business time vs. system time
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    delivery = db.relationship(
        "Delivery",
        backref=db.backref("events", lazy=True, order_by="DeliveryEvent.id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "delivery_id": self.delivery_id,
            "event_type": self.event_type,
            "from_agent_id": self.from_agent_id,
            "to_agent_id": self.to_agent_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "actor_agent_id": self.actor_agent_id,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
        }
