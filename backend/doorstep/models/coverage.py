from __future__ import annotations

from ..extensions import db
from doorstep.time_utils import to_utc_z


class CoverageArea(db.Model):
    """
    Named set of postal codes serviced by the agents assigned to it.

    Postal codes live in coverage_area_postal_codes, one row per code, so
    membership is an exact match rather than a substring search over a
    comma-joined string. Sets may overlap across areas; assignment resolution
    picks the lowest-id active agent among all covering areas.
    """
    __tablename__ = "coverage_areas"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    postal_code_rows = db.relationship(
        "CoverageAreaPostalCode",
        backref="area",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="CoverageAreaPostalCode.postal_code",
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def postal_codes(self) -> list[str]:
        return [row.postal_code for row in self.postal_code_rows]

    def covers(self, postal_code: str | None) -> bool:
        if not postal_code:
            return False
        return postal_code.strip() in set(self.postal_codes)

    def __repr__(self) -> str:
        return f"<CoverageArea id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "postal_codes": self.postal_codes,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CoverageAreaPostalCode(db.Model):
    __tablename__ = "coverage_area_postal_codes"
    __table_args__ = (
        db.UniqueConstraint("area_id", "postal_code", name="uq_area_postal_code"),
        db.Index("ix_coverage_postal_code", "postal_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    area_id = db.Column(db.Integer, db.ForeignKey("coverage_areas.id"), nullable=False, index=True)
    postal_code = db.Column(db.String(16), nullable=False)

    def __repr__(self) -> str:
        return f"<CoverageAreaPostalCode area_id={self.area_id} postal_code={self.postal_code!r}>"


class Agent(db.Model):
    """
    Field delivery agent.

    INVARIANT: exactly one coverage area (area_id is NOT NULL). Deactivated
    agents are never resolved as assignees and hold no PENDING deliveries.
    """
    __tablename__ = "agents"
    __table_args__ = (
        db.Index("ix_agents_area_active", "area_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    phone = db.Column(db.String(32), nullable=False, unique=True, index=True)
    area_id = db.Column(db.Integer, db.ForeignKey("coverage_areas.id"), nullable=False, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    deactivated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    area = db.relationship("CoverageArea", backref=db.backref("agents", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Agent id={self.id} name={self.name!r} area_id={self.area_id} active={self.is_active}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "area_id": self.area_id,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deactivated_at": to_utc_z(self.deactivated_at) if self.deactivated_at else None,
        }
