from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Organization(db.Model):
    """
    Multi-tenant root: Every tenant is an Organization.

    WHY: Enables shared-database multi-tenancy with strict isolation.
    All locations, products, customers and money movement belong to exactly
    one organization. No data may cross organization boundaries.

    DESIGN:
    - Organizations are the tenant boundary
    - Locations belong to organizations (org_id FK)
    - `code` feeds the three-letter prefix of document numbers
      (EXP-ACM-000001 for code "acme")
    """
    __tablename__ = "organizations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=False, unique=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def short_code(self) -> str:
        """Three upper-case letters used in document numbers."""
        letters = "".join(ch for ch in (self.code or self.name or "") if ch.isalnum())
        return (letters.upper() + "XXX")[:3]

    def __repr__(self) -> str:
        return f"<Organization id={self.id} code={self.code!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Location(db.Model):
    """
    Stock-holding location (shop floor, warehouse) within an organization.

    MULTI-TENANT: Locations are scoped to organizations via org_id.
    Location names and codes are unique within an organization, not globally.
    """
    __tablename__ = "locations"
    __table_args__ = (
        db.UniqueConstraint("org_id", "name", name="uq_locations_org_name"),
        db.UniqueConstraint("org_id", "code", name="uq_locations_org_code"),
        db.Index("ix_locations_org_id", "org_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(32), nullable=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    organization = db.relationship("Organization", backref=db.backref("locations", lazy=True))

    def __repr__(self) -> str:
        return f"<Location id={self.id} org_id={self.org_id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
