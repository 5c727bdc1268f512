from __future__ import annotations

from ..extensions import db
from ..time_utils import to_iso_date, to_utc_z, utcnow

# Batch key for stock without an expiration date. A real column value (not
# NULL) so the (product, location, batch) unique constraint covers it.
GENERAL_BATCH_KEY = "GENERAL"


def batch_key_for(expiration_date) -> str:
    return expiration_date.isoformat() if expiration_date is not None else GENERAL_BATCH_KEY


class StockLevel(db.Model):
    """
    Quantity on hand for one (product, location, expiration batch).

    WHY: Batches of the same product with different expirations coexist as
    separate rows so sales can consume First-Expired-First-Out.

    DESIGN:
    - Unique per (product_id, location_id, batch_key); batch_key mirrors
      expiration_date (ISO date) or GENERAL when the batch has none
    - quantity >= 0 enforced by a CHECK constraint as well as by the
      conditional UPDATE used for every decrement
    - Rows are never deleted; zero-quantity rows stay for audit continuity
    - Mutated only through inventory_service (atomic SQL increments), never
      via ORM attribute assignment
    """
    __tablename__ = "stock_levels"
    __table_args__ = (
        db.UniqueConstraint("product_id", "location_id", "batch_key", name="uq_stock_levels_batch"),
        db.CheckConstraint("quantity >= 0", name="ck_stock_levels_quantity_non_negative"),
        db.Index("ix_stock_levels_product_location", "product_id", "location_id"),
        db.Index("ix_stock_levels_location_expiration", "location_id", "expiration_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False)
    expiration_date = db.Column(db.Date, nullable=True)
    batch_key = db.Column(db.String(16), nullable=False, default=GENERAL_BATCH_KEY)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    product = db.relationship("Product")
    location = db.relationship("Location")

    def __repr__(self) -> str:
        return (
            f"<StockLevel product={self.product_id} location={self.location_id} "
            f"batch={self.batch_key} qty={self.quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "expiration_date": to_iso_date(self.expiration_date),
            "quantity": self.quantity,
            "updated_at": to_utc_z(self.updated_at),
        }
