from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Product(db.Model):
    """
    Catalog item.

    The engine only reads products (prices, tax rate, reorder and expiry
    settings). Quantities live in StockLevel, never here.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("org_id", "sku", name="uq_products_org_sku"),
        db.Index("ix_products_org_barcode", "org_id", "barcode"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    barcode = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=False)

    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)  # Basis points (e.g., 750 = 7.5%)

    reorder_point = db.Column(db.Integer, nullable=False, default=0)
    reorder_quantity = db.Column(db.Integer, nullable=False, default=0)

    tracks_expiration = db.Column(db.Boolean, nullable=False, default=False)
    expiry_alert_days = db.Column(db.Integer, nullable=False, default=30)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "sku": self.sku,
            "barcode": self.barcode,
            "name": self.name,
            "cost_price_cents": self.cost_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "reorder_point": self.reorder_point,
            "reorder_quantity": self.reorder_quantity,
            "tracks_expiration": self.tracks_expiration,
            "expiry_alert_days": self.expiry_alert_days,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class CustomerPrice(db.Model):
    """
    Negotiated price for one customer on one product.

    Checkout applies it in place of the line's unit price whenever the sale
    is for that customer.
    """
    __tablename__ = "customer_prices"
    __table_args__ = (
        db.UniqueConstraint("customer_id", "product_id", name="uq_customer_prices_customer_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    price_cents = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "product_id": self.product_id,
            "price_cents": self.price_cents,
        }
