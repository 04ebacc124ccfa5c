from __future__ import annotations

from ..extensions import db
from posledger.time_utils import to_utc_z


class Bundle(db.Model):
    """
    Quantity bundle discount rule ("any 6 of these for $15").

    ELIGIBILITY: is_active AND now within [valid_from, valid_to] when those
    bounds are set. minimum_quantity counts combined units of any member
    product; bundle_price_cents is the flat price for that many units.

    Deleting a bundle deletes its BundleProduct links.
    """
    __tablename__ = "bundles"
    __table_args__ = (
        db.CheckConstraint("minimum_quantity > 0", name="ck_bundles_minimum_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    minimum_quantity = db.Column(db.Integer, nullable=False)
    bundle_price_cents = db.Column(db.Integer, nullable=False, default=0)

    valid_from = db.Column(db.DateTime(timezone=True), nullable=True)
    valid_to = db.Column(db.DateTime(timezone=True), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)

    products = db.relationship(
        "BundleProduct",
        backref="bundle",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="BundleProduct.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def product_ids(self) -> list[int]:
        return [bp.product_id for bp in self.products]

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "minimum_quantity": self.minimum_quantity,
            "bundle_price_cents": self.bundle_price_cents,
            "valid_from": to_utc_z(self.valid_from),
            "valid_to": to_utc_z(self.valid_to),
            "is_active": self.is_active,
            "product_ids": self.product_ids,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class BundleProduct(db.Model):
    __tablename__ = "bundle_products"
    __table_args__ = (
        db.UniqueConstraint("bundle_id", "product_id", name="uq_bundle_products_bundle_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    bundle_id = db.Column(db.Integer, db.ForeignKey("bundles.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=True)  # snapshot for display

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self):
        return {
            "id": self.id,
            "bundle_id": self.bundle_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "created_at": to_utc_z(self.created_at),
        }
