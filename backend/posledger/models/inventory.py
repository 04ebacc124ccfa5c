from __future__ import annotations

from ..extensions import db
from posledger.time_utils import to_utc_z, utcnow


MOVEMENT_TYPES = ("sale", "adjustment", "restock", "return", "damage", "transfer")
ADJUSTMENT_TYPES = ("increase", "decrease", "set")


class Product(db.Model):
    """
    Product master data (catalog collaborator).

    The engine only owns ``stock`` (pack-level display quantity) and the
    ``stock_family_id`` link. Name, price and category are catalog fields
    maintained by the surrounding application.

    STOCK FAMILIES: when stock_family_id is set, the sellable quantity is
    derived from the family's base-unit pool; ``stock`` is kept in step for
    display only.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.Index("ix_products_category", "category"),
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(128), nullable=True)

    # Authoritative storage in cents (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_cents = db.Column(db.Integer, nullable=False, default=0)

    stock = db.Column(db.Integer, nullable=False, default=0)
    stock_family_id = db.Column(db.Integer, db.ForeignKey("stock_families.id"), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    stock_family = db.relationship("StockFamily", foreign_keys=[stock_family_id])
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "category": self.category,
            "price_cents": self.price_cents,
            "cost_cents": self.cost_cents,
            "stock": self.stock,
            "stock_family_id": self.stock_family_id,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockFamily(db.Model):
    """
    Shared base-unit inventory pool.

    WHY: Singles, six-packs and cases of the same item draw from one physical
    stock. total_stock is kept in BASE UNITS; each member product converts its
    own demand via units_per_pack.

    INVARIANT: total_stock >= 0 (CHECK constraint + service-level guard).
    CONCURRENCY: version_id is the optimistic lock for read-modify-write.
    """
    __tablename__ = "stock_families"
    __table_args__ = (
        db.CheckConstraint("total_stock >= 0", name="ck_stock_families_total_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(128), nullable=True)

    # Product representing one base unit
    base_product_id = db.Column(db.Integer, nullable=False, index=True)

    total_stock = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    members = db.relationship(
        "StockFamilyMember",
        backref="stock_family",
        lazy=True,
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_members: bool = False) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "base_product_id": self.base_product_id,
            "total_stock": self.total_stock,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_members:
            data["members"] = [m.to_dict() for m in self.members]
        return data


class StockFamilyMember(db.Model):
    """Links one product to one family. A product belongs to at most one family."""
    __tablename__ = "stock_family_members"
    __table_args__ = (
        db.UniqueConstraint("product_id", name="uq_stock_family_members_product"),
        db.CheckConstraint("units_per_pack > 0", name="ck_stock_family_members_units_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    stock_family_id = db.Column(db.Integer, db.ForeignKey("stock_families.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    # How many base units one sale of this product consumes
    units_per_pack = db.Column(db.Integer, nullable=False, default=1)
    is_base_unit = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", foreign_keys=[product_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "stock_family_id": self.stock_family_id,
            "product_id": self.product_id,
            "units_per_pack": self.units_per_pack,
            "is_base_unit": self.is_base_unit,
            "created_at": to_utc_z(self.created_at),
        }


class InventoryMovement(db.Model):
    """
    Append-only stock ledger entry.

    INVARIANT: new_stock = previous_stock + quantity (quantity is signed,
    positive = addition). Replaying a product's movements in write order
    reconstructs its displayed stock history.

    IMMUTABLE: Records are never updated or deleted (see models/immutability.py).
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.Index("ix_inventory_movements_product_created", "product_id", "created_at"),
        db.CheckConstraint("new_stock = previous_stock + quantity", name="ck_inventory_movements_balanced"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=True)

    movement_type = db.Column(db.String(16), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    previous_stock = db.Column(db.Integer, nullable=False)
    new_stock = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(255), nullable=True)
    # Sale id, adjustment id, ... (opaque string so any document can be referenced)
    reference_id = db.Column(db.String(64), nullable=True, index=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    user_name = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "reason": self.reason,
            "reference_id": self.reference_id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "created_at": to_utc_z(self.created_at),
        }


class StockAdjustment(db.Model):
    """
    User-initiated stock correction.

    Always written together with exactly one 'adjustment' InventoryMovement
    whose reference_id is this record's id.
    """
    __tablename__ = "stock_adjustments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    adjustment_type = db.Column(db.String(16), nullable=False)  # increase, decrease, set
    quantity = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=False)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    user_name = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "adjustment_type": self.adjustment_type,
            "quantity": self.quantity,
            "reason": self.reason,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "created_at": to_utc_z(self.created_at),
        }
