from __future__ import annotations

from ..extensions import db
from posledger.time_utils import to_utc_z, utcnow


CUSTOMER_TRANSACTION_TYPES = ("purchase", "credit_add", "credit_deduct")


class Customer(db.Model):
    """
    Customer master data with store-credit balance.

    credit_balance_cents is signed: negative means the customer owes the
    store. No floor is enforced.

    WHY version_id: the balance is a shared aggregate written from several
    terminals; a stale read-modify-write must fail and be retried.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_email", "email"),
        db.Index("ix_customers_phone", "phone"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    first_name = db.Column(db.String(128), nullable=False)
    last_name = db.Column(db.String(128), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    address = db.Column(db.Text, nullable=True)

    credit_balance_cents = db.Column(db.Integer, nullable=False, default=0)

    # Denormalized aggregates (updated when sales are completed)
    total_purchases_cents = db.Column(db.Integer, nullable=False, default=0)
    last_purchase_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "credit_balance_cents": self.credit_balance_cents,
            "total_purchases_cents": self.total_purchases_cents,
            "last_purchase_date": to_utc_z(self.last_purchase_date),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class CustomerTransaction(db.Model):
    """
    Append-only ledger of customer balance and purchase events.

    TRANSACTION TYPES:
    - purchase: a completed sale attributed to the customer
    - credit_add: store credit issued (balance up)
    - credit_deduct: store credit used / debt recorded (balance down)

    amount_cents is always >= 0; direction is carried by the type.
    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "customer_transactions"
    __table_args__ = (
        db.Index("ix_customer_txns_customer_created", "customer_id", "created_at"),
        db.CheckConstraint("amount_cents >= 0", name="ck_customer_txns_amount_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=False)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    customer = db.relationship("Customer", backref=db.backref("transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "type": self.type,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "sale_id": self.sale_id,
            "created_at": to_utc_z(self.created_at),
        }
