from __future__ import annotations

from ..extensions import db
from posledger.time_utils import to_utc_z, utcnow


SHIFT_ACTIVE = "active"
SHIFT_COMPLETED = "completed"
SHIFT_PENDING_APPROVAL = "pending_approval"
SHIFT_STATUSES = (SHIFT_ACTIVE, SHIFT_COMPLETED, SHIFT_PENDING_APPROVAL)


class Shift(db.Model):
    """
    Cash-drawer session for one cashier.

    LIFECYCLE:
    - active: drawer open, sales accrue to the shift window
    - pending_approval: closed with |variance| above threshold, waits for a manager
    - completed: closed and accepted (terminal)

    No path leads back to active. Summary fields are frozen at close.

    INVARIANT: at most one active shift per user (partial unique index).
    """
    __tablename__ = "shifts"
    __table_args__ = (
        db.Index(
            "uq_shifts_one_active_per_user",
            "user_id",
            unique=True,
            sqlite_where=db.text("status = 'active'"),
            postgresql_where=db.text("status = 'active'"),
        ),
        db.Index("ix_shifts_status_start", "status", "start_time"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    user_name = db.Column(db.String(128), nullable=True)

    status = db.Column(db.String(24), nullable=False, default=SHIFT_ACTIVE, index=True)

    start_time = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    end_time = db.Column(db.DateTime(timezone=True), nullable=True)

    # Cash tracking (all amounts in cents)
    opening_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    closing_balance_cents = db.Column(db.Integer, nullable=True)  # counted cash
    expected_balance_cents = db.Column(db.Integer, nullable=True)  # opening + cash sales
    variance_cents = db.Column(db.Integer, nullable=True)  # closing - expected

    # Frozen summary (set at close)
    total_sales_cents = db.Column(db.Integer, nullable=True)
    total_refunds_cents = db.Column(db.Integer, nullable=True)
    total_credit_issued_cents = db.Column(db.Integer, nullable=True)
    cash_sales_cents = db.Column(db.Integer, nullable=True)
    eft_sales_cents = db.Column(db.Integer, nullable=True)
    transaction_count = db.Column(db.Integer, nullable=True)

    notes = db.Column(db.Text, nullable=True)

    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("shifts", lazy=True))
    approved_by = db.relationship("User", foreign_keys=[approved_by_user_id])
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "status": self.status,
            "start_time": to_utc_z(self.start_time),
            "end_time": to_utc_z(self.end_time),
            "opening_balance_cents": self.opening_balance_cents,
            "closing_balance_cents": self.closing_balance_cents,
            "expected_balance_cents": self.expected_balance_cents,
            "variance_cents": self.variance_cents,
            "total_sales_cents": self.total_sales_cents,
            "total_refunds_cents": self.total_refunds_cents,
            "total_credit_issued_cents": self.total_credit_issued_cents,
            "cash_sales_cents": self.cash_sales_cents,
            "eft_sales_cents": self.eft_sales_cents,
            "transaction_count": self.transaction_count,
            "notes": self.notes,
            "approved_by_user_id": self.approved_by_user_id,
            "approved_at": to_utc_z(self.approved_at),
            "version_id": self.version_id,
        }
