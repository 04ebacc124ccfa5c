"""
ORM-level append-only enforcement for ledger tables.

InventoryMovement, StockAdjustment and CustomerTransaction rows are audit
records: once flushed they may not be updated or deleted through the ORM.
Corrections are new entries (an adjustment, a credit_add), never edits.
"""

from __future__ import annotations

from sqlalchemy import event

from ..validation import ConflictError
from .customers import CustomerTransaction
from .inventory import InventoryMovement, StockAdjustment


class ImmutableRecordError(ConflictError):
    kind = "immutable_record"


def _reject_update(mapper, connection, target):
    raise ImmutableRecordError(f"{type(target).__name__} {target.id} is append-only and cannot be modified")


def _reject_delete(mapper, connection, target):
    raise ImmutableRecordError(f"{type(target).__name__} {target.id} is append-only and cannot be deleted")


for _model in (InventoryMovement, StockAdjustment, CustomerTransaction):
    event.listen(_model, "before_update", _reject_update)
    event.listen(_model, "before_delete", _reject_delete)
