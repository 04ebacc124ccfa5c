from .auth import User
from .inventory import (
    Product,
    StockFamily,
    StockFamilyMember,
    InventoryMovement,
    StockAdjustment,
    MOVEMENT_TYPES,
    ADJUSTMENT_TYPES,
)
from .promotions import Bundle, BundleProduct
from .customers import Customer, CustomerTransaction, CUSTOMER_TRANSACTION_TYPES
from .shifts import Shift, SHIFT_ACTIVE, SHIFT_COMPLETED, SHIFT_PENDING_APPROVAL, SHIFT_STATUSES
from .sales import Sale, SaleLine, PAYMENT_METHODS
from . import immutability  # noqa: F401  (registers append-only listeners)

__all__ = [
    'User',
    'Product', 'StockFamily', 'StockFamilyMember', 'InventoryMovement', 'StockAdjustment',
    'MOVEMENT_TYPES', 'ADJUSTMENT_TYPES',
    'Bundle', 'BundleProduct',
    'Customer', 'CustomerTransaction', 'CUSTOMER_TRANSACTION_TYPES',
    'Shift', 'SHIFT_ACTIVE', 'SHIFT_COMPLETED', 'SHIFT_PENDING_APPROVAL', 'SHIFT_STATUSES',
    'Sale', 'SaleLine', 'PAYMENT_METHODS',
]
