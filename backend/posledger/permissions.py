"""
Permission Constants and Role Mappings

WHY: Routes ask "may this user do X?" by permission code, never by role name.
Roles map to permission sets here, in one place.

DESIGN PRINCIPLES:
- One action per permission code
- Least privilege for cashiers
- Admin holds every permission
"""

# =============================================================================
# PERMISSION CATEGORIES
# =============================================================================

class PermissionCategory:
    INVENTORY = "INVENTORY"
    SALES = "SALES"
    SHIFTS = "SHIFTS"
    CUSTOMERS = "CUSTOMERS"
    PROMOTIONS = "PROMOTIONS"


# =============================================================================
# PERMISSION DEFINITIONS
# =============================================================================

# Each permission is defined as: (code, name, description, category)
PERMISSION_DEFINITIONS = [
    ("VIEW_INVENTORY", "View Inventory", "View stock levels, movements and reports", PermissionCategory.INVENTORY),
    ("ADJUST_INVENTORY", "Adjust Inventory", "Manual stock increase / decrease / set", PermissionCategory.INVENTORY),
    ("MANAGE_PRODUCTS", "Manage Products", "Create and edit catalog products", PermissionCategory.INVENTORY),
    ("MANAGE_STOCK_FAMILIES", "Manage Stock Families", "Create families, enrol members, restock pools", PermissionCategory.INVENTORY),
    ("CREATE_SALE", "Create Sale", "Complete sales and deduct stock at the till", PermissionCategory.SALES),
    ("VIEW_SALES", "View Sales", "View completed sales", PermissionCategory.SALES),
    ("OPERATE_SHIFT", "Operate Shift", "Start and end own cash-drawer shift", PermissionCategory.SHIFTS),
    ("VIEW_SHIFTS", "View Shifts", "View shift history and pending approvals", PermissionCategory.SHIFTS),
    ("APPROVE_SHIFT", "Approve Shift", "Accept a shift closed with a cash variance", PermissionCategory.SHIFTS),
    ("VIEW_CUSTOMERS", "View Customers", "Search customers and view credit history", PermissionCategory.CUSTOMERS),
    ("MANAGE_CUSTOMERS", "Manage Customers", "Create customers and adjust store credit", PermissionCategory.CUSTOMERS),
    ("VIEW_PROMOTIONS", "View Promotions", "View bundles and price carts", PermissionCategory.PROMOTIONS),
    ("MANAGE_PROMOTIONS", "Manage Promotions", "Create, edit and delete bundles", PermissionCategory.PROMOTIONS),
]


# =============================================================================
# DEFAULT ROLE PERMISSION MAPPINGS
# =============================================================================

# - admin: everything
# - manager: everything a cashier can do plus adjustments, families, approvals
# - cashier: till work only

_CASHIER = {
    "VIEW_INVENTORY",
    "CREATE_SALE",
    "OPERATE_SHIFT",
    "VIEW_CUSTOMERS",
    "VIEW_PROMOTIONS",
}

DEFAULT_ROLE_PERMISSIONS = {
    "admin": {perm[0] for perm in PERMISSION_DEFINITIONS},
    "manager": _CASHIER | {
        "ADJUST_INVENTORY",
        "MANAGE_PRODUCTS",
        "MANAGE_STOCK_FAMILIES",
        "VIEW_SALES",
        "VIEW_SHIFTS",
        "APPROVE_SHIFT",
        "MANAGE_CUSTOMERS",
        "MANAGE_PROMOTIONS",
    },
    "cashier": set(_CASHIER),
}


def get_all_permission_codes():
    """Get list of all permission codes."""
    return [perm[0] for perm in PERMISSION_DEFINITIONS]


def validate_permission_code(code):
    return code in get_all_permission_codes()


def has_permission(user, permission_code: str) -> bool:
    """Inactive users hold nothing; unknown roles hold nothing."""
    if user is None or not user.is_active:
        return False
    return permission_code in DEFAULT_ROLE_PERMISSIONS.get(user.role, set())
