"""
Permission codes consumed by the ledger routes.

Authorization decisions are made upstream; this module only names the codes
the routes check and the fallback role mappings used when the gateway sends
a role without an explicit permission list.
"""

# =============================================================================
# PERMISSION CATEGORIES
# =============================================================================

class PermissionCategory:
    """Permission categories for organization."""
    INVENTORY = "INVENTORY"
    SALES = "SALES"
    SHIFTS = "SHIFTS"


# =============================================================================
# PERMISSION DEFINITIONS
# =============================================================================

CREATE_SALE = "CREATE_SALE"
VIEW_SALES = "VIEW_SALES"
VOID_SALE = "VOID_SALE"
OVERRIDE_PRICE = "OVERRIDE_PRICE"

VIEW_INVENTORY = "VIEW_INVENTORY"
RECEIVE_INVENTORY = "RECEIVE_INVENTORY"
ADJUST_INVENTORY = "ADJUST_INVENTORY"
TRANSFER_INVENTORY = "TRANSFER_INVENTORY"
OVERRIDE_NEGATIVE_STOCK = "OVERRIDE_NEGATIVE_STOCK"

OPERATE_SHIFT = "OPERATE_SHIFT"
MANAGE_SHIFTS = "MANAGE_SHIFTS"

# Each permission is defined as: (code, description, category)
PERMISSION_DEFINITIONS = [
    (CREATE_SALE, "Ring up sales and park carts", PermissionCategory.SALES),
    (VIEW_SALES, "View sales and their items and payments", PermissionCategory.SALES),
    (VOID_SALE, "Void completed sales (restores stock)", PermissionCategory.SALES),
    (OVERRIDE_PRICE, "Sell at a price other than the catalog price", PermissionCategory.SALES),
    (VIEW_INVENTORY, "View stock levels and the movement log", PermissionCategory.INVENTORY),
    (RECEIVE_INVENTORY, "Book received stock", PermissionCategory.INVENTORY),
    (ADJUST_INVENTORY, "Correct stock levels and reorder settings", PermissionCategory.INVENTORY),
    (TRANSFER_INVENTORY, "Move stock between locations", PermissionCategory.INVENTORY),
    (OVERRIDE_NEGATIVE_STOCK, "Adjust stock below zero", PermissionCategory.INVENTORY),
    (OPERATE_SHIFT, "Clock in and out of a cash-drawer shift", PermissionCategory.SHIFTS),
    (MANAGE_SHIFTS, "Close, reconcile and review any actor's shifts", PermissionCategory.SHIFTS),
]


# =============================================================================
# DEFAULT ROLE MAPPINGS
# =============================================================================

DEFAULT_ROLE_PERMISSIONS = {
    "admin": [code for code, _, _ in PERMISSION_DEFINITIONS],

    "manager": [
        CREATE_SALE,
        VIEW_SALES,
        VOID_SALE,
        OVERRIDE_PRICE,
        VIEW_INVENTORY,
        RECEIVE_INVENTORY,
        ADJUST_INVENTORY,
        TRANSFER_INVENTORY,
        OVERRIDE_NEGATIVE_STOCK,
        OPERATE_SHIFT,
        MANAGE_SHIFTS,
    ],

    "cashier": [
        CREATE_SALE,
        VIEW_SALES,
        VIEW_INVENTORY,
        OPERATE_SHIFT,
    ],
}


def get_all_permission_codes():
    return [code for code, _, _ in PERMISSION_DEFINITIONS]


def permissions_for_role(role):
    """Default permission set for a role name; empty for unknown roles."""
    return frozenset(DEFAULT_ROLE_PERMISSIONS.get((role or "").lower(), ()))
