# roles.py

from enum import Enum
from typing import Dict, List


class Role(str, Enum):
    ADMIN = "admin"
    SELLER = "seller"
    USER = "user"


# roles a visitor may pick for themselves on registration
SELF_ASSIGNABLE_ROLES = {Role.USER, Role.SELLER}


def parse_role(value) -> Role | None:
    """Return the Role for a stored/posted value, or None if it is not one."""
    if isinstance(value, Role):
        return value
    try:
        return Role(str(value or "").strip().lower())
    except ValueError:
        return None


# ------------------------------------------------------------
# Dashboard menus
# ------------------------------------------------------------

ROLE_MENUS: Dict[Role, List[Dict[str, str]]] = {
    Role.ADMIN: [
        {"path": "/dashboard/admin", "label": "Dashboard"},
        {"path": "/dashboard/admin/profile", "label": "My Profile"},
        {"path": "/dashboard/admin/users", "label": "Manage Users"},
        {"path": "/dashboard/admin/categories", "label": "Manage Categories"},
        {"path": "/dashboard/admin/payments", "label": "Payment Management"},
        {"path": "/dashboard/admin/sales-report", "label": "Sales Report"},
        {"path": "/dashboard/admin/banner", "label": "Manage Banner"},
    ],
    Role.SELLER: [
        {"path": "/dashboard/seller", "label": "Dashboard"},
        {"path": "/dashboard/seller/profile", "label": "My Profile"},
        {"path": "/dashboard/seller/medicines", "label": "Manage Medicines"},
        {"path": "/dashboard/seller/payments", "label": "Payment History"},
        {"path": "/dashboard/seller/advertise", "label": "Ask for Advertisement"},
    ],
    Role.USER: [
        {"path": "/dashboard/user", "label": "Dashboard"},
        {"path": "/dashboard/user/profile", "label": "My Profile"},
        {"path": "/dashboard/user/payments", "label": "Payment History"},
    ],
}

ROLE_LABELS: Dict[Role, str] = {
    Role.ADMIN: "Admin",
    Role.SELLER: "Seller",
    Role.USER: "User",
}


def check_role_tables() -> None:
    """Every role needs a menu and a label."""
    missing = (set(Role) - set(ROLE_MENUS)) | (set(Role) - set(ROLE_LABELS))
    if missing:
        raise RuntimeError(f"Role table incomplete for: {sorted(r.value for r in missing)}")


check_role_tables()


def menu_for(role: Role) -> dict:
    return {
        "role": role.value,
        "label": ROLE_LABELS[role],
        "items": [dict(item) for item in ROLE_MENUS[role]],
    }
