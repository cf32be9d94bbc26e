# Overview: Permission system package.
# Re-exports the catalog, default roles, and lookup helpers.

from .categories import PermissionCategory
from .definitions import (
    PERMISSION_DEFINITIONS,
    GENERAL_PERMISSIONS,
    SALES_PERMISSIONS,
    PRIM_PERMISSIONS,
    COMMUNICATION_PERMISSIONS,
    USER_PERMISSIONS,
    SYSTEM_PERMISSIONS,
    SPECIAL_PERMISSIONS,
)
from .roles import (
    ADMIN_ROLE,
    SALESPERSON_ROLE,
    VISITOR_ROLE,
    DEFAULT_ROLES,
    DEFAULT_ROLE_PERMISSIONS,
)
from .helpers import (
    get_all_permission_codes,
    get_permissions_by_category,
    get_permission_definition,
    validate_permission_code,
    grouped_permission_catalog,
)

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "GENERAL_PERMISSIONS",
    "SALES_PERMISSIONS",
    "PRIM_PERMISSIONS",
    "COMMUNICATION_PERMISSIONS",
    "USER_PERMISSIONS",
    "SYSTEM_PERMISSIONS",
    "SPECIAL_PERMISSIONS",
    "ADMIN_ROLE",
    "SALESPERSON_ROLE",
    "VISITOR_ROLE",
    "DEFAULT_ROLES",
    "DEFAULT_ROLE_PERMISSIONS",
    "get_all_permission_codes",
    "get_permissions_by_category",
    "get_permission_definition",
    "validate_permission_code",
    "grouped_permission_catalog",
]
