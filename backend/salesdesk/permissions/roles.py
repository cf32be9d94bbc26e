# Overview: Default role definitions and the permissions each one starts with.

from .definitions import PERMISSION_DEFINITIONS


ADMIN_ROLE = "admin"
SALESPERSON_ROLE = "salesperson"
VISITOR_ROLE = "visitor"

DEFAULT_ROLES = [
    (ADMIN_ROLE, "Admin", "Full system access"),
    (SALESPERSON_ROLE, "Satış Temsilcisi", "Records and manages own sales and communications"),
    (VISITOR_ROLE, "Ziyaretçi", "Read-only access to sales and reports"),
]

DEFAULT_ROLE_PERMISSIONS = {
    ADMIN_ROLE: [perm[0] for perm in PERMISSION_DEFINITIONS],
    SALESPERSON_ROLE: [
        "canViewDashboard",
        "canViewSales",
        "canCreateSales",
        "canEditSales",
        "canCancelSales",
        "canModifySales",
        "canViewPrims",
        "canViewCommunications",
        "canEditCommunications",
        "canViewPenalties",
    ],
    VISITOR_ROLE: [
        "canViewDashboard",
        "canViewReports",
        "canViewSales",
        "canViewAllSales",
        "canViewPrims",
        "canViewCommunications",
    ],
}
