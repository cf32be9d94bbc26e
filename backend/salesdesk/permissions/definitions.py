# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# -- GENERAL --

GENERAL_PERMISSIONS = [
    ("canViewDashboard", "View Dashboard", "See the dashboard summary", PermissionCategory.GENERAL),
    ("canViewReports", "View Reports", "Open sales and communication reports", PermissionCategory.GENERAL),
    ("canExportData", "Export Data", "Download Excel exports", PermissionCategory.GENERAL),
]


# -- SALES --

SALES_PERMISSIONS = [
    ("canViewSales", "View Sales", "List and open sales", PermissionCategory.SALES),
    ("canCreateSales", "Create Sales", "Record new sales and deposits", PermissionCategory.SALES),
    ("canEditSales", "Edit Sales", "Edit sale details and notes", PermissionCategory.SALES),
    ("canDeleteSales", "Delete Sales", "Permanently delete sales", PermissionCategory.SALES),
    (
        "canViewAllSales",
        "View All Sales",
        "See sales of every salesperson, not only own",
        PermissionCategory.SALES,
    ),
    ("canTransferSales", "Transfer Sales", "Move a sale to another salesperson", PermissionCategory.SALES),
    ("canCancelSales", "Cancel Sales", "Cancel and restore sales", PermissionCategory.SALES),
    ("canModifySales", "Modify Sales", "Record price modifications", PermissionCategory.SALES),
    ("canImportSales", "Import Sales", "Bulk import and roll back sales from Excel", PermissionCategory.SALES),
]


# -- PRIMS --

PRIM_PERMISSIONS = [
    ("canViewPrims", "View Prims", "See commission transactions and earnings", PermissionCategory.PRIMS),
    ("canManagePrimPeriods", "Manage Prim Periods", "Create periods and move sales between them", PermissionCategory.PRIMS),
    ("canEditPrimRates", "Edit Prim Rates", "Set the active commission rate", PermissionCategory.PRIMS),
    ("canProcessPayments", "Process Payments", "Mark commissions paid or unpaid", PermissionCategory.PRIMS),
    ("canViewAllEarnings", "View All Earnings", "See every salesperson's earnings", PermissionCategory.PRIMS),
]


# -- COMMUNICATIONS --

COMMUNICATION_PERMISSIONS = [
    ("canViewCommunications", "View Communications", "See communication records", PermissionCategory.COMMUNICATIONS),
    ("canEditCommunications", "Edit Communications", "Enter daily communication counts", PermissionCategory.COMMUNICATIONS),
    (
        "canViewAllCommunications",
        "View All Communications",
        "See every salesperson's communication records",
        PermissionCategory.COMMUNICATIONS,
    ),
]


# -- USERS --

USER_PERMISSIONS = [
    ("canViewUsers", "View Users", "List users", PermissionCategory.USERS),
    ("canCreateUsers", "Create Users", "Create users and virtual users", PermissionCategory.USERS),
    ("canEditUsers", "Edit Users", "Approve and edit users", PermissionCategory.USERS),
    ("canDeleteUsers", "Delete Users", "Reject pending users", PermissionCategory.USERS),
    ("canManageRoles", "Manage Roles", "Create roles and assign permissions", PermissionCategory.USERS),
]


# -- SYSTEM --

SYSTEM_PERMISSIONS = [
    (
        "canAccessSystemSettings",
        "Access System Settings",
        "Manage sale types, payment types, communication types and migrations",
        PermissionCategory.SYSTEM,
    ),
    ("canManageBackups", "Manage Backups", "Create, restore and delete backups", PermissionCategory.SYSTEM),
    ("canViewSystemLogs", "View System Logs", "See activity logs of all users", PermissionCategory.SYSTEM),
    ("canManageAnnouncements", "Manage Announcements", "Publish and edit announcements", PermissionCategory.SYSTEM),
]


# -- SPECIAL --

SPECIAL_PERMISSIONS = [
    ("canViewPenalties", "View Penalties", "See penalty points", PermissionCategory.SPECIAL),
    ("canApplyPenalties", "Apply Penalties", "Add, cancel and reset penalty points", PermissionCategory.SPECIAL),
    (
        "canOverrideValidations",
        "Override Validations",
        "Edit paid sales and bypass soft validation rules",
        PermissionCategory.SPECIAL,
    ),
]


PERMISSION_DEFINITIONS = (
    GENERAL_PERMISSIONS
    + SALES_PERMISSIONS
    + PRIM_PERMISSIONS
    + COMMUNICATION_PERMISSIONS
    + USER_PERMISSIONS
    + SYSTEM_PERMISSIONS
    + SPECIAL_PERMISSIONS
)
