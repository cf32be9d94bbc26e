# Overview: Permission category constants for grouping related permissions.


class PermissionCategory:
    """Permission categories for organization and UI display."""
    GENERAL = "general"
    SALES = "sales"
    PRIMS = "prims"
    COMMUNICATIONS = "communications"
    USERS = "users"
    SYSTEM = "system"
    SPECIAL = "special"

    ORDER = (GENERAL, SALES, PRIMS, COMMUNICATIONS, USERS, SYSTEM, SPECIAL)
