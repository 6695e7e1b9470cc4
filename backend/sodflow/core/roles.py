"""
Role resolution from bootstrap hints.

A session carries either an explicit role or the user's department name.
Department names come from the HR directory and are matched after trimming
and upper-casing, first exactly and then by keyword.
"""
from typing import Optional

from sodflow.core.status_config import UserRole


DEPARTMENT_ROLE_MAP = {
    "SOURCING": UserRole.SOURCE,
    "LOGISTICS": UserRole.WAREHOUSE,
    "FULLFILLMENT": UserRole.WAREHOUSE,
    "FULFILLMENT": UserRole.WAREHOUSE,
    "QUALITY CONTROL": UserRole.WAREHOUSE,
    "BUSINESS DEVELOPMENT": UserRole.SALE,
    "TECH": UserRole.ADMIN,
    "BOARD OF DIRECTOR": UserRole.VIEWER,
    "MARKETING": UserRole.VIEWER,
    "HUMAN RESOURCE": UserRole.VIEWER,
    "PRODUCT DESIGN": UserRole.VIEWER,
    "FINANCE & ACCOUNT": UserRole.VIEWER,
}

# Checked in order; first keyword hit wins
DEPARTMENT_KEYWORDS = (
    (("SALE", "BUSINESS"), UserRole.SALE),
    (("SOURCE", "PURCHASING"), UserRole.SOURCE),
    (("KHO", "WAREHOUSE"), UserRole.WAREHOUSE),
    (("TECH", "ADMIN"), UserRole.ADMIN),
)

ROLE_ALIASES = {
    "SALE": UserRole.SALE,
    "SOURCE": UserRole.SOURCE,
    "WAREHOUSE": UserRole.WAREHOUSE,
    "KHO": UserRole.WAREHOUSE,
    "VIEWER": UserRole.VIEWER,
    "ADMIN": UserRole.ADMIN,
}


def role_from_department(department: Optional[str], default: UserRole = UserRole.ADMIN) -> UserRole:
    """Map a department name to a workflow role."""
    if not department or not department.strip():
        return default
    normalized = department.strip().upper()
    if normalized in DEPARTMENT_ROLE_MAP:
        return DEPARTMENT_ROLE_MAP[normalized]
    for keywords, role in DEPARTMENT_KEYWORDS:
        if any(keyword in normalized for keyword in keywords):
            return role
    return default


def resolve_role(
    role_hint: Optional[str],
    department: Optional[str],
    default: UserRole = UserRole.ADMIN,
) -> UserRole:
    """
    Resolve the acting role for a session.

    An explicit role hint wins; otherwise the department decides;
    otherwise the configured default applies.
    """
    if role_hint:
        role = ROLE_ALIASES.get(role_hint.strip().upper())
        if role is not None:
            return role
    if department:
        return role_from_department(department, default=default)
    return default
