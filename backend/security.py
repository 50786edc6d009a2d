# Security classes - capability checks applied at the API boundary
from __future__ import annotations

from typing import Dict, Iterable, Set

from errors import PermissionDeniedError
from models import SYSTEM_ACTOR, security_classes, users

ALL_PERMISSIONS = "*"

# Permission sets required by the mutating operations
BED_ASSIGN = frozenset({"BED_ASSIGN"})
ADMIN = frozenset({ALL_PERMISSIONS})


def get_user_permissions(emp_id: str) -> Set[str]:
    """Union of the permissions of every security class linked to an active user"""
    user = users.find(emp_id)
    if user is None or not user.isActive:
        return set()
    permissions: Set[str] = set()
    for class_id in user.securityClasses:
        security_class = security_classes.find(class_id)
        if security_class is not None:
            permissions.update(security_class.permissions)
    return permissions


def missing_permissions(emp_id: str, required: Iterable[str]) -> Set[str]:
    if emp_id == SYSTEM_ACTOR:
        return set()
    granted = get_user_permissions(emp_id)
    if ALL_PERMISSIONS in granted:
        return set()
    return set(required) - granted


def has_permissions(emp_id: str, required: Iterable[str]) -> bool:
    return not missing_permissions(emp_id, required)


def require_permissions(actor_id: str, required: Iterable[str]) -> None:
    missing = missing_permissions(actor_id, required)
    if missing:
        raise PermissionDeniedError(
            f"User {actor_id} is missing permission(s): {', '.join(sorted(missing))}"
        )


def check_access(emp_id: str, required: Iterable[str]) -> Dict:
    """Explain whether a user may perform an action needing `required`"""
    required = set(required)
    missing = missing_permissions(emp_id, required)
    return {
        "empId": emp_id,
        "allowed": not missing,
        "required": sorted(required),
        "missing": sorted(missing),
        "permissions": sorted(get_user_permissions(emp_id)),
    }
