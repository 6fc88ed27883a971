"""
Role-based access decisions.

Every protected operation declares the exact set of roles it admits in
OPERATION_ROLES. Roles do not inherit from each other: a route open to admins
admits super admins only because both are listed.
"""
from __future__ import annotations
from typing import AbstractSet, Dict, FrozenSet

from .contracts import Principal, Role
from .errors import Forbidden

ALL_ROLES: FrozenSet[Role] = frozenset(Role)
ADMINS: FrozenSet[Role] = frozenset({Role.ADMIN, Role.SUPER_ADMIN})

OPERATION_ROLES: Dict[str, FrozenSet[Role]] = {
    "change_password": ALL_ROLES,
    "update_user_role": frozenset({Role.SUPER_ADMIN}),
    "create_super_admin": frozenset({Role.SUPER_ADMIN}),
    "update_account_status": ADMINS,
    "get_user_status": ADMINS,
    "get_all_users": ADMINS,
}

# which target roles an actor may activate/deactivate
MANAGEABLE_ROLES: Dict[Role, FrozenSet[Role]] = {
    Role.SUPER_ADMIN: ALL_ROLES,
    Role.ADMIN: frozenset({Role.USER}),
    Role.USER: frozenset(),
}


def is_allowed(role: Role, required_roles: AbstractSet[Role]) -> bool:
    return role in required_roles


def required_roles(operation: str) -> FrozenSet[Role]:
    # undeclared operations admit nobody
    return OPERATION_ROLES.get(operation, frozenset())


def authorize(principal: Principal, operation: str) -> Principal:
    if not is_allowed(principal.role, required_roles(operation)):
        raise Forbidden(details={"operation": operation})
    return principal


def can_manage(actor_role: Role, target_role: Role) -> bool:
    return target_role in MANAGEABLE_ROLES.get(actor_role, frozenset())
