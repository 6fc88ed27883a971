from __future__ import annotations
from typing import Optional

from .authz import authorize
from .contracts import Principal
from .errors import AuthFailure, Unauthorized
from .tokens import TokenService


def bearer_token(authorization: Optional[str]) -> str:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise Unauthorized()
    token = authorization.split(" ", 1)[1].strip()
    if not token:
        raise Unauthorized()
    return token


def authenticate(authorization: Optional[str], tokens: TokenService) -> Principal:
    """AuthGuard: resolve the caller from the Authorization header or fail Unauthorized."""
    token = bearer_token(authorization)
    try:
        return tokens.verify_access(token)
    except AuthFailure as ex:
        raise Unauthorized(ex.message, details={"reason": ex.code})


def check_roles(principal: Principal, operation: str) -> Principal:
    """RolesGuard: the principal's role must be declared for the operation."""
    return authorize(principal, operation)
