from typing import Callable, Optional

from fastapi import Depends, Header, Request

from .contracts import Principal
from .guards import authenticate, check_roles
from .service import AuthService, build_auth_service

_auth_service: Optional[AuthService] = None


def set_auth_service(svc: AuthService) -> None:
    global _auth_service
    _auth_service = svc


def get_auth_service() -> AuthService:
    global _auth_service
    if _auth_service is None:
        _auth_service = build_auth_service()
    return _auth_service


def get_authorization_header(authorization: Optional[str] = Header(default=None, alias="Authorization")) -> Optional[str]:
    """
    Extract the Authorization header value (e.g., 'Bearer <token>').
    Using Header() ensures we get a plain string during real FastAPI requests.
    """
    return authorization


def get_principal(
    request: Request,
    auth: AuthService = Depends(get_auth_service),
    authorization: Optional[str] = Depends(get_authorization_header),
) -> Principal:
    """AuthGuard dependency. Raises Unauthorized, rendered by the app's AuthFailure handler."""
    principal = authenticate(authorization, auth.tokens)
    request.state.principal = principal
    return principal


def get_optional_principal(
    request: Request,
    auth: AuthService = Depends(get_auth_service),
    authorization: Optional[str] = Depends(get_authorization_header),
) -> Optional[Principal]:
    if authorization is None:
        return None
    return get_principal(request, auth, authorization)


def require_operation(operation: str) -> Callable[..., Principal]:
    """
    RolesGuard dependency factory:
      principal: Principal = Depends(require_operation("get_all_users"))
    """
    def _dep(principal: Principal = Depends(get_principal)) -> Principal:
        return check_roles(principal, operation)

    return _dep
