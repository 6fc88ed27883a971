from .service import AuthService, SystemClock, build_auth_service
from .crypto import HS256TokenSigner, PasswordHasher
from .tokens import TokenService
from .reset_codes import ResetCodeService
from .authz import OPERATION_ROLES, authorize, can_manage, is_allowed
from .repository import InMemoryAccountRepo
from .store import InMemoryStore, StateStore
from .config import AuthConfig
from .contracts import Principal, Role, TokenPair
from .errors import AuthFailure, Result
from .deps import get_auth_service, set_auth_service, get_principal, require_operation
from .routes import router as auth_router
from .app import create_app

__all__ = [
    "AuthService",
    "SystemClock",
    "build_auth_service",
    "HS256TokenSigner",
    "PasswordHasher",
    "TokenService",
    "ResetCodeService",
    "OPERATION_ROLES",
    "authorize",
    "can_manage",
    "is_allowed",
    "InMemoryAccountRepo",
    "InMemoryStore",
    "StateStore",
    "AuthConfig",
    "Principal",
    "Role",
    "TokenPair",
    "AuthFailure",
    "Result",
    "get_auth_service",
    "set_auth_service",
    "get_principal",
    "require_operation",
    "auth_router",
    "create_app",
]
