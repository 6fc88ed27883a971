from __future__ import annotations
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Protocol, Tuple
from pydantic import BaseModel, ConfigDict, Field, constr

# ---------- Unified Wire Format (UWF) ----------
class ErrorPayload(BaseModel):
    type: Literal["AUTH_ERROR","VALIDATION","NOT_FOUND","CONFLICT","INTERNAL"]
    code: constr(strip_whitespace=True, min_length=1)
    message: constr(strip_whitespace=True, min_length=1)
    details: Optional[Dict[str, Any]] = None

class MetaPayload(BaseModel):
    request_id: Optional[str] = None

class UWFResponse(BaseModel):
    ok: bool
    result: Optional[Any] = None
    error: Optional[ErrorPayload] = None
    meta: MetaPayload = Field(default_factory=MetaPayload)

# ---------- Domain Models ----------
class Role(str, Enum):
    """Account roles. Each role is a distinct grant; there is no ordering between them."""
    USER = "user"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"

class Account(BaseModel):
    id: str
    email: str
    password_hash: str
    role: Role = Role.USER
    is_active: bool = True
    created_at: datetime
    updated_at: datetime

    def view(self) -> "AccountView":
        return AccountView(**self.model_dump(exclude={"password_hash"}))

class AccountView(BaseModel):
    """Account projection safe to return to callers."""
    id: str
    email: str
    role: Role
    is_active: bool
    created_at: datetime
    updated_at: datetime

class AccountStatus(BaseModel):
    user_id: str
    email: str
    is_active: bool
    role: Role

class Principal(BaseModel):
    """Identity resolved from a verified access token."""
    account_id: str
    role: Role

class AccessTokenClaims(BaseModel):
    sub: str
    role: Role
    typ: Literal["access"] = "access"
    iat: int
    exp: int
    iss: Optional[str] = None
    aud: Optional[str] = None
    jti: str

class RefreshTokenClaims(BaseModel):
    sub: str
    fam: str
    typ: Literal["refresh"] = "refresh"
    iat: int
    exp: int
    iss: Optional[str] = None
    aud: Optional[str] = None
    jti: str

class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: Literal["Bearer"] = "Bearer"
    expires_in: int

class UserQuery(BaseModel):
    """Listing filter. Only the fields declared here are accepted."""
    model_config = ConfigDict(extra="forbid")

    page: int = Field(1, ge=1)
    page_size: Optional[int] = Field(None, ge=1)
    role: Optional[Role] = None
    is_active: Optional[bool] = None
    email_prefix: Optional[constr(strip_whitespace=True, min_length=1, max_length=320)] = None

class UserPage(BaseModel):
    items: List[AccountView]
    total: int
    page: int
    page_size: int

class Message(BaseModel):
    message: str

# ---------- Ports (Contracts) ----------
class TokenSignerPort(Protocol):
    """
    Contract for JWT signing/verification and key rotation metadata.
    verify() raises TokenExpired or TokenInvalid.
    """
    def sign(self, claims: Dict[str, Any], *, headers: Optional[Dict[str, Any]] = None) -> str: ...
    def verify(self, token: str) -> Dict[str, Any]: ...
    def active_kid(self) -> Optional[str]: ...
    def list_kids(self) -> List[str]: ...

class AccountRepoPort(Protocol):
    """
    Contract for account persistence. Every write touches a single record.
    create() raises DuplicateAccount when the email is taken.
    """
    def find_by_email(self, email: str) -> Optional[Account]: ...
    def find_by_id(self, account_id: str) -> Optional[Account]: ...
    def create(self, account: Account) -> Account: ...
    def update_role(self, account_id: str, role: Role) -> Optional[Account]: ...
    def update_active_status(self, account_id: str, is_active: bool) -> Optional[Account]: ...
    def update_password(self, account_id: str, password_hash: str) -> Optional[Account]: ...
    def list_filtered(self, *, offset: int, limit: int, role: Optional[Role] = None,
                      is_active: Optional[bool] = None,
                      email_prefix: Optional[str] = None) -> Tuple[List[Account], int]: ...

class ResetNotifierPort(Protocol):
    """Delivers reset codes to the account owner (mail, SMS, ...)."""
    def send_reset_code(self, *, email: str, code: str, expires_at: int) -> None: ...

class ClockPort(Protocol):
    def now_utc_ts(self) -> int: ...

# ---------- Service I/O ----------
EmailField = constr(strip_whitespace=True, min_length=3, max_length=320)

class SignupRequest(BaseModel):
    email: EmailField
    password: str

class LoginRequest(BaseModel):
    email: EmailField
    password: str

class RefreshRequest(BaseModel):
    refresh_token: str

class ChangePasswordRequest(BaseModel):
    old_password: str
    new_password: str

class ForgotPasswordRequest(BaseModel):
    email: EmailField

class VerifyResetCodeRequest(BaseModel):
    email: EmailField
    code: constr(strip_whitespace=True, min_length=1, max_length=32)

class ResetPasswordRequest(BaseModel):
    email: EmailField
    code: constr(strip_whitespace=True, min_length=1, max_length=32)
    new_password: str

class UpdateUserRoleRequest(BaseModel):
    user_id: str
    role: Role

class UpdateAccountStatusRequest(BaseModel):
    user_id: str
    is_active: bool
