from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, TypeVar
from .contracts import ErrorPayload

class AuthErrorCodes:
    VALIDATION = "VALIDATION_ERROR"
    DUPLICATE_ACCOUNT = "DUPLICATE_ACCOUNT"
    BAD_CREDENTIALS = "BAD_CREDENTIALS"
    INACTIVE_USER = "INACTIVE_USER"
    NOT_FOUND = "ACCOUNT_NOT_FOUND"
    INVALID_RESET_CODE = "INVALID_RESET_CODE"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    INVALID_TOKEN = "INVALID_TOKEN"
    TOKEN_REUSE = "TOKEN_REUSE_DETECTED"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"


class AuthFailure(Exception):
    """Base class of every failure the auth core reports to callers."""
    type: str = "AUTH_ERROR"
    code: str = "AUTH_FAILED"
    message: str = "Authentication failed"
    status_code: int = 401

    def __init__(self, message: Optional[str] = None, *, details: Optional[Dict[str, Any]] = None):
        self.message = message or type(self).message
        self.details = details
        super().__init__(self.message)

    def to_payload(self) -> ErrorPayload:
        return ErrorPayload(type=self.type, code=self.code, message=self.message, details=self.details)

class ValidationError(AuthFailure):
    type = "VALIDATION"
    code = AuthErrorCodes.VALIDATION
    message = "Invalid input"
    status_code = 422

class DuplicateAccount(AuthFailure):
    type = "CONFLICT"
    code = AuthErrorCodes.DUPLICATE_ACCOUNT
    message = "Email already registered"
    status_code = 409

class InvalidCredentials(AuthFailure):
    code = AuthErrorCodes.BAD_CREDENTIALS
    message = "Invalid email or password"

class AccountDisabled(AuthFailure):
    code = AuthErrorCodes.INACTIVE_USER
    message = "Account is disabled"
    status_code = 403

class AccountNotFound(AuthFailure):
    type = "NOT_FOUND"
    code = AuthErrorCodes.NOT_FOUND
    message = "Account not found"
    status_code = 404

class InvalidResetCode(AuthFailure):
    type = "VALIDATION"
    code = AuthErrorCodes.INVALID_RESET_CODE
    message = "Invalid reset code"
    status_code = 400

class TokenExpired(AuthFailure):
    code = AuthErrorCodes.TOKEN_EXPIRED
    message = "Token expired"

class TokenInvalid(AuthFailure):
    code = AuthErrorCodes.INVALID_TOKEN
    message = "Invalid token"

class TokenReuseDetected(AuthFailure):
    code = AuthErrorCodes.TOKEN_REUSE
    message = "Refresh token reuse detected; please sign in again"

class Unauthorized(AuthFailure):
    code = AuthErrorCodes.UNAUTHORIZED
    message = "Missing or invalid Authorization header"

class Forbidden(AuthFailure):
    code = AuthErrorCodes.FORBIDDEN
    message = "Not enough privileges"
    status_code = 403


T = TypeVar("T")

@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a service operation: a value or an AuthFailure, never both."""
    value: Optional[T] = None
    error: Optional[AuthFailure] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: AuthFailure) -> "Result[T]":
        return cls(error=error)
