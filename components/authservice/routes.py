from __future__ import annotations
from datetime import datetime, timezone
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Header, Query, Request, status
from pydantic import BaseModel
from starlette.responses import JSONResponse

from .contracts import (
    ChangePasswordRequest, ForgotPasswordRequest, LoginRequest, Message, Principal,
    RefreshRequest, ResetPasswordRequest, SignupRequest, UpdateAccountStatusRequest,
    UpdateUserRoleRequest, UserQuery, UWFResponse, VerifyResetCodeRequest,
)
from .deps import get_auth_service, get_optional_principal, require_operation
from .errors import InvalidResetCode, Result
from .observability import request_meta
from .service import AuthService

router = APIRouter(prefix="/auth", tags=["auth"])


def _uwf(request: Request, res: Result, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    if not res.ok:
        body = UWFResponse(ok=False, error=res.error.to_payload(), meta=request_meta(request))
        return JSONResponse(status_code=res.error.status_code, content=body.model_dump(mode="json"))
    result = res.value.model_dump(mode="json") if isinstance(res.value, BaseModel) else res.value
    body = UWFResponse(ok=True, result=result, meta=request_meta(request))
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@router.post("/signup", response_model=UWFResponse, status_code=status.HTTP_201_CREATED)
def sign_up(req: SignupRequest, request: Request, svc: AuthService = Depends(get_auth_service)):
    return _uwf(request, svc.sign_up(req.email, req.password), status.HTTP_201_CREATED)

@router.post("/login", response_model=UWFResponse)
def login(req: LoginRequest, request: Request, svc: AuthService = Depends(get_auth_service)):
    return _uwf(request, svc.login(req.email, req.password))

@router.post("/refresh", response_model=UWFResponse)
def refresh(req: RefreshRequest, request: Request, svc: AuthService = Depends(get_auth_service)):
    return _uwf(request, svc.refresh_tokens(req.refresh_token))

@router.post("/logout", response_model=UWFResponse)
def logout(req: RefreshRequest, request: Request, svc: AuthService = Depends(get_auth_service)):
    return _uwf(request, svc.logout(req.refresh_token))

@router.put("/change-password", response_model=UWFResponse)
def change_password(
    req: ChangePasswordRequest,
    request: Request,
    principal: Principal = Depends(require_operation("change_password")),
    svc: AuthService = Depends(get_auth_service),
):
    return _uwf(request, svc.change_password(principal.account_id, req.old_password, req.new_password))

@router.post("/forgot-password", response_model=UWFResponse)
def forgot_password(req: ForgotPasswordRequest, request: Request, svc: AuthService = Depends(get_auth_service)):
    return _uwf(request, svc.forgot_password(req.email))

@router.post("/verify-reset-code", response_model=UWFResponse)
def verify_reset_code(req: VerifyResetCodeRequest, request: Request, svc: AuthService = Depends(get_auth_service)):
    res = svc.verify_reset_code(req.email, req.code)
    if res.ok and not res.value:
        res = Result.failure(InvalidResetCode())
    elif res.ok:
        res = Result.success(Message(message="Reset code verified"))
    return _uwf(request, res)

@router.post("/reset-password", response_model=UWFResponse)
def reset_password(req: ResetPasswordRequest, request: Request, svc: AuthService = Depends(get_auth_service)):
    return _uwf(request, svc.reset_password(req.email, req.code, req.new_password))

@router.put("/update-user-role", response_model=UWFResponse)
def update_user_role(
    req: UpdateUserRoleRequest,
    request: Request,
    principal: Principal = Depends(require_operation("update_user_role")),
    svc: AuthService = Depends(get_auth_service),
):
    return _uwf(request, svc.update_user_role(principal, req.user_id, req.role))

@router.post("/create-super-admin", response_model=UWFResponse, status_code=status.HTTP_201_CREATED)
def create_super_admin(
    req: SignupRequest,
    request: Request,
    principal: Optional[Principal] = Depends(get_optional_principal),
    bootstrap_token: Optional[str] = Header(default=None, alias="X-Bootstrap-Token"),
    svc: AuthService = Depends(get_auth_service),
):
    res = svc.create_super_admin(req.email, req.password, principal=principal, bootstrap_token=bootstrap_token)
    return _uwf(request, res, status.HTTP_201_CREATED)

@router.put("/update-account-status", response_model=UWFResponse)
def update_account_status(
    req: UpdateAccountStatusRequest,
    request: Request,
    principal: Principal = Depends(require_operation("update_account_status")),
    svc: AuthService = Depends(get_auth_service),
):
    return _uwf(request, svc.update_account_status(principal, req.user_id, req.is_active))

@router.get("/users/{user_id}/status", response_model=UWFResponse)
def get_user_status(
    user_id: str,
    request: Request,
    principal: Principal = Depends(require_operation("get_user_status")),
    svc: AuthService = Depends(get_auth_service),
):
    return _uwf(request, svc.get_user_status(user_id, actor=principal))

@router.get("/users", response_model=UWFResponse)
def get_all_users(
    request: Request,
    query: Annotated[UserQuery, Query()],
    principal: Principal = Depends(require_operation("get_all_users")),
    svc: AuthService = Depends(get_auth_service),
):
    return _uwf(request, svc.get_all_users(query, actor=principal))

@router.get("/health")
def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}
