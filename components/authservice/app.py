from __future__ import annotations
from typing import Optional

from fastapi import FastAPI

from .deps import set_auth_service
from .errors import AuthFailure
from .observability import RequestContextMiddleware, auth_failure_handler
from .routes import router
from .service import AuthService, build_auth_service

APP_NAME = "authservice"
APP_VERSION = "0.1.0"


def create_app(service: Optional[AuthService] = None) -> FastAPI:
    set_auth_service(service or build_auth_service())
    app = FastAPI(title=APP_NAME, version=APP_VERSION)
    app.add_middleware(RequestContextMiddleware)
    app.add_exception_handler(AuthFailure, auth_failure_handler)
    app.include_router(router)
    return app
