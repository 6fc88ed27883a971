from __future__ import annotations
import functools
import hmac
import logging
import re
import time
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional, TypeVar

from .authz import authorize, can_manage
from .config import AuthConfig
from .contracts import (
    Account, AccountRepoPort, AccountStatus, AccountView, ClockPort, Message,
    Principal, ResetNotifierPort, Role, TokenPair, TokenSignerPort, UserPage, UserQuery,
)
from .crypto import HS256TokenSigner, PasswordHasher
from .errors import (
    AccountDisabled, AccountNotFound, AuthFailure, DuplicateAccount, Forbidden,
    InvalidCredentials, InvalidResetCode, Result, Unauthorized, ValidationError,
)
from .notifier import LoggingResetNotifier
from .repository import InMemoryAccountRepo
from .reset_codes import ResetCodeService
from .store import InMemoryStore, StateStore
from .tokens import TokenService

log = logging.getLogger("authservice.service")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_BOOTSTRAP_KEY = "bootstrap:super_admin"

FORGOT_PASSWORD_MESSAGE = "If an account exists for this email, a reset code has been sent"

T = TypeVar("T")


class SystemClock(ClockPort):
    def now_utc_ts(self) -> int:
        return int(time.time())


def _returns_result(fn: Callable[..., T]) -> Callable[..., Result[T]]:
    """Turn AuthFailures raised inside a service operation into a failed Result."""
    @functools.wraps(fn)
    def wrapper(self, *args, **kwargs):
        try:
            return Result.success(fn(self, *args, **kwargs))
        except AuthFailure as ex:
            log.info("%s.failed", fn.__name__, extra={"code": ex.code})
            return Result.failure(ex)
    return wrapper


class AuthService:
    """
    Account lifecycle and credential orchestration.

    Every public operation returns a Result; callers inspect .ok / .error or
    call .unwrap(). Request guards gate routes on the token role; administrative
    operations then re-check the acting account as currently stored.
    """

    def __init__(
        self,
        *,
        accounts: AccountRepoPort,
        signer: TokenSignerPort,
        store: StateStore,
        notifier: Optional[ResetNotifierPort] = None,
        cfg: Optional[AuthConfig] = None,
        clock: Optional[ClockPort] = None,
        hasher: Optional[PasswordHasher] = None,
    ):
        self.accounts = accounts
        self.store = store
        self.cfg = cfg or AuthConfig()
        self.clock = clock or SystemClock()
        self.notifier = notifier or LoggingResetNotifier()
        self.hasher = hasher or PasswordHasher(iterations=self.cfg.password_iterations)
        self.tokens = TokenService(
            signer=signer, store=store, accounts=accounts, cfg=self.cfg, clock=self.clock
        )
        self.reset_codes = ResetCodeService(store=store, cfg=self.cfg, clock=self.clock)

    # --------- Registration & login ----------
    @_returns_result
    def sign_up(self, email: str, password: str, role: Role = Role.USER) -> AccountView:
        if role != Role.USER:
            raise Forbidden("Elevated roles cannot be requested at signup")
        account = self._create_account(email, password, Role.USER)
        log.info("signup.success", extra={"account_id": account.id})
        return account.view()

    @_returns_result
    def login(self, email: str, password: str) -> TokenPair:
        account = self.accounts.find_by_email(self._normalize_email(email, strict=False))
        if account is None:
            self.hasher.dummy_verify(password)
            raise InvalidCredentials()
        if not self.hasher.verify(password, account.password_hash):
            raise InvalidCredentials()
        if not account.is_active:
            raise AccountDisabled()
        if self.hasher.needs_rehash(account.password_hash):
            self.accounts.update_password(account.id, self.hasher.hash(password))
        log.info("login.success", extra={"account_id": account.id})
        return self.tokens.issue(account)

    @_returns_result
    def refresh_tokens(self, refresh_token: str) -> TokenPair:
        return self.tokens.rotate(refresh_token)

    @_returns_result
    def logout(self, refresh_token: str) -> Message:
        """Revoke the login family the refresh token belongs to."""
        claims = self.tokens.refresh_claims(refresh_token)
        self.tokens.revoke_family(claims.sub, claims.fam)
        log.info("logout.success", extra={"account_id": claims.sub})
        return Message(message="Logged out")

    # --------- Passwords ----------
    @_returns_result
    def change_password(self, account_id: str, old_password: str, new_password: str) -> Message:
        account = self._require_account(account_id)
        if not account.is_active:
            raise AccountDisabled()
        if not self.hasher.verify(old_password, account.password_hash):
            raise InvalidCredentials("Current password is incorrect")
        self._check_password(new_password)
        self.accounts.update_password(account.id, self.hasher.hash(new_password))
        if self.cfg.revoke_sessions_on_password_change:
            self.tokens.revoke_all(account.id)
        log.info("password.changed", extra={"account_id": account.id})
        return Message(message="Password changed successfully")

    @_returns_result
    def forgot_password(self, email: str) -> Message:
        normalized = self._normalize_email(email, strict=False)
        account = self.accounts.find_by_email(normalized) if normalized else None
        if account is not None:
            code = self.reset_codes.issue(account.email)
            self.notifier.send_reset_code(
                email=account.email, code=code, expires_at=self.reset_codes.expires_at(account.email)
            )
        return Message(message=FORGOT_PASSWORD_MESSAGE)

    @_returns_result
    def verify_reset_code(self, email: str, code: str) -> bool:
        return self.reset_codes.verify(self._normalize_email(email, strict=False), code)

    @_returns_result
    def reset_password(self, email: str, code: str, new_password: str) -> Message:
        self._check_password(new_password)
        normalized = self._normalize_email(email, strict=False)
        if not self.reset_codes.consume(normalized, code):
            raise InvalidResetCode()
        account = self.accounts.find_by_email(normalized)
        if account is None:
            raise InvalidResetCode()
        self.accounts.update_password(account.id, self.hasher.hash(new_password))
        self.tokens.revoke_all(account.id)
        log.info("password.reset", extra={"account_id": account.id})
        return Message(message="Password has been reset")

    # --------- Administration ----------
    @_returns_result
    def update_user_role(self, actor: Principal, target_id: str, new_role: Role) -> AccountView:
        actor = self._require_active_actor(actor, "update_user_role")
        if actor.account_id == target_id:
            raise Forbidden("Accounts cannot change their own role")
        updated = self.accounts.update_role(target_id, new_role)
        if updated is None:
            raise AccountNotFound()
        # outstanding refresh tokens would keep minting the old role
        self.tokens.revoke_all(target_id)
        log.info("role.updated", extra={"account_id": target_id, "role": new_role.value, "actor": actor.account_id})
        return updated.view()

    @_returns_result
    def create_super_admin(
        self,
        email: str,
        password: str,
        *,
        principal: Optional[Principal] = None,
        bootstrap_token: Optional[str] = None,
    ) -> AccountView:
        if principal is not None:
            self._require_active_actor(principal, "create_super_admin")
            account = self._create_account(email, password, Role.SUPER_ADMIN)
        elif self._bootstrap_token_matches(bootstrap_token):
            account = self._bootstrap_super_admin(email, password)
        else:
            raise Forbidden("Super admin creation requires a super admin or the bootstrap token")
        log.info("super_admin.created", extra={"account_id": account.id})
        return account.view()

    @_returns_result
    def update_account_status(self, actor: Principal, target_id: str, is_active: bool) -> AccountStatus:
        actor = self._require_active_actor(actor, "update_account_status")
        if actor.account_id == target_id:
            raise Forbidden("Accounts cannot change their own status")
        target = self._require_account(target_id)
        if not can_manage(actor.role, target.role):
            raise Forbidden(f"{actor.role.value} cannot manage {target.role.value} accounts")
        updated = self.accounts.update_active_status(target_id, is_active)
        if updated is None:
            raise AccountNotFound()
        if not is_active:
            self.tokens.revoke_all(target_id)
        log.info("status.updated", extra={"account_id": target_id, "is_active": is_active, "actor": actor.account_id})
        return self._status(updated)

    # --------- Lookup ----------
    @_returns_result
    def find_user_by_id(self, account_id: str) -> AccountView:
        return self._require_account(account_id).view()

    @_returns_result
    def get_user_status(self, account_id: str, *, actor: Optional[Principal] = None) -> AccountStatus:
        if actor is not None:
            self._require_active_actor(actor, "get_user_status")
        return self._status(self._require_account(account_id))

    @_returns_result
    def get_all_users(self, query: Optional[UserQuery] = None, *, actor: Optional[Principal] = None) -> UserPage:
        if actor is not None:
            self._require_active_actor(actor, "get_all_users")
        query = query or UserQuery()
        page_size = min(query.page_size or self.cfg.default_page_size, self.cfg.max_page_size)
        items, total = self.accounts.list_filtered(
            offset=(query.page - 1) * page_size,
            limit=page_size,
            role=query.role,
            is_active=query.is_active,
            email_prefix=query.email_prefix,
        )
        return UserPage(items=[a.view() for a in items], total=total, page=query.page, page_size=page_size)

    # --------- Helpers ----------
    def _normalize_email(self, email: str, *, strict: bool = True) -> str:
        normalized = email.strip().lower() if isinstance(email, str) else ""
        if not _EMAIL_RE.match(normalized):
            if strict:
                raise ValidationError("Invalid email address")
            return ""
        return normalized

    def _check_password(self, password: str) -> None:
        if not isinstance(password, str) or not (
            self.cfg.password_min_length <= len(password) <= self.cfg.password_max_length
        ):
            raise ValidationError(
                f"Password must be {self.cfg.password_min_length}-{self.cfg.password_max_length} characters"
            )

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self.clock.now_utc_ts(), tz=timezone.utc)

    def _create_account(self, email: str, password: str, role: Role) -> Account:
        normalized = self._normalize_email(email)
        self._check_password(password)
        if self.accounts.find_by_email(normalized) is not None:
            raise DuplicateAccount()
        now = self._now()
        return self.accounts.create(Account(
            id=uuid.uuid4().hex,
            email=normalized,
            password_hash=self.hasher.hash(password),
            role=role,
            is_active=True,
            created_at=now,
            updated_at=now,
        ))

    def _require_account(self, account_id: str) -> Account:
        account = self.accounts.find_by_id(account_id)
        if account is None:
            raise AccountNotFound()
        return account

    def _require_active_actor(self, actor: Principal, operation: str) -> Principal:
        """Reload the acting account and authorize its stored role, not the token's."""
        account = self.accounts.find_by_id(actor.account_id)
        if account is None:
            raise Unauthorized("Acting account no longer exists")
        if not account.is_active:
            raise AccountDisabled()
        return authorize(Principal(account_id=account.id, role=account.role), operation)

    def _status(self, account: Account) -> AccountStatus:
        return AccountStatus(user_id=account.id, email=account.email, is_active=account.is_active, role=account.role)

    def _bootstrap_token_matches(self, presented: Optional[str]) -> bool:
        expected = self.cfg.bootstrap_token
        if expected is None or not presented:
            return False
        return hmac.compare_digest(expected.get_secret_value().encode("utf-8"), presented.encode("utf-8"))

    def _bootstrap_super_admin(self, email: str, password: str) -> Account:
        _, existing = self.accounts.list_filtered(offset=0, limit=1, role=Role.SUPER_ADMIN)
        claim = {"won": False}

        def take(curr):
            if curr is None:
                claim["won"] = True
                return {"claimed_at": self.clock.now_utc_ts()}
            return curr

        if existing:
            raise Forbidden("Bootstrap already used")
        self.store.update(_BOOTSTRAP_KEY, take)
        if not claim["won"]:
            raise Forbidden("Bootstrap already used")
        try:
            return self._create_account(email, password, Role.SUPER_ADMIN)
        except AuthFailure:
            self.store.delete(_BOOTSTRAP_KEY)
            raise


def build_auth_service(
    cfg: Optional[AuthConfig] = None,
    *,
    accounts: Optional[AccountRepoPort] = None,
    store: Optional[StateStore] = None,
    notifier: Optional[ResetNotifierPort] = None,
    clock: Optional[ClockPort] = None,
) -> AuthService:
    """Wire an AuthService, falling back to in-memory adapters."""
    cfg = cfg or AuthConfig()
    clock = clock or SystemClock()
    signer = HS256TokenSigner(
        cfg.secret.get_secret_value(),
        kid=cfg.kid,
        alg=cfg.alg,
        issuer=cfg.issuer,
        audience=cfg.audience,
        leeway_seconds=cfg.leeway_seconds,
        now=clock.now_utc_ts,
    )
    return AuthService(
        accounts=accounts or InMemoryAccountRepo(),
        signer=signer,
        store=store or InMemoryStore(),
        notifier=notifier,
        cfg=cfg,
        clock=clock,
    )
