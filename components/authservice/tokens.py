from __future__ import annotations
import logging
import uuid
from typing import Callable, Dict, Optional, Tuple

from pydantic import ValidationError as ClaimsError

from .config import AuthConfig
from .contracts import (
    Account, AccountRepoPort, AccessTokenClaims, ClockPort, Principal,
    RefreshTokenClaims, TokenPair, TokenSignerPort,
)
from .errors import AccountDisabled, TokenInvalid, TokenReuseDetected
from .store import StateStore

log = logging.getLogger("authservice.tokens")
security_log = logging.getLogger("authservice.security")

ACTIVE = "active"
SUPERSEDED = "superseded"
REVOKED = "revoked"


class TokenService:
    """
    Mints access/refresh pairs and tracks refresh-token validity.

    Access tokens are checked from the signature alone. Refresh tokens are
    single use: every account has one record in the state store mapping each
    refresh jti to its family and status, and rotation flips the presented
    jti to superseded in the same atomic update that registers its successor.
    """

    def __init__(
        self,
        *,
        signer: TokenSignerPort,
        store: StateStore,
        accounts: AccountRepoPort,
        cfg: AuthConfig,
        clock: ClockPort,
    ):
        self.signer = signer
        self.store = store
        self.accounts = accounts
        self.cfg = cfg
        self.clock = clock

    # --------- Core operations ----------
    def issue(self, account: Account) -> TokenPair:
        now = self.clock.now_utc_ts()
        family = uuid.uuid4().hex
        pair, jti, exp = self._mint(account, family, now)

        def register(curr):
            state = self._prune(curr, now)
            state["tokens"][jti] = {"family": family, "status": ACTIVE, "exp": exp}
            return state

        self.store.update(self._key(account.id), register)
        log.info("tokens.issued", extra={"account_id": account.id, "family": family})
        return pair

    def verify_access(self, token: str) -> Principal:
        payload = self.signer.verify(token)
        if payload.get("typ") != "access":
            raise TokenInvalid("Not an access token")
        try:
            claims = AccessTokenClaims(**payload)
        except ClaimsError:
            raise TokenInvalid("Malformed token claims")
        return Principal(account_id=claims.sub, role=claims.role)

    def rotate(self, refresh_token: str) -> TokenPair:
        claims = self.refresh_claims(refresh_token)
        account = self.accounts.find_by_id(claims.sub)
        if account is None:
            raise TokenInvalid("Unknown account")
        if not account.is_active:
            raise AccountDisabled()

        now = self.clock.now_utc_ts()
        pair, new_jti, new_exp = self._mint(account, claims.fam, now)
        decision: dict = {}

        def upd(curr):
            state = self._prune(curr, now)
            tokens = state["tokens"]
            rec = tokens.get(claims.jti)
            if rec is None or rec["status"] == SUPERSEDED:
                decision["outcome"] = "reuse"
                decision["revoked"] = self._revoke_where(tokens, lambda r: r["family"] == claims.fam)
            elif rec["status"] == REVOKED:
                decision["outcome"] = REVOKED
            else:
                rec["status"] = SUPERSEDED
                tokens[new_jti] = {"family": claims.fam, "status": ACTIVE, "exp": new_exp}
                decision["outcome"] = "rotated"
            return state

        self.store.update(self._key(account.id), upd)

        if decision["outcome"] == "reuse":
            security_log.warning(
                "token.reuse_detected",
                extra={"account_id": account.id, "family": claims.fam, "revoked": decision["revoked"]},
            )
            raise TokenReuseDetected()
        if decision["outcome"] == REVOKED:
            raise TokenInvalid("Refresh token revoked")
        log.info("refresh.rotated", extra={"account_id": account.id, "family": claims.fam})
        return pair

    def revoke_family(self, account_id: str, family: str) -> int:
        revoked = self._revoke(account_id, lambda r: r["family"] == family)
        log.info("tokens.revoked_family", extra={"account_id": account_id, "family": family, "revoked": revoked})
        return revoked

    def revoke_all(self, account_id: str) -> int:
        """Invalidate every outstanding refresh token of the account."""
        revoked = self._revoke(account_id, lambda r: True)
        log.info("tokens.revoked_all", extra={"account_id": account_id, "revoked": revoked})
        return revoked

    # --------- Helpers ----------
    def _key(self, account_id: str) -> str:
        return f"refresh:{account_id}"

    def _mint(self, account: Account, family: str, now: int) -> Tuple[TokenPair, str, int]:
        access_claims = AccessTokenClaims(
            sub=account.id,
            role=account.role,
            iat=now,
            exp=now + self.cfg.access_ttl_seconds,
            iss=self.cfg.issuer,
            aud=self.cfg.audience,
            jti=uuid.uuid4().hex,
        ).model_dump(mode="json")

        refresh_jti = uuid.uuid4().hex
        refresh_exp = now + self.cfg.refresh_ttl_seconds
        refresh_claims = RefreshTokenClaims(
            sub=account.id,
            fam=family,
            iat=now,
            exp=refresh_exp,
            iss=self.cfg.issuer,
            aud=self.cfg.audience,
            jti=refresh_jti,
        ).model_dump(mode="json")

        pair = TokenPair(
            access_token=self.signer.sign(access_claims),
            refresh_token=self.signer.sign(refresh_claims),
            expires_in=self.cfg.access_ttl_seconds,
        )
        return pair, refresh_jti, refresh_exp

    def refresh_claims(self, token: str) -> RefreshTokenClaims:
        payload = self.signer.verify(token)
        if payload.get("typ") != "refresh":
            raise TokenInvalid("Not a refresh token")
        try:
            return RefreshTokenClaims(**payload)
        except ClaimsError:
            raise TokenInvalid("Malformed token claims")

    def _prune(self, curr: Optional[dict], now: int) -> dict:
        state = curr or {"tokens": {}}
        state["tokens"] = {
            jti: rec for jti, rec in state.get("tokens", {}).items()
            if rec["exp"] + self.cfg.leeway_seconds > now
        }
        return state

    @staticmethod
    def _revoke_where(tokens: Dict[str, dict], match: Callable[[dict], bool]) -> int:
        count = 0
        for rec in tokens.values():
            if rec["status"] != REVOKED and match(rec):
                rec["status"] = REVOKED
                count += 1
        return count

    def _revoke(self, account_id: str, match: Callable[[dict], bool]) -> int:
        now = self.clock.now_utc_ts()
        counter = {"n": 0}

        def upd(curr):
            if curr is None:
                return None
            state = self._prune(curr, now)
            counter["n"] = self._revoke_where(state["tokens"], match)
            return state if state["tokens"] else None

        self.store.update(self._key(account_id), upd)
        return counter["n"]
