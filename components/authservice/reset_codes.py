from __future__ import annotations
import hashlib
import hmac
import logging
import secrets
import string

from .config import AuthConfig
from .contracts import ClockPort
from .store import StateStore

log = logging.getLogger("authservice.reset_codes")


def _digest(code: str) -> str:
    return hashlib.sha256(code.encode("utf-8")).hexdigest()


class ResetCodeService:
    """
    Short-lived numeric codes proving control of an email address.

    One record per email: issuing a code replaces whatever was outstanding.
    Only a digest of the code is stored. Unknown, expired, consumed and
    exhausted records all answer False the same way.
    """

    def __init__(self, *, store: StateStore, cfg: AuthConfig, clock: ClockPort):
        self.store = store
        self.cfg = cfg
        self.clock = clock

    def issue(self, email: str) -> str:
        code = "".join(secrets.choice(string.digits) for _ in range(self.cfg.reset_code_length))
        expires_at = self.clock.now_utc_ts() + self.cfg.reset_code_ttl_seconds
        self.store.set(self._key(email), {
            "digest": _digest(code),
            "expires_at": expires_at,
            "consumed": False,
            "attempts": 0,
        })
        log.info("reset_code.issued", extra={"expires_at": expires_at})
        return code

    def expires_at(self, email: str) -> int:
        rec = self.store.get(self._key(email))
        return rec["expires_at"] if rec else 0

    def verify(self, email: str, code: str) -> bool:
        return self._check(email, code, consume=False)

    def consume(self, email: str, code: str) -> bool:
        return self._check(email, code, consume=True)

    # --------- Internals ----------
    def _key(self, email: str) -> str:
        return f"reset:{email.strip().lower()}"

    def _check(self, email: str, code: str, *, consume: bool) -> bool:
        now = self.clock.now_utc_ts()
        presented = _digest(code if isinstance(code, str) else "")
        decision = {"ok": False}

        def upd(curr):
            if curr is None:
                return None
            if curr["consumed"] or now >= curr["expires_at"]:
                # permanently dead; nothing left to protect
                return None
            if not hmac.compare_digest(curr["digest"], presented):
                curr["attempts"] += 1
                if curr["attempts"] >= self.cfg.reset_code_max_attempts:
                    curr["consumed"] = True
                    log.warning("reset_code.exhausted")
                return curr
            decision["ok"] = True
            if consume:
                curr["consumed"] = True
            return curr

        self.store.update(self._key(email), upd)
        return decision["ok"]
