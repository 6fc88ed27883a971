from __future__ import annotations
import logging

from .contracts import ResetNotifierPort

log = logging.getLogger("authservice.notifier")


class LoggingResetNotifier(ResetNotifierPort):
    """Dev stand-in for a mail gateway. Records the dispatch, never the code."""

    def send_reset_code(self, *, email: str, code: str, expires_at: int) -> None:
        log.info("reset_code.dispatched", extra={"email": email, "expires_at": expires_at})
