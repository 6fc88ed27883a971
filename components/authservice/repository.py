from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from .contracts import Account, Role
from .errors import DuplicateAccount


class InMemoryAccountRepo:
    """
    Account store keyed by id with a unique email index.
    Returns copies; every write is a single locked step.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._by_id: Dict[str, Account] = {}
        self._id_by_email: Dict[str, str] = {}

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def find_by_email(self, email: str) -> Optional[Account]:
        with self._lock:
            account_id = self._id_by_email.get(email.strip().lower())
            return self.find_by_id(account_id) if account_id else None

    def find_by_id(self, account_id: str) -> Optional[Account]:
        with self._lock:
            acc = self._by_id.get(account_id)
            return acc.model_copy() if acc else None

    def create(self, account: Account) -> Account:
        with self._lock:
            email = account.email.strip().lower()
            if email in self._id_by_email:
                raise DuplicateAccount()
            stored = account.model_copy(update={"email": email})
            self._by_id[stored.id] = stored
            self._id_by_email[email] = stored.id
            return stored.model_copy()

    def update_role(self, account_id: str, role: Role) -> Optional[Account]:
        return self._update(account_id, role=role)

    def update_active_status(self, account_id: str, is_active: bool) -> Optional[Account]:
        return self._update(account_id, is_active=is_active)

    def update_password(self, account_id: str, password_hash: str) -> Optional[Account]:
        return self._update(account_id, password_hash=password_hash)

    def list_filtered(
        self,
        *,
        offset: int,
        limit: int,
        role: Optional[Role] = None,
        is_active: Optional[bool] = None,
        email_prefix: Optional[str] = None,
    ) -> Tuple[List[Account], int]:
        prefix = email_prefix.strip().lower() if email_prefix else None
        with self._lock:
            matches = [
                a for a in self._by_id.values()
                if (role is None or a.role == role)
                and (is_active is None or a.is_active == is_active)
                and (prefix is None or a.email.startswith(prefix))
            ]
        matches.sort(key=lambda a: (a.created_at, a.id))
        return [a.model_copy() for a in matches[offset:offset + limit]], len(matches)

    def _update(self, account_id: str, **changes) -> Optional[Account]:
        with self._lock:
            acc = self._by_id.get(account_id)
            if acc is None:
                return None
            updated = acc.model_copy(update={**changes, "updated_at": self._now()})
            self._by_id[account_id] = updated
            return updated.model_copy()
