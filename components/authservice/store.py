from __future__ import annotations

import copy
import threading
from typing import Callable, Dict, Optional

class StateStore:
    """Port interface for a key-value store with atomic read-modify-write.

    Holds refresh-token validity records and reset codes.
    """

    def get(self, key: str) -> Optional[dict]:
        raise NotImplementedError

    def set(self, key: str, value: dict) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def update(self, key: str, fn: Callable[[Optional[dict]], Optional[dict]]) -> Optional[dict]:
        """Atomically read-modify-write the value for key and return the new value.

        A None result from fn removes the key.
        """
        raise NotImplementedError


class InMemoryStore(StateStore):
    """Thread-safe in-memory store with coarse-grained lock.

    For single-process dev/testing. Values are deep-copied in and out so callers
    never share state with the store.
    """

    def __init__(self):
        self._data: Dict[str, dict] = {}
        self._lock = threading.RLock()

    def get(self, key: str) -> Optional[dict]:
        with self._lock:
            return copy.deepcopy(self._data.get(key))

    def set(self, key: str, value: dict) -> None:
        with self._lock:
            self._data[key] = copy.deepcopy(value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def update(self, key, fn):
        with self._lock:
            current = copy.deepcopy(self._data.get(key))
            new_value = fn(current)
            if new_value is None:
                self._data.pop(key, None)
            else:
                self._data[key] = copy.deepcopy(new_value)
            return copy.deepcopy(new_value)
