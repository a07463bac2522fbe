from __future__ import annotations

import threading
from typing import Protocol


class RevocationRegistry(Protocol):
    def revoke(self, token: str) -> None: ...

    def is_revoked(self, token: str) -> bool: ...


class InMemoryRevocationRegistry:
    """Process-local set of revoked access tokens.

    Entries live as long as the process. With several app instances a token
    revoked on one instance stays valid on the others until it expires; a
    shared backend must implement RevocationRegistry for that setup.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tokens: set[str] = set()

    def revoke(self, token: str) -> None:
        if not token:
            return
        with self._lock:
            self._tokens.add(token)

    def is_revoked(self, token: str) -> bool:
        with self._lock:
            return token in self._tokens

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)
