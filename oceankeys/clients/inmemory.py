"""In-memory key API for tests and offline runs."""

from __future__ import annotations

import asyncio
import itertools
from collections import deque
from typing import Callable, Deque, Dict, List, Optional

from .. import keygen
from ..errors import ApiError, ConflictError, NotFoundError, ValidationError
from ..models import SshKey
from .base import BaseKeyClient

NOT_FOUND_MESSAGE = "The resource you were accessing could not be found."


class InMemoryKeyClient(BaseKeyClient):
    """Simulate the remote key store, including its lagging read path.

    Writes land in the authoritative store immediately. ``list_keys`` serves
    a separate view that only catches up with a write after
    ``visibility_lag`` further list calls. Writes reach the view in the
    order they were made, so a deleted key never reappears.
    """

    def __init__(self, visibility_lag: int = 0) -> None:
        self.visibility_lag = visibility_lag
        self._keys: Dict[int, SshKey] = {}
        self._visible: Dict[int, SshKey] = {}
        self._pending: Deque[List] = deque()
        self._ids = itertools.count(1)
        self._failures: Deque[ApiError] = deque()
        self._lock = asyncio.Lock()
        self.list_calls = 0

    def fail_next(self, error: ApiError) -> None:
        """Make the next operation raise ``error``."""
        self._failures.append(error)

    def _check_failure(self) -> None:
        if self._failures:
            raise self._failures.popleft()

    def _publish(self, apply: Callable[[], None]) -> None:
        self._pending.append([self.visibility_lag, apply])

    def _advance_view(self) -> None:
        while self._pending and self._pending[0][0] <= 0:
            _, apply = self._pending.popleft()
            apply()
        for entry in self._pending:
            entry[0] -= 1

    def _find(self, key_id: Optional[int] = None, fingerprint: Optional[str] = None) -> SshKey:
        for key in self._keys.values():
            if key_id is not None and key.id == key_id:
                return key
            if fingerprint is not None and key.fingerprint == fingerprint:
                return key
        raise NotFoundError(NOT_FOUND_MESSAGE, 404, "not_found")

    def _check_name(self, name: str, owner: Optional[int] = None) -> None:
        if not name or not name.strip():
            raise ValidationError("Name is invalid", 422, "unprocessable_entity")
        for key in self._keys.values():
            if key.name == name and key.id != owner:
                raise ConflictError(
                    "Name is already in use on your account", 422, "unprocessable_entity"
                )

    # ------------------------------------------------------------------
    async def list_keys(self) -> list[SshKey]:
        async with self._lock:
            self._check_failure()
            self.list_calls += 1
            self._advance_view()
            return sorted(self._visible.values(), key=lambda k: k.id)

    async def create(self, name: str, public_key: str) -> SshKey:
        async with self._lock:
            self._check_failure()
            try:
                fingerprint = keygen.fingerprint(public_key)
            except ValueError as e:
                raise ValidationError(
                    f"Key invalid: {e}", 422, "unprocessable_entity"
                ) from e
            self._check_name(name)
            if any(k.fingerprint == fingerprint for k in self._keys.values()):
                raise ConflictError(
                    "SSH Key is already in use on your account",
                    422,
                    "unprocessable_entity",
                )

            key = SshKey(
                id=next(self._ids),
                fingerprint=fingerprint,
                name=name,
                public_key=public_key,
            )
            self._keys[key.id] = key
            self._publish(lambda: self._visible.__setitem__(key.id, key))
            return key

    async def get_by_id(self, key_id: int) -> SshKey:
        async with self._lock:
            self._check_failure()
            return self._find(key_id=key_id)

    async def get_by_fingerprint(self, fingerprint: str) -> SshKey:
        async with self._lock:
            self._check_failure()
            return self._find(fingerprint=fingerprint)

    def _rename(self, key: SshKey, new_name: str) -> SshKey:
        self._check_name(new_name, owner=key.id)
        renamed = key.model_copy(update={"name": new_name})
        self._keys[key.id] = renamed
        self._publish(lambda: self._visible.__setitem__(renamed.id, renamed))
        return renamed

    async def rename_by_id(self, key_id: int, new_name: str) -> SshKey:
        async with self._lock:
            self._check_failure()
            return self._rename(self._find(key_id=key_id), new_name)

    async def rename_by_fingerprint(self, fingerprint: str, new_name: str) -> SshKey:
        async with self._lock:
            self._check_failure()
            return self._rename(self._find(fingerprint=fingerprint), new_name)

    def _delete(self, key: SshKey) -> None:
        del self._keys[key.id]
        self._publish(lambda: self._visible.pop(key.id, None))

    async def delete_by_id(self, key_id: int) -> None:
        async with self._lock:
            self._check_failure()
            self._delete(self._find(key_id=key_id))

    async def delete_by_fingerprint(self, fingerprint: str) -> None:
        async with self._lock:
            self._check_failure()
            self._delete(self._find(fingerprint=fingerprint))
