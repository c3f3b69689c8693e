"""Base client interface for the SSH key API."""

from __future__ import annotations

import abc

from ..models import SshKey


class BaseKeyClient(metaclass=abc.ABCMeta):
    """Abstract asynchronous facade over the key API.

    Reads may lag writes: a key returned by :meth:`create` is not guaranteed
    to show up in :meth:`list_keys` straight away.
    """

    async def connect(self) -> None:
        """Open the underlying connection (no-op by default)."""
        pass

    async def close(self) -> None:
        """Release the underlying connection (no-op by default)."""
        pass

    async def __aenter__(self) -> "BaseKeyClient":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    @abc.abstractmethod
    async def list_keys(self) -> list[SshKey]:
        """Return every key currently visible to the read path."""
        raise NotImplementedError

    @abc.abstractmethod
    async def create(self, name: str, public_key: str) -> SshKey:
        """Register a new key."""
        raise NotImplementedError

    @abc.abstractmethod
    async def get_by_id(self, key_id: int) -> SshKey:
        raise NotImplementedError

    @abc.abstractmethod
    async def get_by_fingerprint(self, fingerprint: str) -> SshKey:
        raise NotImplementedError

    @abc.abstractmethod
    async def rename_by_id(self, key_id: int, new_name: str) -> SshKey:
        """Rename the key with ``key_id`` and return the updated record."""
        raise NotImplementedError

    @abc.abstractmethod
    async def rename_by_fingerprint(self, fingerprint: str, new_name: str) -> SshKey:
        """Rename the key with ``fingerprint`` and return the updated record."""
        raise NotImplementedError

    @abc.abstractmethod
    async def delete_by_id(self, key_id: int) -> None:
        """Delete a key; raises ``NotFoundError`` if it is already gone."""
        raise NotImplementedError

    @abc.abstractmethod
    async def delete_by_fingerprint(self, fingerprint: str) -> None:
        raise NotImplementedError
