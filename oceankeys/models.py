"""Key records as returned by the key API."""

from __future__ import annotations

from typing import Any, Iterable

from pydantic import BaseModel


class SshKey(BaseModel):
    """One SSH key resource.

    ``id`` and ``fingerprint`` are assigned by the remote system and never
    change; ``name`` is the only mutable field.
    """

    id: int
    fingerprint: str
    name: str
    public_key: str

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "SshKey":
        return cls.model_validate(data)

    def to_api(self) -> dict[str, Any]:
        return self.model_dump()


def same_key(k1: SshKey, k2: SshKey) -> bool:
    """Return ``True`` when both records describe the same resource.

    The name is deliberately left out so observations taken before and after
    a rename compare equal.
    """
    return (
        k1.id == k2.id
        and k1.fingerprint == k2.fingerprint
        and k1.public_key == k2.public_key
    )


def find_by_id(keys: Iterable[SshKey], key_id: int) -> list[SshKey]:
    return [k for k in keys if k.id == key_id]


def has_name(keys: Iterable[SshKey], name: str) -> bool:
    return any(k.name == name for k in keys)
