"""OpenSSH public key helpers.

Generates throwaway RSA keys in the ``algorithm base64(blob) comment`` line
format the key API accepts, and derives the MD5 fingerprint the API reports
for a key line.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import struct
from typing import NamedTuple, Optional

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from .constants import DEFAULT_KEY_BITS, DEFAULT_KEY_COMMENT

SUPPORTED_ALGORITHMS = frozenset(
    {
        "ssh-rsa",
        "ssh-dss",
        "ssh-ed25519",
        "ecdsa-sha2-nistp256",
        "ecdsa-sha2-nistp384",
        "ecdsa-sha2-nistp521",
    }
)


class PublicKeyLine(NamedTuple):
    algorithm: str
    blob: bytes
    comment: Optional[str]


def generate_public_key(
    bits: int = DEFAULT_KEY_BITS, comment: str = DEFAULT_KEY_COMMENT
) -> str:
    """Return a fresh ``ssh-rsa`` public key line ending in ``comment``."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=bits)
    openssh = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.OpenSSH,
        format=serialization.PublicFormat.OpenSSH,
    )
    return f"{openssh.decode('ascii')} {comment}"


def parse_public_key(line: str) -> PublicKeyLine:
    """Split and check a public key line.

    Raises:
        ValueError: if the line is not ``algorithm base64 [comment]`` or the
            blob does not start with the declared algorithm.
    """
    parts = line.strip().split(None, 2)
    if len(parts) < 2:
        raise ValueError("public key must be 'algorithm base64 [comment]'")
    algorithm, encoded = parts[0], parts[1]
    if algorithm not in SUPPORTED_ALGORITHMS:
        raise ValueError(f"unsupported key algorithm: {algorithm}")
    try:
        blob = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"public key payload is not valid base64: {e}") from e

    if len(blob) < 4:
        raise ValueError("public key payload is truncated")
    (length,) = struct.unpack(">I", blob[:4])
    declared = blob[4 : 4 + length]
    if len(declared) != length or declared.decode("ascii", "replace") != algorithm:
        raise ValueError("public key payload does not match its algorithm")

    comment = parts[2] if len(parts) > 2 else None
    return PublicKeyLine(algorithm, blob, comment)


def fingerprint(line: str) -> str:
    """Return the colon-separated MD5 fingerprint of a public key line."""
    digest = hashlib.md5(parse_public_key(line).blob).hexdigest()
    return ":".join(digest[i : i + 2] for i in range(0, len(digest), 2))
