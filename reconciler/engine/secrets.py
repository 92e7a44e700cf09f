"""One-way state for write-only disk fields.

The provider never returns a disk's root password or authorized keys, so
the flattened view carries a SHA3-512 digest of the desired value instead.
"""

from __future__ import annotations

import base64
import hashlib
from collections.abc import Sequence


def hash_string(value: str) -> str:
    digest = hashlib.sha3_512(value.encode("utf-8")).digest()
    return base64.b64encode(digest).decode("ascii")


def root_password_state(password: str) -> str:
    return hash_string(password)


def ssh_key_state(keys: Sequence[str]) -> str:
    return hash_string("\n".join(keys))
