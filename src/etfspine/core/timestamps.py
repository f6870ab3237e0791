"""
UTC timestamps and run identifiers.

* ``utc_now()``      -- timezone-aware UTC ``datetime`` (the service clock default).
* ``generate_ulid()`` -- 26-char time-sortable id for migration runs.

Tags:
    timestamps, ulid, utc, etfspine
"""

from __future__ import annotations

import secrets
import time
from datetime import UTC, datetime

_ENCODING = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"  # Crockford base32


def utc_now() -> datetime:
    return datetime.now(UTC)


def _encode_base32(value: int, length: int) -> str:
    chars = []
    for _ in range(length):
        value, rem = divmod(value, 32)
        chars.append(_ENCODING[rem])
    return "".join(reversed(chars))


def generate_ulid() -> str:
    """48-bit millisecond timestamp + 80 random bits, base32 encoded."""
    return _encode_base32(int(time.time() * 1000), 10) + _encode_base32(secrets.randbits(80), 16)


__all__ = ["generate_ulid", "utc_now"]
