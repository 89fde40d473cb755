"""
Hex-encoded string types shared by both chains.

Hashes and addresses travel through JSON as 0x-prefixed hex strings.
They are validated on the way in and forwarded verbatim.
"""

from __future__ import annotations

from typing import Annotated, Final

from pydantic import StringConstraints

Hash32 = Annotated[str, StringConstraints(pattern=r"^0x[0-9a-fA-F]{64}$")]
"""A 32-byte hash as a 0x-prefixed hex string."""

Address = Annotated[str, StringConstraints(pattern=r"^0x[0-9a-fA-F]{40}$")]
"""A 20-byte Ethereum address as a 0x-prefixed hex string."""

HexBytes = Annotated[str, StringConstraints(pattern=r"^0x(?:[0-9a-fA-F]{2})*$")]
"""Arbitrary-length bytes as a 0x-prefixed hex string."""

ZERO_HASH: Final[str] = "0x" + "00" * 32
"""Sentinel hash reported before any real finality data exists."""


def is_zero_hash(value: str | None, sentinel: str = ZERO_HASH) -> bool:
    """
    Check whether a hash is missing or equal to the all-zero sentinel.

    Comparison ignores hex-digit case.
    """
    if not value:
        return True
    return value.lower() == sentinel.lower()
