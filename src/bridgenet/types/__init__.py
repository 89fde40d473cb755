"""Reusable type definitions for the bridge harness."""

from .base import CamelModel, PassThroughModel, StrictBaseModel, flatten_errors
from .enums import ChainSource, KeyKind, RelayerKind
from .hex import ZERO_HASH, Address, Hash32, HexBytes, is_zero_hash

__all__ = [
    # Models
    "CamelModel",
    "PassThroughModel",
    "StrictBaseModel",
    "flatten_errors",
    # Enumerations
    "ChainSource",
    "KeyKind",
    "RelayerKind",
    # Hex strings
    "Address",
    "Hash32",
    "HexBytes",
    "ZERO_HASH",
    "is_zero_hash",
]
