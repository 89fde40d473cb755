"""Enumerations shared across the harness."""

from __future__ import annotations

from enum import StrEnum


class ChainSource(StrEnum):
    """The two chains a run bridges."""

    ETHEREUM = "ethereum"
    """Execution/consensus layer pair (contract events, beacon API)."""

    SUBSTRATE = "substrate"
    """Substrate solochain (pallet events, extrinsics)."""


class RelayerKind(StrEnum):
    """Relayer flavours. Each has its own config schema."""

    BEACON = "beacon"
    """Relays Ethereum beacon headers to the solochain."""

    BEEFY = "beefy"
    """Relays solochain BEEFY commitments to Ethereum."""

    EXECUTION = "execution"
    """Relays Ethereum execution-layer messages to the solochain."""

    SOLOCHAIN = "solochain"
    """Relays solochain messages to Ethereum."""


class KeyKind(StrEnum):
    """Signing key families a relayer can be given."""

    ETHEREUM = "ethereum"
    SUBSTRATE = "substrate"
