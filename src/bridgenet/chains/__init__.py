"""Adapters for the two bridged chains."""

from .beacon import (
    FINALITY_CHECKPOINTS_ENDPOINT,
    BeaconCheckpoint,
    BeaconClient,
    FinalityCheckpointsResponse,
)
from .ethereum import EthereumEventSource
from .substrate import ExtrinsicResult, SubstrateChain

__all__ = [
    "FINALITY_CHECKPOINTS_ENDPOINT",
    "BeaconCheckpoint",
    "BeaconClient",
    "FinalityCheckpointsResponse",
    "EthereumEventSource",
    "ExtrinsicResult",
    "SubstrateChain",
]
