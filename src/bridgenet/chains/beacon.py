"""
Beacon (consensus-layer) API client and checkpoint types.

The bridge light client on the solochain is bootstrapped from a finalized
beacon checkpoint. Before one can be generated, the beacon chain must
report a finalized block root other than the all-zero sentinel.
"""

from __future__ import annotations

import logging

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from ..errors import ConfigError, TransientError
from ..types import ZERO_HASH, is_zero_hash

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
"""HTTP request timeout in seconds."""

FINALITY_CHECKPOINTS_ENDPOINT = "/eth/v1/beacon/states/head/finality_checkpoints"
"""Standard beacon API endpoint reporting justified and finalized checkpoints."""


class Checkpoint(BaseModel):
    """An (epoch, root) pair as reported by the beacon API."""

    model_config = ConfigDict(extra="ignore")

    epoch: int
    root: str


class FinalityCheckpoints(BaseModel):
    model_config = ConfigDict(extra="ignore")

    previous_justified: Checkpoint | None = None
    current_justified: Checkpoint | None = None
    finalized: Checkpoint


class FinalityCheckpointsResponse(BaseModel):
    """Body of the finality checkpoints endpoint."""

    model_config = ConfigDict(extra="ignore")

    data: FinalityCheckpoints
    execution_optimistic: bool = False
    finalized: bool = False

    @property
    def finalized_root(self) -> str:
        return self.data.finalized.root

    def is_finalized(self, zero_hash: str = ZERO_HASH) -> bool:
        """True once a real (non-sentinel) block root has been finalized."""
        return not is_zero_hash(self.finalized_root, zero_hash)


class BeaconHeader(BaseModel):
    model_config = ConfigDict(extra="allow")

    slot: int
    proposer_index: int
    parent_root: str
    state_root: str
    body_root: str


class SyncCommittee(BaseModel):
    model_config = ConfigDict(extra="allow")

    pubkeys: list[str]
    aggregate_pubkey: str


class BeaconCheckpoint(BaseModel):
    """
    Snapshot of beacon sync-committee state used to initialize the bridge light client.

    Produced by the relayer binary's checkpoint export and submitted verbatim
    as the argument of the privileged force-checkpoint call. Fields this model
    does not name are kept and forwarded unchanged.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    header: BeaconHeader
    current_sync_committee: SyncCommittee
    current_sync_committee_branch: list[str]
    validators_root: str
    block_roots_root: str
    block_roots_branch: list[str]

    def to_call_arg(self) -> dict:
        """Encode as the call argument expected by the beacon client pallet."""
        return self.model_dump(mode="json")


class BeaconClient:
    """
    Minimal async client for a beacon node's HTTP API.

    Use as an async context manager, or pass an existing `httpx.AsyncClient`.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not base_url:
            raise ConfigError("Beacon endpoint cannot be empty", field="base_url")
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    async def __aenter__(self) -> BeaconClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def finality_checkpoints(self) -> FinalityCheckpointsResponse:
        """
        Fetch the head state's finality checkpoints.

        Raises:
            TransientError: If the node is unreachable, answers with an error
                status, or returns a body that cannot be decoded. Beacon nodes
                routinely do this while still starting up.
        """
        url = f"{self.base_url}{FINALITY_CHECKPOINTS_ENDPOINT}"
        try:
            response = await self._client.get(url, headers={"Accept": "application/json"})
            response.raise_for_status()
            checkpoints = FinalityCheckpointsResponse.model_validate_json(response.content)
        except httpx.RequestError as exc:
            raise TransientError(
                f"Network error while connecting to {url}: {exc}", attempts=1, last_error=exc
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise TransientError(
                f"HTTP error {exc.response.status_code}: {exc.response.text[:200]}",
                attempts=1,
                last_error=exc,
            ) from exc
        except ValidationError as exc:
            raise TransientError(
                f"Unexpected finality checkpoints body from {url}", attempts=1, last_error=exc
            ) from exc

        logger.debug(
            "Finalized checkpoint: epoch=%d root=%s",
            checkpoints.data.finalized.epoch,
            checkpoints.finalized_root,
        )
        return checkpoints

    async def is_finalized(self, zero_hash: str = ZERO_HASH) -> bool:
        """True once the beacon chain reports a non-sentinel finalized root."""
        return (await self.finality_checkpoints()).is_finalized(zero_hash)
