"""
Relay configuration schemas.

One schema per relayer kind. Each decodes a JSON template once, exposes
named setters for the fields that depend on the live network, and re-encodes.
Keys the schema does not know about are carried through unchanged.
"""

from typing import Any

from pydantic import Field, ValidationError

from ..errors import SchemaViolationError
from ..types import PassThroughModel, RelayerKind, flatten_errors


class ForkVersions(PassThroughModel):
    deneb: int
    electra: int


class BeaconSpec(PassThroughModel):
    """Consensus constants the relayer needs to follow the beacon chain."""

    sync_committee_size: int
    slots_in_epoch: int
    epochs_per_sync_committee_period: int
    fork_versions: ForkVersions


class Datastore(PassThroughModel):
    location: str
    max_entries: int


class BeaconSource(PassThroughModel):
    endpoint: str
    state_endpoint: str
    spec: BeaconSpec
    datastore: Datastore


class ParachainSink(PassThroughModel):
    endpoint: str
    max_watched_extrinsics: int
    header_redundancy: int


class BeaconRelayConfig(PassThroughModel):
    """
    Beacon relay: follows the Ethereum beacon chain and submits headers to the solochain.

    Live fields: beacon endpoints, datastore location, solochain endpoint.
    """

    class Source(PassThroughModel):
        beacon: BeaconSource

    class Sink(PassThroughModel):
        parachain: ParachainSink
        update_slot_interval: int

    source: Source
    sink: Sink

    def point_at(self, beacon_endpoint: str, solochain_endpoint: str, datastore: str) -> None:
        """Overwrite the live fields."""
        self.source.beacon.endpoint = beacon_endpoint
        self.source.beacon.state_endpoint = beacon_endpoint
        self.source.beacon.datastore.location = datastore
        self.sink.parachain.endpoint = solochain_endpoint


class BeefyContracts(PassThroughModel):
    beefy_client: str = Field(alias="BeefyClient")
    gateway: str = Field(alias="Gateway")


class BeefyRelayConfig(PassThroughModel):
    """
    BEEFY relay: follows solochain BEEFY finality and submits commitments to Ethereum.

    Live fields: solochain endpoint, Ethereum endpoint, BeefyClient and Gateway addresses.
    """

    class Source(PassThroughModel):
        class Polkadot(PassThroughModel):
            endpoint: str

        polkadot: Polkadot

    class Sink(PassThroughModel):
        class Ethereum(PassThroughModel):
            endpoint: str
            gas_limit: str = Field(alias="gas-limit")

        ethereum: Ethereum
        descendants_until_final: int = Field(alias="descendants-until-final")
        contracts: BeefyContracts

    class OnDemandSync(PassThroughModel):
        max_tokens: int = Field(alias="max-tokens")
        refill_amount: int = Field(alias="refill-amount")
        refill_period: int = Field(alias="refill-period")

    source: Source
    sink: Sink
    on_demand_sync: OnDemandSync = Field(alias="on-demand-sync")

    def point_at(
        self,
        solochain_endpoint: str,
        ethereum_endpoint: str,
        beefy_client: str,
        gateway: str,
    ) -> None:
        """Overwrite the live fields."""
        self.source.polkadot.endpoint = solochain_endpoint
        self.sink.ethereum.endpoint = ethereum_endpoint
        self.sink.contracts.beefy_client = beefy_client
        self.sink.contracts.gateway = gateway


class ExecutionRelayConfig(PassThroughModel):
    """
    Execution relay: delivers Ethereum gateway messages to the solochain.

    Live fields: Ethereum endpoint, Gateway address, beacon endpoints,
    datastore location, solochain endpoint.
    """

    class Source(PassThroughModel):
        class Ethereum(PassThroughModel):
            endpoint: str

        class Contracts(PassThroughModel):
            gateway: str = Field(alias="Gateway")

        ethereum: Ethereum
        contracts: Contracts
        channel_id: str = Field(alias="channel-id")
        beacon: BeaconSource

    class Sink(PassThroughModel):
        parachain: ParachainSink

    class Schedule(PassThroughModel):
        id: int
        total_relayer_count: int
        sleep_interval: int

    source: Source
    sink: Sink
    instant_verification: bool
    schedule: Schedule

    def point_at(
        self,
        ethereum_endpoint: str,
        beacon_endpoint: str,
        solochain_endpoint: str,
        gateway: str,
        datastore: str,
    ) -> None:
        """Overwrite the live fields."""
        self.source.ethereum.endpoint = ethereum_endpoint
        self.source.contracts.gateway = gateway
        self.source.beacon.endpoint = beacon_endpoint
        self.source.beacon.state_endpoint = beacon_endpoint
        self.source.beacon.datastore.location = datastore
        self.sink.parachain.endpoint = solochain_endpoint


class SolochainRelayConfig(PassThroughModel):
    """
    Solochain relay: delivers solochain outbound messages to the Ethereum gateway.

    Live fields: Ethereum endpoint, solochain endpoint, Gateway address.
    """

    class Endpoint(PassThroughModel):
        endpoint: str

    class Source(PassThroughModel):
        class Ethereum(PassThroughModel):
            class Contracts(PassThroughModel):
                gateway: str = Field(alias="Gateway")

            contracts: Contracts

        ethereum: Ethereum

    class Sink(PassThroughModel):
        class Substrate(PassThroughModel):
            para_id: int = Field(alias="para-id")

        substrate: Substrate

    ethereum: Endpoint
    substrate: Endpoint
    source: Source
    sink: Sink

    def point_at(self, ethereum_endpoint: str, solochain_endpoint: str, gateway: str) -> None:
        """Overwrite the live fields."""
        self.ethereum.endpoint = ethereum_endpoint
        self.substrate.endpoint = solochain_endpoint
        self.source.ethereum.contracts.gateway = gateway


RelayConfig = BeaconRelayConfig | BeefyRelayConfig | ExecutionRelayConfig | SolochainRelayConfig
"""Any decoded relay configuration."""

SCHEMAS: dict[RelayerKind, type[RelayConfig]] = {
    RelayerKind.BEACON: BeaconRelayConfig,
    RelayerKind.BEEFY: BeefyRelayConfig,
    RelayerKind.EXECUTION: ExecutionRelayConfig,
    RelayerKind.SOLOCHAIN: SolochainRelayConfig,
}
"""Schema used for each relayer kind."""


def parse_relay_config(data: Any, kind: RelayerKind | str, *, path: Any = None) -> RelayConfig:
    """
    Decode a relay configuration document for a relayer kind.

    Args:
        data: Parsed JSON document.
        kind: Relayer kind selecting the schema.
        path: Source file, for error reporting.

    Raises:
        SchemaViolationError: If the document does not match the kind's schema.
    """
    kind = RelayerKind(kind)
    schema = SCHEMAS[kind]
    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        raise SchemaViolationError(
            f"{kind.value} relay config", flatten_errors(exc), path=path
        ) from exc
