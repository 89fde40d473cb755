"""
Relay config materialization.

A relayer process reads one JSON config file. Templates for each relayer kind
ship with the repository, per deployment environment. Before a relayer is
launched, its template is decoded, the fields that depend on the live network
are overwritten, and the result is written to a run-scoped path.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from ..config import Deployments
from ..errors import ConfigError, MissingLiveValueError, TemplateNotFoundError
from ..registry import NetworkRun
from ..types import KeyKind, RelayerKind
from .schemas import (
    BeaconRelayConfig,
    BeefyRelayConfig,
    ExecutionRelayConfig,
    RelayConfig,
    SolochainRelayConfig,
    parse_relay_config,
)

logger = logging.getLogger(__name__)

CONFIG_FILE_NAMES: dict[RelayerKind, str] = {
    RelayerKind.BEACON: "beacon-relay.json",
    RelayerKind.BEEFY: "beefy-relay.json",
    RelayerKind.EXECUTION: "execution-relay.json",
    RelayerKind.SOLOCHAIN: "solochain-relay.json",
}
"""Template and output file name for each relayer kind."""


@dataclass(frozen=True, slots=True)
class SigningKey:
    """Key material handed to a relayer process."""

    kind: KeyKind
    """Key family (selects the relayer CLI flag)."""

    value: str
    """Opaque secret: a hex private key or a Substrate secret URI."""

    def __repr__(self) -> str:
        return f"SigningKey(kind={self.kind.value!r}, value=<redacted>)"


@dataclass(frozen=True, slots=True)
class RelayerSpec:
    """Everything needed to configure and launch one relayer."""

    name: str
    """Container name of the relayer."""

    kind: RelayerKind
    """Relayer kind (selects the config schema)."""

    template_path: Path
    """JSON template to materialize."""

    output_path: Path
    """Where the materialized config is written."""

    signing_key: SigningKey
    """Key the relayer signs with."""


@dataclass(frozen=True, slots=True)
class LiveValues:
    """
    Network-dependent values written into relay configs.

    Endpoints are as seen from inside the relayer containers.
    """

    solochain_endpoint: str
    """WebSocket endpoint of the Substrate node."""

    ethereum_endpoint: str | None = None
    """Execution-layer RPC endpoint."""

    beacon_endpoint: str | None = None
    """Consensus-layer (beacon API) HTTP endpoint."""

    beefy_client_address: str | None = None
    """Deployed BeefyClient contract."""

    gateway_address: str | None = None
    """Deployed Gateway contract."""

    datastore_location: str = "/data"
    """Relayer datastore directory inside the container."""

    @classmethod
    def from_run(
        cls,
        run: NetworkRun,
        deployments: Deployments,
        solochain_endpoint: str,
        *,
        datastore_location: str = "/data",
    ) -> LiveValues:
        """
        Collect live values from a network run and its contract deployment.

        Raises:
            UnsetEndpointError: If the run has no execution or consensus endpoint yet.
        """
        return cls(
            solochain_endpoint=solochain_endpoint,
            ethereum_endpoint=run.el_endpoint,
            beacon_endpoint=run.cl_endpoint,
            beefy_client_address=deployments.beefy_client,
            gateway_address=deployments.gateway,
            datastore_location=datastore_location,
        )

    def require(self, name: str, kind: RelayerKind) -> str:
        """
        Return a live value that a relayer kind cannot do without.

        Raises:
            MissingLiveValueError: If the value is absent.
        """
        value = getattr(self, name)
        if not value:
            raise MissingLiveValueError(name, kind.value)
        return value


def apply_live_values(config: RelayConfig, kind: RelayerKind, live: LiveValues) -> None:
    """Overwrite the network-dependent fields of a decoded config in place."""
    match config:
        case BeaconRelayConfig():
            config.point_at(
                beacon_endpoint=live.require("beacon_endpoint", kind),
                solochain_endpoint=live.solochain_endpoint,
                datastore=live.datastore_location,
            )
        case BeefyRelayConfig():
            config.point_at(
                solochain_endpoint=live.solochain_endpoint,
                ethereum_endpoint=live.require("ethereum_endpoint", kind),
                beefy_client=live.require("beefy_client_address", kind),
                gateway=live.require("gateway_address", kind),
            )
        case ExecutionRelayConfig():
            config.point_at(
                ethereum_endpoint=live.require("ethereum_endpoint", kind),
                beacon_endpoint=live.require("beacon_endpoint", kind),
                solochain_endpoint=live.solochain_endpoint,
                gateway=live.require("gateway_address", kind),
                datastore=live.datastore_location,
            )
        case SolochainRelayConfig():
            config.point_at(
                ethereum_endpoint=live.require("ethereum_endpoint", kind),
                solochain_endpoint=live.solochain_endpoint,
                gateway=live.require("gateway_address", kind),
            )


def load_template(path: Path, kind: RelayerKind) -> RelayConfig:
    """
    Read and decode a relay config template.

    Raises:
        TemplateNotFoundError: If the file does not exist.
        ConfigError: If the file is not valid JSON.
        SchemaViolationError: If the document does not match the kind's schema.
    """
    if not path.is_file():
        raise TemplateNotFoundError(path)

    logger.debug("Reading relay config template %s", path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Relay config template is not valid JSON: {exc}", path=path) from exc
    return parse_relay_config(data, kind, path=path)


def render(config: RelayConfig) -> str:
    """Encode a relay config the way relayers expect to read it."""
    return json.dumps(config.to_wire(), indent=4) + "\n"


def materialize(spec: RelayerSpec, live: LiveValues) -> Path:
    """
    Produce the config file for one relayer.

    Reads `spec.template_path`, overwrites exactly the live fields, and writes
    the result to `spec.output_path`, replacing any previous file there.

    Returns:
        The output path.

    Raises:
        TemplateNotFoundError: If the template does not exist.
        SchemaViolationError: If the template does not match the kind's schema.
        MissingLiveValueError: If the kind needs a live value that `live` lacks.
    """
    logger.debug("Generating %s relayer configuration for %s", spec.kind.value, spec.name)
    config = load_template(spec.template_path, spec.kind)
    apply_live_values(config, spec.kind, live)

    spec.output_path.parent.mkdir(parents=True, exist_ok=True)
    spec.output_path.write_text(render(config), encoding="utf-8")
    logger.info("Wrote %s relay config to %s", spec.kind.value, spec.output_path)
    return spec.output_path


def define_relayers(
    network_id: str,
    template_dir: Path,
    config_dir: Path,
    *,
    ethereum_key: str,
    substrate_keys: dict[RelayerKind, str] | None = None,
) -> list[RelayerSpec]:
    """
    The standard set of relayers for a bridged network.

    The BEEFY relayer signs Ethereum transactions; the others sign extrinsics.

    Args:
        network_id: Identifier used to namespace container names.
        template_dir: Directory holding one template per relayer kind.
        config_dir: Directory the materialized configs are written to.
        ethereum_key: Private key for the BEEFY relayer.
        substrate_keys: Secret URIs for the other relayers (defaults to dev accounts).
    """
    substrate_keys = {
        RelayerKind.BEACON: "//BeaconRelay",
        RelayerKind.EXECUTION: "//ExecutionRelay",
        RelayerKind.SOLOCHAIN: "//Relay",
    } | (substrate_keys or {})

    specs: list[RelayerSpec] = []
    for kind, file_name in CONFIG_FILE_NAMES.items():
        if kind is RelayerKind.BEEFY:
            key = SigningKey(KeyKind.ETHEREUM, ethereum_key)
        else:
            key = SigningKey(KeyKind.SUBSTRATE, substrate_keys[kind])
        specs.append(
            RelayerSpec(
                name=f"snowbridge-{network_id}-{kind.value}-relay",
                kind=kind,
                template_path=template_dir / file_name,
                output_path=config_dir / file_name,
                signing_key=key,
            )
        )
    return specs
