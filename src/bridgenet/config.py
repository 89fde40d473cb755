"""
Configuration for a bridge test-network run.

Two layers:

- Environment: the `NETWORK` variable selects which deployment file to read,
  and `SUDO_PRIVATE_KEY` overrides the well-known development signing key.
- HarnessConfig: an explicit value passed to every component.
  It holds every tunable constant so tests can substitute values directly.
"""

from __future__ import annotations

import json
import os
import re
import tempfile
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Final

import yaml
from pydantic import Field, ValidationError

from .errors import ConfigError, SchemaViolationError
from .types import ZERO_HASH, Address, StrictBaseModel, flatten_errors

DEFAULT_NETWORK: Final = "anvil"
"""Deployment network used when `NETWORK` is not set."""

DEV_SUDO_PRIVATE_KEY: Final = "0x5fb92d6e98884f76de468fa3f6278f8807c48bebc13595d45af5bdc4da702133"
"""Pre-funded development account (Alith) holding the sudo key on dev chains."""

_NETWORK_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


def network_from_env() -> str:
    """
    Read the deployment network name from the environment.

    Raises:
        ConfigError: If `NETWORK` is set to something that is not a plain identifier.
    """
    network = os.environ.get("NETWORK", DEFAULT_NETWORK).strip()
    if not _NETWORK_PATTERN.match(network):
        raise ConfigError(f"Invalid NETWORK environment variable: {network!r}", field="NETWORK")
    return network


class DeploymentMode(StrEnum):
    """Where the run's containers live and what teardown does to them."""

    LOCAL = "local"
    """Local Docker; containers are left running for inspection."""

    EPHEMERAL = "ephemeral"
    """Throwaway Docker containers; removed on teardown."""

    KUBERNETES = "kubernetes"
    """Helm releases in a namespace; uninstalled on teardown."""


@dataclass(frozen=True, slots=True)
class HarnessConfig:
    """Tunable constants for one harness run."""

    zero_hash: str = ZERO_HASH
    """Sentinel finalized root meaning "nothing finalized yet"."""

    finality_poll_interval: float = 10.0
    """Seconds to sleep before each beacon finality check."""

    finality_poll_attempts: int = 30
    """Maximum beacon finality checks before bootstrap aborts."""

    checkpoint_container_name: str = "generate-beacon-checkpoint"
    """Name of the throwaway container that dumps the beacon checkpoint."""

    checkpoint_file_name: str = "dump-initial-checkpoint.json"
    """File name the checkpoint generator writes inside its working directory."""

    container_workdir: str = "/app"
    """Working directory of the checkpoint generator inside its container."""

    relayer_image: str = "snowbridge-relay:local"
    """Docker image containing the relayer binary."""

    sudo_private_key: str = DEV_SUDO_PRIVATE_KEY
    """Key used to sign privileged bootstrap extrinsics."""

    ws_port_label: str = "ws"
    """Port label under which node containers publish their WebSocket port."""

    datastore_location: str = "/data"
    """Datastore directory as seen from inside relayer containers."""

    event_timeout: float = 30.0
    """Default seconds to wait for a chain event."""

    container_start_attempts: int = 30
    """Maximum checks that a freshly started container is running."""

    container_start_interval: float = 1.0
    """Seconds between container-running checks."""

    work_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()) / "bridgenet")
    """Root directory for run-scoped artifacts (relay configs, checkpoint dumps)."""

    def run_dir(self, run_id: str) -> Path:
        """Directory holding artifacts of a single run."""
        return self.work_dir / run_id

    @classmethod
    def from_env(cls, **overrides: object) -> HarnessConfig:
        """Build a config, taking secrets from the environment."""
        sudo_key = os.environ.get("SUDO_PRIVATE_KEY", DEV_SUDO_PRIVATE_KEY)
        return cls(sudo_private_key=sudo_key, **overrides)  # type: ignore[arg-type]


class Deployments(StrictBaseModel):
    """Contract addresses produced by the contracts deployment step."""

    model_config = StrictBaseModel.model_config | {"extra": "ignore"}

    beefy_client: Address = Field(alias="BeefyClient")
    """Address of the BEEFY light client contract."""

    gateway: Address = Field(alias="Gateway")
    """Address of the bridge gateway contract."""


def load_deployments(path: Path | str) -> Deployments:
    """
    Load contract addresses from a deployment JSON file.

    Raises:
        ConfigError: If the file is missing or is not JSON.
        SchemaViolationError: If required addresses are absent or malformed.
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigError("Deployments file not found", path=path)

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Deployments file is not valid JSON: {exc}", path=path) from exc

    try:
        return Deployments.model_validate(data)
    except ValidationError as exc:
        raise SchemaViolationError("deployments", flatten_errors(exc), path=path) from exc


def deployments_path(contracts_dir: Path | str, network: str | None = None) -> Path:
    """Path of the deployment file for a network (defaults to `NETWORK`)."""
    network = network or network_from_env()
    return Path(contracts_dir) / "deployments" / f"{network}.json"


class DeploymentProfile(StrictBaseModel):
    """
    Deployment target description loaded from YAML.

    Example::

        mode: kubernetes
        network_name: datahaven-net
        kube_namespace: kt-datahaven
        relayer_image: snowbridge-relay:latest
    """

    mode: DeploymentMode = DeploymentMode.LOCAL
    """Where containers live."""

    network_name: str | None = None
    """Docker network name (Docker modes)."""

    kube_namespace: str | None = None
    """Kubernetes namespace (Kubernetes mode)."""

    relayer_image: str | None = None
    """Override for the relayer image."""

    @classmethod
    def from_yaml_file(cls, path: Path | str) -> DeploymentProfile:
        """
        Load a profile from a YAML file.

        Raises:
            ConfigError: If the file does not exist.
            SchemaViolationError: If the content does not match the profile schema.
        """
        path = Path(path)
        if not path.is_file():
            raise ConfigError("Deployment profile not found", path=path)
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        # YAML gives plain strings; strict mode would reject them for the enum field.
        try:
            return cls.model_validate(data, strict=False)
        except ValidationError as exc:
            raise SchemaViolationError(
                "deployment profile", flatten_errors(exc), path=path
            ) from exc
