"""
Cross-chain bridge bootstrap.

Initializes the solochain's Ethereum beacon light client from a finalized
beacon checkpoint. The pipeline is linear:

    AWAIT_ETHEREUM_FINALITY -> GENERATE_CHECKPOINT -> PARSE_CHECKPOINT
        -> SUBMIT_TO_SOLOCHAIN -> AWAIT_FINALIZATION

Only the first stage retries: finality is eventually reached on a healthy
network. A failure in any later stage is a misconfiguration and aborts.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from .chains.beacon import BeaconCheckpoint
from .chains.substrate import ExtrinsicResult
from .config import HarnessConfig
from .errors import BootstrapError, BridgenetError
from .launcher import DockerRuntime
from .poller import poll

logger = logging.getLogger(__name__)

CHECKPOINT_CONFIG_NAME = "beacon-relay.json"
"""File name of the beacon relay config inside the checkpoint container."""


class BootstrapStage(StrEnum):
    """Stages of the bootstrap pipeline, in execution order."""

    AWAIT_ETHEREUM_FINALITY = "AWAIT_ETHEREUM_FINALITY"
    GENERATE_CHECKPOINT = "GENERATE_CHECKPOINT"
    PARSE_CHECKPOINT = "PARSE_CHECKPOINT"
    SUBMIT_TO_SOLOCHAIN = "SUBMIT_TO_SOLOCHAIN"
    AWAIT_FINALIZATION = "AWAIT_FINALIZATION"


class FinalitySource(Protocol):
    """Reports whether the beacon chain has finalized a non-sentinel root."""

    async def is_finalized(self, zero_hash: str) -> bool: ...


class CheckpointSubmitter(Protocol):
    """Submits a privileged call wrapped in sudo and waits for finalization."""

    async def submit_sudo(
        self,
        pallet: str,
        function: str,
        params: dict,
        private_key: str,
    ) -> ExtrinsicResult: ...


@dataclass(slots=True)
class CheckpointGenerator:
    """
    Runs the relayer's checkpoint export in a throwaway container.

    The container mounts the materialized beacon relay config read-only and
    writes the checkpoint JSON into a bind-mounted file.
    """

    docker: DockerRuntime
    """Container runtime."""

    config: HarnessConfig
    """Image, container name and file names."""

    network: str | None = None
    """Docker network to attach to, so the container can reach the beacon node."""

    async def generate(self, beacon_config: Path, output: Path) -> Path:
        """
        Export the current finalized checkpoint to `output`.

        The output file is created empty before the container starts.
        Otherwise docker creates a directory at the mount point.

        Raises:
            SubprocessError: If the export fails.
        """
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text("", encoding="utf-8")

        name = self.config.checkpoint_container_name
        workdir = self.config.container_workdir
        await self.docker.remove(name)

        args = [
            "-v",
            f"{beacon_config.resolve()}:{workdir}/{CHECKPOINT_CONFIG_NAME}:ro",
            "-v",
            f"{output.resolve()}:{workdir}/{self.config.checkpoint_file_name}",
            "--name",
            name,
            "--workdir",
            workdir,
            "--add-host",
            "host.docker.internal:host-gateway",
        ]
        if self.network:
            args += ["--network", self.network]
        args += [
            self.config.relayer_image,
            "generate-beacon-checkpoint",
            "--config",
            CHECKPOINT_CONFIG_NAME,
            "--export-json",
        ]

        try:
            await self.docker.run_to_completion(args)
        finally:
            try:
                await self.docker.remove(name)
            except BridgenetError as exc:
                logger.error("Error removing checkpoint container %s: %s", name, exc)
        return output


def read_checkpoint(path: Path) -> BeaconCheckpoint:
    """
    Decode an exported checkpoint and delete the file.

    The file is only deleted once it decoded successfully.

    Raises:
        ValueError: If the file is empty, not JSON, or not a checkpoint.
    """
    raw = path.read_text(encoding="utf-8")
    if not raw.strip():
        raise ValueError(f"Checkpoint file {path} is empty")
    try:
        checkpoint = BeaconCheckpoint.model_validate(json.loads(raw))
    except (json.JSONDecodeError, ValidationError) as exc:
        raise ValueError(f"Checkpoint file {path} is malformed: {exc}") from exc
    path.unlink()
    return checkpoint


@dataclass(slots=True)
class BootstrapResult:
    """Outcome of a successful bootstrap."""

    checkpoint: BeaconCheckpoint
    """The checkpoint the light client was initialized with."""

    block_hash: str | None
    """Solochain block that included the force-checkpoint extrinsic."""

    extrinsic_hash: str | None
    """Hash of the force-checkpoint extrinsic."""

    finality_attempts: int
    """Polls needed before the beacon chain reported finality."""


@dataclass(slots=True)
class BootstrapSequencer:
    """Drives the bootstrap pipeline. Single use, strictly sequential."""

    finality: FinalitySource
    """Beacon API view."""

    generator: CheckpointGenerator
    """Checkpoint export."""

    submitter: CheckpointSubmitter
    """Solochain client."""

    config: HarnessConfig
    """Poll budget, sentinel hash and signing key."""

    beacon_config: Path
    """Materialized beacon relay config."""

    work_dir: Path
    """Run-scoped directory for the transient checkpoint file."""

    stages: list[BootstrapStage] = field(default_factory=list)
    """Stages entered so far, in order."""

    def _enter(self, stage: BootstrapStage) -> None:
        self.stages.append(stage)
        logger.debug("Bootstrap stage: %s", stage.value)

    async def run(self) -> BootstrapResult:
        """
        Run all stages.

        Raises:
            BootstrapError: Naming the stage that failed.
        """
        attempts = await self._await_finality()
        checkpoint_file = await self._generate()
        checkpoint = self._parse(checkpoint_file)
        receipt = await self._submit(checkpoint)
        self._check_finalized(receipt)

        logger.info(
            "Beacon client initialized: block %s, extrinsic %s",
            receipt.block_hash,
            receipt.extrinsic_hash,
        )
        return BootstrapResult(
            checkpoint=checkpoint,
            block_hash=receipt.block_hash,
            extrinsic_hash=receipt.extrinsic_hash,
            finality_attempts=attempts,
        )

    async def _await_finality(self) -> int:
        stage = BootstrapStage.AWAIT_ETHEREUM_FINALITY
        self._enter(stage)
        logger.info("Waiting for Ethereum finality")

        result = await poll(
            lambda: self.finality.is_finalized(self.config.zero_hash),
            max_attempts=self.config.finality_poll_attempts,
            interval=self.config.finality_poll_interval,
            description="Ethereum finality",
        )
        if not result.succeeded:
            message = "Ethereum chain not finalized, bridge cannot be initialized"
            if result.last_error is not None:
                message = f"{message}: {result.last_error}"
            raise BootstrapError(stage.value, message)

        logger.info("Ethereum finality observed after %d attempt(s)", result.attempts)
        return result.attempts

    async def _generate(self) -> Path:
        stage = BootstrapStage.GENERATE_CHECKPOINT
        self._enter(stage)
        output = self.work_dir / self.config.checkpoint_file_name
        try:
            return await self.generator.generate(self.beacon_config, output)
        except (BridgenetError, OSError, TimeoutError) as exc:
            raise BootstrapError(stage.value, f"Checkpoint generation failed: {exc}") from exc

    def _parse(self, path: Path) -> BeaconCheckpoint:
        stage = BootstrapStage.PARSE_CHECKPOINT
        self._enter(stage)
        try:
            checkpoint = read_checkpoint(path)
        except (OSError, ValueError) as exc:
            raise BootstrapError(stage.value, str(exc)) from exc
        logger.debug("Decoded checkpoint at slot %d", checkpoint.header.slot)
        return checkpoint

    async def _submit(self, checkpoint: BeaconCheckpoint) -> ExtrinsicResult:
        stage = BootstrapStage.SUBMIT_TO_SOLOCHAIN
        self._enter(stage)
        try:
            return await self.submitter.submit_sudo(
                "EthereumBeaconClient",
                "force_checkpoint",
                {"update": checkpoint.to_call_arg()},
                self.config.sudo_private_key,
            )
        except Exception as exc:
            raise BootstrapError(stage.value, f"Submission failed: {exc}") from exc

    def _check_finalized(self, receipt: ExtrinsicResult) -> None:
        stage = BootstrapStage.AWAIT_FINALIZATION
        self._enter(stage)
        if not receipt.success:
            raise BootstrapError(
                stage.value, "Force checkpoint extrinsic failed", status=receipt.error
            )
