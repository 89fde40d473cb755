"""
Container launching for bridge components.

Relayers and solochain nodes run as detached Docker containers attached to
the run's network. Every container started here is recorded in the run's
registry so teardown can find it.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from .config import HarnessConfig
from .errors import TransientError
from .poller import wait_for
from .ports import PortAllocator
from .process import CommandRunner, run_command
from .registry import ContainerHandle, NetworkRun
from .relayers import RelayerSpec
from .types import KeyKind

logger = logging.getLogger(__name__)

HOST_GATEWAY = "host.docker.internal:host-gateway"
"""Lets containers reach services published on the host."""

SOLOCHAIN_WS_PORT = 9944
"""WebSocket RPC port inside a solochain node container."""

RELAYER_CONFIG_PATH = "/config/config.json"
"""Where a relayer container expects its config file."""


@dataclass(slots=True)
class DockerRuntime:
    """
    Thin async wrapper over the docker and helm CLIs.

    Implements the container teardown the run registry needs.
    """

    runner: CommandRunner = run_command
    """Executes the CLI commands."""

    docker: str = "docker"
    """Docker executable."""

    helm: str = "helm"
    """Helm executable."""

    async def run_detached(
        self,
        image: str,
        *,
        name: str,
        network: str | None = None,
        volumes: Sequence[str] = (),
        ports: Mapping[int, int] | None = None,
        extra_hosts: Sequence[str] = (HOST_GATEWAY,),
        workdir: str | None = None,
        command: Sequence[str] = (),
    ) -> str:
        """
        Start a detached container.

        Args:
            ports: Host port to container port.

        Returns:
            The container id.

        Raises:
            SubprocessError: If docker refuses to start the container.
        """
        args = ["run", "-d", "--name", name]
        if network:
            args += ["--network", network]
        for host in extra_hosts:
            args += ["--add-host", host]
        for volume in volumes:
            args += ["-v", volume]
        for host_port, container_port in (ports or {}).items():
            args += ["-p", f"{host_port}:{container_port}"]
        if workdir:
            args += ["--workdir", workdir]
        args += [image, *command]

        result = (await self.runner(self.docker, args)).check()
        container_id = result.stdout.strip()
        logger.debug("Started container %s (%s)", name, container_id[:12])
        return container_id

    async def run_to_completion(self, args: Sequence[str]) -> str:
        """
        Run a foreground `docker run` invocation and return its stdout.

        Raises:
            SubprocessError: If the container exits with a non-zero status.
        """
        result = (await self.runner(self.docker, ["run", *args])).check()
        return result.stdout

    async def pull(self, image: str) -> None:
        (await self.runner(self.docker, ["pull", image])).check()

    async def remove(self, name: str) -> None:
        """Force-remove a container. Removing an absent container is not an error."""
        result = await self.runner(self.docker, ["rm", "-f", name])
        if not result.ok and "No such container" not in result.stderr:
            result.check()

    async def remove_container(self, name: str) -> None:
        await self.remove(name)

    async def uninstall_release(self, name: str, namespace: str) -> None:
        (await self.runner(self.helm, ["uninstall", name, "-n", namespace])).check()

    async def is_running(self, name: str) -> bool:
        result = await self.runner(self.docker, ["inspect", "-f", "{{.State.Running}}", name])
        return result.ok and result.stdout.strip() == "true"

    async def names_with_prefix(self, prefix: str) -> list[str]:
        """Names of all containers, running or not, whose name starts with `prefix`."""
        result = (
            await self.runner(
                self.docker, ["ps", "-a", "--format", "{{.Names}}", "--filter", f"name=^{prefix}"]
            )
        ).check()
        return [line for line in result.stdout.splitlines() if line.startswith(prefix)]


async def wait_for_container(
    docker: DockerRuntime,
    name: str,
    config: HarnessConfig,
) -> None:
    """
    Wait until a container reports running.

    Raises:
        TransientError: If it is not running within the configured budget.
    """
    await wait_for(
        lambda: docker.is_running(name),
        max_attempts=config.container_start_attempts,
        interval=config.container_start_interval,
        description=f"container {name}",
    )


def relayer_command(spec: RelayerSpec) -> list[str]:
    """Relayer CLI arguments, including the signing-key flag."""
    command = ["run", "--", "--config", RELAYER_CONFIG_PATH]
    match spec.signing_key.kind:
        case KeyKind.ETHEREUM:
            command += ["--ethereum.private-key", spec.signing_key.value]
        case KeyKind.SUBSTRATE:
            command += ["--substrate.private-key", spec.signing_key.value]
    return command


async def launch_relayer(
    run: NetworkRun,
    docker: DockerRuntime,
    spec: RelayerSpec,
    config: HarnessConfig,
    *,
    image: str | None = None,
) -> ContainerHandle:
    """
    Start a relayer container from its materialized config.

    The config file is mounted read-only. The datastore gets a host directory
    next to it so relayer state survives container restarts within a run.

    Raises:
        SubprocessError: If docker cannot start the container.
        TransientError: If the container does not reach the running state.
    """
    datastore = spec.output_path.parent / "datastore" / spec.kind.value
    datastore.mkdir(parents=True, exist_ok=True)

    image = image or config.relayer_image
    if not image.endswith(":local"):
        await docker.pull(image)

    await docker.remove(spec.name)
    await docker.run_detached(
        image,
        name=spec.name,
        network=run.network_name,
        volumes=[
            f"{spec.output_path.resolve()}:{RELAYER_CONFIG_PATH}:ro",
            f"{datastore.resolve()}:{config.datastore_location}",
        ],
        command=relayer_command(spec),
    )
    handle = run.add_container(spec.name)
    run.register_relayer_kind(spec.kind)

    try:
        await wait_for_container(docker, spec.name, config)
    except TransientError:
        logger.error("Relayer %s did not start", spec.name)
        raise
    logger.info("Started %s relayer %s", spec.kind.value, spec.name)
    return handle


async def cleanup_relayers(docker: DockerRuntime, network_id: str) -> list[str]:
    """
    Remove leftover relayer containers of a network.

    Returns:
        Names of the removed containers.
    """
    prefix = f"snowbridge-{network_id}-"
    names = await docker.names_with_prefix(prefix)
    for name in names:
        await docker.remove(name)
        logger.debug("Removed relayer container %s", name)
    if names:
        logger.info("Removed %d relayer container(s) with prefix %s", len(names), prefix)
    return names


@dataclass(slots=True)
class SolochainNodeOptions:
    """How to start a solochain node container."""

    image: str
    """Node image."""

    args: Sequence[str] = field(default_factory=lambda: ["--dev", "--rpc-external"])
    """Node CLI arguments."""

    internal_ws_port: int = SOLOCHAIN_WS_PORT
    """WebSocket port inside the container."""

    primary: bool = True
    """Whether this node is the run's externally reachable endpoint."""


async def launch_solochain_node(
    run: NetworkRun,
    docker: DockerRuntime,
    name: str,
    options: SolochainNodeOptions,
    config: HarnessConfig,
    ports: PortAllocator,
) -> ContainerHandle:
    """
    Start a solochain node container and publish its WebSocket port.

    The host port comes from `ports` and is registered under the
    configured label, so `run.public_ws_port()` can find it.

    Raises:
        SubprocessError: If docker cannot start the container.
        TransientError: If the container does not reach the running state.
    """
    host_port = ports.allocate()
    label = config.ws_port_label

    await docker.run_detached(
        options.image,
        name=name,
        network=run.network_name,
        ports={host_port: options.internal_ws_port},
        command=list(options.args),
    )
    handle = run.add_container(
        name,
        public_ports={label: host_port},
        internal_ports={label: options.internal_ws_port},
    )
    if options.primary:
        run.set_primary_ws_container(name)

    await wait_for_container(docker, name, config)
    logger.info("Started solochain node %s on ws://127.0.0.1:%d", name, host_port)
    return handle
