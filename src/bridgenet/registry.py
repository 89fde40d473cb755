"""
Resource registry for a single test-network run.

A `NetworkRun` is the in-memory source of truth for everything one run spawns:
containers and their ports, directly spawned processes, log file descriptors,
active relayer kinds and the privileged endpoints of both chains.

Every component receives the same instance by reference. It is never cloned.

Failure semantics:

- Lookups by name fail loudly on a miss (`NotFoundError`).
- Reading a write-once value before it was written fails (`UnsetEndpointError`).
- Teardown never raises. Each release failure is logged and the loop continues.
"""

from __future__ import annotations

import logging
import os
import threading
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Protocol

from .config import DeploymentMode
from .errors import NotFoundError, UnsetEndpointError
from .types import RelayerKind

logger = logging.getLogger(__name__)


class ProcessHandle(Protocol):
    """Minimal view of an OS process spawned by the harness."""

    @property
    def pid(self) -> int: ...

    @property
    def returncode(self) -> int | None: ...

    def terminate(self) -> None: ...


class ContainerTeardown(Protocol):
    """Container runtime operations that teardown needs."""

    async def remove_container(self, name: str) -> None: ...

    async def uninstall_release(self, name: str, namespace: str) -> None: ...


@dataclass(frozen=True, slots=True)
class ContainerHandle:
    """A container registered with a run."""

    name: str
    """Container name, unique within the run."""

    public_ports: Mapping[str, int]
    """Host-side ports by label (e.g. "ws" -> 30444)."""

    internal_ports: Mapping[str, int]
    """Container-side ports by label (e.g. "ws" -> 9944)."""

    def public_port(self, label: str) -> int | None:
        """Host port for a label, or None if not published or invalid."""
        port = self.public_ports.get(label)
        if port is None or port <= 0:
            return None
        return port


@dataclass(slots=True)
class NetworkRun:
    """
    State and resources of one launched test network.

    Mutating methods take an internal lock, so a run may be shared by
    concurrently launching tasks or threads.
    """

    mode: DeploymentMode = DeploymentMode.LOCAL
    """Deployment target. Decides what teardown does with containers."""

    teardown: ContainerTeardown | None = field(default=None, repr=False)
    """Runtime used to remove containers on teardown (ephemeral/Kubernetes modes)."""

    run_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    """Unique identifier used to namespace container and network names."""

    _containers: dict[str, ContainerHandle] = field(default_factory=dict, repr=False)
    """Registered containers in registration order."""

    _processes: list[ProcessHandle] = field(default_factory=list, repr=False)
    """Processes spawned directly (not in containers)."""

    _file_descriptors: list[int] = field(default_factory=list, repr=False)
    """Open log file descriptors."""

    _relayers: list[RelayerKind] = field(default_factory=list, repr=False)
    """Active relayer kinds in registration order, without duplicates."""

    _el_endpoint: str | None = field(default=None, repr=False)
    _cl_endpoint: str | None = field(default=None, repr=False)
    _network_name: str | None = field(default=None, repr=False)
    _network_id: str | None = field(default=None, repr=False)
    _kube_namespace: str | None = field(default=None, repr=False)
    _primary_ws_container: str | None = field(default=None, repr=False)

    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False)
    """Guards all mutations."""

    def scoped_name(self, name: str) -> str:
        """Prefix a resource name with a short run identifier."""
        return f"{name}-{self.run_id[:8]}"

    # Containers

    def add_container(
        self,
        name: str,
        public_ports: Mapping[str, int] | None = None,
        internal_ports: Mapping[str, int] | None = None,
    ) -> ContainerHandle:
        """
        Register a container. Does not talk to the container runtime.

        Registering the same name again with identical ports is a no-op.

        Raises:
            ValueError: If the name is already registered with different ports.
        """
        handle = ContainerHandle(
            name=name,
            public_ports=MappingProxyType(dict(public_ports or {})),
            internal_ports=MappingProxyType(dict(internal_ports or {})),
        )
        with self._lock:
            existing = self._containers.get(name)
            if existing is not None:
                if dict(existing.public_ports) != dict(handle.public_ports) or dict(
                    existing.internal_ports
                ) != dict(handle.internal_ports):
                    raise ValueError(f"Container {name!r} is already registered with other ports")
                return existing
            self._containers[name] = handle
        logger.debug("Registered container %s (public ports: %s)", name, dict(handle.public_ports))
        return handle

    @property
    def containers(self) -> list[ContainerHandle]:
        """Registered containers in registration order."""
        with self._lock:
            return list(self._containers.values())

    def get_container(self, name: str) -> ContainerHandle:
        """
        Look up a registered container.

        Raises:
            NotFoundError: If no container with that name is registered.
        """
        with self._lock:
            container = self._containers.get(name)
        if container is None:
            raise NotFoundError("container", name)
        return container

    def get_container_port(self, name: str, label: str = "ws") -> int:
        """
        Host port a container publishes under `label`.

        Raises:
            NotFoundError: If the container is unknown or publishes no valid port for the label.
        """
        port = self.get_container(name).public_port(label)
        if port is None:
            raise NotFoundError("port", f"{name}:{label}")
        return port

    def set_primary_ws_container(self, name: str) -> None:
        """
        Mark the container that serves as the externally reachable Substrate node.

        Raises:
            NotFoundError: If the container is not registered.
        """
        self.get_container(name)
        with self._lock:
            self._primary_ws_container = name

    def public_ws_port(self, label: str = "ws") -> int:
        """
        Host WebSocket port of the externally reachable Substrate node.

        Uses the explicitly assigned primary container when there is one.
        Otherwise takes the first registered container with a valid port under `label`.

        Raises:
            NotFoundError: If no container publishes a valid port under `label`.
        """
        with self._lock:
            primary = self._primary_ws_container
            containers = list(self._containers.values())

        if primary is not None:
            return self.get_container_port(primary, label)

        for container in containers:
            port = container.public_port(label)
            if port is not None:
                return port
        raise NotFoundError("public port", label)

    # Processes and file descriptors

    def add_process(self, process: ProcessHandle) -> None:
        """Track a directly spawned process."""
        with self._lock:
            self._processes.append(process)

    def add_file_descriptor(self, fd: int) -> None:
        """Track an open file descriptor (typically a log sink). Tracking it again is a no-op."""
        with self._lock:
            if fd not in self._file_descriptors:
                self._file_descriptors.append(fd)

    @property
    def processes(self) -> list[ProcessHandle]:
        with self._lock:
            return list(self._processes)

    @property
    def file_descriptors(self) -> list[int]:
        with self._lock:
            return list(self._file_descriptors)

    # Relayers

    def register_relayer_kind(self, kind: RelayerKind | str) -> None:
        """Mark a relayer kind active. Registering an active kind is a no-op."""
        kind = RelayerKind(kind)
        with self._lock:
            if kind not in self._relayers:
                self._relayers.append(kind)

    @property
    def relayers(self) -> list[RelayerKind]:
        """Active relayer kinds in registration order."""
        with self._lock:
            return list(self._relayers)

    def require_relayer(self, kind: RelayerKind | str) -> RelayerKind:
        """
        Return `kind` if it is active.

        Raises:
            NotFoundError: If that relayer kind was never registered.
        """
        kind = RelayerKind(kind)
        with self._lock:
            if kind in self._relayers:
                return kind
        raise NotFoundError("relayer", kind.value)

    # Write-once values

    def _write_once(self, attr: str, label: str, value: str) -> None:
        value = value.strip()
        if not value:
            raise ValueError(f"{label} cannot be empty")
        with self._lock:
            current = getattr(self, attr)
            if current is not None and current != value:
                raise ValueError(f"{label} is already set to {current!r}")
            setattr(self, attr, value)

    def _read(self, attr: str, label: str) -> str:
        with self._lock:
            value = getattr(self, attr)
        if value is None:
            raise UnsetEndpointError(label)
        return value

    @property
    def el_endpoint(self) -> str:
        """RPC URL of the Ethereum execution-layer client."""
        return self._read("_el_endpoint", "Execution-layer RPC endpoint")

    @el_endpoint.setter
    def el_endpoint(self, url: str) -> None:
        self._write_once("_el_endpoint", "Execution-layer RPC endpoint", url)

    @property
    def cl_endpoint(self) -> str:
        """HTTP endpoint of the Ethereum consensus-layer (beacon) client."""
        return self._read("_cl_endpoint", "Consensus-layer HTTP endpoint")

    @cl_endpoint.setter
    def cl_endpoint(self, url: str) -> None:
        self._write_once("_cl_endpoint", "Consensus-layer HTTP endpoint", url)

    @property
    def network_name(self) -> str:
        """Docker network the run's containers are attached to."""
        return self._read("_network_name", "Docker network name")

    @network_name.setter
    def network_name(self, name: str) -> None:
        self._write_once("_network_name", "Docker network name", name)

    @property
    def network_id(self) -> str:
        return self._read("_network_id", "Network id")

    @network_id.setter
    def network_id(self, network_id: str) -> None:
        self._write_once("_network_id", "Network id", network_id)

    @property
    def kube_namespace(self) -> str:
        """Kubernetes namespace of the deployment (Kubernetes mode only)."""
        return self._read("_kube_namespace", "Kubernetes namespace")

    @kube_namespace.setter
    def kube_namespace(self, namespace: str) -> None:
        self._write_once("_kube_namespace", "Kubernetes namespace", namespace)

    # Teardown

    async def cleanup(self) -> None:
        """
        Release the run's resources on a best-effort basis.

        Closes every tracked file descriptor, then handles processes and containers
        according to the deployment mode. Never raises; calling it twice is safe.
        """
        self._close_file_descriptors()
        self._release_processes()
        await self._release_containers()

    def _close_file_descriptors(self) -> None:
        for fd in dict.fromkeys(self.file_descriptors):
            try:
                os.close(fd)
            except OSError as exc:
                logger.error("Error closing file descriptor %d: %s", fd, exc)
                continue
            with self._lock:
                self._file_descriptors = [x for x in self._file_descriptors if x != fd]
            logger.debug("Closed file descriptor %d", fd)

    def _release_processes(self) -> None:
        for process in self.processes:
            if process.returncode is not None:
                with self._lock:
                    self._processes.remove(process)
                continue
            if self.mode is not DeploymentMode.EPHEMERAL:
                logger.debug("Process is still running: %d", process.pid)
                continue
            try:
                process.terminate()
            except Exception as exc:
                logger.error("Error terminating process %d: %s", process.pid, exc)
                continue
            with self._lock:
                self._processes.remove(process)
            logger.debug("Terminated process %d", process.pid)

    async def _release_containers(self) -> None:
        if self.mode is DeploymentMode.LOCAL or self.teardown is None:
            for container in self.containers:
                logger.debug("Container is still running: %s", container.name)
            return

        for container in self.containers:
            try:
                if self.mode is DeploymentMode.KUBERNETES:
                    await self.teardown.uninstall_release(container.name, self.kube_namespace)
                else:
                    await self.teardown.remove_container(container.name)
            except Exception as exc:
                logger.error("Error removing container %s: %s", container.name, exc)
                continue
            with self._lock:
                self._containers.pop(container.name, None)
                if self._primary_ws_container == container.name:
                    self._primary_ws_container = None
            logger.debug("Removed container %s", container.name)
