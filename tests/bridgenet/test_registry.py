"""Tests for the per-run resource registry."""

from __future__ import annotations

import os
from dataclasses import dataclass
from unittest.mock import AsyncMock

import pytest
from hypothesis import given
from hypothesis import strategies as st

from bridgenet.config import DeploymentMode
from bridgenet.errors import NotFoundError, UnsetEndpointError
from bridgenet.registry import NetworkRun
from bridgenet.types import RelayerKind


@dataclass
class FakeProcess:
    pid: int
    returncode: int | None = None
    terminated: bool = False
    fail: bool = False

    def terminate(self) -> None:
        if self.fail:
            raise ProcessLookupError(self.pid)
        self.terminated = True
        self.returncode = -15


def open_fd() -> int:
    """Open a throwaway file descriptor."""
    read_fd, write_fd = os.pipe()
    os.close(write_fd)
    return read_fd


class TestContainers:
    """Tests for container registration and port lookup."""

    def test_registered_port_is_returned(self) -> None:
        """A port registered with a container is returned by name and label."""
        run = NetworkRun()
        run.add_container("dh-alice", {"ws": 30444}, {"ws": 9944})

        assert run.get_container_port("dh-alice", "ws") == 30444
        assert run.get_container("dh-alice").internal_ports["ws"] == 9944

    def test_unknown_container_raises(self) -> None:
        """Looking up a missing container fails loudly."""
        run = NetworkRun()

        with pytest.raises(NotFoundError) as exc_info:
            run.get_container_port("missing", "ws")

        assert exc_info.value.kind == "container"
        assert isinstance(exc_info.value, LookupError)

    def test_unknown_label_raises(self) -> None:
        """A container without the requested port label fails loudly."""
        run = NetworkRun()
        run.add_container("el-1", {"rpc": 8545})

        with pytest.raises(NotFoundError):
            run.get_container_port("el-1", "ws")

    def test_same_registration_twice_is_a_noop(self) -> None:
        """Re-registering identical ports keeps one entry."""
        run = NetworkRun()
        first = run.add_container("dh-alice", {"ws": 30444})
        second = run.add_container("dh-alice", {"ws": 30444})

        assert first is second
        assert len(run.containers) == 1

    def test_conflicting_registration_raises(self) -> None:
        """Re-registering a name with different ports is a programmer error."""
        run = NetworkRun()
        run.add_container("dh-alice", {"ws": 30444})

        with pytest.raises(ValueError):
            run.add_container("dh-alice", {"ws": 30445})

    def test_registered_ports_are_read_only(self) -> None:
        """Callers cannot mutate a registered container's ports."""
        run = NetworkRun()
        handle = run.add_container("dh-alice", {"ws": 30444})

        with pytest.raises(TypeError):
            handle.public_ports["ws"] = 1  # type: ignore[index]


class TestPublicWsPort:
    """Tests for locating the externally reachable node."""

    def test_scan_returns_first_valid_ws_port(self) -> None:
        """Without a primary container, the first valid ws port wins."""
        run = NetworkRun()
        run.add_container("el-1", {"rpc": 8545})
        run.add_container("dh-bob", {"ws": 0})
        run.add_container("dh-alice", {"ws": 30444})
        run.add_container("dh-charlie", {"ws": 30445})

        assert run.public_ws_port() == 30444

    def test_primary_container_takes_precedence(self) -> None:
        """An explicitly assigned primary container overrides the scan."""
        run = NetworkRun()
        run.add_container("dh-alice", {"ws": 30444})
        run.add_container("dh-bob", {"ws": 30445})
        run.set_primary_ws_container("dh-bob")

        assert run.public_ws_port() == 30445

    def test_no_ws_port_raises(self) -> None:
        """A run without any ws port fails loudly."""
        run = NetworkRun()
        run.add_container("el-1", {"rpc": 8545})

        with pytest.raises(NotFoundError):
            run.public_ws_port()

    def test_primary_must_be_registered(self) -> None:
        """Only registered containers can become primary."""
        with pytest.raises(NotFoundError):
            NetworkRun().set_primary_ws_container("ghost")


class TestRelayers:
    """Tests for active relayer kinds."""

    def test_registering_twice_keeps_one_entry(self) -> None:
        """Relayer kind registration is idempotent."""
        run = NetworkRun()
        run.register_relayer_kind("beefy")
        run.register_relayer_kind(RelayerKind.BEEFY)

        assert run.relayers == [RelayerKind.BEEFY]

    def test_registration_order_is_kept(self) -> None:
        """Active kinds are listed in registration order."""
        run = NetworkRun()
        for kind in ("solochain", "beacon", "beefy"):
            run.register_relayer_kind(kind)

        assert [kind.value for kind in run.relayers] == ["solochain", "beacon", "beefy"]

    def test_require_unknown_relayer_raises(self) -> None:
        """Requiring an inactive relayer kind fails loudly."""
        run = NetworkRun()
        run.register_relayer_kind("beacon")

        assert run.require_relayer("beacon") is RelayerKind.BEACON
        with pytest.raises(NotFoundError):
            run.require_relayer("execution")

    def test_unknown_kind_is_rejected(self) -> None:
        """Only known relayer kinds can be registered."""
        with pytest.raises(ValueError):
            NetworkRun().register_relayer_kind("parachain")

    @given(st.lists(st.sampled_from([kind.value for kind in RelayerKind]), max_size=20))
    def test_active_relayers_never_contain_duplicates(self, kinds: list[str]) -> None:
        """Any registration sequence yields each kind at most once, first-seen order."""
        run = NetworkRun()
        for kind in kinds:
            run.register_relayer_kind(kind)

        assert [kind.value for kind in run.relayers] == list(dict.fromkeys(kinds))


class TestWriteOnceValues:
    """Tests for the execution and consensus endpoints."""

    def test_unset_endpoint_raises(self) -> None:
        """Reading an endpoint before it is set fails loudly."""
        run = NetworkRun()

        with pytest.raises(UnsetEndpointError):
            _ = run.el_endpoint
        with pytest.raises(UnsetEndpointError):
            _ = run.cl_endpoint

    def test_set_then_read(self) -> None:
        """A written endpoint is read back unchanged."""
        run = NetworkRun()
        run.el_endpoint = "http://127.0.0.1:8545"
        run.cl_endpoint = "http://127.0.0.1:4000"

        assert run.el_endpoint == "http://127.0.0.1:8545"
        assert run.cl_endpoint == "http://127.0.0.1:4000"

    def test_same_value_twice_is_accepted(self) -> None:
        """Writing the same value again is a no-op."""
        run = NetworkRun()
        run.network_name = "datahaven-net"
        run.network_name = "datahaven-net"

        assert run.network_name == "datahaven-net"

    def test_different_value_is_rejected(self) -> None:
        """A write-once value cannot be replaced."""
        run = NetworkRun()
        run.el_endpoint = "http://127.0.0.1:8545"

        with pytest.raises(ValueError):
            run.el_endpoint = "http://127.0.0.1:9545"

    def test_empty_value_is_rejected(self) -> None:
        """Blank endpoints are rejected."""
        with pytest.raises(ValueError):
            NetworkRun().cl_endpoint = "  "


class TestCleanup:
    """Tests for best-effort teardown."""

    @pytest.mark.asyncio
    async def test_closes_file_descriptors(self) -> None:
        """Every tracked descriptor is closed and forgotten."""
        run = NetworkRun()
        fds = [open_fd(), open_fd()]
        for fd in fds:
            run.add_file_descriptor(fd)

        await run.cleanup()

        assert run.file_descriptors == []
        for fd in fds:
            with pytest.raises(OSError):
                os.fstat(fd)

    @pytest.mark.asyncio
    async def test_cleanup_twice_is_safe(self) -> None:
        """A second cleanup neither raises nor touches released descriptors."""
        run = NetworkRun()
        run.add_file_descriptor(open_fd())

        await run.cleanup()
        await run.cleanup()

        assert run.file_descriptors == []

    @pytest.mark.asyncio
    async def test_descriptor_tracked_twice_is_closed_once(self) -> None:
        """A reused descriptor number is left alone by a later cleanup."""
        run = NetworkRun()
        fd = open_fd()
        run.add_file_descriptor(fd)
        run.add_file_descriptor(fd)

        await run.cleanup()
        assert run.file_descriptors == []

        reused = open_fd()
        try:
            await run.cleanup()
            os.fstat(reused)
        finally:
            os.close(reused)

    @pytest.mark.asyncio
    async def test_close_failure_does_not_stop_the_loop(self) -> None:
        """A descriptor that cannot be closed is kept; the rest are released."""
        run = NetworkRun()
        good_fd = open_fd()
        bad_fd = open_fd()
        os.close(bad_fd)
        run.add_file_descriptor(bad_fd)
        run.add_file_descriptor(good_fd)

        await run.cleanup()

        assert run.file_descriptors == [bad_fd]

    @pytest.mark.asyncio
    async def test_local_mode_leaves_containers_running(self) -> None:
        """Local containers stay up for inspection."""
        teardown = AsyncMock()
        run = NetworkRun(mode=DeploymentMode.LOCAL, teardown=teardown)
        run.add_container("dh-alice", {"ws": 30444})

        await run.cleanup()

        teardown.remove_container.assert_not_awaited()
        assert len(run.containers) == 1

    @pytest.mark.asyncio
    async def test_ephemeral_mode_removes_containers(self) -> None:
        """Throwaway containers are removed and forgotten."""
        teardown = AsyncMock()
        run = NetworkRun(mode=DeploymentMode.EPHEMERAL, teardown=teardown)
        run.add_container("dh-alice", {"ws": 30444})
        run.add_container("dh-bob", {"ws": 30445})

        await run.cleanup()

        assert [call.args[0] for call in teardown.remove_container.await_args_list] == [
            "dh-alice",
            "dh-bob",
        ]
        assert run.containers == []

    @pytest.mark.asyncio
    async def test_kubernetes_mode_uninstalls_releases(self) -> None:
        """Kubernetes containers are uninstalled from the run's namespace."""
        teardown = AsyncMock()
        run = NetworkRun(mode=DeploymentMode.KUBERNETES, teardown=teardown)
        run.kube_namespace = "kt-datahaven"
        run.add_container("dh-validator")

        await run.cleanup()

        teardown.uninstall_release.assert_awaited_once_with("dh-validator", "kt-datahaven")

    @pytest.mark.asyncio
    async def test_removal_failure_is_logged_not_raised(self) -> None:
        """One failing removal does not stop the others."""
        teardown = AsyncMock()
        teardown.remove_container.side_effect = [RuntimeError("daemon gone"), None]
        run = NetworkRun(mode=DeploymentMode.EPHEMERAL, teardown=teardown)
        run.add_container("dh-alice")
        run.add_container("dh-bob")

        await run.cleanup()

        assert [c.name for c in run.containers] == ["dh-alice"]

    @pytest.mark.asyncio
    async def test_processes_terminated_in_ephemeral_mode(self) -> None:
        """Running processes are terminated; exited ones are just forgotten."""
        running = FakeProcess(pid=101)
        exited = FakeProcess(pid=102, returncode=0)
        stuck = FakeProcess(pid=103, fail=True)
        run = NetworkRun(mode=DeploymentMode.EPHEMERAL)
        for process in (running, exited, stuck):
            run.add_process(process)

        await run.cleanup()

        assert running.terminated
        assert run.processes == [stuck]

    @pytest.mark.asyncio
    async def test_processes_left_running_in_local_mode(self) -> None:
        """Local mode does not terminate processes."""
        process = FakeProcess(pid=201)
        run = NetworkRun(mode=DeploymentMode.LOCAL)
        run.add_process(process)

        await run.cleanup()

        assert not process.terminated
        assert run.processes == [process]
