"""Tests for the Ethereum event source."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from bridgenet.chains.ethereum import EthereumEventSource, split_path
from bridgenet.events import wait_for_event
from bridgenet.types import ChainSource


class TestSplitPath:
    """Tests for "<address>:<EventName>" paths."""

    def test_address_is_checksummed(self) -> None:
        """The address part is normalized to its checksum form."""
        address, event = split_path(
            "0x5fbdb2315678afecb367f032d93f642f64180aa3:OutboundMessageAccepted"
        )

        assert address == "0x5FbDB2315678afecb367f032d93F642f64180aa3"
        assert event == "OutboundMessageAccepted"

    @pytest.mark.parametrize(
        "path",
        [
            "Transfer",
            "0x5fbdb2315678afecb367f032d93f642f64180aa3:",
            ":Transfer",
            "not-an-address:Transfer",
        ],
    )
    def test_invalid_paths(self, path: str) -> None:
        """Malformed paths are rejected before any RPC call."""
        with pytest.raises(ValueError):
            split_path(path)


ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"


def fake_web3(batches: list[Any]) -> MagicMock:
    """
    A web3 double whose log filter returns `batches` in turn.

    A batch that is an exception is raised instead of returned.
    Once the batches run out every poll returns no entries.
    """
    pending = list(batches)

    async def get_new_entries() -> list[Any]:
        if not pending:
            return []
        batch = pending.pop(0)
        if isinstance(batch, BaseException):
            raise batch
        return batch

    event_filter = MagicMock(filter_id="0xf1")
    event_filter.get_new_entries = get_new_entries

    event = MagicMock()
    event.return_value.create_filter = AsyncMock(return_value=event_filter)

    w3 = MagicMock()
    contract = w3.eth.contract.return_value
    contract.events.__getitem__.return_value = event
    w3.eth.uninstall_filter = AsyncMock(return_value=True)
    return w3


class TestEthereumEventSource:
    """Tests for log-filter subscriptions."""

    @pytest.mark.asyncio
    async def test_delivers_matching_log(self) -> None:
        """Decoded log args reach the correlator and the filter is uninstalled."""
        w3 = fake_web3(
            [
                [{"args": {"nonce": 1}, "blockNumber": 10}],
                [{"args": {"nonce": 2}, "blockNumber": 11}],
            ]
        )
        source = EthereumEventSource(w3, {ADDRESS: []}, poll_interval=0.01)

        outcome = await wait_for_event(
            source,
            f"{ADDRESS}:OutboundMessageAccepted",
            filter=lambda event: event["nonce"] == 2,
            timeout=2.0,
        )

        assert outcome.matched
        assert outcome.data.source is ChainSource.ETHEREUM
        assert outcome.data.block == 11
        assert outcome.data.name == "OutboundMessageAccepted"
        w3.eth.uninstall_filter.assert_awaited_once_with("0xf1")

    @pytest.mark.asyncio
    async def test_poll_failure_ends_wait(self) -> None:
        """A failing filter poll resolves the wait as unmatched with the error."""
        failure = ConnectionError("node went away")
        source = EthereumEventSource(fake_web3([failure]), {ADDRESS: []}, poll_interval=0.01)

        outcome = await wait_for_event(source, f"{ADDRESS}:Transfer", timeout=2.0)

        assert not outcome.matched
        assert outcome.error is failure

    @pytest.mark.asyncio
    async def test_unregistered_contract(self) -> None:
        """Subscribing to a contract without an ABI fails up front."""
        source = EthereumEventSource(fake_web3([]), poll_interval=0.01)

        with pytest.raises(KeyError):
            await source.subscribe(f"{ADDRESS}:Transfer", lambda _: None, lambda _: None)

    @pytest.mark.asyncio
    async def test_read_contract(self) -> None:
        """View functions are called on the registered contract."""
        w3 = fake_web3([])
        function = w3.eth.contract.return_value.functions.__getitem__.return_value
        function.return_value.call = AsyncMock(return_value=42)
        source = EthereumEventSource(w3, poll_interval=0.01)
        source.register_contract(ADDRESS.lower(), [])

        assert await source.read_contract(ADDRESS, "latestBeefyBlock") == 42
        function.assert_called_once_with()
