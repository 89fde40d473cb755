"""
Ethereum execution-layer adapter.

Contract events are delivered through log filters polled on a fixed cadence.
Each subscription owns one filter and one pump task; closing the
subscription stops the task and uninstalls the filter on the node.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Mapping, Sequence
from typing import Any

from web3 import AsyncHTTPProvider, AsyncWeb3, Web3

from ..events import ChainEvent, OnError, OnEvent, Unsubscribe
from ..types import ChainSource

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 1.0
"""Seconds between filter polls. Anvil mines a block per second by default."""


def split_path(path: str) -> tuple[str, str]:
    """
    Split an Ethereum event path into its checksummed address and event name.

    Raises:
        ValueError: If the path is not "<address>:<EventName>".
    """
    address, sep, event_name = path.partition(":")
    if not sep or not address or not event_name:
        raise ValueError(f"Invalid Ethereum event path {path!r}, expected '<address>:<EventName>'")
    if not Web3.is_address(address):
        raise ValueError(f"Invalid contract address in event path {path!r}")
    return Web3.to_checksum_address(address), event_name


class EthereumEventSource:
    """
    Event source over an Ethereum JSON-RPC endpoint.

    The ABI of every watched contract must be registered, either up front
    or through `register_contract`, so that logs can be decoded.
    """

    def __init__(
        self,
        w3: AsyncWeb3,
        abis: Mapping[str, Sequence[Mapping[str, Any]]] | None = None,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self.w3 = w3
        self.poll_interval = poll_interval
        self._abis: dict[str, list[Mapping[str, Any]]] = {}
        for address, abi in (abis or {}).items():
            self.register_contract(address, abi)

    @classmethod
    def from_endpoint(cls, url: str, **kwargs: Any) -> EthereumEventSource:
        return cls(AsyncWeb3(AsyncHTTPProvider(url)), **kwargs)

    def register_contract(self, address: str, abi: Sequence[Mapping[str, Any]]) -> None:
        """Make a contract's events available for subscription."""
        self._abis[Web3.to_checksum_address(address)] = list(abi)

    async def subscribe(self, path: str, on_event: OnEvent, on_error: OnError) -> Unsubscribe:
        """
        Subscribe to a contract event by "<address>:<EventName>".

        Raises:
            ValueError: If the path is malformed or names an unknown event.
            KeyError: If no ABI was registered for the address.
        """
        address, event_name = split_path(path)
        contract = self.w3.eth.contract(address=address, abi=self._abis[address])
        try:
            event = contract.events[event_name]
        except Exception as exc:
            raise ValueError(f"Contract {address} has no event {event_name!r}") from exc

        event_filter = await event().create_filter(from_block="latest")
        logger.debug("Installed log filter %s for %s", event_filter.filter_id, path)

        async def pump() -> None:
            while True:
                await asyncio.sleep(self.poll_interval)
                try:
                    entries = await event_filter.get_new_entries()
                except Exception as exc:
                    on_error(exc)
                    return
                for entry in entries:
                    on_event(
                        ChainEvent(
                            source=ChainSource.ETHEREUM,
                            path=path,
                            data=dict(entry["args"]),
                            block=entry.get("blockNumber"),
                        )
                    )

        task = asyncio.create_task(pump(), name=f"log-filter:{path}")

        async def unsubscribe() -> None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            await self.w3.eth.uninstall_filter(event_filter.filter_id)

        return unsubscribe

    async def read_contract(
        self,
        address: str,
        function: str,
        *args: Any,
    ) -> Any:
        """Call a view function of a registered contract."""
        address = Web3.to_checksum_address(address)
        contract = self.w3.eth.contract(address=address, abi=self._abis[address])
        return await contract.functions[function](*args).call()
