"""
Substrate solochain adapter.

`substrateinterface` is a blocking client. Every call into it runs in a
worker thread, serialized by one lock per connection because the underlying
websocket is not safe for concurrent use.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, TypeVar

from substrateinterface import Keypair, KeypairType, SubstrateInterface

from ..errors import ChainConnectionError
from ..events import ChainEvent, OnError, OnEvent, Unsubscribe
from ..types import ChainSource

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_POLL_INTERVAL = 2.0
"""Seconds between finalized-head polls. Roughly a third of a 6s block time."""


def split_path(path: str) -> tuple[str, str]:
    """
    Split a pallet event path into pallet and event names.

    Raises:
        ValueError: If the path is not "<Pallet>.<Event>".
    """
    pallet, sep, event = path.partition(".")
    if not sep or not pallet or not event or "." in event:
        raise ValueError(f"Invalid event path {path!r}, expected '<Pallet>.<Event>'")
    return pallet, event


def decode_event(record: Any, block: str | int | None = None) -> ChainEvent:
    """Convert a `substrateinterface` event record into a `ChainEvent`."""
    value = record.value if hasattr(record, "value") else record
    attributes = value.get("attributes")
    if not isinstance(attributes, Mapping):
        attributes = {"value": attributes}
    return ChainEvent(
        source=ChainSource.SUBSTRATE,
        path=f"{value['module_id']}.{value['event_id']}",
        data=dict(attributes),
        block=block,
    )


@dataclass(frozen=True, slots=True)
class ExtrinsicResult:
    """Inclusion outcome of a submitted extrinsic."""

    success: bool
    """True if the extrinsic and any dispatched sudo call succeeded."""

    block_hash: str | None
    """Hash of the block the extrinsic was finalized in."""

    extrinsic_hash: str | None
    """Hash of the extrinsic itself."""

    error: Any = None
    """Chain-reported dispatch error when `success` is False."""

    events: list[ChainEvent] = field(default_factory=list)
    """Events the extrinsic triggered, in emission order."""


def _sudo_error(events: Iterable[ChainEvent]) -> Any:
    """
    Dispatch error of the inner call of a sudo extrinsic, if it failed.

    A sudo extrinsic is itself successful even when the call it wraps fails.
    The real outcome is reported by the `Sudo.Sudid` event.
    """
    for event in events:
        if event.path != "Sudo.Sudid":
            continue
        result = event.data.get("sudo_result")
        if isinstance(result, Mapping) and "Err" in result:
            return result["Err"]
    return None


class SubstrateChain:
    """
    Async facade over one `SubstrateInterface` connection.

    Acts as an `EventSource` for pallet events and submits privileged calls.
    """

    def __init__(
        self,
        substrate: SubstrateInterface,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self.substrate = substrate
        self.poll_interval = poll_interval
        self._lock = asyncio.Lock()

    @classmethod
    def connect(cls, url: str, **kwargs: Any) -> SubstrateChain:
        """
        Open a websocket connection to a node (blocking).

        Raises:
            ChainConnectionError: If the node cannot be reached.
        """
        try:
            substrate = SubstrateInterface(url=url)
        except Exception as exc:
            raise ChainConnectionError(url, exc) from exc
        return cls(substrate, **kwargs)

    def close(self) -> None:
        self.substrate.close()

    async def _call(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        async with self._lock:
            return await asyncio.to_thread(fn, *args, **kwargs)

    # Queries

    async def finalized_block_number(self) -> int:
        head = await self._call(self.substrate.get_chain_finalised_head)
        return await self._call(self.substrate.get_block_number, head)

    async def events_at(self, block_number: int) -> list[ChainEvent]:
        """All events emitted in a block."""
        block_hash = await self._call(self.substrate.get_block_hash, block_number)
        records = await self._call(self.substrate.get_events, block_hash)
        return [decode_event(record, block_hash) for record in records]

    async def query_storage(self, pallet: str, item: str, params: list[Any] | None = None) -> Any:
        """Read a storage value, decoded to plain Python values."""
        result = await self._call(self.substrate.query, pallet, item, params or [])
        return result.value

    # Events

    async def subscribe(self, path: str, on_event: OnEvent, on_error: OnError) -> Unsubscribe:
        """
        Subscribe to a pallet event by "<Pallet>.<Event>".

        Only events in blocks finalized after the call are delivered.

        Raises:
            ValueError: If the path is malformed.
        """
        split_path(path)
        start = await self.finalized_block_number()
        logger.debug("Watching %s from finalized block %d", path, start)

        async def pump() -> None:
            seen = start
            while True:
                await asyncio.sleep(self.poll_interval)
                try:
                    head = await self.finalized_block_number()
                    for number in range(seen + 1, head + 1):
                        for event in await self.events_at(number):
                            if event.path == path:
                                on_event(event)
                        seen = number
                except Exception as exc:
                    on_error(exc)
                    return

        task = asyncio.create_task(pump(), name=f"pallet-events:{path}")

        async def unsubscribe() -> None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        return unsubscribe

    # Extrinsics

    async def submit_sudo(
        self,
        pallet: str,
        function: str,
        params: Mapping[str, Any],
        private_key: str,
    ) -> ExtrinsicResult:
        """
        Submit `pallet.function(params)` wrapped in `Sudo.sudo` and wait for finalization.

        Args:
            pallet: Pallet of the privileged call.
            function: Call name.
            params: Call arguments.
            private_key: Hex ECDSA key of the sudo account (Ethereum-style account).
        """
        keypair = Keypair.create_from_private_key(private_key, crypto_type=KeypairType.ECDSA)

        def compose_and_submit() -> Any:
            inner = self.substrate.compose_call(
                call_module=pallet, call_function=function, call_params=dict(params)
            )
            call = self.substrate.compose_call(
                call_module="Sudo", call_function="sudo", call_params={"call": inner}
            )
            extrinsic = self.substrate.create_signed_extrinsic(call=call, keypair=keypair)
            return self.substrate.submit_extrinsic(extrinsic, wait_for_finalization=True)

        logger.debug("Submitting Sudo.sudo(%s.%s) from %s", pallet, function, keypair.ss58_address)
        async with self._lock:
            receipt = await asyncio.to_thread(compose_and_submit)
            return await asyncio.to_thread(self._result_from_receipt, receipt)

    @staticmethod
    def _result_from_receipt(receipt: Any) -> ExtrinsicResult:
        events = [decode_event(record, receipt.block_hash) for record in receipt.triggered_events]
        if not receipt.is_success:
            error = receipt.error_message
        else:
            error = _sudo_error(events)
        return ExtrinsicResult(
            success=error is None and receipt.is_success,
            block_hash=receipt.block_hash,
            extrinsic_hash=receipt.extrinsic_hash,
            error=error,
            events=events,
        )
