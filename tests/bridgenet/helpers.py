"""Test doubles shared across harness tests."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from bridgenet.process import CommandResult


@dataclass
class RecordingRunner:
    """
    Command runner double.

    Records every invocation and answers from canned replies keyed by the
    first argument (e.g. "run", "rm", "inspect"). Unscripted commands succeed
    with empty output.
    """

    replies: dict[str, list[CommandResult]] = field(default_factory=dict)
    calls: list[tuple[str, tuple[str, ...]]] = field(default_factory=list)

    async def __call__(
        self,
        command: str,
        args: Sequence[str],
        *,
        timeout: float | None = None,
    ) -> CommandResult:
        args = tuple(args)
        self.calls.append((command, args))
        queue = self.replies.get(args[0] if args else "", [])
        if queue:
            reply = queue.pop(0) if len(queue) > 1 else queue[0]
            return CommandResult(command, args, reply.exit_code, reply.stdout, reply.stderr)
        return CommandResult(command, args, 0, "", "")

    def reply(
        self, subcommand: str, exit_code: int = 0, stdout: str = "", stderr: str = ""
    ) -> None:
        """Queue a reply for a subcommand. The last queued reply repeats."""
        self.replies.setdefault(subcommand, []).append(
            CommandResult("", (), exit_code, stdout, stderr)
        )

    def subcommands(self) -> list[str]:
        """First argument of every recorded call, in order."""
        return [args[0] for _, args in self.calls]


CHECKPOINT = {
    "header": {
        "slot": 64,
        "proposer_index": 3,
        "parent_root": "0x" + "01" * 32,
        "state_root": "0x" + "02" * 32,
        "body_root": "0x" + "03" * 32,
    },
    "current_sync_committee": {
        "pubkeys": ["0x" + "aa" * 48, "0x" + "bb" * 48],
        "aggregate_pubkey": "0x" + "cc" * 48,
    },
    "current_sync_committee_branch": ["0x" + "04" * 32] * 5,
    "validators_root": "0x" + "05" * 32,
    "block_roots_root": "0x" + "06" * 32,
    "block_roots_branch": ["0x" + "07" * 32] * 5,
}
"""A beacon checkpoint as exported by the relayer."""
