"""
Bridge test-network harness CLI.

Usage::

    python -m bridgenet materialize --kind beefy --template beefy-relay.json \\
        --output /tmp/bridgenet/beefy-relay.json --solochain-endpoint ws://dh:9944 \\
        --ethereum-endpoint ws://el:8546 --deployments contracts/deployments/anvil.json
    python -m bridgenet bootstrap --beacon-endpoint http://127.0.0.1:4000 \\
        --solochain-endpoint ws://127.0.0.1:9944 --beacon-config /tmp/bridgenet/beacon-relay.json

Commands:
    materialize   Write a relay config from a template and live network values
    bootstrap     Initialize the solochain beacon light client from Ethereum finality
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .bootstrap import BootstrapSequencer, CheckpointGenerator
from .chains.beacon import BeaconClient
from .chains.substrate import SubstrateChain
from .config import HarnessConfig, load_deployments
from .errors import BridgenetError
from .launcher import DockerRuntime
from .relayers import LiveValues, RelayerSpec, SigningKey, materialize
from .types import KeyKind, RelayerKind

logger = logging.getLogger(__name__)


NOISY_LOGGERS = ("httpx", "httpcore", "web3", "websocket", "substrateinterface", "urllib3")
"""Client libraries whose per-request logging drowns out harness output."""


class ColoredFormatter(logging.Formatter):
    """Colors the level and logger name; keeps messages plain so they stay greppable."""

    DIM = "\x1b[2m"
    MAGENTA = "\x1b[35m"
    GREEN = "\x1b[32m"
    YELLOW = "\x1b[33m"
    RED = "\x1b[31m"
    REVERSE_RED = "\x1b[7;31m"
    RESET = "\x1b[0m"

    LEVEL_COLORS = {
        logging.DEBUG: DIM,
        logging.INFO: GREEN,
        logging.WARNING: YELLOW,
        logging.ERROR: RED,
        logging.CRITICAL: REVERSE_RED,
    }

    def __init__(self) -> None:
        super().__init__(datefmt="%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, "")
        line = (
            f"{self.DIM}{self.formatTime(record, self.datefmt)}{self.RESET} "
            f"{color}{record.levelname:<8}{self.RESET} "
            f"{self.MAGENTA}{record.name}{self.RESET} {record.getMessage()}"
        )
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def setup_logging(verbose: bool = False, no_color: bool = False) -> None:
    """
    Route harness logs to stderr.

    Replaces any handlers already on the root logger, so calling it twice
    does not duplicate output. Without `verbose`, client libraries are held
    at WARNING.
    """
    level = logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    if no_color:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)-8s %(name)s %(message)s", "%H:%M:%S")
        )
    else:
        handler.setFormatter(ColoredFormatter())

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if verbose else logging.WARNING)


def run_materialize(args: argparse.Namespace) -> Path:
    """Materialize one relay config from CLI arguments."""
    beefy_client = args.beefy_client
    gateway = args.gateway
    if args.deployments is not None:
        deployments = load_deployments(args.deployments)
        beefy_client = beefy_client or deployments.beefy_client
        gateway = gateway or deployments.gateway

    kind = RelayerKind(args.kind)
    spec = RelayerSpec(
        name=f"{kind.value}-relay",
        kind=kind,
        template_path=args.template,
        output_path=args.output,
        signing_key=SigningKey(KeyKind.SUBSTRATE, ""),
    )
    live = LiveValues(
        solochain_endpoint=args.solochain_endpoint,
        ethereum_endpoint=args.ethereum_endpoint,
        beacon_endpoint=args.beacon_endpoint,
        beefy_client_address=beefy_client,
        gateway_address=gateway,
        datastore_location=args.datastore,
    )
    return materialize(spec, live)


async def run_bootstrap(args: argparse.Namespace) -> None:
    """Run the bootstrap pipeline against live endpoints."""
    overrides: dict[str, object] = {}
    if args.attempts is not None:
        overrides["finality_poll_attempts"] = args.attempts
    if args.interval is not None:
        overrides["finality_poll_interval"] = args.interval
    if args.relayer_image is not None:
        overrides["relayer_image"] = args.relayer_image
    config = HarnessConfig.from_env(**overrides)

    work_dir = args.work_dir or config.work_dir
    solochain = await asyncio.to_thread(SubstrateChain.connect, args.solochain_endpoint)
    try:
        async with BeaconClient(args.beacon_endpoint) as beacon:
            sequencer = BootstrapSequencer(
                finality=beacon,
                generator=CheckpointGenerator(DockerRuntime(), config, network=args.network),
                submitter=solochain,
                config=config,
                beacon_config=args.beacon_config,
                work_dir=work_dir,
            )
            result = await sequencer.run()
    finally:
        solochain.close()
    logger.info("Bridge initialized at slot %d", result.checkpoint.header.slot)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bridgenet",
        description="Bridge test-network harness",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored logging output",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    mat = commands.add_parser("materialize", help="Write a relay config from a template")
    mat.add_argument(
        "--kind",
        required=True,
        choices=[kind.value for kind in RelayerKind],
        help="Relayer kind",
    )
    mat.add_argument("--template", required=True, type=Path, help="Template JSON file")
    mat.add_argument("--output", required=True, type=Path, help="Output config file")
    mat.add_argument(
        "--solochain-endpoint", required=True, help="Solochain WebSocket endpoint"
    )
    mat.add_argument("--ethereum-endpoint", default=None, help="Execution-layer RPC endpoint")
    mat.add_argument("--beacon-endpoint", default=None, help="Beacon API endpoint")
    mat.add_argument("--beefy-client", default=None, help="BeefyClient contract address")
    mat.add_argument("--gateway", default=None, help="Gateway contract address")
    mat.add_argument(
        "--deployments",
        type=Path,
        default=None,
        help="Deployment JSON to read contract addresses from",
    )
    mat.add_argument(
        "--datastore",
        default="/data",
        help="Relayer datastore location (default: /data)",
    )

    boot = commands.add_parser("bootstrap", help="Initialize the beacon light client")
    boot.add_argument("--beacon-endpoint", required=True, help="Beacon API endpoint")
    boot.add_argument("--solochain-endpoint", required=True, help="Solochain WebSocket endpoint")
    boot.add_argument(
        "--beacon-config",
        required=True,
        type=Path,
        help="Materialized beacon relay config",
    )
    boot.add_argument("--network", default=None, help="Docker network for the checkpoint container")
    boot.add_argument("--work-dir", type=Path, default=None, help="Directory for transient files")
    boot.add_argument("--relayer-image", default=None, help="Relayer image")
    boot.add_argument("--attempts", type=int, default=None, help="Finality poll attempts")
    boot.add_argument("--interval", type=float, default=None, help="Seconds between finality polls")
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose, args.no_color)

    try:
        if args.command == "materialize":
            path = run_materialize(args)
            print(path)
        else:
            asyncio.run(run_bootstrap(args))
    except BridgenetError as exc:
        logger.error("%s", exc)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
