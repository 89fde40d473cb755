"""Fixtures for relay config tests."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from bridgenet.relayers import LiveValues

from .templates import TEMPLATES


@pytest.fixture
def template_dir(tmp_path: Path) -> Path:
    """Directory with one template per relayer kind."""
    directory = tmp_path / "templates"
    directory.mkdir()
    for kind, template in TEMPLATES.items():
        (directory / f"{kind}-relay.json").write_text(json.dumps(template, indent=2))
    return directory


@pytest.fixture
def live() -> LiveValues:
    """Live values of a launched network."""
    return LiveValues(
        solochain_endpoint="ws://datahaven-alice:9944",
        ethereum_endpoint="ws://el-1-reth-lighthouse:8546",
        beacon_endpoint="http://cl-1-lighthouse-reth:4000",
        beefy_client_address="0x1111111111111111111111111111111111111111",
        gateway_address="0x2222222222222222222222222222222222222222",
        datastore_location="/data",
    )
