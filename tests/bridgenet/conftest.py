"""Shared fixtures for harness tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from bridgenet.config import HarnessConfig

from .helpers import RecordingRunner


@pytest.fixture
def fast_config(tmp_path: Path) -> HarnessConfig:
    """Harness config with poll intervals short enough for unit tests."""
    return HarnessConfig(
        finality_poll_interval=0.01,
        finality_poll_attempts=5,
        container_start_attempts=3,
        container_start_interval=0.01,
        event_timeout=0.5,
        work_dir=tmp_path / "work",
    )


@pytest.fixture
def runner() -> RecordingRunner:
    """A command runner that succeeds unless told otherwise."""
    return RecordingRunner()
