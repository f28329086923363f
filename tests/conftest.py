"""Shared test fixtures for seaweed-up tests."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from seaweed_up.cluster.spec import ClusterSpec
from tests.mocks import (
    ECHO_SCRIPT,
    FakeClock,
    FakeExecutor,
    FakeReleaseSource,
    ScriptedProbe,
    make_cluster,
    write_plugin,
)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def probe() -> ScriptedProbe:
    return ScriptedProbe()


@pytest.fixture
def release_source() -> FakeReleaseSource:
    return FakeReleaseSource()


@pytest.fixture
def cluster() -> ClusterSpec:
    return make_cluster()


@pytest.fixture
def plugins_dir(tmp_path: Path) -> Path:
    path = tmp_path / "plugins"
    path.mkdir()
    return path


@pytest.fixture
def plugin_factory(plugins_dir: Path) -> Callable[..., Path]:
    """Create external plugins under plugins_dir."""

    def factory(name: str, script: str = ECHO_SCRIPT, **kwargs: Any) -> Path:
        return write_plugin(plugins_dir, name, script, **kwargs)

    return factory
