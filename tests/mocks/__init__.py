"""Test mocks for seaweed-up.

Provides fake implementations for testing:
- StubPlugin: in-process plugin with scripted behaviour
- FakeClock, FakeExecutor, ScriptedProbe, FakeReleaseSource: bootstrap collaborators
"""

from .fakes import (
    ECHO_SCRIPT,
    FAILING_INIT_SCRIPT,
    FAILING_SCRIPT,
    SLOW_SCRIPT,
    FakeClock,
    FakeExecutor,
    FakeReleaseSource,
    ScriptedProbe,
    StubPlugin,
    make_cluster,
    refused,
    write_plugin,
)

__all__ = [
    "StubPlugin",
    "FakeClock",
    "FakeExecutor",
    "ScriptedProbe",
    "FakeReleaseSource",
    "refused",
    "make_cluster",
    "write_plugin",
    "ECHO_SCRIPT",
    "FAILING_SCRIPT",
    "FAILING_INIT_SCRIPT",
    "SLOW_SCRIPT",
]
