"""Fakes for plugin and bootstrap tests.

- StubPlugin: configurable in-process plugin
- FakeClock: deterministic clock whose sleep advances time
- FakeExecutor / ScriptedProbe / FakeReleaseSource: remote collaborators
- write_plugin: builds an external plugin directory with a shell script binary
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from seaweed_up.cluster.spec import ClusterSpec
from seaweed_up.errors import ExecutionError, HealthCheckError
from seaweed_up.plugins.interface import Plugin
from seaweed_up.plugins.types import OperationResult, OperationType

# =============================================================================
# In-process plugins
# =============================================================================


class StubPlugin(Plugin):
    """Plugin whose behaviour is configured per test."""

    def __init__(
        self,
        name: str = "stub",
        version: str = "1.0.0",
        operations: list[OperationType] | None = None,
        init_error: Exception | None = None,
        cleanup_error: Exception | None = None,
        execute_error: Exception | None = None,
        delay: float = 0.0,
    ):
        self._name = name
        self._version = version
        self.operations = operations or [OperationType.DEPLOY, OperationType.VALIDATE]
        self.init_error = init_error
        self.cleanup_error = cleanup_error
        self.execute_error = execute_error
        self.delay = delay
        self.config: dict[str, Any] | None = None
        self.calls: list[tuple[OperationType, dict[str, Any]]] = []
        self.cleaned_up = False
        self.validated = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def version(self) -> str:
        return self._version

    async def initialize(self, config: dict[str, Any]) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.init_error:
            raise self.init_error
        self.config = config

    async def validate(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        self.validated = True

    async def cleanup(self) -> None:
        self.cleaned_up = True
        if self.cleanup_error:
            raise self.cleanup_error

    def supported_operations(self) -> list[OperationType]:
        return list(self.operations)

    async def execute(self, operation: OperationType, params: dict[str, Any]) -> OperationResult:
        self.calls.append((operation, params))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.execute_error:
            raise self.execute_error
        return OperationResult.ok(
            f"{self._name} {operation.value} done", data={"plugin": self._name}
        )


# =============================================================================
# Time
# =============================================================================


class FakeClock:
    """Monotonic clock that only moves when slept on."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


# =============================================================================
# Remote collaborators
# =============================================================================


@dataclass
class FakeExecutor:
    """RemoteExecutor that records commands and copied file contents."""

    fail_on: list[str] = field(default_factory=list)
    commands: list[tuple[str, str]] = field(default_factory=list)
    copies: list[tuple[str, str, str]] = field(default_factory=list)
    contents: dict[tuple[str, str], str] = field(default_factory=dict)

    async def execute(self, host: str, command: str) -> str:
        for marker in self.fail_on:
            if marker in command or marker == host:
                raise ExecutionError(
                    f"command failed on {host} (exit 1): boom", output="boom", exit_code=1
                )
        self.commands.append((host, command))
        return ""

    async def copy_file(self, local_path: str | Path, host: str, remote_path: str) -> None:
        self.copies.append((str(local_path), host, remote_path))
        if remote_path.endswith(".toml"):
            self.contents[(host, remote_path)] = Path(local_path).read_text(encoding="utf-8")

    def hosts_for(self, fragment: str) -> list[str]:
        return [host for host, command in self.commands if fragment in command]


class ScriptedProbe:
    """HealthProbe answering from per-(host, port) scripts.

    Each script is a list of status codes or exceptions consumed one per
    probe; the last entry repeats.
    """

    def __init__(self, default: int = 200):
        self.default = default
        self.scripts: dict[tuple[str, int], list[int | Exception]] = {}
        self.calls: list[tuple[str, int, str]] = []

    def script(self, host: str, port: int, *responses: int | Exception) -> None:
        self.scripts[(host, port)] = list(responses)

    async def probe(self, host: str, port: int, path: str) -> int:
        self.calls.append((host, port, path))
        script = self.scripts.get((host, port))
        if not script:
            return self.default
        response = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(response, Exception):
            raise response
        return response


def refused(host: str, port: int) -> HealthCheckError:
    return HealthCheckError(f"Connection refused: {host}:{port}", host=host, port=port)


class FakeReleaseSource:
    """ReleaseSource that writes a placeholder binary."""

    def __init__(self):
        self.fetched: list[tuple[str, str]] = []

    async def fetch(self, name: str, version: str, dest: Path) -> None:
        self.fetched.append((name, version))
        Path(dest).write_bytes(b"#!/bin/sh\nexit 0\n")


def make_cluster(masters: int = 3, volumes: int = 3, name: str = "test-cluster") -> ClusterSpec:
    return ClusterSpec.from_dict(
        {
            "cluster_name": name,
            "master_servers": [{"ip": f"10.0.0.{i}"} for i in range(1, masters + 1)],
            "volume_servers": [{"ip": f"10.0.1.{i}"} for i in range(1, volumes + 1)],
        }
    )


# Answers every verb; execute echoes the JSON request back as response data.
ECHO_SCRIPT = """#!/bin/sh
request=$(cat)
case "$1" in
  init|validate|cleanup)
    exit 0
    ;;
  execute)
    echo "running $SEAWEED_UP_PLUGIN $SEAWEED_UP_VERSION"
    printf '{"message": "done", "data": {"request": %s, "cwd": "%s", "env": "%s %s"}}\\n' \\
      "$request" "$(pwd)" "$SEAWEED_UP_PLUGIN" "$SEAWEED_UP_VERSION"
    exit 0
    ;;
esac
exit 2
"""

FAILING_SCRIPT = """#!/bin/sh
cat > /dev/null
case "$1" in
  execute)
    echo "disk full"
    exit 3
    ;;
esac
exit 0
"""

FAILING_INIT_SCRIPT = """#!/bin/sh
cat > /dev/null
if [ "$1" = "init" ]; then
  echo "missing credentials"
  exit 1
fi
exit 0
"""

SLOW_SCRIPT = """#!/bin/sh
cat > /dev/null
if [ "$1" = "execute" ]; then
  sleep 30
fi
exit 0
"""


def write_plugin(
    plugins_dir: Path,
    name: str,
    script: str = ECHO_SCRIPT,
    *,
    version: str = "1.0.0",
    binary: str = "plugin.sh",
    executable: bool = True,
    write_binary: bool = True,
    **manifest: Any,
) -> Path:
    """Create ``<plugins_dir>/<name>/`` with plugin.yaml and a script binary."""
    plugin_dir = plugins_dir / name
    plugin_dir.mkdir(parents=True, exist_ok=True)

    data: dict[str, Any] = {"name": name, "version": version, "binary": binary, **manifest}
    (plugin_dir / "plugin.yaml").write_text(yaml.safe_dump(data), encoding="utf-8")

    if write_binary:
        binary_path = plugin_dir / binary
        binary_path.write_text(script, encoding="utf-8")
        binary_path.chmod(0o755 if executable else 0o644)
    return plugin_dir

