"""Adapter that runs a plugin as an external executable.

Command protocol
----------------
The binary is invoked as ``<binary> <verb>`` with ``verb`` one of ``init``,
``validate``, ``cleanup`` or ``execute``; the working directory is the
plugin's own directory and the environment carries ``SEAWEED_UP_PLUGIN`` and
``SEAWEED_UP_VERSION``.

A JSON request is written to stdin::

    {"verb": "execute", "plugin": "p", "version": "1.0.0",
     "operation": "deploy", "params": {...}, "config": {...}}

Exit status 0 means success. Combined stdout/stderr is captured; if its last
non-empty line is a JSON object, it is read as the structured response
(``message`` and ``data`` keys). Any other output is kept as free text.
"""

from __future__ import annotations

import dataclasses
import json
import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from ..errors import BinaryError, ExecutionError
from ..shared.process import run_process
from .interface import Plugin
from .manifest import PluginManifest
from .types import OperationResult, OperationType

ENV_PLUGIN = "SEAWEED_UP_PLUGIN"
ENV_VERSION = "SEAWEED_UP_VERSION"

# Reported when the manifest does not declare its operations.
DEFAULT_OPERATIONS = [
    OperationType.DEPLOY,
    OperationType.UPGRADE,
    OperationType.VALIDATE,
    OperationType.CUSTOM,
]


class Verb(str, Enum):
    INIT = "init"
    VALIDATE = "validate"
    CLEANUP = "cleanup"
    EXECUTE = "execute"


def _json_default(value: Any) -> Any:
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (Path, datetime)):
        return str(value)
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


@dataclass
class PluginRequest:
    """Structured request written to the plugin's stdin."""

    verb: Verb
    plugin: str
    version: str
    operation: OperationType | None = None
    params: dict[str, Any] = field(default_factory=dict)
    config: dict[str, Any] = field(default_factory=dict)

    def encode(self) -> bytes:
        payload: dict[str, Any] = {
            "verb": self.verb.value,
            "plugin": self.plugin,
            "version": self.version,
        }
        if self.operation is not None:
            payload["operation"] = self.operation.value
            payload["params"] = self.params
        if self.config:
            payload["config"] = self.config
        return json.dumps(payload, default=_json_default).encode("utf-8")


@dataclass
class PluginResponse:
    """What a plugin reported back: free-text output plus optional structure."""

    output: str
    message: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def parse(cls, output: str) -> PluginResponse:
        lines = [line for line in output.splitlines() if line.strip()]
        if lines:
            try:
                payload = json.loads(lines[-1])
            except json.JSONDecodeError:
                payload = None
            if isinstance(payload, dict):
                data = payload.get("data")
                message = payload.get("message")
                return cls(
                    output=output,
                    message=str(message) if message is not None else None,
                    data=data if isinstance(data, dict) else {},
                )
        return cls(output=output)


class ExternalPlugin(Plugin):
    """Plugin backed by a manifest and an executable in the plugins directory."""

    def __init__(self, manifest: PluginManifest, plugins_dir: Path):
        self.manifest = manifest
        self.plugins_dir = Path(plugins_dir)
        self.config: dict[str, Any] = {}

    @property
    def name(self) -> str:
        return self.manifest.name

    @property
    def version(self) -> str:
        return self.manifest.version

    @property
    def description(self) -> str:
        return self.manifest.description

    @property
    def author(self) -> str:
        return self.manifest.author

    @property
    def plugin_dir(self) -> Path:
        return self.plugins_dir / self.manifest.name

    @property
    def binary_path(self) -> Path:
        return self.plugin_dir / self.manifest.binary

    def supported_operations(self) -> list[OperationType]:
        if self.manifest.operations is not None:
            return list(self.manifest.operations)
        return list(DEFAULT_OPERATIONS)

    async def initialize(self, config: dict[str, Any]) -> None:
        self.config = dict(config)
        await self._run(PluginRequest(Verb.INIT, self.name, self.version, config=self.config))

    async def validate(self) -> None:
        await self._run(PluginRequest(Verb.VALIDATE, self.name, self.version))

    async def cleanup(self) -> None:
        await self._run(PluginRequest(Verb.CLEANUP, self.name, self.version))

    async def execute(
        self, operation: OperationType, params: dict[str, Any]
    ) -> OperationResult:
        request = PluginRequest(
            Verb.EXECUTE,
            self.name,
            self.version,
            operation=operation,
            params=dict(params),
            config=self.config,
        )
        try:
            response = await self._run(request)
        except ExecutionError as e:
            e.result = OperationResult.failure(
                message=f"Plugin {self.name} operation {operation.value} failed",
                error=e.message,
                data={"output": e.output, "exit_code": e.exit_code},
            )
            raise

        return OperationResult.ok(
            message=response.message
            or f"Plugin {self.name} operation {operation.value} completed successfully",
            data=response.data,
        )

    def _environment(self) -> dict[str, str]:
        env = dict(os.environ)
        env[ENV_PLUGIN] = self.manifest.name
        env[ENV_VERSION] = self.manifest.version
        return env

    async def _run(self, request: PluginRequest) -> PluginResponse:
        binary = self.binary_path
        try:
            result = await run_process(
                [str(binary), request.verb.value],
                cwd=self.plugin_dir,
                env=self._environment(),
                input=request.encode(),
            )
        except OSError as e:
            raise BinaryError(
                f"cannot run plugin binary {binary}: {e}", plugin=self.name
            ) from e

        if not result.ok:
            raise ExecutionError(
                f"plugin command {request.verb.value} failed with exit code "
                f"{result.returncode}, output: {result.output.strip()}",
                plugin=self.name,
                data={"verb": request.verb.value},
                output=result.output,
                exit_code=result.returncode,
            )
        return PluginResponse.parse(result.output)
