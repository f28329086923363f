"""Plugin manager: discovery, lifecycle, hook registry, and dispatch.

The manager owns three maps (loaded plugins, discovered manifests, hooks)
behind a single lock. The lock is only held to read or update those maps,
never while a plugin call is awaited, so slow plugin subprocesses do not
block metadata queries or each other.
"""

from __future__ import annotations

import asyncio
import hashlib
import threading
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..config import (
    DEFAULT_CLEANUP_TIMEOUT,
    DEFAULT_EXECUTE_TIMEOUT,
    DEFAULT_INIT_TIMEOUT,
    CoreConfig,
)
from ..errors import (
    BinaryError,
    CapabilityError,
    DeadlineExceededError,
    HookError,
    LoadError,
    ManifestError,
    PluginNotFoundError,
    SeaweedUpError,
    UnsupportedOperationError,
)
from ..shared.logging import get_logger, plugin_logger
from .external import ExternalPlugin
from .interface import CAPABILITY_BASES, Capability, Plugin
from .manifest import MANIFEST_FILE, PluginManifest, load_manifest
from .types import OperationResult, OperationType

logger = get_logger(__name__)

DEFAULT_TEST_TIMEOUT = 30.0


@dataclass
class LoadedPlugin:
    """A plugin instance the manager has initialized and owns."""

    plugin: Plugin
    manifest: PluginManifest | None = None
    loaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def name(self) -> str:
        return self.plugin.name

    @property
    def builtin(self) -> bool:
        return self.manifest is None


class PluginManager:
    """Discovers, loads, and dispatches to plugins."""

    def __init__(
        self,
        plugins_dir: str | Path,
        *,
        init_timeout: float = DEFAULT_INIT_TIMEOUT,
        cleanup_timeout: float = DEFAULT_CLEANUP_TIMEOUT,
        execute_timeout: float = DEFAULT_EXECUTE_TIMEOUT,
        test_timeout: float = DEFAULT_TEST_TIMEOUT,
    ):
        """Initialize plugin manager.

        Args:
            plugins_dir: Directory holding one subdirectory per plugin
            init_timeout: Deadline for a plugin's init call (seconds)
            cleanup_timeout: Deadline for a plugin's cleanup call (seconds)
            execute_timeout: Deadline for an operation (seconds)
            test_timeout: Deadline for test_plugin's validate call (seconds)
        """
        self.plugins_dir = Path(plugins_dir)
        self.init_timeout = init_timeout
        self.cleanup_timeout = cleanup_timeout
        self.execute_timeout = execute_timeout
        self.test_timeout = test_timeout

        self._lock = threading.RLock()
        self._loaded: dict[str, LoadedPlugin] = {}
        self._manifests: dict[str, PluginManifest] = {}
        self._builtins: dict[str, Plugin] = {}
        self._hooks: dict[OperationType, list[str]] = {}
        self._pending: set[str] = set()

    @classmethod
    def from_config(cls, config: CoreConfig) -> PluginManager:
        return cls(
            config.plugins_dir,
            init_timeout=config.init_timeout,
            cleanup_timeout=config.cleanup_timeout,
            execute_timeout=config.execute_timeout,
        )

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def initialize(self) -> list[PluginManifest]:
        """Create the plugins directory, discover manifests, and load them all.

        Load failures are logged and do not stop the remaining plugins.

        Returns:
            Every manifest discovered in this scan.
        """
        self.plugins_dir.mkdir(parents=True, exist_ok=True)
        discovered = self.discover()

        for manifest in _dependency_order(discovered):
            if self.is_loaded(manifest.name):
                continue
            try:
                await self.load_plugin(manifest)
            except SeaweedUpError as e:
                logger.warning("Failed to load plugin", plugin=manifest.name, error=str(e))

        logger.info(
            "Plugin discovery complete",
            discovered=len(discovered),
            loaded=len(self.list_loaded_plugins()),
        )
        return discovered

    def discover(self) -> list[PluginManifest]:
        """Scan immediate subdirectories of the plugins directory for manifests.

        Malformed manifests are logged and skipped. Parsed manifests are
        recorded so they can be loaded or reloaded by name later.
        """
        if not self.plugins_dir.is_dir():
            return []

        discovered: list[PluginManifest] = []
        for entry in sorted(self.plugins_dir.iterdir()):
            if not entry.is_dir():
                continue
            manifest_path = entry / MANIFEST_FILE
            if not manifest_path.is_file():
                continue

            try:
                manifest = load_manifest(manifest_path)
            except ManifestError as e:
                logger.warning(
                    "Skipping malformed plugin manifest", path=str(manifest_path), error=str(e)
                )
                continue
            if not manifest.name:
                logger.warning("Skipping plugin manifest without a name", path=str(manifest_path))
                continue
            if manifest.name != entry.name:
                logger.warning(
                    "Plugin name does not match its directory",
                    plugin=manifest.name,
                    directory=entry.name,
                )

            with self._lock:
                self._manifests[manifest.name] = manifest
            discovered.append(manifest)

        return discovered

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def binary_path(self, manifest: PluginManifest) -> Path:
        return self.plugins_dir / manifest.name / manifest.binary

    def validate_plugin(self, manifest: PluginManifest) -> None:
        """Check required manifest fields and the plugin binary.

        Raises:
            ManifestError: If name, version, or binary is empty
            BinaryError: If the binary is missing or not executable
        """
        if not manifest.name:
            raise ManifestError("plugin name is required")
        if not manifest.version:
            raise ManifestError("plugin version is required", plugin=manifest.name)
        if not manifest.binary:
            raise ManifestError("plugin binary is required", plugin=manifest.name)

        binary = self.binary_path(manifest)
        if not binary.exists():
            raise BinaryError(f"plugin binary not found: {binary}", plugin=manifest.name)
        if not binary.is_file():
            raise BinaryError(f"plugin binary is not a file: {binary}", plugin=manifest.name)
        if binary.stat().st_mode & 0o111 == 0:
            raise BinaryError(f"plugin binary is not executable: {binary}", plugin=manifest.name)

    def _verify_checksum(self, manifest: PluginManifest) -> None:
        if not manifest.checksum:
            return
        algorithm, _, expected = manifest.checksum.rpartition(":")
        algorithm = (algorithm or "sha256").lower()
        # shake_* digests have no fixed length to compare against.
        if algorithm.startswith("shake_") or algorithm not in hashlib.algorithms_available:
            raise BinaryError(f"unsupported checksum algorithm: {algorithm}", plugin=manifest.name)
        try:
            digest = hashlib.new(algorithm)
        except ValueError as e:
            raise BinaryError(
                f"unsupported checksum algorithm: {algorithm}", plugin=manifest.name
            ) from e
        binary = self.binary_path(manifest)
        try:
            with open(binary, "rb") as f:
                for chunk in iter(lambda: f.read(65536), b""):
                    digest.update(chunk)
        except OSError as e:
            raise BinaryError(
                f"failed to read plugin binary {binary}: {e}", plugin=manifest.name
            ) from e
        if digest.hexdigest() != expected.lower():
            raise BinaryError(
                f"plugin binary checksum mismatch ({algorithm})",
                plugin=manifest.name,
                data={"expected": expected, "actual": digest.hexdigest()},
            )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def load_plugin(
        self, manifest: PluginManifest, config: dict[str, Any] | None = None
    ) -> Plugin:
        """Validate, initialize, and register an external plugin.

        The plugin only becomes visible after its init call succeeds.

        Raises:
            LoadError: If already loaded, unsupported on this host, missing
                dependencies, or init fails
            ManifestError / BinaryError: If validation fails
        """
        self._check_not_loaded(manifest.name)
        self.validate_plugin(manifest)
        self._verify_checksum(manifest)

        if not manifest.supports_host():
            raise LoadError(
                "plugin does not support this platform",
                plugin=manifest.name,
                data={"platforms": [f"{p.os}/{p.arch}" for p in manifest.platforms]},
            )
        missing = [dep for dep in manifest.dependencies if not self.is_loaded(dep)]
        if missing:
            raise LoadError(
                f"plugin dependencies not loaded: {', '.join(missing)}",
                plugin=manifest.name,
                data={"missing": missing},
            )

        with self._lock:
            self._manifests[manifest.name] = manifest

        plugin = ExternalPlugin(manifest, self.plugins_dir)
        await self._install(manifest.name, plugin, manifest, config)
        return plugin

    async def add_plugin(self, plugin: Plugin, config: dict[str, Any] | None = None) -> None:
        """Register an in-process plugin instance under the same rules as load_plugin.

        Raises:
            LoadError: If a plugin with that name is loaded or init fails
        """
        if not plugin.name:
            raise ManifestError("plugin name is required")
        self._check_not_loaded(plugin.name)
        with self._lock:
            self._builtins[plugin.name] = plugin
        await self._install(plugin.name, plugin, None, config)

    def _check_not_loaded(self, name: str) -> None:
        with self._lock:
            if name in self._loaded or name in self._pending:
                raise LoadError(f"plugin {name} is already loaded", plugin=name)

    async def _install(
        self,
        name: str,
        plugin: Plugin,
        manifest: PluginManifest | None,
        config: dict[str, Any] | None,
    ) -> None:
        with self._lock:
            if name in self._loaded or name in self._pending:
                raise LoadError(f"plugin {name} is already loaded", plugin=name)
            self._pending.add(name)

        log = plugin_logger(__name__, name)
        try:
            try:
                await asyncio.wait_for(plugin.initialize(dict(config or {})), self.init_timeout)
            except asyncio.TimeoutError as e:
                raise LoadError(
                    f"plugin initialization timed out after {self.init_timeout}s", plugin=name
                ) from e
            except SeaweedUpError as e:
                raise LoadError(
                    f"plugin initialization failed: {e.message}", plugin=name, data=e.to_dict()
                ) from e

            with self._lock:
                self._loaded[name] = LoadedPlugin(plugin=plugin, manifest=manifest)
        finally:
            with self._lock:
                self._pending.discard(name)

        log.info("Plugin loaded", version=plugin.version, builtin=manifest is None)

    async def unload_plugin(self, name: str) -> None:
        """Clean up and remove a loaded plugin.

        Cleanup failures are logged; the plugin is removed regardless. Hook
        registrations are kept, so a reloaded plugin runs its hooks again;
        until then execute_hooks reports it as not loaded.

        Raises:
            PluginNotFoundError: If the plugin is not loaded
        """
        with self._lock:
            entry = self._loaded.get(name)
            if entry is None:
                raise PluginNotFoundError(f"plugin {name} is not loaded", plugin=name)
            # Removed up front so no new calls are dispatched to it.
            del self._loaded[name]

        log = plugin_logger(__name__, name)
        try:
            await asyncio.wait_for(entry.plugin.cleanup(), self.cleanup_timeout)
        except asyncio.TimeoutError:
            log.warning("Plugin cleanup timed out", timeout=self.cleanup_timeout)
        except Exception as e:
            log.warning("Plugin cleanup failed", error=str(e))

        log.info("Plugin unloaded")

    async def reload_plugin(self, name: str) -> None:
        """Unload (if loaded) and load again from the recorded manifest.

        Raises:
            PluginNotFoundError: If no manifest was ever recorded for the name
        """
        try:
            await self.unload_plugin(name)
        except PluginNotFoundError:
            pass

        with self._lock:
            manifest = self._manifests.get(name)
            builtin = self._builtins.get(name)

        if manifest is not None:
            await self.load_plugin(manifest)
        elif builtin is not None:
            await self.add_plugin(builtin)
        else:
            raise PluginNotFoundError(f"plugin {name} not found", plugin=name)

    async def shutdown(self) -> None:
        """Unload every loaded plugin."""
        for name in [entry.name for entry in self.list_loaded()]:
            try:
                await self.unload_plugin(name)
            except PluginNotFoundError:
                continue

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_loaded(self, name: str) -> bool:
        with self._lock:
            return name in self._loaded

    def get_loaded_plugin(self, name: str) -> Plugin:
        """Raises PluginNotFoundError if the plugin is not loaded."""
        with self._lock:
            entry = self._loaded.get(name)
        if entry is None:
            raise PluginNotFoundError(f"plugin {name} is not loaded", plugin=name)
        return entry.plugin

    def list_loaded(self) -> list[LoadedPlugin]:
        with self._lock:
            return list(self._loaded.values())

    def list_loaded_plugins(self) -> list[Plugin]:
        return [entry.plugin for entry in self.list_loaded()]

    def get_manifest(self, name: str) -> PluginManifest:
        with self._lock:
            manifest = self._manifests.get(name)
        if manifest is None:
            raise PluginNotFoundError(f"plugin {name} not found", plugin=name)
        return manifest

    def list_manifests(self) -> list[PluginManifest]:
        with self._lock:
            return list(self._manifests.values())

    def get_capability(self, name: str, capability: Capability) -> Plugin:
        """Return the plugin if it declares the capability set.

        Raises:
            PluginNotFoundError: If the plugin is not loaded
            CapabilityError: If it does not provide the capability
        """
        plugin = self.get_loaded_plugin(name)
        if capability not in plugin.capabilities() or not isinstance(
            plugin, CAPABILITY_BASES[capability]
        ):
            raise CapabilityError(
                f"plugin {name} does not provide the {capability.value} capability",
                plugin=name,
            )
        return plugin

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute_plugin(
        self,
        name: str,
        operation: OperationType | str,
        params: dict[str, Any] | None = None,
    ) -> OperationResult:
        """Run one plugin's operation under the execute deadline.

        The returned result (and the result attached to a raised
        ExecutionError) carries the duration measured here.

        Raises:
            PluginNotFoundError: If the plugin is not loaded
            UnsupportedOperationError: If the operation is unknown or the plugin
                does not declare it
            DeadlineExceededError: If the operation outlives the deadline
        """
        operation = _operation_type(operation, name)
        plugin = self.get_loaded_plugin(name)
        if not plugin.supports(operation):
            raise UnsupportedOperationError(
                f"plugin {name} does not support operation {operation.value}",
                plugin=name,
                data={"supported": [op.value for op in plugin.supported_operations()]},
            )

        log = plugin_logger(__name__, name, operation.value)
        log.debug("Executing plugin operation")
        start = time.monotonic()
        try:
            result = await asyncio.wait_for(
                plugin.execute(operation, dict(params or {})), self.execute_timeout
            )
        except asyncio.TimeoutError as e:
            raise DeadlineExceededError(
                f"plugin {name} operation {operation.value} timed out "
                f"after {self.execute_timeout}s",
                plugin=name,
                timeout=self.execute_timeout,
            ) from e
        except SeaweedUpError as e:
            failure = getattr(e, "result", None)
            if isinstance(failure, OperationResult):
                e.result = failure.stamped(time.monotonic() - start)
            log.warning("Plugin operation failed", error=str(e))
            raise

        result = result.stamped(time.monotonic() - start)
        log.info("Plugin operation finished", success=result.success, duration=result.duration)
        return result

    async def test_plugin(self, name: str) -> None:
        """Run the plugin's validate call under the test deadline."""
        plugin = self.get_loaded_plugin(name)
        try:
            await asyncio.wait_for(plugin.validate(), self.test_timeout)
        except asyncio.TimeoutError as e:
            raise DeadlineExceededError(
                f"plugin {name} validation timed out after {self.test_timeout}s",
                plugin=name,
                timeout=self.test_timeout,
            ) from e

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def register_hook(self, operation: OperationType | str, plugin_name: str) -> None:
        """Append a loaded plugin to an operation's hook list.

        Registering the same plugin twice makes it run twice.

        Raises:
            PluginNotFoundError: If the plugin is not loaded
        """
        operation = _operation_type(operation, plugin_name)
        with self._lock:
            if plugin_name not in self._loaded:
                raise PluginNotFoundError(f"plugin {plugin_name} is not loaded", plugin=plugin_name)
            self._hooks.setdefault(operation, []).append(plugin_name)

    def unregister_hook(self, operation: OperationType | str, plugin_name: str) -> None:
        """Remove the first registration of plugin_name for operation.

        Raises:
            HookError: If the plugin is not registered for the operation
        """
        operation = _operation_type(operation, plugin_name)
        with self._lock:
            hooks = self._hooks.get(operation, [])
            if plugin_name not in hooks:
                raise HookError(
                    f"plugin {plugin_name} is not registered for operation {operation.value}",
                    plugin=plugin_name,
                )
            hooks.remove(plugin_name)

    def get_hooks(self, operation: OperationType | str) -> list[str]:
        with self._lock:
            return list(self._hooks.get(_operation_type(operation), []))

    async def execute_hooks(
        self,
        operation: OperationType | str,
        params: dict[str, Any] | None = None,
    ) -> tuple[list[OperationResult], Exception | None]:
        """Run every hook registered for an operation, in registration order.

        A failing hook does not stop the ones after it. Each hook contributes
        exactly one result (a failure result when it raised).

        Returns:
            (results, first_error): all results, and the first error raised
            by any hook or None.
        """
        operation = _operation_type(operation)
        hook_plugins = self.get_hooks(operation)

        results: list[OperationResult] = []
        errors: list[Exception] = []

        for plugin_name in hook_plugins:
            start = time.monotonic()
            try:
                results.append(await self.execute_plugin(plugin_name, operation, params))
            except Exception as e:
                errors.append(e)
                results.append(_failure_result(plugin_name, operation, e, start))
                logger.warning(
                    "Hook failed", plugin=plugin_name, operation=operation.value, error=str(e)
                )

        return results, (errors[0] if errors else None)

    # ------------------------------------------------------------------
    # Synchronous wrappers
    # ------------------------------------------------------------------

    def initialize_sync(self) -> list[PluginManifest]:
        return asyncio.run(self.initialize())

    def execute_plugin_sync(
        self, name: str, operation: OperationType | str, params: dict[str, Any] | None = None
    ) -> OperationResult:
        return asyncio.run(self.execute_plugin(name, operation, params))

    def execute_hooks_sync(
        self, operation: OperationType | str, params: dict[str, Any] | None = None
    ) -> tuple[list[OperationResult], Exception | None]:
        return asyncio.run(self.execute_hooks(operation, params))


def _operation_type(operation: OperationType | str, plugin: str | None = None) -> OperationType:
    try:
        return OperationType(operation)
    except ValueError as e:
        raise UnsupportedOperationError(f"unknown operation: {operation}", plugin=plugin) from e


def _failure_result(
    plugin_name: str, operation: OperationType, error: Exception, start: float
) -> OperationResult:
    failure = getattr(error, "result", None)
    if isinstance(failure, OperationResult):
        return failure
    return OperationResult.failure(
        message=f"hook {plugin_name} failed",
        error=str(error),
        data={"plugin": plugin_name, "operation": operation.value},
    ).stamped(time.monotonic() - start)


def _dependency_order(manifests: Iterable[PluginManifest]) -> list[PluginManifest]:
    """Order manifests so that discovered dependencies load first.

    Manifests whose dependencies can never be satisfied keep their scan
    order at the end; load_plugin reports them.
    """
    remaining = list(manifests)
    names = {m.name for m in remaining}
    ordered: list[PluginManifest] = []
    placed: set[str] = set()

    progress = True
    while remaining and progress:
        progress = False
        for manifest in list(remaining):
            deps = [d for d in manifest.dependencies if d in names]
            if all(d in placed for d in deps):
                ordered.append(manifest)
                placed.add(manifest.name)
                remaining.remove(manifest)
                progress = True

    return ordered + remaining

