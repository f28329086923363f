"""Plugin system: capability contract, external adapter, and manager."""

from .external import ExternalPlugin, PluginRequest, PluginResponse, Verb
from .interface import (
    CAPABILITY_BASES,
    Capability,
    ClusterPlugin,
    ExportPlugin,
    ImportPlugin,
    MonitoringPlugin,
    Plugin,
)
from .manager import LoadedPlugin, PluginManager
from .manifest import (
    MANIFEST_FILE,
    ConfigOption,
    PlatformSupport,
    PluginConfig,
    PluginManifest,
    load_manifest,
)
from .types import (
    AlertDefinition,
    ComponentHealth,
    ExportFormat,
    HealthStatus,
    ImportFormat,
    OperationResult,
    OperationType,
)

__all__ = [
    # Contract
    "Plugin",
    "Capability",
    "CAPABILITY_BASES",
    "ClusterPlugin",
    "MonitoringPlugin",
    "ExportPlugin",
    "ImportPlugin",
    # Types
    "OperationType",
    "OperationResult",
    "HealthStatus",
    "ComponentHealth",
    "AlertDefinition",
    "ExportFormat",
    "ImportFormat",
    # Manifest
    "MANIFEST_FILE",
    "PluginManifest",
    "PlatformSupport",
    "PluginConfig",
    "ConfigOption",
    "load_manifest",
    # Runtime
    "ExternalPlugin",
    "PluginRequest",
    "PluginResponse",
    "Verb",
    "PluginManager",
    "LoadedPlugin",
]
