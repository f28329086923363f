"""Plugin capability contract.

Every plugin implements :class:`Plugin`. Specialized capability sets
(cluster lifecycle, monitoring, export, import) are separate abstract bases;
a plugin opts into one by inheriting it, which also adds the matching
:class:`Capability` to :meth:`Plugin.capabilities`. The plugin manager checks
that declaration before calling any specialized method.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, ClassVar

from ..cluster.spec import ClusterSpec
from .types import (
    AlertDefinition,
    ExportFormat,
    HealthStatus,
    ImportFormat,
    OperationResult,
    OperationType,
)


class Capability(str, Enum):
    """Specialized capability sets a plugin may provide."""

    CLUSTER = "cluster"
    MONITORING = "monitoring"
    EXPORT = "export"
    IMPORT = "import"


class Plugin(ABC):
    """Generic plugin: identity, lifecycle, and operation dispatch."""

    # Set by each specialized base; collected across the MRO.
    capability: ClassVar[Capability | None] = None

    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def version(self) -> str: ...

    @property
    def description(self) -> str:
        return ""

    @property
    def author(self) -> str:
        return ""

    @abstractmethod
    async def initialize(self, config: dict[str, Any]) -> None:
        """Prepare the plugin for use. Failure aborts loading."""

    @abstractmethod
    async def validate(self) -> None:
        """Check the plugin's own prerequisites."""

    @abstractmethod
    async def cleanup(self) -> None:
        """Release resources before the plugin is unloaded."""

    @abstractmethod
    def supported_operations(self) -> list[OperationType]: ...

    @abstractmethod
    async def execute(
        self, operation: OperationType, params: dict[str, Any]
    ) -> OperationResult: ...

    @classmethod
    def capabilities(cls) -> frozenset[Capability]:
        return frozenset(
            klass.__dict__["capability"]
            for klass in cls.__mro__
            if klass.__dict__.get("capability") is not None
        )

    def supports(self, operation: OperationType) -> bool:
        return operation in self.supported_operations()


class ClusterPlugin(Plugin):
    """Cluster lifecycle hooks around deploy and upgrade."""

    capability = Capability.CLUSTER

    @abstractmethod
    async def validate_cluster(self, cluster: ClusterSpec) -> None: ...

    @abstractmethod
    async def pre_deploy(self, cluster: ClusterSpec) -> None: ...

    @abstractmethod
    async def post_deploy(self, cluster: ClusterSpec) -> None: ...

    @abstractmethod
    async def pre_upgrade(self, cluster: ClusterSpec, new_version: str) -> None: ...

    @abstractmethod
    async def post_upgrade(self, cluster: ClusterSpec, new_version: str) -> None: ...


class MonitoringPlugin(Plugin):
    """Metric collection, health checks, and alerting."""

    capability = Capability.MONITORING

    @abstractmethod
    async def collect_metrics(self, cluster: ClusterSpec) -> dict[str, Any]: ...

    @abstractmethod
    async def check_health(self, cluster: ClusterSpec) -> HealthStatus: ...

    @abstractmethod
    async def generate_alert(self, alert: AlertDefinition) -> None: ...


class ExportPlugin(Plugin):
    """Renders a cluster specification into an external format."""

    capability = Capability.EXPORT

    @abstractmethod
    def supported_formats(self) -> list[ExportFormat]: ...

    @abstractmethod
    async def export(self, cluster: ClusterSpec, format: ExportFormat) -> bytes: ...

    @abstractmethod
    async def validate_export(self, data: bytes, format: ExportFormat) -> None: ...


class ImportPlugin(Plugin):
    """Parses an external format into a cluster specification."""

    capability = Capability.IMPORT

    @abstractmethod
    def supported_formats(self) -> list[ImportFormat]: ...

    @abstractmethod
    async def import_(self, data: bytes, format: ImportFormat) -> ClusterSpec: ...

    @abstractmethod
    async def validate_import(self, data: bytes, format: ImportFormat) -> None: ...


CAPABILITY_BASES: dict[Capability, type[Plugin]] = {
    Capability.CLUSTER: ClusterPlugin,
    Capability.MONITORING: MonitoringPlugin,
    Capability.EXPORT: ExportPlugin,
    Capability.IMPORT: ImportPlugin,
}
