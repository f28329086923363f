"""Value types shared by plugins and the plugin manager."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class OperationType(str, Enum):
    """Kinds of operation a plugin can handle."""

    DEPLOY = "deploy"
    UPGRADE = "upgrade"
    SCALE = "scale"
    MONITOR = "monitor"
    BACKUP = "backup"
    RESTORE = "restore"
    VALIDATE = "validate"
    EXPORT = "export"
    IMPORT = "import"
    CUSTOM = "custom"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class OperationResult:
    """Outcome of a plugin operation.

    ``duration`` (seconds) and ``timestamp`` are stamped by the plugin manager
    after the call returns, so timings are comparable across plugins.
    """

    success: bool
    message: str = ""
    data: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    duration: float = 0.0
    timestamp: datetime = field(default_factory=_utcnow)

    @classmethod
    def ok(cls, message: str, data: dict[str, Any] | None = None) -> OperationResult:
        return cls(success=True, message=message, data=dict(data or {}))

    @classmethod
    def failure(
        cls, message: str, error: str, data: dict[str, Any] | None = None
    ) -> OperationResult:
        return cls(success=False, message=message, error=error, data=dict(data or {}))

    def stamped(self, duration: float, timestamp: datetime | None = None) -> OperationResult:
        """Return a copy carrying the given duration and timestamp."""
        return dataclasses.replace(self, duration=duration, timestamp=timestamp or _utcnow())

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "success": self.success,
            "message": self.message,
            "duration": round(self.duration, 3),
            "timestamp": self.timestamp.isoformat(),
        }
        if self.data:
            result["data"] = self.data
        if self.error:
            result["error"] = self.error
        return result


class ComponentHealth(str, Enum):
    """Health levels reported by monitoring plugins."""

    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"
    UNKNOWN = "unknown"


@dataclass
class HealthStatus:
    """Health of a cluster, overall and per component."""

    overall: ComponentHealth
    components: dict[str, ComponentHealth] = field(default_factory=dict)
    message: str = ""
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass
class AlertDefinition:
    """An alert a monitoring plugin is asked to raise."""

    name: str
    severity: str
    summary: str = ""
    description: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    data: dict[str, Any] = field(default_factory=dict)


class ExportFormat(str, Enum):
    KUBERNETES = "kubernetes"
    DOCKER_COMPOSE = "docker-compose"
    TERRAFORM = "terraform"
    ANSIBLE = "ansible"
    HELM = "helm"
    NOMAD = "nomad"


class ImportFormat(str, Enum):
    DOCKER_COMPOSE = "docker-compose"
    KUBERNETES = "kubernetes"
    TERRAFORM = "terraform"
    JSON = "json"
