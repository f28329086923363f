"""Error taxonomy for the plugin core and the bootstrap orchestrator.

Every error carries the plugin it concerns (when known) and a free-form
``data`` mapping so the calling layer can log or render it structurally.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class SeaweedUpError(Exception):
    """Base error class for seaweed-up errors."""

    message: str
    plugin: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dict for structured output."""
        error: dict[str, Any] = {"type": type(self).__name__, "message": self.message}
        if self.plugin:
            error["plugin"] = self.plugin
        if self.data:
            error["data"] = self.data
        return error


@dataclass
class ManifestError(SeaweedUpError):
    """Manifest missing, unparseable, or missing a required field."""


@dataclass
class BinaryError(SeaweedUpError):
    """Plugin binary missing or not executable."""


@dataclass
class LoadError(SeaweedUpError):
    """Plugin could not be loaded (duplicate load, init failure)."""


@dataclass
class PluginNotFoundError(LoadError):
    """Plugin is not loaded, or no manifest was ever discovered for it."""


@dataclass
class UnsupportedOperationError(SeaweedUpError):
    """Plugin does not declare the requested operation."""


@dataclass
class HookError(SeaweedUpError):
    """Hook registry violation (unregistering a non-member)."""


@dataclass
class CapabilityError(SeaweedUpError):
    """Plugin does not provide the requested capability set."""


@dataclass
class ExecutionError(SeaweedUpError):
    """A subprocess or remote command exited non-zero.

    ``result`` holds the failure OperationResult when the error came from a
    plugin operation, so callers keep the structured outcome.
    """

    output: str = ""
    exit_code: int | None = None
    result: Any = None


@dataclass
class ValidationError(SeaweedUpError):
    """Topology or required-field violation."""


@dataclass
class DeadlineExceededError(SeaweedUpError):
    """A bounded call or a convergence wait ran past its deadline."""

    timeout: float | None = None


# Exported under the taxonomy name; it does not shadow the builtin inside
# modules that import DeadlineExceededError directly.
TimeoutError = DeadlineExceededError


@dataclass
class HealthCheckError(SeaweedUpError):
    """Health probe returned a non-success status or failed to connect."""

    host: str = ""
    port: int = 0
    status_code: int | None = None
