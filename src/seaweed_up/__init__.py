"""seaweed-up plugin core - plugin manager and cluster bootstrap orchestration."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("seaweed-up")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"  # Fallback for editable installs without metadata

from .config import CoreConfig, load_config
from .plugins import OperationResult, OperationType, PluginManager
from .tikv import TiKVClusterPlugin

__all__ = [
    "PluginManager",
    "OperationResult",
    "OperationType",
    "TiKVClusterPlugin",
    "CoreConfig",
    "load_config",
    "__version__",
]
