"""Built-in TiKV cluster bootstrap plugin."""

from .configs import render_pd_config, render_tikv_config
from .health import ConvergencePoller, ConvergenceResult, HealthTarget
from .plugin import BootstrapTimings, TiKVClusterPlugin, cluster_from_params
from .release import GitHubReleaseSource, ReleaseSource, release_url
from .spec import (
    PDNode,
    TiKVClusterSpec,
    TiKVGlobal,
    TiKVNode,
    TiKVStorage,
    extract_spec,
    validate_topology,
)
from .state import DeploymentState, DeploymentTracker

__all__ = [
    "TiKVClusterPlugin",
    "BootstrapTimings",
    "cluster_from_params",
    # Topology
    "PDNode",
    "TiKVNode",
    "TiKVStorage",
    "TiKVGlobal",
    "TiKVClusterSpec",
    "extract_spec",
    "validate_topology",
    "render_pd_config",
    "render_tikv_config",
    # Convergence
    "ConvergencePoller",
    "ConvergenceResult",
    "HealthTarget",
    # State
    "DeploymentState",
    "DeploymentTracker",
    # Binaries
    "ReleaseSource",
    "GitHubReleaseSource",
    "release_url",
]
