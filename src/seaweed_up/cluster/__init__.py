"""Cluster topology and the remote collaborators plugins operate through."""

from .executor import RemoteExecutor, SSHRemoteExecutor
from .health import HealthProbe, HttpHealthProbe, check_node
from .spec import (
    ClusterSpec,
    FilerServerSpec,
    FolderSpec,
    MasterServerSpec,
    VolumeServerSpec,
    load_cluster_spec,
)

__all__ = [
    # Specification
    "ClusterSpec",
    "MasterServerSpec",
    "VolumeServerSpec",
    "FilerServerSpec",
    "FolderSpec",
    "load_cluster_spec",
    # Collaborators
    "RemoteExecutor",
    "SSHRemoteExecutor",
    "HealthProbe",
    "HttpHealthProbe",
    "check_node",
]
