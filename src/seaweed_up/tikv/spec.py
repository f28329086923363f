"""TiKV cluster topology derived from a seaweed-up cluster specification.

Master servers become Placement Driver (PD) nodes and volume servers become
TiKV storage nodes, one-to-one by list position.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..cluster.spec import ClusterSpec
from ..errors import ValidationError

DEFAULT_VERSION = "7.5.0"
DEFAULT_DEPLOY_DIR = "/opt/tikv"
DEFAULT_DATA_DIR = "/data/tikv"
DEFAULT_LOG_DIR = "/var/log/tikv"

PD_CLIENT_PORT = 2379
PD_PEER_PORT = 2380
TIKV_PORT = 20160
TIKV_STATUS_PORT = 20180

# Minimum node counts for a replicated deployment.
MIN_PD_NODES = 3
MIN_TIKV_NODES = 3


@dataclass(frozen=True)
class PDNode:
    """Placement Driver node."""

    host: str
    data_dir: str
    log_dir: str
    client_port: int = PD_CLIENT_PORT
    peer_port: int = PD_PEER_PORT
    ssh_port: int = 22
    user: str = "root"

    @property
    def client_url(self) -> str:
        return f"http://{self.host}:{self.client_port}"

    @property
    def peer_url(self) -> str:
        return f"http://{self.host}:{self.peer_port}"


@dataclass(frozen=True)
class TiKVStorage:
    engine: str = "rocksdb"
    capacity: str = "500GB"


@dataclass(frozen=True)
class TiKVNode:
    """TiKV storage node."""

    host: str
    data_dir: str
    log_dir: str
    port: int = TIKV_PORT
    status_port: int = TIKV_STATUS_PORT
    ssh_port: int = 22
    user: str = "root"
    storage: TiKVStorage = field(default_factory=TiKVStorage)


@dataclass(frozen=True)
class TiKVGlobal:
    version: str = DEFAULT_VERSION
    user: str = "tikv"
    group: str = "tikv"
    deploy_dir: str = DEFAULT_DEPLOY_DIR
    data_dir: str = DEFAULT_DATA_DIR
    log_dir: str = DEFAULT_LOG_DIR
    ssh_port: int = 22
    ssh_user: str = "root"
    ssh_timeout: str = "30s"


@dataclass(frozen=True)
class TiKVClusterSpec:
    """A derived TiKV topology plus the cluster it came from."""

    cluster: ClusterSpec
    pd: tuple[PDNode, ...]
    tikv: tuple[TiKVNode, ...]
    global_: TiKVGlobal = field(default_factory=TiKVGlobal)

    @property
    def name(self) -> str:
        return self.cluster.name

    @property
    def version(self) -> str:
        return self.global_.version

    def pd_endpoints(self) -> list[str]:
        return [f"{pd.host}:{pd.client_port}" for pd in self.pd]

    def initial_cluster(self) -> str:
        return ",".join(f"pd-{i}={pd.peer_url}" for i, pd in enumerate(self.pd, start=1))


def extract_spec(cluster: ClusterSpec | None) -> TiKVClusterSpec:
    """Derive the TiKV topology from a cluster specification.

    Args:
        cluster: Source specification; never modified

    Returns:
        TiKVClusterSpec with one PD node per master server and one TiKV node
        per volume server, in list order.

    Raises:
        ValidationError: If cluster is None or has no master or volume servers
    """
    if cluster is None:
        raise ValidationError("cluster specification is nil")
    if not cluster.master_servers:
        raise ValidationError("no master servers defined for PD nodes")
    if not cluster.volume_servers:
        raise ValidationError("no volume servers defined for TiKV nodes")

    global_ = TiKVGlobal()

    pd_nodes = tuple(
        PDNode(
            host=master.host,
            data_dir=f"{global_.data_dir}/pd-{i}",
            log_dir=f"{global_.log_dir}/pd-{i}",
        )
        for i, master in enumerate(cluster.master_servers, start=1)
    )
    tikv_nodes = tuple(
        TiKVNode(
            host=volume.host,
            data_dir=f"{global_.data_dir}/tikv-{i}",
            log_dir=f"{global_.log_dir}/tikv-{i}",
        )
        for i, volume in enumerate(cluster.volume_servers, start=1)
    )

    return TiKVClusterSpec(cluster=cluster, pd=pd_nodes, tikv=tikv_nodes, global_=global_)


def validate_topology(spec: TiKVClusterSpec) -> None:
    """Check node counts and required per-node fields.

    Raises:
        ValidationError: Naming the offending role and node index
    """
    if len(spec.pd) < MIN_PD_NODES:
        raise ValidationError(
            f"minimum {MIN_PD_NODES} PD nodes required for production, got {len(spec.pd)}"
        )
    if len(spec.tikv) < MIN_TIKV_NODES:
        raise ValidationError(
            f"minimum {MIN_TIKV_NODES} TiKV nodes required for replication, got {len(spec.tikv)}"
        )

    for role, nodes in (("PD", spec.pd), ("TiKV", spec.tikv)):
        for i, node in enumerate(nodes):
            if not node.host:
                raise ValidationError(f"{role} node {i} missing host", data={"index": i})
            if not node.data_dir:
                raise ValidationError(f"{role} node {i} missing data directory", data={"index": i})
