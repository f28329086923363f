"""Built-in plugin that bootstraps a TiKV cluster.

Deployment runs in phases: derive the topology, validate it, provision the
hosts (binaries, directories, configs), start PD then TiKV with a stagger
between nodes, wait for the PD quorum and the TiKV nodes to converge, and
run a final health pass. Nothing already started is rolled back on failure.
"""

from __future__ import annotations

import asyncio
import os
import tempfile
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..cluster.executor import RemoteExecutor, SSHRemoteExecutor
from ..cluster.health import HealthProbe, HttpHealthProbe, check_node
from ..cluster.spec import ClusterSpec
from ..config import CoreConfig
from ..errors import ExecutionError, HealthCheckError, ValidationError
from ..plugins.interface import ClusterPlugin, MonitoringPlugin
from ..plugins.types import (
    AlertDefinition,
    ComponentHealth,
    HealthStatus,
    OperationResult,
    OperationType,
)
from ..shared.logging import plugin_logger
from ..shared.paths import BINARY_CACHE_DIR
from .configs import PD_CONFIG_FILE, TIKV_CONFIG_FILE, render_pd_config, render_tikv_config
from .health import (
    PD_HEALTH_PATH,
    TIKV_STATUS_PATH,
    Clock,
    ConvergencePoller,
    ConvergenceResult,
    HealthTarget,
    Sleep,
)
from .release import PD_BINARY, TIKV_BINARY, GitHubReleaseSource, ReleaseSource
from .spec import PDNode, TiKVClusterSpec, TiKVNode, extract_spec, validate_topology
from .state import DeploymentState, DeploymentTracker

PLUGIN_NAME = "tikv-cluster"
PLUGIN_VERSION = "1.0.0"


@dataclass(frozen=True)
class BootstrapTimings:
    """Delays and deadlines of a bootstrap, in seconds."""

    pd_stagger: float = 5.0
    tikv_stagger: float = 3.0
    poll_interval: float = 10.0
    pd_timeout: float = 120.0
    tikv_timeout: float = 180.0


def _pd_target(pd: PDNode) -> HealthTarget:
    return HealthTarget("PD", pd.host, pd.client_port, PD_HEALTH_PATH)


def _tikv_target(tikv: TiKVNode) -> HealthTarget:
    return HealthTarget("TiKV", tikv.host, tikv.status_port, TIKV_STATUS_PATH)


def cluster_from_params(params: Mapping[str, Any]) -> ClusterSpec:
    """Read ``params["cluster"]`` as a ClusterSpec (or a mapping parsed into one).

    Raises:
        ValidationError: If missing or of the wrong type
    """
    cluster = params.get("cluster")
    if cluster is None:
        raise ValidationError("cluster specification not found in params")
    if isinstance(cluster, ClusterSpec):
        return cluster
    if isinstance(cluster, Mapping):
        return ClusterSpec.from_dict(dict(cluster))
    raise ValidationError(
        f"invalid cluster specification type: {type(cluster).__name__}"
    )


class TiKVClusterPlugin(ClusterPlugin, MonitoringPlugin):
    """Deploys and monitors a TiKV cluster on the hosts of a seaweed-up cluster."""

    def __init__(
        self,
        executor: RemoteExecutor | None = None,
        probe: HealthProbe | None = None,
        release_source: ReleaseSource | None = None,
        binary_dir: str | Path | None = None,
        timings: BootstrapTimings | None = None,
        sleep: Sleep | None = None,
        clock: Clock | None = None,
    ):
        """Initialize plugin.

        Args:
            executor: Remote command runner (default: ssh/scp)
            probe: Node health probe (default: httpx)
            release_source: Binary downloader (default: GitHub releases)
            binary_dir: Local binary cache (default: /tmp/tikv-binaries)
            timings: Staggers, poll interval, and convergence deadlines
            sleep: Awaitable sleep, replaceable for tests
            clock: Monotonic clock, replaceable for tests
        """
        self.executor = executor or SSHRemoteExecutor()
        self.probe = probe or HttpHealthProbe()
        self.release_source = release_source or GitHubReleaseSource()
        self.binary_dir = Path(binary_dir) if binary_dir else BINARY_CACHE_DIR
        self.timings = timings or BootstrapTimings()
        self.sleep = sleep or asyncio.sleep
        self.clock = clock or time.monotonic
        self.poller = ConvergencePoller(
            self.probe, self.timings.poll_interval, sleep=self.sleep, clock=self.clock
        )
        self.config: dict[str, Any] = {}
        self.last_deployment: DeploymentTracker | None = None
        self.log = plugin_logger(__name__, PLUGIN_NAME)

    @classmethod
    def from_config(cls, config: CoreConfig, **kwargs: Any) -> TiKVClusterPlugin:
        """Build the plugin with its binary cache taken from the core config."""
        return cls(binary_dir=config.binary_cache_dir, **kwargs)

    @property
    def name(self) -> str:
        return PLUGIN_NAME

    @property
    def version(self) -> str:
        return PLUGIN_VERSION

    @property
    def description(self) -> str:
        return "TiKV distributed key-value database cluster management"

    @property
    def author(self) -> str:
        return "SeaweedFS Team"

    async def initialize(self, config: dict[str, Any]) -> None:
        self.config = dict(config)

    async def validate(self) -> None:
        pass

    async def cleanup(self) -> None:
        pass

    def supported_operations(self) -> list[OperationType]:
        return [
            OperationType.DEPLOY,
            OperationType.UPGRADE,
            OperationType.SCALE,
            OperationType.MONITOR,
            OperationType.VALIDATE,
            OperationType.EXPORT,
        ]

    async def execute(
        self, operation: OperationType, params: dict[str, Any]
    ) -> OperationResult:
        if operation == OperationType.DEPLOY:
            return await self.deploy_cluster(params)
        if operation == OperationType.UPGRADE:
            return self._not_performed("TiKV cluster upgraded successfully")
        if operation == OperationType.SCALE:
            return self._not_performed("TiKV cluster scaled successfully")
        if operation == OperationType.MONITOR:
            return await self.monitor_cluster(params)
        if operation == OperationType.VALIDATE:
            await self.validate_cluster(cluster_from_params(params))
            return OperationResult.ok("TiKV cluster specification is valid")
        return OperationResult.failure(
            message=f"unsupported operation: {operation.value}",
            error="operation not implemented",
        )

    @staticmethod
    def _not_performed(message: str) -> OperationResult:
        # Rolling upgrade and node add/remove are not implemented.
        return OperationResult.ok(message, data={"performed": False})

    # ------------------------------------------------------------------
    # Cluster lifecycle
    # ------------------------------------------------------------------

    def extract_spec(self, cluster: ClusterSpec | None) -> TiKVClusterSpec:
        return extract_spec(cluster)

    async def validate_cluster(self, cluster: ClusterSpec) -> None:
        try:
            spec = extract_spec(cluster)
        except ValidationError as e:
            raise ValidationError(
                f"invalid TiKV specification: {e.message}", plugin=self.name
            ) from e
        validate_topology(spec)

    async def pre_deploy(self, cluster: ClusterSpec) -> None:
        """Provision every host: binaries, directories, and configuration files."""
        spec = extract_spec(cluster)
        await self.download_binaries(spec.version)
        await self.create_directories(spec)
        await self.transfer_binaries(spec)
        await self.write_configs(spec)

    async def post_deploy(self, cluster: ClusterSpec) -> None:
        """Wait for convergence, then verify every node once."""
        spec = extract_spec(cluster)
        await self.wait_for_pd_cluster(spec.pd)
        await self.wait_for_tikv_nodes(spec.tikv)
        await self.verify_cluster_health(spec)

    async def pre_upgrade(self, cluster: ClusterSpec, new_version: str) -> None:
        pass

    async def post_upgrade(self, cluster: ClusterSpec, new_version: str) -> None:
        pass

    async def deploy(self, cluster: ClusterSpec) -> OperationResult:
        """Run the whole bootstrap, recording each phase in ``last_deployment``.

        On failure the tracker is marked failed and the error propagates.
        """
        tracker = DeploymentTracker(cluster.name if cluster is not None else "")
        self.last_deployment = tracker
        log = self.log.bind(cluster=tracker.cluster_name)

        try:
            spec = extract_spec(cluster)
            tracker.advance(DeploymentState.EXTRACTED)

            await self.validate_cluster(cluster)
            tracker.advance(DeploymentState.VALIDATED)

            await self.pre_deploy(cluster)
            tracker.advance(DeploymentState.PROVISIONED)

            result = await self.deploy_cluster({"cluster": cluster})
            tracker.advance(DeploymentState.STARTED)

            await self.wait_for_pd_cluster(spec.pd)
            await self.wait_for_tikv_nodes(spec.tikv)
            tracker.advance(DeploymentState.CONVERGED)

            await self.verify_cluster_health(spec)
            tracker.advance(DeploymentState.VERIFIED)
        except BaseException as e:
            phase = tracker.state
            tracker.fail(str(e) or type(e).__name__)
            log.error(
                "TiKV deployment failed",
                after=phase.value if phase else None,
                error=str(e),
            )
            raise

        log.info("TiKV deployment complete")
        return OperationResult.ok(
            "TiKV cluster deployed and verified",
            data={**result.data, "state": tracker.state.value},
        )

    # ------------------------------------------------------------------
    # Provisioning
    # ------------------------------------------------------------------

    async def download_binaries(self, version: str) -> None:
        """Fetch pd-server and tikv-server into the binary cache, skipping present files."""
        self.binary_dir.mkdir(parents=True, exist_ok=True)
        for name in (PD_BINARY, TIKV_BINARY):
            path = self.binary_dir / name
            if path.exists():
                continue
            try:
                await self.release_source.fetch(name, version, path)
            except ExecutionError as e:
                raise ExecutionError(
                    f"failed to download TiKV binaries: {name}: {e.message}",
                    plugin=self.name,
                    data=e.data,
                ) from e
            os.chmod(path, 0o755)

    async def _remote(self, host: str, command: str, failure: str) -> str:
        try:
            return await self.executor.execute(host, command)
        except ExecutionError as e:
            raise ExecutionError(
                f"{failure}: {e.message}",
                plugin=self.name,
                data={"host": host, "command": command},
                output=e.output,
                exit_code=e.exit_code,
            ) from e

    async def _copy(
        self, local_path: str | Path, host: str, remote_path: str, failure: str
    ) -> None:
        try:
            await self.executor.copy_file(local_path, host, remote_path)
        except ExecutionError as e:
            raise ExecutionError(
                f"{failure}: {e.message}",
                plugin=self.name,
                data={"host": host, "remote_path": remote_path},
                output=e.output,
                exit_code=e.exit_code,
            ) from e

    async def create_directories(self, spec: TiKVClusterSpec) -> None:
        nodes: list[PDNode | TiKVNode] = [*spec.pd, *spec.tikv]
        for node in nodes:
            for directory in (node.data_dir, node.log_dir, spec.global_.deploy_dir):
                await self._remote(
                    node.host,
                    f"mkdir -p {directory}",
                    f"failed to create directory {directory} on {node.host}",
                )

    async def transfer_binaries(self, spec: TiKVClusterSpec) -> None:
        deploy_dir = spec.global_.deploy_dir
        for binary, nodes in ((PD_BINARY, spec.pd), (TIKV_BINARY, spec.tikv)):
            for node in nodes:
                await self._copy(
                    self.binary_dir / binary,
                    node.host,
                    f"{deploy_dir}/{binary}",
                    f"failed to transfer {binary} to {node.host}",
                )

    async def write_configs(self, spec: TiKVClusterSpec) -> None:
        for i, pd in enumerate(spec.pd):
            await self._write_remote_file(
                pd.host, f"{pd.data_dir}/{PD_CONFIG_FILE}", render_pd_config(spec, i)
            )
        for i, tikv in enumerate(spec.tikv):
            await self._write_remote_file(
                tikv.host, f"{tikv.data_dir}/{TIKV_CONFIG_FILE}", render_tikv_config(spec, i)
            )

    async def _write_remote_file(self, host: str, remote_path: str, content: str) -> None:
        fd, temp_path = tempfile.mkstemp(prefix="tikv-config-", suffix=".toml")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            await self._copy(
                temp_path, host, remote_path, f"failed to write {remote_path} to {host}"
            )
        finally:
            os.unlink(temp_path)

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------

    @staticmethod
    def pd_start_command(spec: TiKVClusterSpec, pd: PDNode) -> str:
        return (
            f"cd {spec.global_.deploy_dir} && ./{PD_BINARY} "
            f"--config={pd.data_dir}/{PD_CONFIG_FILE} > {pd.log_dir}/pd.log 2>&1 &"
        )

    @staticmethod
    def tikv_start_command(spec: TiKVClusterSpec, tikv: TiKVNode) -> str:
        return (
            f"cd {spec.global_.deploy_dir} && ./{TIKV_BINARY} "
            f"--config={tikv.data_dir}/{TIKV_CONFIG_FILE} > {tikv.log_dir}/tikv.log 2>&1 &"
        )

    async def deploy_cluster(self, params: Mapping[str, Any]) -> OperationResult:
        """Start PD nodes then TiKV nodes, staggering each start.

        The first failed start aborts the remaining ones.

        Raises:
            ValidationError: If params carry no usable cluster
            ExecutionError: If a start command fails; ``result`` holds the
                failure result with the hosts started so far
        """
        cluster = cluster_from_params(params)
        spec = extract_spec(cluster)
        started: list[str] = []

        phases = (
            ("PD", spec.pd, self.pd_start_command, self.timings.pd_stagger),
            ("TiKV", spec.tikv, self.tikv_start_command, self.timings.tikv_stagger),
        )
        for role, nodes, start_command, stagger in phases:
            for i, node in enumerate(nodes, start=1):
                try:
                    await self._remote(
                        node.host,
                        start_command(spec, node),
                        f"failed to start {role} node {i} on {node.host}",
                    )
                except ExecutionError as e:
                    e.result = OperationResult.failure(
                        message=f"{role} cluster deployment failed",
                        error=e.message,
                        data={"started": list(started)},
                    )
                    raise
                started.append(node.host)
                self.log.info("Node started", role=role, host=node.host)
                await self.sleep(stagger)

        return OperationResult.ok(
            "TiKV cluster deployed successfully",
            data={
                "pd_nodes": [pd.host for pd in spec.pd],
                "tikv_nodes": [tikv.host for tikv in spec.tikv],
                "cluster_name": cluster.name,
                "version": spec.version,
                "started": started,
            },
        )

    # ------------------------------------------------------------------
    # Convergence and health
    # ------------------------------------------------------------------

    async def wait_for_pd_cluster(self, pd_nodes: Sequence[PDNode]) -> ConvergenceResult:
        """Wait until any PD node reports healthy.

        Raises:
            DeadlineExceededError: After the PD timeout
        """
        return await self.poller.wait_for_any(
            [_pd_target(pd) for pd in pd_nodes], self.timings.pd_timeout, what="PD cluster"
        )

    async def wait_for_tikv_nodes(
        self, tikv_nodes: Sequence[TiKVNode]
    ) -> ConvergenceResult:
        """Wait until every TiKV node reports healthy in the same pass.

        Raises:
            DeadlineExceededError: After the TiKV timeout
        """
        return await self.poller.wait_for_all(
            [_tikv_target(tikv) for tikv in tikv_nodes],
            self.timings.tikv_timeout,
            what="TiKV nodes",
        )

    async def verify_cluster_health(self, spec: TiKVClusterSpec) -> None:
        """Probe every node once.

        Raises:
            HealthCheckError: For the first unhealthy node
        """
        for target in self._targets(spec):
            try:
                await check_node(self.probe, target.host, target.port, target.path)
            except HealthCheckError as e:
                raise HealthCheckError(
                    f"{target.role} node {target.host} is unhealthy: {e.message}",
                    plugin=self.name,
                    host=target.host,
                    port=target.port,
                    status_code=e.status_code,
                ) from e

    @staticmethod
    def _targets(spec: TiKVClusterSpec) -> list[HealthTarget]:
        return [_pd_target(pd) for pd in spec.pd] + [_tikv_target(t) for t in spec.tikv]

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------

    async def check_health(self, cluster: ClusterSpec) -> HealthStatus:
        """Single health pass over all nodes."""
        spec = extract_spec(cluster)
        components: dict[str, ComponentHealth] = {}
        for role, targets in (
            ("pd", [_pd_target(pd) for pd in spec.pd]),
            ("tikv", [_tikv_target(t) for t in spec.tikv]),
        ):
            for i, target in enumerate(targets, start=1):
                healthy = await self.poller.is_healthy(target)
                components[f"{role}-{i}"] = (
                    ComponentHealth.HEALTHY if healthy else ComponentHealth.CRITICAL
                )

        def any_healthy(role: str) -> bool:
            return any(
                state == ComponentHealth.HEALTHY
                for key, state in components.items()
                if key.startswith(f"{role}-")
            )

        if all(state == ComponentHealth.HEALTHY for state in components.values()):
            overall, message = ComponentHealth.HEALTHY, "all nodes healthy"
        elif not any_healthy("pd") or not any_healthy("tikv"):
            overall, message = ComponentHealth.CRITICAL, "no healthy PD or TiKV node"
        else:
            overall, message = ComponentHealth.WARNING, "some nodes unhealthy"
        return HealthStatus(overall=overall, components=components, message=message)

    async def collect_metrics(self, cluster: ClusterSpec) -> dict[str, Any]:
        return _metrics(extract_spec(cluster), await self.check_health(cluster))

    async def generate_alert(self, alert: AlertDefinition) -> None:
        self.log.warning(
            "TiKV alert",
            alert=alert.name,
            severity=alert.severity,
            summary=alert.summary,
            labels=alert.labels,
        )

    async def monitor_cluster(self, params: Mapping[str, Any]) -> OperationResult:
        cluster = cluster_from_params(params)
        status = await self.check_health(cluster)
        return OperationResult.ok(
            "TiKV cluster monitoring data collected",
            data={
                **_metrics(extract_spec(cluster), status),
                "components": {k: v.value for k, v in status.components.items()},
                "message": status.message,
            },
        )


def _metrics(spec: TiKVClusterSpec, status: HealthStatus) -> dict[str, Any]:
    healthy = [k for k, v in status.components.items() if v == ComponentHealth.HEALTHY]
    return {
        "pd_nodes": len(spec.pd),
        "tikv_nodes": len(spec.tikv),
        "healthy_pd_nodes": sum(1 for k in healthy if k.startswith("pd-")),
        "healthy_tikv_nodes": sum(1 for k in healthy if k.startswith("tikv-")),
        "overall": status.overall.value,
    }
