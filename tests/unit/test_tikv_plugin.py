"""Unit tests for the TiKV cluster plugin."""

from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest

from seaweed_up.config import CoreConfig
from seaweed_up.errors import (
    DeadlineExceededError,
    ExecutionError,
    HealthCheckError,
    ValidationError,
)
from seaweed_up.plugins import (
    AlertDefinition,
    Capability,
    ComponentHealth,
    OperationType,
)
from seaweed_up.tikv import (
    BootstrapTimings,
    DeploymentState,
    TiKVClusterPlugin,
    cluster_from_params,
    extract_spec,
)
from tests.mocks import make_cluster, refused

pytestmark = pytest.mark.unit


@pytest.fixture
def tikv(fake_executor, probe, release_source, fake_clock, tmp_path) -> TiKVClusterPlugin:
    return TiKVClusterPlugin(
        executor=fake_executor,
        probe=probe,
        release_source=release_source,
        binary_dir=tmp_path / "bin",
        sleep=fake_clock.sleep,
        clock=fake_clock,
    )


class TestIdentity:
    """Tests for plugin identity and declared operations."""

    def test_identity(self, tikv):
        assert tikv.name == "tikv-cluster"
        assert tikv.version == "1.0.0"
        assert tikv.author == "SeaweedFS Team"
        assert "TiKV" in tikv.description

    def test_capabilities(self, tikv):
        assert tikv.capabilities() == {Capability.CLUSTER, Capability.MONITORING}

    def test_supported_operations(self, tikv):
        assert tikv.supported_operations() == [
            OperationType.DEPLOY,
            OperationType.UPGRADE,
            OperationType.SCALE,
            OperationType.MONITOR,
            OperationType.VALIDATE,
            OperationType.EXPORT,
        ]

    def test_default_timings(self):
        timings = BootstrapTimings()
        assert (timings.pd_stagger, timings.tikv_stagger) == (5.0, 3.0)
        assert timings.poll_interval == 10.0
        assert (timings.pd_timeout, timings.tikv_timeout) == (120.0, 180.0)

    def test_from_config_uses_binary_cache(self, tmp_path, fake_executor):
        config = CoreConfig(binary_cache_dir=tmp_path / "cache")

        plugin = TiKVClusterPlugin.from_config(config, executor=fake_executor)

        assert plugin.binary_dir == tmp_path / "cache"
        assert plugin.executor is fake_executor


class TestExecuteDispatch:
    """Tests for execute routing."""

    @pytest.mark.asyncio
    async def test_unimplemented_operation_is_a_failure_result(self, tikv):
        result = await tikv.execute(OperationType.EXPORT, {})
        assert result.success is False
        assert result.error == "operation not implemented"
        assert "export" in result.message

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation", [OperationType.UPGRADE, OperationType.SCALE])
    async def test_upgrade_and_scale_are_not_performed(self, tikv, operation, fake_executor):
        result = await tikv.execute(operation, {})
        assert result.success
        assert result.data == {"performed": False}
        assert fake_executor.commands == []

    @pytest.mark.asyncio
    async def test_validate_operation(self, tikv, cluster):
        result = await tikv.execute(OperationType.VALIDATE, {"cluster": cluster})
        assert result.success

    @pytest.mark.asyncio
    async def test_validate_operation_rejects_small_cluster(self, tikv):
        with pytest.raises(ValidationError, match="minimum 3 PD nodes"):
            await tikv.execute(OperationType.VALIDATE, {"cluster": make_cluster(2, 3)})


class TestClusterFromParams:
    """Tests for cluster_from_params."""

    def test_missing(self):
        with pytest.raises(ValidationError, match="not found"):
            cluster_from_params({})

    def test_wrong_type(self):
        with pytest.raises(ValidationError, match="invalid cluster specification type"):
            cluster_from_params({"cluster": 42})

    def test_mapping(self):
        cluster = cluster_from_params(
            {"cluster": {"cluster_name": "m", "master_servers": [{"ip": "1.1.1.1"}]}}
        )
        assert cluster.name == "m"
        assert cluster.master_servers[0].host == "1.1.1.1"


class TestValidateCluster:
    """Tests for validate_cluster."""

    @pytest.mark.asyncio
    async def test_valid(self, tikv, cluster):
        await tikv.validate_cluster(cluster)

    @pytest.mark.asyncio
    async def test_none(self, tikv):
        with pytest.raises(ValidationError, match="invalid TiKV specification"):
            await tikv.validate_cluster(None)

    @pytest.mark.asyncio
    async def test_two_masters(self, tikv):
        with pytest.raises(ValidationError, match="got 2"):
            await tikv.validate_cluster(make_cluster(2, 3))


class TestPreDeploy:
    """Tests for provisioning."""

    @pytest.mark.asyncio
    async def test_downloads_binaries_once(self, tikv, cluster, release_source, tmp_path):
        await tikv.pre_deploy(cluster)
        await tikv.pre_deploy(cluster)

        assert release_source.fetched == [("pd-server", "7.5.0"), ("tikv-server", "7.5.0")]
        for name in ("pd-server", "tikv-server"):
            mode = os.stat(tmp_path / "bin" / name).st_mode
            assert stat.S_IMODE(mode) == 0o755

    @pytest.mark.asyncio
    async def test_creates_directories_on_every_node(self, tikv, cluster, fake_executor):
        await tikv.pre_deploy(cluster)

        mkdirs = [(h, c) for h, c in fake_executor.commands if c.startswith("mkdir -p")]
        assert len(mkdirs) == 6 * 3
        assert ("10.0.0.1", "mkdir -p /data/tikv/pd-1") in mkdirs
        assert ("10.0.0.1", "mkdir -p /var/log/tikv/pd-1") in mkdirs
        assert ("10.0.1.3", "mkdir -p /data/tikv/tikv-3") in mkdirs
        assert ("10.0.1.3", "mkdir -p /opt/tikv") in mkdirs

    @pytest.mark.asyncio
    async def test_transfers_role_binaries(self, tikv, cluster, fake_executor):
        await tikv.pre_deploy(cluster)

        binaries = [
            (Path(src).name, host, dest)
            for src, host, dest in fake_executor.copies
            if not dest.endswith(".toml")
        ]
        assert ("pd-server", "10.0.0.2", "/opt/tikv/pd-server") in binaries
        assert ("tikv-server", "10.0.1.2", "/opt/tikv/tikv-server") in binaries
        assert len(binaries) == 6

    @pytest.mark.asyncio
    async def test_writes_configs_and_removes_temp_files(self, tikv, cluster, fake_executor):
        await tikv.pre_deploy(cluster)

        pd_config = fake_executor.contents[("10.0.0.3", "/data/tikv/pd-3/pd.toml")]
        assert 'name = "pd-3"' in pd_config
        tikv_config = fake_executor.contents[("10.0.1.1", "/data/tikv/tikv-1/tikv.toml")]
        assert 'addr = "10.0.1.1:20160"' in tikv_config

        temp_files = [src for src, _, dest in fake_executor.copies if dest.endswith(".toml")]
        assert len(temp_files) == 6
        assert not any(Path(src).exists() for src in temp_files)

    @pytest.mark.asyncio
    async def test_mkdir_failure(self, tikv, cluster, fake_executor):
        fake_executor.fail_on.append("mkdir -p /var/log/tikv/tikv-2")
        with pytest.raises(ExecutionError, match="failed to create directory"):
            await tikv.pre_deploy(cluster)

    @pytest.mark.asyncio
    async def test_download_failure(self, tikv, cluster, release_source):
        async def broken_fetch(name, version, dest):
            raise ExecutionError("download failed: HTTP 404")

        release_source.fetch = broken_fetch
        with pytest.raises(ExecutionError, match="failed to download TiKV binaries"):
            await tikv.pre_deploy(cluster)


class TestDeployCluster:
    """Tests for the deploy operation (staggered start)."""

    @pytest.mark.asyncio
    async def test_start_order_commands_and_staggers(
        self, tikv, cluster, fake_executor, fake_clock
    ):
        result = await tikv.execute(OperationType.DEPLOY, {"cluster": cluster})

        assert result.success
        assert [h for h, _ in fake_executor.commands] == [
            "10.0.0.1", "10.0.0.2", "10.0.0.3", "10.0.1.1", "10.0.1.2", "10.0.1.3",
        ]
        assert fake_executor.commands[0][1] == (
            "cd /opt/tikv && ./pd-server --config=/data/tikv/pd-1/pd.toml "
            "> /var/log/tikv/pd-1/pd.log 2>&1 &"
        )
        assert fake_executor.commands[4][1] == (
            "cd /opt/tikv && ./tikv-server --config=/data/tikv/tikv-2/tikv.toml "
            "> /var/log/tikv/tikv-2/tikv.log 2>&1 &"
        )
        assert fake_clock.sleeps == [5.0, 5.0, 5.0, 3.0, 3.0, 3.0]

    @pytest.mark.asyncio
    async def test_result_data(self, tikv, cluster):
        result = await tikv.deploy_cluster({"cluster": cluster})
        assert result.data["pd_nodes"] == ["10.0.0.1", "10.0.0.2", "10.0.0.3"]
        assert result.data["tikv_nodes"] == ["10.0.1.1", "10.0.1.2", "10.0.1.3"]
        assert result.data["cluster_name"] == "test-cluster"
        assert result.data["version"] == "7.5.0"
        assert len(result.data["started"]) == 6

    @pytest.mark.asyncio
    async def test_first_failure_aborts(self, tikv, cluster, fake_executor):
        fake_executor.fail_on.append("10.0.0.2")

        with pytest.raises(ExecutionError) as exc_info:
            await tikv.deploy_cluster({"cluster": cluster})

        error = exc_info.value
        assert "failed to start PD node 2 on 10.0.0.2" in error.message
        assert error.result.success is False
        assert error.result.message == "PD cluster deployment failed"
        assert error.result.data["started"] == ["10.0.0.1"]
        assert fake_executor.hosts_for("tikv-server") == []

    @pytest.mark.asyncio
    async def test_tikv_failure_reports_started_pd(self, tikv, cluster, fake_executor):
        fake_executor.fail_on.append("10.0.1.1")

        with pytest.raises(ExecutionError) as exc_info:
            await tikv.deploy_cluster({"cluster": cluster})

        assert exc_info.value.result.message == "TiKV cluster deployment failed"
        assert exc_info.value.result.data["started"] == ["10.0.0.1", "10.0.0.2", "10.0.0.3"]

    @pytest.mark.asyncio
    async def test_missing_cluster(self, tikv):
        with pytest.raises(ValidationError):
            await tikv.deploy_cluster({})


class TestConvergence:
    """Tests for waits, verification, and post_deploy."""

    @pytest.mark.asyncio
    async def test_pd_wait_succeeds_on_third_poll(self, tikv, probe, fake_clock):
        spec = extract_spec(make_cluster())
        probe.script("10.0.0.1", 2379, 503, 503, 200)
        probe.script("10.0.0.2", 2379, refused("10.0.0.2", 2379))
        probe.script("10.0.0.3", 2379, 503)

        result = await tikv.wait_for_pd_cluster(spec.pd)

        assert result.passes == 3
        assert fake_clock.now == 20
        assert {path for _, _, path in probe.calls} == {"/pd/api/v1/health"}

    @pytest.mark.asyncio
    async def test_pd_wait_times_out(self, tikv, probe, fake_clock):
        spec = extract_spec(make_cluster())
        probe.default = 503
        with pytest.raises(DeadlineExceededError):
            await tikv.wait_for_pd_cluster(spec.pd)
        assert 120 <= fake_clock.now < 130

    @pytest.mark.asyncio
    async def test_tikv_wait_times_out(self, tikv, probe, fake_clock):
        spec = extract_spec(make_cluster())
        probe.script("10.0.1.2", 20180, 503)

        with pytest.raises(DeadlineExceededError):
            await tikv.wait_for_tikv_nodes(spec.tikv)

        assert 180 <= fake_clock.now < 190
        assert {(port, path) for _, port, path in probe.calls} == {(20180, "/status")}

    @pytest.mark.asyncio
    async def test_custom_timings(
        self, fake_executor, probe, release_source, fake_clock, tmp_path
    ):
        plugin = TiKVClusterPlugin(
            executor=fake_executor,
            probe=probe,
            release_source=release_source,
            binary_dir=tmp_path,
            timings=BootstrapTimings(poll_interval=1, tikv_timeout=5),
            sleep=fake_clock.sleep,
            clock=fake_clock,
        )
        probe.default = 503
        with pytest.raises(DeadlineExceededError):
            await plugin.wait_for_tikv_nodes(extract_spec(make_cluster()).tikv)
        assert fake_clock.now == 5

    @pytest.mark.asyncio
    async def test_verify_names_unhealthy_node(self, tikv, probe):
        probe.script("10.0.1.2", 20180, 503)
        with pytest.raises(HealthCheckError) as exc_info:
            await tikv.verify_cluster_health(extract_spec(make_cluster()))
        assert "TiKV node 10.0.1.2 is unhealthy" in exc_info.value.message
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_verify_transport_error(self, tikv, probe):
        probe.script("10.0.0.1", 2379, refused("10.0.0.1", 2379))
        with pytest.raises(HealthCheckError, match="PD node 10.0.0.1 is unhealthy"):
            await tikv.verify_cluster_health(extract_spec(make_cluster()))

    @pytest.mark.asyncio
    async def test_post_deploy(self, tikv, cluster, probe):
        await tikv.post_deploy(cluster)
        assert len(probe.calls) > 0

    @pytest.mark.asyncio
    async def test_upgrade_hooks_are_noops(self, tikv, cluster, fake_executor):
        await tikv.pre_upgrade(cluster, "8.0.0")
        await tikv.post_upgrade(cluster, "8.0.0")
        assert fake_executor.commands == []


class TestFullDeploy:
    """Tests for the tracked end-to-end deploy."""

    @pytest.mark.asyncio
    async def test_success_reaches_verified(self, tikv, cluster):
        result = await tikv.deploy(cluster)

        assert result.success
        assert result.data["state"] == "verified"
        assert tikv.last_deployment.states() == [
            DeploymentState.EXTRACTED,
            DeploymentState.VALIDATED,
            DeploymentState.PROVISIONED,
            DeploymentState.STARTED,
            DeploymentState.CONVERGED,
            DeploymentState.VERIFIED,
        ]

    @pytest.mark.asyncio
    async def test_validation_failure_marks_failed(self, tikv, fake_executor):
        with pytest.raises(ValidationError):
            await tikv.deploy(make_cluster(2, 3))

        assert tikv.last_deployment.states() == [
            DeploymentState.EXTRACTED,
            DeploymentState.FAILED,
        ]
        assert fake_executor.commands == []

    @pytest.mark.asyncio
    async def test_convergence_failure_keeps_started_processes(
        self, tikv, cluster, probe, fake_executor
    ):
        probe.default = 503
        with pytest.raises(DeadlineExceededError):
            await tikv.deploy(cluster)

        assert tikv.last_deployment.failed
        assert DeploymentState.STARTED in tikv.last_deployment.states()
        # No rollback: nothing is stopped or removed.
        assert not any("kill" in c or "rm " in c for _, c in fake_executor.commands)


class TestMonitoring:
    """Tests for monitoring capability."""

    @pytest.mark.asyncio
    async def test_all_healthy(self, tikv, cluster):
        status = await tikv.check_health(cluster)
        assert status.overall == ComponentHealth.HEALTHY
        assert set(status.components) == {
            "pd-1", "pd-2", "pd-3", "tikv-1", "tikv-2", "tikv-3"
        }

    @pytest.mark.asyncio
    async def test_partial(self, tikv, cluster, probe):
        probe.script("10.0.1.3", 20180, 503)
        status = await tikv.check_health(cluster)
        assert status.overall == ComponentHealth.WARNING
        assert status.components["tikv-3"] == ComponentHealth.CRITICAL

    @pytest.mark.asyncio
    async def test_no_pd(self, tikv, cluster, probe):
        for i in (1, 2, 3):
            probe.script(f"10.0.0.{i}", 2379, 503)
        status = await tikv.check_health(cluster)
        assert status.overall == ComponentHealth.CRITICAL

    @pytest.mark.asyncio
    async def test_monitor_operation(self, tikv, cluster, probe):
        probe.script("10.0.0.2", 2379, 503)
        result = await tikv.execute(OperationType.MONITOR, {"cluster": cluster})

        assert result.success
        assert result.data["pd_nodes"] == 3
        assert result.data["healthy_pd_nodes"] == 2
        assert result.data["healthy_tikv_nodes"] == 3
        assert result.data["overall"] == "warning"
        assert result.data["components"]["pd-2"] == "critical"
        assert len(probe.calls) == 6

    @pytest.mark.asyncio
    async def test_collect_metrics(self, tikv, cluster):
        metrics = await tikv.collect_metrics(cluster)
        assert metrics["tikv_nodes"] == 3
        assert metrics["overall"] == "healthy"

    @pytest.mark.asyncio
    async def test_generate_alert(self, tikv):
        await tikv.generate_alert(AlertDefinition(name="DiskFull", severity="critical"))
