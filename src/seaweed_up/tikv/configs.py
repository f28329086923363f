"""Rendering of pd.toml and tikv.toml."""

from __future__ import annotations

from .spec import TiKVClusterSpec

PD_CONFIG_FILE = "pd.toml"
TIKV_CONFIG_FILE = "tikv.toml"


def render_pd_config(spec: TiKVClusterSpec, index: int) -> str:
    """Render the configuration for the PD node at ``index`` (zero-based)."""
    pd = spec.pd[index]
    return (
        "# PD Configuration\n"
        f'name = "pd-{index + 1}"\n'
        f'data-dir = "{pd.data_dir}"\n'
        f'client-urls = "{pd.client_url}"\n'
        f'peer-urls = "{pd.peer_url}"\n'
        f'initial-cluster = "{spec.initial_cluster()}"\n'
        'initial-cluster-state = "new"\n'
        f'log-file = "{pd.log_dir}/pd.log"\n'
    )


def render_tikv_config(spec: TiKVClusterSpec, index: int) -> str:
    """Render the configuration for the TiKV node at ``index`` (zero-based)."""
    tikv = spec.tikv[index]
    endpoints = ", ".join(f'"{endpoint}"' for endpoint in spec.pd_endpoints())
    return (
        "# TiKV Configuration\n"
        "[server]\n"
        f'addr = "{tikv.host}:{tikv.port}"\n'
        f'status-addr = "{tikv.host}:{tikv.status_port}"\n'
        f'data-dir = "{tikv.data_dir}"\n'
        f'log-file = "{tikv.log_dir}/tikv.log"\n'
        "\n"
        "[pd]\n"
        f"endpoints = [{endpoints}]\n"
        "\n"
        "[storage]\n"
        f'engine = "{tikv.storage.engine}"\n'
    )
