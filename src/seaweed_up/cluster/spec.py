"""Cluster topology specification, the subset the plugin core consumes.

Topology files use the seaweed-up YAML layout::

    cluster_name: prod
    master_servers:
      - ip: 10.0.0.1
        port: 9333
    volume_servers:
      - ip: 10.0.1.1
        folders:
          - folder: /data1
            disk: ssd
    filer_servers:
      - ip: 10.0.2.1

``host`` is accepted as an alias of ``ip``. Specifications are read-only
once loaded; plugins never mutate them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from ..errors import ValidationError


def _host(data: dict[str, Any]) -> str:
    return str(data.get("ip") or data.get("host") or "")


def _int(data: dict[str, Any], key: str, default: int) -> int:
    value = data.get(key)
    return default if value in (None, "") else int(value)


@dataclass(frozen=True)
class FolderSpec:
    folder: str
    disk_type: str = "hdd"
    max: int = 0


@dataclass(frozen=True)
class MasterServerSpec:
    host: str
    port: int = 9333
    port_grpc: int = 19333
    ssh_port: int = 22
    default_replication: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MasterServerSpec:
        port = _int(data, "port", 9333)
        return cls(
            host=_host(data),
            port=port,
            port_grpc=_int(data, "port.grpc", 10000 + port),
            ssh_port=_int(data, "port.ssh", 22),
            default_replication=str(data.get("defaultReplication") or ""),
        )


@dataclass(frozen=True)
class VolumeServerSpec:
    host: str
    port: int = 8080
    port_grpc: int = 18080
    ssh_port: int = 22
    folders: tuple[FolderSpec, ...] = ()
    data_center: str = ""
    rack: str = ""
    data_dir: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VolumeServerSpec:
        port = _int(data, "port", 8080)
        folders = tuple(
            FolderSpec(
                folder=str(f["folder"]),
                disk_type=str(f.get("disk") or "hdd"),
                max=_int(f, "max", 0),
            )
            for f in data.get("folders") or []
        )
        return cls(
            host=_host(data),
            port=port,
            port_grpc=_int(data, "port.grpc", 10000 + port),
            ssh_port=_int(data, "port.ssh", 22),
            folders=folders,
            data_center=str(data.get("dataCenter") or ""),
            rack=str(data.get("rack") or ""),
            data_dir=str(data.get("data_dir") or ""),
        )


@dataclass(frozen=True)
class FilerServerSpec:
    host: str
    port: int = 8888
    port_grpc: int = 18888
    ssh_port: int = 22
    data_center: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FilerServerSpec:
        port = _int(data, "port", 8888)
        return cls(
            host=_host(data),
            port=port,
            port_grpc=_int(data, "port.grpc", 10000 + port),
            ssh_port=_int(data, "port.ssh", 22),
            data_center=str(data.get("dataCenter") or ""),
        )


@dataclass(frozen=True)
class ClusterSpec:
    """Ordered server lists describing a cluster."""

    name: str = ""
    master_servers: tuple[MasterServerSpec, ...] = ()
    volume_servers: tuple[VolumeServerSpec, ...] = ()
    filer_servers: tuple[FilerServerSpec, ...] = ()
    global_options: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ClusterSpec:
        if not isinstance(data, dict):
            raise ValidationError("cluster specification must be a mapping")
        try:
            return cls(
                name=str(data.get("cluster_name") or data.get("name") or ""),
                master_servers=tuple(
                    MasterServerSpec.from_dict(m) for m in data.get("master_servers") or []
                ),
                volume_servers=tuple(
                    VolumeServerSpec.from_dict(v) for v in data.get("volume_servers") or []
                ),
                filer_servers=tuple(
                    FilerServerSpec.from_dict(f) for f in data.get("filer_servers") or []
                ),
                global_options=dict(data.get("global") or {}),
            )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"invalid cluster specification: {e}") from e

    def validate(self) -> None:
        if not self.master_servers:
            raise ValidationError("at least one master server is required")

    def to_dict(self) -> dict[str, Any]:
        """Serialize back into the topology file layout."""
        return {
            "cluster_name": self.name,
            "global": dict(self.global_options),
            "master_servers": [
                {"ip": m.host, "port": m.port, "port.grpc": m.port_grpc, "port.ssh": m.ssh_port}
                for m in self.master_servers
            ],
            "volume_servers": [
                {
                    "ip": v.host,
                    "port": v.port,
                    "port.grpc": v.port_grpc,
                    "port.ssh": v.ssh_port,
                    "folders": [
                        {"folder": f.folder, "disk": f.disk_type, "max": f.max} for f in v.folders
                    ],
                }
                for v in self.volume_servers
            ],
            "filer_servers": [
                {"ip": f.host, "port": f.port, "port.grpc": f.port_grpc, "port.ssh": f.ssh_port}
                for f in self.filer_servers
            ],
        }


def load_cluster_spec(path: Path) -> ClusterSpec:
    """Load and validate a topology file.

    Raises:
        ValidationError: If the file is unreadable or fails validation
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ValidationError(f"failed to read cluster specification {path}: {e}") from e

    spec = ClusterSpec.from_dict(data)
    spec.validate()
    return spec
