"""Plugin manifest model, loaded from ``<plugins_dir>/<name>/plugin.yaml``."""

from __future__ import annotations

import platform
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from ..errors import ManifestError
from .types import OperationType

MANIFEST_FILE = "plugin.yaml"

# platform.machine() spellings mapped onto manifest architecture names
_ARCH_ALIASES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
}


@dataclass
class PlatformSupport:
    """An (OS, architecture) pair a plugin binary runs on."""

    os: str
    arch: str

    def matches(self, os_name: str, arch: str) -> bool:
        return self.os.lower() == os_name.lower() and _ARCH_ALIASES.get(
            self.arch.lower(), self.arch.lower()
        ) == _ARCH_ALIASES.get(arch.lower(), arch.lower())


@dataclass
class ConfigOption:
    """A single configuration option a plugin accepts."""

    name: str
    type: str = "string"
    description: str = ""
    default: Any = None
    required: bool = False
    options: list[str] = field(default_factory=list)


@dataclass
class PluginConfig:
    """Configuration schema: required and optional options."""

    required: list[ConfigOption] = field(default_factory=list)
    optional: list[ConfigOption] = field(default_factory=list)


@dataclass
class PluginManifest:
    """Identity and requirements of a plugin."""

    name: str
    version: str
    binary: str
    description: str = ""
    author: str = ""
    website: str = ""
    license: str = ""
    checksum: str | None = None
    dependencies: list[str] = field(default_factory=list)
    platforms: list[PlatformSupport] = field(default_factory=list)
    config: PluginConfig = field(default_factory=PluginConfig)
    operations: list[OperationType] | None = None

    @classmethod
    def from_dict(cls, data: Any) -> PluginManifest:
        """Build a manifest from parsed YAML.

        Unknown keys are ignored. Structural problems raise ManifestError;
        empty required fields are left for validation at load time.
        """
        if not isinstance(data, dict):
            raise ManifestError("manifest must be a mapping")

        name = str(data.get("name") or "")
        try:
            platforms = [
                PlatformSupport(os=str(p["os"]), arch=str(p["arch"]))
                for p in _list_field(data, "platforms", name)
            ]
            config_data = data.get("config") or {}
            if not isinstance(config_data, dict):
                raise ManifestError("'config' must be a mapping", plugin=name or None)
            config = PluginConfig(
                required=[_option(o, True) for o in _list_field(config_data, "required", name)],
                optional=[_option(o, False) for o in _list_field(config_data, "optional", name)],
            )
            operations = None
            if data.get("operations") is not None:
                operations = [
                    OperationType(str(op)) for op in _list_field(data, "operations", name)
                ]
        except (KeyError, TypeError, ValueError) as e:
            raise ManifestError(f"invalid manifest: {e}", plugin=name or None) from e

        checksum = data.get("checksum")
        return cls(
            name=name,
            version=str(data.get("version") or ""),
            binary=str(data.get("binary") or ""),
            description=str(data.get("description") or ""),
            author=str(data.get("author") or ""),
            website=str(data.get("website") or ""),
            license=str(data.get("license") or ""),
            checksum=str(checksum) if checksum else None,
            dependencies=[str(d) for d in _list_field(data, "dependencies", name)],
            platforms=platforms,
            config=config,
            operations=operations,
        )

    def supports_host(self) -> bool:
        """True if no platforms are declared or one matches this host."""
        if not self.platforms:
            return True
        os_name = platform.system().lower()
        arch = platform.machine().lower()
        return any(p.matches(os_name, arch) for p in self.platforms)

    def required_option_names(self) -> list[str]:
        return [o.name for o in self.config.required]


def _list_field(data: dict[str, Any], key: str, plugin: str) -> list[Any]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ManifestError(f"'{key}' must be a list", plugin=plugin or None)
    return value


def _option(data: Any, required: bool) -> ConfigOption:
    if not isinstance(data, dict):
        raise TypeError("config option must be a mapping")
    return ConfigOption(
        name=str(data["name"]),
        type=str(data.get("type", "string")),
        description=str(data.get("description", "")),
        default=data.get("default"),
        required=bool(data.get("required", required)),
        options=[str(o) for o in data.get("options") or []],
    )


def load_manifest(path: Path) -> PluginManifest:
    """Load a plugin manifest from a YAML file.

    Raises:
        ManifestError: If the file cannot be read or parsed
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ManifestError(f"failed to read manifest file {path}: {e}") from e
    except UnicodeDecodeError as e:
        raise ManifestError(f"manifest {path} is not valid UTF-8: {e}") from e
    except yaml.YAMLError as e:
        raise ManifestError(f"failed to parse manifest {path}: {e}") from e

    return PluginManifest.from_dict(data)
