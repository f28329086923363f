"""Fetching PD and TiKV server binaries from upstream releases."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol, runtime_checkable

import httpx

from ..errors import ExecutionError

logger = logging.getLogger(__name__)

PD_BINARY = "pd-server"
TIKV_BINARY = "tikv-server"

RELEASE_URLS = {
    PD_BINARY: "https://github.com/tikv/pd/releases/download/v{version}/pd-server",
    TIKV_BINARY: "https://github.com/tikv/tikv/releases/download/v{version}/tikv-server",
}


def release_url(name: str, version: str) -> str:
    try:
        return RELEASE_URLS[name].format(version=version)
    except KeyError:
        raise ExecutionError(f"unknown release binary: {name}") from None


@runtime_checkable
class ReleaseSource(Protocol):
    """Downloads a named server binary for a version to a local path."""

    async def fetch(self, name: str, version: str, dest: Path) -> None: ...


class GitHubReleaseSource:
    """ReleaseSource that streams binaries from GitHub release assets."""

    def __init__(self, timeout_seconds: float = 300.0, chunk_size: int = 1 << 20):
        self.timeout_seconds = timeout_seconds
        self.chunk_size = chunk_size

    async def fetch(self, name: str, version: str, dest: Path) -> None:
        """Download ``name`` for ``version`` to ``dest``.

        A partially written file is removed on failure.

        Raises:
            ExecutionError: On non-200 status or transport failure
        """
        url = release_url(name, version)
        dest = Path(dest)
        logger.info(f"Downloading {name} v{version} from {url}")

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, follow_redirects=True
            ) as client:
                async with client.stream("GET", url) as response:
                    if response.status_code != 200:
                        raise ExecutionError(
                            f"download failed: HTTP {response.status_code}",
                            data={"url": url, "status_code": response.status_code},
                        )
                    with open(dest, "wb") as f:
                        async for chunk in response.aiter_bytes(self.chunk_size):
                            f.write(chunk)
        except httpx.HTTPError as e:
            dest.unlink(missing_ok=True)
            raise ExecutionError(f"download of {name} failed: {e}", data={"url": url}) from e
        except BaseException:
            dest.unlink(missing_ok=True)
            raise
