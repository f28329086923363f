"""HTTP health probing of cluster nodes."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import httpx

from ..errors import HealthCheckError


@runtime_checkable
class HealthProbe(Protocol):
    """Returns the HTTP status code a node's health endpoint answers with."""

    async def probe(self, host: str, port: int, path: str) -> int:
        """Probe http://host:port/path.

        Raises:
            HealthCheckError: On transport failure (refused, timeout, DNS)
        """
        ...


class HttpHealthProbe:
    """HealthProbe implemented with httpx."""

    def __init__(self, timeout_seconds: float = 5.0, scheme: str = "http"):
        """Initialize probe.

        Args:
            timeout_seconds: Timeout for each HTTP request
            scheme: URL scheme (http or https)
        """
        self.timeout_seconds = timeout_seconds
        self.scheme = scheme

    def url_for(self, host: str, port: int, path: str) -> str:
        return f"{self.scheme}://{host}:{port}/{path.lstrip('/')}"

    async def probe(self, host: str, port: int, path: str) -> int:
        url = self.url_for(host, port, path)
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.get(url)
                return response.status_code
        except httpx.ConnectError as e:
            raise HealthCheckError(
                f"Connection refused: {url}", host=host, port=port, data={"url": url}
            ) from e
        except httpx.TimeoutException as e:
            raise HealthCheckError(
                f"Request timeout: {url}", host=host, port=port, data={"url": url}
            ) from e
        except httpx.HTTPError as e:
            raise HealthCheckError(
                f"Health probe failed for {url}: {e}", host=host, port=port, data={"url": url}
            ) from e


async def check_node(probe: HealthProbe, host: str, port: int, path: str) -> None:
    """Probe one node and raise unless it answers 200.

    Raises:
        HealthCheckError: On non-200 status or transport failure
    """
    status_code = await probe.probe(host, port, path)
    if status_code != 200:
        raise HealthCheckError(
            f"health check failed for {host}:{port}{path}: HTTP {status_code}",
            host=host,
            port=port,
            status_code=status_code,
        )
