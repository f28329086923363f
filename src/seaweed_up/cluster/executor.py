"""Remote command execution and file transfer for cluster hosts."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol, runtime_checkable

from ..errors import ExecutionError
from ..shared.process import run_process

logger = logging.getLogger(__name__)

DEFAULT_SSH_OPTIONS = ("-o", "StrictHostKeyChecking=no", "-o", "BatchMode=yes")


@runtime_checkable
class RemoteExecutor(Protocol):
    """Runs commands on, and copies files to, remote hosts."""

    async def execute(self, host: str, command: str) -> str:
        """Run a shell command on host and return its output.

        Raises:
            ExecutionError: If the command exits non-zero
        """
        ...

    async def copy_file(self, local_path: str | Path, host: str, remote_path: str) -> None:
        """Copy a local file to remote_path on host.

        Raises:
            ExecutionError: If the transfer fails
        """
        ...


class SSHRemoteExecutor:
    """RemoteExecutor backed by the system ``ssh`` and ``scp`` clients."""

    def __init__(
        self,
        user: str | None = None,
        port: int = 22,
        identity_file: str | None = None,
        options: Sequence[str] = DEFAULT_SSH_OPTIONS,
    ):
        """Initialize SSH executor.

        Args:
            user: Remote login user (default: ssh config / current user)
            port: SSH port
            identity_file: Private key passed with -i
            options: Extra -o options for both ssh and scp
        """
        self.user = user
        self.port = port
        self.identity_file = identity_file
        self.options = tuple(options)

    def _target(self, host: str) -> str:
        return f"{self.user}@{host}" if self.user else host

    def _common_args(self) -> list[str]:
        args = list(self.options)
        if self.identity_file:
            args.extend(["-i", self.identity_file])
        return args

    async def execute(self, host: str, command: str) -> str:
        args = ["ssh", "-p", str(self.port), *self._common_args(), self._target(host), command]
        logger.debug(f"ssh {host}: {command}")
        try:
            result = await run_process(args)
        except FileNotFoundError as e:
            raise ExecutionError("ssh client not found. Is OpenSSH installed?") from e

        if not result.ok:
            raise ExecutionError(
                f"command failed on {host} (exit {result.returncode}): {result.output.strip()}",
                data={"host": host, "command": command},
                output=result.output,
                exit_code=result.returncode,
            )
        return result.output

    async def copy_file(self, local_path: str | Path, host: str, remote_path: str) -> None:
        args = [
            "scp",
            "-P",
            str(self.port),
            *self._common_args(),
            str(local_path),
            f"{self._target(host)}:{remote_path}",
        ]
        logger.debug(f"scp {local_path} -> {host}:{remote_path}")
        try:
            result = await run_process(args)
        except FileNotFoundError as e:
            raise ExecutionError("scp client not found. Is OpenSSH installed?") from e

        if not result.ok:
            raise ExecutionError(
                f"copy to {host}:{remote_path} failed (exit {result.returncode}): "
                f"{result.output.strip()}",
                data={"host": host, "local_path": str(local_path), "remote_path": remote_path},
                output=result.output,
                exit_code=result.returncode,
            )
