"""Thin wrapper around the OpenSSH ``ssh`` binary.

Every login uses exactly one private key file with ``IdentitiesOnly`` and
``BatchMode`` set, so a session can only succeed as the key it was given:
no agent keys, no password prompts.
"""
from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Any, Callable, Optional

from key_rotation.errors import SSHCommandError

logger = logging.getLogger(__name__)

Runner = Callable[..., "subprocess.CompletedProcess[str]"]


class SSHClient:
    """Run commands on a host as one user with one private key.

    Parameters
    ----------
    host:
        Host name or address.
    user:
        Login name.
    key_path:
        Private key file used for authentication.
    port:
        SSH port.
    timeout:
        Seconds allowed for connection and command together.
    runner:
        Callable with the signature of :func:`subprocess.run`. Tests inject
        a fake here.
    """

    def __init__(
        self,
        host: str,
        user: str,
        key_path: Path,
        port: int = 22,
        timeout: float = 10.0,
        runner: Optional[Runner] = None,
    ) -> None:
        self.host = host
        self.user = user
        self.key_path = key_path
        self.port = port
        self.timeout = timeout
        self._runner = runner or subprocess.run

    def with_key(self, key_path: Path) -> "SSHClient":
        """Return a client for the same login using a different key."""
        return SSHClient(
            host=self.host,
            user=self.user,
            key_path=key_path,
            port=self.port,
            timeout=self.timeout,
            runner=self._runner,
        )

    def with_timeout(self, timeout: float) -> "SSHClient":
        """Return a client for the same login with a different timeout."""
        return SSHClient(
            host=self.host,
            user=self.user,
            key_path=self.key_path,
            port=self.port,
            timeout=timeout,
            runner=self._runner,
        )

    def argv(self, command: str) -> list[str]:
        """Build the ``ssh`` argument vector for *command*."""
        return [
            "ssh",
            "-o", "BatchMode=yes",
            "-o", "IdentitiesOnly=yes",
            "-o", "StrictHostKeyChecking=no",
            "-o", f"ConnectTimeout={max(1, int(self.timeout))}",
            "-q",
            "-p", str(self.port),
            "-i", str(self.key_path),
            f"{self.user}@{self.host}",
            command,
        ]

    def run(self, command: str, input: Optional[str] = None) -> str:
        """Run *command* remotely and return its standard output.

        Raises
        ------
        SSHCommandError
            If ssh cannot be started, times out, or exits non-zero.
        """
        logger.debug("ssh %s@%s (key %s): %s", self.user, self.host, self.key_path.name, command)
        kwargs: dict[str, Any] = {
            "input": input,
            "capture_output": True,
            "text": True,
            "timeout": self.timeout,
        }
        try:
            completed = self._runner(self.argv(command), **kwargs)
        except FileNotFoundError as exc:
            raise SSHCommandError(command, None, "ssh executable not found") from exc
        except OSError as exc:
            raise SSHCommandError(command, None, f"could not start ssh: {exc}") from exc
        except subprocess.TimeoutExpired as exc:
            raise SSHCommandError(command, None, f"timed out after {self.timeout}s") from exc

        if completed.returncode != 0:
            raise SSHCommandError(command, completed.returncode, completed.stderr or "")
        return completed.stdout or ""
