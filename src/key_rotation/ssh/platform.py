"""Target platform adapters for authorized-key persistence.

Where a host keeps its authorized keys depends on how it was provisioned.
Generic Linux images read ``~/.ssh/authorized_keys`` directly. Hosts whose
keys are owned by a provisioning tool (CoreOS with ignition) regenerate that
file from ``~/.ssh/authorized_keys.d/`` on every reload, so edits must go
through the tool's own file and be followed by ``update-ssh-keys``.

The platform is probed once per session with :func:`probe_platform`, and the
matching :class:`TargetAdapter` is handed to the SSH credential store.
"""
from __future__ import annotations

import logging
import shlex
from abc import ABC, abstractmethod
from enum import Enum

from key_rotation.ssh.client import SSHClient
from key_rotation.ssh.keys import key_blob

logger = logging.getLogger(__name__)

AUTHORIZED_KEYS = "~/.ssh/authorized_keys"
IGNITION_KEYS = "~/.ssh/authorized_keys.d/coreos-ignition"


class Platform(str, Enum):
    """Closed set of supported key persistence schemes."""

    GENERIC_LINUX = "generic_linux"
    PROVISIONING_MANAGED = "provisioning_managed"


def probe_platform(client: SSHClient) -> Platform:
    """Classify the host from its ``uname -a`` output."""
    uname = client.run("uname -a").strip()
    logger.info("Platform probe on %s: %s", client.host, uname)
    if "coreos" in uname.lower():
        return Platform.PROVISIONING_MANAGED
    return Platform.GENERIC_LINUX


class TargetAdapter(ABC):
    """How authorized keys are added, removed, and restored on a host."""

    platform: Platform

    def install_key(self, client: SSHClient, key_line: str) -> None:
        """Append *key_line* to the live authorized_keys file."""
        client.run(f"umask 077; mkdir -p ~/.ssh; cat >> {AUTHORIZED_KEYS}", input=key_line + "\n")

    @abstractmethod
    def apply_key_removal(self, client: SSHClient, key_line: str, retained: list[str]) -> None:
        """Remove *key_line* from the authorized set.

        Parameters
        ----------
        client:
            Logged in with a key other than *key_line*.
        key_line:
            The authorized_keys line to remove.
        retained:
            Managed key lines that must stay authorized afterwards.
        """

    @abstractmethod
    def apply_key_restore(self, client: SSHClient, key_line: str, retained: list[str]) -> None:
        """Put *key_line* back into the authorized set."""


class GenericLinuxAdapter(TargetAdapter):
    """Edit ``~/.ssh/authorized_keys`` in place."""

    platform = Platform.GENERIC_LINUX

    def apply_key_removal(self, client: SSHClient, key_line: str, retained: list[str]) -> None:
        blob = shlex.quote(key_blob(key_line))
        # Rewrite through cat so the file keeps its inode and mode.
        script = (
            f"set -e; f={AUTHORIZED_KEYS}; t=\"$f.rotate\"; "
            f"{{ grep -vF -- {blob} \"$f\" || [ $? -eq 1 ]; }} > \"$t\"; "
            f"cat \"$t\" > \"$f\"; rm -f \"$t\"; "
            f"! grep -qF -- {blob} \"$f\""
        )
        client.run(script)

    def apply_key_restore(self, client: SSHClient, key_line: str, retained: list[str]) -> None:
        self.install_key(client, key_line)


class ProvisioningManagedAdapter(TargetAdapter):
    """Rewrite the provisioning tool's key file and reload it."""

    platform = Platform.PROVISIONING_MANAGED

    def apply_key_removal(self, client: SSHClient, key_line: str, retained: list[str]) -> None:
        removed = key_blob(key_line)
        keep = [line for line in retained if key_blob(line) != removed]
        self._write_managed(client, keep)

    def apply_key_restore(self, client: SSHClient, key_line: str, retained: list[str]) -> None:
        restored = key_blob(key_line)
        keep = [line for line in retained if key_blob(line) != restored]
        self._write_managed(client, keep + [key_line])

    def _write_managed(self, client: SSHClient, lines: list[str]) -> None:
        if not lines:
            raise ValueError("Refusing to write an empty provisioning-managed key file")
        client.run(
            f"umask 077; mkdir -p ~/.ssh/authorized_keys.d; cat > {IGNITION_KEYS} && update-ssh-keys",
            input="\n".join(lines) + "\n",
        )


def adapter_for(platform: Platform) -> TargetAdapter:
    """Return the adapter for a probed platform."""
    if platform == Platform.PROVISIONING_MANAGED:
        return ProvisioningManagedAdapter()
    return GenericLinuxAdapter()
