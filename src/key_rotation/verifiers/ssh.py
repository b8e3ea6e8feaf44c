"""Verify a key pair by logging in with it and reading back a fresh marker."""
from __future__ import annotations

import logging
import secrets
from pathlib import Path
from typing import Callable, Optional

from key_rotation.errors import SSHCommandError, VerificationError
from key_rotation.models import Credential, HostTarget, Target
from key_rotation.ssh.client import Runner, SSHClient
from key_rotation.verifiers.base import Verifier

logger = logging.getLogger(__name__)

MARKER_PATH = "~/.rotation_test_file"


def _new_marker() -> str:
    return f"rotation-{secrets.token_hex(16)}"


class SSHMarkerVerifier(Verifier):
    """Write a marker over one session and read it back over another.

    Both sessions authenticate with the credential's own private key only.

    Parameters
    ----------
    runner:
        :func:`subprocess.run` replacement passed to each :class:`SSHClient`.
    marker_path:
        Remote file holding the marker.
    marker_factory:
        Produces a fresh marker value per verification.
    """

    def __init__(
        self,
        runner: Optional[Runner] = None,
        marker_path: str = MARKER_PATH,
        marker_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        self._runner = runner
        self._marker_path = marker_path
        self._new_marker = marker_factory or _new_marker

    def verify(self, credential: Credential, target: Target, timeout: float) -> bool:
        client = self._client(credential, target, timeout)
        marker = self._new_marker()
        try:
            client.run(f"umask 077; cat > {self._marker_path}", input=marker + "\n")
            read_back = client.run(f"cat {self._marker_path}")
        except SSHCommandError as exc:
            logger.debug("Key %s cannot log in to %s yet: %s", credential.credential_id, target, exc)
            return False

        if read_back.rstrip("\n") != marker:
            logger.warning("Key %s read back an unexpected marker from %s", credential.credential_id, target)
            return False
        return True

    def discard_marker(self, credential: Credential, target: Target, timeout: float = 10.0) -> None:
        """Remove the marker file, logging in with *credential*."""
        self._client(credential, target, timeout).run(f"rm -f {self._marker_path}")

    def _client(self, credential: Credential, target: Target, timeout: float) -> SSHClient:
        if not isinstance(target, HostTarget):
            raise VerificationError(f"SSHMarkerVerifier cannot verify against {target!r}")
        key_path = credential.metadata.get("private_key_path")
        if not key_path:
            raise VerificationError(f"Key {credential.credential_id!r} has no private key file")
        return SSHClient(
            host=target.host,
            user=target.user,
            key_path=Path(key_path),
            port=target.port,
            timeout=timeout,
            runner=self._runner,
        )
