"""SSH authorized-keys credential store.

The authorized-keys set of a host login plays the role of the credential
store: a credential is a key pair, Active while its public key is
authorized, Inactive once removed but still held locally.

The store only counts keys it is responsible for: the key it was started
with, plus any key whose comment carries the rotation label (left behind,
for instance, by an interrupted earlier run). Other operator keys in the
file are never touched.

Every remote mutation logs in with a key other than the one being changed,
so removing or restoring a key never depends on that key still working.
"""
from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from key_rotation.errors import CredentialNotFound, QuotaExceeded, StoreUnavailable
from key_rotation.models import Credential, CredentialStatus, Identity
from key_rotation.ssh.client import SSHClient
from key_rotation.ssh.keys import (
    generate_keypair,
    key_blob,
    key_comment,
    key_name,
    public_key_from_private,
    write_keypair,
)
from key_rotation.ssh.platform import AUTHORIZED_KEYS, TargetAdapter
from key_rotation.stores.base import CredentialStore

logger = logging.getLogger(__name__)

DEFAULT_LABEL = "EC2-Key"


class SSHAuthorizedKeyStore(CredentialStore):
    """Rotate key pairs in a host login's authorized set.

    Parameters
    ----------
    client:
        SSH client for the login, authenticated with the current key.
    adapter:
        Platform adapter deciding how keys are removed and restored.
    key_dir:
        Directory new key pairs are written to.
    label:
        Prefix of generated key names and public key comments.
    key_type:
        ``"ed25519"`` or ``"rsa"``.
    clock:
        Returns the current time; used to name new keys.
    """

    def __init__(
        self,
        client: SSHClient,
        adapter: TargetAdapter,
        key_dir: Path,
        label: str = DEFAULT_LABEL,
        key_type: str = "ed25519",
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._client = client
        self._adapter = adapter
        self._key_dir = key_dir
        self._label = label
        self._key_type = key_type
        self._clock = clock
        self._credentials: dict[str, Credential] = {}
        self._generated: set[str] = set()

    # ------------------------------------------------------------------
    # CredentialStore interface
    # ------------------------------------------------------------------

    def list(self, identity: Identity) -> list[Credential]:
        current_path = self._client.key_path
        try:
            current_blob = public_key_from_private(current_path)
        except (OSError, ValueError) as exc:
            raise StoreUnavailable(f"Cannot read private key {current_path}: {exc}") from exc

        authorized = self._client.run(f"cat {AUTHORIZED_KEYS}").splitlines()
        lines_by_blob = {key_blob(line): line.strip() for line in authorized if key_blob(line)}

        current = Credential(
            credential_id=current_path.stem,
            status=CredentialStatus.ACTIVE,
            metadata={
                "public_key": lines_by_blob.get(current_blob, current_blob),
                "private_key_path": str(current_path),
            },
        )
        credentials = [current]

        for blob, line in lines_by_blob.items():
            comment = key_comment(line)
            if blob == current_blob or not comment.startswith(f"{self._label}-"):
                continue
            metadata = {"public_key": line}
            private_path = self._key_dir / f"{comment}.pem"
            if private_path.exists():
                metadata["private_key_path"] = str(private_path)
            credentials.append(
                Credential(credential_id=comment, status=CredentialStatus.ACTIVE, metadata=metadata)
            )

        self._credentials = {cred.credential_id: cred for cred in credentials}
        logger.info("%s holds %d managed key(s)", identity, len(credentials))
        return [self._public_view(cred) for cred in credentials]

    def create(self, identity: Identity) -> Credential:
        live = [cred for cred in self._credentials.values() if cred.status != CredentialStatus.DELETED]
        if len(live) >= self.credential_limit:
            raise QuotaExceeded(f"{identity} already holds {len(live)} managed keys")

        name = key_name(self._label, self._clock() if self._clock else None)
        pair = generate_keypair(name, self._key_type)
        private_path, public_path = write_keypair(pair, self._key_dir)
        credential = Credential(
            credential_id=name,
            secret=pair.private_key,
            status=CredentialStatus.PENDING,
            metadata={
                "public_key": pair.public_key,
                "private_key_path": str(private_path),
                "public_key_path": str(public_path),
            },
        )
        self._credentials[name] = credential
        self._generated.add(name)

        try:
            self._adapter.install_key(self._login_excluding(name), pair.public_key)
        except StoreUnavailable:
            self._discard_local(name)
            del self._credentials[name]
            raise

        credential.status = CredentialStatus.ACTIVE
        logger.info("Authorized new key %s for %s", name, identity)
        return credential

    def set_status(self, credential_id: str, status: CredentialStatus) -> None:
        credential = self._require(credential_id)
        if credential.status == status:
            return
        line = credential.metadata["public_key"]
        client = self._login_excluding(credential_id)
        retained = self._active_lines(excluding=credential_id)

        if status == CredentialStatus.INACTIVE:
            self._adapter.apply_key_removal(client, line, retained)
        elif status == CredentialStatus.ACTIVE:
            self._adapter.apply_key_restore(client, line, retained)
        else:
            raise ValueError(f"SSH keys cannot be set to {status.value!r}")

        credential.status = status
        logger.info("Key %s is now %s (%s)", credential_id, status.value, self._adapter.platform.value)

    def delete(self, credential_id: str) -> None:
        credential = self._require(credential_id)
        if credential.status == CredentialStatus.ACTIVE:
            self._adapter.apply_key_removal(
                self._login_excluding(credential_id),
                credential.metadata["public_key"],
                self._active_lines(excluding=credential_id),
            )
        if credential_id in self._generated:
            self._discard_local(credential_id)
        credential.status = CredentialStatus.DELETED
        del self._credentials[credential_id]
        logger.info("Deleted key %s", credential_id)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _require(self, credential_id: str) -> Credential:
        credential = self._credentials.get(credential_id)
        if credential is None:
            raise CredentialNotFound(f"No managed key {credential_id!r}")
        return credential

    def _active_lines(self, excluding: str) -> list[str]:
        return [
            cred.metadata["public_key"]
            for cid, cred in self._credentials.items()
            if cid != excluding and cred.status == CredentialStatus.ACTIVE
        ]

    def _login_excluding(self, credential_id: str) -> SSHClient:
        """Return a client authenticated with any other Active key we hold."""
        for cid, cred in self._credentials.items():
            path = cred.metadata.get("private_key_path")
            if cid != credential_id and cred.status == CredentialStatus.ACTIVE and path:
                return self._client.with_key(Path(path))
        raise StoreUnavailable(f"No working key other than {credential_id!r} to log in with")

    def _discard_local(self, credential_id: str) -> None:
        credential = self._credentials[credential_id]
        for key in ("private_key_path", "public_key_path"):
            path = credential.metadata.get(key)
            if path:
                Path(path).unlink(missing_ok=True)
        self._generated.discard(credential_id)

    @staticmethod
    def _public_view(credential: Credential) -> Credential:
        return Credential(
            credential_id=credential.credential_id,
            status=credential.status,
            created_at=credential.created_at,
            metadata=dict(credential.metadata),
        )
