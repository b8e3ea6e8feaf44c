"""In-memory credential store.

Holds credentials in a dict and records every call it receives, in order.
Useful for dry runs and as the fake backend in tests.
"""
from __future__ import annotations

import secrets
import string
from typing import Callable, Optional

from key_rotation.errors import CredentialNotFound, QuotaExceeded
from key_rotation.models import Credential, CredentialStatus, Identity
from key_rotation.stores.base import CredentialStore


def _generate_key_id() -> str:
    alphabet = string.ascii_uppercase + string.digits
    return "AKIA" + "".join(secrets.choice(alphabet) for _ in range(16))


def _generate_secret(length: int = 40) -> str:
    alphabet = string.ascii_letters + string.digits + "+/"
    return "".join(secrets.choice(alphabet) for _ in range(length))


class InMemoryCredentialStore(CredentialStore):
    """Dict-backed store enforcing the per-identity credential limit.

    Parameters
    ----------
    id_generator:
        Callable producing new credential ids.
    secret_generator:
        Callable producing new secret material.
    """

    def __init__(
        self,
        id_generator: Optional[Callable[[], str]] = None,
        secret_generator: Optional[Callable[[], str]] = None,
    ) -> None:
        self._generate_id = id_generator or _generate_key_id
        self._generate_secret = secret_generator or _generate_secret
        self._credentials: dict[str, Credential] = {}
        self._owners: dict[str, Identity] = {}
        self.calls: list[tuple[str, ...]] = []

    # ------------------------------------------------------------------
    # Seeding and inspection
    # ------------------------------------------------------------------

    def add(self, identity: Identity, credential: Credential) -> None:
        """Seed an existing credential without recording a call."""
        self._credentials[credential.credential_id] = credential
        self._owners[credential.credential_id] = identity

    def statuses(self, identity: Identity) -> dict[str, CredentialStatus]:
        """Return ``{credential_id: status}`` for *identity*."""
        return {
            cid: cred.status
            for cid, cred in self._credentials.items()
            if self._owners[cid] == identity
        }

    @property
    def mutations(self) -> list[tuple[str, ...]]:
        """Recorded calls other than ``list``."""
        return [call for call in self.calls if call[0] != "list"]

    # ------------------------------------------------------------------
    # CredentialStore interface
    # ------------------------------------------------------------------

    def list(self, identity: Identity) -> list[Credential]:
        self.calls.append(("list", str(identity)))
        return [
            Credential(
                credential_id=cred.credential_id,
                status=cred.status,
                created_at=cred.created_at,
                metadata=dict(cred.metadata),
            )
            for cid, cred in self._credentials.items()
            if self._owners[cid] == identity
        ]

    def create(self, identity: Identity) -> Credential:
        self.calls.append(("create", str(identity)))
        if len(self.statuses(identity)) >= self.credential_limit:
            raise QuotaExceeded(
                f"{identity} already holds {self.credential_limit} credentials"
            )
        credential = Credential(
            credential_id=self._generate_id(),
            secret=self._generate_secret(),
            status=CredentialStatus.ACTIVE,
        )
        self.add(identity, credential)
        return credential

    def set_status(self, credential_id: str, status: CredentialStatus) -> None:
        self.calls.append(("set_status", credential_id, status.value))
        self._require(credential_id).status = status

    def delete(self, credential_id: str) -> None:
        self.calls.append(("delete", credential_id))
        self._require(credential_id)
        del self._credentials[credential_id]
        del self._owners[credential_id]

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _require(self, credential_id: str) -> Credential:
        credential = self._credentials.get(credential_id)
        if credential is None:
            raise CredentialNotFound(f"No credential {credential_id!r}")
        return credential
