"""Credential storage: abstract interface.

CredentialStore defines the contract every backend honours: list, create,
change status, delete. Backends translate their own transport failures
into the :mod:`key_rotation.errors` store family.
"""
from __future__ import annotations

from abc import ABC, abstractmethod

from key_rotation.models import CREDENTIAL_LIMIT, Credential, CredentialStatus, Identity


class CredentialStore(ABC):
    """Abstract base class for credential management backends."""

    #: Maximum live credentials the backend allows per identity.
    credential_limit: int = CREDENTIAL_LIMIT

    @abstractmethod
    def list(self, identity: Identity) -> list[Credential]:
        """Return the identity's credentials, oldest first.

        Raises
        ------
        StoreUnavailable
            On transport or authentication failure.
        """

    @abstractmethod
    def create(self, identity: Identity) -> Credential:
        """Create a new credential for *identity*.

        Returns
        -------
        Credential
            The new credential, including its secret material.

        Raises
        ------
        QuotaExceeded
            If the identity already holds :attr:`credential_limit` credentials.
        """

    @abstractmethod
    def set_status(self, credential_id: str, status: CredentialStatus) -> None:
        """Change a credential's status.

        Raises
        ------
        CredentialNotFound
            If the credential no longer exists.
        """

    @abstractmethod
    def delete(self, credential_id: str) -> None:
        """Delete a credential permanently.

        Raises
        ------
        CredentialNotFound
            If the credential no longer exists.
        """
