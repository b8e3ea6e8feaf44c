"""Credential store backends."""
from __future__ import annotations

from key_rotation.stores.base import CredentialStore
from key_rotation.stores.iam import IAMAccessKeyStore
from key_rotation.stores.memory import InMemoryCredentialStore
from key_rotation.stores.ssh import SSHAuthorizedKeyStore

__all__ = [
    "CredentialStore",
    "IAMAccessKeyStore",
    "InMemoryCredentialStore",
    "SSHAuthorizedKeyStore",
]
