"""IAM access key store backed by boto3.

IAM allows at most two access keys per user, which is what makes the
two-credential ceiling of the rotation protocol real.
"""
from __future__ import annotations

import logging
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from key_rotation.errors import CredentialNotFound, QuotaExceeded, StoreUnavailable
from key_rotation.models import Credential, CredentialStatus, Identity
from key_rotation.stores.base import CredentialStore

logger = logging.getLogger(__name__)

_IAM_STATUS = {
    "Active": CredentialStatus.ACTIVE,
    "Inactive": CredentialStatus.INACTIVE,
}


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


class IAMAccessKeyStore(CredentialStore):
    """Manage a user's IAM access keys.

    The store remembers which user owns each key id it has listed or
    created, so status changes and deletes can be addressed by key id alone.

    Parameters
    ----------
    client:
        A boto3 ``iam`` client authenticated as an administrator.
    """

    def __init__(self, client: Any) -> None:
        self._client = client
        self._owners: dict[str, str] = {}

    @classmethod
    def from_session(cls, session: Any) -> "IAMAccessKeyStore":
        """Build a store from a boto3 session."""
        return cls(session.client("iam"))

    # ------------------------------------------------------------------
    # CredentialStore interface
    # ------------------------------------------------------------------

    def list(self, identity: Identity) -> list[Credential]:
        try:
            paginator = self._client.get_paginator("list_access_keys")
            metadata = [
                entry
                for page in paginator.paginate(UserName=identity.name)
                for entry in page.get("AccessKeyMetadata", [])
            ]
        except ClientError as exc:
            if _error_code(exc) == "NoSuchEntity":
                raise StoreUnavailable(f"IAM user {identity.name!r} does not exist") from exc
            raise StoreUnavailable(f"Could not list access keys: {exc}") from exc
        except BotoCoreError as exc:
            raise StoreUnavailable(f"Could not reach IAM: {exc}") from exc

        metadata.sort(key=lambda entry: entry["CreateDate"])
        credentials = []
        for entry in metadata:
            key_id = entry["AccessKeyId"]
            self._owners[key_id] = identity.name
            credentials.append(
                Credential(
                    credential_id=key_id,
                    status=_IAM_STATUS.get(entry.get("Status", ""), CredentialStatus.PENDING),
                    created_at=entry["CreateDate"],
                )
            )
        return credentials

    def create(self, identity: Identity) -> Credential:
        try:
            response = self._client.create_access_key(UserName=identity.name)
        except ClientError as exc:
            if _error_code(exc) == "LimitExceeded":
                raise QuotaExceeded(
                    f"IAM user {identity.name!r} already has the maximum number of access keys"
                ) from exc
            raise StoreUnavailable(f"Could not create access key: {exc}") from exc
        except BotoCoreError as exc:
            raise StoreUnavailable(f"Could not reach IAM: {exc}") from exc

        key = response["AccessKey"]
        self._owners[key["AccessKeyId"]] = identity.name
        logger.info("Created access key %s for IAM user %r", key["AccessKeyId"], identity.name)
        return Credential(
            credential_id=key["AccessKeyId"],
            secret=key["SecretAccessKey"],
            status=_IAM_STATUS.get(key.get("Status", ""), CredentialStatus.PENDING),
            created_at=key["CreateDate"],
        )

    def set_status(self, credential_id: str, status: CredentialStatus) -> None:
        if status not in (CredentialStatus.ACTIVE, CredentialStatus.INACTIVE):
            raise ValueError(f"IAM access keys cannot be set to {status.value!r}")
        user = self._owner(credential_id)
        self._call(
            "update_access_key",
            credential_id,
            UserName=user,
            AccessKeyId=credential_id,
            Status="Active" if status == CredentialStatus.ACTIVE else "Inactive",
        )
        logger.info("Set access key %s of %r to %s", credential_id, user, status.value)

    def delete(self, credential_id: str) -> None:
        user = self._owner(credential_id)
        self._call("delete_access_key", credential_id, UserName=user, AccessKeyId=credential_id)
        del self._owners[credential_id]
        logger.info("Deleted access key %s of %r", credential_id, user)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _owner(self, credential_id: str) -> str:
        user = self._owners.get(credential_id)
        if user is None:
            raise CredentialNotFound(f"Access key {credential_id!r} is not known to this store")
        return user

    def _call(self, operation: str, credential_id: str, **params: str) -> None:
        try:
            getattr(self._client, operation)(**params)
        except ClientError as exc:
            if _error_code(exc) == "NoSuchEntity":
                raise CredentialNotFound(f"Access key {credential_id!r} no longer exists") from exc
            raise StoreUnavailable(f"{operation} failed for {credential_id}: {exc}") from exc
        except BotoCoreError as exc:
            raise StoreUnavailable(f"Could not reach IAM: {exc}") from exc
