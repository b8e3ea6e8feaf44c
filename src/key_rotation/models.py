"""Data model for a single rotation session.

A :class:`RotationSession` is created when an invocation starts, threaded
through every step of the orchestrator, and discarded at exit. It is never
persisted: a later run re-derives everything from the store listing.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Optional, Union

from key_rotation.errors import RotationError

#: Hard cap on live credentials per identity imposed by the external stores.
CREDENTIAL_LIMIT = 2

_REDACTED = "***REDACTED***"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CredentialStatus(str, Enum):
    """Lifecycle status of a credential as reported by its store."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING = "pending"
    DELETED = "deleted"


@dataclass
class Credential:
    """A credential owned by an identity.

    Parameters
    ----------
    credential_id:
        Store-assigned identifier (access key id, or SSH key name).
    secret:
        Secret material. Opaque: only transported, never interpreted by the
        orchestrator. Empty when the store does not return it (listing).
    status:
        Current status.
    created_at:
        UTC creation time, if known.
    metadata:
        Backend-specific string attributes (e.g. ``public_key``,
        ``private_key_path``).
    """

    credential_id: str
    secret: str = ""
    status: CredentialStatus = CredentialStatus.ACTIVE
    created_at: datetime = field(default_factory=_utcnow)
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return self.status == CredentialStatus.ACTIVE

    def to_dict(self, include_secret: bool = False) -> dict[str, object]:
        """Serialise to a plain dictionary.

        Parameters
        ----------
        include_secret:
            If False (default), the secret is masked.
        """
        return {
            "credential_id": self.credential_id,
            "secret": self.secret if include_secret else _REDACTED,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class Identity:
    """The principal whose credential is rotated.

    An IAM user is ``Identity("svc-1")``; a host login is
    ``Identity("core", host="10.0.0.5")``.
    """

    name: str
    host: Optional[str] = None

    def __str__(self) -> str:
        if self.host:
            return f"{self.name}@{self.host}"
        return self.name


@dataclass(frozen=True)
class S3ObjectTarget:
    """A known S3 object the identity is allowed to read."""

    bucket: str
    key: str

    @classmethod
    def parse(cls, uri: str) -> "S3ObjectTarget":
        """Parse ``s3://bucket/key``.

        Raises
        ------
        ValueError
            If *uri* is not an ``s3://`` URI with both bucket and key.
        """
        prefix = "s3://"
        if not uri.startswith(prefix):
            raise ValueError(f"Not an s3:// URI: {uri!r}")
        bucket, _, key = uri[len(prefix):].partition("/")
        if not bucket or not key:
            raise ValueError(f"S3 URI must name a bucket and a key: {uri!r}")
        return cls(bucket=bucket, key=key)

    def __str__(self) -> str:
        return f"s3://{self.bucket}/{self.key}"


@dataclass(frozen=True)
class HostTarget:
    """A remote host login verified over SSH."""

    host: str
    user: str
    port: int = 22

    def __str__(self) -> str:
        return f"{self.user}@{self.host}:{self.port}"


Target = Union[S3ObjectTarget, HostTarget]


class RotationState(str, Enum):
    """States of the rotation protocol."""

    PRECHECK = "precheck"
    CREATING = "creating"
    VERIFY_NEW = "verify_new"
    ROLLBACK_NEW = "rollback_new"
    DISABLE_OLD = "disable_old"
    VERIFY_AFTER_DISABLE = "verify_after_disable"
    REENABLE_OLD = "reenable_old"
    COMMIT = "commit"
    COMMITTED = "committed"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in (RotationState.COMMITTED, RotationState.ABORTED)


class ExitCode(IntEnum):
    """Process exit status, one per outcome class."""

    OK = 0
    BAD_INVOCATION = 2
    TOO_MANY_CREDENTIALS = 3
    STORE_UNAVAILABLE = 5
    POST_DISABLE_VERIFICATION_FAILED = 6
    NEW_CREDENTIAL_UNVERIFIED = 7
    CREATION_FAILED = 8
    DISABLE_FAILED = 9
    DELETE_OLD_FAILED = 10
    ROLLBACK_ERROR = 11


class AbortReason(str, Enum):
    """Why a session ended without committing."""

    TOO_MANY_CREDENTIALS = "too_many_credentials"
    STORE_UNAVAILABLE = "store_unavailable"
    CREATION_FAILED = "creation_failed"
    NEW_CREDENTIAL_UNVERIFIED = "new_credential_unverified"
    DISABLE_FAILED = "disable_failed"
    POST_DISABLE_VERIFICATION_FAILED = "post_disable_verification_failed"
    DELETE_OLD_FAILED = "delete_old_failed"
    ROLLBACK_ERROR = "rollback_error"

    @property
    def exit_code(self) -> ExitCode:
        return ExitCode[self.name]


@dataclass
class RotationSession:
    """Mutable state threaded through every orchestrator step.

    Parameters
    ----------
    identity:
        The identity being rotated.
    target:
        Where credentials are verified.
    """

    identity: Identity
    target: Target
    state: RotationState = RotationState.PRECHECK
    existing: list[Credential] = field(default_factory=list)
    old_credential: Optional[Credential] = None
    new_credential: Optional[Credential] = None
    verify_attempts: int = 0
    transitions: list[tuple[RotationState, RotationState]] = field(default_factory=list)
    abort_reason: Optional[AbortReason] = None
    error: Optional[RotationError] = None
    last_good_credential: Optional[Credential] = None

    def advance(self, next_state: RotationState) -> None:
        """Record a transition and move to *next_state*."""
        self.transitions.append((self.state, next_state))
        self.state = next_state

    def abort(
        self,
        reason: AbortReason,
        error: RotationError,
        last_good: Optional[Credential],
    ) -> RotationState:
        """Stash the abort details and return the ABORTED state."""
        self.abort_reason = reason
        self.error = error
        self.last_good_credential = last_good
        return RotationState.ABORTED


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Committed:
    """Terminal success: the new credential is the identity's sole credential."""

    identity: Identity
    new_credential: Credential

    @property
    def exit_code(self) -> ExitCode:
        return ExitCode.OK

    @property
    def fatal(self) -> bool:
        return False

    def to_dict(self) -> dict[str, object]:
        """Serialise for the report. Carries the new secret, never the old."""
        return {
            "status": "committed",
            "identity": str(self.identity),
            "new_credential_id": self.new_credential.credential_id,
            "new_secret": self.new_credential.secret,
            "fatal": False,
        }


@dataclass(frozen=True)
class Aborted:
    """Terminal failure.

    Parameters
    ----------
    identity:
        The identity being rotated.
    reason:
        Why the session aborted.
    last_good_credential:
        The credential that should still work, or None when the protocol
        cannot vouch for any (rollback error).
    error:
        The typed error that ended the session.
    """

    identity: Identity
    reason: AbortReason
    last_good_credential: Optional[Credential]
    error: RotationError

    @property
    def exit_code(self) -> ExitCode:
        return self.reason.exit_code

    @property
    def fatal(self) -> bool:
        return self.reason == AbortReason.ROLLBACK_ERROR

    def to_dict(self) -> dict[str, object]:
        """Serialise for the report. Secrets are never included."""
        good = self.last_good_credential
        return {
            "status": "aborted",
            "identity": str(self.identity),
            "reason": self.reason.value,
            "error": str(self.error),
            "last_good_credential_id": good.credential_id if good else None,
            "fatal": self.fatal,
        }


Outcome = Union[Committed, Aborted]


__all__ = [
    "AbortReason",
    "Aborted",
    "CREDENTIAL_LIMIT",
    "Committed",
    "Credential",
    "CredentialStatus",
    "ExitCode",
    "HostTarget",
    "Identity",
    "Outcome",
    "RotationSession",
    "RotationState",
    "S3ObjectTarget",
    "Target",
]
