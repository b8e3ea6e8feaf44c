"""Exception hierarchy for credential rotation.

Every failure the rotation protocol can report derives from
:class:`RotationError`. Store backends translate their transport errors
(botocore, ssh) into the :class:`StoreError` family so the orchestrator
never has to know which backend it is driving.
"""
from __future__ import annotations


class RotationError(Exception):
    """Base class for all rotation failures."""


class PreconditionError(RotationError):
    """The identity already holds the maximum number of live credentials.

    Raised before any mutation has been issued.
    """


class CreationError(RotationError):
    """The store refused or failed to create a new credential."""


class PropagationTimeout(RotationError):
    """The new credential never verified within the bounded poll."""


class DisableError(RotationError):
    """The old credential could not be disabled; it is still Active."""


class PostDisableVerificationError(RotationError):
    """The new credential stopped working once the old one was disabled."""


class DeleteOldError(RotationError):
    """The old credential could not be deleted after a successful cut-over.

    Both credentials still exist: the new one Active, the old one Inactive.
    """


class RollbackError(RotationError):
    """Restoring a known-good state failed.

    The only failure after which the identity may be left without a working
    credential. Operators must intervene manually.
    """


class VerificationError(RotationError):
    """A verifier could not complete its round trip."""


# ---------------------------------------------------------------------------
# Store errors
# ---------------------------------------------------------------------------


class StoreError(RotationError):
    """Base class for credential store failures."""


class StoreUnavailable(StoreError):
    """Transport or authentication failure talking to the store."""


class QuotaExceeded(StoreError):
    """The identity already holds the maximum number of credentials."""


class CredentialNotFound(StoreError, KeyError):
    """The referenced credential no longer exists."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message.
        return str(self.args[0]) if self.args else ""


class SSHCommandError(StoreUnavailable):
    """A remote ssh command exited non-zero or could not be started.

    Parameters
    ----------
    command:
        The remote command that was executed.
    returncode:
        Exit status of the ``ssh`` process, or None if it never ran.
    stderr:
        Captured standard error text.
    """

    def __init__(self, command: str, returncode: int | None, stderr: str = "") -> None:
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        detail = f": {stderr.strip()}" if stderr.strip() else ""
        super().__init__(f"ssh command {command!r} failed (exit {returncode}){detail}")


__all__ = [
    "CreationError",
    "CredentialNotFound",
    "DeleteOldError",
    "DisableError",
    "PostDisableVerificationError",
    "PreconditionError",
    "PropagationTimeout",
    "QuotaExceeded",
    "RollbackError",
    "RotationError",
    "SSHCommandError",
    "StoreError",
    "StoreUnavailable",
    "VerificationError",
]
