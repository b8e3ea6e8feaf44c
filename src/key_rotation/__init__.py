"""key-rotation: fail-safe rotation of IAM access keys and SSH key pairs.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Example
-------
>>> import key_rotation
>>> key_rotation.__version__
'0.1.0'

Quick start
-----------
::

    from key_rotation import (
        Identity, S3ObjectTarget, RotationOrchestrator, RotationPolicy,
        IAMAccessKeyStore, S3ObjectVerifier,
    )

    store = IAMAccessKeyStore.from_session(boto3.session.Session())
    orchestrator = RotationOrchestrator(store, S3ObjectVerifier(expected=b"ok\\n"))
    outcome = orchestrator.rotate(Identity("svc-1"), S3ObjectTarget.parse("s3://bucket/probe.txt"))
"""
from __future__ import annotations

__version__: str = "0.1.0"

from key_rotation.config import AdminCredentials, RotationPolicy, load_admin_credentials
from key_rotation.errors import (
    CreationError,
    CredentialNotFound,
    DeleteOldError,
    DisableError,
    PostDisableVerificationError,
    PreconditionError,
    PropagationTimeout,
    QuotaExceeded,
    RollbackError,
    RotationError,
    StoreError,
    StoreUnavailable,
    VerificationError,
)
from key_rotation.models import (
    CREDENTIAL_LIMIT,
    AbortReason,
    Aborted,
    Committed,
    Credential,
    CredentialStatus,
    ExitCode,
    HostTarget,
    Identity,
    RotationSession,
    RotationState,
    S3ObjectTarget,
)
from key_rotation.orchestrator import RotationOrchestrator
from key_rotation.stores import (
    CredentialStore,
    IAMAccessKeyStore,
    InMemoryCredentialStore,
    SSHAuthorizedKeyStore,
)
from key_rotation.verifiers import S3ObjectVerifier, SSHMarkerVerifier, Verifier
from key_rotation.waiter import PollResult, PropagationWaiter

__all__ = [
    "__version__",
    # config
    "AdminCredentials",
    "RotationPolicy",
    "load_admin_credentials",
    # errors
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
    "StoreError",
    "StoreUnavailable",
    "VerificationError",
    # model
    "AbortReason",
    "Aborted",
    "CREDENTIAL_LIMIT",
    "Committed",
    "Credential",
    "CredentialStatus",
    "ExitCode",
    "HostTarget",
    "Identity",
    "RotationSession",
    "RotationState",
    "S3ObjectTarget",
    # protocol
    "CredentialStore",
    "IAMAccessKeyStore",
    "InMemoryCredentialStore",
    "PollResult",
    "PropagationWaiter",
    "RotationOrchestrator",
    "S3ObjectVerifier",
    "SSHAuthorizedKeyStore",
    "SSHMarkerVerifier",
    "Verifier",
]
