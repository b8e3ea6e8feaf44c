"""Verify an access key by reading a known S3 object with it."""
from __future__ import annotations

import hashlib
import logging
from typing import Any, Callable, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from key_rotation.errors import VerificationError
from key_rotation.models import Credential, S3ObjectTarget, Target
from key_rotation.verifiers.base import Verifier

logger = logging.getLogger(__name__)

SessionFactory = Callable[[Credential], Any]


def _credential_session(credential: Credential) -> boto3.session.Session:
    # Explicit keys only, never the default credential chain.
    return boto3.session.Session(
        aws_access_key_id=credential.credential_id,
        aws_secret_access_key=credential.secret,
    )


class S3ObjectVerifier(Verifier):
    """Fetch an S3 object as the credential under test and compare its bytes.

    Parameters
    ----------
    expected:
        Exact object content. If None, the content is fetched once through
        *reference_session* and cached per target.
    reference_session:
        Administrative boto3 session used only to learn the expected content.
    session_factory:
        Builds a boto3 session from a credential. Tests inject a fake here.
    """

    def __init__(
        self,
        expected: Optional[bytes] = None,
        reference_session: Any = None,
        session_factory: Optional[SessionFactory] = None,
    ) -> None:
        self._expected = expected
        self._reference_session = reference_session
        self._session_factory = session_factory or _credential_session
        self._reference_cache: dict[S3ObjectTarget, bytes] = {}

    def prime(self, target: S3ObjectTarget) -> bytes:
        """Resolve the expected content for *target* ahead of any mutation.

        Raises
        ------
        VerificationError
            If neither expected content nor a reference session is available,
            or the reference fetch fails.
        """
        if self._expected is not None:
            return self._expected
        if target in self._reference_cache:
            return self._reference_cache[target]
        if self._reference_session is None:
            raise VerificationError("No expected content and no reference session configured")
        try:
            body = self._fetch(self._reference_session.client("s3"), target)
        except (ClientError, BotoCoreError) as exc:
            raise VerificationError(f"Could not read reference object {target}: {exc}") from exc
        self._reference_cache[target] = body
        logger.info(
            "Reference content for %s: %d bytes, sha256 %s",
            target,
            len(body),
            hashlib.sha256(body).hexdigest()[:16],
        )
        return body

    def verify(self, credential: Credential, target: Target, timeout: float) -> bool:
        if not isinstance(target, S3ObjectTarget):
            raise VerificationError(f"S3ObjectVerifier cannot verify against {target!r}")
        expected = self.prime(target)

        config = Config(
            connect_timeout=timeout,
            read_timeout=timeout,
            retries={"total_max_attempts": 1},
        )
        try:
            client = self._session_factory(credential).client("s3", config=config)
            body = self._fetch(client, target)
        except (ClientError, BotoCoreError) as exc:
            logger.debug("Access key %s cannot read %s yet: %s", credential.credential_id, target, exc)
            return False

        if body != expected:
            logger.warning(
                "Access key %s read %s but content differs from the reference",
                credential.credential_id,
                target,
            )
            return False
        return True

    @staticmethod
    def _fetch(client: Any, target: S3ObjectTarget) -> bytes:
        response = client.get_object(Bucket=target.bucket, Key=target.key)
        return response["Body"].read()
