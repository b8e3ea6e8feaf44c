"""Verifiers proving a credential works against a live target."""
from __future__ import annotations

from key_rotation.verifiers.base import Verifier
from key_rotation.verifiers.s3 import S3ObjectVerifier
from key_rotation.verifiers.ssh import SSHMarkerVerifier

__all__ = ["S3ObjectVerifier", "SSHMarkerVerifier", "Verifier"]
