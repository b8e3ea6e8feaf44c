"""RotationPolicy and administrative credentials.

Policies let operators tune the propagation poll for their account.
Defaults match what IAM normally needs: twenty attempts three seconds
apart. Administrative credentials are read from the CSV file the AWS
console offers when an access key is created.
"""
from __future__ import annotations

import csv
from pathlib import Path
from typing import Optional

import boto3
from pydantic import BaseModel, Field, SecretStr

DEFAULT_MAX_ATTEMPTS = 20
DEFAULT_POLL_INTERVAL = 3.0
DEFAULT_VERIFY_TIMEOUT = 10.0


class RotationPolicy(BaseModel):
    """Tunable parameters of a rotation session.

    Parameters
    ----------
    max_attempts:
        Verification attempts allowed while waiting for propagation.
    poll_interval:
        Seconds slept before each verification attempt.
    verify_timeout:
        Seconds allowed for a single verification round trip.
    """

    max_attempts: int = Field(default=DEFAULT_MAX_ATTEMPTS, ge=1)
    poll_interval: float = Field(default=DEFAULT_POLL_INTERVAL, ge=0.0)
    verify_timeout: float = Field(default=DEFAULT_VERIFY_TIMEOUT, gt=0.0)


class AdminCredentials(BaseModel):
    """Access key of the administrator driving the store.

    Never used to verify the credential being rotated.
    """

    user_name: str = ""
    access_key_id: str
    secret_access_key: SecretStr

    def session(self, region_name: Optional[str] = None) -> boto3.session.Session:
        """Return a boto3 session authenticated as this administrator."""
        return boto3.session.Session(
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key.get_secret_value(),
            region_name=region_name,
        )


def load_admin_credentials(path: Path) -> AdminCredentials:
    """Read an AWS console access key CSV export.

    The file has a header row followed by one row of
    ``User name,Access key ID,Secret access key``. Exports that omit the
    user name column are accepted too.

    Raises
    ------
    ValueError
        If the file has no data row or the row is too short.
    """
    with path.open(newline="", encoding="utf-8-sig") as handle:
        rows = [row for row in csv.reader(handle) if any(cell.strip() for cell in row)]

    if len(rows) < 2:
        raise ValueError(f"{path}: expected a header row and a key row")

    row = [cell.strip() for cell in rows[1]]
    if len(row) >= 3:
        user_name, key_id, secret = row[0], row[1], row[2]
    elif len(row) == 2:
        user_name, (key_id, secret) = "", row
    else:
        raise ValueError(f"{path}: key row must hold an access key id and secret")

    return AdminCredentials(
        user_name=user_name,
        access_key_id=key_id,
        secret_access_key=secret,
    )


def admin_session(
    credentials: Optional[AdminCredentials],
    region_name: Optional[str] = None,
) -> boto3.session.Session:
    """Session for the store: explicit admin key, or boto3's default chain."""
    if credentials is None:
        return boto3.session.Session(region_name=region_name)
    return credentials.session(region_name=region_name)


__all__ = [
    "AdminCredentials",
    "DEFAULT_MAX_ATTEMPTS",
    "DEFAULT_POLL_INTERVAL",
    "DEFAULT_VERIFY_TIMEOUT",
    "RotationPolicy",
    "admin_session",
    "load_admin_credentials",
]
