"""SSH key pair generation and inspection using ``cryptography``.

Keys are handled as OpenSSH text so they can be written straight to disk
and appended to ``authorized_keys`` without further conversion.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519, rsa

KEY_TYPES = ("ed25519", "rsa")


@dataclass(frozen=True)
class KeyPair:
    """A generated SSH key pair.

    Parameters
    ----------
    name:
        Key name, also used as the public key comment.
    private_key:
        OpenSSH-format private key text.
    public_key:
        One ``authorized_keys`` line: ``<type> <base64> <name>``.
    """

    name: str
    private_key: str
    public_key: str


def key_name(label: str, now: Optional[datetime] = None) -> str:
    """Return ``<label>-YYYY-mm-dd-HHMMSS``."""
    reference = now or datetime.now(timezone.utc)
    return f"{label}-{reference.strftime('%Y-%m-%d-%H%M%S')}"


def generate_keypair(name: str, key_type: str = "ed25519") -> KeyPair:
    """Generate a new unencrypted key pair.

    Raises
    ------
    ValueError
        If *key_type* is not one of :data:`KEY_TYPES`.
    """
    if key_type == "ed25519":
        private = ed25519.Ed25519PrivateKey.generate()
    elif key_type == "rsa":
        private = rsa.generate_private_key(public_exponent=65537, key_size=4096)
    else:
        raise ValueError(f"Unsupported key type {key_type!r}; choose from {KEY_TYPES}")

    private_text = private.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.OpenSSH,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")
    public_text = private.public_key().public_bytes(
        encoding=serialization.Encoding.OpenSSH,
        format=serialization.PublicFormat.OpenSSH,
    ).decode("ascii")
    return KeyPair(name=name, private_key=private_text, public_key=f"{public_text} {name}")


def public_key_from_private(path: Path) -> str:
    """Derive the ``<type> <base64>`` public key of a private key file.

    Accepts both OpenSSH and PEM (PKCS#1/PKCS#8) private keys, the latter
    being what EC2 hands out for key pairs.
    """
    data = path.read_bytes()
    if b"OPENSSH PRIVATE KEY" in data:
        private = serialization.load_ssh_private_key(data, password=None)
    else:
        private = serialization.load_pem_private_key(data, password=None)
    return private.public_key().public_bytes(
        encoding=serialization.Encoding.OpenSSH,
        format=serialization.PublicFormat.OpenSSH,
    ).decode("ascii")


def key_blob(line: str) -> str:
    """Return the ``<type> <base64>`` part of an authorized_keys line.

    Options and comments are dropped so two lines for the same key compare
    equal. Returns an empty string for blank lines and comments.
    """
    fields = line.strip().split()
    if not fields or fields[0].startswith("#"):
        return ""
    for index, token in enumerate(fields[:-1]):
        if token.startswith(("ssh-", "ecdsa-", "sk-")):
            return f"{token} {fields[index + 1]}"
    return ""


def key_comment(line: str) -> str:
    """Return the comment of an authorized_keys line, or an empty string."""
    blob = key_blob(line)
    if not blob:
        return ""
    _, _, rest = line.strip().partition(blob)
    return rest.strip()


def write_keypair(pair: KeyPair, directory: Path) -> tuple[Path, Path]:
    """Write ``<name>.pem`` and ``<name>.pub`` into *directory*.

    The private key file is created with mode 0600.

    Returns
    -------
    tuple[Path, Path]
        Private and public key paths.
    """
    directory.mkdir(parents=True, exist_ok=True)
    private_path = directory / f"{pair.name}.pem"
    public_path = directory / f"{pair.name}.pub"

    fd = os.open(private_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    with os.fdopen(fd, "w", encoding="ascii") as handle:
        handle.write(pair.private_key)
    public_path.write_text(pair.public_key + "\n", encoding="ascii")
    return private_path, public_path
