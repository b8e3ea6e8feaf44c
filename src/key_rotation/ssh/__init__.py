"""SSH transport, key generation, platform adapters, and EC2 tagging."""
from __future__ import annotations

from key_rotation.ssh.client import SSHClient
from key_rotation.ssh.keys import KeyPair, generate_keypair, key_blob, public_key_from_private
from key_rotation.ssh.platform import (
    GenericLinuxAdapter,
    Platform,
    ProvisioningManagedAdapter,
    TargetAdapter,
    adapter_for,
    probe_platform,
)
from key_rotation.ssh.tagging import InstanceTagger, resolve_instance_id

__all__ = [
    "GenericLinuxAdapter",
    "InstanceTagger",
    "KeyPair",
    "Platform",
    "ProvisioningManagedAdapter",
    "SSHClient",
    "TargetAdapter",
    "adapter_for",
    "generate_keypair",
    "key_blob",
    "probe_platform",
    "public_key_from_private",
    "resolve_instance_id",
]
