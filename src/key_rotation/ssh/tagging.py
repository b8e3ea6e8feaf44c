"""EC2 instance tag bookkeeping for SSH key rotation.

After a successful rotation the instance is tagged with the name of the key
that now opens it. This is bookkeeping only: failures here never undo a
committed rotation.
"""
from __future__ import annotations

import logging
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from key_rotation.errors import StoreUnavailable
from key_rotation.ssh.client import SSHClient

logger = logging.getLogger(__name__)

KEY_NAME_TAG = "EC2KeyName"
_METADATA_URL = "http://169.254.169.254/latest/meta-data/instance-id"


def resolve_instance_id(client: SSHClient) -> str:
    """Ask the instance metadata service, over SSH, for the instance id."""
    instance_id = client.run(f"curl -s {_METADATA_URL}").strip()
    if not instance_id.startswith("i-"):
        raise StoreUnavailable(f"Could not read the EC2 instance id from {client.host}")
    return instance_id


class InstanceTagger:
    """Read and write the key-name tag on one EC2 instance.

    Parameters
    ----------
    client:
        A boto3 ``ec2`` client authenticated as an administrator.
    instance_id:
        The instance to tag.
    tag_key:
        Tag recording the active key name.
    """

    def __init__(self, client: Any, instance_id: str, tag_key: str = KEY_NAME_TAG) -> None:
        self._client = client
        self.instance_id = instance_id
        self.tag_key = tag_key

    def current_value(self) -> str:
        """Return the tag's value, or an empty string if it is not set."""
        try:
            response = self._client.describe_tags(
                Filters=[
                    {"Name": "resource-id", "Values": [self.instance_id]},
                    {"Name": "key", "Values": [self.tag_key]},
                ]
            )
        except (ClientError, BotoCoreError) as exc:
            raise StoreUnavailable(f"Could not read tags of {self.instance_id}: {exc}") from exc
        for tag in response.get("Tags", []):
            if tag.get("Key") == self.tag_key:
                return str(tag.get("Value", ""))
        return ""

    def set_value(self, value: str) -> None:
        try:
            self._client.create_tags(
                Resources=[self.instance_id],
                Tags=[{"Key": self.tag_key, "Value": value}],
            )
        except (ClientError, BotoCoreError) as exc:
            raise StoreUnavailable(f"Could not tag {self.instance_id}: {exc}") from exc

    def verify_permissions(self) -> None:
        """Prove the administrator may write the tag by changing and restoring it.

        Raises
        ------
        StoreUnavailable
            If the tag cannot be read or written.
        """
        original = self.current_value()
        self.set_value(original + " ")
        self.set_value(original)
        logger.info("Verified permission to tag %s with %s", self.instance_id, self.tag_key)

    def record_key(self, key_name: str) -> None:
        """Tag the instance with the active key name."""
        self.set_value(key_name)
        logger.info("Tagged %s with %s=%s", self.instance_id, self.tag_key, key_name)
