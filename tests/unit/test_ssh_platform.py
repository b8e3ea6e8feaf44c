"""Tests for key_rotation.ssh.platform: probing and target adapters."""
from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from key_rotation.ssh.platform import (
    AUTHORIZED_KEYS,
    IGNITION_KEYS,
    GenericLinuxAdapter,
    Platform,
    ProvisioningManagedAdapter,
    adapter_for,
    probe_platform,
)

OLD = "ssh-rsa AAAAold ec2-launch-key"
NEW = "ssh-ed25519 AAAAnew EC2-Key-2024-01-01-000000"


@pytest.fixture()
def client() -> MagicMock:
    fake = MagicMock()
    fake.host = "10.0.0.5"
    fake.run.return_value = ""
    return fake


class TestProbe:
    def test_coreos_is_provisioning_managed(self, client) -> None:
        client.run.return_value = "Linux ip-10-0-0-5 5.15.0-coreos #1 SMP x86_64 GNU/Linux\n"
        assert probe_platform(client) == Platform.PROVISIONING_MANAGED
        client.run.assert_called_once_with("uname -a")

    def test_anything_else_is_generic(self, client) -> None:
        client.run.return_value = "Linux ip-10-0-0-5 6.1.0-amzn2023 #1 SMP x86_64 GNU/Linux\n"
        assert probe_platform(client) == Platform.GENERIC_LINUX

    def test_adapter_for(self) -> None:
        assert isinstance(adapter_for(Platform.GENERIC_LINUX), GenericLinuxAdapter)
        assert isinstance(adapter_for(Platform.PROVISIONING_MANAGED), ProvisioningManagedAdapter)


class TestInstall:
    @pytest.mark.parametrize("adapter", [GenericLinuxAdapter(), ProvisioningManagedAdapter()])
    def test_appends_to_live_file(self, adapter, client) -> None:
        adapter.install_key(client, NEW)
        command = client.run.call_args.args[0]
        assert f"cat >> {AUTHORIZED_KEYS}" in command
        assert client.run.call_args.kwargs["input"] == NEW + "\n"


class TestGenericLinux:
    def test_removal_filters_by_key_blob(self, client) -> None:
        GenericLinuxAdapter().apply_key_removal(client, OLD, [NEW])
        script = client.run.call_args.args[0]
        assert "grep -vF -- 'ssh-rsa AAAAold'" in script
        assert script.rstrip().endswith("! grep -qF -- 'ssh-rsa AAAAold' \"$f\"")
        assert "ec2-launch-key" not in script

    def test_restore_appends(self, client) -> None:
        GenericLinuxAdapter().apply_key_restore(client, OLD, [NEW])
        assert client.run.call_args.kwargs["input"] == OLD + "\n"


class TestProvisioningManaged:
    def test_removal_rewrites_managed_file_and_reloads(self, client) -> None:
        ProvisioningManagedAdapter().apply_key_removal(client, OLD, [NEW])
        command = client.run.call_args.args[0]
        assert f"cat > {IGNITION_KEYS}" in command
        assert command.endswith("update-ssh-keys")
        assert client.run.call_args.kwargs["input"] == NEW + "\n"

    def test_restore_adds_key_back(self, client) -> None:
        ProvisioningManagedAdapter().apply_key_restore(client, OLD, [NEW])
        assert client.run.call_args.kwargs["input"] == f"{NEW}\n{OLD}\n"

    def test_refuses_to_empty_the_file(self, client) -> None:
        with pytest.raises(ValueError):
            ProvisioningManagedAdapter().apply_key_removal(client, OLD, [OLD])
        client.run.assert_not_called()
