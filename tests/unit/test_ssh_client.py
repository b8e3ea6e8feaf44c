"""Tests for key_rotation.ssh.client."""
from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from key_rotation.errors import SSHCommandError, StoreUnavailable
from key_rotation.ssh.client import SSHClient


class FakeRunner:
    """Records argv and kwargs and replays a canned result."""

    def __init__(self, returncode: int = 0, stdout: str = "", stderr: str = "", raises=None) -> None:
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.raises = raises
        self.calls: list[tuple[list[str], dict]] = []

    def __call__(self, argv, **kwargs):
        self.calls.append((argv, kwargs))
        if self.raises is not None:
            raise self.raises
        return subprocess.CompletedProcess(argv, self.returncode, self.stdout, self.stderr)


@pytest.fixture()
def key_path(tmp_path: Path) -> Path:
    return tmp_path / "old.pem"


class TestArgv:
    def test_single_identity_batch_mode(self, key_path) -> None:
        client = SSHClient("10.0.0.5", "core", key_path, port=2222, timeout=4.5)
        argv = client.argv("uname -a")
        assert argv[0] == "ssh"
        assert "BatchMode=yes" in argv
        assert "IdentitiesOnly=yes" in argv
        assert "ConnectTimeout=4" in argv
        assert argv[argv.index("-p") + 1] == "2222"
        assert argv[argv.index("-i") + 1] == str(key_path)
        assert argv[-2:] == ["core@10.0.0.5", "uname -a"]

    def test_connect_timeout_at_least_one_second(self, key_path) -> None:
        argv = SSHClient("h", "u", key_path, timeout=0.2).argv("true")
        assert "ConnectTimeout=1" in argv


class TestRun:
    def test_returns_stdout_and_passes_input(self, key_path) -> None:
        runner = FakeRunner(stdout="Linux host\n")
        client = SSHClient("h", "core", key_path, timeout=3.0, runner=runner)
        assert client.run("cat > f", input="data\n") == "Linux host\n"
        _, kwargs = runner.calls[0]
        assert kwargs == {"input": "data\n", "capture_output": True, "text": True, "timeout": 3.0}

    def test_non_zero_exit_raises(self, key_path) -> None:
        runner = FakeRunner(returncode=255, stderr="Permission denied (publickey).")
        client = SSHClient("h", "core", key_path, runner=runner)
        with pytest.raises(SSHCommandError) as excinfo:
            client.run("true")
        assert excinfo.value.returncode == 255
        assert "Permission denied" in excinfo.value.stderr

    def test_timeout_raises(self, key_path) -> None:
        runner = FakeRunner(raises=subprocess.TimeoutExpired(["ssh"], 10.0))
        with pytest.raises(SSHCommandError):
            SSHClient("h", "core", key_path, runner=runner).run("true")

    def test_missing_binary_is_store_unavailable(self, key_path) -> None:
        runner = FakeRunner(raises=FileNotFoundError("ssh"))
        with pytest.raises(StoreUnavailable):
            SSHClient("h", "core", key_path, runner=runner).run("true")

    @pytest.mark.parametrize(
        "error",
        [PermissionError(13, "Permission denied"), OSError(24, "Too many open files")],
    )
    def test_spawn_failure_is_ssh_command_error(self, key_path, error) -> None:
        runner = FakeRunner(raises=error)
        with pytest.raises(SSHCommandError) as excinfo:
            SSHClient("h", "core", key_path, runner=runner).run("true")
        assert excinfo.value.returncode is None
        assert "could not start ssh" in excinfo.value.stderr


class TestDerivedClients:
    def test_with_key_keeps_login(self, key_path, tmp_path) -> None:
        runner = FakeRunner()
        client = SSHClient("h", "core", key_path, port=2200, timeout=5.0, runner=runner)
        other = client.with_key(tmp_path / "new.pem")
        assert (other.host, other.user, other.port, other.timeout) == ("h", "core", 2200, 5.0)
        assert other.key_path == tmp_path / "new.pem"
        other.run("true")
        assert runner.calls

    def test_with_timeout(self, key_path) -> None:
        client = SSHClient("h", "core", key_path).with_timeout(2.0)
        assert client.timeout == 2.0
        assert client.key_path == key_path
