"""Tests for key_rotation.cli.main: CLI commands via Click test runner."""
from __future__ import annotations

import csv
import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from click.testing import CliRunner

from key_rotation.cli import main
from key_rotation.cli.main import cli
from key_rotation.errors import StoreUnavailable, VerificationError
from key_rotation.models import Credential, CredentialStatus, ExitCode, Identity
from key_rotation.ssh.platform import Platform
from key_rotation.stores.memory import InMemoryCredentialStore
from key_rotation.waiter import PropagationWaiter


class FakeVerifier:
    """Verifier double: passes while *passing* is True, records discard calls."""

    def __init__(self, passing: bool = True, prime_error: Exception | None = None) -> None:
        self.passing = passing
        self.prime_error = prime_error
        self.discarded: list[str] = []

    def prime(self, target) -> bytes:
        if self.prime_error is not None:
            raise self.prime_error
        return b"probe"

    def verify(self, credential, target, timeout) -> bool:
        return self.passing

    def discard_marker(self, credential, target, timeout=10.0) -> None:
        self.discarded.append(credential.credential_id)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def store() -> InMemoryCredentialStore:
    ids = iter(["AKIANEW"])
    return InMemoryCredentialStore(id_generator=lambda: next(ids), secret_generator=lambda: "newsecret")


@pytest.fixture()
def verifier() -> FakeVerifier:
    return FakeVerifier()


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch) -> None:
    monkeypatch.setattr(main, "PropagationWaiter", lambda: PropagationWaiter(sleep=lambda _: None))


@pytest.fixture()
def iam_wiring(monkeypatch, store, verifier) -> None:
    store.add(Identity("svc-1"), Credential(credential_id="AKIAOLD", secret="oldsecret"))
    monkeypatch.setattr(main, "admin_session", lambda credentials, region_name=None: MagicMock())
    monkeypatch.setattr(main, "S3ObjectVerifier", lambda expected=None, reference_session=None: verifier)
    fake_store_class = MagicMock()
    fake_store_class.from_session.return_value = store
    monkeypatch.setattr(main, "IAMAccessKeyStore", fake_store_class)


# ---------------------------------------------------------------------------
# Root CLI
# ---------------------------------------------------------------------------


class TestRootCLI:
    def test_help_exits_zero(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "iam" in result.output
        assert "ssh" in result.output

    def test_version_command(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["version"])
        assert result.exit_code == 0
        assert "key-rotation" in result.output.lower()


# ---------------------------------------------------------------------------
# iam
# ---------------------------------------------------------------------------


class TestIamCommand:
    def test_missing_user_is_bad_invocation(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["iam", "--s3-test-file", "s3://b/k"])
        assert result.exit_code == ExitCode.BAD_INVOCATION

    def test_bad_s3_uri_is_bad_invocation(self, runner: CliRunner, iam_wiring) -> None:
        result = runner.invoke(cli, ["iam", "-u", "svc-1", "-s", "bucket/key"])
        assert result.exit_code == ExitCode.BAD_INVOCATION

    def test_commit_writes_reports(self, runner: CliRunner, iam_wiring, store, tmp_path: Path) -> None:
        json_path = tmp_path / "report.json"
        csv_path = tmp_path / "key.csv"
        result = runner.invoke(
            cli,
            ["iam", "-u", "svc-1", "-s", "s3://b/k", "-j", str(json_path), "-c", str(csv_path)],
        )
        assert result.exit_code == 0, result.output
        assert store.statuses(Identity("svc-1")) == {"AKIANEW": CredentialStatus.ACTIVE}

        report = json.loads(json_path.read_text(encoding="utf-8"))
        assert report["status"] == "committed"
        assert report["new_credential_id"] == "AKIANEW"
        assert report["exit_code"] == 0
        assert report["user"] == "svc-1"

        rows = list(csv.reader(csv_path.open(encoding="utf-8")))
        assert rows == [
            ["User Name", "Access Key Id", "Secret Access Key"],
            ["svc-1", "AKIANEW", "newsecret"],
        ]
        assert "newsecret" not in result.output

    def test_unverified_new_key_exit_code(
        self, runner: CliRunner, iam_wiring, verifier, store, tmp_path: Path
    ) -> None:
        verifier.passing = False
        csv_path = tmp_path / "key.csv"
        result = runner.invoke(
            cli,
            ["iam", "-u", "svc-1", "-s", "s3://b/k", "--max-attempts", "2", "--poll-interval", "0",
             "-c", str(csv_path)],
        )
        assert result.exit_code == ExitCode.NEW_CREDENTIAL_UNVERIFIED
        assert not csv_path.exists()
        assert store.statuses(Identity("svc-1")) == {"AKIAOLD": CredentialStatus.ACTIVE}

    def test_unreadable_test_object_stops_before_rotation(
        self, runner: CliRunner, iam_wiring, verifier, store
    ) -> None:
        verifier.prime_error = VerificationError("AccessDenied")
        result = runner.invoke(cli, ["iam", "-u", "svc-1", "-s", "s3://b/k"])
        assert result.exit_code == ExitCode.STORE_UNAVAILABLE
        assert "No keys were rotated" in result.output
        assert store.mutations == []

    def test_bad_admin_key_file(self, runner: CliRunner, iam_wiring, tmp_path: Path) -> None:
        key_file = tmp_path / "admin.csv"
        key_file.write_text("only a header\n", encoding="utf-8")
        result = runner.invoke(cli, ["iam", "-u", "svc-1", "-s", "s3://b/k", "-a", str(key_file)])
        assert result.exit_code == ExitCode.BAD_INVOCATION


# ---------------------------------------------------------------------------
# ssh
# ---------------------------------------------------------------------------


@pytest.fixture()
def ssh_key(tmp_path: Path) -> Path:
    path = tmp_path / "launch.pem"
    path.write_text("placeholder", encoding="utf-8")
    return path


@pytest.fixture()
def ssh_wiring(monkeypatch, store, verifier) -> None:
    identity = Identity("core", host="10.0.0.5")
    store.add(identity, Credential(credential_id="launch"))
    monkeypatch.setattr(main, "probe_platform", lambda client: Platform.GENERIC_LINUX)
    monkeypatch.setattr(main, "SSHMarkerVerifier", lambda: verifier)
    monkeypatch.setattr(main, "SSHAuthorizedKeyStore", lambda **kwargs: store)


class TestSshCommand:
    def test_missing_key_file_is_bad_invocation(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(cli, ["ssh", "-s", str(tmp_path / "nope.pem"), "-h", "10.0.0.5"])
        assert result.exit_code == ExitCode.BAD_INVOCATION

    def test_unreachable_host_stops_before_rotation(
        self, runner: CliRunner, monkeypatch, ssh_key: Path
    ) -> None:
        def refuse(client):
            raise StoreUnavailable("Permission denied (publickey).")

        monkeypatch.setattr(main, "probe_platform", refuse)
        result = runner.invoke(cli, ["ssh", "-s", str(ssh_key), "-h", "10.0.0.5", "--no-tag-instance"])
        assert result.exit_code == ExitCode.STORE_UNAVAILABLE
        assert "No keys were rotated" in result.output

    def test_commit_without_tagging(
        self, runner: CliRunner, ssh_wiring, verifier, ssh_key: Path, tmp_path: Path
    ) -> None:
        json_path = tmp_path / "report.json"
        result = runner.invoke(
            cli,
            ["ssh", "-s", str(ssh_key), "-h", "10.0.0.5", "--no-tag-instance", "-j", str(json_path)],
        )
        assert result.exit_code == 0, result.output
        assert verifier.discarded == ["AKIANEW"]
        report = json.loads(json_path.read_text(encoding="utf-8"))
        assert report["status"] == "committed"
        assert report["host"] == "10.0.0.5"
        assert report["platform"] == "generic_linux"
        assert report["instance_id"] is None

    def test_tag_permission_failure_stops_before_rotation(
        self, runner: CliRunner, ssh_wiring, monkeypatch, store, ssh_key: Path
    ) -> None:
        session = MagicMock()
        monkeypatch.setattr(main, "admin_session", lambda credentials, region_name=None: session)
        monkeypatch.setattr(main, "resolve_instance_id", lambda client: "i-0123456789abcdef0")
        tagger = MagicMock()
        tagger.verify_permissions.side_effect = StoreUnavailable("UnauthorizedOperation")
        monkeypatch.setattr(main, "InstanceTagger", lambda client, instance_id: tagger)

        result = runner.invoke(cli, ["ssh", "-s", str(ssh_key), "-h", "10.0.0.5"])
        assert result.exit_code == ExitCode.STORE_UNAVAILABLE
        assert store.mutations == []

    def test_commit_records_key_tag(
        self, runner: CliRunner, ssh_wiring, monkeypatch, ssh_key: Path
    ) -> None:
        monkeypatch.setattr(main, "admin_session", lambda credentials, region_name=None: MagicMock())
        monkeypatch.setattr(main, "resolve_instance_id", lambda client: "i-0123456789abcdef0")
        tagger = MagicMock()
        tagger.instance_id = "i-0123456789abcdef0"
        monkeypatch.setattr(main, "InstanceTagger", lambda client, instance_id: tagger)

        result = runner.invoke(cli, ["ssh", "-s", str(ssh_key), "-h", "10.0.0.5"])
        assert result.exit_code == 0, result.output
        tagger.record_key.assert_called_once_with("AKIANEW")
