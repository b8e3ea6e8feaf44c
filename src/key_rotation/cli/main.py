"""CLI entry point for key-rotation.

Invoked as::

    key-rotation [OPTIONS] COMMAND [ARGS]...

or, during development::

    python -m key_rotation.cli.main

Commands
--------
iam       Rotate an IAM user's access key, verified by reading an S3 object
ssh       Rotate the SSH key pair of a host login
version   Show version information

Run at most one rotation per identity at a time. Concurrent runs for the
same user or host can exceed the two-credential limit or delete a key the
other run still needs; nothing here prevents that.
"""
from __future__ import annotations

import functools
import logging
import sys
from pathlib import Path
from typing import Any, Callable, NoReturn, Optional

import click
from rich.console import Console

from key_rotation.config import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_VERIFY_TIMEOUT,
    AdminCredentials,
    RotationPolicy,
    admin_session,
    load_admin_credentials,
)
from key_rotation.errors import StoreUnavailable, VerificationError
from key_rotation.models import (
    Committed,
    ExitCode,
    HostTarget,
    Identity,
    Outcome,
    RotationSession,
    S3ObjectTarget,
)
from key_rotation.orchestrator import CommitHook, RotationOrchestrator
from key_rotation.reporting import render_outcome, write_csv, write_json
from key_rotation.ssh.client import SSHClient
from key_rotation.ssh.keys import KEY_TYPES
from key_rotation.ssh.platform import adapter_for, probe_platform
from key_rotation.ssh.tagging import InstanceTagger, resolve_instance_id
from key_rotation.stores.iam import IAMAccessKeyStore
from key_rotation.stores.ssh import DEFAULT_LABEL, SSHAuthorizedKeyStore
from key_rotation.verifiers.s3 import S3ObjectVerifier
from key_rotation.verifiers.ssh import SSHMarkerVerifier
from key_rotation.waiter import PropagationWaiter

console = Console()


# ------------------------------------------------------------------
# Root group
# ------------------------------------------------------------------


@click.group()
@click.version_option(package_name="key-rotation")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="INFO",
    show_default=True,
    help="Logging level.",
)
def cli(log_level: str) -> None:
    """Rotate an access key or SSH key pair without ever locking the identity out."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from key_rotation import __version__

    console.print(f"[bold]key-rotation[/bold] v{__version__}")


# ------------------------------------------------------------------
# Shared options
# ------------------------------------------------------------------


def _policy_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Add the propagation policy options to a command."""

    @click.option(
        "--max-attempts",
        type=click.IntRange(min=1),
        default=DEFAULT_MAX_ATTEMPTS,
        show_default=True,
        help="Verification attempts while the new credential propagates.",
    )
    @click.option(
        "--poll-interval",
        type=click.FloatRange(min=0.0),
        default=DEFAULT_POLL_INTERVAL,
        show_default=True,
        help="Seconds to wait before each verification attempt.",
    )
    @click.option(
        "--verify-timeout",
        type=click.FloatRange(min=0.0, min_open=True),
        default=DEFAULT_VERIFY_TIMEOUT,
        show_default=True,
        help="Seconds allowed for one verification round trip.",
    )
    @functools.wraps(func)
    def wrapper(
        *args: Any,
        max_attempts: int,
        poll_interval: float,
        verify_timeout: float,
        **kwargs: Any,
    ) -> Any:
        policy = RotationPolicy(
            max_attempts=max_attempts,
            poll_interval=poll_interval,
            verify_timeout=verify_timeout,
        )
        return func(*args, policy=policy, **kwargs)

    return wrapper


def _load_admin(aws_key_file: Optional[str]) -> Optional[AdminCredentials]:
    if not aws_key_file:
        return None
    try:
        credentials = load_admin_credentials(Path(aws_key_file))
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--aws-key-file") from exc
    console.print("Using the AWS administrator key file specified.")
    return credentials


def _finish(outcome: Outcome, json_file: Optional[str], extra: dict[str, object]) -> NoReturn:
    render_outcome(console, outcome)
    if json_file:
        write_json(outcome, Path(json_file), extra)
        console.print(f"Report written to {json_file}")
    sys.exit(int(outcome.exit_code))


def _fail_before_rotation(message: str) -> NoReturn:
    console.print(f"[red]Error:[/red] {message}")
    console.print("Stopping. No keys were rotated.")
    sys.exit(int(ExitCode.STORE_UNAVAILABLE))


# ------------------------------------------------------------------
# iam
# ------------------------------------------------------------------


@cli.command(name="iam")
@click.option("--user", "-u", required=True, help="IAM user whose access key is rotated.")
@click.option(
    "--s3-test-file",
    "-s",
    required=True,
    help="s3://bucket/key of an object the user can GET, used to test the new key.",
)
@click.option(
    "--aws-key-file",
    "-a",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="AWS console .csv access key export of an administrator allowed to manage "
    "the user's keys. Defaults to the standard AWS credential chain.",
)
@click.option(
    "--expected-content-file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Exact expected content of the test object. Defaults to reading it "
    "once with the administrator credentials.",
)
@click.option("--region", default=None, help="AWS region for the administrator session.")
@click.option("--json", "-j", "json_file", type=click.Path(dir_okay=False), default=None,
              help="Write a JSON report to this file.")
@click.option("--csv-key-file", "--csv", "-c", "csv_key_file", type=click.Path(dir_okay=False), default=None,
              help="Write the new key to this file in AWS console .csv format.")
@_policy_options
def iam_command(
    user: str,
    s3_test_file: str,
    aws_key_file: Optional[str],
    expected_content_file: Optional[str],
    region: Optional[str],
    json_file: Optional[str],
    csv_key_file: Optional[str],
    policy: RotationPolicy,
) -> None:
    """Rotate the access key of an IAM user."""
    try:
        target = S3ObjectTarget.parse(s3_test_file)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--s3-test-file") from exc

    session = admin_session(_load_admin(aws_key_file), region_name=region)
    expected = Path(expected_content_file).read_bytes() if expected_content_file else None
    verifier = S3ObjectVerifier(expected=expected, reference_session=session)
    try:
        verifier.prime(target)
    except VerificationError as exc:
        _fail_before_rotation(str(exc))

    orchestrator = RotationOrchestrator(
        store=IAMAccessKeyStore.from_session(session),
        verifier=verifier,
        waiter=PropagationWaiter(),
        policy=policy,
    )
    console.print(f"Rotating access key for IAM user [bold]{user}[/bold]...")
    outcome = orchestrator.rotate(Identity(user), target)

    if csv_key_file and isinstance(outcome, Committed):
        write_csv(outcome, Path(csv_key_file))
        console.print(f"New key written to {csv_key_file}")
    _finish(outcome, json_file, {"user": user})


# ------------------------------------------------------------------
# ssh
# ------------------------------------------------------------------


@cli.command(name="ssh")
@click.option(
    "--ssh-key-file",
    "-s",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="Private key currently authorized for the login; the key to be replaced.",
)
@click.option("--host", "-h", required=True, help="IP address or DNS name of the host.")
@click.option("--user", "-u", default="core", show_default=True, help="Login whose key is rotated.")
@click.option("--port", "-p", type=click.IntRange(1, 65535), default=22, show_default=True)
@click.option(
    "--key-dir",
    type=click.Path(file_okay=False),
    default=None,
    help="Directory for the new key files. Defaults to the directory of --ssh-key-file.",
)
@click.option("--label", default=DEFAULT_LABEL, show_default=True, help="Prefix of new key names.")
@click.option("--key-type", type=click.Choice(KEY_TYPES), default="ed25519", show_default=True)
@click.option(
    "--tag-instance/--no-tag-instance",
    default=True,
    show_default=True,
    help="Record the new key name in the instance's EC2KeyName tag.",
)
@click.option(
    "--aws-key-file",
    "-a",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="AWS console .csv access key export of an administrator allowed to tag the instance.",
)
@click.option("--region", default=None, help="AWS region of the instance.")
@click.option("--json", "-j", "json_file", type=click.Path(dir_okay=False), default=None,
              help="Write a JSON report to this file.")
@_policy_options
def ssh_command(
    ssh_key_file: str,
    host: str,
    user: str,
    port: int,
    key_dir: Optional[str],
    label: str,
    key_type: str,
    tag_instance: bool,
    aws_key_file: Optional[str],
    region: Optional[str],
    json_file: Optional[str],
    policy: RotationPolicy,
) -> None:
    """Rotate the SSH key pair authorized for a host login."""
    old_key = Path(ssh_key_file)
    client = SSHClient(host=host, user=user, key_path=old_key, port=port, timeout=policy.verify_timeout)
    target = HostTarget(host=host, user=user, port=port)

    try:
        platform = probe_platform(client)
    except StoreUnavailable as exc:
        _fail_before_rotation(f"Unable to connect via SSH using the key {old_key}: {exc}")
    console.print(f"Platform: {platform.value}")

    tagger: Optional[InstanceTagger] = None
    if tag_instance:
        session = admin_session(_load_admin(aws_key_file), region_name=region)
        try:
            tagger = InstanceTagger(session.client("ec2"), resolve_instance_id(client))
            tagger.verify_permissions()
        except StoreUnavailable as exc:
            _fail_before_rotation(str(exc))

    verifier = SSHMarkerVerifier()
    hooks: list[CommitHook] = [_discard_marker(verifier, policy.verify_timeout)]
    if tagger is not None:
        hooks.append(_record_key_tag(tagger))

    store = SSHAuthorizedKeyStore(
        client=client,
        adapter=adapter_for(platform),
        key_dir=Path(key_dir) if key_dir else old_key.resolve().parent,
        label=label,
        key_type=key_type,
    )
    orchestrator = RotationOrchestrator(
        store=store,
        verifier=verifier,
        waiter=PropagationWaiter(),
        policy=policy,
        commit_hooks=hooks,
    )
    console.print(f"Rotating SSH key for [bold]{user}@{host}[/bold]...")
    outcome = orchestrator.rotate(Identity(user, host=host), target)

    extra: dict[str, object] = {
        "host": host,
        "platform": platform.value,
        "instance_id": tagger.instance_id if tagger else None,
    }
    if isinstance(outcome, Committed):
        extra["private_key_file"] = outcome.new_credential.metadata.get("private_key_path")
        extra["public_key_file"] = outcome.new_credential.metadata.get("public_key_path")
        console.print("Keep the new key files in a secure location.")
    _finish(outcome, json_file, extra)


def _discard_marker(verifier: SSHMarkerVerifier, timeout: float) -> CommitHook:
    def discard_marker(session: RotationSession, outcome: Committed) -> None:
        verifier.discard_marker(outcome.new_credential, session.target, timeout)

    return discard_marker


def _record_key_tag(tagger: InstanceTagger) -> CommitHook:
    def record_key_tag(session: RotationSession, outcome: Committed) -> None:
        tagger.record_key(outcome.new_credential.credential_id)

    return record_key_tag


if __name__ == "__main__":
    cli()
