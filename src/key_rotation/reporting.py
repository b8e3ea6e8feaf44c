"""Render rotation outcomes to files and the console.

The JSON report is written for every outcome so automation can tell a
fatal rollback error apart from an ordinary abort (``"fatal": true``).
The CSV file mirrors the AWS console's access key download and is only
written on commit.
"""
from __future__ import annotations

import csv
import io
import json
import os
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from key_rotation.models import Aborted, Committed, Outcome

CSV_HEADER = ("User Name", "Access Key Id", "Secret Access Key")


def _write_private(path: Path, text: str) -> None:
    """Write *text* to *path* readable by the owner only."""
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
        handle.write(text)


def outcome_payload(outcome: Outcome, extra: Optional[dict[str, object]] = None) -> dict[str, object]:
    """Return the report dictionary for *outcome*, merged with *extra*."""
    payload = outcome.to_dict()
    payload["exit_code"] = int(outcome.exit_code)
    if extra:
        payload.update(extra)
    return payload


def write_json(outcome: Outcome, path: Path, extra: Optional[dict[str, object]] = None) -> None:
    """Write the outcome as JSON. Contains the new secret on commit."""
    _write_private(path, json.dumps(outcome_payload(outcome, extra), indent=2) + "\n")


def write_csv(outcome: Outcome, path: Path) -> None:
    """Write the new access key in the AWS console CSV layout.

    Raises
    ------
    ValueError
        If the rotation did not commit.
    """
    if not isinstance(outcome, Committed):
        raise ValueError("Only a committed rotation produces a key file")
    rows = [
        list(CSV_HEADER),
        [
            outcome.identity.name,
            outcome.new_credential.credential_id,
            outcome.new_credential.secret,
        ],
    ]
    buffer = io.StringIO()
    csv.writer(buffer, lineterminator="\n").writerows(rows)
    _write_private(path, buffer.getvalue())


def render_outcome(console: Console, outcome: Outcome) -> None:
    """Print a summary table. Secrets are never printed."""
    if isinstance(outcome, Aborted) and outcome.fatal:
        console.print(
            Panel(
                f"{outcome.error}\n\nThe identity may have no working credential. "
                "Check it by hand before doing anything else.",
                title="MANUAL INTERVENTION REQUIRED",
                border_style="bold red",
            )
        )

    table = Table(title=f"Rotation of {outcome.identity}", show_header=True)
    table.add_column("Field", style="cyan")
    table.add_column("Value")

    if isinstance(outcome, Committed):
        table.add_row("Result", "[green]Committed[/green]")
        table.add_row("New credential", outcome.new_credential.credential_id)
        for key in ("private_key_path", "public_key_path"):
            if key in outcome.new_credential.metadata:
                table.add_row(key.replace("_", " ").capitalize(), outcome.new_credential.metadata[key])
    else:
        colour = "red" if outcome.fatal else "yellow"
        table.add_row("Result", f"[{colour}]Aborted[/{colour}]")
        table.add_row("Reason", outcome.reason.value)
        table.add_row("Error", str(outcome.error))
        good = outcome.last_good_credential
        table.add_row("Working credential", good.credential_id if good else "[red]unknown[/red]")

    table.add_row("Exit code", str(int(outcome.exit_code)))
    console.print(table)
