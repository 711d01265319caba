"""Command-line helpers for echo provisioner archives.

``pack``
    Builds a recorded-response archive from a YAML definition (see
    :mod:`echo_provisioner.config`).  Without ``--config`` the default set is
    packed: one empty parse completion and one empty provision completion.

``inspect``
    Lists the entries of an archive in order with their SHA-256 digests.

``verify``
    Checks an archive or an extracted directory for unreachable entries,
    unrecognized names, and undecodable payloads.  The exit code mirrors the
    most severe issue found.
"""

from __future__ import annotations

import logging
from hashlib import sha256
from pathlib import Path
from typing import Optional

import typer

from echo_provisioner import archive, verify
from echo_provisioner.config import load_responses
from echo_provisioner.errors import EchoError
from echo_provisioner.filesystem import OsFilesystem


app = typer.Typer(add_completion=False, help="Echo provisioner archive utilities")


@app.callback()
def configure(
    log_level: str = typer.Option("WARNING", "--log-level", help="Python logging level for diagnostics"),
) -> None:
    """Configure logging before running a subcommand."""

    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise typer.BadParameter(f"unknown logging level {log_level!r}", param_hint="--log-level")
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


@app.command()
def pack(
    output: Path = typer.Option(..., exists=False, dir_okay=False, writable=True, help="Archive file to write"),
    config: Optional[Path] = typer.Option(None, exists=True, dir_okay=False, help="YAML response-set definition"),
) -> None:
    """Pack canned responses into a tar archive."""

    try:
        responses = load_responses(config) if config is not None else None
        blob = archive.pack(responses)
    except EchoError as exc:
        raise typer.BadParameter(str(exc)) from exc
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(blob)
    typer.secho(f"Archive written to {output}", fg=typer.colors.GREEN)


@app.command()
def inspect(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Archive produced by `pack`"),
) -> None:
    """List archive entries with their payload digests."""

    try:
        entries = archive.read_archive(path.read_bytes())
    except EchoError as exc:
        raise typer.BadParameter(str(exc)) from exc
    for name, data in entries:
        typer.echo(f"sha256:{sha256(data).hexdigest()}  {len(data):>6}  {name}")


@app.command("verify")
def verify_command(
    path: Path = typer.Argument(..., exists=True, file_okay=True, dir_okay=True, help="Archive file or extracted directory"),
) -> None:
    """Verify that every recorded entry is reachable and decodable."""

    if path.is_dir():
        result = verify.verify_directory(OsFilesystem(), str(path))
    else:
        result = verify.verify_archive(path.read_bytes(), source=str(path))

    for sequence, indices in result.sequences.items():
        kind, transition = sequence
        label = kind.value if transition is None else f"{transition.slug}.{kind.value}"
        typer.echo(f"{label}: {len(indices)} entries")
    for note in result.notes:
        typer.echo(f"NOTE {result.source}: {note}")
    for issue in result.issues:
        typer.secho(f"ERROR ({issue.exit_code}) {result.source}: {issue.message}", fg=typer.colors.RED, err=True)

    if not result.ok:
        raise typer.Exit(code=result.exit_code)
    typer.secho("Archive verification succeeded", fg=typer.colors.GREEN)


def main() -> None:  # pragma: no cover - exercised via Typer
    app()


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    main()
