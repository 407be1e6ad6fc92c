"""CLI commands for converting and applying model-written patches."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import typer

from .config import DEFAULT_CONFIG_NAME, PatchSettings, load_settings, write_default_config
from .errors import ConfigError, PatchError
from .structured import Outcome
from .tools.hunks import convert_patch
from .tools.patch import apply_patch
from .tools.workspace import Workspace

APP_HELP = "Translate loosely formatted patches into unified diffs and apply them."

app = typer.Typer(help=APP_HELP)


def _read_patch(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    path = Path(source)
    if not path.exists():
        raise typer.BadParameter(f"Patch file not found: {path}")
    return path.read_text(encoding="utf-8")


def _settings(config: str, root: Optional[Path], log_level: Optional[str]) -> PatchSettings:
    try:
        settings = load_settings(config, root=root)
    except ConfigError as error:
        typer.echo(str(error), err=True)
        raise typer.Exit(code=1) from error
    level = (log_level or settings.log_level).upper()
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format="%(levelname)s %(name)s: %(message)s")
    return settings


@app.command("apply")
def apply_command(
    patch: str = typer.Argument("-", help="Patch file to apply, or '-' for stdin."),
    strip: int = typer.Option(0, "--strip", "-p", help="Explicit -pN level; 0 probes automatically."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Validate only; never modify files."),
    apply_direct: bool = typer.Option(
        False,
        "--apply-direct",
        help="Write plain file content directly when no strip level validates.",
    ),
    root: Optional[Path] = typer.Option(None, "--root", "-r", help="Directory the patch is applied under."),
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help="Path to the configuration file."),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override the configured log level."),
) -> None:
    """Apply a patch and print the structured result as JSON."""
    settings = _settings(config, root, log_level)
    patch_text = _read_patch(patch)
    try:
        result = apply_patch(
            patch_text,
            strip=strip,
            dry_run=dry_run,
            apply_direct=apply_direct,
            settings=settings,
        )
    except PatchError as error:
        typer.echo(json.dumps({"error": str(error), "details": error.details}, indent=2, default=str), err=True)
        raise typer.Exit(code=2) from error

    typer.echo(json.dumps(result.to_dict(), indent=2))
    if not (result.applied or result.outcome is Outcome.DRY_RUN_OK):
        raise typer.Exit(code=1)


@app.command("convert")
def convert_command(
    patch: str = typer.Argument("-", help="Patch file to convert, or '-' for stdin."),
    root: Optional[Path] = typer.Option(None, "--root", "-r", help="Directory used to resolve hunk positions."),
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help="Path to the configuration file."),
) -> None:
    """Print the canonical unified diff for a patch without applying it."""
    settings = _settings(config, root, None)
    patch_text = _read_patch(patch)
    try:
        diff = convert_patch(patch_text, Workspace(settings.root, protected=settings.protected))
    except PatchError as error:
        typer.echo(f"Conversion failed: {error}", err=True)
        raise typer.Exit(code=2) from error
    typer.echo(diff, nl=False)


@app.command("init")
def init_command(
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help="Where to write the configuration file."),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing configuration file."),
) -> None:
    """Write a default configuration file."""
    path = Path(config)
    if path.exists() and not force:
        typer.echo(f"Config already exists at {path}; use --force to overwrite.")
        raise typer.Exit(code=1)
    write_default_config(path)
    typer.echo(f"Wrote default configuration to {path}.")


if __name__ == "__main__":
    app()
