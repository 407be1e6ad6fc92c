"""Command execution and the diff-applier capability built on top of it."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Sequence, Tuple, runtime_checkable

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class CommandResult:
    """Captured output of an external command."""

    args: Tuple[str, ...]
    stdout: str
    stderr: str
    exit_status: int

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


class CommandRunner:
    """Run external tools without raising on non-zero exit status."""

    def __init__(self, *, timeout: float | None = None) -> None:
        self.timeout = timeout

    def run(
        self,
        tool: str,
        args: Sequence[str],
        *,
        cwd: Path,
        stdin_text: str | None = None,
    ) -> CommandResult:
        command = (tool, *args)
        LOGGER.debug("Running %s in %s", " ".join(command), cwd)
        try:
            process = subprocess.run(
                list(command),
                cwd=cwd,
                input=stdin_text.encode("utf-8") if stdin_text is not None else None,
                stdin=subprocess.DEVNULL if stdin_text is None else None,
                capture_output=True,
                text=False,
                check=False,
                timeout=self.timeout,
            )
        except FileNotFoundError:
            return CommandResult(command, "", f"{tool}: command not found", 127)
        except subprocess.TimeoutExpired as error:
            stdout = error.stdout.decode("utf-8", errors="replace") if error.stdout else ""
            return CommandResult(command, stdout, f"{tool}: timed out after {self.timeout}s", 124)
        stdout = process.stdout.decode("utf-8", errors="replace") if process.stdout else ""
        stderr = process.stderr.decode("utf-8", errors="replace") if process.stderr else ""
        return CommandResult(command, stdout, stderr, process.returncode)


@runtime_checkable
class DiffApplier(Protocol):
    """Capability that validates and applies a unified diff file at a strip level."""

    def check(self, diff_path: Path, strip: int) -> CommandResult:
        """Dry-run ``diff_path`` at ``-p<strip>`` without touching any file."""
        ...

    def apply(self, diff_path: Path, strip: int) -> CommandResult:
        """Apply ``diff_path`` at ``-p<strip>`` for real."""
        ...


class PatchToolApplier:
    """:class:`DiffApplier` backed by the external ``patch`` binary."""

    def __init__(
        self,
        root: Path | str,
        *,
        runner: CommandRunner | None = None,
        tool: str = "patch",
        extra_args: Sequence[str] = (),
    ) -> None:
        self.root = Path(root).resolve()
        self.runner = runner or CommandRunner()
        self.tool = tool
        self.extra_args = tuple(extra_args)

    def build_args(self, diff_path: Path, strip: int, *, dry_run: bool) -> list[str]:
        args = [f"-p{strip}"]
        if dry_run:
            args.append("--dry-run")
        args.extend(self.extra_args)
        args.extend(["-i", str(diff_path)])
        return args

    def check(self, diff_path: Path, strip: int) -> CommandResult:
        return self.runner.run(self.tool, self.build_args(diff_path, strip, dry_run=True), cwd=self.root)

    def apply(self, diff_path: Path, strip: int) -> CommandResult:
        return self.runner.run(self.tool, self.build_args(diff_path, strip, dry_run=False), cwd=self.root)


__all__ = ["CommandResult", "CommandRunner", "DiffApplier", "PatchToolApplier"]
