"""Write plain replacement content straight to disk when no diff applies."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Sequence

from ..errors import PatchError
from ..structured import FileBlock
from .parser import has_diff_tokens
from .workspace import Workspace

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class DirectApplyReport:
    """Per-file outcome of a direct apply; earlier writes are never rolled back."""

    changes: List[str] = field(default_factory=list)
    backups: List[Path] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors and bool(self.changes or self.notes)

    def diagnostics(self) -> List[str]:
        entries = [f"direct: {change}" for change in self.changes]
        entries.extend(f"backup: {path.as_posix()}" for path in self.backups)
        entries.extend(self.notes)
        entries.extend(f"error: {message}" for message in self.errors)
        return entries


def is_plain_content(blocks: Sequence[FileBlock]) -> bool:
    """True when every block is full-file content rather than a diff."""
    return bool(blocks) and not any(has_diff_tokens(block) for block in blocks)


def _content_for(block: FileBlock) -> str:
    if not block.body:
        return ""
    return "\n".join(block.body) + "\n"


def apply_blocks_directly(blocks: Sequence[FileBlock], workspace: Workspace) -> DirectApplyReport:
    """Write, replace or delete each block's target, backing up what exists."""
    report = DirectApplyReport()
    for block in blocks:
        try:
            relative = workspace.relative(block.path).as_posix()
            existed = workspace.exists(relative)
            if block.action == "delete":
                if not existed:
                    report.notes.append(f"{relative} already absent; nothing to delete")
                    continue
                backup = workspace.backup(relative)
                if backup is not None:
                    report.backups.append(backup)
                workspace.remove(relative)
                report.changes.append(f"D {relative}")
                continue

            if existed:
                backup = workspace.backup(relative)
                if backup is not None:
                    report.backups.append(backup)
            workspace.write_atomic(relative, _content_for(block))
            report.changes.append(f"{'M' if existed else 'A'} {relative}")
        except PatchError as error:
            LOGGER.warning("Direct apply rejected %s: %s", block.path, error)
            report.errors.append(f"{block.path}: {error}")
        except OSError as error:
            LOGGER.warning("Direct apply failed for %s: %s", block.path, error)
            report.errors.append(f"{block.path}: {error}")
    return report


__all__ = ["DirectApplyReport", "apply_blocks_directly", "is_plain_content"]
