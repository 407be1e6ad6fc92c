"""Typed payloads shared by the patch parser, normaliser and executor."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict

BlockAction = Literal["add", "update", "delete"]
LineTag = Literal["context", "add", "remove"]

_TAG_PREFIX = {"context": " ", "add": "+", "remove": "-"}


@dataclass(slots=True)
class FileBlock:
    """Per-file block recovered from marker-style patch text."""

    action: BlockAction
    path: str
    body: List[str] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class HunkLine:
    """Single tagged line inside a hunk.

    ``tag`` is ``None`` for passthrough markers such as
    ``\\ No newline at end of file`` which are emitted verbatim and never
    counted.
    """

    tag: LineTag | None
    content: str

    def render(self) -> str:
        if self.tag is None:
            return self.content
        return f"{_TAG_PREFIX[self.tag]}{self.content}"


@dataclass(slots=True)
class Hunk:
    """A contiguous region of change.

    Line counts are always derived from ``lines`` so the header can never
    disagree with the body.
    """

    old_start: int
    new_start: int
    lines: List[HunkLine] = field(default_factory=list)
    section: str = ""

    @property
    def old_count(self) -> int:
        return sum(1 for line in self.lines if line.tag in ("context", "remove"))

    @property
    def new_count(self) -> int:
        return sum(1 for line in self.lines if line.tag in ("context", "add"))

    def header(self) -> str:
        header = f"@@ -{self.old_start},{self.old_count} +{self.new_start},{self.new_count} @@"
        if self.section:
            header = f"{header} {self.section}"
        return header

    def render(self) -> List[str]:
        return [self.header(), *(line.render() for line in self.lines)]


@dataclass(slots=True)
class FileSection:
    """``---``/``+++`` header pair plus the hunks for one file."""

    old_path: str
    new_path: str
    hunks: List[Hunk] = field(default_factory=list)

    def render(self) -> List[str]:
        lines = [f"--- {self.old_path}", f"+++ {self.new_path}"]
        for hunk in self.hunks:
            lines.extend(hunk.render())
        return lines


def render_sections(sections: List[FileSection]) -> str:
    """Render file sections as unified diff text with a trailing newline."""
    lines: List[str] = []
    for section in sections:
        lines.extend(section.render())
    if not lines:
        return ""
    return "\n".join(lines) + "\n"


class Outcome(str, Enum):
    """How an invocation ended."""

    APPLIED = "applied"
    DRY_RUN_OK = "dry_run_ok"
    APPLIED_DIRECTLY = "applied_directly"
    DIRECT_APPLY_FAILED = "direct_apply_failed"
    NO_STRIP_LEVEL = "no_strip_level"
    MALFORMED_PATCH = "malformed_patch"
    APPLY_FAILED_AFTER_DRY_RUN = "apply_failed_after_dry_run"


class RecordModel(BaseModel):
    """Base Pydantic model for caller-facing, write-once records."""

    model_config = ConfigDict(extra="forbid", frozen=True)


class StripAttempt(RecordModel):
    """Result of probing one ``-pN`` level in dry-run mode."""

    strip: int
    stdout: str = ""
    stderr: str = ""
    exit_status: int

    @property
    def level(self) -> int:
        return self.strip

    @property
    def succeeded(self) -> bool:
        return self.exit_status == 0


class ApplyResult(RecordModel):
    """Structured report returned by :func:`patchwright.tools.patch.apply_patch`."""

    stdout: str = ""
    stderr: str = ""
    exit_status: int = 1
    generated_patch: str = ""
    tried_strips: Tuple[StripAttempt, ...] = ()
    used_strip: Optional[int] = None
    applied: bool = False
    applied_directly: bool = False
    suggestion: str = ""
    outcome: Outcome = Outcome.NO_STRIP_LEVEL
    diagnostics: Tuple[str, ...] = ()
    failing_hunks: Tuple[Dict[str, Any], ...] = ()
    artifacts_dir: Optional[Path] = None

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
