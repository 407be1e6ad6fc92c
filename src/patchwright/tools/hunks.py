"""Turn marker-style file blocks into a canonical unified diff.

Add and Delete blocks are rendered directly from the block body or the current
file.  Update blocks are split on ``@@`` lines; each piece either keeps the
start positions of its numeric header (counts are always recomputed) or is
positioned by searching the current file for its removed lines, falling back
to its context lines.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable, List, Sequence, Tuple

from ..errors import AmbiguousMatchError, ContextNotFoundError, UnsafePathError
from ..structured import FileBlock, FileSection, Hunk, HunkLine, render_sections
from .parser import AlreadyUnified, MarkerBlocks, Opaque, diff_header_paths, parse_patch
from .workspace import Workspace

LOGGER = logging.getLogger(__name__)

_HUNK_HEADER = re.compile(
    r"^@@ -(?P<old_start>\d+)(?:,(?P<old_count>\d+))? "
    r"\+(?P<new_start>\d+)(?:,(?P<new_count>\d+))? @@ ?(?P<section>.*)$"
)
DEV_NULL = "/dev/null"


def tag_line(line: str) -> HunkLine:
    """Tag a raw hunk body line; unprefixed lines become context."""
    if line.startswith("\\"):
        return HunkLine(None, line)
    prefix = line[:1]
    if prefix == "+":
        return HunkLine("add", line[1:])
    if prefix == "-":
        return HunkLine("remove", line[1:])
    if prefix == " ":
        return HunkLine("context", line[1:])
    return HunkLine("context", line)


def split_hunk_bodies(body: Sequence[str]) -> List[Tuple[str | None, List[str]]]:
    """Split an Update body on ``@@`` lines into ``(header, lines)`` pieces.

    Lines ahead of the first ``@@`` form a headerless piece unless they are
    blank or stray ``---``/``+++`` file headers.  Trailing empty lines are
    dropped from every piece.
    """
    pieces: List[Tuple[str | None, List[str]]] = []
    header: str | None = None
    lines: List[str] = []

    def flush() -> None:
        while lines and lines[-1] == "":
            lines.pop()
        if header is not None or lines:
            pieces.append((header, list(lines)))

    for line in body:
        if line.startswith("@@"):
            flush()
            header = line
            lines = []
            continue
        if header is None and not any(entry.strip() for entry in lines):
            if not line.strip() or line.startswith(("--- ", "+++ ")):
                continue
        lines.append(line)
    flush()
    return pieces


def find_anchor(file_lines: Sequence[str], anchor: Sequence[str]) -> List[int]:
    """Return every zero-based index where ``anchor`` occurs contiguously."""
    size = len(anchor)
    if size == 0 or size > len(file_lines):
        return []
    expected = list(anchor)
    return [
        index
        for index in range(len(file_lines) - size + 1)
        if list(file_lines[index : index + size]) == expected
    ]


class HunkNormalizer:
    """Build :class:`FileSection` objects for marker blocks against a workspace."""

    def __init__(self, workspace: Workspace) -> None:
        self.workspace = workspace

    def section_for(self, block: FileBlock) -> FileSection:
        relative = self.workspace.relative(block.path).as_posix()
        if block.action == "add":
            return self._add_section(relative, block)
        if block.action == "delete":
            return self._delete_section(relative)
        return self._update_section(relative, block)

    def convert(self, blocks: Iterable[FileBlock]) -> str:
        blocks = list(blocks)
        for block in blocks:
            self.workspace.relative(block.path)
        sections = [self.section_for(block) for block in blocks]
        return render_sections(sections)

    def _add_section(self, path: str, block: FileBlock) -> FileSection:
        body = list(block.body)
        non_empty = [line for line in body if line]
        if non_empty and all(line.startswith("+") for line in non_empty):
            body = [line[1:] if line.startswith("+") else line for line in body]
        hunk = Hunk(old_start=0, new_start=1, lines=[HunkLine("add", line) for line in body])
        return FileSection(DEV_NULL, f"b/{path}", [hunk])

    def _delete_section(self, path: str) -> FileSection:
        current = self.workspace.read_lines(path)
        if not current:
            hunk = Hunk(old_start=0, new_start=0)
        else:
            hunk = Hunk(old_start=1, new_start=0, lines=[HunkLine("remove", line) for line in current])
        return FileSection(f"a/{path}", DEV_NULL, [hunk])

    def _update_section(self, path: str, block: FileBlock) -> FileSection:
        current = self.workspace.read_lines(path)
        section = FileSection(f"a/{path}", f"b/{path}")
        for header, raw_lines in split_hunk_bodies(block.body):
            lines = [tag_line(line) for line in raw_lines]
            match = _HUNK_HEADER.match(header) if header else None
            if match:
                hunk = Hunk(
                    old_start=int(match.group("old_start")),
                    new_start=int(match.group("new_start")),
                    lines=lines,
                    section=match.group("section").strip(),
                )
            else:
                if not lines:
                    continue
                hunk = self._anchored_hunk(path, current, lines)
            section.hunks.append(hunk)
        return section

    def _anchored_hunk(self, path: str, current: Sequence[str], lines: List[HunkLine]) -> Hunk:
        removed = [line.content for line in lines if line.tag == "remove"]
        anchor = removed or [line.content for line in lines if line.tag == "context"]
        if not anchor:
            # Pure insertion: append after the last line.
            end = len(current)
            return Hunk(old_start=end, new_start=end + 1, lines=lines)

        matches = find_anchor(current, anchor)
        details = {"path": path, "anchor": anchor, "matches": [index + 1 for index in matches]}
        if not matches:
            raise ContextNotFoundError(
                f"Could not locate hunk context in {path}: {anchor[0]!r}",
                details=details,
            )
        if len(matches) > 1:
            raise AmbiguousMatchError(
                f"Hunk context matches {len(matches)} locations in {path}: "
                f"lines {', '.join(str(index + 1) for index in matches)}",
                details=details,
            )
        start = matches[0] + 1
        LOGGER.debug("Anchored hunk for %s at line %d", path, start)
        # new_start ignores drift from earlier hunks in the same file.
        return Hunk(old_start=start, new_start=start, lines=lines)


def check_diff_paths(diff_text: str, workspace: Workspace) -> None:
    """Reject any ``---``/``+++`` target that would land outside the workspace."""
    prefix = f"{workspace.root.as_posix().rstrip('/')}/"
    for path in diff_header_paths(diff_text):
        if path.startswith("/") and not path.startswith(prefix):
            raise UnsafePathError(f"Absolute path outside {workspace.root} in patch: {path}", details={"path": path})
        workspace.relative(path)


def convert_patch(patch_text: str, root: Path | str | Workspace) -> str:
    """Return the canonical unified diff for ``patch_text`` relative to ``root``."""
    workspace = root if isinstance(root, Workspace) else Workspace(root)
    match parse_patch(patch_text):
        case AlreadyUnified(text=text) | Opaque(text=text):
            check_diff_paths(text, workspace)
            return text
        case MarkerBlocks(blocks=blocks):
            return HunkNormalizer(workspace).convert(blocks)
    raise AssertionError("unreachable")


__all__ = [
    "HunkNormalizer",
    "check_diff_paths",
    "convert_patch",
    "find_anchor",
    "split_hunk_bodies",
    "tag_line",
]
