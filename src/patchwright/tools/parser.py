"""Classify raw patch text and split marker-style patches into file blocks."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Tuple, Union

from ..errors import PatchFormatError
from ..structured import FileBlock
from .workspace import normalise_line_endings

_OLD_HEADER = re.compile(r"^--- \S", re.MULTILINE)
_NEW_HEADER = re.compile(r"^\+\+\+ \S", re.MULTILINE)
_MARKER = re.compile(
    r"^\s*\*\s*\*\s*\*\s*(?P<kind>begin\s+patch|end\s+patch|end\s+of\s+file|update\s+file|add\s+file|delete\s+file)"
    r"\s*(?::\s*(?P<path>.*?))?\s*$",
    re.IGNORECASE,
)
_FENCE = "```"
_ACTIONS = {"update": "update", "add": "add", "delete": "delete"}


@dataclass(slots=True, frozen=True)
class AlreadyUnified:
    """Text that is already a unified diff."""

    text: str


@dataclass(slots=True, frozen=True)
class MarkerBlocks:
    """``*** Update/Add/Delete File`` blocks in input order."""

    blocks: Tuple[FileBlock, ...]


@dataclass(slots=True, frozen=True)
class Opaque:
    """Text with no recognisable structure, passed through untouched."""

    text: str


ParsedPatch = Union[AlreadyUnified, MarkerBlocks, Opaque]


def ensure_trailing_newline(text: str) -> str:
    if text.endswith("\n"):
        return text
    return text + "\n"


def looks_unified(text: str) -> bool:
    """Return True when ``text`` carries both ``--- x`` and ``+++ x`` headers."""
    return _OLD_HEADER.search(text) is not None and _NEW_HEADER.search(text) is not None


def _marker_kind(line: str) -> tuple[str, str] | None:
    match = _MARKER.match(line)
    if not match:
        return None
    kind = " ".join(match.group("kind").lower().split())
    return kind, (match.group("path") or "").strip()


def split_marker_blocks(text: str) -> List[FileBlock]:
    """Split marker-style text into :class:`FileBlock` entries.

    Lines between triple-backtick fences never reach a block body, while the
    fence itself leaves the current block open.
    """
    blocks: List[FileBlock] = []
    current: FileBlock | None = None
    in_fence = False

    for line in text.splitlines():
        if line.lstrip().startswith(_FENCE):
            in_fence = not in_fence
            continue

        marker = _marker_kind(line)
        if marker is not None:
            kind, path = marker
            if kind == "end patch":
                current = None
            elif kind in ("begin patch", "end of file"):
                pass
            else:
                if not path:
                    raise PatchFormatError(f"Patch block missing target path: {line.strip()}")
                action = _ACTIONS[kind.split()[0]]
                current = FileBlock(action=action, path=path)  # type: ignore[arg-type]
                blocks.append(current)
            continue

        if current is not None and not in_fence:
            current.body.append(line)

    return blocks


def parse_patch(text: str) -> ParsedPatch:
    """Classify ``text`` as :class:`AlreadyUnified`, :class:`MarkerBlocks` or :class:`Opaque`."""
    normalised = normalise_line_endings(text or "")
    if looks_unified(normalised):
        return AlreadyUnified(ensure_trailing_newline(normalised))
    blocks = split_marker_blocks(normalised)
    if blocks:
        return MarkerBlocks(tuple(blocks))
    return Opaque(ensure_trailing_newline(normalised))


def _header_operand(line: str) -> str | None:
    operand = line[4:].split("\t", 1)[0].strip().strip('"')
    if not operand or operand == "/dev/null":
        return None
    if operand.startswith(("a/", "b/")):
        operand = operand[2:]
    return operand or None


def diff_header_paths(text: str) -> List[str]:
    """Return the targets named by every ``---``/``+++`` header pair in ``text``.

    Trailing timestamps and surrounding quotes are removed, ``/dev/null`` is
    skipped and one leading ``a/`` or ``b/`` prefix is dropped.  Only a ``---``
    line directly followed by a ``+++`` line is a header.
    """
    lines = text.splitlines()
    paths: List[str] = []
    for old, new in zip(lines, lines[1:]):
        if not (old.startswith("--- ") and new.startswith("+++ ")):
            continue
        for operand in (_header_operand(old), _header_operand(new)):
            if operand is not None and operand not in paths:
                paths.append(operand)
    return paths


def has_diff_tokens(block: FileBlock) -> bool:
    """Return True when any body line looks like diff syntax rather than content."""
    return any(line.startswith(("@@", "+", "-")) for line in block.body)


__all__ = [
    "AlreadyUnified",
    "MarkerBlocks",
    "Opaque",
    "ParsedPatch",
    "diff_header_paths",
    "ensure_trailing_newline",
    "has_diff_tokens",
    "looks_unified",
    "parse_patch",
    "split_marker_blocks",
]
