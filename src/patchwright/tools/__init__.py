"""Patch conversion and application tools."""

from .direct import DirectApplyReport, apply_blocks_directly, is_plain_content
from .hunks import HunkNormalizer, convert_patch, find_anchor
from .parser import AlreadyUnified, MarkerBlocks, Opaque, ParsedPatch, parse_patch
from .patch import PatchContext, apply_patch
from .paths import relative_to_root, resolve_within_root
from .runner import CommandResult, CommandRunner, DiffApplier, PatchToolApplier
from .strip import StripResolution, resolve_strip
from .workspace import Workspace

__all__ = [
    "AlreadyUnified",
    "CommandResult",
    "CommandRunner",
    "DiffApplier",
    "DirectApplyReport",
    "HunkNormalizer",
    "MarkerBlocks",
    "Opaque",
    "ParsedPatch",
    "PatchContext",
    "PatchToolApplier",
    "StripResolution",
    "Workspace",
    "apply_blocks_directly",
    "apply_patch",
    "convert_patch",
    "find_anchor",
    "is_plain_content",
    "parse_patch",
    "relative_to_root",
    "resolve_within_root",
    "resolve_strip",
]
