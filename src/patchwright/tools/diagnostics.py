"""Caller-facing reporting: failure parsing, suggestions and telemetry events."""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Sequence, Tuple

from ..structured import Outcome, StripAttempt

TELEMETRY_LOGGER = logging.getLogger("patchwright.telemetry")

_FILE_RE = re.compile(r"^(?:checking|patching) file '?(?P<path>.+?)'?$")
_HUNK_FAILED_RE = re.compile(r"^Hunk #(?P<hunk>\d+) FAILED at (?P<line>\d+)")
_HUNK_IGNORED_RE = re.compile(r"^Hunk #(?P<hunk>\d+) ignored at (?P<line>\d+)")
_MISSING_FILE_RE = re.compile(r"can't find file to patch(?: at input line (?P<line>\d+))?")
_MALFORMED_RE = re.compile(r"malformed patch at line (?P<line>\d+)")
_REVERSED_RE = re.compile(r"Reversed \(or previously applied\) patch detected")


def _serialise_event_value(value: Any) -> Any:
    """Convert telemetry payload values into JSON-friendly representations."""
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, (list, tuple, set)):
        return [_serialise_event_value(item) for item in value]
    if isinstance(value, Mapping):
        return {str(key): _serialise_event_value(child) for key, child in value.items()}
    if hasattr(value, "model_dump"):
        return _serialise_event_value(value.model_dump(mode="json"))
    return str(value)


def emit_patch_event(event: str, *, enabled: bool = True, **fields: Any) -> None:
    """Log one structured telemetry event as compact JSON."""
    if not enabled:
        return
    payload = {"event": event, "timestamp": datetime.now(timezone.utc).isoformat()}
    for key, value in fields.items():
        payload[key] = _serialise_event_value(value)
    TELEMETRY_LOGGER.info(json.dumps(payload, separators=(",", ":"), ensure_ascii=True))


def parse_patch_failures(output: str) -> Tuple[Mapping[str, Any], ...]:
    """Extract failing hunk metadata from ``patch`` stdout/stderr."""
    if not output:
        return ()
    entries: list[dict[str, Any]] = []
    current: str | None = None
    for raw_line in output.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        match = _FILE_RE.match(line)
        if match:
            current = match.group("path")
            continue
        match = _HUNK_FAILED_RE.match(line)
        if match:
            entries.append(
                {
                    "path": current,
                    "hunk": int(match.group("hunk")),
                    "line": int(match.group("line")),
                    "reason": "hunk_failed",
                }
            )
            continue
        match = _HUNK_IGNORED_RE.match(line)
        if match:
            entries.append(
                {
                    "path": current,
                    "hunk": int(match.group("hunk")),
                    "line": int(match.group("line")),
                    "reason": "hunk_ignored",
                }
            )
            continue
        match = _MISSING_FILE_RE.search(line)
        if match:
            line_text = match.group("line")
            entries.append(
                {
                    "path": current,
                    "line": int(line_text) if line_text is not None else None,
                    "reason": "file_not_found",
                }
            )
            continue
        match = _MALFORMED_RE.search(line)
        if match:
            entries.append({"path": None, "line": int(match.group("line")), "reason": "malformed"})
            continue
        if _REVERSED_RE.search(line):
            entries.append({"path": current, "reason": "reversed_or_applied"})
    return tuple(entries)


def _levels(attempts: Sequence[StripAttempt]) -> str:
    return ", ".join(f"-p{attempt.strip}" for attempt in attempts) or "none"


def build_suggestion(
    outcome: Outcome,
    *,
    used_strip: int | None,
    attempts: Sequence[StripAttempt],
    root: Path,
    direct_possible: bool = False,
    changes: Sequence[str] = (),
) -> str:
    """Human-readable next step for the caller, keyed on ``outcome``."""
    if outcome is Outcome.DRY_RUN_OK:
        return (
            f"Dry run succeeded with -p{used_strip}. "
            f"Re-run without dry_run (strip={used_strip}) to apply the patch."
        )
    if outcome is Outcome.APPLIED:
        return f"Patch applied with -p{used_strip}."
    if outcome is Outcome.APPLY_FAILED_AFTER_DRY_RUN:
        return (
            f"Dry run succeeded with -p{used_strip} but the real application failed. "
            "Inspect stderr; files may have changed between validation and application."
        )
    if outcome is Outcome.APPLIED_DIRECTLY:
        return (
            "No strip level validated; the plain content was written directly "
            f"({', '.join(changes) or 'no changes'}). Backups sit next to each replaced file."
        )
    if outcome is Outcome.DIRECT_APPLY_FAILED:
        return (
            "Direct apply did not complete for every file; earlier files were not rolled back. "
            "Check diagnostics and restore from the .bak copies if needed."
        )
    if outcome is Outcome.MALFORMED_PATCH:
        return (
            f"The patch tool reported the diff as malformed (tried {_levels(attempts)}). "
            "Regenerate the patch with complete hunks and consistent line prefixes."
        )
    hint = (
        f"No strip level applied cleanly (tried {_levels(attempts)}). "
        f"Check that paths are relative to {root.as_posix()} and that context lines "
        "match the current file contents."
    )
    if direct_possible:
        hint += " The input is plain file content; pass apply_direct to write it without a diff."
    return hint


__all__ = ["build_suggestion", "emit_patch_event", "parse_patch_failures"]
