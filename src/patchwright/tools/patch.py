"""Translate model-written patches into unified diffs and apply them with guard rails."""

from __future__ import annotations

import logging
import tempfile
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Sequence, Tuple

from ..config import PatchSettings
from ..errors import AmbiguousMatchError, ContextNotFoundError, PatchFormatError
from ..structured import ApplyResult, FileBlock, Outcome, StripAttempt
from .diagnostics import build_suggestion, emit_patch_event, parse_patch_failures
from .direct import apply_blocks_directly, is_plain_content
from .hunks import HunkNormalizer, check_diff_paths
from .parser import AlreadyUnified, MarkerBlocks, Opaque, parse_patch
from .runner import CommandResult, CommandRunner, DiffApplier, PatchToolApplier
from .strip import StripResolution, resolve_strip
from .workspace import Workspace

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class PatchContext:
    """Everything one invocation needs, threaded explicitly instead of globals."""

    settings: PatchSettings
    workspace: Workspace
    applier: DiffApplier

    @property
    def root(self) -> Path:
        return self.settings.root

    @classmethod
    def from_settings(cls, settings: PatchSettings, *, applier: DiffApplier | None = None) -> "PatchContext":
        workspace = Workspace(settings.root, protected=settings.protected)
        if applier is None:
            applier = PatchToolApplier(
                settings.root,
                runner=CommandRunner(timeout=settings.timeout),
                tool=settings.patch_tool,
                extra_args=settings.extra_args,
            )
        return cls(settings=settings, workspace=workspace, applier=applier)


@dataclass(slots=True)
class _Artifacts:
    """Write-once audit copies; ``directory`` is ``None`` when auditing is off."""

    directory: Path | None
    diff_path: Path

    def discard(self) -> None:
        if self.directory is None:
            self.diff_path.unlink(missing_ok=True)


def _write_artifacts(settings: PatchSettings, original: str, generated: str) -> _Artifacts:
    artifact_root = settings.artifacts_root
    if artifact_root is None:
        with tempfile.NamedTemporaryFile("w", encoding="utf-8", suffix=".diff", delete=False) as handle:
            handle.write(generated)
        return _Artifacts(directory=None, diff_path=Path(handle.name))

    timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    run_dir = artifact_root / f"{timestamp}-{uuid.uuid4().hex[:8]}"
    run_dir.mkdir(parents=True, exist_ok=False)
    with (run_dir / "original.patch").open("x", encoding="utf-8") as handle:
        handle.write(original)
    diff_path = run_dir / "generated.diff"
    with diff_path.open("x", encoding="utf-8") as handle:
        handle.write(generated)
    return _Artifacts(directory=run_dir, diff_path=diff_path)


def _validate_input(patch: str, settings: PatchSettings) -> None:
    if not patch or not patch.strip():
        raise PatchFormatError("Patch is empty.")
    size = len(patch.encode("utf-8", errors="replace"))
    if settings.max_patch_bytes > 0 and size > settings.max_patch_bytes:
        raise PatchFormatError(
            f"Patch exceeds maximum size of {settings.max_patch_bytes} bytes.",
            details={"patch_bytes": size},
        )


def convert_for_context(patch: str, context: PatchContext) -> Tuple[str, Tuple[FileBlock, ...]]:
    """Canonical diff text plus the marker blocks it came from (if any)."""
    match parse_patch(patch):
        case AlreadyUnified(text=text) | Opaque(text=text):
            check_diff_paths(text, context.workspace)
            return text, ()
        case MarkerBlocks(blocks=blocks):
            return HunkNormalizer(context.workspace).convert(blocks), blocks
    raise AssertionError("unreachable")


def execute_apply(
    context: PatchContext,
    diff_path: Path,
    resolution: StripResolution,
    *,
    dry_run: bool,
) -> Tuple[CommandResult | StripAttempt, bool]:
    """Apply for real at the confirmed level, or echo the probe under dry-run."""
    assert resolution.used_strip is not None
    if dry_run:
        # Probe of the resolved level; differs from the final probe when a -p1
        # tie-break probe failed.
        attempt = resolution.attempt_for(resolution.used_strip) or resolution.last_attempt
        assert attempt is not None
        return attempt, False
    result = context.applier.apply(diff_path, resolution.used_strip)
    return result, result.exit_status == 0


def apply_patch(
    patch: str,
    *,
    root: Path | str | None = None,
    strip: int | None = None,
    dry_run: bool = False,
    apply_direct: bool = False,
    settings: PatchSettings | None = None,
    applier: DiffApplier | None = None,
) -> ApplyResult:
    """Convert ``patch`` to a canonical diff, find its strip level and apply it.

    Path-safety and structural problems raise before any file is written.
    Everything after conversion is reported through the returned
    :class:`ApplyResult` instead of exceptions.
    """
    if settings is None:
        settings = PatchSettings(root=Path(root) if root is not None else Path.cwd())
    elif root is not None:
        settings = settings.with_root(root)
    context = PatchContext.from_settings(settings, applier=applier)
    telemetry = settings.telemetry

    _validate_input(patch, settings)

    diagnostics: List[str] = []
    blocks: Tuple[FileBlock, ...] = ()
    plain = False
    try:
        generated, blocks = convert_for_context(patch, context)
        plain = is_plain_content(blocks)
    except (ContextNotFoundError, AmbiguousMatchError) as error:
        parsed = parse_patch(patch)
        blocks = parsed.blocks if isinstance(parsed, MarkerBlocks) else ()
        plain = is_plain_content(blocks)
        emit_patch_event(
            "patch_validation_failed",
            enabled=telemetry,
            stage="convert",
            error=str(error),
            details=error.details,
        )
        if not (apply_direct and plain):
            raise
        LOGGER.info("Conversion failed for plain content, falling back to direct apply: %s", error)
        diagnostics.append(f"conversion: {error}")
        generated = ""

    emit_patch_event(
        "patch_converted",
        enabled=telemetry,
        blocks=len(blocks),
        patch_lines=generated.count("\n"),
        plain_content=plain,
    )

    artifacts = _write_artifacts(settings, patch, generated)
    try:
        resolution = StripResolution()
        if generated.strip():
            resolution = resolve_strip(
                context.applier,
                artifacts.diff_path,
                generated,
                strip=strip,
                probe_order=settings.probe_order,
                on_attempt=lambda attempt: emit_patch_event(
                    "strip_probe", enabled=telemetry, strip=attempt.strip, exit_status=attempt.exit_status
                ),
            )
        emit_patch_event(
            "strip_resolved",
            enabled=telemetry,
            used_strip=resolution.used_strip,
            tried=[attempt.strip for attempt in resolution.attempts],
            malformed=resolution.malformed,
        )
        result = _finish(
            context,
            resolution,
            artifacts,
            generated=generated,
            blocks=blocks,
            plain=plain,
            dry_run=dry_run,
            apply_direct=apply_direct,
            diagnostics=diagnostics,
        )
    finally:
        artifacts.discard()
    return result


def _finish(
    context: PatchContext,
    resolution: StripResolution,
    artifacts: _Artifacts,
    *,
    generated: str,
    blocks: Sequence[FileBlock],
    plain: bool,
    dry_run: bool,
    apply_direct: bool,
    diagnostics: List[str],
) -> ApplyResult:
    telemetry = context.settings.telemetry
    applied = False
    applied_directly = False
    changes: List[str] = []

    if resolution.used_strip is not None:
        final, applied = execute_apply(context, artifacts.diff_path, resolution, dry_run=dry_run)
        stdout, stderr, exit_status = final.stdout, final.stderr, final.exit_status
        if dry_run:
            outcome = Outcome.DRY_RUN_OK
        elif applied:
            outcome = Outcome.APPLIED
            emit_patch_event("patch_apply_succeeded", enabled=telemetry, used_strip=resolution.used_strip)
        else:
            outcome = Outcome.APPLY_FAILED_AFTER_DRY_RUN
            emit_patch_event("patch_apply_failed", enabled=telemetry, used_strip=resolution.used_strip, stderr=stderr)
    elif apply_direct and plain and not dry_run:
        report = apply_blocks_directly(blocks, context.workspace)
        diagnostics.extend(report.diagnostics())
        changes = report.changes
        applied = applied_directly = report.ok
        stdout = "\n".join(report.changes)
        stderr = "\n".join(report.errors)
        exit_status = 0 if report.ok else 1
        outcome = Outcome.APPLIED_DIRECTLY if report.ok else Outcome.DIRECT_APPLY_FAILED
        emit_patch_event(
            "patch_applied_directly",
            enabled=telemetry,
            changes=report.changes,
            backups=report.backups,
            errors=report.errors,
        )
    else:
        last = resolution.last_attempt
        stdout = last.stdout if last else ""
        stderr = last.stderr if last else ""
        exit_status = last.exit_status if last else 1
        outcome = Outcome.MALFORMED_PATCH if resolution.malformed else Outcome.NO_STRIP_LEVEL
        emit_patch_event("patch_validation_failed", enabled=telemetry, stage="strip", outcome=outcome.value)

    failing = parse_patch_failures("\n".join(part for part in (stdout, stderr) if part))
    suggestion = build_suggestion(
        outcome,
        used_strip=resolution.used_strip,
        attempts=resolution.attempts,
        root=context.root,
        direct_possible=plain and not applied_directly,
        changes=changes,
    )

    return ApplyResult(
        stdout=stdout,
        stderr=stderr,
        exit_status=exit_status,
        generated_patch=generated,
        tried_strips=tuple(resolution.attempts),
        used_strip=resolution.used_strip,
        applied=applied,
        applied_directly=applied_directly,
        suggestion=suggestion,
        outcome=outcome,
        diagnostics=tuple(diagnostics),
        failing_hunks=tuple(dict(entry) for entry in failing),
        artifacts_dir=artifacts.directory,
    )


__all__ = [
    "PatchContext",
    "apply_patch",
    "convert_for_context",
    "execute_apply",
]
