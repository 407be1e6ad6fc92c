"""Path containment rules for patch targets."""

from __future__ import annotations

from pathlib import Path, PurePosixPath
from typing import Iterable

from ..errors import UnsafePathError


def _root_prefix(root: Path) -> str:
    text = root.as_posix().rstrip("/")
    return f"{text}/" if text else "/"


def relative_to_root(
    root: Path | str,
    candidate: str,
    *,
    protected: Iterable[str] = (".git",),
) -> Path:
    """Return ``candidate`` as a traversal-free path relative to ``root``.

    Absolute paths are rewritten relative to ``root`` when they live under it
    and otherwise lose their leading separators.  Any ``..`` component, a
    protected first component, or a symlink that resolves outside ``root`` is
    rejected with :class:`UnsafePathError`.  Nothing on disk is modified.
    """
    root_path = Path(root).resolve()
    raw = (candidate or "").strip().replace("\\", "/")
    if not raw:
        raise UnsafePathError("Empty target path.", details={"path": candidate})

    if raw.startswith("/"):
        prefix = _root_prefix(root_path)
        if raw == root_path.as_posix():
            raw = ""
        elif raw.startswith(prefix):
            raw = raw[len(prefix):]
        raw = raw.lstrip("/")

    parts = [part for part in PurePosixPath(raw).parts if part not in ("", ".")]
    if any(part == ".." for part in parts):
        raise UnsafePathError(f"Path escaping detected in patch: {candidate}", details={"path": candidate})
    if not parts:
        raise UnsafePathError(f"Path resolves to the root itself: {candidate}", details={"path": candidate})
    if parts[0] in set(protected):
        raise UnsafePathError(f"Patches may not target {parts[0]}: {candidate}", details={"path": candidate})

    relative = Path(*parts)
    resolved = (root_path / relative).resolve()
    try:
        resolved.relative_to(root_path)
    except ValueError:
        raise UnsafePathError(
            f"File {candidate} not under {root_path}",
            details={"path": candidate, "resolved": resolved.as_posix()},
        ) from None
    return relative


def resolve_within_root(
    root: Path | str,
    candidate: str,
    *,
    protected: Iterable[str] = (".git",),
) -> Path:
    """Absolute on-disk location for ``candidate`` after containment checks."""
    return Path(root).resolve() / relative_to_root(root, candidate, protected=protected)


__all__ = ["relative_to_root", "resolve_within_root"]
