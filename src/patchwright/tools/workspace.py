"""Root-bound filesystem access used while converting and applying patches."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List

from .paths import relative_to_root

LOGGER = logging.getLogger(__name__)


def normalise_line_endings(text: str) -> str:
    """Convert CRLF/CR sequences to LF for deterministic matching."""
    return text.replace("\r\n", "\n").replace("\r", "\n")


class Workspace:
    """File primitives confined to a single root directory.

    Every method funnels its path through :func:`relative_to_root` before
    touching the disk, so an unsafe path fails before any read or write.
    """

    def __init__(self, root: Path | str, *, protected: Iterable[str] = (".git",)) -> None:
        self.root = Path(root).resolve()
        self.protected = tuple(protected)

    def relative(self, path: str) -> Path:
        return relative_to_root(self.root, path, protected=self.protected)

    def resolve(self, path: str) -> Path:
        return self.root / self.relative(path)

    def exists(self, path: str) -> bool:
        return self.resolve(path).is_file()

    def read_lines(self, path: str) -> List[str]:
        """Read ``path`` as a list of lines without terminators; absent -> ``[]``."""
        target = self.resolve(path)
        if not target.is_file():
            return []
        try:
            text = target.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            text = target.read_text(encoding="utf-8", errors="replace")
        return normalise_line_endings(text).splitlines()

    def backup(self, path: str) -> Path | None:
        """Copy ``path`` to a timestamped sibling; returns the backup location."""
        target = self.resolve(path)
        if not target.exists():
            return None
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        candidate = target.with_name(f"{target.name}.{stamp}.bak")
        counter = 1
        while candidate.exists():
            candidate = target.with_name(f"{target.name}.{stamp}.{counter}.bak")
            counter += 1
        shutil.copy2(target, candidate)
        LOGGER.debug("Backed up %s to %s", target, candidate)
        return candidate

    def write_atomic(self, path: str, content: str) -> Path:
        """Write ``content`` to a temporary sibling and rename it over ``path``."""
        target = self.resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=target.parent,
            prefix=f".{target.name}.",
            suffix=".tmp",
            delete=False,
        ) as handle:
            handle.write(content)
            temp_path = Path(handle.name)
        try:
            if target.exists():
                shutil.copymode(target, temp_path)
            os.replace(temp_path, target)
        except OSError:
            temp_path.unlink(missing_ok=True)
            raise
        return target

    def remove(self, path: str) -> bool:
        """Delete ``path``; returns ``False`` when it was already absent."""
        target = self.resolve(path)
        if not target.exists():
            return False
        target.unlink()
        return True


__all__ = ["Workspace", "normalise_line_endings"]
