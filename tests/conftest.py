from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Tuple

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from patchwright.config import PatchSettings  # noqa: E402
from patchwright.tools.runner import CommandResult  # noqa: E402


@dataclass
class FakeApplier:
    """Recording :class:`DiffApplier` with scripted exit statuses per strip level."""

    check_results: Dict[int, Tuple[int, str]] = field(default_factory=dict)
    apply_result: Tuple[int, str] = (0, "")
    calls: List[Tuple[str, int]] = field(default_factory=list)
    diffs: List[str] = field(default_factory=list)

    def check(self, diff_path: Path, strip: int) -> CommandResult:
        self.calls.append(("check", strip))
        self.diffs.append(Path(diff_path).read_text(encoding="utf-8"))
        status, stderr = self.check_results.get(strip, (1, "can't find file to patch at input line 3\n"))
        stdout = "checking file target.txt\n" if status == 0 else ""
        return CommandResult(("patch", f"-p{strip}", "--dry-run"), stdout, stderr, status)

    def apply(self, diff_path: Path, strip: int) -> CommandResult:
        self.calls.append(("apply", strip))
        status, stderr = self.apply_result
        stdout = "patching file target.txt\n"
        return CommandResult(("patch", f"-p{strip}"), stdout, stderr, status)


@pytest.fixture()
def fake_applier() -> FakeApplier:
    return FakeApplier()


@pytest.fixture()
def workspace_root(tmp_path: Path) -> Path:
    """A small project tree used as the containment root."""

    root = tmp_path / "project"
    root.mkdir()
    (root / "f.rb").write_text(
        "require 'scout/gear'\n"
        "require 'scout-ai'\n"
        "require_relative '../lib/swing_trader/agent'\n"
        "require_relative '../lib/swing_trader/swing_trader'\n",
        encoding="utf-8",
    )
    (root / "src").mkdir()
    (root / "src" / "app.py").write_text(
        "import os\n"
        "\n"
        "def main():\n"
        "    print('hello')\n"
        "    return 0\n",
        encoding="utf-8",
    )
    return root


@pytest.fixture()
def settings(workspace_root: Path) -> PatchSettings:
    return PatchSettings(root=workspace_root, telemetry=False)
