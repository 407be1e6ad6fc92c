from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from patchwright.errors import AmbiguousMatchError, ContextNotFoundError, UnsafePathError
from patchwright.structured import FileBlock
from patchwright.tools.hunks import (
    HunkNormalizer,
    check_diff_paths,
    convert_patch,
    find_anchor,
    split_hunk_bodies,
    tag_line,
)
from patchwright.tools.workspace import Workspace

CHATGPT_PATCH = textwrap.dedent(
    """
    *** Begin Patch
    *** Update File: f.rb
    @@
    -require 'scout/gear'
    -require 'scout-ai'
    -require_relative '../lib/swing_trader/agent'
    -require_relative '../lib/swing_trader/swing_trader'
    +require 'scout/gear'
    +require_relative '../lib/swing_trader/swing_trader'
    *** End Patch
    """
).lstrip()


def test_update_block_resolves_header_from_file(workspace_root: Path) -> None:
    expected = (
        "--- a/f.rb\n"
        "+++ b/f.rb\n"
        "@@ -1,4 +1,2 @@\n"
        "-require 'scout/gear'\n"
        "-require 'scout-ai'\n"
        "-require_relative '../lib/swing_trader/agent'\n"
        "-require_relative '../lib/swing_trader/swing_trader'\n"
        "+require 'scout/gear'\n"
        "+require_relative '../lib/swing_trader/swing_trader'\n"
    )

    assert convert_patch(CHATGPT_PATCH, workspace_root) == expected


def test_unified_diff_is_returned_unchanged(workspace_root: Path) -> None:
    diff = "--- a/f.rb\n+++ b/f.rb\n@@ -1,1 +1,1 @@\n-require 'scout/gear'\n+require 'scout'\n"

    assert convert_patch(diff, workspace_root) == diff
    assert convert_patch(diff.rstrip("\n"), workspace_root) == diff


def test_add_block_counts_body_lines(workspace_root: Path) -> None:
    patch = "*** Begin Patch\n*** Add File: docs/notes.md\n+# Notes\n+\n+first\n*** End Patch\n"

    diff = convert_patch(patch, workspace_root)

    assert diff == "--- /dev/null\n+++ b/docs/notes.md\n@@ -0,0 +1,3 @@\n+# Notes\n+\n+first\n"


def test_add_block_with_unprefixed_lines_keeps_them_verbatim(workspace_root: Path) -> None:
    patch = "*** Add File: a.txt\nalpha\n+beta\n*** End Patch\n"

    diff = convert_patch(patch, workspace_root)

    assert diff.splitlines()[2:] == ["@@ -0,0 +1,2 @@", "+alpha", "++beta"]


def test_delete_block_removes_every_line(workspace_root: Path) -> None:
    diff = convert_patch("*** Delete File: src/app.py\n*** End Patch\n", workspace_root)

    lines = diff.splitlines()
    assert lines[:3] == ["--- a/src/app.py", "+++ /dev/null", "@@ -1,5 +0,0 @@"]
    assert lines[3:] == ["-import os", "-", "-def main():", "-    print('hello')", "-    return 0"]


def test_delete_block_for_missing_file_is_empty_hunk(workspace_root: Path) -> None:
    diff = convert_patch("*** Delete File: gone.txt\n", workspace_root)

    assert diff == "--- a/gone.txt\n+++ /dev/null\n@@ -0,0 +0,0 @@\n"


def test_numeric_header_counts_are_recomputed(workspace_root: Path) -> None:
    patch = textwrap.dedent(
        """
        *** Update File: src/app.py
        @@ -3,9 +3,1 @@ def main():
         def main():
        -    print('hello')
        +    print('bye')
        +    print('again')
        *** End Patch
        """
    ).lstrip()

    diff = convert_patch(patch, workspace_root)

    assert "@@ -3,2 +3,3 @@ def main():" in diff.splitlines()


def test_numeric_header_normalises_unprefixed_lines_to_context(workspace_root: Path) -> None:
    patch = "*** Update File: src/app.py\n@@ -3,1 +3,1 @@\ndef main():\n-    print('hello')\n+    print('bye')\n"

    lines = convert_patch(patch, workspace_root).splitlines()

    assert lines[2:] == ["@@ -3,2 +3,2 @@", " def main():", "-    print('hello')", "+    print('bye')"]


def test_no_newline_marker_is_carried_but_not_counted(workspace_root: Path) -> None:
    patch = "*** Update File: src/app.py\n@@ -5 +5 @@\n-    return 0\n+    return 1\n\\ No newline at end of file\n"

    lines = convert_patch(patch, workspace_root).splitlines()

    assert lines[2:] == ["@@ -5,1 +5,1 @@", "-    return 0", "+    return 1", "\\ No newline at end of file"]


def test_context_anchor_is_used_when_nothing_is_removed(workspace_root: Path) -> None:
    patch = "*** Update File: src/app.py\n@@\n def main():\n+    '''Entry point.'''\n"

    lines = convert_patch(patch, workspace_root).splitlines()

    assert lines[2:] == ["@@ -3,1 +3,2 @@", " def main():", "+    '''Entry point.'''"]


def test_body_without_header_is_resolved_by_anchor(workspace_root: Path) -> None:
    patch = "*** Update File: src/app.py\n-    return 0\n+    return 1\n*** End Patch\n"

    lines = convert_patch(patch, workspace_root).splitlines()

    assert lines[2] == "@@ -5,1 +5,1 @@"


def test_multiple_hunks_keep_order(workspace_root: Path) -> None:
    patch = textwrap.dedent(
        """
        *** Update File: src/app.py
        @@
        -import os
        +import sys
        @@
        -    return 0
        +    return 1
        *** End Patch
        """
    ).lstrip()

    lines = convert_patch(patch, workspace_root).splitlines()

    assert [line for line in lines if line.startswith("@@")] == ["@@ -1,1 +1,1 @@", "@@ -5,1 +5,1 @@"]


def test_missing_anchor_raises_context_not_found(workspace_root: Path) -> None:
    patch = "*** Update File: src/app.py\n@@\n-    print('nope')\n+    print('bye')\n"

    with pytest.raises(ContextNotFoundError) as excinfo:
        convert_patch(patch, workspace_root)

    assert excinfo.value.details["path"] == "src/app.py"


def test_repeated_anchor_raises_ambiguous_match(tmp_path: Path) -> None:
    (tmp_path / "dup.txt").write_text("x\ny\nx\n", encoding="utf-8")
    patch = "*** Update File: dup.txt\n@@\n-x\n+z\n"

    with pytest.raises(AmbiguousMatchError) as excinfo:
        convert_patch(patch, tmp_path)

    assert excinfo.value.details["matches"] == [1, 3]


def test_pure_insertion_appends_after_last_line(workspace_root: Path) -> None:
    patch = "*** Update File: src/app.py\n@@\n+# trailer\n"

    lines = convert_patch(patch, workspace_root).splitlines()

    assert lines[2:] == ["@@ -5,0 +6,1 @@", "+# trailer"]


def test_traversal_in_block_path_is_fatal(workspace_root: Path) -> None:
    with pytest.raises(UnsafePathError):
        convert_patch("*** Add File: ../escape.txt\n+boom\n", workspace_root)
    assert not (workspace_root.parent / "escape.txt").exists()


def test_absolute_block_path_is_rewritten(workspace_root: Path) -> None:
    absolute = (workspace_root.resolve() / "src" / "app.py").as_posix()
    patch = f"*** Update File: {absolute}\n@@\n-import os\n+import sys\n"

    lines = convert_patch(patch, workspace_root).splitlines()

    assert lines[:2] == ["--- a/src/app.py", "+++ b/src/app.py"]


def test_split_hunk_bodies_skips_stray_headers_and_trailing_blanks() -> None:
    body = ["--- a/x", "+++ b/x", "@@ -1 +1 @@", "-a", "+b", "", ""]

    assert split_hunk_bodies(body) == [("@@ -1 +1 @@", ["-a", "+b"])]


def test_tag_line_prefixes() -> None:
    assert tag_line("+x").tag == "add"
    assert tag_line("-x").tag == "remove"
    assert tag_line(" x").content == "x"
    assert tag_line("x").render() == " x"
    assert tag_line("\\ No newline at end of file").tag is None


def test_find_anchor_reports_every_match() -> None:
    assert find_anchor(["a", "b", "a", "b"], ["a", "b"]) == [0, 2]
    assert find_anchor(["a"], ["a", "b"]) == []
    assert find_anchor(["a"], []) == []


def test_normalizer_sections_follow_block_order(workspace_root: Path) -> None:
    normalizer = HunkNormalizer(Workspace(workspace_root))
    blocks = [
        FileBlock("add", "new.txt", ["+hi"]),
        FileBlock("delete", "f.rb", []),
    ]

    diff = normalizer.convert(blocks)

    headers = [line for line in diff.splitlines() if line.startswith(("---", "+++"))]
    assert headers == ["--- /dev/null", "+++ b/new.txt", "--- a/f.rb", "+++ /dev/null"]
    assert diff.endswith("\n")


class _RecordingWorkspace(Workspace):
    def __init__(self, root: Path) -> None:
        super().__init__(root)
        self.reads: list[str] = []

    def read_lines(self, path: str) -> list[str]:
        self.reads.append(path)
        return super().read_lines(path)


def test_every_block_path_is_checked_before_reading(workspace_root: Path) -> None:
    workspace = _RecordingWorkspace(workspace_root)
    blocks = [
        FileBlock("update", "src/app.py", ["@@", "-import os", "+import sys"]),
        FileBlock("delete", "../outside.txt", []),
    ]

    with pytest.raises(UnsafePathError):
        HunkNormalizer(workspace).convert(blocks)
    assert workspace.reads == []


def test_unified_diff_headers_are_checked(workspace_root: Path) -> None:
    with pytest.raises(UnsafePathError):
        convert_patch("--- a/../x.txt\n+++ b/../x.txt\n@@ -0,0 +1 @@\n+x\n", workspace_root)

    check_diff_paths("--- /dev/null\n+++ b/docs/new.md\n@@ -0,0 +1 @@\n+x\n", Workspace(workspace_root))


def test_removed_comment_lines_are_not_headers(workspace_root: Path) -> None:
    diff = "--- a/q.sql\n+++ b/q.sql\n@@ -1,2 +1,1 @@\n--- ../drop me\n select 1;\n"

    assert convert_patch(diff, workspace_root) == diff
