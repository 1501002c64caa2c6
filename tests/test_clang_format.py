"""clang-formatによる#include並べ替えのテスト。"""

import subprocess
from pathlib import Path
from tempfile import TemporaryDirectory

from include_audit.io import clang_format
from include_audit.io.clang_format import include_ranges, sort_includes


SOURCE_TEXT = """// widget
#include "b.hpp"
#include "a.hpp"

int main() {
#if defined(DEBUG)
    return 1;
#endif
    return 0;
}
"""


class TestIncludeRanges:
    """並べ替え対象の行範囲のテスト。"""

    def test_leading_block(self):
        assert include_ranges(SOURCE_TEXT) == [(0, 3)]

    def test_no_directives(self):
        assert include_ranges("// comment\n\nint x;\n") == []


class TestSortIncludes:
    """clang-formatの呼び出しのテスト。"""

    def test_command_line(self, monkeypatch):
        calls = []

        def fake_run(command, **kwargs):
            calls.append(command)
            return subprocess.CompletedProcess(command, 0, stdout="", stderr="")

        monkeypatch.setattr(clang_format.subprocess, "run", fake_run)
        with TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "main.cpp"
            path.write_text(SOURCE_TEXT, encoding="utf-8")

            assert sort_includes(str(path), "clang-format-17")
            assert calls == [["clang-format-17", str(path), "-i", "-sort-includes", "-lines=1:4"]]

    def test_failure_is_reported(self, monkeypatch):
        monkeypatch.setattr(
            clang_format.subprocess, "run",
            lambda command, **kwargs: subprocess.CompletedProcess(command, 1, stdout="", stderr="bad")
        )
        with TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "main.cpp"
            path.write_text(SOURCE_TEXT, encoding="utf-8")

            assert not sort_includes(str(path))

    def test_missing_executable(self):
        with TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "main.cpp"
            path.write_text(SOURCE_TEXT, encoding="utf-8")

            assert not sort_includes(str(path), "/nonexistent/clang-format")
            assert path.read_text(encoding="utf-8") == SOURCE_TEXT

    def test_nothing_to_sort(self, monkeypatch):
        monkeypatch.setattr(clang_format.subprocess, "run", None)
        with TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "main.cpp"
            path.write_text("int x;\n", encoding="utf-8")

            assert sort_includes(str(path))
