"""#include指令の編集のテスト。"""

import pytest
from pathlib import Path
from tempfile import TemporaryDirectory

from include_audit.io.include_editor import (
    add_includes,
    format_include,
    include_spelling,
    is_header_file,
    parse_includes,
    remove_includes,
)


SOURCE_TEXT = """#include "main.hpp"
#include "a.hpp"

int main() {}
"""

HEADER_TEXT = """#pragma once
#include <vector>
#if defined(USE_EXTRA)
#include "extra.hpp"
#endif

class Widget;
"""


class TestIsHeaderFile:

    @pytest.mark.parametrize("path, expected", [
        ("widget.hpp", True),
        ("widget.H", True),
        ("detail/impl.ipp", True),
        ("main.cpp", False),
        ("main.cc", False),
    ])
    def test_extensions(self, path, expected):
        assert is_header_file(path) is expected


class TestIncludeSpelling:
    """#include表記の決定テスト。"""

    def test_same_directory(self):
        assert include_spelling("/project/src/util.hpp", "/project/src/main.cpp") == ("util.hpp", False)

    def test_same_source_tree(self):
        """同じsrcツリー内ならソースからの相対パスを使う。"""
        spelling = include_spelling("/project/src/core/types.hpp", "/project/src/app/main.cpp")
        assert spelling == ("../core/types.hpp", False)

    def test_shortest_include_path(self):
        spelling = include_spelling(
            "/project/include/lib/widget.hpp",
            "/project/app/main.cpp",
            ["/project/include", "/project/include/lib"]
        )
        assert spelling == ("widget.hpp", True)

    def test_fallback_to_relative_path(self):
        spelling = include_spelling("/other/widget.hpp", "/project/app/main.cpp")
        assert spelling == ("../../other/widget.hpp", False)

    def test_format(self):
        assert format_include("vector", angled=True) == "#include <vector>"
        assert format_include("a.hpp") == '#include "a.hpp"'


class TestParseIncludes:
    """挿入位置の決定テスト。"""

    def test_source_skips_corresponding_header(self):
        offset, includes = parse_includes(SOURCE_TEXT, is_header=False)
        assert offset == len('#include "main.hpp"\n')
        assert includes == {"main.hpp", "a.hpp"}

    def test_header_guard_and_conditional_blocks(self):
        """ガード内の#includeを数え、#if内のものは無視する。"""
        offset, includes = parse_includes(HEADER_TEXT, is_header=True)
        assert offset == len("#pragma once\n")
        assert includes == {"vector"}

    def test_pragma_once_with_ifndef_guard(self):
        """#pragma onceと#ifndefガードの併用はガード1段として数える。"""
        text = (
            "#pragma once\n"
            "#ifndef WIDGET_HPP\n"
            "#define WIDGET_HPP\n"
            '#include "a.hpp"\n'
            "\n"
            "class Widget;\n"
            "#endif\n"
        )
        offset, includes = parse_includes(text, is_header=True)
        assert offset == len("#pragma once\n#ifndef WIDGET_HPP\n#define WIDGET_HPP\n")
        assert includes == {"a.hpp"}

    def test_no_includes(self):
        assert parse_includes("int x;\n", is_header=False) == (0, set())


class TestEditFiles:
    """ファイル編集のテスト。"""

    def test_add_includes(self):
        with TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "main.cpp"
            path.write_text(SOURCE_TEXT, encoding="utf-8")

            added = add_includes(str(path), [("b.hpp", False), ("a.hpp", False), ("set", True)])

            assert added == ['#include "b.hpp"', "#include <set>"]
            assert path.read_text(encoding="utf-8").splitlines()[:4] == [
                '#include "main.hpp"',
                '#include "b.hpp"',
                "#include <set>",
                '#include "a.hpp"',
            ]

    def test_add_nothing_leaves_file(self):
        with TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "main.cpp"
            path.write_text(SOURCE_TEXT, encoding="utf-8")

            assert add_includes(str(path), [("a.hpp", False)]) == []
            assert path.read_text(encoding="utf-8") == SOURCE_TEXT

    def test_remove_includes(self):
        with TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "main.cpp"
            path.write_text(SOURCE_TEXT, encoding="utf-8")

            assert remove_includes(str(path), [2]) == 1
            assert path.read_text(encoding="utf-8") == '#include "main.hpp"\n\nint main() {}\n'

    def test_remove_nothing(self):
        with TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "main.cpp"
            path.write_text(SOURCE_TEXT, encoding="utf-8")

            assert remove_includes(str(path), []) == 0
            assert path.read_text(encoding="utf-8") == SOURCE_TEXT
