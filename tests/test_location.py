"""ソース位置モデルのテスト。"""

from include_audit.models import ExpansionFrame, FileSite, Location, resolve_effective_site


def _frame(name: str, call_line: int, file_path: str = "/project/src/main.cpp") -> ExpansionFrame:
    return ExpansionFrame(
        macro_name=name,
        definition_site=FileSite("/project/include/macros.hpp", 3),
        call_site=FileSite(file_path, call_line, 5)
    )


class TestResolveEffectiveSite:
    """実効サイト解決のテスト。"""

    def test_empty_chain_returns_own_site(self):
        """展開チェーンが空なら自身の位置を返す。"""
        site = FileSite("/project/src/main.cpp", 10, 4)
        assert resolve_effective_site(Location(site)) == site

    def test_single_frame_returns_call_site(self):
        """マクロ本体の位置は呼び出し位置に帰属する。"""
        location = Location(
            FileSite("/project/include/macros.hpp", 3, 1),
            (_frame("INSIDE_MACRO", 20),)
        )
        assert resolve_effective_site(location) == FileSite("/project/src/main.cpp", 20, 5)

    def test_outermost_frame_wins(self):
        """ネストした展開では最も外側の呼び出し位置を返す。"""
        inner = _frame("INNER", 3, file_path="/project/include/macros.hpp")
        outer = _frame("OUTER", 42)
        location = Location(FileSite("/project/include/macros.hpp", 1), (inner, outer))

        assert location.effective_site == outer.call_site
        assert location.in_macro_expansion


class TestLocationDescribe:
    """診断用文字列のテスト。"""

    def test_plain_location(self):
        location = Location(FileSite("/project/src/main.cpp", 7, 2))
        assert location.describe() == "/project/src/main.cpp:7:2"
        assert not location.in_macro_expansion

    def test_expansion_chain_is_reported(self):
        """展開チェーンがメッセージに含まれる。"""
        location = Location(
            FileSite("/project/include/macros.hpp", 3),
            (_frame("INSIDE_MACRO", 20),)
        )
        text = str(location)
        assert text.startswith("/project/src/main.cpp:20:5")
        assert "in expansion of INSIDE_MACRO" in text
        assert "/project/include/macros.hpp:3" in text

    def test_file_path_is_normalized(self):
        site = FileSite("/project/src/../src/main.cpp", 1)
        assert site.file_path == "/project/src/main.cpp"
