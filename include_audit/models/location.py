"""マクロ展開の由来を保持するソース位置モデル。"""

from dataclasses import dataclass
from typing import Tuple
import os


@dataclass(frozen=True)
class FileSite:
    """ファイル上の物理的な位置。"""
    file_path: str
    line: int
    column: int = 0

    def __post_init__(self):
        # パス表記を正規化
        object.__setattr__(self, "file_path", os.path.normpath(self.file_path))

    def __str__(self) -> str:
        if self.column:
            return f"{self.file_path}:{self.line}:{self.column}"
        return f"{self.file_path}:{self.line}"


@dataclass(frozen=True)
class ExpansionFrame:
    """マクロ展開1段分の情報。"""
    macro_name: str
    definition_site: FileSite
    call_site: FileSite

    def __str__(self) -> str:
        return (
            f"{self.macro_name} expanded at {self.call_site} "
            f"(defined at {self.definition_site})"
        )


@dataclass(frozen=True)
class Location:
    """ソース位置とマクロ展開チェーン。

    expansion_chainは内側の展開から外側の展開の順に並ぶ。
    末尾のフレームの呼び出し位置が、プログラマが実際にマクロを
    記述した位置となる。
    """
    site: FileSite
    expansion_chain: Tuple[ExpansionFrame, ...] = ()

    @property
    def in_macro_expansion(self) -> bool:
        """マクロ展開の結果として生じた位置かどうか。"""
        return bool(self.expansion_chain)

    @property
    def effective_site(self) -> FileSite:
        """インクルード義務を負う位置。"""
        return resolve_effective_site(self)

    def describe(self) -> str:
        """診断メッセージ用の文字列に変換する。

        Returns:
            ``file:line:column`` にマクロ展開チェーンを付加した文字列
        """
        text = str(self.effective_site)
        for frame in reversed(self.expansion_chain):
            text += (
                f" (in expansion of {frame.macro_name} "
                f"defined at {frame.definition_site})"
            )
        return text

    def __str__(self) -> str:
        return self.describe()


def resolve_effective_site(location: Location) -> FileSite:
    """位置の実効サイトを求める。

    展開チェーンが空なら自身の位置を、空でなければ最も外側の
    展開フレームの呼び出し位置を返す。

    Args:
        location: 解決する位置

    Returns:
        実効サイト
    """
    if not location.expansion_chain:
        return location.site
    return location.expansion_chain[-1].call_site
