"""インクルードを常に残す指定（keepコメント・除外パターン）の収集。"""

from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Set
import logging
import re

from ..io.include_editor import is_header_file
from ..models.location import FileSite, Location
from ..models.unit import IncludeDirective, Suppression

logger = logging.getLogger(__name__)


DEFAULT_IGNORE_INCLUDES = r"(/private/|[_/]impl[_\./])"

# #include指令の直後に続くkeepコメント
_RE_INCLUDE_LINE = re.compile(r"^[ \t]*#[ \t]*include[ \t]*(<[^>\n]*>|\"[^\"\n]*\")(?P<rest>.*)$")
_RE_KEEP = re.compile(r"^[ \t]*//[ \t]*(keep\b|IWYU[ \t]+pragma:[ \t]*keep\b)")

REASON_KEEP_COMMENT = "keep comment"
REASON_IGNORE_PATTERN = "ignore pattern"
REASON_CORRESPONDING_HEADER = "corresponding header"
REASON_CONFIGURED = "keep_headers"


def find_keep_lines(text: str) -> Set[int]:
    """keepコメントの付いた#include指令の行番号を取得する。

    Args:
        text: ソースファイルの内容

    Returns:
        1始まりの行番号の集合
    """
    lines = set()
    for number, line in enumerate(text.splitlines(), start=1):
        match = _RE_INCLUDE_LINE.match(line)
        if match and _RE_KEEP.match(match.group("rest")):
            lines.add(number)
    return lines


class SuppressionCollector:
    """翻訳単位ごとのSuppressionを生成する。"""

    def __init__(
        self,
        ignore_pattern: Optional[str] = DEFAULT_IGNORE_INCLUDES,
        keep_corresponding_header: bool = True,
        keep_headers: Optional[Sequence[str]] = None
    ):
        """収集器を初期化する。

        Args:
            ignore_pattern: 常に残すヘッダーパスの正規表現（空なら無効）
            keep_corresponding_header: ソースファイルと同名のヘッダーを残すか
            keep_headers: 常に残すヘッダー（パスまたは末尾一致する名前）
        """
        self.ignore_re = re.compile(ignore_pattern) if ignore_pattern else None
        self.keep_corresponding_header = keep_corresponding_header
        self.keep_headers = list(keep_headers or [])

    def collect(
        self,
        source_file: str,
        includes: Iterable[IncludeDirective],
        source_text: str = ""
    ) -> List[Suppression]:
        """翻訳単位のSuppressionを収集する。

        Args:
            source_file: メインソースファイルのパス
            includes: メインファイルの#include指令
            source_text: メインファイルの内容（keepコメント検出用）

        Returns:
            Suppressionのリスト（指令の記述順、設定分は末尾）
        """
        includes = list(includes)
        keep_lines = find_keep_lines(source_text) if source_text else set()
        source_stem = Path(source_file).stem
        source_is_header = is_header_file(source_file)

        suppressions: List[Suppression] = []
        for directive in includes:
            reason = None
            if directive.line in keep_lines:
                reason = REASON_KEEP_COMMENT
            elif self.ignore_re is not None and self.ignore_re.search(
                    directive.header.replace("\\", "/")):
                reason = REASON_IGNORE_PATTERN
            elif (self.keep_corresponding_header and not source_is_header
                  and Path(directive.header).stem == source_stem):
                reason = REASON_CORRESPONDING_HEADER

            if reason is not None:
                logger.debug(f"{source_file}: keep {directive.spelling} ({reason})")
                suppressions.append(Suppression(
                    header=directive.header,
                    reason=reason,
                    location=Location(FileSite(source_file, directive.line))
                ))

        for name in self.keep_headers:
            header = self._match_include(name, includes)
            suppressions.append(Suppression(
                header=header or name,
                reason=REASON_CONFIGURED
            ))

        return suppressions

    @staticmethod
    def _match_include(name: str, includes: Sequence[IncludeDirective]) -> Optional[str]:
        """設定名に一致するインクルードのヘッダーパスを返す。"""
        normalized = name.replace("\\", "/")
        for directive in includes:
            header = directive.header.replace("\\", "/")
            if (directive.spelling == name or header == normalized
                    or header.endswith("/" + normalized)):
                return directive.header
        return None
