"""libclangを使用したC++ソースコード解析モジュール。"""

from .clang_analyzer import ClangAnalyzer, ClangParseError
from .ast_builder import ClangUnitBuilder
from .suppressions import SuppressionCollector, find_keep_lines

__all__ = [
    "ClangAnalyzer",
    "ClangParseError",
    "ClangUnitBuilder",
    "SuppressionCollector",
    "find_keep_lines",
]
