"""入出力モジュール（compile_commands.json、依存インデックス、Excelレポート、インクルード編集）。"""

from .clang_format import sort_includes
from .compile_commands import CompilationDatabase, CompilationDatabaseError, CompileCommand
from .dependency_index import DependencyIndex, DependencyIndexError, find_include
from .excel_writer import ExcelWriter
from .include_editor import (
    add_includes,
    include_spelling,
    is_header_file,
    read_includes,
    remove_includes,
)

__all__ = [
    "CompilationDatabase",
    "CompilationDatabaseError",
    "CompileCommand",
    "DependencyIndex",
    "DependencyIndexError",
    "ExcelWriter",
    "add_includes",
    "find_include",
    "include_spelling",
    "is_header_file",
    "read_includes",
    "remove_includes",
    "sort_includes",
]
