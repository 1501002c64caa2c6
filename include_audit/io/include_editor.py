"""ソースファイルの#include指令を追加・削除する。"""

from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Set, Tuple
import logging
import os
import re

logger = logging.getLogger(__name__)


HEADER_EXTENSIONS = {".h", ".hh", ".hpp", ".hxx", ".h++", ".inl", ".ipp", ".tpp"}

_RE_INCLUDE = re.compile(r"^[ \t]*#[ \t]*include[ \t]*[<\"]([./\w-]+)[>\"]")
_RE_LOCAL_INCLUDE = re.compile(r"^[ \t]*#[ \t]*include[ \t]*\"([./\w-]+)\"")
_RE_IF = re.compile(r"^[ \t]*#[ \t]*if")
_RE_ENDIF = re.compile(r"^[ \t]*#[ \t]*endif")
_RE_PRAGMA_ONCE = re.compile(r"^[ \t]*#[ \t]*pragma[ \t]+once")
_RE_IFNDEF = re.compile(r"^[ \t]*#[ \t]*ifndef[ \t]+(\w+)")
_RE_DEFINE = re.compile(r"^[ \t]*#[ \t]*define[ \t]+(\w+)")


def is_header_file(path: str) -> bool:
    """ヘッダーファイルかどうかを拡張子で判定する。"""
    return Path(path).suffix.lower() in HEADER_EXTENSIONS


def include_spelling(
    header: str,
    source: str,
    include_paths: Sequence[str] = ()
) -> Tuple[str, bool]:
    """ヘッダーを#include指令に書く際の表記を求める。

    インクルードパス配下ならそこからの相対パス（山括弧）、ソースと
    同じsrc/includeツリー配下ならソースからの相対パスを使う。

    Args:
        header: ヘッダーファイルのパス
        source: #includeを書くファイルのパス
        include_paths: インクルードディレクトリ

    Returns:
        (表記, 山括弧を使うか)
    """
    header_abs = os.path.abspath(header)
    source_dir = os.path.dirname(os.path.abspath(source))

    # ソースと同じディレクトリツリー
    if _common_tree(header_abs, source_dir):
        return _posix(os.path.relpath(header_abs, source_dir)), False

    best: Optional[str] = None
    for include_path in include_paths:
        root = os.path.abspath(include_path)
        if header_abs.startswith(root.rstrip(os.sep) + os.sep):
            candidate = _posix(os.path.relpath(header_abs, root))
            if best is None or len(candidate) < len(best):
                best = candidate
    if best is not None:
        return best, True

    return _posix(os.path.relpath(header_abs, source_dir)), False


def _common_tree(header_abs: str, source_dir: str) -> bool:
    """ヘッダーがソースと同じsrc/includeツリー（またはその下）にあるか。"""
    if os.path.dirname(header_abs) == source_dir:
        return True
    parts = Path(source_dir).parts
    for marker in ("src", "include"):
        if marker in parts:
            root = os.path.join(*parts[:parts.index(marker) + 1])
            if header_abs.startswith(root + os.sep):
                return True
    return False


def _posix(path: str) -> str:
    return path.replace(os.sep, "/")


def format_include(spelling: str, angled: bool = False) -> str:
    if angled:
        return f"#include <{spelling}>"
    return f'#include "{spelling}"'


def parse_includes(
    text: str,
    is_header: bool,
    local_only: bool = False
) -> Tuple[int, Set[str]]:
    """#if..#endifブロック外の#include指令を収集する。

    ヘッダーではインクルードガードの分だけ深さを1つ下げて数える。
    ソースファイルでは先頭の#include（対応するヘッダー）の次を
    挿入位置とする。

    Args:
        text: ファイル内容
        is_header: ヘッダーファイルかどうか
        local_only: ダブルクォートの#includeのみを集めるか

    Returns:
        (新しい#includeを挿入する文字オフセット, 既存のインクルード表記)
    """
    lines = text.split("\n")
    # #ifndefガードがあれば#pragma onceは深さに数えない
    count_pragma = is_header and not _has_ifndef_guard(lines)
    include_re = _RE_LOCAL_INCLUDE if local_only else _RE_INCLUDE

    depth = -1 if is_header else 0
    skip_first = not is_header

    offset = 0
    found = False
    includes: Set[str] = set()

    for line in lines:
        if (count_pragma and _RE_PRAGMA_ONCE.match(line)) or _RE_IF.match(line):
            depth += 1
        elif _RE_ENDIF.match(line):
            depth -= 1
        elif depth == 0:
            match = include_re.match(line)
            if match:
                if skip_first:
                    skip_first = False
                else:
                    found = True
                includes.add(match.group(1))
        if not found:
            offset += len(line) + 1

    if not found:
        offset = 0

    return offset, includes


def _has_ifndef_guard(lines: Sequence[str]) -> bool:
    """最初の条件ディレクティブが#ifndef/#defineのガードかどうか。"""
    guard = None
    for line in lines:
        stripped = line.strip()
        if not stripped or stripped.startswith("//"):
            continue
        if guard is not None:
            match = _RE_DEFINE.match(line)
            return match is not None and match.group(1) == guard
        if _RE_IF.match(line):
            match = _RE_IFNDEF.match(line)
            if match is None:
                return False
            guard = match.group(1)
    return False


def add_includes(file_path: str, statements: Iterable[Tuple[str, bool]]) -> List[str]:
    """既存の#includeの前に新しい#includeを挿入する。

    Args:
        file_path: 編集するファイル
        statements: (表記, 山括弧を使うか)の列

    Returns:
        実際に追加した#include行
    """
    path = Path(file_path)
    text = path.read_text(encoding="utf-8")
    offset, existing = parse_includes(text, is_header_file(file_path))

    added: List[str] = []
    for spelling, angled in statements:
        if spelling in existing:
            continue
        existing.add(spelling)
        added.append(format_include(spelling, angled))

    if added:
        insertion = "".join(f"{line}\n" for line in added)
        path.write_text(text[:offset] + insertion + text[offset:], encoding="utf-8")
        logger.info(f"{file_path}: added {len(added)} includes")

    return added


def remove_includes(file_path: str, lines: Iterable[int]) -> int:
    """指定した行（1始まり）を削除する。

    Args:
        file_path: 編集するファイル
        lines: 削除する#include指令の行番号

    Returns:
        削除した行数
    """
    lines_to_remove = {line - 1 for line in lines}
    if not lines_to_remove:
        return 0

    path = Path(file_path)
    original = path.read_text(encoding="utf-8").split("\n")
    kept = [line for i, line in enumerate(original) if i not in lines_to_remove]
    path.write_text("\n".join(kept), encoding="utf-8")

    removed = len(original) - len(kept)
    logger.info(f"{file_path}: removed {removed} includes")
    return removed


def read_includes(file_path: str) -> Set[str]:
    """ファイル中のダブルクォートの#include表記を取得する。

    読み込めないファイルは空集合とする。
    """
    try:
        text = Path(file_path).read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        logger.warning(f"Cannot read {file_path}: {e}")
        return set()
    _, includes = parse_includes(text, is_header_file(file_path), local_only=True)
    return includes
